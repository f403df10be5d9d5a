"""Request and response bodies of the session workflow API."""

from __future__ import annotations

import uuid

from pydantic import Field

from src.models.enums import AnalysisStatus, WorkflowStep
from src.schemas.base import CamelModel
from src.schemas.calculation import CalculationOutcome
from src.schemas.extraction import ExtractionResult


class SessionCreate(CamelModel):
    """Start a new session, or resume one from a saved analysis."""

    client_id: str | None = None
    profile_id: str | None = None
    title: str | None = None
    context_text: str | None = None
    quantity: int | None = None
    analysis_id: str | None = None  # resume from this saved version


class SessionUpdate(CamelModel):
    client_id: str | None = None
    profile_id: str | None = None
    title: str | None = None
    context_text: str | None = None
    quantity: int | None = None


class FieldEdit(CamelModel):
    path: str
    value: str


class CandidateSelection(CamelModel):
    candidate_id: str


class StepChange(CamelModel):
    target: WorkflowStep
    preserve: bool = False


class MarkOldVersions(CamelModel):
    parent_id: str
    new_latest_id: str


class SessionView(CamelModel):
    """Snapshot of one session as returned by every workflow route."""

    session_id: uuid.UUID
    step: WorkflowStep
    status: AnalysisStatus
    is_validated: bool
    calculations_validated: bool
    current_analysis_id: str | None = None
    parent_analysis_id: str | None = None
    title: str = ""
    context_text: str = ""
    quantity: int = 1
    client_id: str | None = None
    profile_id: str | None = None
    extraction: ExtractionResult | None = None
    calculation: CalculationOutcome | None = None
    is_saving: bool = False
    autosave_pending: bool = False
    missing_fields: list[str] = Field(default_factory=list)
