"""Session state of one in-progress analysis.

All workflow flags live on one explicit model. The reducer returns new
copies; only the controller swaps the current state.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from src.models.enums import AnalysisStatus, WorkflowStep
from src.schemas.calculation import CalculationOutcome
from src.schemas.catalog import Client, ClientProfile
from src.schemas.extraction import ExtractedData, ExtractionResult

UNTITLED = "Analyse sans titre"


class SessionState(BaseModel):
    """Everything the versioning controller knows about one session."""

    session_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    step: WorkflowStep = WorkflowStep.CONFIGURE
    is_validated: bool = False
    calculations_validated: bool = False

    # Versioning
    current_analysis_id: str | None = None  # most recently persisted version
    parent_analysis_id: str | None = None   # version 1 of the lineage
    validated_data_snapshot: str | None = None
    last_saved_snapshot: str | None = None

    # Form
    title: str = ""
    context_text: str = ""
    quantity: int = Field(default=1, ge=1)
    client: Client | None = None
    profile: ClientProfile | None = None
    extraction: ExtractionResult | None = None
    calculation: CalculationOutcome | None = None

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def selected_candidate_id(self) -> str | None:
        if self.calculation is None or self.calculation.selected is None:
            return None
        return self.calculation.selected.candidate_id


# ── Snapshots ────────────────────────────────────────────────────────


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def data_snapshot(data: ExtractedData | None) -> str | None:
    """Serialized extracted data, compared to detect post-validation edits."""
    if data is None:
        return None
    return _dumps(data.to_document())


def form_snapshot(state: SessionState) -> str:
    """Serialized form state compared against the last successful save."""
    return _dumps({
        "title": state.title,
        "context": state.context_text,
        "quantity": state.quantity,
        "extractedData": state.extraction.extracted_data.to_document() if state.extraction else None,
        "selectedCalculation": state.selected_candidate_id,
        "isValidated": state.is_validated,
        "calculationsValidated": state.calculations_validated,
        "step": int(state.step),
    })


def derive_status(state: SessionState) -> AnalysisStatus:
    """Checkpoint status: completed > validated > analyzed > draft."""
    if state.calculations_validated:
        return AnalysisStatus.COMPLETED
    if state.is_validated:
        return AnalysisStatus.VALIDATED
    if state.step >= WorkflowStep.REVIEW:
        return AnalysisStatus.ANALYZED
    return AnalysisStatus.DRAFT
