"""Pydantic schema for the versioned SavedAnalysis document.

A record is immutable once created: updating an analysis means creating a
new version in the same lineage. The only in-place change is the
isLatest flip on superseded versions.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import Field

from src.models.enums import AnalysisStatus, WorkflowStep
from src.schemas.base import CamelModel
from src.schemas.calculation import CalculationResult
from src.schemas.extraction import ExtractionResult


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SavedAnalysis(CamelModel):
    """One persisted version of an analysis."""

    id: str | None = None  # assigned by the store on create
    title: str
    client_id: str
    client_name: str | None = None
    profile_id: str
    profile_name: str | None = None
    file_name: str
    file_url: str | None = None
    file_type: str | None = None
    analysis_result: ExtractionResult
    calculation_result: CalculationResult | None = None
    status: AnalysisStatus = AnalysisStatus.DRAFT
    validated: bool = False
    context_text: str | None = None
    quantity: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    current_step: WorkflowStep = WorkflowStep.CONFIGURE
    parent_id: str | None = None  # id of version 1 of the lineage
    version_number: int = Field(default=1, ge=1)
    is_latest: bool = True
    tags: list[str] = Field(default_factory=list)

    @property
    def lineage_id(self) -> str | None:
        """Root id of the lineage this record belongs to."""
        return self.parent_id or self.id
