"""Shared fixtures: event queue isolation, domain object factories, in-memory repository."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

from src.events import emitter
from src.models.enums import AnalysisStatus, WorkflowStep
from src.schemas.analysis import SavedAnalysis
from src.schemas.catalog import Client, ClientProfile, Material
from src.schemas.extraction import DimensionField, ExtractedData, ExtractedField, ExtractionResult
from src.store.analyses import AnalysisRepository


@pytest.fixture(autouse=True)
def _fresh_event_queue(monkeypatch):
    """Each test gets its own event queue and worker, bound to its own loop."""
    monkeypatch.setattr(emitter, "_queue", None)
    monkeypatch.setattr(emitter, "_worker_task", None)


@pytest.fixture
def make_extraction() -> Callable[..., ExtractionResult]:
    def _make(length: str = "24", reference: str = "PL-001", **data: Any) -> ExtractionResult:
        extracted = ExtractedData(
            reference=ExtractedField(value=reference, confidence=95, reason="Cartouche"),
            material=ExtractedField(value="Acier", confidence=80, reason="Nomenclature"),
            piece_type=ExtractedField(value="tube", confidence=75, reason="Vue de face"),
            dimensions={"longueur": DimensionField(value=length, unit="in", confidence=90, reason="Cote")},
            **data,
        )
        return ExtractionResult(id="ex-1", file_name="plan.pdf", file_type="application/pdf", extracted_data=extracted)

    return _make


@pytest.fixture
def client_record() -> Client:
    return Client(id="c1", name="Métallerie Dupuis")


@pytest.fixture
def profile() -> ClientProfile:
    return ClientProfile(
        id="p1",
        name="Profil standard",
        materials=[
            Material(
                id="m1",
                type="Tube acier",
                dimensions="1x1",
                standard_length=288,
                unit="in",
                cost_per_unit=Decimal("45.50"),
            ),
        ],
    )


@pytest.fixture
def make_analysis(make_extraction) -> Callable[..., SavedAnalysis]:
    def _make(
        analysis_id: str | None = "a1",
        parent_id: str | None = None,
        version: int = 1,
        status: AnalysisStatus = AnalysisStatus.ANALYZED,
        updated_at: datetime | None = None,
        **fields: Any,
    ) -> SavedAnalysis:
        stamp = updated_at or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        values: dict[str, Any] = {
            "id": analysis_id,
            "title": "PL-001",
            "client_id": "c1",
            "client_name": "Métallerie Dupuis",
            "profile_id": "p1",
            "profile_name": "Profil standard",
            "file_name": "plan.pdf",
            "analysis_result": make_extraction(),
            "status": status,
            "created_at": stamp,
            "updated_at": stamp,
            "current_step": WorkflowStep.REVIEW,
            "parent_id": parent_id,
            "version_number": version,
        }
        values.update(fields)
        return SavedAnalysis(**values)

    return _make


@pytest.fixture
def repo() -> AsyncMock:
    """AnalysisRepository mock that keeps created versions in memory (repo.stored)."""
    mock = AsyncMock(spec=AnalysisRepository)
    stored: list[SavedAnalysis] = []

    async def create_version(analysis: SavedAnalysis) -> SavedAnalysis:
        saved = analysis.model_copy(update={"id": f"id{len(stored) + 1}"})
        stored.append(saved)
        return saved

    async def next_version_number(parent_id: str) -> int:
        versions = [s.version_number for s in stored if s.lineage_id == parent_id]
        return max(versions, default=0) + 1

    mock.create_version.side_effect = create_version
    mock.next_version_number.side_effect = next_version_number
    mock.mark_not_latest.return_value = True
    mock.stored = stored
    return mock
