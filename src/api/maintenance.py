"""Maintenance tasks triggered over HTTP (e.g. by a cron job)."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_analyses
from src.api.errors import domain_errors
from src.maintenance.drafts import cleanup_drafts
from src.store.analyses import AnalysisRepository

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/cleanup-drafts")
async def cleanup_stale_drafts(
    retention_days: int | None = Query(None, alias="retentionDays", ge=0),
    analyses: AnalysisRepository = Depends(get_analyses),
) -> dict[str, object]:
    with domain_errors():
        deleted = await cleanup_drafts(analyses, retention_days=retention_days)
    return {"deleted": deleted, "count": len(deleted)}
