"""Saved analyses: listing, lineage, export, deletion."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from src.api.deps import get_analyses
from src.api.errors import domain_errors
from src.export.csv_export import export_analyses_csv
from src.schemas.session import MarkOldVersions
from src.store.analyses import AnalysisRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyses", tags=["analyses"])


@router.get("")
async def list_analyses(
    client_id: str | None = Query(None, alias="clientId"),
    latest_only: bool = Query(False, alias="latestOnly"),
    analyses: AnalysisRepository = Depends(get_analyses),
) -> list[dict[str, Any]]:
    with domain_errors():
        records = await analyses.list(client_id=client_id, latest_only=latest_only)
    return [r.to_document() for r in records]


@router.get("/export.csv")
async def export_csv(
    client_id: str | None = Query(None, alias="clientId"),
    latest_only: bool = Query(True, alias="latestOnly"),
    analyses: AnalysisRepository = Depends(get_analyses),
) -> Response:
    """CSV of the selected analyses, latest version of each lineage by default."""
    with domain_errors():
        records = await analyses.list(client_id=client_id, latest_only=latest_only)
    filename = f"analyses_{datetime.now(timezone.utc):%Y-%m-%d}.csv"
    logger.info("Exporting %d analyses to %s", len(records), filename)
    return Response(
        content=export_analyses_csv(records),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/mark-old-versions")
async def mark_old_versions(
    body: MarkOldVersions,
    analyses: AnalysisRepository = Depends(get_analyses),
) -> dict[str, int]:
    with domain_errors():
        updated = await analyses.mark_old_versions(body.parent_id, body.new_latest_id)
    return {"updated": updated}


@router.get("/{analysis_id}")
async def get_analysis(
    analysis_id: str,
    analyses: AnalysisRepository = Depends(get_analyses),
) -> dict[str, Any]:
    with domain_errors():
        record = await analyses.get(analysis_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analyse introuvable.")
    return record.to_document()


@router.get("/{analysis_id}/versions")
async def list_versions(
    analysis_id: str,
    analyses: AnalysisRepository = Depends(get_analyses),
) -> list[dict[str, Any]]:
    """Every version of the lineage the given record belongs to, oldest first."""
    with domain_errors():
        record = await analyses.get(analysis_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analyse introuvable.")
        versions = await analyses.list_lineage(record.lineage_id or analysis_id)
    return [v.to_document() for v in versions]


@router.delete("/{analysis_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_analysis(
    analysis_id: str,
    analyses: AnalysisRepository = Depends(get_analyses),
) -> None:
    with domain_errors():
        await analyses.delete(analysis_id)
