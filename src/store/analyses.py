"""SavedAnalysis repository.

Versions are append-only: saving always creates a new document. The only
in-place write is flipping isLatest to false on superseded versions, and
that write is best-effort. Readers that need "the latest version" use
latest_versions(), which derives it from version numbers instead of
trusting the stored flag.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from src.integrations.gateway.client import DataGatewayClient, GatewayError
from src.integrations.gateway.schemas import GatewayDocument
from src.models.enums import GatewayDataType
from src.schemas.analysis import SavedAnalysis

logger = logging.getLogger(__name__)

DATA_TYPE = GatewayDataType.ANALYSIS.value


def _description(analysis: SavedAnalysis) -> str:
    return f"Analyse: {analysis.title or 'Sans titre'}"


def _payload(analysis: SavedAnalysis) -> dict[str, Any]:
    document = analysis.to_document()
    document.pop("id", None)
    return document


def latest_versions(records: list[SavedAnalysis]) -> list[SavedAnalysis]:
    """Keep one record per lineage: the highest version number.

    Ties (which the single-writer model should never produce) go to the
    most recently updated record.
    """
    best: dict[str, SavedAnalysis] = {}
    for record in records:
        key = record.lineage_id or ""
        current = best.get(key)
        if current is None or (record.version_number, record.updated_at) > (current.version_number, current.updated_at):
            best[key] = record
    return sorted(best.values(), key=lambda r: r.updated_at, reverse=True)


class AnalysisRepository:
    """CRUD and lineage queries for analysis versions."""

    def __init__(self, gateway: DataGatewayClient) -> None:
        self._gateway = gateway

    def _to_record(self, document: GatewayDocument) -> SavedAnalysis | None:
        try:
            return SavedAnalysis.model_validate({**document.json_data, "id": document.id})
        except ValidationError as exc:
            logger.warning("Skipping malformed analysis document %s: %s", document.id, exc)
            return None

    def _to_records(self, documents: list[GatewayDocument]) -> list[SavedAnalysis]:
        return [r for r in (self._to_record(d) for d in documents) if r is not None]

    async def create_version(self, analysis: SavedAnalysis) -> SavedAnalysis:
        """Store a new version and return it with its gateway id."""
        new_id = await self._gateway.create(DATA_TYPE, _payload(analysis), _description(analysis))
        logger.info(
            "Created analysis %s (lineage=%s, version=%d)",
            new_id,
            analysis.parent_id or new_id,
            analysis.version_number,
        )
        return analysis.model_copy(update={"id": new_id})

    async def get(self, analysis_id: str) -> SavedAnalysis | None:
        document = await self._gateway.get(DATA_TYPE, analysis_id)
        return self._to_record(document) if document is not None else None

    async def list(self, client_id: str | None = None, latest_only: bool = False) -> list[SavedAnalysis]:
        """List analyses, optionally for one client and reduced to the latest version per lineage."""
        mongo_filter = {"json_data.clientId": {"$eq": client_id}} if client_id else None
        records = self._to_records(await self._gateway.filter(DATA_TYPE, mongo_filter))
        if latest_only:
            return latest_versions(records)
        return sorted(records, key=lambda r: r.updated_at, reverse=True)

    async def list_lineage(self, parent_id: str) -> list[SavedAnalysis]:
        """All versions of a lineage, oldest first."""
        documents = await self._gateway.filter(DATA_TYPE, {
            "$or": [
                {"json_data.parentId": {"$eq": parent_id}},
                {"_id": {"$eq": parent_id}},
            ],
        })
        return sorted(self._to_records(documents), key=lambda r: r.version_number)

    async def next_version_number(self, parent_id: str) -> int:
        """max(versionNumber) + 1 over the lineage; a missing number counts as 1."""
        versions = await self.list_lineage(parent_id)
        return max((v.version_number for v in versions), default=0) + 1

    async def mark_not_latest(self, analysis_id: str) -> bool:
        """Flip isLatest to false on one stored version.

        Returns False when the record no longer exists.

        Raises:
            GatewayError: If the read or the update fails.
        """
        record = await self.get(analysis_id)
        if record is None:
            return False
        updated = record.model_copy(update={"is_latest": False, "updated_at": datetime.now(timezone.utc)})
        await self._gateway.update(DATA_TYPE, analysis_id, _payload(updated), _description(updated))
        return True

    async def mark_old_versions(self, parent_id: str, new_latest_id: str) -> int:
        """Flag every version of a lineage except new_latest_id as not latest.

        Best-effort per record: a failed update is logged and the others
        still proceed. Returns the number of records updated.
        """
        updated = 0
        for record in await self.list_lineage(parent_id):
            if record.id == new_latest_id or not record.is_latest:
                continue
            flipped = record.model_copy(update={"is_latest": False, "updated_at": datetime.now(timezone.utc)})
            try:
                await self._gateway.update(DATA_TYPE, str(record.id), _payload(flipped), _description(flipped))
            except GatewayError:
                logger.exception("Failed to flag version %s as not latest", record.id)
                continue
            updated += 1
        return updated

    async def delete(self, analysis_id: str) -> None:
        await self._gateway.delete(DATA_TYPE, analysis_id)
        logger.info("Deleted analysis %s", analysis_id)
