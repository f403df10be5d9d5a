"""Draft cleanup.

Deletes analysis versions still in ``draft`` status that nobody touched for
``draft_retention_days``. Running it twice in a row deletes nothing the
second time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from src.config import settings
from src.events import emit
from src.integrations.gateway.client import GatewayError
from src.models.enums import AnalysisStatus
from src.schemas.events import EventType, SystemEvent
from src.store.analyses import AnalysisRepository

logger = logging.getLogger(__name__)


async def cleanup_drafts(
    repository: AnalysisRepository,
    retention_days: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Delete stale drafts and return the deleted ids.

    A failed delete is logged and skipped; the remaining drafts are still
    processed.
    """
    days = settings.workflow.draft_retention_days if retention_days is None else retention_days
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)

    deleted: list[str] = []
    failed = 0
    for record in await repository.list():
        if record.status != AnalysisStatus.DRAFT or record.updated_at >= cutoff or record.id is None:
            continue
        try:
            await repository.delete(record.id)
        except GatewayError:
            logger.exception("Failed to delete stale draft %s", record.id)
            failed += 1
            continue
        deleted.append(record.id)

    logger.info("Draft cleanup: %d deleted, %d failed (cutoff %s)", len(deleted), failed, cutoff.isoformat())
    await emit(SystemEvent(
        event_type=EventType.SYSTEM_MAINTENANCE,
        data={
            "task": "cleanup_drafts",
            "deleted": len(deleted),
            "failed": failed,
            "retention_days": days,
        },
        source_module="maintenance.drafts",
    ))
    return deleted
