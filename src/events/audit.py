"""Audit log subscriber — writes every SystemEvent to the structured log.

Registered as a global subscriber (receives ALL events). The data gateway is
reserved for analysis documents, so the audit trail lives in the log stream.

Never raises: failures are logged and never reach the event system.
"""

from __future__ import annotations

import logging

import structlog

from src.schemas.events import SystemEvent

logger = logging.getLogger(__name__)
audit_log = structlog.get_logger("audit")


async def audit_on_event(event: SystemEvent) -> None:
    """Emit one structured audit line for a SystemEvent."""
    try:
        audit_log.info(
            event.event_type.value,
            event_id=str(event.id),
            session_id=str(event.session_id) if event.session_id else None,
            analysis_id=event.analysis_id,
            source=event.source_module,
            **{f"data_{k}": v for k, v in event.data.items()},
        )
    except Exception:
        logger.exception(
            "Failed to write audit event: %s (session=%s)",
            event.event_type.value,
            event.session_id,
        )
