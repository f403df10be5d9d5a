"""SystemEvent schema, the event type carried by the event bus.

Every workflow action emits a SystemEvent. Subscribers (the audit logger)
consume these events asynchronously.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Session workflow
    SESSION_STARTED = "session.started"
    STEP_CHANGED = "session.step_changed"

    # Extraction
    EXTRACTION_STARTED = "extraction.started"
    EXTRACTION_COMPLETED = "extraction.completed"
    EXTRACTION_FAILED = "extraction.failed"
    FIELD_EDITED = "extraction.field_edited"
    VALIDATION_GRANTED = "extraction.validated"
    VALIDATION_REVOKED = "extraction.validation_revoked"

    # Calculations
    CALCULATION_COMPLETED = "calculation.completed"
    CALCULATION_SELECTED = "calculation.selected"
    CALCULATIONS_VALIDATED = "calculation.validated"

    # Versioning
    VERSION_CREATED = "version.created"
    VERSION_SAVE_FAILED = "version.save_failed"
    LATEST_FLAG_FAILED = "version.latest_flag_failed"

    # AI endpoint
    AI_REQUEST = "ai.request"
    AI_RESPONSE = "ai.response"
    AI_ERROR = "ai.error"

    # Data gateway
    GATEWAY_ERROR = "gateway.error"

    # System
    SYSTEM_MAINTENANCE = "system.maintenance"


class SystemEvent(BaseModel):
    """Core event that flows through the analyzer.

    Immutable once created. Consumed by the audit logger.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context (optional: not every event belongs to a workflow session)
    session_id: uuid.UUID | None = None
    analysis_id: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
