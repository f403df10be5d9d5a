"""Pydantic schemas for AI extraction results.

Every extracted value carries a confidence score (0-100) and the reason the
AI gave for it, never a bare value. Legacy French keys (valeur, confiance,
raison, unite, contenu) are accepted on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from src.schemas.base import CamelModel

NOT_SPECIFIED = "Non spécifié"
NOT_FOUND_REASON = "Non trouvé"
MANUAL_EDIT_REASON = "manually edited"
DEFAULT_PIECE_TYPE = "autre"


def _clamp_confidence(v: Any) -> float:
    try:
        value = float(v)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(100.0, value))


# ── Building blocks ──────────────────────────────────────────────────


class ExtractedField(CamelModel):
    """A single extracted value with its provenance."""

    value: Any = Field(default=NOT_SPECIFIED, validation_alias=AliasChoices("value", "valeur"))
    confidence: float = Field(default=0.0, validation_alias=AliasChoices("confidence", "confiance"))
    reason: str = Field(default="", validation_alias=AliasChoices("reason", "raison", "justification"))

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp_confidence(v)

    @field_validator("reason", mode="before")
    @classmethod
    def coerce_reason(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @property
    def is_specified(self) -> bool:
        """True if the AI actually found a value."""
        if self.value is None:
            return False
        if isinstance(self.value, str):
            stripped = self.value.strip()
            return bool(stripped) and stripped.lower() not in {"non spécifié", "non specifie"}
        return True

    @property
    def is_complex(self) -> bool:
        """True for structured values (objects or arrays)."""
        return isinstance(self.value, dict | list)


class DimensionField(ExtractedField):
    """An extracted dimension with its unit."""

    unit: str = Field(default="", validation_alias=AliasChoices("unit", "unite", "unité"))

    @field_validator("unit", mode="before")
    @classmethod
    def coerce_unit(cls, v: Any) -> str:
        return "" if v is None else str(v)


class NoteField(CamelModel):
    """A free-text note found on the drawing."""

    content: str = Field(default="", validation_alias=AliasChoices("content", "contenu", "value", "valeur"))
    confidence: float = Field(default=0.0, validation_alias=AliasChoices("confidence", "confiance"))
    reason: str = Field(default="", validation_alias=AliasChoices("reason", "raison", "justification"))

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp_confidence(v)

    @field_validator("content", "reason", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)


def _missing(value: str = NOT_SPECIFIED) -> ExtractedField:
    return ExtractedField(value=value, confidence=0, reason=NOT_FOUND_REASON)


# ── Extraction result ────────────────────────────────────────────────

CustomFieldValue = ExtractedField | list[ExtractedField]


class ExtractedData(CamelModel):
    """Structured fields extracted from one drawing.

    The single mutable source of truth once an extraction exists; edits go
    through src.extraction.review.update_field.
    """

    reference: ExtractedField = Field(default_factory=_missing)
    description: ExtractedField = Field(default_factory=_missing)
    material: ExtractedField = Field(default_factory=_missing)
    piece_type: ExtractedField = Field(default_factory=lambda: _missing(DEFAULT_PIECE_TYPE))
    dimensions: dict[str, DimensionField] = Field(default_factory=dict)
    processes: list[ExtractedField] = Field(default_factory=list)
    notes: list[NoteField] = Field(default_factory=list)
    custom_fields: dict[str, CustomFieldValue] | None = None


class ExtractionResult(CamelModel):
    """One AI analysis of an uploaded drawing."""

    id: str
    file_name: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    file_url: str | None = None
    file_type: str | None = None
    raw_data: Any = None
    extracted_data: ExtractedData = Field(default_factory=ExtractedData)


class AIFieldRecord(CamelModel):
    """One entry of the array-shaped AI response."""

    name: str
    data_type: str | None = None
    value: Any = None
    confidence: float = 0.0
    justification: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp_confidence(v)

    @field_validator("justification", mode="before")
    @classmethod
    def coerce_justification(cls, v: Any) -> str:
        return "" if v is None else str(v)
