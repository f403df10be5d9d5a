"""Normalize AI responses into ExtractedData.

The AI endpoint answers in one of two shapes:

    records  [{"name", "data_type", "value", "confidence", "justification"}, ...]
    legacy   {"reference_dessin": {"valeur", "confiance", "raison"}, ...}

Both are tagged once here, at the ingestion boundary, and mapped onto the
same ExtractedData. Field names are matched with and without accents;
anything that is not a standard field becomes a custom field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import ValidationError

from src.extraction.exceptions import ExtractionError
from src.extraction.utils import normalize_property_name
from src.schemas.extraction import (
    DEFAULT_PIECE_TYPE,
    NOT_FOUND_REASON,
    NOT_SPECIFIED,
    AIFieldRecord,
    DimensionField,
    ExtractedData,
    ExtractedField,
    NoteField,
)

logger = logging.getLogger(__name__)

# Normalized AI field name -> ExtractedData attribute
SCALAR_FIELDS = {
    "reference_dessin": "reference",
    "reference": "reference",
    "description": "description",
    "materiau": "material",
    "matiere": "material",
    "type_piece": "piece_type",
}
DIMENSION_FIELDS = frozenset({"longueur", "largeur", "hauteur", "epaisseur", "diametre"})
PROCESS_FIELDS = frozenset({"procedes", "procede"})
NOTE_FIELDS = frozenset({"notes_importantes", "notes"})
DIMENSIONS_KEY = "dimensions"
CUSTOM_FIELDS_KEY = "champs_personnalises"


@dataclass(frozen=True)
class AIPayload:
    """An AI response tagged with its shape."""

    shape: Literal["records", "legacy"]
    body: list[Any] | dict[str, Any]


def tag_payload(payload: Any) -> AIPayload:
    """Identify the response shape.

    Raises:
        ExtractionError: If the payload is neither an array nor an object.
    """
    if isinstance(payload, list):
        return AIPayload("records", payload)
    if isinstance(payload, dict):
        # Some workflows wrap the record array in an object
        for key in ("fields", "champs", "data"):
            if isinstance(payload.get(key), list):
                return AIPayload("records", payload[key])
        return AIPayload("legacy", payload)
    raise ExtractionError(
        f"Unsupported AI payload type: {type(payload).__name__}",
        user_message="Réponse invalide de l'API d'analyse",
    )


# ── Value helpers ────────────────────────────────────────────────────


def _split_unit(value: Any) -> tuple[Any, str]:
    """Split "24 mm" into (24.0, "mm"); other values pass through."""
    if isinstance(value, str):
        parts = value.strip().split(maxsplit=1)
        if len(parts) == 2:
            try:
                return float(parts[0].replace(",", ".")), parts[1]
            except ValueError:
                pass
    return value, ""


def _record_field(record: AIFieldRecord) -> ExtractedField:
    return ExtractedField(value=record.value, confidence=record.confidence, reason=record.justification)


def _record_dimension(record: AIFieldRecord) -> DimensionField:
    value = record.value
    unit = ""
    if isinstance(value, dict):
        unit = str(value.get("unit") or value.get("unite") or value.get("unité") or "")
        value = value.get("value", value.get("valeur", value))
    else:
        value, unit = _split_unit(value)
    return DimensionField(value=value, unit=unit, confidence=record.confidence, reason=record.justification)


def _record_list(record: AIFieldRecord) -> list[ExtractedField]:
    items = record.value if isinstance(record.value, list) else [record.value]
    return [
        ExtractedField(value=item, confidence=record.confidence, reason=record.justification)
        for item in items
        if item not in (None, "")
    ]


def _record_notes(record: AIFieldRecord) -> list[NoteField]:
    items = record.value if isinstance(record.value, list) else [record.value]
    return [
        NoteField(content=str(item), confidence=record.confidence, reason=record.justification)
        for item in items
        if item not in (None, "")
    ]


def _legacy_field(raw: Any, model: type[ExtractedField] = ExtractedField) -> ExtractedField:
    """Legacy entries are usually {valeur, confiance, raison} but may be bare values."""
    if isinstance(raw, dict) and any(k in raw for k in ("valeur", "value", "confiance", "confidence")):
        return model.model_validate(raw)
    if model is DimensionField:
        value, unit = _split_unit(raw)
        return DimensionField(value=value, unit=unit, confidence=0, reason="")
    return model(value=raw, confidence=0, reason="")


def _legacy_list(raw: Any) -> list[ExtractedField]:
    items = raw if isinstance(raw, list) else [raw]
    return [_legacy_field(item) for item in items if item is not None]


def _legacy_notes(raw: Any) -> list[NoteField]:
    items = raw if isinstance(raw, list) else [raw]
    notes: list[NoteField] = []
    for item in items:
        if isinstance(item, dict):
            notes.append(NoteField.model_validate(item))
        elif item is not None:
            notes.append(NoteField(content=str(item)))
    return notes


# ── Shape handlers ───────────────────────────────────────────────────


def _from_records(records: list[Any]) -> ExtractedData:
    data = ExtractedData()
    custom: dict[str, ExtractedField | list[ExtractedField]] = {}

    for raw in records:
        try:
            record = AIFieldRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping malformed AI record %r: %s", raw, exc)
            continue

        key = normalize_property_name(record.name)
        if key in SCALAR_FIELDS:
            setattr(data, SCALAR_FIELDS[key], _record_field(record))
        elif key in DIMENSION_FIELDS:
            data.dimensions[key] = _record_dimension(record)
        elif key in PROCESS_FIELDS:
            data.processes.extend(_record_list(record))
        elif key in NOTE_FIELDS:
            data.notes.extend(_record_notes(record))
        elif key:
            custom[record.name] = _record_field(record)

    data.custom_fields = custom or None
    return data


def _from_legacy(body: dict[str, Any]) -> ExtractedData:
    data = ExtractedData()
    custom: dict[str, ExtractedField | list[ExtractedField]] = {}

    for name, raw in body.items():
        if name.startswith("_"):
            continue
        key = normalize_property_name(name)
        if key in SCALAR_FIELDS:
            setattr(data, SCALAR_FIELDS[key], _legacy_field(raw))
        elif key == DIMENSIONS_KEY and isinstance(raw, dict):
            for dim_name, dim_raw in raw.items():
                data.dimensions[normalize_property_name(dim_name) or dim_name] = _legacy_field(dim_raw, DimensionField)
        elif key in DIMENSION_FIELDS:
            data.dimensions[key] = _legacy_field(raw, DimensionField)
        elif key in PROCESS_FIELDS:
            data.processes.extend(_legacy_list(raw))
        elif key in NOTE_FIELDS:
            data.notes.extend(_legacy_notes(raw))
        elif key == normalize_property_name(CUSTOM_FIELDS_KEY) and isinstance(raw, dict):
            for field_name, field_raw in raw.items():
                custom[field_name] = _legacy_list(field_raw) if isinstance(field_raw, list) else _legacy_field(field_raw)
        elif key:
            custom[name] = _legacy_field(raw)

    data.custom_fields = custom or None
    return data


def normalize_ai_response(payload: Any) -> ExtractedData:
    """Map a parsed AI response (either shape) onto ExtractedData.

    Missing standard fields keep their defaults: "Non spécifié" (or "autre"
    for the piece type) with confidence 0.

    Raises:
        ExtractionError: If the payload shape is not recognized.
    """
    tagged = tag_payload(payload)
    if tagged.shape == "records":
        data = _from_records(tagged.body)  # type: ignore[arg-type]
    else:
        data = _from_legacy(tagged.body)  # type: ignore[arg-type]

    logger.debug(
        "Normalized %s AI response: %d dimensions, %d processes, %d custom fields",
        tagged.shape,
        len(data.dimensions),
        len(data.processes),
        len(data.custom_fields or {}),
    )
    return data


def fallback_extraction(reason: str) -> ExtractedData:
    """Extraction used when the AI answer could not be parsed at all."""
    missing = {"value": NOT_SPECIFIED, "confidence": 0, "reason": reason or NOT_FOUND_REASON}
    return ExtractedData(
        reference=ExtractedField(**missing),
        description=ExtractedField(**missing),
        material=ExtractedField(**missing),
        piece_type=ExtractedField(**{**missing, "value": DEFAULT_PIECE_TYPE}),
    )
