"""Manual review of an extraction.

Every user correction goes through update_field, addressed by a dotted
path into ExtractedData:

    material
    pieceType
    dimensions.longueur
    processes.0
    notes.1
    customFields.trous
    customFields.finitions.0

A corrected value is always trusted: confidence becomes 100 and the reason
becomes the manual-edit marker.
"""

from __future__ import annotations

import json
import logging

from src.calculators.bar_yield import parse_length
from src.extraction.exceptions import FieldEditError
from src.schemas.extraction import (
    MANUAL_EDIT_REASON,
    DimensionField,
    ExtractedData,
    ExtractedField,
    NoteField,
)

logger = logging.getLogger(__name__)

MANUAL_CONFIDENCE = 100.0

_SCALAR_ATTRS = {
    "reference": "reference",
    "description": "description",
    "material": "material",
    "pieceType": "piece_type",
    "piece_type": "piece_type",
}
_CUSTOM_ATTRS = {"customFields", "custom_fields"}


def _index(segment: str, size: int, path: str) -> int:
    try:
        index = int(segment)
    except ValueError:
        raise FieldEditError(f"Invalid index {segment!r} in {path}", user_message=f"Champ introuvable : {path}") from None
    if not 0 <= index < size:
        raise FieldEditError(f"Index out of range in {path}", user_message=f"Champ introuvable : {path}")
    return index


def _locate(data: ExtractedData, path: str) -> ExtractedField | NoteField:
    """Find (or create, for dimensions) the field addressed by path."""
    head, *rest = path.split(".")
    not_found = FieldEditError(f"Unknown field path: {path}", user_message=f"Champ introuvable : {path}")

    if head in _SCALAR_ATTRS and not rest:
        return getattr(data, _SCALAR_ATTRS[head])

    if head == "dimensions" and len(rest) == 1:
        name = rest[0]
        if name not in data.dimensions:
            data.dimensions[name] = DimensionField(value="", unit="")
        return data.dimensions[name]

    if head == "processes" and len(rest) == 1:
        return data.processes[_index(rest[0], len(data.processes), path)]

    if head == "notes" and len(rest) == 1:
        return data.notes[_index(rest[0], len(data.notes), path)]

    if head in _CUSTOM_ATTRS and rest:
        custom = data.custom_fields or {}
        field = custom.get(rest[0])
        if field is None:
            raise not_found
        if isinstance(field, list):
            if len(rest) != 2:
                raise not_found
            return field[_index(rest[1], len(field), path)]
        if len(rest) == 1:
            return field

    raise not_found


def _apply_dimension(field: DimensionField, raw_value: str) -> None:
    parts = raw_value.strip().split()
    if len(parts) > 1:
        field.value = parts[0]
        field.unit = " ".join(parts[1:])
    else:
        field.value = raw_value.strip()


def update_field(data: ExtractedData, path: str, raw_value: str) -> ExtractedData:
    """Apply one manual edit and return the updated copy.

    The input is never mutated, so a rejected edit leaves the extraction
    exactly as it was.

    Raises:
        FieldEditError: If the path does not exist, or the field holds an
            object/array and raw_value is not valid JSON.
    """
    updated = data.model_copy(deep=True)
    field = _locate(updated, path)

    if isinstance(field, NoteField):
        field.content = raw_value
    elif field.is_complex:
        try:
            field.value = json.loads(raw_value)
        except json.JSONDecodeError as exc:
            raise FieldEditError(
                f"Invalid JSON for {path}: {exc}",
                user_message="Format JSON invalide. Veuillez vérifier votre saisie.",
            ) from exc
    elif isinstance(field, DimensionField):
        _apply_dimension(field, raw_value)
    else:
        field.value = raw_value

    field.confidence = MANUAL_CONFIDENCE
    field.reason = MANUAL_EDIT_REASON
    logger.debug("Field %s manually edited", path)
    return updated


def missing_critical_fields(data: ExtractedData) -> list[str]:
    """List the fields the calculation and the quote cannot do without.

    Used to warn before validation; it never blocks it.
    """
    missing: list[str] = []
    if not data.reference.is_specified:
        missing.append("reference")
    if not data.material.is_specified:
        missing.append("material")
    length = data.dimensions.get("longueur")
    parsed = parse_length(length.value) if length is not None else None
    if parsed is None or parsed <= 0:
        missing.append("dimensions.longueur")
    return missing
