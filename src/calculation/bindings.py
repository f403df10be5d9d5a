"""Variable bindings exposed to profile formulas.

Standard variables:
    longueur_piece   extracted piece length
    longueur_barre   material standard length
    type_piece       extracted piece type
    materiau         extracted material
    procedes         list of process names
    cout_materiau    material unit cost

Every dimension (longueur, largeur, hauteur, epaisseur, ...) and every
profile custom field is also bound under its normalized name.
"""

from __future__ import annotations

from typing import Any

from src.calculators.bar_yield import parse_length
from src.extraction.utils import normalize_property_name
from src.schemas.catalog import Material
from src.schemas.extraction import ExtractedData, ExtractedField


def _scalar(value: Any) -> Any:
    """Coerce numeric strings to floats; leave other values untouched."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return value
    return value


def _custom_value(field: ExtractedField | list[ExtractedField]) -> Any:
    if isinstance(field, list):
        return [_custom_value(item) for item in field]
    value = field.value
    if isinstance(value, list):
        return [
            {normalize_property_name(k): _scalar(v) for k, v in item.items()} if isinstance(item, dict) else item
            for item in value
        ]
    if isinstance(value, dict):
        return {normalize_property_name(k): _scalar(v) for k, v in value.items()}
    return _scalar(value)


def extraction_bindings(data: ExtractedData, piece_length: float) -> dict[str, Any]:
    """Bindings that depend only on the extraction (shared by every material)."""
    bindings: dict[str, Any] = {}

    for name, dimension in data.dimensions.items():
        parsed = parse_length(dimension.value)
        if parsed is not None:
            bindings[normalize_property_name(name)] = parsed

    for name, field in (data.custom_fields or {}).items():
        key = normalize_property_name(name)
        if key:
            bindings[key] = _custom_value(field)

    bindings.update({
        "longueur_piece": piece_length,
        "type_piece": str(data.piece_type.value or ""),
        "materiau": str(data.material.value or ""),
        "procedes": [str(p.value or "") for p in data.processes],
    })
    return bindings


def material_bindings(base: dict[str, Any], material: Material) -> dict[str, Any]:
    """Add the per-material variables to a copy of the extraction bindings."""
    return {
        **base,
        "longueur_barre": float(material.standard_length),
        "cout_materiau": float(material.cost_per_unit),
    }
