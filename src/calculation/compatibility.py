"""Material compatibility filter.

A material is compatible with a piece when its type mentions the piece
type, the extracted material, or one of the generic stock families. When
nothing matches, every material is used (fail-open).
"""

from __future__ import annotations

import logging

from src.schemas.catalog import Material
from src.schemas.extraction import ExtractedData

logger = logging.getLogger(__name__)

GENERIC_TOKENS = ("acier", "alu")
SHAPE_TOKENS = ("tube", "plat")


def _token(value: object) -> str:
    return str(value or "").strip().lower()


def is_compatible(material: Material, piece_type: str, material_token: str) -> bool:
    """Check one material against the extracted piece type and material tokens."""
    material_type = material.type.lower()
    if piece_type and piece_type in material_type:
        return True
    if material_token and material_token in material_type:
        return True
    if any(token in material_type for token in GENERIC_TOKENS):
        return True
    return piece_type in SHAPE_TOKENS and piece_type in material_type


def filter_compatible_materials(data: ExtractedData, materials: list[Material]) -> list[Material]:
    """Return the materials compatible with the extracted piece.

    Falls back to the full list when no material passes the filter.
    """
    piece_type = _token(data.piece_type.value)
    material_token = _token(data.material.value) if data.material.is_specified else ""

    compatible = [m for m in materials if is_compatible(m, piece_type, material_token)]
    if not compatible:
        logger.info(
            "No material matches piece_type=%r material=%r, using all %d materials",
            piece_type,
            material_token,
            len(materials),
        )
        return list(materials)
    return compatible
