"""Bar yield calculator — pieces per standard bar and cost per piece.

Pure Python, no I/O. Implements the default geometric cut plan:

    pieces = floor((standard_length - margin) / (piece_length + kerf))

with a fixed end-waste margin and saw kerf expressed in the same unit as
the material's standard length. Yields never go below zero.
"""

from __future__ import annotations

import math
import re
from decimal import Decimal

END_MARGIN = 12.0
SAW_KERF = 0.25

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_NUMBER = re.compile(r"-?\d*\.?\d+")


def parse_length(raw: object) -> float | None:
    """Parse an extracted length such as "24 in", "1 200,5 mm" or "24.5 in.".

    Non-numeric characters are stripped (a decimal comma becomes a dot) and
    the leading number is kept, so trailing tolerances like "(+/- 0.5)" are
    ignored. Returns None when nothing numeric remains.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int | float | Decimal):
        return float(raw)
    cleaned = _NON_NUMERIC.sub("", str(raw).replace(",", "."))
    match = _LEADING_NUMBER.match(cleaned)
    return float(match.group()) if match else None


def clamp_pieces(raw_yield: float) -> int:
    """Floor a raw yield and clamp it at zero."""
    return max(0, math.floor(raw_yield))


def default_pieces_per_bar(standard_length: float, piece_length: float) -> int:
    """Pieces obtainable from one bar with the default margin and kerf."""
    return clamp_pieces((standard_length - END_MARGIN) / (piece_length + SAW_KERF))


def cost_per_piece(cost_per_unit: Decimal, pieces_per_bar: int) -> Decimal:
    """Bar cost spread over its pieces.

    A zero yield returns the full bar cost: the piece does not fit, and the
    cost stays finite.
    """
    if pieces_per_bar > 0:
        return cost_per_unit / pieces_per_bar
    return cost_per_unit
