"""Cutting calculators."""

from src.calculators.bar_yield import (
    END_MARGIN,
    SAW_KERF,
    clamp_pieces,
    cost_per_piece,
    default_pieces_per_bar,
    parse_length,
)

__all__ = [
    "END_MARGIN",
    "SAW_KERF",
    "clamp_pieces",
    "cost_per_piece",
    "default_pieces_per_bar",
    "parse_length",
]
