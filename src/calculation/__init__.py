"""Calculation engine: ranks every admissible (material, formula) cut plan."""

from src.calculation.engine import compute_all, piece_length, rank_results
from src.calculation.exceptions import CalculationError, CalculationPreconditionError

__all__ = [
    "compute_all",
    "piece_length",
    "rank_results",
    "CalculationError",
    "CalculationPreconditionError",
]
