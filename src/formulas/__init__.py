"""Profile formula parsing and evaluation."""

from src.formulas.evaluator import evaluate, evaluate_condition, evaluate_yield
from src.formulas.exceptions import FormulaError, FormulaSyntaxError, UnresolvedIdentifierError

__all__ = [
    "evaluate",
    "evaluate_condition",
    "evaluate_yield",
    "FormulaError",
    "FormulaSyntaxError",
    "UnresolvedIdentifierError",
]
