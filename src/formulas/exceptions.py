"""Formula evaluation errors."""

from __future__ import annotations


class FormulaError(Exception):
    """Raised when an expression cannot be parsed or evaluated."""

    def __init__(self, message: str, expression: str | None = None) -> None:
        super().__init__(message)
        self.expression = expression


class FormulaSyntaxError(FormulaError):
    """The expression does not match the formula grammar."""


class UnresolvedIdentifierError(FormulaError):
    """The expression references a variable missing from the bindings."""

    def __init__(self, name: str, expression: str | None = None) -> None:
        super().__init__(f"Unknown variable: {name}", expression)
        self.name = name
