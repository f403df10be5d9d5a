"""Calculation engine errors."""

from __future__ import annotations


class CalculationError(Exception):
    """Base error for the calculation engine."""


class CalculationPreconditionError(CalculationError):
    """The extraction lacks data required to compute any result.

    The message is user-facing (French) and shown as-is by the API.
    """
