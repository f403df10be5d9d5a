"""Extraction errors."""

from __future__ import annotations


class ExtractionError(Exception):
    """Base error for drawing extraction.

    Attributes:
        user_message: French message safe to show to the end user.
    """

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class ExtractionPreconditionError(ExtractionError):
    """A file or profile is missing; nothing was sent to the AI."""


class FieldEditError(ExtractionError):
    """A manual edit could not be applied; the field was left untouched."""
