"""Workflow errors.

Every error carries a French user_message that the API returns as-is.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base error for the analysis workflow."""

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class SessionPreconditionError(WorkflowError):
    """Required data (client, profile, extraction, quantity) is missing or invalid."""


class StepTransitionError(WorkflowError):
    """The requested step change is not allowed from the current state."""


class SessionNotFoundError(WorkflowError):
    """No in-progress session has this id."""
