"""Analysis workflow — session state, step gating, and version checkpoints."""

from src.workflow.controller import AnalysisSession
from src.workflow.exceptions import (
    SessionNotFoundError,
    SessionPreconditionError,
    StepTransitionError,
    WorkflowError,
)
from src.workflow.registry import SessionRegistry
from src.workflow.state import SessionState

__all__ = [
    "AnalysisSession",
    "SessionNotFoundError",
    "SessionPreconditionError",
    "SessionRegistry",
    "SessionState",
    "StepTransitionError",
    "WorkflowError",
]
