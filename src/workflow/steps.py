"""Step gating for the four-screen workflow.

    1 CONFIGURE -> 2 REVIEW -> 3 CALCULATE -> 4 SAVE

Forward moves check the requirement of every step crossed. Backward moves
clear the validation flags owned by the steps being reopened, unless the
caller asks to preserve them.
"""

from __future__ import annotations

from src.models.enums import WorkflowStep
from src.workflow.exceptions import StepTransitionError
from src.workflow.state import SessionState

STEP_LABELS: dict[WorkflowStep, str] = {
    WorkflowStep.CONFIGURE: "Configuration",
    WorkflowStep.REVIEW: "Validation",
    WorkflowStep.CALCULATE: "Calculs",
    WorkflowStep.SAVE: "Sauvegarde",
}

# Requirement to enter a step: (predicate, user message)
ENTRY_REQUIREMENTS = {
    WorkflowStep.REVIEW: (
        lambda s: s.extraction is not None,
        "Veuillez d'abord analyser un plan.",
    ),
    WorkflowStep.CALCULATE: (
        lambda s: s.is_validated,
        "Veuillez valider les données extraites avant de passer aux calculs.",
    ),
    WorkflowStep.SAVE: (
        lambda s: s.calculation is not None and s.calculation.selected is not None,
        "Veuillez lancer les calculs avant de passer à la sauvegarde.",
    ),
}


def check_forward(state: SessionState, target: WorkflowStep) -> None:
    """Raise StepTransitionError if any step between current and target is gated."""
    for step in WorkflowStep:
        if state.step < step <= target and step in ENTRY_REQUIREMENTS:
            allowed, message = ENTRY_REQUIREMENTS[step]
            if not allowed(state):
                raise StepTransitionError(
                    f"Cannot move from step {int(state.step)} to {int(target)}: {step.name} is gated",
                    user_message=message,
                )


def reset_flags_for(target: WorkflowStep) -> dict[str, object]:
    """Flag updates for reopening target: its own flag and every later one."""
    updates: dict[str, object] = {}
    if target <= WorkflowStep.REVIEW:
        updates.update(is_validated=False, validated_data_snapshot=None)
    if target <= WorkflowStep.CALCULATE:
        updates["calculations_validated"] = False
    return updates
