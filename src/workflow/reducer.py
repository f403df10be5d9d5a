"""Pure reducer for the analysis workflow.

    reduce(state, event) -> Transition(state, effects)

No I/O here. Effects describe what the controller must do next: persist a
checkpoint, (re)arm or cancel the autosave timer, publish a SystemEvent.
Invalid events raise a WorkflowError and leave the state untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from src.extraction.review import update_field
from src.models.enums import AnalysisStatus, WorkflowStep
from src.schemas.analysis import SavedAnalysis
from src.schemas.calculation import CalculationOutcome
from src.schemas.catalog import Client, ClientProfile
from src.schemas.events import EventType
from src.schemas.extraction import ExtractionResult
from src.workflow.exceptions import SessionPreconditionError, StepTransitionError, WorkflowError
from src.workflow.state import SessionState, data_snapshot, form_snapshot
from src.workflow.steps import check_forward, reset_flags_for

QUANTITY_MESSAGE = "La quantité de pièces est obligatoire et doit être d'au moins 1"


# ── Events ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClientSelected:
    client: Client


@dataclass(frozen=True)
class ProfileSelected:
    profile: ClientProfile


@dataclass(frozen=True)
class MetadataChanged:
    title: str | None = None
    context_text: str | None = None
    quantity: int | None = None


@dataclass(frozen=True)
class ExtractionCompleted:
    result: ExtractionResult


@dataclass(frozen=True)
class FieldEdited:
    path: str
    raw_value: str


@dataclass(frozen=True)
class AnalysisValidated:
    pass


@dataclass(frozen=True)
class CalculationCompleted:
    outcome: CalculationOutcome


@dataclass(frozen=True)
class CalculationSelected:
    candidate_id: str


@dataclass(frozen=True)
class CalculationsValidated:
    pass


@dataclass(frozen=True)
class StepRequested:
    target: WorkflowStep
    preserve: bool = False


@dataclass(frozen=True)
class Resumed:
    record: SavedAnalysis
    client: Client
    profile: ClientProfile


@dataclass(frozen=True)
class Reset:
    pass


Event = (
    ClientSelected | ProfileSelected | MetadataChanged | ExtractionCompleted | FieldEdited
    | AnalysisValidated | CalculationCompleted | CalculationSelected | CalculationsValidated
    | StepRequested | Resumed | Reset
)


# ── Effects ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Checkpoint:
    force: bool = False


@dataclass(frozen=True)
class ScheduleAutosave:
    pass


@dataclass(frozen=True)
class CancelAutosave:
    pass


@dataclass(frozen=True)
class Notify:
    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)


Effect = Checkpoint | ScheduleAutosave | CancelAutosave | Notify


@dataclass(frozen=True)
class Transition:
    state: SessionState
    effects: tuple[Effect, ...] = ()


# ── Helpers ──────────────────────────────────────────────────────────


def _autosave(state: SessionState) -> tuple[Effect, ...]:
    """Debounced save, only once a version exists and the user is past configuration."""
    if state.step >= WorkflowStep.REVIEW and state.current_analysis_id is not None:
        return (ScheduleAutosave(),)
    return ()


def _step_notice(before: SessionState, after: SessionState) -> tuple[Effect, ...]:
    if before.step == after.step:
        return ()
    return (Notify(EventType.STEP_CHANGED, {"from_step": int(before.step), "to_step": int(after.step)}),)


def _title_for(state: SessionState, result: ExtractionResult) -> str:
    reference = result.extracted_data.reference
    if reference.is_specified and isinstance(reference.value, str | int | float):
        return str(reference.value).strip()
    if state.title:
        return state.title
    return PurePath(result.file_name).stem


# ── Handlers ─────────────────────────────────────────────────────────


def _on_extraction(state: SessionState, event: ExtractionCompleted) -> Transition:
    new = state.model_copy(update={
        "extraction": event.result,
        "calculation": None,
        "is_validated": False,
        "calculations_validated": False,
        "validated_data_snapshot": None,
        "step": WorkflowStep.REVIEW,
        "title": _title_for(state, event.result),
    })
    # The first extraction always produces a version, even if nothing else changed
    return Transition(new, (CancelAutosave(), *_step_notice(state, new), Checkpoint(force=True)))


def _on_field_edit(state: SessionState, event: FieldEdited) -> Transition:
    if state.extraction is None:
        raise SessionPreconditionError("No extraction to edit", user_message="Aucune analyse à modifier.")

    data = update_field(state.extraction.extracted_data, event.path, event.raw_value)
    new = state.model_copy(update={"extraction": state.extraction.model_copy(update={"extracted_data": data})})
    notices: list[Effect] = [Notify(EventType.FIELD_EDITED, {"path": event.path})]

    if new.is_validated and data_snapshot(data) != new.validated_data_snapshot:
        revoked = new.model_copy(update={
            "is_validated": False,
            "calculations_validated": False,
            "validated_data_snapshot": None,
            "step": min(new.step, WorkflowStep.REVIEW),
        })
        notices.append(Notify(EventType.VALIDATION_REVOKED, {"path": event.path, "from_step": int(state.step)}))
        return Transition(revoked, (*notices, *_step_notice(state, revoked), CancelAutosave(), Checkpoint()))

    return Transition(new, (*notices, *_autosave(new)))


def _on_metadata(state: SessionState, event: MetadataChanged) -> Transition:
    updates: dict[str, Any] = {}
    if event.title is not None:
        updates["title"] = event.title.strip()
    if event.context_text is not None:
        updates["context_text"] = event.context_text
    if event.quantity is not None:
        if event.quantity < 1:
            raise SessionPreconditionError(f"Invalid quantity {event.quantity}", user_message=QUANTITY_MESSAGE)
        updates["quantity"] = event.quantity
    new = state.model_copy(update=updates)
    return Transition(new, _autosave(new))


def _on_validated(state: SessionState) -> Transition:
    if state.extraction is None:
        raise SessionPreconditionError("Nothing to validate", user_message="Aucune analyse à valider.")
    new = state.model_copy(update={
        "is_validated": True,
        "validated_data_snapshot": data_snapshot(state.extraction.extracted_data),
        "step": max(state.step, WorkflowStep.CALCULATE),
    })
    return Transition(new, (
        CancelAutosave(),
        Notify(EventType.VALIDATION_GRANTED),
        *_step_notice(state, new),
        Checkpoint(),
    ))


def _on_calculation(state: SessionState, event: CalculationCompleted) -> Transition:
    new = state.model_copy(update={"calculation": event.outcome, "calculations_validated": False})
    selected = event.outcome.selected
    return Transition(new, (
        Notify(EventType.CALCULATION_COMPLETED, {
            "candidates": len(event.outcome.ranked),
            "selected": selected.candidate_id if selected else None,
        }),
        *_autosave(new),
    ))


def _on_selection(state: SessionState, event: CalculationSelected) -> Transition:
    if state.calculation is None:
        raise SessionPreconditionError("No calculation to select from", user_message="Veuillez lancer les calculs.")
    outcome = state.calculation.model_copy(deep=True)
    try:
        outcome.select(event.candidate_id)
    except KeyError:
        raise WorkflowError(
            f"Unknown candidate {event.candidate_id}",
            user_message="Ce résultat de calcul n'existe pas.",
        ) from None
    new = state.model_copy(update={"calculation": outcome})
    return Transition(new, (Notify(EventType.CALCULATION_SELECTED, {"candidate_id": event.candidate_id}), *_autosave(new)))


def _on_calculations_validated(state: SessionState) -> Transition:
    if not state.is_validated:
        raise StepTransitionError(
            "Extraction not validated",
            user_message="Veuillez valider les données extraites avant de passer aux calculs.",
        )
    if state.calculation is None or state.calculation.selected is None:
        raise SessionPreconditionError("No calculation selected", user_message="Veuillez lancer les calculs.")
    new = state.model_copy(update={"calculations_validated": True, "step": WorkflowStep.SAVE})
    return Transition(new, (
        CancelAutosave(),
        Notify(EventType.CALCULATIONS_VALIDATED, {"candidate_id": state.selected_candidate_id}),
        *_step_notice(state, new),
        Checkpoint(),
    ))


def _on_step(state: SessionState, event: StepRequested) -> Transition:
    target = WorkflowStep(event.target)
    if target == state.step:
        return Transition(state)
    if target > state.step:
        check_forward(state, target)
        new = state.model_copy(update={"step": target})
    else:
        updates: dict[str, Any] = {"step": target}
        if not event.preserve:
            updates.update(reset_flags_for(target))
        new = state.model_copy(update=updates)
    return Transition(new, (CancelAutosave(), *_step_notice(state, new), Checkpoint()))


def _on_resumed(state: SessionState, event: Resumed) -> Transition:
    record = event.record
    calculation = None
    if record.calculation_result is not None:
        calculation = CalculationOutcome(
            ranked=[record.calculation_result],
            selected=record.calculation_result,
            calculated_at=record.updated_at,
            profile_used=record.profile_id,
        )
    new = SessionState(
        session_id=state.session_id,
        step=record.current_step,
        is_validated=record.validated,
        calculations_validated=record.status == AnalysisStatus.COMPLETED,
        current_analysis_id=record.id,
        parent_analysis_id=record.parent_id,
        title=record.title,
        context_text=record.context_text or "",
        quantity=record.quantity,
        client=event.client,
        profile=event.profile,
        extraction=record.analysis_result,
        calculation=calculation,
    )
    new = new.model_copy(update={
        "validated_data_snapshot": data_snapshot(new.extraction.extracted_data) if new.is_validated else None,
        "last_saved_snapshot": form_snapshot(new),
    })
    return Transition(new, (CancelAutosave(), Notify(EventType.SESSION_STARTED, {"resumed_from": record.id})))


def reduce(state: SessionState, event: Event) -> Transition:
    """Apply one event to the session state.

    Raises:
        WorkflowError: If the event is not allowed in the current state.
        FieldEditError: If a field edit cannot be applied.
    """
    match event:
        case ClientSelected(client=client):
            new = state.model_copy(update={"client": client})
            return Transition(new, _autosave(new))
        case ProfileSelected(profile=profile):
            new = state.model_copy(update={"profile": profile})
            return Transition(new, _autosave(new))
        case MetadataChanged():
            return _on_metadata(state, event)
        case ExtractionCompleted():
            return _on_extraction(state, event)
        case FieldEdited():
            return _on_field_edit(state, event)
        case AnalysisValidated():
            return _on_validated(state)
        case CalculationCompleted():
            return _on_calculation(state, event)
        case CalculationSelected():
            return _on_selection(state, event)
        case CalculationsValidated():
            return _on_calculations_validated(state)
        case StepRequested():
            return _on_step(state, event)
        case Resumed():
            return _on_resumed(state, event)
        case Reset():
            return Transition(SessionState(session_id=state.session_id), (CancelAutosave(),))
    raise WorkflowError(f"Unsupported event: {event!r}")
