"""Analysis versioning controller.

Runs the reducer and carries out its effects for one session:

- checkpoint(): decides whether to persist and appends a new version to the
  lineage (never updates a version in place);
- a trailing-debounce autosave timer, cancelled and re-armed on each edit;
- a single-flight guard so overlapping checkpoints collapse into one.

An in-flight save is never cancelled; the next checkpoint supersedes it.
Automatic checkpoints swallow store errors (logged, the session keeps its
stale ids so the next checkpoint retries). The manual save at the last
step propagates them.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from src.calculation import compute_all
from src.config import settings
from src.events import emit
from src.extraction.pipeline import analyze_drawing
from src.integrations.ai.client import AIExtractionClient
from src.integrations.gateway.client import GatewayError
from src.models.enums import AnalysisStatus, WorkflowStep
from src.schemas.analysis import SavedAnalysis
from src.schemas.catalog import Client, ClientProfile
from src.schemas.events import EventType, SystemEvent
from src.store.analyses import AnalysisRepository
from src.workflow.exceptions import SessionPreconditionError, StepTransitionError, WorkflowError
from src.workflow.reducer import (
    CalculationCompleted,
    CancelAutosave,
    Checkpoint,
    Event,
    ExtractionCompleted,
    Notify,
    ScheduleAutosave,
    Transition,
    reduce,
)
from src.workflow.state import UNTITLED, SessionState, derive_status, form_snapshot

logger = logging.getLogger(__name__)

INCOMPLETE_MESSAGE = "Veuillez compléter toutes les informations requises"


class AnalysisSession:
    """One in-progress analysis: its state plus the effects the reducer asks for."""

    def __init__(
        self,
        repository: AnalysisRepository,
        state: SessionState | None = None,
        autosave_delay: float | None = None,
    ) -> None:
        self._repository = repository
        self.state = state or SessionState()
        self._autosave_delay = (
            settings.workflow.autosave_debounce_seconds if autosave_delay is None else autosave_delay
        )
        self._autosave_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._saving = False

    @property
    def session_id(self) -> uuid.UUID:
        return self.state.session_id

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def autosave_pending(self) -> bool:
        return self._autosave_task is not None and not self._autosave_task.done()

    # ── Event loop ───────────────────────────────────────────────────

    async def dispatch(self, event: Event) -> SessionState:
        """Reduce one event and run its effects in order."""
        transition = reduce(self.state, event)
        self.state = transition.state
        await self._run_effects(transition)
        return self.state

    async def _run_effects(self, transition: Transition) -> None:
        for effect in transition.effects:
            match effect:
                case CancelAutosave():
                    self._cancel_autosave()
                case ScheduleAutosave():
                    self._schedule_autosave()
                case Notify(event_type=event_type, data=data):
                    await self._notify(event_type, data)
                case Checkpoint(force=force):
                    await self.checkpoint(force=force)

    async def _notify(self, event_type: EventType, data: dict | None = None) -> None:
        await emit(SystemEvent(
            event_type=event_type,
            session_id=self.state.session_id,
            analysis_id=self.state.current_analysis_id,
            data=data or {},
            source_module="workflow.controller",
        ))

    # ── Autosave timer ───────────────────────────────────────────────

    def _schedule_autosave(self) -> None:
        self._cancel_autosave()
        self._autosave_task = asyncio.create_task(self._autosave_after(self._autosave_delay))

    def _cancel_autosave(self) -> None:
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        self._autosave_task = None

    async def _autosave_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Detach before saving so a later edit re-arms the timer without cancelling this save
        task = self._autosave_task
        self._autosave_task = None
        if task is not None:
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        await self.checkpoint()

    async def close(self) -> None:
        """Cancel a pending autosave and wait for any save already running."""
        self._cancel_autosave()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ── Checkpoint ───────────────────────────────────────────────────

    def _build_record(
        self,
        state: SessionState,
        client: Client,
        profile: ClientProfile,
        status: AnalysisStatus,
        parent_id: str | None,
        version: int,
    ) -> SavedAnalysis:
        extraction = state.extraction
        now = datetime.now(timezone.utc)
        return SavedAnalysis(
            title=state.title or UNTITLED,
            client_id=client.id,
            client_name=client.name,
            profile_id=profile.id,
            profile_name=profile.name,
            file_name=extraction.file_name,
            file_url=extraction.file_url,
            file_type=extraction.file_type,
            analysis_result=extraction,
            calculation_result=state.calculation.selected if state.calculation else None,
            status=status,
            validated=state.is_validated,
            context_text=state.context_text or None,
            quantity=state.quantity,
            created_at=now,
            updated_at=now,
            current_step=state.step,
            parent_id=parent_id,
            version_number=version,
            is_latest=True,
        )

    async def _flag_previous(self, previous_id: str) -> None:
        """Best-effort isLatest=false on the version being superseded."""
        try:
            await self._repository.mark_not_latest(previous_id)
        except GatewayError as exc:
            logger.warning("Could not flag version %s as not latest: %s", previous_id, exc)
            await self._notify(EventType.LATEST_FLAG_FAILED, {"previous_id": previous_id, "error": str(exc)})

    async def checkpoint(self, force: bool = False, raise_errors: bool = False) -> SavedAnalysis | None:
        """Persist a new version if anything changed.

        Returns the created version, or None when the checkpoint was skipped
        or (for automatic saves) failed.

        Raises:
            GatewayError: Only when raise_errors is set and the store fails.
        """
        state = self.state
        if state.extraction is None or state.client is None or state.profile is None:
            logger.debug("Checkpoint skipped for %s: session incomplete", state.session_id)
            return None
        if self._saving:
            logger.debug("Checkpoint skipped for %s: save already in flight", state.session_id)
            return None
        snapshot = form_snapshot(state)
        if not force and snapshot == state.last_saved_snapshot:
            logger.debug("Checkpoint skipped for %s: no changes", state.session_id)
            return None

        self._saving = True
        try:
            status = derive_status(state)
            previous_id = state.current_analysis_id
            # A resumed root has no parent yet: it becomes the lineage root
            parent_id = state.parent_analysis_id or previous_id
            if parent_id is not None:
                version = max(await self._repository.next_version_number(parent_id), 2)
            else:
                version = 1

            if previous_id is not None:
                await self._flag_previous(previous_id)

            record = self._build_record(state, state.client, state.profile, status, parent_id, version)
            saved = await self._repository.create_version(record)
        except GatewayError as exc:
            logger.error("Checkpoint failed for session %s: %s", state.session_id, exc)
            await self._notify(EventType.VERSION_SAVE_FAILED, {"error": str(exc), "forced": force})
            if raise_errors:
                raise
            return None
        finally:
            self._saving = False

        self.state = self.state.model_copy(update={
            "current_analysis_id": saved.id,
            "parent_analysis_id": parent_id or saved.id,
            "last_saved_snapshot": snapshot,
        })
        await self._notify(EventType.VERSION_CREATED, {
            "version_number": saved.version_number,
            "parent_id": saved.parent_id,
            "status": saved.status.value,
        })
        return saved

    # ── User actions ─────────────────────────────────────────────────

    async def analyze(
        self,
        client: AIExtractionClient,
        file_bytes: bytes,
        filename: str,
        content_type: str | None,
    ) -> SessionState:
        """Run the AI extraction for this session's profile and record the result."""
        if self.state.client is None or self.state.profile is None:
            raise SessionPreconditionError("Client or profile missing", user_message=INCOMPLETE_MESSAGE)
        result = await analyze_drawing(
            client,
            file_bytes,
            filename,
            content_type,
            self.state.profile,
            self.state.context_text,
            session_id=self.state.session_id,
        )
        return await self.dispatch(ExtractionCompleted(result))

    async def calculate(self) -> SessionState:
        """Rank every candidate for the validated extraction.

        Raises:
            StepTransitionError: If the extraction is not validated.
            CalculationPreconditionError: If the piece length is unusable.
        """
        state = self.state
        if state.extraction is None or state.profile is None:
            raise SessionPreconditionError("Nothing to calculate", user_message=INCOMPLETE_MESSAGE)
        if not state.is_validated:
            raise StepTransitionError(
                "Extraction not validated",
                user_message="Veuillez valider les données extraites avant de passer aux calculs.",
            )
        outcome = compute_all(state.extraction, state.profile)
        return await self.dispatch(CalculationCompleted(outcome))

    async def save(self) -> SavedAnalysis:
        """Explicit save from the last step; errors reach the caller.

        Raises:
            StepTransitionError: If the session is not at the save step.
            SessionPreconditionError: If client, profile, extraction or title is missing.
            GatewayError: If the store rejects the new version.
        """
        state = self.state
        if state.step != WorkflowStep.SAVE:
            raise StepTransitionError(
                f"Manual save requested at step {int(state.step)}",
                user_message="La sauvegarde est disponible à la dernière étape.",
            )
        if state.client is None or state.profile is None or state.extraction is None:
            raise SessionPreconditionError("Session incomplete", user_message=INCOMPLETE_MESSAGE)
        if state.quantity < 1:
            raise SessionPreconditionError(
                "Invalid quantity",
                user_message="La quantité de pièces est obligatoire et doit être d'au moins 1",
            )
        if self._saving:
            raise WorkflowError("Save already in flight", user_message="Une sauvegarde est déjà en cours.")

        self._cancel_autosave()
        saved = await self.checkpoint(force=True, raise_errors=True)
        if saved is None:
            raise WorkflowError("Manual save skipped", user_message=INCOMPLETE_MESSAGE)
        logger.info("Manual save of session %s -> %s (v%d)", state.session_id, saved.id, saved.version_number)
        return saved


def fallback_client(record: SavedAnalysis) -> Client:
    """Client rebuilt from a saved record when the catalog no longer has it."""
    return Client(id=record.client_id, name=record.client_name or record.client_id)


def fallback_profile(record: SavedAnalysis) -> ClientProfile:
    """Empty profile rebuilt from a saved record when the catalog no longer has it."""
    return ClientProfile(id=record.profile_id, name=record.profile_name or record.profile_id)
