"""Session workflow routes: configure, analyze, review, calculate, save.

Each route dispatches one workflow event on an in-memory session and
returns the resulting SessionView. Checkpoints happen inside the session
controller; the routes never write to the store directly.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from src.api.deps import get_ai_client, get_analyses, get_catalog, get_sessions
from src.api.errors import domain_errors
from src.extraction.review import missing_critical_fields
from src.integrations.ai.client import AIExtractionClient
from src.schemas.catalog import Client, ClientProfile
from src.schemas.session import (
    CandidateSelection,
    FieldEdit,
    SessionCreate,
    SessionUpdate,
    SessionView,
    StepChange,
)
from src.store.analyses import AnalysisRepository
from src.store.catalog import CatalogRepository
from src.workflow.controller import AnalysisSession, fallback_client, fallback_profile
from src.workflow.reducer import (
    AnalysisValidated,
    CalculationSelected,
    CalculationsValidated,
    ClientSelected,
    FieldEdited,
    MetadataChanged,
    ProfileSelected,
    Reset,
    Resumed,
    StepRequested,
)
from src.workflow.registry import SessionRegistry
from src.workflow.state import derive_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


# ── Helpers ──────────────────────────────────────────────────────────


def _view(session: AnalysisSession) -> dict[str, Any]:
    state = session.state
    view = SessionView(
        session_id=state.session_id,
        step=state.step,
        status=derive_status(state),
        is_validated=state.is_validated,
        calculations_validated=state.calculations_validated,
        current_analysis_id=state.current_analysis_id,
        parent_analysis_id=state.parent_analysis_id,
        title=state.title,
        context_text=state.context_text,
        quantity=state.quantity,
        client_id=state.client.id if state.client else None,
        profile_id=state.profile.id if state.profile else None,
        extraction=state.extraction,
        calculation=state.calculation,
        is_saving=session.is_saving,
        autosave_pending=session.autosave_pending,
        missing_fields=missing_critical_fields(state.extraction.extracted_data) if state.extraction else [],
    )
    return view.to_document()


async def _client(catalog: CatalogRepository, client_id: str) -> Client:
    client = await catalog.get_client(client_id)
    if client is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client introuvable.")
    return client


async def _profile(catalog: CatalogRepository, profile_id: str) -> ClientProfile:
    profile = await catalog.get_profile(profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profil introuvable.")
    return profile


async def _configure(
    session: AnalysisSession,
    catalog: CatalogRepository,
    body: SessionCreate | SessionUpdate,
) -> None:
    if body.client_id is not None:
        await session.dispatch(ClientSelected(await _client(catalog, body.client_id)))
    if body.profile_id is not None:
        await session.dispatch(ProfileSelected(await _profile(catalog, body.profile_id)))
    if body.title is not None or body.context_text is not None or body.quantity is not None:
        await session.dispatch(MetadataChanged(body.title, body.context_text, body.quantity))


async def _resume(
    session: AnalysisSession,
    analyses: AnalysisRepository,
    catalog: CatalogRepository,
    analysis_id: str,
) -> None:
    record = await analyses.get(analysis_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analyse introuvable.")
    client = await catalog.get_client(record.client_id) or fallback_client(record)
    profile = await catalog.get_profile(record.profile_id) or fallback_profile(record)
    await session.dispatch(Resumed(record, client, profile))
    logger.info("Session %s resumed from analysis %s (v%d)", session.session_id, record.id, record.version_number)


# ── Routes ───────────────────────────────────────────────────────────


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    sessions: SessionRegistry = Depends(get_sessions),
    analyses: AnalysisRepository = Depends(get_analyses),
    catalog: CatalogRepository = Depends(get_catalog),
) -> dict[str, Any]:
    """Open a session; with analysisId it resumes that saved version."""
    session = sessions.create()
    try:
        with domain_errors():
            if body.analysis_id is not None:
                await _resume(session, analyses, catalog, body.analysis_id)
            await _configure(session, catalog, body)
    except HTTPException:
        await sessions.close(session.session_id)
        raise
    return _view(session)


@router.get("/{session_id}")
async def get_session(
    session_id: uuid.UUID,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    with domain_errors():
        return _view(sessions.get(session_id))


@router.patch("/{session_id}")
async def update_session(
    session_id: uuid.UUID,
    body: SessionUpdate,
    sessions: SessionRegistry = Depends(get_sessions),
    catalog: CatalogRepository = Depends(get_catalog),
) -> dict[str, Any]:
    with domain_errors():
        session = sessions.get(session_id)
        await _configure(session, catalog, body)
    return _view(session)


@router.post("/{session_id}/analyze")
async def analyze(
    session_id: uuid.UUID,
    file: UploadFile = File(...),
    sessions: SessionRegistry = Depends(get_sessions),
    ai_client: AIExtractionClient = Depends(get_ai_client),
) -> dict[str, Any]:
    """Upload a drawing and run the AI extraction on it."""
    content = await file.read()
    with domain_errors():
        session = sessions.get(session_id)
        await session.analyze(ai_client, content, file.filename or "plan", file.content_type)
    return _view(session)


@router.patch("/{session_id}/fields")
async def edit_field(
    session_id: uuid.UUID,
    body: FieldEdit,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    with domain_errors():
        session = sessions.get(session_id)
        await session.dispatch(FieldEdited(body.path, body.value))
    return _view(session)


@router.post("/{session_id}/validate")
async def validate(
    session_id: uuid.UUID,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    """Validate the extraction; missing critical fields are reported, not blocking."""
    with domain_errors():
        session = sessions.get(session_id)
        await session.dispatch(AnalysisValidated())
    return _view(session)


@router.post("/{session_id}/calculate")
async def calculate(
    session_id: uuid.UUID,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    with domain_errors():
        session = sessions.get(session_id)
        await session.calculate()
    return _view(session)


@router.post("/{session_id}/select")
async def select_candidate(
    session_id: uuid.UUID,
    body: CandidateSelection,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    with domain_errors():
        session = sessions.get(session_id)
        await session.dispatch(CalculationSelected(body.candidate_id))
    return _view(session)


@router.post("/{session_id}/validate-calculations")
async def validate_calculations(
    session_id: uuid.UUID,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    with domain_errors():
        session = sessions.get(session_id)
        await session.dispatch(CalculationsValidated())
    return _view(session)


@router.post("/{session_id}/step")
async def change_step(
    session_id: uuid.UUID,
    body: StepChange,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    with domain_errors():
        session = sessions.get(session_id)
        await session.dispatch(StepRequested(body.target, body.preserve))
    return _view(session)


@router.post("/{session_id}/save")
async def save(
    session_id: uuid.UUID,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    """Manual save from the last step; returns the stored version and the session."""
    with domain_errors():
        session = sessions.get(session_id)
        saved = await session.save()
    return {"analysis": saved.to_document(), "session": _view(session)}


@router.post("/{session_id}/reset")
async def reset(
    session_id: uuid.UUID,
    sessions: SessionRegistry = Depends(get_sessions),
) -> dict[str, Any]:
    """Start over in the same session (new analysis)."""
    with domain_errors():
        session = sessions.get(session_id)
        await session.dispatch(Reset())
    return _view(session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session_id: uuid.UUID,
    sessions: SessionRegistry = Depends(get_sessions),
) -> None:
    await sessions.close(session_id)
