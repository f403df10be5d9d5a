"""In-memory registry of in-progress analysis sessions.

Sessions live in process memory only; a saved version is the durable form
of a session and can be resumed into a new one.
"""

from __future__ import annotations

import logging
import uuid

from src.store.analyses import AnalysisRepository
from src.workflow.controller import AnalysisSession
from src.workflow.exceptions import SessionNotFoundError

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Creates, looks up and closes AnalysisSession objects."""

    def __init__(self, repository: AnalysisRepository, autosave_delay: float | None = None) -> None:
        self._repository = repository
        self._autosave_delay = autosave_delay
        self._sessions: dict[uuid.UUID, AnalysisSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> AnalysisSession:
        session = AnalysisSession(self._repository, autosave_delay=self._autosave_delay)
        self._sessions[session.session_id] = session
        logger.info("Session %s created (%d active)", session.session_id, len(self._sessions))
        return session

    def get(self, session_id: uuid.UUID) -> AnalysisSession:
        """Raises SessionNotFoundError for unknown ids."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session {session_id}", user_message="Session introuvable.")
        return session

    async def close(self, session_id: uuid.UUID) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
