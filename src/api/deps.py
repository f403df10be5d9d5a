"""FastAPI dependencies.

Long-lived clients and repositories are created once in the application
lifespan and stored on app.state; routes receive them through these
functions so tests can swap them with app.dependency_overrides.
"""

from __future__ import annotations

from fastapi import Request

from src.integrations.ai.client import AIExtractionClient
from src.store.analyses import AnalysisRepository
from src.store.catalog import CatalogRepository
from src.workflow.registry import SessionRegistry


def get_analyses(request: Request) -> AnalysisRepository:
    return request.app.state.analyses


def get_catalog(request: Request) -> CatalogRepository:
    return request.app.state.catalog


def get_ai_client(request: Request) -> AIExtractionClient:
    return request.app.state.ai_client


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions
