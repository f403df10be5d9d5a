"""Read-only client reference data for the configuration screen."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.deps import get_catalog
from src.api.errors import domain_errors
from src.store.catalog import CatalogRepository

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/clients")
async def list_clients(catalog: CatalogRepository = Depends(get_catalog)) -> list[dict[str, Any]]:
    with domain_errors():
        clients = await catalog.list_clients()
    return [c.to_document() for c in clients]


@router.get("/profiles")
async def list_profiles(catalog: CatalogRepository = Depends(get_catalog)) -> list[dict[str, Any]]:
    with domain_errors():
        profiles = await catalog.list_profiles()
    return [p.to_document() for p in profiles]


@router.get("/profiles/{profile_id}")
async def get_profile(profile_id: str, catalog: CatalogRepository = Depends(get_catalog)) -> dict[str, Any]:
    with domain_errors():
        profile = await catalog.get_profile(profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profil introuvable.")
    return profile.to_document()
