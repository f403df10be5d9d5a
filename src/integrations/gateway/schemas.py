"""Pydantic schemas for the data gateway document API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class GatewayDocument(BaseModel):
    """One stored document: the gateway id plus its JSON payload."""

    id: str = Field(alias="_id")
    json_data: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None

    model_config = {"populate_by_name": True}


class GatewayResponse(BaseModel):
    """Envelope returned by every gateway endpoint."""

    success: bool = True
    results: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
