"""Async httpx client for the data gateway (generic JSON document store).

Endpoints (all under {base_url}/api/v1/data/{data_type}):
    POST   /one          create, returns results[0].inserted_id
    GET    /one/{id}     read one document
    PUT    /one/{id}     replace json_data
    DELETE /one/{id}     delete
    POST   /filter       mongo-style filter on json_data

Every document written by this service carries json_data.app_identifier so
several applications can share one collection.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from src.config import settings
from src.events import emit
from src.integrations.gateway.schemas import GatewayDocument, GatewayResponse
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/data"
ERROR_BODY_LIMIT = 500


class GatewayError(Exception):
    """Raised on a non-2xx status, a transport failure, or success=false."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DataGatewayClient:
    """Thin async wrapper around the data gateway document endpoints.

    Auth: Bearer token header. A missing token is not fatal; requests go
    out unauthenticated and the gateway decides.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        app_identifier: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._app_identifier = app_identifier or settings.gateway.app_identifier
        token = settings.gateway.gateway_bearer_token if token is None else token

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("Gateway bearer token not configured - requests will likely be rejected")

        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.gateway.gateway_base_url).rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(settings.gateway.gateway_timeout, connect=10.0),
            transport=transport,
        )

    @property
    def app_identifier(self) -> str:
        return self._app_identifier

    # ── Transport ────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, json: Any = None) -> GatewayResponse:
        try:
            response = await self._client.request(method, f"{API_PREFIX}{path}", json=json)
        except httpx.HTTPError as exc:
            await self._report(method, path, None, str(exc))
            raise GatewayError(f"Gateway request failed: {exc}") from exc

        if response.is_error:
            body = response.text[:ERROR_BODY_LIMIT]
            await self._report(method, path, response.status_code, body)
            raise GatewayError(f"Gateway API Error {response.status_code}: {body}", response.status_code)

        try:
            envelope = GatewayResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            await self._report(method, path, response.status_code, "invalid JSON envelope")
            raise GatewayError(f"Invalid gateway response: {exc}", response.status_code) from exc

        if not envelope.success:
            await self._report(method, path, response.status_code, envelope.error or "success=false")
            raise GatewayError(f"Gateway reported failure: {envelope.error or 'unknown error'}")
        return envelope

    async def _report(self, method: str, path: str, status: int | None, detail: str) -> None:
        logger.error("Gateway %s %s failed (status=%s): %s", method, path, status, detail)
        await emit(SystemEvent(
            event_type=EventType.GATEWAY_ERROR,
            data={"method": method, "path": path, "status": status, "detail": detail[:200]},
            source_module="integrations.gateway.client",
        ))

    def _tagged(self, json_data: dict[str, Any]) -> dict[str, Any]:
        return {**json_data, "app_identifier": self._app_identifier}

    # ── CRUD ─────────────────────────────────────────────────────────

    async def create(self, data_type: str, json_data: dict[str, Any], description: str = "") -> str:
        """Store a new document and return its gateway id."""
        envelope = await self._request(
            "POST",
            f"/{data_type}/one",
            json={"description": description, "json_data": self._tagged(json_data)},
        )
        if not envelope.results or not envelope.results[0].get("inserted_id"):
            raise GatewayError("Gateway create returned no inserted_id")
        return str(envelope.results[0]["inserted_id"])

    async def get(self, data_type: str, doc_id: str) -> GatewayDocument | None:
        """Fetch one document, or None if the gateway has no such id."""
        try:
            envelope = await self._request("GET", f"/{data_type}/one/{doc_id}")
        except GatewayError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not envelope.results:
            return None
        return GatewayDocument.model_validate(envelope.results[0])

    async def update(
        self,
        data_type: str,
        doc_id: str,
        json_data: dict[str, Any],
        description: str = "",
    ) -> None:
        """Replace the JSON payload of an existing document."""
        await self._request(
            "PUT",
            f"/{data_type}/one/{doc_id}",
            json={"description": description, "json_data": self._tagged(json_data)},
        )

    async def delete(self, data_type: str, doc_id: str) -> None:
        await self._request("DELETE", f"/{data_type}/one/{doc_id}")

    async def filter(self, data_type: str, mongo_filter: dict[str, Any] | None = None) -> list[GatewayDocument]:
        """Return this application's documents matching a mongo-style filter."""
        query: dict[str, Any] = {"json_data.app_identifier": {"$eq": self._app_identifier}}
        if mongo_filter:
            query.update(mongo_filter)
        envelope = await self._request("POST", f"/{data_type}/filter", json={"mongo_filter": query})
        return [GatewayDocument.model_validate(r) for r in envelope.results]

    async def list_all(self, data_type: str) -> list[GatewayDocument]:
        """Return every document of this application for a data type."""
        return await self.filter(data_type)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
