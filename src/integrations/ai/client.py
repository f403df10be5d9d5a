"""Async httpx client for the AI drawing-analysis endpoint.

Endpoint: POST {ai_endpoint_url}, multipart form with
    action   workflow tag (GEMINI_FILE_LIGHT)
    prompt   the natural-language instruction
    file     the drawing

Response: {"success": true, "results": [{"gemini_response": "<text>"}],
           "fileUrl": "...", "fileType": "..."}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from src.config import settings

logger = logging.getLogger(__name__)


class AIClientError(Exception):
    """Raised when the AI endpoint fails or answers without a response text."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class AIResponse:
    """Raw AI text plus where the endpoint stored the uploaded file, if anywhere."""

    text: str
    file_url: str | None = None
    file_type: str | None = None


class AIExtractionClient:
    """Sends a drawing and an instruction, returns the model's raw text."""

    def __init__(
        self,
        endpoint_url: str | None = None,
        action: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url or settings.ai.ai_endpoint_url
        self._action = action or settings.ai.ai_action
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.ai.ai_timeout, connect=10.0),
            transport=transport,
        )

    async def analyze(
        self,
        file_bytes: bytes,
        filename: str,
        content_type: str | None,
        prompt: str,
    ) -> AIResponse:
        """Submit one drawing for analysis.

        Raises:
            AIClientError: On transport errors, non-2xx status, or a payload
                without results[0].gemini_response.
        """
        try:
            response = await self._client.post(
                self._endpoint_url,
                data={"action": self._action, "prompt": prompt},
                files={"file": (filename, file_bytes, content_type or "application/octet-stream")},
            )
        except httpx.TimeoutException as exc:
            logger.warning("AI endpoint timeout for %s", filename)
            raise AIClientError("AI endpoint timeout") from exc
        except httpx.HTTPError as exc:
            raise AIClientError(f"AI endpoint request failed: {exc}") from exc

        if response.is_error:
            raise AIClientError(f"Erreur API externe: {response.status_code}", response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise AIClientError("AI endpoint returned non-JSON content") from exc

        results = payload.get("results") if isinstance(payload, dict) else None
        text = results[0].get("gemini_response") if results and isinstance(results[0], dict) else None
        if not isinstance(text, str) or not payload.get("success", True):
            raise AIClientError("Réponse invalide de l'API d'analyse")

        return AIResponse(
            text=text,
            file_url=payload.get("fileUrl"),
            file_type=payload.get("fileType"),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
