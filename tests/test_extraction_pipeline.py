"""Tests for the drawing extraction pipeline, the prompt builder and the AI client.

Covers:
- Preconditions: empty file, missing profile (AI never called)
- Successful extraction in both response shapes
- Retry on unparseable output, then the "Non spécifié" fallback
- AI endpoint failure surfaces as ExtractionError
- Instruction assembly from profile fields and user context
- AI client multipart request and response validation (httpx.MockTransport)
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.extraction.exceptions import ExtractionError, ExtractionPreconditionError
from src.extraction.pipeline import PARSE_ERROR_REASON, analyze_drawing
from src.extraction.prompts import BASE_INSTRUCTION, build_instruction
from src.integrations.ai.client import AIClientError, AIExtractionClient, AIResponse
from src.schemas.catalog import ClientProfile, ExtractableField
from src.schemas.events import EventType
from src.schemas.extraction import NOT_SPECIFIED

# ── Helpers ──────────────────────────────────────────────────────────

RECORDS_TEXT = json.dumps([
    {"name": "reference_dessin", "data_type": "string", "value": "PL-9", "confidence": 90, "justification": "Cartouche"},
    {"name": "longueur", "data_type": "string", "value": "24 in", "confidence": 85, "justification": "Cote"},
])


def _make_profile() -> ClientProfile:
    return ClientProfile(
        id="p1",
        name="Atelier Nord",
        custom_fields=[
            ExtractableField(name="trous", label="Trous", instruction="Lister les trous avec diametre et quantite"),
            ExtractableField(name="finition", unit="um"),
        ],
    )


def _make_ai(*texts: str) -> AsyncMock:
    client = AsyncMock(spec=AIExtractionClient)
    client.analyze.side_effect = [AIResponse(text=t, file_url="https://files/plan.pdf", file_type="application/pdf") for t in texts]
    return client


@pytest.fixture
def mock_emit():
    with patch("src.extraction.pipeline.emit", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture
def two_attempts():
    with patch("src.extraction.pipeline.settings") as mock:
        mock.ai.ai_max_attempts = 2
        yield mock


def _emitted(mock_emit: AsyncMock) -> list[EventType]:
    return [c.args[0].event_type for c in mock_emit.call_args_list]


# ── Pipeline ─────────────────────────────────────────────────────────


class TestPreconditions:
    @pytest.mark.asyncio()
    async def test_empty_file(self, mock_emit):
        ai = _make_ai()
        with pytest.raises(ExtractionPreconditionError) as exc_info:
            await analyze_drawing(ai, b"", "plan.pdf", "application/pdf", _make_profile())
        assert exc_info.value.user_message == "Fichier et prompt requis"
        ai.analyze.assert_not_called()

    @pytest.mark.asyncio()
    async def test_missing_profile(self, mock_emit):
        ai = _make_ai()
        with pytest.raises(ExtractionPreconditionError) as exc_info:
            await analyze_drawing(ai, b"%PDF", "plan.pdf", "application/pdf", None)
        assert "profil client" in exc_info.value.user_message
        ai.analyze.assert_not_called()
        mock_emit.assert_not_called()


class TestAnalyzeDrawing:
    @pytest.mark.asyncio()
    async def test_records_shape(self, mock_emit, two_attempts):
        ai = _make_ai(RECORDS_TEXT)
        result = await analyze_drawing(ai, b"%PDF", "plan.pdf", "application/pdf", _make_profile(), "Urgent")

        assert result.file_name == "plan.pdf"
        assert result.file_url == "https://files/plan.pdf"
        assert result.extracted_data.reference.value == "PL-9"
        assert result.extracted_data.dimensions["longueur"].unit == "in"
        assert result.raw_data[0]["name"] == "reference_dessin"

        prompt = ai.analyze.call_args.args[3]
        assert "Atelier Nord" in prompt
        assert "Urgent" in prompt

        events = _emitted(mock_emit)
        assert events[0] == EventType.EXTRACTION_STARTED
        assert events[-1] == EventType.EXTRACTION_COMPLETED
        assert mock_emit.call_args_list[-1].args[0].data["fallback"] is False

    @pytest.mark.asyncio()
    async def test_legacy_shape_in_fences(self, mock_emit, two_attempts):
        text = '```json\n{"materiau": {"valeur": "Acier", "confiance": 80, "raison": "Note"}}\n```'
        result = await analyze_drawing(_make_ai(text), b"%PDF", "plan.pdf", None, _make_profile())
        assert result.extracted_data.material.value == "Acier"
        assert result.file_type == "application/pdf"

    @pytest.mark.asyncio()
    async def test_retry_then_success(self, mock_emit, two_attempts):
        ai = _make_ai("désolé, je ne peux pas", RECORDS_TEXT)
        result = await analyze_drawing(ai, b"%PDF", "plan.pdf", None, _make_profile())
        assert ai.analyze.call_count == 2
        assert result.extracted_data.reference.value == "PL-9"

    @pytest.mark.asyncio()
    async def test_fallback_after_attempts(self, mock_emit, two_attempts):
        ai = _make_ai("pas du json", '"toujours pas"')
        result = await analyze_drawing(ai, b"%PDF", "plan.pdf", None, _make_profile())

        assert ai.analyze.call_count == 2
        data = result.extracted_data
        assert data.reference.value == NOT_SPECIFIED
        assert data.reference.reason == PARSE_ERROR_REASON
        assert result.raw_data is None
        assert mock_emit.call_args_list[-1].args[0].data["fallback"] is True

    @pytest.mark.asyncio()
    async def test_ai_failure(self, mock_emit, two_attempts):
        ai = AsyncMock(spec=AIExtractionClient)
        ai.analyze.side_effect = AIClientError("Erreur API externe: 500", 500)
        with pytest.raises(ExtractionError) as exc_info:
            await analyze_drawing(ai, b"%PDF", "plan.pdf", None, _make_profile())

        assert exc_info.value.user_message == "Erreur lors de l'analyse du fichier"
        events = _emitted(mock_emit)
        assert EventType.AI_ERROR in events
        assert events[-1] == EventType.EXTRACTION_FAILED
        assert ai.analyze.call_count == 1


# ── Prompt ───────────────────────────────────────────────────────────


class TestBuildInstruction:
    def test_base_only(self):
        prompt = build_instruction(None)
        assert prompt.startswith(BASE_INSTRUCTION)
        assert "PROFIL D'EXTRACTION" not in prompt

    def test_profile_fields(self):
        prompt = build_instruction(_make_profile())
        assert 'PROFIL D\'EXTRACTION "Atelier Nord"' in prompt
        assert "trous (Trous): Lister les trous avec diametre et quantite" in prompt
        assert "finition (finition): Extraire finition (unite: um)" in prompt

    def test_context_last(self):
        prompt = build_instruction(_make_profile(), "  Voir courriel du client  ")
        assert prompt.rstrip().endswith("ameliorer la precision de l'extraction.")
        assert "Voir courriel du client" in prompt

    def test_blank_context_ignored(self):
        assert "CONTEXTE ADDITIONNEL" not in build_instruction(_make_profile(), "   ")


# ── AI client ────────────────────────────────────────────────────────


def _make_client(handler) -> AIExtractionClient:
    return AIExtractionClient(
        endpoint_url="https://ai.test/analyze",
        action="GEMINI_FILE_LIGHT",
        transport=httpx.MockTransport(handler),
    )


class TestAIExtractionClient:
    @pytest.mark.asyncio()
    async def test_multipart_request(self):
        seen: dict[str, bytes] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.read()
            seen["content_type"] = request.headers["content-type"].encode()
            return httpx.Response(200, json={
                "success": True,
                "results": [{"gemini_response": "[]"}],
                "fileUrl": "https://files/x.pdf",
                "fileType": "application/pdf",
            })

        client = _make_client(handler)
        response = await client.analyze(b"%PDF-1.4", "x.pdf", "application/pdf", "Extraire")
        await client.close()

        assert response.text == "[]"
        assert response.file_url == "https://files/x.pdf"
        assert seen["content_type"].startswith(b"multipart/form-data")
        assert b"GEMINI_FILE_LIGHT" in seen["body"]
        assert b"Extraire" in seen["body"]
        assert b'filename="x.pdf"' in seen["body"]

    @pytest.mark.asyncio()
    async def test_http_error(self):
        client = _make_client(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(AIClientError) as exc_info:
            await client.analyze(b"x", "x.pdf", None, "p")
        await client.close()
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio()
    async def test_missing_response_text(self):
        client = _make_client(lambda request: httpx.Response(200, json={"success": True, "results": []}))
        with pytest.raises(AIClientError, match="Réponse invalide"):
            await client.analyze(b"x", "x.pdf", None, "p")
        await client.close()

    @pytest.mark.asyncio()
    async def test_success_false(self):
        client = _make_client(lambda request: httpx.Response(200, json={
            "success": False,
            "results": [{"gemini_response": "[]"}],
        }))
        with pytest.raises(AIClientError):
            await client.analyze(b"x", "x.pdf", None, "p")
        await client.close()

    @pytest.mark.asyncio()
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _make_client(handler)
        with pytest.raises(AIClientError):
            await client.analyze(b"x", "x.pdf", None, "p")
        await client.close()
