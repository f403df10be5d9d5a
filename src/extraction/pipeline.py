"""Drawing extraction pipeline.

Main entry point for analyzing an uploaded drawing. Builds the
instruction, calls the AI endpoint, parses and normalizes the answer.
No gateway access; the workflow controller persists the result.
"""

from __future__ import annotations

import logging
import time
import uuid

from src.config import settings
from src.events import emit
from src.extraction.exceptions import ExtractionError, ExtractionPreconditionError
from src.extraction.normalizer import fallback_extraction, normalize_ai_response
from src.extraction.prompts import build_instruction
from src.extraction.utils import AIParseError, parse_ai_json
from src.integrations.ai.client import AIClientError, AIExtractionClient
from src.schemas.catalog import ClientProfile
from src.schemas.events import EventType, SystemEvent
from src.schemas.extraction import ExtractionResult

logger = logging.getLogger(__name__)

PARSE_ERROR_REASON = "Erreur de parsing"


async def analyze_drawing(
    client: AIExtractionClient,
    file_bytes: bytes,
    filename: str,
    content_type: str | None,
    profile: ClientProfile | None,
    context_text: str | None = None,
    session_id: uuid.UUID | None = None,
) -> ExtractionResult:
    """Analyze one drawing and return the normalized extraction.

    Flow:
        1. Check preconditions (file and profile present)
        2. Build the instruction from the profile and user context
        3. Call the AI endpoint
        4. Parse the JSON answer, retrying with the same prompt if unparseable
        5. Normalize either response shape into ExtractedData

    An answer that stays unparseable after every attempt yields the
    "Non spécifié" fallback extraction rather than an error.

    Raises:
        ExtractionPreconditionError: If the file or profile is missing.
        ExtractionError: If the AI endpoint itself fails.
    """
    if not file_bytes:
        raise ExtractionPreconditionError("No file uploaded", user_message="Fichier et prompt requis")
    if profile is None:
        raise ExtractionPreconditionError("No client profile selected", user_message="Veuillez sélectionner un profil client")

    start = time.monotonic()
    prompt = build_instruction(profile, context_text)

    await emit(SystemEvent(
        event_type=EventType.EXTRACTION_STARTED,
        session_id=session_id,
        data={"file_name": filename, "file_size_bytes": len(file_bytes), "profile_id": profile.id},
        source_module="extraction.pipeline",
    ))

    attempts = settings.ai.ai_max_attempts
    extracted = None
    raw_payload = None
    response = None

    for attempt in range(1, attempts + 1):
        await emit(SystemEvent(
            event_type=EventType.AI_REQUEST,
            session_id=session_id,
            data={"attempt": attempt, "prompt_chars": len(prompt)},
            source_module="extraction.pipeline",
        ))
        try:
            response = await client.analyze(file_bytes, filename, content_type, prompt)
        except AIClientError as exc:
            logger.error("AI endpoint failed for %s: %s", filename, exc)
            await emit(SystemEvent(
                event_type=EventType.AI_ERROR,
                session_id=session_id,
                data={"attempt": attempt, "error": str(exc), "status": exc.status_code},
                source_module="extraction.pipeline",
            ))
            await emit(SystemEvent(
                event_type=EventType.EXTRACTION_FAILED,
                session_id=session_id,
                data={"file_name": filename, "error": str(exc)},
                source_module="extraction.pipeline",
            ))
            raise ExtractionError(str(exc), user_message="Erreur lors de l'analyse du fichier") from exc

        await emit(SystemEvent(
            event_type=EventType.AI_RESPONSE,
            session_id=session_id,
            data={"attempt": attempt, "response_chars": len(response.text)},
            source_module="extraction.pipeline",
        ))

        try:
            raw_payload = parse_ai_json(response.text)
            extracted = normalize_ai_response(raw_payload)
            break
        except (AIParseError, ExtractionError) as exc:
            logger.warning("Unparseable AI answer for %s (attempt %d/%d): %s", filename, attempt, attempts, exc)

    if extracted is None:
        logger.error("AI answer for %s unparseable after %d attempts, using fallback", filename, attempts)
        extracted = fallback_extraction(PARSE_ERROR_REASON)
        raw_payload = None

    elapsed_ms = int((time.monotonic() - start) * 1000)
    result = ExtractionResult(
        id=uuid.uuid4().hex,
        file_name=filename,
        file_url=response.file_url if response else None,
        file_type=(response.file_type if response else None) or content_type,
        raw_data=raw_payload,
        extracted_data=extracted,
    )

    await emit(SystemEvent(
        event_type=EventType.EXTRACTION_COMPLETED,
        session_id=session_id,
        data={
            "file_name": filename,
            "fallback": raw_payload is None,
            "dimensions": len(extracted.dimensions),
            "custom_fields": len(extracted.custom_fields or {}),
            "processing_time_ms": elapsed_ms,
        },
        source_module="extraction.pipeline",
    ))
    return result
