"""Translation of domain errors into HTTP errors.

    400  precondition / invalid edit / gated step
    404  unknown session or record
    502  data gateway or AI endpoint failure

The detail is always the French user-facing message.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status

from src.calculation.exceptions import CalculationError
from src.extraction.exceptions import ExtractionError, ExtractionPreconditionError, FieldEditError
from src.integrations.ai.client import AIClientError
from src.integrations.gateway.client import GatewayError
from src.workflow.exceptions import SessionNotFoundError, WorkflowError

logger = logging.getLogger(__name__)

GATEWAY_MESSAGE = "Erreur de communication avec la base de données."
AI_MESSAGE = "Erreur lors de l'analyse du fichier"


def to_http_error(exc: Exception) -> HTTPException:
    """HTTPException for a domain error; unknown errors are not handled here."""
    match exc:
        case SessionNotFoundError():
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.user_message)
        case WorkflowError() | ExtractionPreconditionError() | FieldEditError():
            return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message)
        case CalculationError():
            return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        case ExtractionError():
            return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.user_message)
        case GatewayError():
            return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=GATEWAY_MESSAGE)
        case AIClientError():
            return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=AI_MESSAGE)
    raise TypeError(f"Not a domain error: {type(exc).__name__}")


@contextmanager
def domain_errors() -> Iterator[None]:
    """Re-raise domain errors from the wrapped block as HTTPException."""
    try:
        yield
    except (WorkflowError, ExtractionError, CalculationError, GatewayError, AIClientError) as exc:
        http_error = to_http_error(exc)
        logger.info("Request failed with %d: %s", http_error.status_code, exc)
        raise http_error from exc
