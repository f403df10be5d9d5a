"""Parsing helpers for the AI endpoint's text answer.

The answer is supposed to be bare JSON but often arrives wrapped in a
```json fence, with trailing commas, or with a sentence before or after
the payload. Field-name normalization shared by the normalizer and the
formula bindings lives here too.
"""

from __future__ import annotations

import json
import re
from typing import Any


class AIParseError(Exception):
    """The AI answer holds no recoverable JSON value."""

    def __init__(self, message: str, raw_output: str) -> None:
        super().__init__(message)
        self.raw_output = raw_output


def parse_ai_json(raw: str) -> Any:
    """Parse the AI answer into a JSON array or object.

    Strips code fences and trailing commas; if the text still does not
    parse, retries on the span between the first opening and the last
    closing bracket.

    Raises:
        AIParseError: If no valid JSON can be recovered.
    """
    cleaned = _fix_trailing_commas(_strip_markdown_fences(raw.strip()))
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        span = _outer_json_span(cleaned)
        if span is not None and span != cleaned:
            try:
                return json.loads(span)
            except json.JSONDecodeError:
                pass
        raise AIParseError(f"Invalid JSON from AI: {exc}", raw_output=raw) from exc


def _strip_markdown_fences(text: str) -> str:
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", text, re.DOTALL)
    return match.group(1).strip() if match else text


def _fix_trailing_commas(text: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", text)


def _outer_json_span(text: str) -> str | None:
    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    end = max(text.rfind("]"), text.rfind("}"))
    if not starts or end <= min(starts):
        return None
    return text[min(starts):end + 1]


_ACCENTS = str.maketrans({
    "à": "a", "â": "a", "ä": "a",
    "é": "e", "è": "e", "ê": "e", "ë": "e",
    "î": "i", "ï": "i",
    "ô": "o", "ö": "o",
    "ù": "u", "û": "u", "ü": "u",
    "ÿ": "y",
    "ç": "c",
})


def normalize_property_name(name: str) -> str:
    """Normalize a field or property name to a safe ASCII identifier.

    Examples:
        quantité -> quantite
        Type de pièce -> type_de_piece
        diamètre-trou -> diametre_trou
    """
    result = name.lower().strip().translate(_ACCENTS)
    result = result.replace("æ", "ae").replace("œ", "oe")
    result = re.sub(r"[\s-]+", "_", result)
    result = re.sub(r"[^a-z0-9_]", "", result)
    result = re.sub(r"_+", "_", result)
    return result.strip("_")
