from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from .config import Settings
from .models import ExtractionStatus, FieldCategory, FieldExtraction, ParsedFields

logger = logging.getLogger(__name__)

_FIELD_ITEM_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "word": {"type": "string"},
            "coordinate": {
                "type": "array",
                "items": {"type": "number"},
                "minItems": 2,
                "maxItems": 2,
            },
            "groupId": {"type": "integer"},
        },
        "required": ["word", "coordinate", "groupId"],
        "additionalProperties": False,
    },
}

FIELDS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {category.value: _FIELD_ITEM_SCHEMA for category in FieldCategory},
    "required": [category.value for category in FieldCategory],
    "additionalProperties": False,
}

SYSTEM_PROMPT = """You are extracting fields from death certificate OCR.

OCR input format is one word per line:
text:x, y
where x,y is the top-left coordinate for that OCR word.

Return JSON with these fields as lists:
- name
- dateOfBirth
- address
- causeOfDeath

Each list item must have:
- word: string (EXACTLY ONE word)
- coordinate: [x, y] for that word
- groupId: integer

CRITICAL RULES:
1. Each word and coordinate pair must exactly match a line of the OCR input
2. Words that together form one value (for example a first and last name) share the same groupId
3. Different values of the same field use different groupIds
4. If no matches are found for a field, return [] (never null, never omit the field)"""


def build_user_prompt(ocr_line_text: str) -> str:
    return f"""OCR:
{ocr_line_text}

Return compact JSON only."""


class FieldExtractionClient:
    """Calls the structured-extraction model and validates its answer.

    Every failure mode (missing key, transport error, empty text, invalid
    JSON, schema mismatch) is reported as a ``FieldExtraction`` without
    fields; nothing is raised to the caller.
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    def extract(self, ocr_line_text: str) -> FieldExtraction:
        if not self.settings.api_key:
            logger.warning("GROQ_API_KEY not configured; returning empty field set")
            return FieldExtraction(status=ExtractionStatus.NOT_CONFIGURED)

        content = self._request(ocr_line_text)
        if content is None:
            return FieldExtraction(status=ExtractionStatus.REQUEST_FAILED)
        return parse_fields(content)

    def _request(self, ocr_line_text: str) -> Optional[str]:
        payload = {
            "model": self.settings.model,
            "temperature": self.settings.temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "certificate_fields",
                    "strict": True,
                    "schema": FIELDS_SCHEMA,
                },
            },
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(ocr_line_text)},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self.session.post(
                self.settings.endpoint,
                headers=headers,
                json=payload,
                timeout=self.settings.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.HTTPError as exc:
            logger.error(
                "Extraction HTTP error: %s - Response: %s",
                exc,
                exc.response.text if exc.response is not None else "No response",
            )
            return None
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.error("Extraction request failed: %s", exc)
            return None

        try:
            content = body["choices"][0]["message"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            logger.error("Extraction response has no message content")
            return None

        if content is None:
            return ""
        if not isinstance(content, str):
            logger.error("Extraction message content is %s, expected text", type(content).__name__)
            return None
        return content


def parse_fields(content: Optional[str]) -> FieldExtraction:
    """All-or-nothing validation of the raw model text."""
    if not content or not content.strip():
        logger.warning("Extraction model returned no text")
        return FieldExtraction(status=ExtractionStatus.EMPTY_RESPONSE, raw_text=content)

    logger.debug("Extraction model response: %s", content)
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.warning("Unable to parse extraction response as JSON: %s", exc)
        return FieldExtraction(status=ExtractionStatus.INVALID_JSON, raw_text=content)

    try:
        fields = ParsedFields.model_validate(data)
    except ValidationError as exc:
        logger.warning("Extraction response failed schema validation: %s", exc.errors())
        return FieldExtraction(status=ExtractionStatus.SCHEMA_MISMATCH, raw_text=content)

    return FieldExtraction(status=ExtractionStatus.OK, fields=fields, raw_text=content)
