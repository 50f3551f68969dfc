"""Shared fixtures: OCR pages and an extraction client with a mocked session."""
import json
from unittest.mock import Mock

import pytest

from cert_highlighter.config import Settings
from cert_highlighter.models import OcrPage, OcrWord
from cert_highlighter.structurer import FieldExtractionClient


def make_word(content, x, y, width=50, height=20):
    return OcrWord(
        content=content,
        polygon=[x, y, x + width, y, x + width, y + height, x, y + height],
    )


def make_fields(**categories):
    fields = {"name": [], "dateOfBirth": [], "address": [], "causeOfDeath": []}
    fields.update(categories)
    return fields


AZURE_RESULT = {
    "status": "succeeded",
    "analyzeResult": {
        "pages": [
            {
                "pageNumber": 1,
                "width": 200,
                "height": 400,
                "unit": "pixel",
                "words": [
                    {"content": "JOHN", "polygon": [10, 20, 60, 20, 60, 40, 10, 40], "confidence": 0.99},
                    {"content": "DOE", "polygon": [70, 20, 110, 20, 110, 40, 70, 40], "confidence": 0.98},
                ],
            },
            {"pageNumber": 2, "width": 200, "height": 400, "words": []},
        ]
    },
}


def chat_response(content):
    """Mock of a successful chat-completions HTTP response."""
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    return response


@pytest.fixture
def settings(tmp_path):
    return Settings(api_key="test-key", upload_dir=tmp_path)


@pytest.fixture
def make_client(settings):
    """Build a client whose session answers with the given raw model text."""

    def _make(content, **overrides):
        session = Mock()
        if isinstance(content, (dict, list)):
            content = json.dumps(content)
        session.post.return_value = chat_response(content)
        return FieldExtractionClient(settings.model_copy(update=overrides), session=session)

    return _make


@pytest.fixture
def certificate_page():
    """A small certificate: name, birth date, address and cause of death."""
    return OcrPage(
        width=1000,
        height=800,
        words=[
            make_word("Name:", 10, 20),
            make_word("JOHN", 70, 20),
            make_word("DOE", 130, 20),
            make_word("Born:", 10, 60),
            make_word("01/02/1950", 70, 60, width=100),
            make_word("Address:", 10, 100, width=60),
            make_word("12", 80, 100, width=20),
            make_word("Elm", 110, 100, width=30),
            make_word("Street", 150, 100),
            make_word("Cause:", 10, 140),
            make_word("Pneumonia", 70, 140, width=90),
        ],
    )
