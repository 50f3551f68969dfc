"""Tests for cert_highlighter/structurer.py

The extraction endpoint is never contacted: the client's session is a Mock.
"""
import json
from unittest.mock import Mock

import pytest
import requests

from cert_highlighter.models import ExtractionStatus, FieldCategory
from cert_highlighter.structurer import FIELDS_SCHEMA, FieldExtractionClient, parse_fields

from conftest import make_fields


VALID_RESPONSE = make_fields(
    name=[
        {"word": "JOHN", "coordinate": [70, 20], "groupId": 1},
        {"word": "DOE", "coordinate": [130, 20], "groupId": 1},
    ]
)


# --- Response validation ---

class TestParseFields:
    """Tests for the all-or-nothing validation gate."""

    def test_valid_response(self):
        extraction = parse_fields(json.dumps(VALID_RESPONSE))
        assert extraction.status is ExtractionStatus.OK
        assert extraction.succeeded
        assert [item.word for item in extraction.fields.name] == ["JOHN", "DOE"]
        assert extraction.fields.name[1].coordinate == (130, 20)

    def test_float_coordinates_accepted(self):
        payload = make_fields(address=[{"word": "Elm", "coordinate": [110.5, 100.25], "groupId": 2}])
        extraction = parse_fields(json.dumps(payload))
        assert extraction.fields.address[0].coordinate == (110.5, 100.25)

    @pytest.mark.parametrize("content", [None, "", "   "])
    def test_empty_response(self, content):
        extraction = parse_fields(content)
        assert extraction.status is ExtractionStatus.EMPTY_RESPONSE
        assert extraction.fields is None
        assert not extraction.succeeded

    def test_invalid_json(self):
        extraction = parse_fields('{"name": [')
        assert extraction.status is ExtractionStatus.INVALID_JSON
        assert extraction.fields is None

    def test_missing_category(self):
        payload = dict(VALID_RESPONSE)
        del payload["causeOfDeath"]
        assert parse_fields(json.dumps(payload)).status is ExtractionStatus.SCHEMA_MISMATCH

    def test_null_category(self):
        payload = make_fields(address=None)
        assert parse_fields(json.dumps(payload)).status is ExtractionStatus.SCHEMA_MISMATCH

    @pytest.mark.parametrize(
        "item",
        [
            {"word": "DOE", "coordinate": [10], "groupId": 1},
            {"word": "DOE", "coordinate": [10, 20, 30], "groupId": 1},
            {"word": "DOE", "coordinate": ["10", "20"], "groupId": 1},
            {"word": 7, "coordinate": [10, 20], "groupId": 1},
            {"word": "DOE", "coordinate": [10, 20], "groupId": "1"},
            {"word": "DOE", "coordinate": [10, 20], "groupId": 1.5},
            {"word": "DOE", "coordinate": [10, 20], "groupId": True},
            {"word": "DOE", "coordinate": [10, 20]},
        ],
    )
    def test_malformed_item_rejects_whole_response(self, item):
        payload = make_fields(
            name=[{"word": "JOHN", "coordinate": [70, 20], "groupId": 1}, item],
        )
        extraction = parse_fields(json.dumps(payload))
        assert extraction.status is ExtractionStatus.SCHEMA_MISMATCH
        assert extraction.fields is None

    def test_top_level_array_rejected(self):
        assert parse_fields("[]").status is ExtractionStatus.SCHEMA_MISMATCH

    def test_integral_float_group_id_accepted(self):
        payload = make_fields(name=[{"word": "DOE", "coordinate": [10, 20], "groupId": 1.0}])
        extraction = parse_fields(json.dumps(payload))
        assert extraction.status is ExtractionStatus.OK
        group_id = extraction.fields.name[0].groupId
        assert group_id == 1 and isinstance(group_id, int)

    def test_deeply_nested_json(self):
        extraction = parse_fields("[" * 100000)
        assert extraction.status is ExtractionStatus.INVALID_JSON
        assert extraction.fields is None


# --- Request contract ---

class TestFieldsSchema:
    """Tests for the JSON schema sent to the model."""

    def test_requires_every_category(self):
        assert FIELDS_SCHEMA["required"] == [category.value for category in FieldCategory]
        assert set(FIELDS_SCHEMA["properties"]) == {"name", "dateOfBirth", "address", "causeOfDeath"}

    def test_item_shape(self):
        item = FIELDS_SCHEMA["properties"]["name"]["items"]
        assert item["required"] == ["word", "coordinate", "groupId"]
        assert item["properties"]["coordinate"]["minItems"] == 2
        assert item["properties"]["coordinate"]["maxItems"] == 2


class TestFieldExtractionClient:
    """Tests for the HTTP exchange with the extraction model."""

    def test_sends_strict_schema_and_ocr_text(self, make_client):
        client = make_client(VALID_RESPONSE)
        extraction = client.extract("JOHN:70, 20\nDOE:130, 20")

        assert extraction.status is ExtractionStatus.OK
        call = client.session.post.call_args
        assert call.args[0] == client.settings.endpoint
        assert call.kwargs["timeout"] == client.settings.timeout
        assert call.kwargs["headers"]["Authorization"] == "Bearer test-key"
        payload = call.kwargs["json"]
        assert payload["model"] == client.settings.model
        assert payload["response_format"]["type"] == "json_schema"
        assert payload["response_format"]["json_schema"]["strict"] is True
        assert payload["response_format"]["json_schema"]["schema"] == FIELDS_SCHEMA
        assert "JOHN:70, 20\nDOE:130, 20" in payload["messages"][-1]["content"]

    def test_missing_api_key_skips_request(self, make_client):
        client = make_client(VALID_RESPONSE, api_key=None)
        extraction = client.extract("DOE:10, 20")
        assert extraction.status is ExtractionStatus.NOT_CONFIGURED
        client.session.post.assert_not_called()

    def test_http_error(self, settings):
        response = Mock()
        response.raise_for_status.side_effect = requests.HTTPError(
            "500 Server Error", response=Mock(text="upstream down")
        )
        session = Mock()
        session.post.return_value = response
        client = FieldExtractionClient(settings, session=session)
        assert client.extract("DOE:10, 20").status is ExtractionStatus.REQUEST_FAILED

    def test_timeout(self, settings):
        session = Mock()
        session.post.side_effect = requests.Timeout("timed out")
        client = FieldExtractionClient(settings, session=session)
        extraction = client.extract("DOE:10, 20")
        assert extraction.status is ExtractionStatus.REQUEST_FAILED
        assert extraction.fields is None

    def test_body_without_choices(self, settings):
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = {"error": "nope"}
        session = Mock()
        session.post.return_value = response
        client = FieldExtractionClient(settings, session=session)
        assert client.extract("DOE:10, 20").status is ExtractionStatus.REQUEST_FAILED

    def test_null_message_content_is_empty_response(self, make_client):
        client = make_client(None)
        assert client.extract("DOE:10, 20").status is ExtractionStatus.EMPTY_RESPONSE

    def test_malformed_model_text(self, make_client):
        client = make_client("Sure! Here are the fields: {")
        assert client.extract("DOE:10, 20").status is ExtractionStatus.INVALID_JSON

    def test_content_parts_list_is_request_failure(self, settings):
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = {
            "choices": [{"message": {"content": [{"type": "text", "text": "{}"}]}}]
        }
        session = Mock()
        session.post.return_value = response
        client = FieldExtractionClient(settings, session=session)
        extraction = client.extract("DOE:10, 20")
        assert extraction.status is ExtractionStatus.REQUEST_FAILED
        assert extraction.fields is None
