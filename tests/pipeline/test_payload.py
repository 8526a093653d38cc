"""Tests for decision payload decoding."""

import json

import pytest

from boot_hill.errors import ParsingError
from boot_hill.llm import chat_response
from boot_hill.pipeline.payload import (
    find_json_object,
    iter_json_objects,
    parse_decision_payload,
    parse_decision_response,
    response_text,
)

PAYLOAD = {
    "decisionId": "d-1",
    "prompt": "The gambler accuses you of cheating. What do you do?",
    "options": [
        {"id": "a", "text": "Draw on him", "confidence": 0.7, "traits": ["brave"]},
        {"id": "b", "text": "Laugh it off", "potentialOutcomes": ["He backs down"]},
    ],
    "relevanceScore": 0.9,
    "metadata": {"importance": "critical"},
}


def test_bare_object() -> None:
    raw = parse_decision_payload(json.dumps(PAYLOAD))
    assert raw.decision_id == "d-1"
    assert raw.prompt.startswith("The gambler")
    assert raw.options[0].traits == ["brave"]
    assert raw.options[1].potential_outcomes == ["He backs down"]
    assert raw.relevance_score == 0.9


def test_fenced_object() -> None:
    raw = parse_decision_payload(f"```json\n{json.dumps(PAYLOAD)}\n```")
    assert raw.decision_id == "d-1"


def test_object_in_prose() -> None:
    raw = parse_decision_payload(f"Sure, partner! Here it is: {json.dumps(PAYLOAD)} Hope that helps.")
    assert len(raw.options) == 2


def test_skips_unparseable_leading_braces() -> None:
    text = "Use {curly} for emphasis. " + json.dumps(PAYLOAD)
    raw = parse_decision_payload(text)
    assert raw.decision_id == "d-1"


def test_chat_envelope_dict() -> None:
    raw = parse_decision_response(chat_response(json.dumps(PAYLOAD)))
    assert raw.decision_id == "d-1"


def test_chat_envelope_text() -> None:
    raw = parse_decision_payload(json.dumps(chat_response(json.dumps(PAYLOAD))))
    assert raw.decision_id == "d-1"


def test_decision_key_wrapper() -> None:
    raw = parse_decision_response({"decision": PAYLOAD})
    assert raw.decision_id == "d-1"


def test_alternate_key_spellings() -> None:
    raw = parse_decision_response({"id": "x", "prompt": "p", "options": [{"text": "t", "tags": ["sly"]}]})
    assert raw.decision_id == "x"
    assert raw.options[0].traits == ["sly"]


def test_non_object_options_become_empty() -> None:
    raw = parse_decision_response({"prompt": "p", "options": ["just text", {"text": "real"}]})
    assert raw.options[0].text is None
    assert raw.options[1].text == "real"


def test_options_not_a_list_is_absent() -> None:
    assert parse_decision_response({"prompt": "p", "options": "none"}).options is None


@pytest.mark.parametrize(
    ("body", "reason"),
    [
        ("", "empty response"),
        ("   ", "empty response"),
        ("No decision today.", "no JSON object found"),
        ('{"prompt": "Draw?",}', "malformed JSON"),
        ('{"prompt": "Draw?"', "malformed JSON: unbalanced braces"),
    ],
)
def test_parse_errors_name_reason(body: str, reason: str) -> None:
    with pytest.raises(ParsingError, match=reason):
        parse_decision_payload(body)


def test_empty_choices_raises() -> None:
    with pytest.raises(ParsingError, match="no choices"):
        parse_decision_response({"choices": []})


def test_choice_without_content_raises() -> None:
    with pytest.raises(ParsingError, match="no message content"):
        parse_decision_response({"choices": [{"message": {"role": "assistant"}}]})


def test_iter_json_objects_ignores_braces_in_strings() -> None:
    text = 'a {"x": "}"} b {"y": 1} c {unclosed'
    assert list(iter_json_objects(text)) == ['{"x": "}"}', '{"y": 1}']
    assert find_json_object("none here") is None


def test_response_text() -> None:
    assert response_text(chat_response("LOCATION: Bank")) == "LOCATION: Bank"
    assert response_text("raw") == "raw"
    assert response_text({"choices": []}) == ""
    assert response_text(None) == ""
