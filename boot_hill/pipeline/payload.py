"""Structural decoding of decision payloads.

The model is asked for a JSON object but what comes back varies: a bare
object, an object wrapped in markdown fences, an object buried in prose, or
a full chat-completion envelope whose message content is itself the JSON.
This module only recovers structure; it never judges content. Everything
ends up in the all-optional RawPlayerDecision shape for the validator.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from boot_hill.errors import ParsingError
from boot_hill.models import RawPlayerDecision

logger = logging.getLogger(__name__)

# An unwrapper takes a decoded object and returns either the inner payload
# (dict or str) or None if the object is not its kind of envelope.
Unwrapper = Callable[[dict[str, Any]], Any]


def unwrap_chat_envelope(data: dict[str, Any]) -> Any:
    """{"choices": [{"message": {"content": "..."}}]} -> content."""
    choices = data.get("choices")
    if not isinstance(choices, list):
        return None
    if not choices or not isinstance(choices[0], dict):
        raise ParsingError("chat response has no choices")
    message = choices[0].get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    # text-completion style choice
    if isinstance(choices[0].get("text"), str):
        return choices[0]["text"]
    raise ParsingError("chat response choice has no message content")


def unwrap_decision_key(data: dict[str, Any]) -> Any:
    """{"decision": {...}} -> the inner object."""
    inner = data.get("decision")
    return inner if isinstance(inner, dict) else None


DEFAULT_UNWRAPPERS: tuple[Unwrapper, ...] = (unwrap_chat_envelope, unwrap_decision_key)


def _strip_fences(text: str) -> str:
    """Remove markdown code fences around a payload."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines[1:] if not line.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()
    return cleaned


def iter_json_objects(text: str):
    """Yield each outermost balanced {...} span in text, left to right.

    Braces inside JSON string literals are ignored. Scanning stops at the
    first brace that never closes.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = None
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end is None:
            return
        yield text[start:end + 1]
        start = text.find("{", end + 1)


def find_json_object(text: str) -> str | None:
    """Return the first outermost balanced {...} span in text, or None."""
    return next(iter_json_objects(text), None)


def _decode_object(body: str) -> dict[str, Any]:
    cleaned = _strip_fences(body)
    if not cleaned:
        raise ParsingError("empty response")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict):
        return data

    last_error: json.JSONDecodeError | None = None
    for span in iter_json_objects(cleaned):
        try:
            data = json.loads(span)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(data, dict):
            return data

    if last_error is not None:
        raise ParsingError(
            f"malformed JSON: {last_error.msg} at position {last_error.pos}"
        ) from last_error
    if "{" in cleaned:
        raise ParsingError("malformed JSON: unbalanced braces")
    raise ParsingError("no JSON object found")


def _unwrap(data: dict[str, Any], unwrappers: tuple[Unwrapper, ...], depth: int = 0) -> dict[str, Any]:
    if depth > 3:
        raise ParsingError("payload nested too deeply")
    for unwrapper in unwrappers:
        inner = unwrapper(data)
        if inner is None:
            continue
        if isinstance(inner, str):
            inner = _decode_object(inner)
        return _unwrap(inner, unwrappers, depth + 1)
    return data


def _to_raw(data: dict[str, Any]) -> RawPlayerDecision:
    try:
        return RawPlayerDecision.model_validate(data)
    except PydanticValidationError as e:
        raise ParsingError(f"unexpected payload structure: {e.error_count()} error(s)") from e


def parse_decision_payload(
    response_body: str,
    unwrappers: tuple[Unwrapper, ...] = DEFAULT_UNWRAPPERS,
) -> RawPlayerDecision:
    """Decode model output text into a RawPlayerDecision.

    Raises ParsingError naming the reason when no object can be decoded.
    """
    if not isinstance(response_body, str):
        raise ParsingError("response body is not text")
    data = _decode_object(response_body)
    return _to_raw(_unwrap(data, unwrappers))


def parse_decision_response(
    response: Any,
    unwrappers: tuple[Unwrapper, ...] = DEFAULT_UNWRAPPERS,
) -> RawPlayerDecision:
    """Like parse_decision_payload, but also accepts an already-decoded object."""
    if isinstance(response, dict):
        return _to_raw(_unwrap(response, unwrappers))
    return parse_decision_payload(response, unwrappers)


def response_text(response: Any) -> str:
    """Best-effort text content of an AI response, for the field extractor."""
    if isinstance(response, str):
        return response
    if isinstance(response, dict):
        try:
            content = unwrap_chat_envelope(response)
        except ParsingError:
            return ""
        if isinstance(content, str):
            return content
    return ""
