"""Tagged-line field extraction from narrative prose.

The narrator model embeds game-state deltas in its prose as tagged lines:

    The bartender slides a bottle across the counter.
    LOCATION: SALOON
    ACQUIRED_ITEMS: [whiskey bottle, room key]
    SUGGESTED_ACTIONS: [
      "Ask about the sheriff",
      "Head upstairs"
    ]

Tags are described by a small grammar table (TAG_GRAMMAR): each row maps a
keyword to the raw field it fills and the shape of its value. The shape
decides both where the value ends and how it is tokenized:

    text        — up to end-of-line or the next tag, trimmed
    list        — a bracketed list (may span lines) or a bare comma line
    block_list  — a bracketed list that may span lines; JSON array of
                  strings or {"text": ...} objects, else comma/newline split
    flag_text   — like text; its presence is itself the signal

Adding a tag is a new row in the table. Extraction never fails on absent
fields. A field whose bracket never closes produces a ParsingError for that
field only; the other fields still populate.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from boot_hill.diagnostics import ExtractionLog
from boot_hill.errors import ParsingError
from boot_hill.models import NarrativeUpdate
from boot_hill.pipeline.validator import validate_update

logger = logging.getLogger(__name__)

TagShape = Literal["text", "list", "block_list", "flag_text"]


@dataclass(frozen=True)
class TagRule:
    tag: str
    field: str
    shape: TagShape


TAG_GRAMMAR: tuple[TagRule, ...] = (
    TagRule("LOCATION", "location", "text"),
    TagRule("ACQUIRED_ITEMS", "acquired_items", "list"),
    TagRule("REMOVED_ITEMS", "removed_items", "list"),
    TagRule("SUGGESTED_ACTIONS", "suggested_actions", "block_list"),
    TagRule("COMBAT", "combat", "flag_text"),
)

_SENTINEL = "\x00"


# ---------------------------------------------------------------------------
# Value parsers, one per shape. None means "tag present, value absent".
# ---------------------------------------------------------------------------

def _unquote(item: str) -> str:
    item = item.strip()
    if len(item) >= 2 and item[0] == item[-1] and item[0] in "\"'":
        item = item[1:-1].strip()
    return item


def _parse_text(value: str) -> str | None:
    return value.strip() or None


def _parse_list(value: str) -> list[str] | None:
    if not value.strip():
        return None
    return [item for item in (_unquote(part) for part in value.split(",")) if item]


def _parse_block_list(value: str) -> list[str] | None:
    if not value.strip():
        return None
    try:
        data = json.loads(f"[{value}]")
    except json.JSONDecodeError:
        parts = re.split(r"[,\n]", value)
        return [item for item in (_unquote(p) for p in parts) if item]

    actions: list[str] = []
    for entry in data:
        if isinstance(entry, dict):
            entry = entry.get("text", "")
        text = str(entry).strip() if entry is not None else ""
        if text:
            actions.append(text)
    return actions


_SHAPE_PARSERS: dict[str, Callable[[str], Any]] = {
    "text": _parse_text,
    "list": _parse_list,
    "block_list": _parse_block_list,
    "flag_text": _parse_text,
}


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

@dataclass
class TagScan:
    """Result of one pass over a text: raw fields, matched spans, errors."""

    fields: dict[str, Any] = field(default_factory=dict)
    spans: list[tuple[int, int]] = field(default_factory=list)
    errors: list[ParsingError] = field(default_factory=list)


def _tag_pattern(grammar: tuple[TagRule, ...]) -> re.Pattern[str]:
    keywords = sorted((rule.tag for rule in grammar), key=len, reverse=True)
    return re.compile(r"(?<!\w)(" + "|".join(re.escape(k) for k in keywords) + r"):")


def _find_closing(text: str, open_idx: int, quote_aware: bool) -> int | None:
    """Index of the bracket closing text[open_idx], or None if unterminated."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(open_idx, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if quote_aware and ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return None


def _read_value(
    text: str, start: int, rule: TagRule, next_tag: int
) -> tuple[str, int, str | None]:
    """Return (raw value, span end, error reason) for a tag whose colon ends at start."""
    line_end = text.find("\n", start)
    if line_end == -1:
        line_end = len(text)
    stop = min(line_end, next_tag)

    if rule.shape in ("list", "block_list"):
        i = start
        while i < stop and text[i] in " \t":
            i += 1
        if i < len(text) and text[i] == "[":
            close = _find_closing(text, i, quote_aware=rule.shape == "block_list")
            if close is None:
                return "", line_end, "unterminated bracketed list"
            return text[i + 1:close], close + 1, None

    return text[start:stop], stop, None


def scan_tags(text: str, grammar: tuple[TagRule, ...] = TAG_GRAMMAR) -> TagScan:
    """Find every tagged field in text.

    Text-shaped fields keep the first occurrence; list-shaped fields
    concatenate repeated tags in order. Tag keywords that appear inside
    another tag's bracketed value are part of that value.
    """
    scan = TagScan()
    if not text:
        return scan

    rules = {rule.tag: rule for rule in grammar}
    matches = list(_tag_pattern(grammar).finditer(text))
    consumed_to = 0

    for idx, match in enumerate(matches):
        if match.start() < consumed_to:
            continue
        rule = rules[match.group(1)]
        next_tag = next(
            (m.start() for m in matches[idx + 1:] if m.start() >= match.end()),
            len(text),
        )
        value, end, error = _read_value(text, match.end(), rule, next_tag)
        scan.spans.append((match.start(), end))
        consumed_to = end

        if error:
            scan.errors.append(ParsingError(error, field=rule.field))
            continue

        parsed = _SHAPE_PARSERS[rule.shape](value)
        if parsed is None:
            continue
        if isinstance(parsed, list):
            scan.fields.setdefault(rule.field, []).extend(parsed)
        else:
            scan.fields.setdefault(rule.field, parsed)

    return scan


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_fields(text: str, log: ExtractionLog | None = None) -> NarrativeUpdate:
    """Extract the tagged game-state deltas from text.

    Malformed fields are reported (logger warning + the optional scoped log)
    and left at their defaults.
    """
    scan = scan_tags(text or "")
    for error in scan.errors:
        logger.warning("Malformed tagged field %s: %s", error.field, error.reason)
        if log is not None:
            log.record_error(error, text)
    return validate_update(scan.fields)


def _tidy(text: str) -> str:
    lines: list[str] = []
    for raw_line in text.split("\n"):
        if _SENTINEL in raw_line:
            raw_line = raw_line.replace(_SENTINEL, "")
            if not raw_line.strip():
                continue  # the line held nothing but metadata
        line = re.sub(r"[ \t]{2,}", " ", raw_line).strip()
        if not line and (not lines or not lines[-1]):
            continue
        lines.append(line)
    return "\n".join(lines).strip()


def strip_metadata(text: str, log: ExtractionLog | None = None) -> str:
    """Remove every recognized tagged field from text, leaving story prose.

    Idempotent: strip_metadata(strip_metadata(t)) == strip_metadata(t).
    """
    if not text:
        return ""
    scan = scan_tags(text)
    pieces: list[str] = []
    cursor = 0
    for start, end in scan.spans:
        pieces.append(text[cursor:start])
        pieces.append(_SENTINEL)
        cursor = end
    pieces.append(text[cursor:])
    cleaned = _tidy("".join(pieces))
    if log is not None:
        log.record_strip(text, cleaned)
    return cleaned
