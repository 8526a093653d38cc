"""Validation and normalization of untrusted model output.

validate() turns a RawPlayerDecision into a canonical Decision. Rules run in
order and the first failure wins:

  1. prompt present and non-empty             else ValidationError("missing prompt")
  2. options present, at least one            else ValidationError("no options")
  3. options with empty text are dropped (a warning is attached);
     none left                                 ->  ValidationError("all options invalid")
  4. confidence clamped to [0, 1]; absent or non-numeric -> 0.5
  5. traits / potential outcomes default to empty
  6. unknown importance -> "moderate", unknown pacing -> "medium"
  7. decision id: the payload's own id unless empty or already taken,
     else a fresh uuid4 token

The model is a noisy collaborator: out-of-range numbers are clamped, never
rejected. Only structurally missing text fails validation.

validate_update() turns raw tagged fields into a NarrativeUpdate and never
fails.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Container, Mapping
from typing import Any

from boot_hill.errors import ValidationError
from boot_hill.models import (
    IMPORTANCE_LEVELS,
    PACING_LEVELS,
    Decision,
    DecisionMetadata,
    DecisionOption,
    NarrativeUpdate,
    RawDecisionOption,
    RawPlayerDecision,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
DEFAULT_RELEVANCE = 0.5


def _clean_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _clamp_unit(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(0.0, min(1.0, number))


def _str_tuple(value: Any, dedupe: bool = False) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    items = [s for s in (_clean_str(v) for v in value) if s]
    if dedupe:
        items = list(dict.fromkeys(items))
    return tuple(items)


def _pick(value: Any, allowed: tuple[str, ...], default: str) -> str:
    text = _clean_str(value).lower()
    return text if text in allowed else default


def _new_decision_id() -> str:
    return f"decision-{uuid.uuid4().hex}"


def _decision_id(raw: RawPlayerDecision, taken_ids: Container[str]) -> str:
    candidate = _clean_str(raw.decision_id)
    if candidate and candidate not in taken_ids:
        return candidate
    if candidate:
        logger.debug("Decision id %r already in use, assigning a fresh one", candidate)
    return _new_decision_id()


def _trim_options(options: list[DecisionOption], max_options: int) -> list[DecisionOption]:
    """Keep the max_options most confident options, in their original order."""
    if len(options) <= max_options:
        return options
    ranked = sorted(range(len(options)), key=lambda i: options[i].confidence, reverse=True)
    keep = set(ranked[:max_options])
    return [opt for i, opt in enumerate(options) if i in keep]


def _normalize_option(
    raw: RawDecisionOption, decision_id: str, position: int, seen_ids: set[str]
) -> DecisionOption:
    option_id = _clean_str(raw.id)
    if not option_id or option_id in seen_ids:
        option_id = f"{decision_id}-option-{position}"
        while option_id in seen_ids:
            position += 1
            option_id = f"{decision_id}-option-{position}"
    seen_ids.add(option_id)
    return DecisionOption(
        id=option_id,
        text=_clean_str(raw.text),
        confidence=_clamp_unit(raw.confidence, DEFAULT_CONFIDENCE),
        traits=_str_tuple(raw.traits, dedupe=True),
        potential_outcomes=_str_tuple(raw.potential_outcomes),
        impact=_clean_str(raw.impact),
    )


def validate(
    raw: RawPlayerDecision,
    *,
    max_options: int = 4,
    taken_ids: Container[str] = (),
) -> Decision:
    """Build a canonical Decision from a raw one, or raise ValidationError."""
    prompt = _clean_str(raw.prompt)
    if not prompt:
        raise ValidationError("missing prompt")
    if not raw.options:
        raise ValidationError("no options")

    decision_id = _decision_id(raw, taken_ids)
    warnings: list[str] = []
    options: list[DecisionOption] = []
    seen_ids: set[str] = set()

    for position, raw_option in enumerate(raw.options, start=1):
        if not _clean_str(raw_option.text):
            warnings.append(f"dropped option {position}: empty text")
            logger.warning("Decision %s: dropped option %d with empty text", decision_id, position)
            continue
        options.append(_normalize_option(raw_option, decision_id, position, seen_ids))

    if not options:
        raise ValidationError("all options invalid")

    if len(options) > max_options:
        warnings.append(f"trimmed {len(options) - max_options} low-confidence option(s)")
        options = _trim_options(options, max_options)

    meta = raw.metadata or {}
    importance = meta.get("importance", raw.importance)
    metadata = DecisionMetadata(
        narrative_impact=_clean_str(meta.get("narrativeImpact", meta.get("narrative_impact")))
        or _clean_str(raw.context),
        theme_alignment=_clean_str(meta.get("themeAlignment", meta.get("theme_alignment"))),
        pacing=_pick(meta.get("pacing"), PACING_LEVELS, "medium"),
        importance=_pick(importance, IMPORTANCE_LEVELS, "moderate"),
    )

    return Decision(
        decision_id=decision_id,
        prompt=prompt,
        options=tuple(options),
        relevance_score=_clamp_unit(raw.relevance_score, DEFAULT_RELEVANCE),
        metadata=metadata,
        warnings=tuple(warnings),
    )


def validate_update(raw: Mapping[str, Any] | None) -> NarrativeUpdate:
    """Build a NarrativeUpdate from raw tagged fields. Never fails."""
    raw = raw or {}
    location = _clean_str(raw.get("location")) or None
    opponent = _clean_str(raw.get("combat")) or None
    return NarrativeUpdate(
        location_change=location,
        acquired_items=_str_tuple(raw.get("acquired_items")),
        removed_items=_str_tuple(raw.get("removed_items")),
        combat_triggered=opponent is not None,
        opponent=opponent,
        suggested_actions=_str_tuple(raw.get("suggested_actions")),
    )
