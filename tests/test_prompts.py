"""Tests for Handlebars prompt rendering: template compilation, custom helpers
(last, join), decision prompt assembly, and error handling."""

from datetime import datetime, timezone

import pytest

from boot_hill.models import DecisionHistoryEntry
from boot_hill.pipeline.detector import DecisionContext
from boot_hill.prompts import PromptError, build_decision_prompt, build_prompt_context, render_prompt


def _entry(n: int) -> DecisionHistoryEntry:
    return DecisionHistoryEntry(
        decision_id=f"d-{n}",
        selected_option_id=f"opt-{n}",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        narrative=f"choice {n}",
    )


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Howdy {{name}}!", {"name": "stranger"}) == "Howdy stranger!"


def test_render_missing_variable():
    assert render_prompt("Howdy {{name}}!", {}) == "Howdy !"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


def test_last_helper():
    tpl = "{{#last items 2}}{{this}} {{/last}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c"]}) == "b c "


def test_last_helper_zero():
    assert render_prompt("{{#last items 0}}{{this}}{{/last}}", {"items": ["a"]}) == ""


def test_join_helper():
    assert render_prompt('{{join items "; "}}', {"items": ["brave", "sly"]}) == "brave; sly"


# ── decision prompt ──────────────────────────────────────────


def test_build_prompt_context():
    context = DecisionContext(story_beats=["A shot rings out.", "  "], character_traits=["quick"], location="Bank")
    ctx = build_prompt_context(context, [_entry(1)], max_options=3, history_limit=2)
    assert ctx["beats"] == ["A shot rings out."]
    assert ctx["traits"] == ["quick"]
    assert ctx["location"] == "Bank"
    assert ctx["decisions"][0]["decision_id"] == "d-1"
    assert ctx["min_options"] == 2
    assert ctx["max_options"] == 3


def test_decision_prompt_messages():
    context = DecisionContext(story_beats=["The stagecoach halts."], character_traits=["brave", "sly"])
    messages = build_decision_prompt(context, max_options=4)
    assert [m["role"] for m in messages] == ["system", "user"]
    assert "2-4" in messages[0]["content"]
    assert "Boot Hill" in messages[0]["content"]
    user = messages[1]["content"]
    assert "The stagecoach halts." in user
    assert "CHARACTER TRAITS: brave, sly" in user
    assert "LOCATION: Unknown" in user
    assert "PREVIOUS DECISIONS" not in user


def test_decision_prompt_includes_recent_history_only():
    context = DecisionContext(story_beats=["Dawn."], location="Tombstone")
    history = [_entry(n) for n in range(1, 5)]
    user = build_decision_prompt(context, history, history_limit=2)[1]["content"]
    assert "LOCATION: Tombstone" in user
    assert "PREVIOUS DECISIONS" in user
    assert "Chose opt-3: choice 3" in user
    assert "Chose opt-4: choice 4" in user
    assert "opt-2" not in user
