"""Handlebars prompt rendering for decision generation.

Prompt content is not part of the pipeline contract: the templates below are
defaults, and DecisionService accepts any prompt builder. The rendered
prompt is a list of chat messages ({"role", "content"}).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import pybars

from boot_hill.models import DecisionHistoryEntry
from boot_hill.pipeline.detector import DecisionContext

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

ChatMessage = dict[str, str]


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    n = int(count)
    if n <= 0:
        return result
    for item in list(items)[-n:]:
        result.extend(options["fn"](item))
    return result


def _helper_join(this, items, separator=", "):
    """{{join array "; "}} — join a list into one string."""
    return separator.join(str(i) for i in (items or []))


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Decision prompt ──────────────────────────────────────

SYSTEM_TEMPLATE = """\
You are the game master for a western-themed RPG called Boot Hill. Generate a \
contextually appropriate decision point for the player. The decision should \
feel natural in the western setting, offer {{{min_options}}}-{{{max_options}}} \
distinct and meaningful options, and connect to the character and the story so far.

Respond with a single JSON object:
{
  "decisionId": "unique-id",
  "prompt": "The decision prompt text to show the player",
  "options": [
    {
      "id": "option-1",
      "text": "Option text to display",
      "confidence": 0.8,
      "traits": ["brave", "quick"],
      "potentialOutcomes": ["Might lead to a gunfight"],
      "impact": "Brief description of impact"
    }
  ],
  "relevanceScore": 0.9,
  "metadata": {
    "narrativeImpact": "Description of narrative impact",
    "themeAlignment": "How well it fits the western theme",
    "pacing": "slow|medium|fast",
    "importance": "critical|significant|moderate|minor"
  }
}"""

USER_TEMPLATE = """\
NARRATIVE CONTEXT:
{{#each beats}}{{{this}}}
{{/each}}
CHARACTER TRAITS: {{{join traits ", "}}}
LOCATION: {{#if location}}{{{location}}}{{else}}Unknown{{/if}}
{{#if decisions}}
PREVIOUS DECISIONS:
{{#last decisions history_limit}}- Chose {{{selected_option_id}}}: {{{narrative}}}{{#if impact_description}} ({{{impact_description}}}){{/if}}
{{/last}}{{/if}}
Remember to maintain the western theme and appropriate tone."""


def build_prompt_context(
    context: DecisionContext,
    history: Iterable[DecisionHistoryEntry] = (),
    max_options: int = 4,
    history_limit: int = 5,
) -> dict[str, Any]:
    """Assemble template variables from the decision context and history."""
    return {
        "beats": [b.strip() for b in context.story_beats if b and b.strip()],
        "traits": list(context.character_traits),
        "location": context.location or "",
        "decisions": [e.model_dump(mode="json") for e in history],
        "history_limit": history_limit,
        "min_options": min(2, max_options),
        "max_options": max_options,
    }


def build_decision_prompt(
    context: DecisionContext,
    history: Iterable[DecisionHistoryEntry] = (),
    max_options: int = 4,
    history_limit: int = 5,
) -> list[ChatMessage]:
    """Render the default system + user messages for a decision request."""
    variables = build_prompt_context(context, history, max_options, history_limit)
    return [
        {"role": "system", "content": render_prompt(SYSTEM_TEMPLATE, variables)},
        {"role": "user", "content": render_prompt(USER_TEMPLATE, variables).strip()},
    ]
