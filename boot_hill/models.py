"""Core domain models.

Canonical entities (Decision, NarrativeUpdate, DecisionHistoryEntry, ...)
are frozen: once the validator or the history manager has built one it is
never mutated. The Raw* shapes are the untrusted intermediate form produced
by the payload parser; every field is optional and loosely typed, and they
never travel past the validator.

Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Pacing = Literal["slow", "medium", "fast"]
Importance = Literal["minor", "moderate", "significant", "critical"]

PACING_LEVELS: tuple[str, ...] = ("slow", "medium", "fast")
IMPORTANCE_LEVELS: tuple[str, ...] = ("minor", "moderate", "significant", "critical")


# ---------------------------------------------------------------------------
# Canonical decision model
# ---------------------------------------------------------------------------

class DecisionOption(BaseModel):
    """One selectable action within a decision."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str = Field(min_length=1)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    traits: tuple[str, ...] = ()
    potential_outcomes: tuple[str, ...] = ()
    impact: str = ""


class DecisionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    narrative_impact: str = ""
    theme_alignment: str = ""
    pacing: Pacing = "medium"
    importance: Importance = "moderate"


class Decision(BaseModel):
    """A validated decision point. Built only by the validator."""

    model_config = ConfigDict(frozen=True)

    decision_id: str
    prompt: str = Field(min_length=1)
    options: tuple[DecisionOption, ...] = Field(min_length=1)
    relevance_score: float = Field(default=0.5, ge=0.0, le=1.0)
    metadata: DecisionMetadata = Field(default_factory=DecisionMetadata)
    warnings: tuple[str, ...] = ()
    created_at: datetime | None = None  # stamped by the service when handed out

    def option(self, option_id: str) -> DecisionOption | None:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None


# ---------------------------------------------------------------------------
# Side-channel game-state deltas
# ---------------------------------------------------------------------------

class NarrativeUpdate(BaseModel):
    """Deltas parsed from tagged lines in narrative prose. All optional."""

    model_config = ConfigDict(frozen=True)

    location_change: str | None = None
    acquired_items: tuple[str, ...] = ()
    removed_items: tuple[str, ...] = ()
    combat_triggered: bool = False
    opponent: str | None = None  # descriptor from the COMBAT: line
    suggested_actions: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return self == NarrativeUpdate()


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class DecisionHistoryEntry(BaseModel):
    """A recorded player choice. Append-only; owned by the history manager."""

    model_config = ConfigDict(frozen=True)

    decision_id: str
    selected_option_id: str
    timestamp: datetime
    narrative: str = ""
    impact_description: str = ""
    tags: tuple[str, ...] = ()
    relevance_score: float = Field(default=0.5, ge=0.0, le=1.0)
    expires_at: datetime | None = None  # minor decisions leave prompt context after this


# ---------------------------------------------------------------------------
# Presentation shape (consumed by the UI via to_player_decision)
# ---------------------------------------------------------------------------

class PlayerDecisionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    impact: str = ""
    tags: tuple[str, ...] = ()


class PlayerDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    prompt: str
    timestamp: datetime | None = None
    options: tuple[PlayerDecisionOption, ...]
    location: str | None = None
    importance: Importance = "moderate"
    context: str = ""
    ai_generated: bool = True


# ---------------------------------------------------------------------------
# Untrusted intermediate shapes
# ---------------------------------------------------------------------------

class RawDecisionOption(BaseModel):
    """An option exactly as the model produced it. Nothing is guaranteed."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Any = None
    text: Any = None
    confidence: Any = None
    traits: Any = Field(default=None, validation_alias=AliasChoices("traits", "tags"))
    potential_outcomes: Any = Field(
        default=None,
        validation_alias=AliasChoices("potentialOutcomes", "potential_outcomes"),
    )
    impact: Any = None


class RawPlayerDecision(BaseModel):
    """A decision exactly as the model produced it. Nothing is guaranteed."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    decision_id: Any = Field(
        default=None, validation_alias=AliasChoices("decisionId", "decision_id", "id")
    )
    prompt: Any = None
    options: list[RawDecisionOption] | None = None
    relevance_score: Any = Field(
        default=None, validation_alias=AliasChoices("relevanceScore", "relevance_score")
    )
    metadata: dict[str, Any] | None = None
    importance: Any = None  # some responses put importance at the top level
    context: Any = None

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        # Non-list option containers are treated as absent; non-object
        # entries become empty options so the validator drops them.
        if not isinstance(value, list):
            return None
        return [item if isinstance(item, dict) else {} for item in value]

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None
