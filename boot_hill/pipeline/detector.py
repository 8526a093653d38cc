"""Decision-point detection.

Decides *when* to surface a decision to the player. The decision is a pure
function of three signals:

  - time since the last decision (cooldown; enforced even at high relevance)
  - cumulative relevance of the story beats since the last decision
    (crossing the threshold triggers generation)
  - an explicit override flag set by story events (beats the cooldown)

The detector also carries the single-flight state machine:

    IDLE ──cooldown expires / override──▶ ELIGIBLE ──begin_request()──▶ REQUESTED
      ▲                                                                    │
      └───────────────────────finish_request()─────────────────────────────┘

While REQUESTED no second generation may start.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from boot_hill.config import DecisionConfig
from boot_hill.models import DecisionHistoryEntry
from boot_hill.pipeline.history import history_relevance

logger = logging.getLogger(__name__)

ACTION_WORDS = ("shot", "shoot", "punch", "fight", "chase", "attack", "defend", "dodge", "draw")
DIALOGUE_MARKS = ('"', "“", "”")

# Score contributions; the total is clamped to [0, 1]
BEAT_PROGRESS = 0.05
BEAT_PROGRESS_CAP = 0.3
DIALOGUE_BONUS = 0.15
QUESTION_BONUS = 0.1
ACTION_PENALTY = 0.1
BEAT_TYPE_SCORES = {"decision": 0.3, "dialogue": 0.15, "action": -0.2, "combat": -0.2}
LOCATION_CHANGE_BONUS = 0.2
HISTORY_ECHO_WEIGHT = 0.2


class DetectorState(str, Enum):
    IDLE = "idle"
    ELIGIBLE = "eligible"
    REQUESTED = "requested"


class DecisionContext(BaseModel):
    """Narrative and game context the detector and prompt builder read."""

    story_beats: list[str] = Field(default_factory=list)  # since last decision, oldest first
    current_beat_type: str | None = None  # "decision" | "dialogue" | "action" | ...
    location: str | None = None
    location_changed: bool = False
    tags: list[str] = Field(default_factory=list)
    character_traits: list[str] = Field(default_factory=list)
    force: bool = False


@dataclass(frozen=True)
class Detection:
    should_generate: bool
    score: float
    reason: str


def beat_score(beat: str) -> float:
    """Relevance contribution of a single story beat."""
    lowered = beat.lower()
    score = BEAT_PROGRESS
    if any(mark in beat for mark in DIALOGUE_MARKS):
        score += DIALOGUE_BONUS
    if "?" in beat:
        score += QUESTION_BONUS
    if any(word in lowered for word in ACTION_WORDS):
        score -= ACTION_PENALTY
    return score


def relevance_signal(
    context: DecisionContext, history: Iterable[DecisionHistoryEntry] = ()
) -> float:
    """Cumulative relevance of the beats since the last decision, in [0, 1]."""
    beats = [b for b in context.story_beats if b and b.strip()]
    progress = min(BEAT_PROGRESS_CAP, BEAT_PROGRESS * len(beats))
    content = sum(beat_score(b) - BEAT_PROGRESS for b in beats)
    score = progress + content
    if context.current_beat_type:
        score += BEAT_TYPE_SCORES.get(context.current_beat_type.lower(), 0.0)
    if context.location_changed:
        score += LOCATION_CHANGE_BONUS
    if context.tags:
        score += HISTORY_ECHO_WEIGHT * history_relevance(history, context.tags)
    return max(0.0, min(1.0, score))


class DecisionDetector:
    """Cooldown / threshold / override policy plus single-flight state.

    Cooldown readings and the last-decision stamp both come from `clock`.
    """

    def __init__(
        self,
        config: DecisionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or DecisionConfig()
        self._clock = clock
        self._last_decision_at: float | None = None
        self._in_flight = False

    @property
    def last_decision_at(self) -> float | None:
        return self._last_decision_at

    def cooldown_remaining(self, now: float | None = None) -> float:
        if self._last_decision_at is None:
            return 0.0
        now = self._clock() if now is None else now
        elapsed = now - self._last_decision_at
        return max(0.0, self.config.min_decision_interval - elapsed)

    def state(self, context: DecisionContext | None = None) -> DetectorState:
        if self._in_flight:
            return DetectorState.REQUESTED
        if context is not None and context.force:
            return DetectorState.ELIGIBLE
        if self.cooldown_remaining() <= 0:
            return DetectorState.ELIGIBLE
        return DetectorState.IDLE

    def evaluate(
        self,
        context: DecisionContext,
        history: Iterable[DecisionHistoryEntry] = (),
    ) -> Detection:
        """Score the context and decide. No side effects."""
        if self._in_flight:
            return Detection(False, 0.0, "Decision generation already in progress")
        if context.force:
            return Detection(True, 1.0, "Story event forced a decision point")

        remaining = self.cooldown_remaining()
        if remaining > 0:
            return Detection(False, 0.0, f"Too soon since last decision ({remaining:.1f}s left)")

        score = relevance_signal(context, history)
        if score >= self.config.relevance_threshold:
            return Detection(True, score, f"Narrative context indicates decision point (score: {score:.2f})")
        return Detection(False, score, f"Decision threshold not met (score: {score:.2f})")

    def should_generate_decision(
        self,
        context: DecisionContext,
        history: Iterable[DecisionHistoryEntry] = (),
    ) -> bool:
        return self.evaluate(context, history).should_generate

    # ------------------------------------------------------------------
    # Single-flight transitions (driven by the decision service)
    # ------------------------------------------------------------------

    def begin_request(self) -> None:
        if self._in_flight:
            raise RuntimeError("A decision generation is already in flight")
        self._in_flight = True

    def finish_request(self, succeeded: bool) -> None:
        self._in_flight = False
        if succeeded:
            self._last_decision_at = self._clock()
        logger.debug("decision request finished succeeded=%s", succeeded)
