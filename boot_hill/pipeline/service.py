"""Decision service: runs one decision generation end-to-end.

Generation flow:
  1. Single-flight check: a generation already outstanding → "busy".
  2. Detector go/no-go (cooldown, relevance threshold, override) → "skipped".
  3. Rate-limit check on the AI client; no quota → "failed" with
     RateLimitError, no network call.
  4. Build the prompt and call the AI client under the configured deadline.
     Timeout, transport failure and abort → "failed" with AIRequestError.
  5. Parse the payload (ParsingError) and validate it (ValidationError).
  6. Stamp the decision, register it as the session's pending decision
     (replacing any earlier one), run the field extractor over the same
     response text, return "generated".

Failures are returned, not raised, and never retried here: retrying a
non-deterministic generator is the caller's call. The detector returns to
IDLE after every outcome; only a generated decision restarts the cooldown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from boot_hill.config import DecisionConfig
from boot_hill.diagnostics import ExtractionLog
from boot_hill.errors import (
    AIRequestError,
    DecisionError,
    ParsingError,
    RateLimitError,
    RecordError,
    ValidationError,
)
from boot_hill.llm import AIClient
from boot_hill.models import (
    Decision,
    DecisionHistoryEntry,
    NarrativeUpdate,
    PlayerDecision,
    PlayerDecisionOption,
)
from boot_hill.pipeline import fields
from boot_hill.pipeline.detector import (
    DecisionContext,
    DecisionDetector,
    Detection,
    DetectorState,
)
from boot_hill.pipeline.history import HistoryManager, new_entry, now_utc
from boot_hill.pipeline.payload import parse_decision_response, response_text
from boot_hill.pipeline.validator import validate
from boot_hill.prompts import PromptError, build_decision_prompt

logger = logging.getLogger(__name__)

GenerationStatus = Literal["generated", "skipped", "busy", "failed"]
PromptBuilder = Callable[..., Any]


@dataclass(frozen=True)
class GenerationResult:
    status: GenerationStatus
    decision: Decision | None = None
    update: NarrativeUpdate | None = None
    detection: Detection | None = None
    error: DecisionError | None = None

    @property
    def ok(self) -> bool:
        return self.status == "generated"


class DecisionService:
    """Coordinates detection, generation, validation and history for one session."""

    def __init__(
        self,
        client: AIClient,
        config: DecisionConfig | None = None,
        history: HistoryManager | None = None,
        detector: DecisionDetector | None = None,
        prompt_builder: PromptBuilder | None = None,
        log: ExtractionLog | None = None,
    ) -> None:
        self.config = config or DecisionConfig()
        self.client = client
        self.history = history if history is not None else HistoryManager()
        self.detector = detector or DecisionDetector(self.config)
        self.log = log if log is not None else ExtractionLog()
        self._prompt_builder = prompt_builder or build_decision_prompt
        self._inflight: asyncio.Task | None = None
        self._abort_requested = False

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect_decision_point(self, context: DecisionContext) -> Detection:
        return self.detector.evaluate(context, self.history.get_decision_history())

    @property
    def busy(self) -> bool:
        return self.detector.state() is DetectorState.REQUESTED

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_decision(self, context: DecisionContext) -> GenerationResult:
        if self.busy:
            return GenerationResult("busy")

        detection = self.detect_decision_point(context)
        if not detection.should_generate:
            return GenerationResult("skipped", detection=detection)

        if self.client.get_rate_limit_remaining() <= 0:
            retry_at = datetime.fromtimestamp(self.client.get_rate_limit_reset_time(), tz=timezone.utc)
            logger.info("Decision generation rate limited until %s", retry_at.isoformat())
            return GenerationResult("failed", detection=detection, error=RateLimitError(retry_at))

        try:
            prompt = self._build_prompt(context)
        except PromptError as e:
            logger.error("Decision prompt could not be rendered: %s", e)
            return GenerationResult("failed", detection=detection, error=AIRequestError(str(e), retryable=False))

        self.detector.begin_request()
        succeeded = False
        try:
            response = await self._request(prompt)
            decision = validate(
                parse_decision_response(response),
                max_options=self.config.max_options_per_decision,
                taken_ids=self.history.known_ids(),
            )
            decision = decision.model_copy(update={"created_at": now_utc()})
            self.history.add_pending(decision)
            update = fields.extract_fields(response_text(response), self.log)
            succeeded = True
        except (AIRequestError, ParsingError, ValidationError) as e:
            logger.warning("Decision generation failed: %s: %s", type(e).__name__, e)
            return GenerationResult("failed", detection=detection, error=e)
        finally:
            self.detector.finish_request(succeeded)

        logger.info("Generated decision %s with %d option(s)", decision.decision_id, len(decision.options))
        return GenerationResult("generated", decision=decision, update=update, detection=detection)

    def _build_prompt(self, context: DecisionContext) -> Any:
        history = self.history.most_relevant(self.config.history_in_prompt)
        return self._prompt_builder(
            context,
            history,
            max_options=self.config.max_options_per_decision,
            history_limit=self.config.history_in_prompt,
        )

    async def _request(self, prompt: Any) -> Any:
        """Call the AI client under the deadline; abort() cancels it."""
        options = {"max_tokens": self.config.max_tokens}
        self._abort_requested = False
        self._inflight = asyncio.ensure_future(self.client.make_request(prompt, options))
        try:
            return await asyncio.wait_for(self._inflight, timeout=self.config.request_timeout)
        except asyncio.TimeoutError as e:
            raise AIRequestError(
                f"AI request exceeded the {self.config.request_timeout}s deadline"
            ) from e
        except asyncio.CancelledError:
            if self._abort_requested:
                raise AIRequestError("AI request aborted", retryable=True) from None
            raise
        finally:
            self._inflight = None
            self._abort_requested = False

    def abort(self) -> bool:
        """Cancel the in-flight generation, if any. Returns True if one was cancelled."""
        if self._inflight is None or self._inflight.done():
            return False
        self._abort_requested = True
        self._inflight.cancel()
        logger.info("Aborting in-flight decision generation")
        return True

    # ------------------------------------------------------------------
    # Presentation + recording
    # ------------------------------------------------------------------

    def to_player_decision(self, decision: Decision, location: str | None = None) -> PlayerDecision:
        return to_player_decision(decision, location)

    def record_decision(
        self,
        decision_id: str,
        selected_option_id: str,
        narrative: str = "",
        impact_description: str = "",
        tags: Iterable[str] = (),
        location: str | None = None,
    ) -> DecisionHistoryEntry:
        """Record the player's choice on the pending decision.

        Only the most recently generated decision can be recorded; an earlier
        one that it replaced raises RecordError.
        """
        pending = self.history.get_pending(decision_id)
        if pending is not None and pending.option(selected_option_id) is None:
            raise RecordError(f"Decision {decision_id} has no option {selected_option_id}")
        decision = self.history.take_pending(decision_id)
        entry = new_entry(decision, selected_option_id, narrative, impact_description, tags, location)
        return self.history.record_decision(entry)

    def get_decision_history(self) -> tuple[DecisionHistoryEntry, ...]:
        return self.history.get_decision_history()

    # ------------------------------------------------------------------
    # Narrative side channel
    # ------------------------------------------------------------------

    def extract_update(self, text: str) -> NarrativeUpdate:
        return fields.extract_fields(text, self.log)

    def strip_metadata(self, text: str) -> str:
        return fields.strip_metadata(text, self.log)


def to_player_decision(decision: Decision, location: str | None = None) -> PlayerDecision:
    """Map a canonical Decision to the presentation shape, keeping option order and ids."""
    return PlayerDecision(
        id=decision.decision_id,
        prompt=decision.prompt,
        timestamp=decision.created_at,
        options=tuple(
            PlayerDecisionOption(id=opt.id, text=opt.text, impact=opt.impact, tags=opt.traits)
            for opt in decision.options
        ),
        location=location,
        importance=decision.metadata.importance,
        context=decision.metadata.narrative_impact,
        ai_generated=True,
    )
