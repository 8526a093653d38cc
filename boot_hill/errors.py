"""Error taxonomy for the decision pipeline.

None of these are fatal to a game session. The decision service turns them
into failed generation results; the worst outcome is "no decision this
cycle" and the narration carries on without one.

    ParsingError     — structurally malformed model output (bad JSON,
                       unterminated bracketed list)
    ValidationError  — structurally valid but semantically incomplete
                       (missing prompt, no usable options)
    RateLimitError   — AI quota exhausted; carries the retry timestamp
    AIRequestError   — transport failure, timeout or abort
    RecordError      — recording a choice for an unknown or already
                       recorded decision
"""

from __future__ import annotations

from datetime import datetime


class DecisionError(Exception):
    """Base class for every pipeline error."""


class ParsingError(DecisionError):
    """Raised when model output cannot be structurally decoded.

    `field` names the tagged field for extractor errors; it is None for
    whole-payload decode failures.
    """

    def __init__(self, reason: str, field: str | None = None) -> None:
        self.reason = reason
        self.field = field
        super().__init__(f"{field}: {reason}" if field else reason)


class ValidationError(DecisionError):
    """Raised when a decoded decision is missing required content."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class RateLimitError(DecisionError):
    """Raised when the AI client has no request quota left."""

    def __init__(self, retry_at: datetime) -> None:
        self.retry_at = retry_at
        super().__init__(f"Rate limit exceeded, retry after {retry_at.isoformat()}")


class AIRequestError(DecisionError):
    """Raised when the AI backend cannot be reached, times out, or errors."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class RecordError(DecisionError):
    """Raised when a player choice cannot be recorded against a decision."""
