"""Scoped extraction log.

Keeps a bounded record of what the extractor did to a piece of model output:
field errors, stripped metadata, ambiguous migrations. The caller owns the
instance and passes it in explicitly; there is no module-level tracker, so
two sessions (or two tests) never see each other's records.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Literal

from boot_hill.errors import ParsingError

logger = logging.getLogger(__name__)

RecordKind = Literal["error", "strip", "warning"]


@dataclass(frozen=True)
class LogRecord:
    kind: RecordKind
    message: str
    field: str | None = None
    sample: str = ""


class ExtractionLog:
    """Bounded, per-owner log of extraction events."""

    def __init__(self, max_records: int = 100, sample_chars: int = 120) -> None:
        self._records: deque[LogRecord] = deque(maxlen=max_records)
        self._sample_chars = sample_chars

    def _sample(self, text: str) -> str:
        return text[: self._sample_chars]

    def record_error(self, error: ParsingError, text: str = "") -> None:
        self._records.append(
            LogRecord("error", error.reason, field=error.field, sample=self._sample(text))
        )

    def record_strip(self, before: str, after: str) -> None:
        if before == after:
            return
        self._records.append(
            LogRecord(
                "strip",
                f"removed {len(before) - len(after)} chars of metadata",
                sample=self._sample(before),
            )
        )

    def warn(self, message: str, field: str | None = None) -> None:
        logger.debug("extraction warning field=%s: %s", field, message)
        self._records.append(LogRecord("warning", message, field=field))

    @property
    def records(self) -> tuple[LogRecord, ...]:
        return tuple(self._records)

    @property
    def errors(self) -> tuple[LogRecord, ...]:
        return tuple(r for r in self._records if r.kind == "error")

    @property
    def warnings(self) -> tuple[LogRecord, ...]:
        return tuple(r for r in self._records if r.kind == "warning")

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
