"""Decision history: the pending decision and the append-only choice log.

A decision is *pending* from the moment the service hands it to the caller
until the player's choice is recorded. A session has at most one pending
decision: generating a new one replaces the previous, which can then no
longer be recorded. Recording removes the pending decision and appends a
DecisionHistoryEntry; entries are never edited, reordered or deleted.

Relevance weighting is a pure function of the entry sequence: newer entries
and entries with a higher relevance score weigh more, and a tag's weight is
the sum over the entries that carry it. Minor decisions expire after a week
and drop out of prompt context, but stay in the log.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from boot_hill.errors import RecordError
from boot_hill.models import Decision, DecisionHistoryEntry

RECENCY_DECAY = 0.8
MINOR_DECISION_TTL = timedelta(days=7)


def tag_weights(
    entries: Iterable[DecisionHistoryEntry], decay: float = RECENCY_DECAY
) -> dict[str, float]:
    """Recency-decayed, relevance-weighted tag totals (lower-cased tags)."""
    ordered = list(entries)
    weights: dict[str, float] = {}
    for age, entry in enumerate(reversed(ordered)):
        weight = (decay ** age) * entry.relevance_score
        for tag in {t.lower() for t in entry.tags}:
            weights[tag] = weights.get(tag, 0.0) + weight
    return weights


def history_relevance(
    entries: Iterable[DecisionHistoryEntry],
    tags: Iterable[str],
    decay: float = RECENCY_DECAY,
) -> float:
    """How strongly the current context tags echo past choices, in [0, 1]."""
    wanted = {t.lower() for t in tags if t}
    if not wanted:
        return 0.0
    weights = tag_weights(entries, decay)
    if not weights:
        return 0.0
    matched = sum(w for tag, w in weights.items() if tag in wanted)
    return min(1.0, matched / len(wanted))


def is_expired(entry: DecisionHistoryEntry, now: datetime) -> bool:
    return entry.expires_at is not None and entry.expires_at <= now


def most_relevant(
    entries: Iterable[DecisionHistoryEntry], count: int, now: datetime
) -> tuple[DecisionHistoryEntry, ...]:
    """The `count` highest-relevance unexpired entries, oldest first.

    Ties go to the newer entry.
    """
    if count <= 0:
        return ()
    live = [(i, e) for i, e in enumerate(entries) if not is_expired(e, now)]
    ranked = sorted(live, key=lambda pair: (pair[1].relevance_score, pair[0]), reverse=True)[:count]
    return tuple(e for _, e in sorted(ranked, key=lambda pair: pair[0]))


class HistoryManager:
    """Owns the pending decision and the history log for one game session."""

    def __init__(self, entries: Iterable[DecisionHistoryEntry] = ()) -> None:
        self._lock = threading.Lock()
        self._entries: tuple[DecisionHistoryEntry, ...] = tuple(entries)
        self._pending: Decision | None = None
        self._replaced: set[str] = set()

    # ------------------------------------------------------------------
    # History log
    # ------------------------------------------------------------------

    def get_decision_history(self) -> tuple[DecisionHistoryEntry, ...]:
        """All entries, oldest first."""
        return self._entries

    def recent(self, count: int) -> tuple[DecisionHistoryEntry, ...]:
        if count <= 0:
            return ()
        return self._entries[-count:]

    def most_relevant(self, count: int, now: datetime | None = None) -> tuple[DecisionHistoryEntry, ...]:
        return most_relevant(self._entries, count, now or now_utc())

    def record_decision(self, entry: DecisionHistoryEntry) -> DecisionHistoryEntry:
        """Append an entry. Timestamps never go backwards within the log."""
        with self._lock:
            if self._entries and entry.timestamp < self._entries[-1].timestamp:
                entry = entry.model_copy(update={"timestamp": self._entries[-1].timestamp})
            # swap in a new tuple so readers always see a complete sequence
            self._entries = self._entries + (entry,)
        return entry

    def tag_weights(self) -> dict[str, float]:
        return tag_weights(self._entries)

    def history_relevance(self, tags: Iterable[str]) -> float:
        return history_relevance(self._entries, tags)

    # ------------------------------------------------------------------
    # Pending decisions
    # ------------------------------------------------------------------

    @property
    def pending(self) -> Decision | None:
        return self._pending

    def add_pending(self, decision: Decision) -> None:
        """Make `decision` the pending one, replacing any earlier pending decision."""
        with self._lock:
            if decision.decision_id in self._known_ids():
                raise RecordError(f"Decision {decision.decision_id} already exists")
            if self._pending is not None:
                self._replaced.add(self._pending.decision_id)
            self._pending = decision

    def get_pending(self, decision_id: str) -> Decision | None:
        pending = self._pending
        if pending is not None and pending.decision_id == decision_id:
            return pending
        return None

    def is_pending(self, decision_id: str) -> bool:
        return self.get_pending(decision_id) is not None

    def take_pending(self, decision_id: str) -> Decision:
        """Remove and return the pending decision, or raise RecordError."""
        with self._lock:
            decision = self.get_pending(decision_id)
            if decision is not None:
                self._pending = None
        if decision is None:
            if self._recorded(decision_id):
                raise RecordError(f"Decision {decision_id} has already been recorded")
            if decision_id in self._replaced:
                raise RecordError(f"Decision {decision_id} was replaced by a newer decision")
            raise RecordError(f"Unknown decision {decision_id}")
        return decision

    def _recorded(self, decision_id: str) -> bool:
        return any(e.decision_id == decision_id for e in self._entries)

    def _known_ids(self) -> set[str]:
        ids = {e.decision_id for e in self._entries} | self._replaced
        if self._pending is not None:
            ids.add(self._pending.decision_id)
        return ids

    def known_ids(self) -> set[str]:
        """Every decision id handed out in this session, replaced ones included."""
        return self._known_ids()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_data(self) -> list[dict[str, Any]]:
        """Plain JSON-ready data for the save layer."""
        return [entry.model_dump(mode="json") for entry in self._entries]

    @classmethod
    def from_data(cls, data: Iterable[dict[str, Any]]) -> HistoryManager:
        return cls(DecisionHistoryEntry.model_validate(item) for item in data)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _tag_value(value: str) -> str:
    return "-".join(value.lower().split())


def new_entry(
    decision: Decision,
    selected_option_id: str,
    narrative: str = "",
    impact_description: str = "",
    tags: Iterable[str] = (),
    location: str | None = None,
    timestamp: datetime | None = None,
) -> DecisionHistoryEntry:
    """Build the history entry for a player's choice on a decision.

    Tags are the caller's (or the option's traits) followed by
    ``importance:<level>`` and, when known, ``location:<place>``.
    Minor decisions get an expiry a week out.
    """
    option = decision.option(selected_option_id)
    importance = decision.metadata.importance
    merged_tags = list(tags) or list(option.traits if option else ())
    merged_tags.append(f"importance:{importance}")
    if location and location.strip():
        merged_tags.append(f"location:{_tag_value(location)}")
    timestamp = timestamp or now_utc()
    return DecisionHistoryEntry(
        decision_id=decision.decision_id,
        selected_option_id=selected_option_id,
        timestamp=timestamp,
        narrative=narrative,
        impact_description=impact_description or (option.impact if option else ""),
        tags=tuple(dict.fromkeys(t.strip() for t in merged_tags if t and t.strip())),
        relevance_score=decision.relevance_score,
        expires_at=timestamp + MINOR_DECISION_TTL if importance == "minor" else None,
    )
