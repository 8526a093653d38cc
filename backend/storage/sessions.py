"""Per-session save files: decision history, combat state and location.

Layout: data/sessions/<slug>.json
  {"version": 3, "history": [DecisionHistoryEntry...], "combat": CombatState,
   "location": str | null}

Files written by older clients are migrated on load and rewritten in the
current shape on the next save. Versions below 3 stored history records in
camelCase with epoch-millisecond timestamps and a 0-10 relevance score.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple

from boot_hill.combat import CURRENT_COMBAT_VERSION, CombatState, migrate_combat_state
from boot_hill.diagnostics import ExtractionLog
from boot_hill.pipeline.history import HistoryManager

from .core import sessions_dir

logger = logging.getLogger(__name__)

SESSION_VERSION = CURRENT_COMBAT_VERSION

_LEGACY_KEYS = {
    "decisionId": "decision_id",
    "selectedOptionId": "selected_option_id",
    "impactDescription": "impact_description",
    "relevanceScore": "relevance_score",
    "expirationTimestamp": "expires_at",
}


class SessionData(NamedTuple):
    history: HistoryManager
    combat: CombatState
    location: str | None = None


def _session_path(slug: str) -> Path:
    return sessions_dir() / f"{slug}.json"


def _from_millis(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


def _migrate_history_item(item: dict[str, Any]) -> dict[str, Any]:
    migrated = {_LEGACY_KEYS.get(k, k): v for k, v in item.items()}
    migrated["timestamp"] = _from_millis(migrated.get("timestamp"))
    migrated["expires_at"] = _from_millis(migrated.get("expires_at"))
    score = migrated.get("relevance_score")
    if isinstance(score, (int, float)) and score > 1:
        migrated["relevance_score"] = min(1.0, score / 10)
    return migrated


def load_session(slug: str, log: ExtractionLog | None = None) -> SessionData:
    """Load a session, migrating older save versions. Missing files start empty."""
    path = _session_path(slug)
    if not path.is_file():
        return SessionData(HistoryManager(), CombatState())
    data = json.loads(path.read_text())
    version = int(data.get("version", 0))
    history = data.get("history") or []
    if version < SESSION_VERSION:
        logger.info("Migrating session %s from version %d", slug, version)
        history = [_migrate_history_item(item) for item in history if isinstance(item, dict)]
    combat = migrate_combat_state(data.get("combat"), version, log)
    return SessionData(HistoryManager.from_data(history), combat, data.get("location") or None)


def save_session(
    slug: str, history: HistoryManager, combat: CombatState, location: str | None = None
) -> dict[str, Any]:
    data = {
        "version": SESSION_VERSION,
        "history": history.to_data(),
        "combat": combat.model_dump(mode="json"),
        "location": location,
    }
    _session_path(slug).write_text(json.dumps(data, indent=2))
    return data


def session_exists(slug: str) -> bool:
    return _session_path(slug).is_file()
