"""Tests for session save files and versioned-load migration."""

import json
from datetime import datetime, timezone

from boot_hill.combat import CombatState
from boot_hill.diagnostics import ExtractionLog
from boot_hill.models import DecisionHistoryEntry
from boot_hill.pipeline.history import HistoryManager

from backend import storage


def _write(slug: str, data: dict) -> None:
    (storage.sessions_dir() / f"{slug}.json").write_text(json.dumps(data))


def test_missing_session_starts_empty():
    history, combat, location = storage.load_session("ghost-town")
    assert history.get_decision_history() == ()
    assert combat == CombatState()
    assert location is None
    assert not storage.session_exists("ghost-town")


def test_save_and_load():
    entry = DecisionHistoryEntry(
        decision_id="d-1",
        selected_option_id="draw",
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
        tags=("brave",),
        relevance_score=0.7,
    )
    combat = CombatState(is_active=True, rounds=2, current_turn="opponent", opponent_name="Bart")
    data = storage.save_session("tombstone", HistoryManager([entry]), combat)
    assert data["version"] == storage.SESSION_VERSION == 3

    history, loaded, _ = storage.load_session("tombstone")
    assert history.get_decision_history() == (entry,)
    assert loaded == combat


def test_legacy_history_records_migrated():
    _write("old", {
        "history": [{
            "decisionId": "d-9",
            "selectedOptionId": "b",
            "timestamp": 1714564800000,
            "narrative": "You walked away.",
            "impactDescription": "Lost face",
            "tags": ["cautious"],
            "relevanceScore": 7,
            "expirationTimestamp": 1714999999999,
        }],
    })
    history = storage.load_session("old").history
    (entry,) = history.get_decision_history()
    assert entry.decision_id == "d-9"
    assert entry.selected_option_id == "b"
    assert entry.impact_description == "Lost face"
    assert entry.relevance_score == 0.7
    assert entry.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert entry.expires_at == datetime.fromtimestamp(1714999999.999, tz=timezone.utc)


def test_v2_combat_with_ambiguous_turn_is_flagged():
    _write("standoff", {
        "version": 2,
        "history": [],
        "combat": {
            "isActive": True,
            "combatType": "weapon",
            "playerCharacterId": "player-1",
            "opponentCharacterId": "bart",
            "currentTurn": {"playerId": "unknown"},
        },
    })
    log = ExtractionLog()
    combat = storage.load_session("standoff", log).combat
    assert combat.is_active
    assert combat.current_turn is None
    assert len(log.warnings) == 1


def test_migrated_session_saved_at_current_version():
    _write("old", {"version": 1, "combat": {"isActive": False, "brawling": {"round": 1}}})
    history, combat, _ = storage.load_session("old")
    storage.save_session("old", history, combat)
    saved = json.loads((storage.sessions_dir() / "old.json").read_text())
    assert saved["version"] == 3
    assert saved["combat"]["rounds"] == 1


def test_location_survives_reload():
    storage.save_session("tombstone", HistoryManager(), CombatState(), location="O.K. Corral")
    assert storage.load_session("tombstone").location == "O.K. Corral"


def test_older_saves_have_no_location():
    _write("old", {"version": 3, "history": [], "combat": {}})
    assert storage.load_session("old").location is None
