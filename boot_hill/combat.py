"""Canonical combat state and its load-time migration.

There is exactly one in-memory combat shape, CombatState. Older saves used
two other shapes and are converted once, when a session is loaded:

  version 0/1 (legacy)   {"isActive", "combatType", "rounds", "currentTurn",
                          "brawling": {"round", "playerCharacterId",
                          "opponentCharacterId", "playerModifier", ...},
                          "weapon": {...}, "combatLog": [{"text", "type",
                          "timestamp"}], "participants": [...]}
  version 2 (slice)      {"isActive", "combatType", "rounds", "playerTurn",
                          "playerCharacterId", "opponentCharacterId",
                          "modifiers": {"player", "opponent"},
                          "combatLog": [...], "currentTurn": {"playerId", ...}}

Nothing converts back. A structured currentTurn ({"playerId": ...}) is only
mapped when its id matches one of the combatants; otherwise the turn is left
unset and a warning is recorded instead of assuming it is the player's turn.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from boot_hill.diagnostics import ExtractionLog
from boot_hill.models import NarrativeUpdate

logger = logging.getLogger(__name__)

CURRENT_COMBAT_VERSION = 3

CombatType = Literal["brawling", "weapon"]
Turn = Literal["player", "opponent"]


class CombatModifiers(BaseModel):
    model_config = ConfigDict(frozen=True)

    player: int = 0
    opponent: int = 0


class CombatLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    type: str = "info"
    timestamp: datetime | None = None


class CombatState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_active: bool = False
    combat_type: CombatType = "brawling"
    rounds: int = 0
    current_turn: Turn | None = None
    player_character_id: str = ""
    opponent_character_id: str = ""
    opponent_name: str | None = None
    modifiers: CombatModifiers = Field(default_factory=CombatModifiers)
    log: tuple[CombatLogEntry, ...] = ()


def start_combat(
    state: CombatState, update: NarrativeUpdate, combat_type: CombatType = "brawling"
) -> CombatState:
    """Open combat from a COMBAT: trigger. Already-active combat is left alone."""
    if not update.combat_triggered or state.is_active:
        return state
    opponent = update.opponent or "Unknown opponent"
    return CombatState(
        is_active=True,
        combat_type=combat_type,
        rounds=1,
        current_turn="player",
        player_character_id=state.player_character_id,
        opponent_name=opponent,
        log=(CombatLogEntry(text=f"Combat begins with {opponent}", timestamp=datetime.now(timezone.utc)),),
    )


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------

def _log_entries(raw: Any) -> tuple[CombatLogEntry, ...]:
    if not isinstance(raw, list):
        return ()
    entries: list[CombatLogEntry] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("text"):
            continue
        entry_type = item.get("type")
        data = item.get("data")
        if entry_type is None and isinstance(data, dict):
            entry_type = data.get("originalType")
        stamp = item.get("timestamp")
        if isinstance(stamp, (int, float)):
            # the old client stored epoch milliseconds
            stamp = datetime.fromtimestamp(stamp / 1000, tz=timezone.utc)
        elif not isinstance(stamp, str):
            stamp = None
        entries.append(CombatLogEntry(text=str(item["text"]), type=str(entry_type or "info"), timestamp=stamp))
    return tuple(entries)


def _resolve_turn(
    raw_turn: Any,
    player_id: str,
    opponent_id: str,
    log: ExtractionLog | None,
) -> Turn | None:
    if raw_turn in ("player", "opponent"):
        return raw_turn
    if isinstance(raw_turn, dict):
        turn_owner = str(raw_turn.get("playerId") or "")
        if turn_owner and turn_owner == player_id:
            return "player"
        if turn_owner and turn_owner == opponent_id:
            return "opponent"
        message = f"ambiguous structured currentTurn {raw_turn!r}; turn left unset"
        logger.warning("Combat migration: %s", message)
        if log is not None:
            log.warn(message, field="current_turn")
    return None


def _from_legacy(raw: dict[str, Any], log: ExtractionLog | None) -> CombatState:
    brawling = raw.get("brawling") if isinstance(raw.get("brawling"), dict) else {}
    weapon = raw.get("weapon") if isinstance(raw.get("weapon"), dict) else {}
    player_id = str(brawling.get("playerCharacterId") or weapon.get("playerCharacterId") or "")
    opponent_id = str(brawling.get("opponentCharacterId") or weapon.get("opponentCharacterId") or "")
    rounds = raw.get("rounds") or brawling.get("round") or weapon.get("round") or 0
    return CombatState(
        is_active=bool(raw.get("isActive", False)),
        combat_type=raw.get("combatType") if raw.get("combatType") in ("brawling", "weapon") else "brawling",
        rounds=int(rounds),
        current_turn=_resolve_turn(raw.get("currentTurn"), player_id, opponent_id, log),
        player_character_id=player_id,
        opponent_character_id=opponent_id,
        modifiers=CombatModifiers(
            player=int(brawling.get("playerModifier") or 0),
            opponent=int(brawling.get("opponentModifier") or 0),
        ),
        log=_log_entries(raw.get("combatLog")),
    )


def _from_slice(raw: dict[str, Any], log: ExtractionLog | None) -> CombatState:
    player_id = str(raw.get("playerCharacterId") or "")
    opponent_id = str(raw.get("opponentCharacterId") or "")
    modifiers = raw.get("modifiers") if isinstance(raw.get("modifiers"), dict) else {}
    turn = _resolve_turn(raw.get("currentTurn"), player_id, opponent_id, log)
    if turn is None and raw.get("currentTurn") is None and "playerTurn" in raw:
        turn = "player" if raw["playerTurn"] else "opponent"
    return CombatState(
        is_active=bool(raw.get("isActive", False)),
        combat_type=raw.get("combatType") if raw.get("combatType") in ("brawling", "weapon") else "brawling",
        rounds=int(raw.get("rounds") or 0),
        current_turn=turn if raw.get("isActive") else None,
        player_character_id=player_id,
        opponent_character_id=opponent_id,
        modifiers=CombatModifiers(
            player=int(modifiers.get("player") or 0),
            opponent=int(modifiers.get("opponent") or 0),
        ),
        log=_log_entries(raw.get("combatLog")),
    )


def migrate_combat_state(
    raw: dict[str, Any] | None, version: int, log: ExtractionLog | None = None
) -> CombatState:
    """Load combat state saved at `version` into the canonical shape."""
    if not raw:
        return CombatState()
    if version >= CURRENT_COMBAT_VERSION:
        return CombatState.model_validate(raw)
    if version == 2:
        return _from_slice(raw, log)
    return _from_legacy(raw, log)
