"""Value types for the player ledger and their JSON mapping."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_STARTING_BALANCE = 1000


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC instant with millisecond precision and a ``Z`` suffix."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected an integer, got {value!r}")
    return int(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass
class HistoryEntry:
    timestamp: str
    game: str
    delta: int
    desc: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.timestamp,
            "game": self.game,
            "delta": self.delta,
            "desc": self.desc,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "HistoryEntry":
        if not isinstance(payload, dict):
            raise ValueError("history entry must be an object")
        return cls(
            timestamp=_text(payload.get("ts")),
            game=_text(payload.get("game")),
            delta=_coerce_int(payload.get("delta", 0)),
            desc=_text(payload.get("desc")),
        )


@dataclass
class PlayerRecord:
    balance: int = DEFAULT_STARTING_BALANCE
    history: List[HistoryEntry] = field(default_factory=list)

    def append(self, entry: HistoryEntry) -> None:
        self.history.append(entry)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balance": self.balance,
            "history": [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "PlayerRecord":
        if not isinstance(payload, dict):
            raise ValueError("player record must be an object")
        history = payload.get("history") or []
        if not isinstance(history, list):
            raise ValueError("player history must be a list")
        return cls(
            balance=_coerce_int(payload.get("balance")),
            history=[HistoryEntry.from_dict(item) for item in history],
        )


@dataclass
class Store:
    """Root persisted object: every player keyed by trimmed username."""

    players: Dict[str, PlayerRecord] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"players": {name: record.to_dict() for name, record in self.players.items()}}

    @classmethod
    def from_dict(cls, payload: Any) -> "Store":
        """Build a store from decoded JSON.

        A non-object root raises ``ValueError``. A missing or non-object
        ``players`` member is treated as an empty mapping. Player records that
        cannot be read are skipped so the rest of the ledger survives.
        """
        if not isinstance(payload, dict):
            raise ValueError("ledger root must be an object")
        raw_players = payload.get("players")
        if not isinstance(raw_players, dict):
            return cls()
        players: Dict[str, PlayerRecord] = {}
        for name, record in raw_players.items():
            try:
                players[str(name)] = PlayerRecord.from_dict(record)
            except ValueError as exc:
                logger.warning("Skipping unreadable player record %r: %s", name, exc)
        return cls(players=players)

    def summary(self) -> List[Tuple[str, int]]:
        return [(name, record.balance) for name, record in self.players.items()]
