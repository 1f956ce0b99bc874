"""JSON-backed ledger of player balances and their history."""
from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .models import DEFAULT_STARTING_BALANCE, HistoryEntry, PlayerRecord, Store, utc_timestamp

logger = logging.getLogger(__name__)

SYSTEM_GAME = "system"
MANUAL_SAVE_GAME = "manual-save"
ADMIN_ADJUST_GAME = "admin-adjust"
UNKNOWN_GAME = "unknown"


class LedgerError(Exception):
    """Raised when a ledger request cannot be completed.

    ``code`` is the machine-readable error reported to HTTP clients and
    ``status_code`` the HTTP status it is reported with.
    """

    def __init__(self, code: str, message: Optional[str] = None, status_code: int = 400) -> None:
        super().__init__(message or code)
        self.code = code
        self.status_code = status_code


class ValidationFailed(LedgerError):
    pass


class InsufficientFundsError(LedgerError):
    """A charge would take the balance below zero. Reported with HTTP 200."""

    def __init__(self, username: str, balance: int, amount: int) -> None:
        super().__init__(
            "INSUFFICIENT_FUNDS",
            f"{username} has {balance}, cannot charge {amount}",
            status_code=200,
        )
        self.username = username
        self.balance = balance
        self.amount = amount


class StoreCorruptedError(LedgerError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__("STORE_CORRUPTED", f"{path}: {reason}", status_code=500)
        self.path = path


class CorruptionPolicy(str, Enum):
    """What ``Ledger.load`` does with a backing file it cannot parse."""

    RESET = "reset"
    FAIL = "fail"


class Ledger:
    def __init__(
        self,
        path: Path,
        *,
        journal_path: Optional[Path] = None,
        starting_balance: int = DEFAULT_STARTING_BALANCE,
        corruption_policy: CorruptionPolicy = CorruptionPolicy.RESET,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if starting_balance < 0:
            raise ValueError("starting_balance must be non-negative")
        self.path = Path(path)
        self.journal_path = Path(journal_path) if journal_path else None
        self.starting_balance = starting_balance
        self.corruption_policy = CorruptionPolicy(corruption_policy)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._ensure_file()

    # -- persistence -------------------------------------------------

    def _ensure_file(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.persist(Store())

    def load(self) -> Store:
        with self._lock:
            self._ensure_file()
            raw = self.path.read_text(encoding="utf-8")
            try:
                return Store.from_dict(json.loads(raw))
            except (json.JSONDecodeError, ValueError, TypeError) as exc:
                if self.corruption_policy is CorruptionPolicy.FAIL:
                    raise StoreCorruptedError(self.path, str(exc)) from exc
                logger.error("Failed to parse %s, resetting: %s", self.path, exc)
                store = Store()
                self.persist(store)
                return store

    def persist(self, store: Store) -> None:
        with self._lock:
            tmp_path = self.path.with_suffix(".tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(store.to_dict(), handle, indent=2)
            tmp_path.replace(self.path)

    @contextmanager
    def transaction(self) -> Iterator[Store]:
        """Hold the ledger lock for one load-mutate-persist cycle."""
        with self._lock:
            yield self.load()

    def _write_journal(
        self,
        *,
        event: str,
        username: str,
        balance: Optional[int],
        entry: Optional[HistoryEntry] = None,
    ) -> None:
        if not self.journal_path:
            return
        record: Dict[str, object] = {
            "timestamp": entry.timestamp if entry else utc_timestamp(self._clock()),
            "event": event,
            "username": username,
        }
        if entry is not None:
            record.update(game=entry.game, delta=entry.delta, desc=entry.desc)
        if balance is not None:
            record["balance"] = balance
        try:
            self.journal_path.parent.mkdir(parents=True, exist_ok=True)
            with self.journal_path.open("a", encoding="utf-8") as handle:
                json.dump(record, handle, separators=(",", ":"))
                handle.write("\n")
        except OSError as exc:
            logger.warning("Unable to append to journal %s: %s", self.journal_path, exc)

    def _append(
        self,
        player: PlayerRecord,
        *,
        game: str,
        delta: int,
        desc: str,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            timestamp=utc_timestamp(self._clock()),
            game=game,
            delta=delta,
            desc=desc,
        )
        player.append(entry)
        return entry

    # -- operations --------------------------------------------------

    def get_or_create(self, store: Store, username: str) -> PlayerRecord:
        if not username or username != username.strip():
            raise ValueError("username must be trimmed and non-empty")
        player = store.players.get(username)
        if player is None:
            player = PlayerRecord(balance=self.starting_balance)
            store.players[username] = player
            entry = self._append(player, game=SYSTEM_GAME, delta=0, desc="auto-created profile")
            self.persist(store)
            self._write_journal(event="create", username=username, balance=player.balance, entry=entry)
            logger.info("Created profile %s with balance %s", username, player.balance)
        return player

    def record_save(self, store: Store, username: str, balance: int) -> PlayerRecord:
        if balance < 0:
            raise ValueError("balance must be non-negative")
        player = self.get_or_create(store, username)
        player.balance = balance
        entry = self._append(player, game=MANUAL_SAVE_GAME, delta=0, desc="session save")
        self.persist(store)
        self._write_journal(event="save", username=username, balance=player.balance, entry=entry)
        return player

    def charge(self, store: Store, username: str, game: str, amount: int, desc: str = "") -> int:
        if amount <= 0:
            raise ValueError("amount must be positive")
        player = self.get_or_create(store, username)
        if player.balance - amount < 0:
            logger.info("Refused charge of %s for %s (balance %s)", amount, username, player.balance)
            raise InsufficientFundsError(username, player.balance, amount)
        player.balance -= amount
        entry = self._append(
            player,
            game=game.strip() or UNKNOWN_GAME,
            delta=-amount,
            desc=desc.strip() or "game charge",
        )
        self.persist(store)
        self._write_journal(event="charge", username=username, balance=player.balance, entry=entry)
        return player.balance

    def payout(self, store: Store, username: str, game: str, amount: int, desc: str = "") -> int:
        if amount <= 0:
            raise ValueError("amount must be positive")
        player = self.get_or_create(store, username)
        player.balance += amount
        entry = self._append(
            player,
            game=game.strip() or UNKNOWN_GAME,
            delta=amount,
            desc=desc.strip() or "game payout",
        )
        self.persist(store)
        self._write_journal(event="payout", username=username, balance=player.balance, entry=entry)
        return player.balance

    def admin_set_balance(self, store: Store, username: str, balance: int, note: str = "") -> int:
        if balance < 0:
            raise ValueError("balance must be non-negative")
        player = self.get_or_create(store, username)
        delta = balance - player.balance
        player.balance = balance
        entry = self._append(
            player,
            game=ADMIN_ADJUST_GAME,
            delta=delta,
            desc=note.strip() or "admin adjustment",
        )
        self.persist(store)
        self._write_journal(event="admin_set_balance", username=username, balance=balance, entry=entry)
        logger.info("Admin set %s balance to %s (delta %s)", username, balance, delta)
        return player.balance

    def admin_delete(self, store: Store, username: str) -> bool:
        if store.players.pop(username, None) is None:
            return False
        self.persist(store)
        self._write_journal(event="delete", username=username, balance=None)
        logger.info("Admin deleted profile %s", username)
        return True

    def list_users(self, store: Store) -> List[Tuple[str, int]]:
        return store.summary()

    def get_user_detail(self, store: Store, username: str) -> PlayerRecord:
        return self.get_or_create(store, username)
