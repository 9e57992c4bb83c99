"""Ledger store: a flat key-value blob store on SQLite.

Two logical keys hold JSON blobs:
  @budget_transactions   list of transactions, newest first
  @budget_settings       the budget settings object

Every read-modify-write of the ledger runs inside one IMMEDIATE
transaction, so two near-simultaneous appends (the inbox watcher and a
manual entry) cannot overwrite each other.
"""

from __future__ import annotations

import json
import logging
import math
import secrets
import sqlite3
import string
from collections.abc import Callable
from contextlib import contextmanager
from datetime import datetime

from dailybudget.dates import local_now, parse_timestamp, to_iso
from dailybudget.models import (
    SOURCE_AUTO,
    SOURCE_MANUAL,
    BudgetSettings,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

TRANSACTIONS_KEY = "@budget_transactions"
SETTINGS_KEY = "@budget_settings"
LEGACY_NOTIFICATIONS_KEY = "@payment_notifications"

_ID_ALPHABET = string.ascii_lowercase + string.digits


class StoreError(Exception):
    """Raised when the underlying database cannot be read or written."""


# ── JSON helpers ─────────────────────────────────────────


def safe_json_parse(text: str | None, fallback=None):
    """Parse JSON, returning fallback for empty or corrupted input."""
    if not text:
        return fallback
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Failed to parse stored JSON (%s): %.100s", e, text)
        return fallback


def ensure_list(value) -> list:
    if isinstance(value, list):
        return value
    if value is not None:
        logger.warning("Expected a list but got %s", type(value).__name__)
    return []


def ensure_mapping(value) -> dict | None:
    if isinstance(value, dict):
        return value
    if value is not None:
        logger.warning("Expected an object but got %s", type(value).__name__)
    return None


# ── Transaction factory ──────────────────────────────────


def _validate_amount(amount) -> float:
    """Magnitude of a user-supplied amount.

    Raises:
        ValueError: If the amount is not a finite number.
    """
    try:
        value = abs(float(amount))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Amount must be a number, got {amount!r}") from e
    if not math.isfinite(value):
        raise ValueError(f"Amount must be finite, got {amount!r}")
    return value


def create_transaction(
    amount: float,
    txn_type: str,
    description: str | None = None,
    now: datetime | None = None,
) -> Transaction:
    """Create a manual ledger entry stamped with the current time.

    Raises:
        ValueError: If the amount is not a finite number or the type is unknown.
    """
    value = _validate_amount(amount)
    now = now or local_now()
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    default = "Income" if txn_type == TransactionType.INCOME else "Expense"
    return Transaction(
        id=f"manual_{int(now.timestamp() * 1000)}_{suffix}",
        timestamp=to_iso(now),
        amount=value,
        type=txn_type,
        description=description or default,
        source=SOURCE_MANUAL,
    )


def _sort_key(data: dict) -> float:
    parsed = parse_timestamp(data.get("timestamp"))
    return parsed.timestamp() if parsed is not None else float("-inf")


# ── Store ────────────────────────────────────────────────


class LedgerStore:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(
                    self.db_path, check_same_thread=False, isolation_level=None,
                )
                self._conn.execute("PRAGMA journal_mode = WAL")
                self._conn.execute(
                    "CREATE TABLE IF NOT EXISTS kv ("
                    "  key TEXT PRIMARY KEY,"
                    "  value TEXT NOT NULL"
                    ")"
                )
            except sqlite3.Error as e:
                raise StoreError(f"Cannot open ledger store {self.db_path}: {e}") from e
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Raw key-value access ────────────────────────────────

    def get_item(self, key: str) -> str | None:
        try:
            row = self.conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot read {key}: {e}") from e
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        try:
            self.conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?)"
                " ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot write {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreError(f"Cannot remove {key}: {e}") from e

    @contextmanager
    def _write_lock(self):
        """Serialize a read-modify-write against other writers."""
        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreError(f"Cannot lock ledger store: {e}") from e
        try:
            yield
        except Exception:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    # ── Settings ────────────────────────────────────────────

    def get_budget_settings(self) -> BudgetSettings | None:
        data = ensure_mapping(safe_json_parse(self.get_item(SETTINGS_KEY)))
        if data is None:
            return None
        try:
            return BudgetSettings.from_dict(data)
        except ValueError as e:
            logger.warning("Ignoring invalid budget settings: %s", e)
            return None

    def save_budget_settings(self, settings: BudgetSettings) -> None:
        self.set_item(SETTINGS_KEY, json.dumps(settings.to_dict()))

    # ── Transactions ────────────────────────────────────────

    def _load_raw(self) -> list[dict]:
        items = ensure_list(safe_json_parse(self.get_item(TRANSACTIONS_KEY), []))
        return [item for item in items if isinstance(item, dict)]

    def _save_raw(self, items: list[dict]) -> None:
        self.set_item(TRANSACTIONS_KEY, json.dumps(items, ensure_ascii=False))

    def get_transactions(self) -> list[Transaction]:
        """All ledger entries, newest first. Malformed entries are skipped."""
        transactions: list[Transaction] = []
        for item in self._load_raw():
            try:
                transactions.append(Transaction.from_dict(item))
            except ValueError as e:
                logger.warning("Skipping malformed ledger entry %s: %s", item.get("id"), e)
        return transactions

    def _modify(self, change: Callable[[list[dict]], list[dict]]) -> list[Transaction]:
        with self._write_lock():
            self._save_raw(change(self._load_raw()))
        return self.get_transactions()

    def save_transaction(self, txn: Transaction) -> list[Transaction]:
        """Prepend a transaction to the ledger and return the new ledger."""
        return self._modify(lambda items: [txn.to_dict()] + items)

    def delete_transaction(self, txn_id: str) -> list[Transaction]:
        return self._modify(
            lambda items: [i for i in items if i.get("id") != txn_id]
        )

    def update_transaction(
        self,
        txn_id: str,
        amount: float | None = None,
        description: str | None = None,
    ) -> list[Transaction]:
        """Edit the amount and/or description of one entry.

        Amounts are stored as magnitudes; a negative edit is flipped.

        Raises:
            ValueError: If amount is given but not a finite number.
        """
        value = _validate_amount(amount) if amount is not None else None

        def change(items: list[dict]) -> list[dict]:
            for item in items:
                if item.get("id") != txn_id:
                    continue
                if value is not None:
                    item["amount"] = value
                if description is not None:
                    item["description"] = description
            return items

        return self._modify(change)

    def clear_transactions(self) -> None:
        self.remove_item(TRANSACTIONS_KEY)

    def merge_transactions(self, incoming: list[Transaction]) -> int:
        """Add transactions whose id is not yet in the ledger.

        The merged ledger is re-sorted newest first. Returns how many
        transactions were added.
        """
        added = 0

        def change(items: list[dict]) -> list[dict]:
            nonlocal added
            known = {i.get("id") for i in items}
            new = [t.to_dict() for t in incoming if t.id not in known]
            added = len(new)
            if not new:
                return items
            return sorted(items + new, key=_sort_key, reverse=True)

        self._modify(change)
        return added

    def migrate_old_data(self) -> int:
        """Move legacy @payment_notifications entries into the ledger.

        Returns the number of entries added. The legacy key is removed
        even when every entry was already present.
        """
        legacy_raw = self.get_item(LEGACY_NOTIFICATIONS_KEY)
        if legacy_raw is None:
            return 0

        migrated: list[Transaction] = []
        for item in ensure_list(safe_json_parse(legacy_raw, [])):
            if not isinstance(item, dict):
                continue
            try:
                migrated.append(Transaction(
                    id=str(item["id"]),
                    timestamp=item["timestamp"],
                    amount=_validate_amount(item["amount"]),
                    type=TransactionType.AUTO_PAYMENT,
                    description=item.get("merchant") or "Unknown",
                    source=SOURCE_AUTO,
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unmigratable legacy entry: %s", e)

        added = self.merge_transactions(migrated) if migrated else 0
        self.remove_item(LEGACY_NOTIFICATIONS_KEY)
        logger.info("Migrated %d legacy notification(s)", added)
        return added
