"""Notification inbox: PollingObserver + intake orchestration.

The notification listener on the phone (outside this package) drops
captured notifications into an inbox folder as JSON. Each new file is
waited on until stable, read, and every payload in it goes through:

  classify → append to ledger → refresh widget view

Processed files are moved to inbox/processed/ so a restart does not
ingest them twice. Uses PollingObserver because the inbox usually lives
on a synced or mounted folder where inotify is unreliable.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEventHandler

from dailybudget.database.store import StoreError
from dailybudget.parsers.notification import (
    DEFAULT_RULES,
    Outcome,
    ParserRules,
    classify_notification,
)
from dailybudget.widget import WidgetView, render_widget

if TYPE_CHECKING:
    from dailybudget.database.store import LedgerStore

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".json", ".jsonl", ".txt"}
PROCESSED_DIR_NAME = "processed"

DEFAULT_STABILITY_SECONDS = 2
DEFAULT_CHECK_INTERVAL = 0.5
DEFAULT_POLL_INTERVAL = 5


@dataclass
class IntakeResult:
    """Result of ingesting a single notification."""
    status: str  # "saved", "ignored", "invalid", "error"
    transaction_id: str | None = None
    reason: str | None = None
    widget: WidgetView | None = None
    error_message: str | None = None


@dataclass
class InboxResult:
    """Result of ingesting one inbox file."""
    file_name: str
    saved: int = 0
    ignored: int = 0
    invalid: int = 0
    errors: int = 0
    results: list[IntakeResult] = field(default_factory=list, repr=False)
    failed_payloads: list = field(default_factory=list, repr=False)

    def add(self, result: IntakeResult) -> None:
        self.results.append(result)
        if result.status == "saved":
            self.saved += 1
        elif result.status == "ignored":
            self.ignored += 1
        elif result.status == "invalid":
            self.invalid += 1
        else:
            self.errors += 1


class FileStabilityError(Exception):
    """Raised when an inbox file fails post-stability validation."""


# ── File stability & reading ────────────────────────────


def wait_for_stable(
    filepath: Path,
    stability_seconds: float = DEFAULT_STABILITY_SECONDS,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    max_wait: float = 60.0,
) -> None:
    """Wait until file size and mtime are unchanged for stability_seconds.

    Raises:
        TimeoutError: If the file doesn't stabilize within max_wait.
    """
    prev_size = -1
    prev_mtime = -1.0
    stable_since: float | None = None
    start = time.monotonic()

    while True:
        if time.monotonic() - start > max_wait:
            raise TimeoutError(
                f"File did not stabilize within {max_wait}s: {filepath}"
            )

        stat = filepath.stat()
        if stat.st_size == prev_size and stat.st_mtime == prev_mtime:
            if stable_since is None:
                stable_since = time.monotonic()
            elif time.monotonic() - stable_since >= stability_seconds:
                return
        else:
            stable_since = None

        prev_size = stat.st_size
        prev_mtime = stat.st_mtime
        time.sleep(check_interval)


def read_payloads(filepath: Path) -> list:
    """Read the raw notification payloads held by an inbox file.

    A .json file holds one payload object or a list of them; anything
    else (and a .json file that is not a single JSON document) is read
    as JSON lines. Lines are returned as raw text so the parser can
    classify malformed ones.

    Raises:
        FileStabilityError: If the file is empty.
    """
    content = filepath.read_text(encoding="utf-8", errors="replace")
    if not content.strip():
        raise FileStabilityError(f"Empty inbox file: {filepath}")

    if filepath.suffix.lower() == ".json":
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]

    return [line for line in content.splitlines() if line.strip()]


# ── Intake ───────────────────────────────────────────────


class NotificationIntake:
    """Classify notifications and append payments to the ledger.

    Args:
        store: Ledger store to append to.
        rules: Parser rules (allow-list, currencies, merchant patterns).
        currency: Currency code for the refreshed widget text.
    """

    def __init__(
        self,
        store: LedgerStore,
        rules: ParserRules = DEFAULT_RULES,
        currency: str = "EUR",
    ):
        self.store = store
        self.rules = rules
        self.currency = currency

    def process(self, raw, now: datetime | None = None) -> IntakeResult:
        result = classify_notification(raw, now=now, rules=self.rules)

        if result.outcome == Outcome.INVALID:
            logger.warning("Dropping unreadable notification payload")
            return IntakeResult(status="invalid", reason=result.reason)
        if result.outcome == Outcome.NOT_PAYMENT:
            return IntakeResult(status="ignored", reason=result.reason)

        txn = result.transaction
        try:
            self.store.save_transaction(txn)
        except StoreError as e:
            logger.error("Could not save transaction %s: %s", txn.id, e)
            return IntakeResult(
                status="error", transaction_id=txn.id, error_message=str(e),
            )

        logger.info(
            "Transaction saved: %s %.2f at %s", txn.id, txn.amount, txn.description,
        )
        widget = render_widget(self.store, now=now, currency=self.currency)
        logger.info("Widget updated with budget: %s", widget.text)
        return IntakeResult(status="saved", transaction_id=txn.id, widget=widget)

    def process_file(self, filepath: Path) -> InboxResult:
        inbox_result = InboxResult(file_name=filepath.name)
        for raw in read_payloads(filepath):
            result = self.process(raw)
            inbox_result.add(result)
            if result.status == "error":
                inbox_result.failed_payloads.append(raw)
        return inbox_result


# ── Inbox watcher ────────────────────────────────────────


class InboxWatcher(FileSystemEventHandler):
    """Watch the inbox folder for notification files using PollingObserver.

    Args:
        inbox_dir: Directory to watch.
        intake: NotificationIntake that ingests each payload.
        stability_seconds: Seconds of stability before processing.
        check_interval: Seconds between stability checks.
    """

    def __init__(
        self,
        inbox_dir: Path,
        intake: NotificationIntake,
        stability_seconds: float = DEFAULT_STABILITY_SECONDS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
    ):
        self.inbox_dir = Path(inbox_dir)
        self.intake = intake
        self.stability_seconds = stability_seconds
        self.check_interval = check_interval
        self._observer = None

    @property
    def processed_dir(self) -> Path:
        return self.inbox_dir / PROCESSED_DIR_NAME

    def start(self) -> None:
        """Start watching the inbox folder."""
        from watchdog.observers.polling import PollingObserver

        self.inbox_dir.mkdir(parents=True, exist_ok=True)

        self._observer = PollingObserver(timeout=DEFAULT_POLL_INTERVAL)
        self._observer.schedule(self, str(self.inbox_dir), recursive=False)
        self._observer.start()
        logger.info("Watching %s for notifications", self.inbox_dir)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Inbox watcher stopped")

    def pending_files(self) -> list[Path]:
        if not self.inbox_dir.exists():
            return []
        return [
            f for f in sorted(self.inbox_dir.iterdir())
            if f.is_file() and f.suffix.lower() in SUPPORTED_EXTENSIONS
        ]

    def process_pending(self) -> list[InboxResult]:
        """Ingest files that arrived while the watcher was not running."""
        results = []
        for filepath in self.pending_files():
            result = self._process_file(filepath)
            if result is not None:
                results.append(result)
        return results

    def on_created(self, event) -> None:
        if event.is_directory:
            return

        filepath = Path(event.src_path)
        if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
            return

        logger.info("New notification file: %s", filepath.name)
        self._process_file(filepath)

    def _archive(self, filepath: Path) -> None:
        self.processed_dir.mkdir(parents=True, exist_ok=True)
        filepath.replace(self.processed_dir / filepath.name)

    def _keep_failed(self, filepath: Path, result: InboxResult) -> None:
        """Rewrite the file to hold only the payloads that were not saved.

        Saved payloads get a fresh id on every ingest, so leaving them in
        the file would record them again on the next run.
        """
        lines = [
            raw if isinstance(raw, str) else json.dumps(raw, ensure_ascii=False)
            for raw in result.failed_payloads
        ]
        tmp = filepath.with_name(filepath.name + ".tmp")
        tmp.write_text("\n".join(lines) + "\n", encoding="utf-8")
        tmp.replace(filepath)
        logger.warning(
            "Kept %d unsaved payload(s) in %s for retry", len(lines), filepath.name,
        )

    def _process_file(self, filepath: Path) -> InboxResult | None:
        """Wait for stability, ingest, then archive the file."""
        try:
            wait_for_stable(
                filepath,
                stability_seconds=self.stability_seconds,
                check_interval=self.check_interval,
            )
            result = self.intake.process_file(filepath)
            logger.info(
                "Inbox result for %s: saved=%d, ignored=%d, invalid=%d, errors=%d",
                filepath.name, result.saved, result.ignored,
                result.invalid, result.errors,
            )
            if result.errors:
                self._keep_failed(filepath, result)
            else:
                self._archive(filepath)
            return result

        except FileStabilityError as e:
            logger.error("Inbox file validation failed: %s", e)
            self._archive(filepath)
        except TimeoutError as e:
            logger.error("Inbox file stability timeout: %s", e)
        except FileNotFoundError:
            logger.warning("Inbox file vanished before processing: %s", filepath.name)
        except Exception:
            logger.exception("Unexpected error processing %s", filepath.name)
        return None
