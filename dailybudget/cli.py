"""CLI entry point for DailyBudget.

Commands:
    dailybudget status                       Today's available budget and month stats
    dailybudget set-budget AMOUNT            Set the monthly budget
    dailybudget preview AMOUNT               Daily allowance a budget would give
    dailybudget add {expense,income} AMOUNT [DESCRIPTION]
                                             Add a manual transaction
    dailybudget edit ID [--amount] [--description]
                                             Edit a transaction
    dailybudget delete ID                    Delete a transaction
    dailybudget list                         Transactions grouped by day
    dailybudget ingest [FILE|-]              Ingest notification payload(s)
    dailybudget watch                        Watch the inbox folder for notifications
    dailybudget widget                       Print the widget text
    dailybudget migrate                      Move legacy notification data into the ledger
    dailybudget clear --yes                  Delete every transaction
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from dailybudget.models import TransactionType

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on BUDGET_LOG_LEVEL env var."""
    level = os.environ.get("BUDGET_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config, or None when the config directory is absent."""
    from dailybudget.config import Config

    config_dir = os.environ.get("BUDGET_CONFIG_DIR", "config")
    try:
        return Config(config_dir=config_dir)
    except FileNotFoundError:
        logger.debug("No config directory at %s, using defaults", config_dir)
        return None


def _get_store():
    """Create a LedgerStore on the configured database."""
    from dailybudget.database.store import LedgerStore

    db_path = os.environ.get("BUDGET_DB_PATH", "budget.db")
    return LedgerStore(db_path=db_path)


def _get_inbox_dir() -> Path:
    return Path(os.environ.get("BUDGET_INBOX_DIR", "inbox"))


def _get_rules(config):
    from dailybudget.parsers.notification import DEFAULT_RULES, ParserRules

    if config is None:
        return DEFAULT_RULES
    return ParserRules.from_config(config)


def _currency(config) -> str:
    return config.display_currency if config is not None else "EUR"


def _parse_budget(value: str) -> float:
    """Validate a monthly budget before it reaches the budget engine.

    Separators follow the same rule as notification amounts, so both
    1.234,50 and 1,234.50 are accepted.
    """
    from dailybudget.parsers.amounts import normalize_amount_string

    budget = normalize_amount_string(value)
    if budget is None:
        raise ValueError(f"Monthly budget must be a number, got '{value}'")
    if budget <= 0:
        raise ValueError(f"Monthly budget must be positive, got '{value}'")
    return budget


def _signed(amount: float, currency: str) -> str:
    from dailybudget.formatting import format_currency

    sign = "-" if amount < 0 else ""
    return f"{sign}{format_currency(amount, currency)}"


# ── Command handlers ─────────────────────────────────────


def cmd_status(args: argparse.Namespace) -> int:
    """Show today's available budget with month stats and projection."""
    from dailybudget.budget.engine import calculate_budget_status, get_month_projection

    config = _get_config()
    currency = _currency(config)
    store = _get_store()
    try:
        settings = store.get_budget_settings()
        if settings is None:
            print("No budget set. Run: dailybudget set-budget AMOUNT")
            return 1

        status = calculate_budget_status(store.get_transactions(), settings.monthly_budget)
        projection = get_month_projection(status, settings.monthly_budget)
    finally:
        store.close()

    print("DailyBudget Status")
    print("=" * 40)
    print(f"  Available today:     {_signed(status.available_budget, currency)}")
    print(f"  Daily allowance:     {_signed(status.daily_allowance, currency)}")
    print(f"  Accumulated:         {_signed(status.total_budget_accumulated, currency)}")
    print(f"  Spent this month:    {_signed(status.total_spent, currency)}")
    print(f"  Income this month:   {_signed(status.total_income, currency)}")
    print(f"  Day:                 {status.days_elapsed} / {status.days_in_month}"
          f" ({status.days_remaining} remaining)")
    print(f"\n  Projected month end: {_signed(projection.projected_end_balance, currency)}")
    print(f"  Savings rate:        {projection.savings_rate:.1f}%")
    if status.available_budget < 0:
        print("\n  Overspent: spending is ahead of the daily accrual.")
    return 0


def cmd_set_budget(args: argparse.Namespace) -> int:
    """Validate and save the monthly budget."""
    from dailybudget.dates import local_now, to_iso
    from dailybudget.models import BudgetSettings

    try:
        budget = _parse_budget(args.amount)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    store = _get_store()
    try:
        store.save_budget_settings(
            BudgetSettings(monthly_budget=budget, start_date=to_iso(local_now()))
        )
    finally:
        store.close()
    print(f"Monthly budget set to {_signed(budget, _currency(_get_config()))}.")
    return 0


def cmd_preview(args: argparse.Namespace) -> int:
    """Show the daily allowance a budget would give this month."""
    from dailybudget.budget.engine import get_daily_allowance

    try:
        budget = _parse_budget(args.amount)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    allowance = get_daily_allowance(budget)
    print(f"Daily allowance: {_signed(allowance, _currency(_get_config()))}")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    """Add a manual expense or income."""
    from dailybudget.database.store import create_transaction

    try:
        txn = create_transaction(args.amount, args.type, args.description)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    store = _get_store()
    try:
        store.save_transaction(txn)
    finally:
        store.close()
    print(f"Added {txn.type} {txn.id}: {txn.amount:.2f} ({txn.description})")
    return 0


def cmd_edit(args: argparse.Namespace) -> int:
    """Edit the amount and/or description of a transaction."""
    if args.amount is None and args.description is None:
        print("Error: Nothing to change (use --amount and/or --description).")
        return 1

    store = _get_store()
    try:
        if not any(t.id == args.id for t in store.get_transactions()):
            print(f"Error: Transaction '{args.id}' not found.")
            return 1
        try:
            store.update_transaction(
                args.id, amount=args.amount, description=args.description,
            )
        except ValueError as e:
            print(f"Error: {e}")
            return 1
    finally:
        store.close()
    print(f"Updated '{args.id}'.")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a transaction by id."""
    store = _get_store()
    try:
        before = len(store.get_transactions())
        after = len(store.delete_transaction(args.id))
    finally:
        store.close()

    if before == after:
        print(f"Error: Transaction '{args.id}' not found.")
        return 1
    print(f"Deleted '{args.id}'.")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List transactions grouped by local day, newest first."""
    from dailybudget.budget.engine import group_transactions_by_day
    from dailybudget.formatting import format_date

    currency = _currency(_get_config())
    store = _get_store()
    try:
        transactions = store.get_transactions()
    finally:
        store.close()

    if not transactions:
        print("No transactions.")
        return 0

    for day, group in group_transactions_by_day(transactions).items():
        print(day)
        print("-" * 72)
        for t in group:
            sign = "+" if t.is_income else "-"
            print(
                f"  {format_date(t.timestamp):<14} {sign}{_signed(t.amount, currency):>14}"
                f"  {t.description[:30]:<30} [{t.source}] {t.id}"
            )
        print()
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    """Ingest notification payloads from a file or stdin."""
    from dailybudget.watcher.observer import (
        FileStabilityError,
        InboxResult,
        NotificationIntake,
        read_payloads,
    )

    config = _get_config()
    store = _get_store()
    intake = NotificationIntake(store, rules=_get_rules(config), currency=_currency(config))

    try:
        if args.file is None or str(args.file) == "-":
            result = InboxResult(file_name="<stdin>")
            for line in sys.stdin:
                if line.strip():
                    result.add(intake.process(line))
        else:
            filepath = args.file.resolve()
            if not filepath.exists():
                print(f"Error: File not found: {filepath}")
                return 1
            try:
                result = intake.process_file(filepath)
            except FileStabilityError as e:
                print(f"Error: {e}")
                return 1
    finally:
        store.close()

    print(
        f"{result.file_name}: saved={result.saved}, ignored={result.ignored},"
        f" invalid={result.invalid}, errors={result.errors}"
    )
    for r in result.results:
        if r.status == "saved" and r.widget is not None:
            print(f"  {r.transaction_id} -> available {r.widget.text}")
    return 1 if result.errors else 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Start the inbox watcher daemon."""
    from dailybudget.watcher.observer import InboxWatcher, NotificationIntake

    config = _get_config()
    store = _get_store()
    intake = NotificationIntake(store, rules=_get_rules(config), currency=_currency(config))
    watcher = InboxWatcher(inbox_dir=_get_inbox_dir(), intake=intake)

    for result in watcher.process_pending():
        print(f"  {result.file_name}: saved={result.saved}, ignored={result.ignored}")

    print(f"Watching {watcher.inbox_dir} for notifications... (Ctrl+C to stop)")
    watcher.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping watcher...")
    finally:
        watcher.stop()
        store.close()

    return 0


def cmd_widget(args: argparse.Namespace) -> int:
    """Print what the home-screen widget shows."""
    from dailybudget.widget import render_widget

    store = _get_store()
    try:
        view = render_widget(store, currency=_currency(_get_config()))
    finally:
        store.close()
    print(f"-{view.text}" if view.is_negative else view.text)
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Move legacy @payment_notifications data into the ledger."""
    store = _get_store()
    try:
        added = store.migrate_old_data()
    finally:
        store.close()
    print(f"Migrated {added} legacy notification(s).")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    """Delete every transaction (settings are kept)."""
    if not args.yes:
        print("Refusing to clear the ledger without --yes.")
        return 1
    store = _get_store()
    try:
        store.clear_transactions()
    finally:
        store.close()
    print("All transactions deleted.")
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "status": cmd_status,
    "set-budget": cmd_set_budget,
    "preview": cmd_preview,
    "add": cmd_add,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "list": cmd_list,
    "ingest": cmd_ingest,
    "watch": cmd_watch,
    "widget": cmd_widget,
    "migrate": cmd_migrate,
    "clear": cmd_clear,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="dailybudget",
        description="DailyBudget daily allowance tracker",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show today's available budget")

    set_p = subparsers.add_parser("set-budget", help="Set the monthly budget")
    set_p.add_argument("amount", help="Monthly budget amount")

    preview_p = subparsers.add_parser("preview", help="Preview the daily allowance for a budget")
    preview_p.add_argument("amount", help="Monthly budget amount")

    add_p = subparsers.add_parser("add", help="Add a manual transaction")
    add_p.add_argument(
        "type", choices=[TransactionType.EXPENSE, TransactionType.INCOME],
        help="Transaction type",
    )
    add_p.add_argument("amount", type=float, help="Amount (sign is ignored)")
    add_p.add_argument("description", nargs="?", help="Optional description")

    edit_p = subparsers.add_parser("edit", help="Edit a transaction")
    edit_p.add_argument("id", help="Transaction ID")
    edit_p.add_argument("--amount", type=float, help="New amount")
    edit_p.add_argument("--description", help="New description")

    delete_p = subparsers.add_parser("delete", help="Delete a transaction")
    delete_p.add_argument("id", help="Transaction ID")

    subparsers.add_parser("list", help="List transactions grouped by day")

    ingest_p = subparsers.add_parser("ingest", help="Ingest notification payload(s)")
    ingest_p.add_argument(
        "file", nargs="?", type=Path,
        help="JSON / JSON-lines file, or '-' for stdin (default)",
    )

    subparsers.add_parser("watch", help="Watch the inbox folder for notifications")
    subparsers.add_parser("widget", help="Print the widget text")
    subparsers.add_parser("migrate", help="Migrate legacy notification data")

    clear_p = subparsers.add_parser("clear", help="Delete every transaction")
    clear_p.add_argument("--yes", action="store_true", help="Confirm deletion")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
