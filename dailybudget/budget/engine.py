"""Budget engine: daily accrual with rollover over the calendar month.

The monthly budget accrues one day at a time. On day N of a month the
user has N daily allowances available, minus what was spent this month,
plus what came in. Nothing is front-loaded, so spending ahead of accrual
drives the available budget negative; that is the overspend signal, not
an error.

Every function takes the current time as an optional `now` so results are
reproducible. Local calendar boundaries follow the timezone carried by
`now` (the system timezone by default).
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable
from datetime import datetime

from dailybudget.dates import day_key, local_now, parse_timestamp
from dailybudget.models import (
    BudgetStatus,
    MonthProjection,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

UNKNOWN_DAY = "unknown"


def _resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return local_now()
    return now if now.tzinfo is not None else now.astimezone()


def days_in_month(year: int, month: int) -> int:
    """Number of days in a month (1-12), leap years included."""
    return calendar.monthrange(year, month)[1]


def month_start(now: datetime | None = None) -> datetime:
    """Midnight on day 1 of now's month, in now's timezone."""
    now = _resolve_now(now)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def days_remaining_in_month(now: datetime | None = None) -> int:
    """Days left in the month, today included."""
    now = _resolve_now(now)
    return days_in_month(now.year, now.month) - now.day + 1


def get_daily_allowance(monthly_budget: float, now: datetime | None = None) -> float:
    """Monthly budget spread over the days of the current month.

    Used as a preview while the budget is being set up; shares the month
    length logic with calculate_budget_status() so the preview matches the
    computed value after saving.
    """
    now = _resolve_now(now)
    return monthly_budget / days_in_month(now.year, now.month)


def _fields(txn: Transaction | dict) -> tuple:
    """(timestamp, amount, type) of a Transaction or its stored dict form."""
    if isinstance(txn, Transaction):
        return txn.timestamp, txn.amount, txn.type
    return txn.get("timestamp"), txn.get("amount"), txn.get("type")


def calculate_budget_status(
    transactions: Iterable[Transaction | dict],
    monthly_budget: float,
    now: datetime | None = None,
) -> BudgetStatus:
    """Compute today's available budget from the ledger.

    Only transactions with a valid timestamp inside [month start, now]
    count. Income adds to the budget; expense and auto_payment subtract.
    The order of the ledger does not matter.

    monthly_budget must be positive; validating it is the caller's job.
    """
    now = _resolve_now(now)
    start = month_start(now)

    days_elapsed = now.day
    month_days = days_in_month(now.year, now.month)
    daily_allowance = get_daily_allowance(monthly_budget, now)
    total_budget_accumulated = daily_allowance * days_elapsed

    total_spent = 0.0
    total_income = 0.0
    skipped = 0

    for txn in transactions:
        timestamp, amount, txn_type = _fields(txn)
        occurred = parse_timestamp(timestamp)
        if occurred is None:
            skipped += 1
            continue
        if not (start <= occurred <= now):
            continue

        value = abs(float(amount or 0))
        if txn_type == TransactionType.INCOME:
            total_income += value
        else:
            total_spent += value

    if skipped:
        logger.debug("Skipped %d transaction(s) with invalid timestamps", skipped)

    return BudgetStatus(
        available_budget=total_budget_accumulated - total_spent + total_income,
        daily_allowance=daily_allowance,
        total_spent=total_spent,
        total_income=total_income,
        total_budget_accumulated=total_budget_accumulated,
        days_elapsed=days_elapsed,
        days_remaining=month_days - days_elapsed + 1,
        days_in_month=month_days,
    )


def get_month_projection(
    budget_status: BudgetStatus, monthly_budget: float,
) -> MonthProjection:
    """Project the end-of-month balance if no more money is spent.

    Today's allowance is already in available_budget, so only the
    remaining whole days are added.
    """
    projected = (
        budget_status.available_budget
        + budget_status.daily_allowance * (budget_status.days_remaining - 1)
    )
    savings_rate = max(0.0, projected / monthly_budget) * 100
    return MonthProjection(projected_end_balance=projected, savings_rate=savings_rate)


def group_transactions_by_day(
    transactions: Iterable[Transaction | dict], tz=None,
) -> dict[str, list]:
    """Group transactions by local calendar day (YYYY-MM-DD).

    Keys appear in first-seen order, so a newest-first ledger yields
    newest-first sections. Transactions with invalid timestamps are
    collected under "unknown".
    """
    groups: dict[str, list] = {}
    for txn in transactions:
        timestamp = _fields(txn)[0]
        key = day_key(timestamp, tz) or UNKNOWN_DAY
        groups.setdefault(key, []).append(txn)
    return groups
