"""Tests for budget.engine — accrual, month filtering, projection, grouping."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from dailybudget.budget.engine import (
    calculate_budget_status,
    days_in_month,
    days_remaining_in_month,
    get_daily_allowance,
    get_month_projection,
    group_transactions_by_day,
    month_start,
)
from dailybudget.dates import to_iso
from dailybudget.models import BudgetStatus, Transaction, TransactionType
from tests.conftest import utc


def _txn(amount, txn_type=TransactionType.EXPENSE, when=None, txn_id=None, **overrides):
    return Transaction(
        id=txn_id or f"t_{amount}_{txn_type}",
        timestamp=to_iso(when) if isinstance(when, datetime) else when,
        amount=amount,
        type=txn_type,
        description=overrides.pop("description", "Test"),
        **overrides,
    )


class TestCalendarHelpers:
    def test_days_in_month(self):
        assert days_in_month(2026, 1) == 31
        assert days_in_month(2026, 4) == 30
        assert days_in_month(2026, 2) == 28

    def test_leap_february(self):
        assert days_in_month(2028, 2) == 29
        assert days_in_month(2100, 2) == 28
        assert days_in_month(2000, 2) == 29

    def test_month_start(self):
        start = month_start(utc(2026, 10, 18, 15, 30))
        assert start == datetime(2026, 10, 1, tzinfo=timezone.utc)

    def test_days_remaining_includes_today(self):
        assert days_remaining_in_month(utc(2026, 10, 18)) == 14
        assert days_remaining_in_month(utc(2026, 10, 31)) == 1
        assert days_remaining_in_month(utc(2026, 10, 1)) == 31

    def test_naive_now_treated_as_local(self):
        naive = datetime(2026, 10, 18, 12, 0)
        assert days_remaining_in_month(naive) == 14


class TestDailyAllowance:
    def test_thirty_day_month(self):
        assert get_daily_allowance(300, utc(2026, 9, 10)) == pytest.approx(10.0)

    def test_allowance_times_days_is_budget(self):
        for month_date in [utc(2026, 2, 5), utc(2028, 2, 5), utc(2026, 4, 5), utc(2026, 1, 5)]:
            days = days_in_month(month_date.year, month_date.month)
            allowance = get_daily_allowance(1234.56, month_date)
            assert allowance * days == pytest.approx(1234.56)

    def test_preview_matches_status(self):
        now = utc(2026, 2, 14)
        status = calculate_budget_status([], 500, now=now)
        assert get_daily_allowance(500, now) == status.daily_allowance


class TestCalculateBudgetStatus:
    def test_february_day_one_no_transactions(self):
        now = utc(2026, 2, 1, 9)
        status = calculate_budget_status([], 310, now=now)
        assert status.days_in_month == 28
        assert status.days_elapsed == 1
        assert status.daily_allowance == pytest.approx(11.0714, abs=1e-3)
        assert status.total_budget_accumulated == pytest.approx(11.0714, abs=1e-3)
        assert status.available_budget == pytest.approx(11.0714, abs=1e-3)
        assert status.days_remaining == 28

    def test_income_and_expense_today(self):
        now = utc(2026, 9, 10, 18)
        today = utc(2026, 9, 10, 9)
        transactions = [
            _txn(50, TransactionType.INCOME, today, txn_id="in"),
            _txn(30, TransactionType.EXPENSE, today, txn_id="out"),
        ]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.total_budget_accumulated == pytest.approx(100)
        assert status.total_spent == pytest.approx(30)
        assert status.total_income == pytest.approx(50)
        assert status.available_budget == pytest.approx(120)
        assert status.days_remaining == 21

    def test_auto_payment_counts_as_spending(self):
        now = utc(2026, 9, 10, 18)
        transactions = [_txn(12.5, TransactionType.AUTO_PAYMENT, utc(2026, 9, 3))]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.total_spent == pytest.approx(12.5)
        assert status.available_budget == pytest.approx(87.5)

    def test_overspend_goes_negative(self):
        now = utc(2026, 9, 1, 10)
        transactions = [_txn(200, when=utc(2026, 9, 1, 8))]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.available_budget == pytest.approx(10 - 200)

    def test_previous_month_excluded(self):
        now = utc(2026, 9, 10, 18)
        transactions = [
            _txn(40, when=utc(2026, 8, 31, 23, 59), txn_id="old"),
            _txn(5, when=utc(2026, 9, 1, 0, 0), txn_id="first"),
        ]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.total_spent == pytest.approx(5)

    def test_future_transactions_excluded(self):
        now = utc(2026, 9, 10, 18)
        transactions = [
            _txn(40, when=now + timedelta(minutes=1), txn_id="later"),
            _txn(7, when=now, txn_id="exactly-now"),
        ]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.total_spent == pytest.approx(7)

    def test_invalid_timestamps_excluded(self):
        now = utc(2026, 9, 10, 18)
        valid = [_txn(10, when=utc(2026, 9, 5), txn_id="ok")]
        invalid = [
            _txn(99, when="not a date", txn_id="bad1"),
            _txn(99, when="", txn_id="bad2"),
            _txn(99, when=None, txn_id="bad3"),
            _txn(99, when="NaN", txn_id="bad4"),
        ]
        base = calculate_budget_status(valid, 300, now=now)
        with_invalid = calculate_budget_status(valid + invalid, 300, now=now)
        assert with_invalid.total_spent == base.total_spent
        assert with_invalid.total_income == base.total_income

    def test_epoch_ms_timestamps(self):
        now = utc(2026, 9, 10, 18)
        ms = int(utc(2026, 9, 9).timestamp() * 1000)
        transactions = [
            _txn(3, when=ms, txn_id="num"),
            _txn(4, when=str(ms), txn_id="str"),
        ]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.total_spent == pytest.approx(7)

    def test_order_independent(self):
        now = utc(2026, 9, 20, 18)
        transactions = [
            _txn(i * 1.1, TransactionType.INCOME if i % 4 == 0 else TransactionType.EXPENSE,
                 utc(2026, 9, 1 + i % 20), txn_id=f"t{i}")
            for i in range(1, 30)
        ]
        expected = calculate_budget_status(transactions, 900, now=now)
        shuffled = list(transactions)
        random.Random(7).shuffle(shuffled)
        actual = calculate_budget_status(shuffled, 900, now=now)
        assert actual.available_budget == pytest.approx(expected.available_budget)
        assert actual.total_spent == pytest.approx(expected.total_spent)
        assert actual.total_income == pytest.approx(expected.total_income)

    def test_accepts_stored_dicts(self):
        now = utc(2026, 9, 10, 18)
        transactions = [
            {"id": "a", "timestamp": to_iso(utc(2026, 9, 2)), "amount": 20,
             "type": "expense", "description": "x", "source": "manual"},
            {"id": "b", "timestamp": to_iso(utc(2026, 9, 3)), "amount": 5,
             "type": "income", "description": "y", "source": "manual"},
        ]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.available_budget == pytest.approx(100 - 20 + 5)

    def test_month_boundary_follows_now_timezone(self):
        helsinki = timezone(timedelta(hours=3))
        now = datetime(2026, 9, 10, 12, tzinfo=helsinki)
        # 22:30 UTC on Aug 31 is 01:30 on Sep 1 in UTC+3
        transactions = [_txn(8, when="2026-08-31T22:30:00.000Z")]
        status = calculate_budget_status(transactions, 300, now=now)
        assert status.total_spent == pytest.approx(8)


class TestMonthProjection:
    def test_projection_adds_remaining_whole_days(self):
        status = BudgetStatus(
            available_budget=120, daily_allowance=10, total_spent=30,
            total_income=50, total_budget_accumulated=100,
            days_elapsed=10, days_remaining=21, days_in_month=30,
        )
        projection = get_month_projection(status, 300)
        assert projection.projected_end_balance == pytest.approx(120 + 10 * 20)
        assert projection.savings_rate == pytest.approx(320 / 300 * 100)

    def test_no_spending_projects_full_budget(self):
        now = utc(2026, 9, 10)
        status = calculate_budget_status([], 300, now=now)
        projection = get_month_projection(status, 300)
        assert projection.projected_end_balance == pytest.approx(300)
        assert projection.savings_rate == pytest.approx(100)

    def test_savings_rate_floor_zero(self):
        now = utc(2026, 9, 10)
        status = calculate_budget_status([_txn(1000, when=utc(2026, 9, 2))], 300, now=now)
        projection = get_month_projection(status, 300)
        assert projection.projected_end_balance < 0
        assert projection.savings_rate == 0

    def test_last_day_adds_nothing(self):
        now = utc(2026, 9, 30)
        status = calculate_budget_status([], 300, now=now)
        projection = get_month_projection(status, 300)
        assert projection.projected_end_balance == pytest.approx(status.available_budget)


class TestGroupTransactionsByDay:
    def test_groups_by_local_day(self):
        transactions = [
            _txn(1, when=utc(2026, 10, 18, 20), txn_id="a"),
            _txn(2, when=utc(2026, 10, 18, 8), txn_id="b"),
            _txn(3, when=utc(2026, 10, 5, 8), txn_id="c"),
        ]
        groups = group_transactions_by_day(transactions, tz=timezone.utc)
        assert list(groups) == ["2026-10-18", "2026-10-05"]
        assert [t.id for t in groups["2026-10-18"]] == ["a", "b"]

    def test_local_timezone_shifts_day(self):
        helsinki = timezone(timedelta(hours=3))
        transactions = [_txn(1, when="2026-10-04T22:30:00.000Z")]
        groups = group_transactions_by_day(transactions, tz=helsinki)
        assert list(groups) == ["2026-10-05"]

    def test_invalid_timestamp_grouped_as_unknown(self):
        groups = group_transactions_by_day([_txn(1, when="garbage")], tz=timezone.utc)
        assert list(groups) == ["unknown"]

    def test_empty(self):
        assert group_transactions_by_day([]) == {}
