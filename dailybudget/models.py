"""Dataclass models for the ledger, budget settings and derived status.

Transaction and BudgetSettings round-trip through the JSON blobs kept by
the store; their wire keys are camelCase. BudgetStatus and MonthProjection
are derived on every read and never persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field


class TransactionType:
    EXPENSE = "expense"
    INCOME = "income"
    AUTO_PAYMENT = "auto_payment"

    ALL = frozenset({EXPENSE, INCOME, AUTO_PAYMENT})


SOURCE_MANUAL = "manual"
SOURCE_AUTO = "auto"


@dataclass
class Transaction:
    id: str
    timestamp: str | int | float
    amount: float
    type: str
    description: str
    source: str = SOURCE_MANUAL
    raw_notification: dict | None = None

    def __post_init__(self):
        if self.type not in TransactionType.ALL:
            raise ValueError(f"Unknown transaction type: {self.type!r}")
        # Sign is implied by type, never stored
        self.amount = abs(float(self.amount))

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "amount": self.amount,
            "type": self.type,
            "description": self.description,
            "source": self.source,
        }
        if self.raw_notification is not None:
            data["rawNotification"] = self.raw_notification
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Transaction:
        """Build a Transaction from its stored form.

        Raises:
            ValueError: If a required key is missing or a value is invalid.
        """
        try:
            txn_type = data["type"]
            return cls(
                id=str(data["id"]),
                timestamp=data["timestamp"],
                amount=float(data["amount"]),
                type=txn_type,
                description=data.get("description")
                or ("Income" if txn_type == TransactionType.INCOME else "Expense"),
                source=data.get("source", SOURCE_MANUAL),
                raw_notification=data.get("rawNotification"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid transaction record: {e}") from e


@dataclass
class BudgetSettings:
    monthly_budget: float
    start_date: str

    def __post_init__(self):
        budget = self.monthly_budget
        if isinstance(budget, bool) or not isinstance(budget, (int, float)):
            raise ValueError(f"Monthly budget must be a number, got {budget!r}")
        if not math.isfinite(budget) or budget <= 0:
            raise ValueError(f"Monthly budget must be positive, got {budget!r}")
        self.monthly_budget = float(budget)

    def to_dict(self) -> dict:
        return {"monthlyBudget": self.monthly_budget, "startDate": self.start_date}

    @classmethod
    def from_dict(cls, data: dict) -> BudgetSettings:
        if "monthlyBudget" not in data:
            raise ValueError("Budget settings missing monthlyBudget")
        return cls(
            monthly_budget=data["monthlyBudget"],
            start_date=str(data.get("startDate", "")),
        )


@dataclass
class BudgetStatus:
    """Snapshot of the current month computed by the budget engine."""
    available_budget: float
    daily_allowance: float
    total_spent: float
    total_income: float
    total_budget_accumulated: float
    days_elapsed: int
    days_remaining: int
    days_in_month: int


@dataclass
class MonthProjection:
    projected_end_balance: float
    savings_rate: float  # percent of the monthly budget, never below 0


@dataclass
class NotificationPayload:
    """Structured notification as delivered by the listener."""
    app: str
    title: str | None = None
    title_big: str | None = None
    text: str | None = None
    big_text: str | None = None
    time: str | int | float | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> NotificationPayload:
        known = {"app", "title", "titleBig", "text", "bigText", "time"}
        return cls(
            app=str(data["app"]),
            title=data.get("title"),
            title_big=data.get("titleBig"),
            text=data.get("text"),
            big_text=data.get("bigText"),
            time=data.get("time"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data["app"] = self.app
        for key, value in (
            ("title", self.title),
            ("titleBig", self.title_big),
            ("text", self.text),
            ("bigText", self.big_text),
            ("time", self.time),
        ):
            if value is not None:
                data[key] = value
        return data
