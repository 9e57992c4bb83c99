"""Home-screen widget renderer.

Reads the latest settings and ledger straight from the store so the
widget stays current after background intake, and reduces the budget
status to the one line the widget shows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from dailybudget.budget.engine import calculate_budget_status
from dailybudget.formatting import format_currency

if TYPE_CHECKING:
    from dailybudget.database.store import LedgerStore

logger = logging.getLogger(__name__)

SETUP_TEXT = "Setup app"
ERROR_TEXT = "Error"

RENDER_ACTIONS = frozenset({"WIDGET_ADDED", "WIDGET_UPDATE", "WIDGET_RESIZED"})


@dataclass
class WidgetView:
    text: str
    is_negative: bool = False


def render_widget(
    store: LedgerStore,
    now: datetime | None = None,
    currency: str = "EUR",
) -> WidgetView:
    """Render the available budget, or a setup/error placeholder."""
    try:
        settings = store.get_budget_settings()
        if settings is None:
            return WidgetView(SETUP_TEXT)

        status = calculate_budget_status(
            store.get_transactions(), settings.monthly_budget, now=now,
        )
    except Exception:
        logger.exception("Error rendering widget")
        return WidgetView(ERROR_TEXT)

    return WidgetView(
        text=format_currency(status.available_budget, currency),
        is_negative=status.available_budget < 0,
    )


def handle_widget_action(
    action: str,
    store: LedgerStore,
    now: datetime | None = None,
    currency: str = "EUR",
) -> WidgetView | None:
    """Render for add/update/resize actions; other actions need no view."""
    if action not in RENDER_ACTIONS:
        return None
    return render_widget(store, now=now, currency=currency)
