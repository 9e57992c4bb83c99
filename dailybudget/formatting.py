"""Display formatting for amounts and dates (Finnish conventions).

Amounts use a no-break space to group thousands, a comma as the decimal
separator and the currency symbol after the number: 1 234,50 €.
"""

from __future__ import annotations

from datetime import tzinfo

from dailybudget.dates import parse_timestamp

NBSP = "\u00a0"

CURRENCY_SYMBOLS = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "SEK": "kr",
    "NOK": "kr",
    "DKK": "kr",
    "PLN": "zł",
    "CZK": "Kč",
    "CHF": "CHF",
}


def format_amount(amount: float) -> str:
    """Two decimals, no-break-space thousands, comma decimal: 1 234,50."""
    text = f"{abs(amount):,.2f}"
    return text.replace(",", NBSP).replace(".", ",")


def format_currency(amount: float, currency: str = "EUR") -> str:
    """Format the magnitude of an amount; the caller shows the sign.

    Unknown currency codes are shown as the code itself.
    """
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), currency.upper())
    return f"{format_amount(amount)}{NBSP}{symbol}"


def format_date(value, tz: tzinfo | None = None) -> str:
    """Short local date and time, e.g. '5.10. 14.07'."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return "Unknown date"
    local = parsed.astimezone(tz) if tz is not None else parsed.astimezone()
    return f"{local.day}.{local.month}. {local.hour:02d}.{local.minute:02d}"
