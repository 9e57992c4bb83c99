"""Monetary amount extraction from free notification text.

The currency table is data: adding a symbol or ISO code to it extends
every pattern. Four patterns are built from the table and tried in order:

  symbol before the number    €12,50   $ 12.50
  symbol after the number     12,50 €  1 234,56 kr
  code before the number      EUR 12,50
  code after the number       12.50 USD

Separator handling lives in normalize_amount_string() and is independent
of the patterns.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

DEFAULT_SYMBOLS = (
    "€", "$", "£", "¥", "₹", "₽", "zł", "Kč", "Ft", "lei",
    "лв", "kn", "kr", "Fr", "R$", "₩", "NT$",
)

DEFAULT_CODES = (
    "EUR", "USD", "GBP", "JPY", "AUD", "CAD", "CHF", "SEK", "NOK", "DKK",
    "PLN", "CZK", "HUF", "RON", "BGN", "HRK", "INR", "SGD", "HKD", "NZD",
    "MXN", "BRL", "KRW", "TWD", "RUB", "TRY", "ZAR", "THB", "PHP", "IDR",
)

# Spaces that may group thousands: regular, no-break, narrow no-break, thin
_GROUP_SPACES = " \u00a0\u202f\u2009"

# A numeral starts and ends with a digit. Groups of exactly three digits
# may follow a space, comma or dot; an optional decimal part comes last.
NUMERAL = rf"\d+(?:[{_GROUP_SPACES},.]\d{{3}})*(?:[.,]\d+)?"

_LETTER = r"[^\W\d_]"


def _token_regex(token: str, side: str) -> str:
    """Escape a currency token, fencing alphabetic edges off from words.

    'kr' must not match inside 'Tickr 12' and 'EUR' must not match the
    start of 'EUROS', while '$' keeps matching right after 'US'.
    """
    escaped = re.escape(token)
    if side == "before" and token[:1].isalpha():
        escaped = rf"(?<!{_LETTER}){escaped}"
    if side == "after" and token[-1:].isalpha():
        escaped = rf"{escaped}(?!{_LETTER})"
    return escaped


def _alternation(tokens: tuple[str, ...], side: str) -> str:
    # Longest first so 'NT$' wins over '$' at the same position
    ordered = sorted(tokens, key=len, reverse=True)
    return "|".join(_token_regex(t, side) for t in ordered)


@dataclass
class CurrencyTable:
    """Currency symbols and ISO codes recognised next to an amount."""
    symbols: tuple[str, ...] = DEFAULT_SYMBOLS
    codes: tuple[str, ...] = DEFAULT_CODES
    patterns: list[re.Pattern] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.symbols = tuple(s for s in self.symbols if s)
        self.codes = tuple(c for c in self.codes if c)
        if not self.symbols and not self.codes:
            raise ValueError("Currency table needs at least one symbol or code")
        self.patterns = build_amount_patterns(self.symbols, self.codes)


def build_amount_patterns(
    symbols: tuple[str, ...], codes: tuple[str, ...],
) -> list[re.Pattern]:
    """Compile the ordered amount patterns for a set of symbols and codes."""
    patterns: list[re.Pattern] = []
    for tokens in (symbols, codes):
        if not tokens:
            continue
        before = _alternation(tokens, "before")
        after = _alternation(tokens, "after")
        patterns.append(
            re.compile(rf"(?:{before})[^\S\r\n]*({NUMERAL})", re.IGNORECASE)
        )
        patterns.append(
            re.compile(rf"({NUMERAL})[^\S\r\n]*(?:{after})", re.IGNORECASE)
        )
    return patterns


def normalize_amount_string(num_str: str) -> float | None:
    """Convert a locale-formatted numeral to a float.

    - Whitespace is stripped (space-grouped thousands)
    - Both ',' and '.' present: the rightmost one is the decimal separator
    - One kind of separator appearing more than once: grouping
    - A single separator followed by exactly three digits: grouping
    - Any other single separator: decimal

    Returns None if the result is not a finite number.
    """
    cleaned = re.sub(r"\s", "", num_str)
    if not cleaned:
        return None

    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")

    if last_comma == -1 and last_dot == -1:
        normalized = cleaned
    elif last_comma != -1 and last_dot != -1:
        if last_comma > last_dot:
            normalized = cleaned.replace(".", "").replace(",", ".")
        else:
            normalized = cleaned.replace(",", "")
    else:
        separator = "," if last_comma != -1 else "."
        parts = cleaned.split(separator)
        if len(parts) > 2 or len(parts[-1]) == 3:
            normalized = cleaned.replace(separator, "")
        else:
            normalized = cleaned.replace(separator, ".")

    try:
        amount = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(amount):
        return None
    return amount


DEFAULT_CURRENCY_TABLE = CurrencyTable()


def parse_amount(
    text: str | None, table: CurrencyTable = DEFAULT_CURRENCY_TABLE,
) -> float | None:
    """Find the first positive currency-adjacent amount in text.

    Patterns are tried in table order; within a pattern, matches are
    tried left to right. Returns None when nothing qualifies.
    """
    if not text:
        return None

    for pattern in table.patterns:
        for match in pattern.finditer(text):
            amount = normalize_amount_string(match.group(1))
            if amount is not None and amount > 0:
                return amount
    return None
