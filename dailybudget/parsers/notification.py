"""Payment notification parser.

Turns a notification payload from a payment app into an auto_payment
Transaction, or classifies it as not a payment:

  decode → app filter → amount → merchant → record

Most notifications from the payment app (card added, promotions, pass
updates) carry no currency amount and are dropped at the amount step.
That is a classification outcome, not an error, so nothing here raises
for it.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from dailybudget.dates import local_now, parse_timestamp, to_iso
from dailybudget.models import (
    SOURCE_AUTO,
    NotificationPayload,
    Transaction,
    TransactionType,
)
from dailybudget.parsers.amounts import (
    DEFAULT_CODES,
    DEFAULT_SYMBOLS,
    CurrencyTable,
    parse_amount,
)

if TYPE_CHECKING:
    from dailybudget.config import Config

logger = logging.getLogger(__name__)

# Google Wallet (Europe, USA tap-to-pay) and Google Pay (India, Singapore, ...)
DEFAULT_PAYMENT_APPS = (
    "com.google.android.apps.walletnfcrel",
    "com.google.android.apps.nbu.paisa.user",
)

# Group 1 is the merchant. Tried in order against "title text".
DEFAULT_MERCHANT_PATTERNS = (
    r"(?<!\w)(?:at|@)\s+(.+?)(?:\s+for\b|\s+€|$)",
    r"(?<!\w)(?:to|maksu)\s+(.+?)(?:\s+for\b|\s+€|$)",
    r"(?<!\w)(?:paid|maksettiin)\s+(?:.*?)\s+(?:at|@)\s+(.+)",
)

# Titles containing these are the app's own label, not a merchant
DEFAULT_PROVIDER_LABELS = ("google pay", "google wallet")

UNKNOWN_MERCHANT = "Unknown"


# ── Classification result ────────────────────────────────


class Outcome:
    PAYMENT = "payment"
    NOT_PAYMENT = "not_payment"
    INVALID = "invalid"


class Reason:
    UNRECOGNIZED_APP = "unrecognized_app"
    NO_AMOUNT = "no_amount"
    MALFORMED_PAYLOAD = "malformed_payload"


@dataclass
class ParseResult:
    """Outcome of classifying one notification."""
    outcome: str
    transaction: Transaction | None = None
    reason: str | None = None

    @property
    def is_payment(self) -> bool:
        return self.outcome == Outcome.PAYMENT


@dataclass
class ParserRules:
    """Allow-list, currency table and merchant patterns used by the parser."""
    payment_apps: frozenset[str] = frozenset(DEFAULT_PAYMENT_APPS)
    currency: CurrencyTable = field(default_factory=CurrencyTable)
    merchant_patterns: list[re.Pattern] = field(
        default_factory=lambda: _compile_merchant_patterns(DEFAULT_MERCHANT_PATTERNS)
    )
    provider_labels: tuple[str, ...] = DEFAULT_PROVIDER_LABELS

    @classmethod
    def from_config(cls, config: Config) -> ParserRules:
        """Build rules from notifications.yaml, keeping defaults for absent keys."""
        apps = config.payment_apps or list(DEFAULT_PAYMENT_APPS)
        currency = CurrencyTable(
            symbols=tuple(config.currency_symbols) or DEFAULT_SYMBOLS,
            codes=tuple(config.currency_codes) or DEFAULT_CODES,
        )
        patterns = config.merchant_patterns or list(DEFAULT_MERCHANT_PATTERNS)
        labels = config.provider_labels or list(DEFAULT_PROVIDER_LABELS)
        return cls(
            payment_apps=frozenset(apps),
            currency=currency,
            merchant_patterns=_compile_merchant_patterns(patterns),
            provider_labels=tuple(labels),
        )


def _compile_merchant_patterns(sources) -> list[re.Pattern]:
    compiled = []
    for source in sources:
        try:
            compiled.append(re.compile(source, re.IGNORECASE))
        except re.error as e:
            raise ValueError(f"Invalid merchant pattern {source!r}: {e}") from e
    return compiled


DEFAULT_RULES = ParserRules()


# ── Steps ────────────────────────────────────────────────


def decode_payload(
    raw: NotificationPayload | dict | str | bytes,
) -> NotificationPayload | None:
    """Resolve raw JSON text or a mapping into a NotificationPayload.

    Returns None for malformed JSON, non-object JSON, or a payload
    without an app identifier.
    """
    if isinstance(raw, NotificationPayload):
        return raw

    data = raw
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError) as e:
            logger.debug("Notification is not valid JSON: %s", e)
            return None

    if not isinstance(data, dict):
        logger.debug("Notification payload is not an object: %s", type(data).__name__)
        return None
    if not isinstance(data.get("app"), str) or not data["app"]:
        logger.debug("Notification payload has no app identifier")
        return None
    return NotificationPayload.from_dict(data)


def is_payment_app(app: str, rules: ParserRules = DEFAULT_RULES) -> bool:
    return app in rules.payment_apps


def _as_text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def parse_merchant(
    text: str | None,
    title: str | None,
    rules: ParserRules = DEFAULT_RULES,
) -> str:
    """Extract the counterparty from notification text.

    Tries each merchant pattern against "title text". Falls back to the
    title itself unless it is the payment app's own label, then to
    "Unknown".
    """
    if not text and not title:
        return UNKNOWN_MERCHANT

    combined = re.sub(r"\s+", " ", f"{title or ''} {text or ''}").strip()
    for pattern in rules.merchant_patterns:
        match = pattern.search(combined)
        if match and match.group(1):
            merchant = match.group(1).strip().rstrip(".,;:!")
            if merchant:
                return merchant

    if title:
        lowered = title.lower()
        if not any(label in lowered for label in rules.provider_labels):
            return title.strip()

    return UNKNOWN_MERCHANT


def _resolve_time(payload_time, now: datetime) -> datetime:
    """Notification time when usable, else the processing instant."""
    if payload_time is not None:
        parsed = parse_timestamp(payload_time)
        if parsed is not None:
            return parsed
        logger.debug("Unusable notification time %r, using now", payload_time)
    return now


def build_transaction(
    payload: NotificationPayload,
    amount: float,
    merchant: str,
    now: datetime,
) -> Transaction:
    """Assemble the auto_payment record for a classified payment.

    The id combines the notification's own time with the processing time.
    It is unique per delivery, not per payment: the same payment delivered
    twice with different native times yields two records.
    """
    occurred = _resolve_time(payload.time, now)
    processing_ms = int(now.timestamp() * 1000)
    native = payload.time if payload.time is not None else "auto"
    return Transaction(
        id=f"{native}_{processing_ms}",
        timestamp=to_iso(occurred),
        amount=amount,
        type=TransactionType.AUTO_PAYMENT,
        description=merchant,
        source=SOURCE_AUTO,
        raw_notification=payload.to_dict(),
    )


# ── Entry points ─────────────────────────────────────────


def classify_notification(
    raw: NotificationPayload | dict | str | bytes,
    now: datetime | None = None,
    rules: ParserRules = DEFAULT_RULES,
) -> ParseResult:
    """Classify a notification and build its transaction when it is a payment."""
    payload = decode_payload(raw)
    if payload is None:
        return ParseResult(Outcome.INVALID, reason=Reason.MALFORMED_PAYLOAD)

    if not is_payment_app(payload.app, rules):
        return ParseResult(Outcome.NOT_PAYMENT, reason=Reason.UNRECOGNIZED_APP)

    text = _as_text(payload.text) or _as_text(payload.big_text)
    title = _as_text(payload.title) or _as_text(payload.title_big)

    amount = parse_amount(text, rules.currency)
    if amount is None:
        amount = parse_amount(title, rules.currency)
    if amount is None:
        logger.debug("No amount in %s notification, dropping", payload.app)
        return ParseResult(Outcome.NOT_PAYMENT, reason=Reason.NO_AMOUNT)

    merchant = parse_merchant(text, title, rules)
    txn = build_transaction(payload, amount, merchant, now or local_now())
    return ParseResult(Outcome.PAYMENT, transaction=txn)


def parse_payment_notification(
    raw: NotificationPayload | dict | str | bytes,
    now: datetime | None = None,
    rules: ParserRules = DEFAULT_RULES,
) -> Transaction | None:
    """Return the payment transaction for a notification, or None."""
    return classify_notification(raw, now=now, rules=rules).transaction
