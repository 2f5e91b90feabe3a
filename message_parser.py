"""Turn bank notification e-mails into transaction inputs.

Only messages with a recognizable currency amount produce a transaction; any
other message yields ``None``. That is the expected outcome for most of an
inbox and is not treated as an error.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from categorizer import Categorizer, default_categorizer
from models import TransactionDirection, TransactionSource, utcnow
from money import parse_amount
from schemas import MailMessage, TransactionIn

logger = logging.getLogger(__name__)

PARSER_VERSION = "email-1"

AMOUNT_RE = re.compile(r"(S\$|SGD)\s?([0-9,]+(?:\.[0-9]{2})?)", re.IGNORECASE)
CURRENCY_CODES = {"s$": "SGD", "sgd": "SGD"}

# Scanned in order; text with no keyword at all is assumed to be spending.
DIRECTION_KEYWORDS: tuple[tuple[tuple[str, ...], TransactionDirection], ...] = (
    (("received", "credited", "salary"), TransactionDirection.in_),
    (("paid", "charged", "debited", "spent"), TransactionDirection.out),
)
DEFAULT_DIRECTION = TransactionDirection.out


def detect_direction(text: str) -> TransactionDirection:
    lowered = text.lower()
    for keywords, direction in DIRECTION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return direction
    return DEFAULT_DIRECTION


def infer_datetime(received_at: str, now: Optional[datetime] = None) -> datetime:
    """Parse an ISO-8601 timestamp into naive UTC, falling back to ``now``."""
    try:
        parsed = datetime.fromisoformat((received_at or "").strip())
    except ValueError:
        logger.warning(
            "parser: unparseable received_at=%r, using processing time", received_at
        )
        return now or utcnow()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def dedupe_hash_for(message: MailMessage) -> str:
    return hashlib.sha256(f"email:{message.id}".encode("utf-8")).hexdigest()


def parse_message(
    message: MailMessage,
    *,
    categorizer: Optional[Categorizer] = None,
    now: Optional[datetime] = None,
) -> Optional[TransactionIn]:
    text = f"{message.subject} {message.snippet}"
    match = AMOUNT_RE.search(text)
    if not match:
        logger.debug("parser: no amount in message id=%s", message.id)
        return None

    try:
        amount_cents = parse_amount(match.group(2))
    except ValueError:
        amount_cents = 0
    if amount_cents <= 0:
        logger.debug("parser: zero amount in message id=%s", message.id)
        return None

    description = message.subject.replace(match.group(0), "", 1).strip()
    description = description or message.subject.strip() or message.snippet.strip()
    categorizer = categorizer or default_categorizer

    return TransactionIn(
        amount_native_cents=amount_cents,
        currency_native=CURRENCY_CODES[match.group(1).lower()],
        direction=detect_direction(text),
        description=description,
        category=categorizer.categorize(description),
        txn_datetime=infer_datetime(message.received_at, now),
        source=TransactionSource.email,
        source_meta=json.dumps({"message_id": message.id}),
        dedupe_hash=dedupe_hash_for(message),
        parser_version=PARSER_VERSION,
    )


def parse_messages(
    messages: Iterable[MailMessage], *, categorizer: Optional[Categorizer] = None
) -> list[TransactionIn]:
    inputs: list[TransactionIn] = []
    for message in messages:
        parsed = parse_message(message, categorizer=categorizer)
        if parsed is not None:
            inputs.append(parsed)
    return inputs
