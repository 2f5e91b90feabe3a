import json
from datetime import datetime

from config import get_settings
from message_parser import (
    dedupe_hash_for,
    detect_direction,
    parse_message,
    parse_messages,
)
from models import TransactionDirection, TransactionSource
from schemas import MailMessage


def _message(
    subject: str, snippet: str = "", received_at: str = "2024-05-03T08:15:00Z"
) -> MailMessage:
    return MailMessage(
        id="m-1", subject=subject, snippet=snippet, received_at=received_at
    )


def test_message_without_amount_is_rejected() -> None:
    assert parse_message(_message("Thanks for visiting")) is None


def test_parses_amount_direction_and_description() -> None:
    parsed = parse_message(
        _message(
            "PAYNOW RECEIVED: SGD 48.10 from JOHN DOE",
            "Ref 1234, Lunch split",
        )
    )

    assert parsed is not None
    assert parsed.amount_native_cents == 4810
    assert parsed.direction == TransactionDirection.in_
    assert parsed.description == "PAYNOW RECEIVED:  from JOHN DOE"
    assert parsed.category == "Transfers"
    assert parsed.currency_native == "SGD"
    assert parsed.source == TransactionSource.email
    assert parsed.txn_datetime == datetime(2024, 5, 3, 8, 15)
    assert json.loads(parsed.source_meta) == {"message_id": "m-1"}


def test_thousands_separators_are_stripped() -> None:
    parsed = parse_message(_message("Salary credited S$1,234,567.89"))
    assert parsed is not None
    assert parsed.amount_native_cents == 123456789


def test_outbound_keywords_and_default_direction() -> None:
    assert detect_direction("Your card was charged") == TransactionDirection.out
    assert detect_direction("Card transaction at SHPEE") == TransactionDirection.out
    # Inbound keywords are checked before outbound ones.
    refund = detect_direction("Refund credited, originally paid")
    assert refund == TransactionDirection.in_


def test_ambiguous_message_defaults_to_out() -> None:
    parsed = parse_message(_message("Card Transaction: SGD 12.90 SHPEE*12345"))
    assert parsed is not None
    assert parsed.direction == TransactionDirection.out


def test_description_falls_back_to_subject() -> None:
    parsed = parse_message(_message("SGD 5.00"))
    assert parsed is not None
    assert parsed.description == "SGD 5.00"


def test_invalid_received_at_uses_processing_time() -> None:
    now = datetime(2024, 6, 1, 12, 0)
    parsed = parse_message(_message("Paid SGD 3.50", received_at="yesterday"), now=now)
    assert parsed is not None
    assert parsed.txn_datetime == now


def test_timezone_offsets_are_converted_to_utc() -> None:
    message = _message("Paid SGD 3.50", received_at="2024-05-03T08:15:00+08:00")
    parsed = parse_message(message)
    assert parsed is not None
    assert parsed.txn_datetime == datetime(2024, 5, 3, 0, 15)


def test_dedupe_hash_is_stable_per_message_id() -> None:
    first = _message("Paid SGD 3.50")
    second = _message("Paid SGD 9.99")
    assert dedupe_hash_for(first) == dedupe_hash_for(second)
    assert parse_message(first).dedupe_hash == dedupe_hash_for(first)


def test_parse_messages_drops_messages_without_amounts() -> None:
    inputs = parse_messages(
        [
            _message("Newsletter"),
            _message("Grab ride paid SGD 12.00"),
        ]
    )
    assert len(inputs) == 1
    assert inputs[0].category == "Transport"


def test_currency_comes_from_the_message_not_the_default(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "default_currency", "USD")

    dollar_sign = parse_message(_message("Paid S$12.90 at Shop"))
    code = parse_message(_message("Paid sgd 12.90 at Shop"))

    assert dollar_sign.currency_native == "SGD"
    assert code.currency_native == "SGD"
