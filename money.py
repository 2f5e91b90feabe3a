from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


def parse_amount(value: str) -> int:
    """Convert a decimal amount string such as ``"1,234.50"`` to cents.

    Commas are treated as thousands separators. Negative amounts are
    rejected; the sign of a transaction lives in its direction.
    """
    clean = (value or "").strip().replace(",", "").replace(" ", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValueError("Amount must be positive")
    return cents


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}{abs(cents) / 100:,.2f}"
