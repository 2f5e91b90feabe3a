"""Monthly totals computed over an already-loaded set of transactions.

Callers pass in whatever they have cached; nothing here reads the database,
so the set must already cover the month being summarized.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from models import Transaction, TransactionDirection
from periods import month_key_for
from schemas import CategoryTotal, MonthlySummary


def _in_month(
    transactions: Iterable[Transaction], month_key: str
) -> Iterator[Transaction]:
    for txn in transactions:
        if month_key_for(txn.txn_datetime) == month_key:
            yield txn


def monthly_summary(
    transactions: Iterable[Transaction], month_key: str
) -> MonthlySummary:
    total_in = 0
    total_out = 0
    for txn in _in_month(transactions, month_key):
        if txn.direction == TransactionDirection.in_:
            total_in += txn.amount_native_cents
        else:
            total_out += txn.amount_native_cents
    return MonthlySummary(
        month_key=month_key,
        total_in=total_in,
        total_out=total_out,
        net=total_in - total_out,
    )


def top_categories(
    transactions: Iterable[Transaction], month_key: str, limit: int = 5
) -> list[CategoryTotal]:
    """Rank categories by net spending for the month.

    Outgoing amounts add to a category and incoming amounts subtract, so a
    category dominated by refunds can end up negative. Equal totals keep the
    order in which their categories were first seen.
    """
    totals: dict[str, int] = {}
    for txn in _in_month(transactions, month_key):
        if not txn.category:
            continue
        sign = 1 if txn.direction == TransactionDirection.out else -1
        amount = sign * txn.amount_native_cents
        totals[txn.category] = totals.get(txn.category, 0) + amount

    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [CategoryTotal(category=name, total=total) for name, total in ranked[:limit]]
