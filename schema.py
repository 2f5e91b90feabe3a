"""Database schema bootstrap.

``MIGRATIONS`` is applied in order on every start. Each statement is a no-op
when its target already exists, so re-running it against an initialized
database changes nothing. ``seed_defaults`` is a first-run convenience that
only fills tables which are still empty.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.schema import CreateIndex, CreateTable, DDLElement

from config import get_settings
from models import (
    Account,
    AccountType,
    Category,
    FxRate,
    Rule,
    Transaction,
    TransactionDirection,
    TransactionSource,
    utcnow,
)

logger = logging.getLogger(__name__)


def _build_migrations() -> tuple[DDLElement, ...]:
    statements: list[DDLElement] = []
    for model in (Account, Transaction, Rule, FxRate, Category):
        statements.append(CreateTable(model.__table__, if_not_exists=True))
    for model in (Account, Transaction, Rule, FxRate, Category):
        for index in sorted(model.__table__.indexes, key=lambda ix: ix.name):
            statements.append(CreateIndex(index, if_not_exists=True))
    return tuple(statements)


MIGRATIONS: tuple[DDLElement, ...] = _build_migrations()

DEFAULT_ACCOUNTS = (
    ("UOB Current", AccountType.bank, "SGD"),
    ("GrabPay Wallet", AccountType.wallet, "SGD"),
)
DEFAULT_CATEGORIES = ("Food", "Transport", "Groceries", "Shopping", "Income", "Bills")

SAMPLE_TRANSACTIONS = (
    {
        "cents": 1840,
        "direction": TransactionDirection.out,
        "description": "Lunch at Amoy Street Food Centre",
        "category": "Food",
        "account": "UOB Current",
        "when": (5, 12, 30),
    },
    {
        "cents": 1200,
        "direction": TransactionDirection.out,
        "description": "Grab Transport Ride",
        "category": "Transport",
        "account": "GrabPay Wallet",
        "when": (6, 9, 15),
    },
    {
        "cents": 250000,
        "direction": TransactionDirection.in_,
        "description": "Salary Credit",
        "category": "Income",
        "account": "UOB Current",
        "when": (1, 10, 0),
    },
)


def apply_migrations(engine: Engine) -> None:
    with engine.begin() as conn:
        for statement in MIGRATIONS:
            conn.execute(statement)
    logger.info("schema: applied %d statements", len(MIGRATIONS))


def _count(session: Session, model) -> int:
    return int(session.execute(select(func.count()).select_from(model)).scalar_one())


def _local_to_utc(
    today: date, day: int, hour: int, minute: int, tz: ZoneInfo
) -> datetime:
    local = datetime(today.year, today.month, day, hour, minute, tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def seed_defaults(
    session: Session, *, today: Optional[date] = None
) -> dict[str, int]:
    """Insert default accounts, categories and sample transactions into empty tables."""
    inserted = {"accounts": 0, "categories": 0, "transactions": 0}
    tz = ZoneInfo(get_settings().timezone)
    today = today or datetime.now(tz).date()

    if _count(session, Account) == 0:
        for name, account_type, currency in DEFAULT_ACCOUNTS:
            session.add(
                Account(name=name, type=account_type, currency_default=currency)
            )
        inserted["accounts"] = len(DEFAULT_ACCOUNTS)

    if _count(session, Category) == 0:
        for name in DEFAULT_CATEGORIES:
            session.add(Category(name=name))
        inserted["categories"] = len(DEFAULT_CATEGORIES)

    session.flush()

    if _count(session, Transaction) == 0:
        account_ids = dict(session.execute(select(Account.name, Account.id)).all())
        now = utcnow()
        for sample in SAMPLE_TRANSACTIONS:
            day, hour, minute = sample["when"]
            session.add(
                Transaction(
                    amount_native_cents=sample["cents"],
                    currency_native="SGD",
                    direction=sample["direction"],
                    description_raw=sample["description"],
                    description_clean=sample["description"],
                    category=sample["category"],
                    account_id=account_ids.get(sample["account"]),
                    txn_datetime=_local_to_utc(today, day, hour, minute, tz),
                    ingested_at=now,
                    source=TransactionSource.email,
                )
            )
        inserted["transactions"] = len(SAMPLE_TRANSACTIONS)

    session.commit()
    if any(inserted.values()):
        logger.info("schema: seeded %s", inserted)
    return inserted


def initialize_database(
    engine: Engine,
    session_factory: sessionmaker,
    *,
    seed: Optional[bool] = None,
    today: Optional[date] = None,
) -> None:
    apply_migrations(engine)
    if seed is None:
        seed = get_settings().seed_sample_data
    if seed:
        with session_factory() as session:
            seed_defaults(session, today=today)
