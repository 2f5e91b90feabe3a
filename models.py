from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionDirection(str, Enum):
    in_ = "in"
    out = "out"


class TransactionSource(str, Enum):
    sms = "sms"
    email = "email"
    push = "push"
    manual = "manual"


class AccountType(str, Enum):
    bank = "bank"
    wallet = "wallet"
    cash = "cash"
    card = "card"
    other = "other"


def _value_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        create_constraint=True,
        validate_strings=True,
    )


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        _value_enum(AccountType, "accounttype"), nullable=False
    )
    currency_default: Mapped[str] = mapped_column(String(3), nullable=False)


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    amount_native_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_native: Mapped[str] = mapped_column(String(3), nullable=False)
    # Base-currency fields are placeholders; no flow fills them yet.
    amount_base_cents: Mapped[Optional[int]] = mapped_column(Integer)
    currency_base: Mapped[Optional[str]] = mapped_column(String(3))
    fx_rate_micros: Mapped[Optional[int]] = mapped_column(Integer)
    direction: Mapped[TransactionDirection] = mapped_column(
        _value_enum(TransactionDirection, "transactiondirection"), nullable=False
    )
    description_raw: Mapped[Optional[str]] = mapped_column(Text)
    description_clean: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    category_confidence: Mapped[Optional[float]] = mapped_column(Float)
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    txn_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    source: Mapped[TransactionSource] = mapped_column(
        _value_enum(TransactionSource, "transactionsource"), nullable=False
    )
    source_meta: Mapped[Optional[str]] = mapped_column(Text)
    dedupe_hash: Mapped[Optional[str]] = mapped_column(String(128), unique=True)
    parser_version: Mapped[Optional[str]] = mapped_column(String(20))
    is_transfer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_refund: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_transactions_txn_datetime", "txn_datetime"),
        Index("ix_transactions_category", "category"),
        CheckConstraint(
            "amount_native_cents > 0", name="ck_transactions_amount_positive"
        ),
    )


class Rule(Base):
    __tablename__ = "rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pattern: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=100, nullable=False)


class FxRate(Base):
    __tablename__ = "fx_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rate_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    base: Mapped[str] = mapped_column(String(3), nullable=False)
    quote: Mapped[str] = mapped_column(String(3), nullable=False)
    rate_micros: Mapped[int] = mapped_column(Integer, nullable=False)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
