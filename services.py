from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

import pydantic
from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from categorizer import DEFAULT_RULES, Categorizer, default_categorizer
from config import get_settings
from errors import ConstraintError, StorageError, ValidationError
from mail_source import MockMailSource
from models import Account, Category, Rule, Transaction, utcnow
from money import parse_amount
from periods import validate_month_key
from schemas import (
    AccountIn,
    IngestResult,
    ManualTransactionIn,
    RuleIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(session: Session, action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into the storage error taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        session.rollback()
        logger.info("storage: %s rejected by constraint: %s", action, exc.orig)
        raise ConstraintError(f"{action} violates a constraint: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("storage: %s failed", action)
        raise StorageError(f"{action} failed") from exc


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Transaction]:
        stmt = select(Transaction).order_by(
            Transaction.txn_datetime.desc(), Transaction.id.desc()
        )
        with storage_errors(self.session, "list transactions"):
            return list(self.session.scalars(stmt).all())

    def list_for_month(self, month_key: str) -> list[Transaction]:
        key = validate_month_key(month_key)
        stmt = (
            select(Transaction)
            .where(func.strftime("%Y-%m", Transaction.txn_datetime) == key)
            .order_by(Transaction.txn_datetime.desc(), Transaction.id.desc())
        )
        with storage_errors(self.session, f"list transactions for {key}"):
            return list(self.session.scalars(stmt).all())

    def insert(self, data: TransactionIn) -> int:
        description = data.description.strip()
        txn = Transaction(
            amount_native_cents=data.amount_native_cents,
            currency_native=data.currency_native,
            direction=data.direction,
            description_raw=description,
            description_clean=description,
            category=data.category,
            category_confidence=data.category_confidence,
            account_id=data.account_id,
            txn_datetime=data.txn_datetime,
            ingested_at=utcnow(),
            source=data.source,
            source_meta=data.source_meta,
            dedupe_hash=data.dedupe_hash,
            parser_version=data.parser_version,
            is_transfer=data.is_transfer,
            is_refund=data.is_refund,
            notes=data.notes,
        )
        with storage_errors(self.session, "insert transaction"):
            self.session.add(txn)
            self.session.commit()
        logger.debug("storage: inserted transaction id=%s", txn.id)
        return txn.id

    def update_category(self, transaction_id: int, category: str) -> int:
        """Overwrite the category and mark the row edited.

        Returns the number of rows touched; an unknown id touches none and is
        not an error.
        """
        stmt = (
            update(Transaction)
            .where(Transaction.id == transaction_id)
            .values(category=category, edited=True)
        )
        with storage_errors(self.session, f"update category of {transaction_id}"):
            result = self.session.execute(stmt)
            self.session.commit()
        return result.rowcount or 0

    def count(self) -> int:
        stmt = select(func.count(Transaction.id))
        with storage_errors(self.session, "count transactions"):
            return int(self.session.execute(stmt).scalar_one() or 0)


class AccountService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Account]:
        stmt = select(Account).order_by(func.lower(Account.name), Account.id)
        with storage_errors(self.session, "list accounts"):
            return list(self.session.scalars(stmt).all())

    def insert(self, data: AccountIn) -> int:
        account = Account(
            name=data.name.strip(),
            type=data.type,
            currency_default=data.currency,
        )
        with storage_errors(self.session, "insert account"):
            self.session.add(account)
            self.session.commit()
        return account.id


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(func.lower(Category.name), Category.id)
        with storage_errors(self.session, "list categories"):
            return list(self.session.scalars(stmt).all())

    def insert_if_not_exists(self, name: str) -> Optional[int]:
        clean_name = name.strip()
        if not clean_name:
            raise ValidationError("Category name cannot be empty")

        stmt = (
            sqlite_insert(Category)
            .values(name=clean_name)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        lookup = select(Category.id).where(Category.name == clean_name)
        with storage_errors(self.session, f"insert category {clean_name!r}"):
            self.session.execute(stmt)
            self.session.commit()
            return self.session.scalar(lookup)


class RuleService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Rule]:
        stmt = select(Rule).order_by(Rule.priority.asc(), Rule.id.asc())
        with storage_errors(self.session, "list rules"):
            return list(self.session.scalars(stmt).all())

    def create(self, data: RuleIn) -> Rule:
        try:
            re.compile(data.pattern)
        except re.error as exc:
            raise ValidationError(f"Invalid rule pattern: {exc}") from exc

        rule = Rule(
            pattern=data.pattern, category=data.category, priority=data.priority
        )
        with storage_errors(self.session, "create rule"):
            self.session.add(rule)
            self.session.commit()
        return rule

    def categorizer(self) -> Categorizer:
        """Stored rules in priority order, followed by the built-in rules."""
        stored = Categorizer.from_rules(self.list_all())
        return Categorizer(stored.rules + DEFAULT_RULES)


class IngestService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def ingest(self, inputs: Iterable[TransactionIn]) -> IngestResult:
        """Insert parsed transactions, counting already-ingested ones as duplicates."""
        transactions = TransactionService(self.session)
        parsed = inserted = duplicates = 0
        for data in inputs:
            parsed += 1
            try:
                transactions.insert(data)
            except ConstraintError:
                if data.dedupe_hash is None:
                    raise
                duplicates += 1
                logger.info(
                    "ingest: skipped duplicate dedupe_hash=%s", data.dedupe_hash
                )
                continue
            inserted += 1
        logger.info(
            "ingest: parsed=%d inserted=%d duplicates=%d", parsed, inserted, duplicates
        )
        return IngestResult(parsed=parsed, inserted=inserted, duplicates=duplicates)

    def sync_mail(self, source: MockMailSource) -> IngestResult:
        messages = source.fetch_recent_messages()
        categorizer = RuleService(self.session).categorizer()
        inputs = source.transform_to_transactions(messages, categorizer=categorizer)
        logger.info(
            "ingest: fetched %d messages, %d with amounts", len(messages), len(inputs)
        )
        return self.ingest(inputs)


def _local_datetime_to_utc(day: date, hour: int, minute: int) -> datetime:
    tz = ZoneInfo(get_settings().timezone)
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_clock(value: str, upper: int) -> int:
    number = int(str(value).strip())
    if number < 0 or number > upper:
        raise ValueError(f"{number} out of range")
    return number


def validate_manual_entry(
    form: ManualTransactionIn, *, categorizer: Optional[Categorizer] = None
) -> TransactionIn:
    """Check a manual entry and turn it into a transaction input.

    Raises ValidationError before anything is written. When no category is
    given the description is run through the categorizer.
    """
    try:
        amount_cents = parse_amount(form.amount)
    except ValueError as exc:
        raise ValidationError(
            "Invalid amount: enter a number greater than zero"
        ) from exc
    if amount_cents <= 0:
        raise ValidationError("Invalid amount: enter a number greater than zero")

    description = (form.description or "").strip()
    if not description:
        raise ValidationError("Missing description: add at least a short description")

    category = (form.category or "").strip() or None
    if form.new_category and not category:
        raise ValidationError("Missing category: please enter a category name")

    try:
        day = date.fromisoformat((form.date or "").strip())
        hour = _parse_clock(form.hour, 23)
        minute = _parse_clock(form.minute, 59)
    except ValueError as exc:
        raise ValidationError(
            "Invalid date/time: use YYYY-MM-DD, hour 00-23 and minute 00-59"
        ) from exc

    if category is None:
        category = (categorizer or default_categorizer).categorize(description)

    try:
        return TransactionIn(
            amount_native_cents=amount_cents,
            currency_native=form.currency or get_settings().default_currency,
            direction=form.direction,
            description=description,
            category=category,
            txn_datetime=_local_datetime_to_utc(day, hour, minute),
            account_id=form.account_id,
            notes=(form.notes or "").strip() or None,
        )
    except pydantic.ValidationError as exc:
        raise ValidationError(str(exc)) from exc
