"""In-memory view state for the active month.

The store owns one cached month of transactions plus the account and
category lists. There are two write paths on purpose:

* inserts reconcile by reloading the month from the database;
* category edits patch the cached row in place once the write succeeded.

A failed database call leaves the cache exactly as it was.

The coroutines run their SQLAlchemy calls inline on the calling event loop
and never yield while a query runs, so the loop is blocked until each call
returns. Other tasks only run between store calls.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Optional, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import database
from aggregation import monthly_summary, top_categories
from categorizer import Categorizer
from config import get_settings
from errors import ValidationError
from mail_source import MockMailSource
from models import Account, Category, Rule, Transaction, TransactionDirection
from periods import current_month_key, validate_month_key
from schema import initialize_database
from schemas import (
    AccountIn,
    CategoryTotal,
    IngestResult,
    ManualTransactionIn,
    MonthlySummary,
    RuleIn,
    TransactionIn,
)
from services import (
    AccountService,
    CategoryService,
    IngestService,
    RuleService,
    TransactionService,
    validate_manual_entry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CategoryMatchMode(str, Enum):
    exact = "exact"
    contains = "contains"


@dataclass(frozen=True)
class TransactionFilters:
    category: Optional[str] = None
    direction: Optional[TransactionDirection] = None
    account_id: Optional[int] = None


class AppStore:
    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        engine: Optional[Engine] = None,
        *,
        today: Optional[date] = None,
        match_mode: Optional[CategoryMatchMode] = None,
        categorizer: Optional[Categorizer] = None,
    ) -> None:
        if session_factory is None:
            engine = engine or database.get_engine()
            session_factory = database.SessionLocal
        elif engine is None:
            engine = session_factory.kw.get("bind")
        self.engine: Engine = engine
        self.session_factory = session_factory
        self.categorizer = categorizer
        self.match_mode = match_mode or CategoryMatchMode(get_settings().category_match)

        self.transactions: list[Transaction] = []
        self.accounts: list[Account] = []
        self.categories: list[Category] = []
        self.selected_month = current_month_key(today)
        self.filters = TransactionFilters()
        self.loading = False
        self.bootstrapped = False
        self.pending_refresh: Optional[asyncio.Task] = None
        self._today = today
        self._bootstrap_lock = asyncio.Lock()

    def _run(self, work: Callable[[Session], T]) -> T:
        with self.session_factory() as session:
            return work(session)

    async def bootstrap(self) -> None:
        """Initialize the database and load the first view, at most once."""
        async with self._bootstrap_lock:
            if self.bootstrapped:
                return
            self.loading = True
            try:
                initialize_database(
                    self.engine, self.session_factory, today=self._today
                )
                accounts = self._run(lambda s: AccountService(s).list_all())
                categories = self._run(lambda s: CategoryService(s).list_all())
                month = self.selected_month
                transactions = self._run(
                    lambda s: TransactionService(s).list_for_month(month)
                )
            except Exception:
                self.loading = False
                logger.exception("store: bootstrap failed")
                raise
            self.accounts = accounts
            self.categories = categories
            self.transactions = transactions
            self.bootstrapped = True
            self.loading = False
            logger.info(
                "store: bootstrapped month=%s transactions=%d",
                month,
                len(transactions),
            )

    async def refresh(self, month_key: Optional[str] = None) -> None:
        key = validate_month_key(month_key or self.selected_month)
        transactions = self._run(lambda s: TransactionService(s).list_for_month(key))
        self.transactions = transactions

    async def add_transaction(self, data: TransactionIn) -> int:
        new_id = self._run(lambda s: TransactionService(s).insert(data))
        await self.refresh()
        return new_id

    async def add_manual_transaction(self, form: ManualTransactionIn) -> int:
        categorizer = self.categorizer or self._run(
            lambda s: RuleService(s).categorizer()
        )
        data = validate_manual_entry(form, categorizer=categorizer)
        if form.new_category and data.category:
            await self.add_category(data.category)
        return await self.add_transaction(data)

    async def update_category(self, transaction_id: int, category: str) -> None:
        self._run(
            lambda s: TransactionService(s).update_category(transaction_id, category)
        )
        for txn in self.transactions:
            if txn.id == transaction_id:
                txn.category = category
                txn.edited = True

    async def add_account(self, data: AccountIn) -> int:
        new_id = self._run(lambda s: AccountService(s).insert(data))
        self.accounts = self._run(lambda s: AccountService(s).list_all())
        return new_id

    async def add_category(self, name: str) -> Optional[int]:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Category name cannot be empty")
        category_id = self._run(
            lambda s: CategoryService(s).insert_if_not_exists(clean_name)
        )
        self.categories = self._run(lambda s: CategoryService(s).list_all())
        return category_id

    async def add_rule(self, data: RuleIn) -> int:
        return self._run(lambda s: RuleService(s).create(data).id)

    def list_rules(self) -> list[Rule]:
        return self._run(lambda s: RuleService(s).list_all())

    async def sync_mail(self, source: MockMailSource) -> IngestResult:
        result = self._run(lambda s: IngestService(s).sync_mail(source))
        await self.refresh()
        return result

    def set_selected_month(self, month_key: str) -> None:
        """Switch months; the cached transactions catch up asynchronously.

        Inside a running event loop the reload is scheduled as a task and
        ``pending_refresh`` can be awaited. Without a loop the reload runs
        before this returns.
        """
        key = validate_month_key(month_key)
        self.selected_month = key
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.refresh(key))
            return
        if self.pending_refresh is not None and not self.pending_refresh.done():
            self.pending_refresh.cancel()
        self.pending_refresh = loop.create_task(self.refresh(key))
        self.pending_refresh.add_done_callback(log_refresh_failure)

    def set_filters(self, filters: TransactionFilters) -> None:
        self.filters = filters

    def clear_filters(self) -> None:
        self.filters = TransactionFilters()

    def _category_matches(self, category: Optional[str], wanted: str) -> bool:
        if self.match_mode == CategoryMatchMode.contains:
            return wanted.lower() in (category or "").lower()
        return category == wanted

    def visible_transactions(self) -> list[Transaction]:
        filters = self.filters
        visible: list[Transaction] = []
        for txn in self.transactions:
            if filters.category and not self._category_matches(
                txn.category, filters.category
            ):
                continue
            if filters.direction and txn.direction != filters.direction:
                continue
            if filters.account_id is not None and txn.account_id != filters.account_id:
                continue
            visible.append(txn)
        return visible

    def monthly_summary(self, month_key: Optional[str] = None) -> MonthlySummary:
        return monthly_summary(self.transactions, month_key or self.selected_month)

    def top_categories(
        self, month_key: Optional[str] = None, limit: int = 5
    ) -> list[CategoryTotal]:
        return top_categories(
            self.transactions, month_key or self.selected_month, limit=limit
        )


def log_refresh_failure(future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("store: background refresh failed: %s", exc)
