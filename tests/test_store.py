import asyncio
from datetime import date, datetime

import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

import store as store_module
from database import create_db_engine
from errors import StorageError, ValidationError
from models import TransactionDirection
from schemas import ManualTransactionIn, RuleIn, TransactionIn
from services import TransactionService
from store import AppStore, CategoryMatchMode, TransactionFilters

TODAY = date(2024, 5, 20)


@pytest.fixture()
def factory():
    engine = create_db_engine("sqlite:///:memory:")
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture()
def store(factory) -> AppStore:
    app_store = AppStore(factory, today=TODAY)
    asyncio.run(app_store.bootstrap())
    return app_store


def _txn(description: str, category=None, **extra) -> TransactionIn:
    values = {
        "amount_native_cents": 1000,
        "currency_native": "SGD",
        "direction": TransactionDirection.out,
        "txn_datetime": datetime(2024, 5, 15, 12, 0),
    }
    values.update(extra)
    return TransactionIn(description=description, category=category, **values)


def _manual(**overrides) -> ManualTransactionIn:
    values = {
        "amount": "12.50",
        "description": "Grab to office",
        "date": "2024-05-12",
        "hour": "9",
        "minute": "5",
    }
    values.update(overrides)
    return ManualTransactionIn(**values)


def test_bootstrap_loads_seeded_month(store) -> None:
    assert store.bootstrapped
    assert not store.loading
    assert store.selected_month == "2024-05"
    assert len(store.transactions) == 3
    assert [a.name for a in store.accounts] == ["GrabPay Wallet", "UOB Current"]
    assert len(store.categories) == 6


def test_bootstrap_initializes_only_once(factory, monkeypatch) -> None:
    calls = []
    real_initialize = store_module.initialize_database

    def counting_initialize(*args, **kwargs):
        calls.append(args)
        return real_initialize(*args, **kwargs)

    monkeypatch.setattr(store_module, "initialize_database", counting_initialize)
    app_store = AppStore(factory, today=TODAY)

    async def scenario():
        await asyncio.gather(app_store.bootstrap(), app_store.bootstrap())
        await app_store.bootstrap()

    asyncio.run(scenario())

    assert len(calls) == 1
    assert len(app_store.transactions) == 3


def test_failed_bootstrap_can_be_retried(factory, monkeypatch) -> None:
    real_initialize = store_module.initialize_database
    attempts = []

    def flaky_initialize(*args, **kwargs):
        attempts.append(args)
        if len(attempts) == 1:
            raise StorageError("disk unavailable")
        return real_initialize(*args, **kwargs)

    monkeypatch.setattr(store_module, "initialize_database", flaky_initialize)
    app_store = AppStore(factory, today=TODAY)

    with pytest.raises(StorageError):
        asyncio.run(app_store.bootstrap())
    assert not app_store.loading
    assert not app_store.bootstrapped
    assert app_store.transactions == []

    asyncio.run(app_store.bootstrap())
    assert app_store.bootstrapped
    assert len(app_store.transactions) == 3


def test_add_transaction_reloads_selected_month(store) -> None:
    new_id = asyncio.run(store.add_transaction(_txn("Kopi", category="Food")))
    other_month = _txn("Old", txn_datetime=datetime(2024, 4, 2, 8, 0))
    asyncio.run(store.add_transaction(other_month))

    assert len(store.transactions) == 4
    assert store.transactions[0].id == new_id


def test_update_category_patches_cached_row(store) -> None:
    target = store.transactions[0]

    asyncio.run(store.update_category(target.id, "Bills"))

    assert target.category == "Bills"
    assert target.edited is True
    assert len(store.transactions) == 3


def test_failed_category_update_leaves_cache_untouched(store, monkeypatch) -> None:
    def failing_update(self, transaction_id, category):
        raise StorageError("write failed")

    monkeypatch.setattr(TransactionService, "update_category", failing_update)
    target = store.transactions[0]
    before = target.category

    with pytest.raises(StorageError):
        asyncio.run(store.update_category(target.id, "Bills"))

    assert target.category == before
    assert target.edited is False


def test_set_selected_month_refreshes_in_the_background(store) -> None:
    async def scenario():
        store.set_selected_month("2024-04")
        assert store.selected_month == "2024-04"
        assert len(store.transactions) == 3
        await store.pending_refresh
        assert store.transactions == []

    asyncio.run(scenario())


def test_set_selected_month_without_a_loop_refreshes_immediately(store) -> None:
    store.set_selected_month("2024-04")
    assert store.transactions == []

    store.set_selected_month("2024-05")
    assert len(store.transactions) == 3


def test_invalid_month_is_rejected_without_changes(store) -> None:
    with pytest.raises(ValidationError):
        store.set_selected_month("May 2024")
    assert store.selected_month == "2024-05"


def test_failed_refresh_keeps_previous_transactions(store, factory) -> None:
    cached = list(store.transactions)
    with factory.kw["bind"].begin() as conn:
        conn.execute(text("DROP TABLE transactions"))

    with pytest.raises(StorageError):
        asyncio.run(store.refresh())

    assert store.transactions == cached


def test_exact_category_filter(store) -> None:
    asyncio.run(store.add_transaction(_txn("A", category="Foo")))
    asyncio.run(store.add_transaction(_txn("B", category="Foobar")))

    store.set_filters(TransactionFilters(category="Foo"))

    assert [t.category for t in store.visible_transactions()] == ["Foo"]


def test_contains_category_filter(factory) -> None:
    app_store = AppStore(
        factory, today=TODAY, match_mode=CategoryMatchMode.contains
    )
    asyncio.run(app_store.bootstrap())
    asyncio.run(app_store.add_transaction(_txn("A", category="Foo")))
    asyncio.run(app_store.add_transaction(_txn("B", category="Foobar")))

    app_store.set_filters(TransactionFilters(category="foo"))

    matched = sorted(t.category for t in app_store.visible_transactions())
    assert matched == ["Foo", "Foobar", "Food"]

    app_store.set_filters(TransactionFilters(category="OOB"))
    assert [t.category for t in app_store.visible_transactions()] == ["Foobar"]


def test_direction_and_account_filters(store) -> None:
    store.set_filters(TransactionFilters(direction=TransactionDirection.in_))
    assert [t.description_clean for t in store.visible_transactions()] == [
        "Salary Credit"
    ]

    wallet = next(a for a in store.accounts if a.name == "GrabPay Wallet")
    store.set_filters(TransactionFilters(account_id=wallet.id))
    assert [t.category for t in store.visible_transactions()] == ["Transport"]

    store.clear_filters()
    assert len(store.visible_transactions()) == 3


def test_manual_entry_is_auto_categorized(store) -> None:
    new_id = asyncio.run(store.add_manual_transaction(_manual()))

    added = next(t for t in store.transactions if t.id == new_id)
    assert added.amount_native_cents == 1250
    assert added.category == "Transport"
    assert added.txn_datetime == datetime(2024, 5, 12, 9, 5)
    assert added.direction == TransactionDirection.out


def test_manual_entry_with_new_category_adds_it(store) -> None:
    asyncio.run(
        store.add_manual_transaction(_manual(category="Travel", new_category=True))
    )

    assert "Travel" in [c.name for c in store.categories]
    assert store.transactions[0].category == "Travel"


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": "abc"},
        {"amount": "0"},
        {"description": "   "},
        {"category": "", "new_category": True},
        {"category": "Travel", "new_category": True, "date": "2024-02-30"},
        {"category": "Travel", "new_category": True, "hour": "24"},
    ],
)
def test_invalid_manual_entry_changes_nothing(store, overrides) -> None:
    before_txns = [t.id for t in store.transactions]
    before_categories = [c.name for c in store.categories]

    with pytest.raises(ValidationError):
        asyncio.run(store.add_manual_transaction(_manual(**overrides)))

    assert [t.id for t in store.transactions] == before_txns
    assert [c.name for c in store.categories] == before_categories


def test_blank_category_name_is_rejected(store) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(store.add_category("  "))


def test_summary_and_top_categories_use_cached_month(store) -> None:
    summary = store.monthly_summary()
    assert (summary.total_in, summary.total_out, summary.net) == (
        250000,
        3040,
        246960,
    )

    ranked = [(c.category, c.total) for c in store.top_categories()]
    assert ranked == [("Food", 1840), ("Transport", 1200), ("Income", -250000)]


def test_manual_entry_uses_stored_rules(store) -> None:
    asyncio.run(store.add_rule(RuleIn(pattern="kopitiam", category="Hawker")))

    hawker_id = asyncio.run(
        store.add_manual_transaction(_manual(description="Kopitiam lunch"))
    )
    grab_id = asyncio.run(store.add_manual_transaction(_manual()))

    categories = {t.id: t.category for t in store.transactions}
    assert categories[hawker_id] == "Hawker"
    assert categories[grab_id] == "Transport"
    assert [r.pattern for r in store.list_rules()] == ["kopitiam"]


def test_store_calls_run_inline_on_the_loop(store) -> None:
    order = []

    async def other_task():
        order.append("other")

    async def scenario():
        task = asyncio.create_task(other_task())
        await store.refresh()
        order.append("refresh")
        await task

    asyncio.run(scenario())

    assert order == ["refresh", "other"]
