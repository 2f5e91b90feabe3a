import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import FastAPI, HTTPException, Request

from config import get_settings
from database import dispose_engine
from errors import ConstraintError, StorageError, ValidationError
from mail_source import MailSourceNotConnected, MockMailSource
from models import Account, Category, Rule, Transaction, TransactionDirection
from money import format_cents
from periods import validate_month_key
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    CategoryIn,
    CategoryUpdateIn,
    ManualTransactionIn,
    MonthIn,
    RuleIn,
    TransactionIn,
)
from store import AppStore, TransactionFilters, log_refresh_failure

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Wallet Tracker")
mail_source = MockMailSource()
scheduler_manager = SchedulerManager(mail_source)


@app.on_event("startup")
async def startup_event():
    if getattr(app.state, "store", None) is None:
        app.state.store = AppStore()
    store = app.state.store
    await store.bootstrap()
    loop = asyncio.get_running_loop()

    def refresh_store() -> None:
        future = asyncio.run_coroutine_threadsafe(store.refresh(), loop)
        future.add_done_callback(log_refresh_failure)

    scheduler_manager.on_inserted = refresh_store
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()
    dispose_engine()


def get_store(request: Request) -> AppStore:
    return request.app.state.store


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ConstraintError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except MailSourceNotConnected as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


def transaction_out(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "amount_cents": txn.amount_native_cents,
        "amount": format_cents(txn.amount_native_cents),
        "currency": txn.currency_native,
        "direction": txn.direction.value,
        "description": txn.description_clean,
        "category": txn.category,
        "account_id": txn.account_id,
        "txn_datetime": txn.txn_datetime.isoformat(),
        "source": txn.source.value,
        "edited": txn.edited,
        "notes": txn.notes,
    }


def account_out(account: Account) -> dict:
    return {
        "id": account.id,
        "name": account.name,
        "type": account.type.value,
        "currency_default": account.currency_default,
    }


def category_out(category: Category) -> dict:
    return {"id": category.id, "name": category.name}


def rule_out(rule: Rule) -> dict:
    return {
        "id": rule.id,
        "pattern": rule.pattern,
        "category": rule.category,
        "priority": rule.priority,
    }


@app.get("/api/transactions")
def api_transactions(request: Request):
    store = get_store(request)
    return {
        "month": store.selected_month,
        "items": [transaction_out(txn) for txn in store.visible_transactions()],
    }


@app.post("/api/transactions", status_code=201)
async def api_create_transaction(data: TransactionIn, request: Request):
    with http_errors():
        new_id = await get_store(request).add_transaction(data)
    return {"id": new_id}


@app.post("/api/transactions/manual", status_code=201)
async def api_create_manual_transaction(form: ManualTransactionIn, request: Request):
    with http_errors():
        new_id = await get_store(request).add_manual_transaction(form)
    return {"id": new_id}


@app.patch("/api/transactions/{transaction_id}/category")
async def api_update_category(
    transaction_id: int, data: CategoryUpdateIn, request: Request
):
    with http_errors():
        await get_store(request).update_category(transaction_id, data.category)
    return {"id": transaction_id, "category": data.category}


@app.put("/api/filters")
def api_set_filters(
    request: Request,
    category: Optional[str] = None,
    direction: Optional[TransactionDirection] = None,
    account_id: Optional[int] = None,
):
    store = get_store(request)
    store.set_filters(
        TransactionFilters(
            category=category, direction=direction, account_id=account_id
        )
    )
    return {
        "category": category,
        "direction": direction.value if direction else None,
        "account_id": account_id,
        "match_mode": store.match_mode.value,
    }


@app.put("/api/month")
async def api_set_month(data: MonthIn, request: Request):
    store = get_store(request)
    with http_errors():
        store.set_selected_month(data.month)
        if store.pending_refresh is not None:
            await store.pending_refresh
    return {"month": store.selected_month, "count": len(store.transactions)}


@app.get("/api/accounts")
def api_accounts(request: Request):
    return [account_out(a) for a in get_store(request).accounts]


@app.post("/api/accounts", status_code=201)
async def api_create_account(data: AccountIn, request: Request):
    with http_errors():
        new_id = await get_store(request).add_account(data)
    return {"id": new_id}


@app.get("/api/categories")
def api_categories(request: Request):
    return [category_out(c) for c in get_store(request).categories]


@app.post("/api/categories", status_code=201)
async def api_create_category(data: CategoryIn, request: Request):
    with http_errors():
        category_id = await get_store(request).add_category(data.name)
    return {"id": category_id, "name": data.name}


@app.get("/api/rules")
def api_rules(request: Request):
    with http_errors():
        rules = get_store(request).list_rules()
    return [rule_out(rule) for rule in rules]


@app.post("/api/rules", status_code=201)
async def api_create_rule(data: RuleIn, request: Request):
    with http_errors():
        new_id = await get_store(request).add_rule(data)
    return {"id": new_id}


@app.get("/api/summary")
def api_summary(request: Request, month: Optional[str] = None):
    with http_errors():
        key = validate_month_key(month) if month else None
    summary = get_store(request).monthly_summary(key)
    return {
        "month": summary.month_key,
        "total_in_cents": summary.total_in,
        "total_out_cents": summary.total_out,
        "net_cents": summary.net,
    }


@app.get("/api/top-categories")
def api_top_categories(request: Request, month: Optional[str] = None, limit: int = 5):
    with http_errors():
        key = validate_month_key(month) if month else None
    limit = min(max(limit, 1), 50)
    ranked = get_store(request).top_categories(key, limit=limit)
    return [{"category": item.category, "total_cents": item.total} for item in ranked]


@app.post("/api/mail/connect")
def api_mail_connect():
    state = mail_source.connect()
    return {"is_connected": state.is_connected, "last_sync": state.last_sync}


@app.post("/api/mail/disconnect")
def api_mail_disconnect():
    state = mail_source.disconnect()
    return {"is_connected": state.is_connected, "last_sync": state.last_sync}


@app.post("/api/mail/sync")
async def api_mail_sync(request: Request):
    with http_errors():
        result = await get_store(request).sync_mail(mail_source)
    return {
        "parsed": result.parsed,
        "inserted": result.inserted,
        "duplicates": result.duplicates,
    }
