from contextlib import contextmanager

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

import scheduler as scheduler_module
from database import create_db_engine
from mail_source import MockMailSource
from models import Transaction
from scheduler import SchedulerManager
from schema import apply_migrations


@pytest.fixture()
def engine(monkeypatch):
    engine = create_db_engine("sqlite:///:memory:")
    apply_migrations(engine)

    @contextmanager
    def scope():
        with Session(engine) as session:
            yield session
            session.commit()

    monkeypatch.setattr(scheduler_module, "session_scope", scope)
    yield engine
    engine.dispose()


def test_job_refreshes_listeners_only_when_rows_were_inserted(engine) -> None:
    refreshes = []
    source = MockMailSource(clock=lambda: "2024-05-03T08:15:00+00:00")
    source.connect()
    manager = SchedulerManager(
        source, interval_minutes=0, on_inserted=lambda: refreshes.append(True)
    )

    manager._run_job("interval")
    manager._run_job("interval")

    assert refreshes == [True]
    with Session(engine) as session:
        count = session.scalar(select(func.count()).select_from(Transaction))
    assert count == 2


def test_job_skips_disconnected_source(engine) -> None:
    refreshes = []
    manager = SchedulerManager(
        MockMailSource(), interval_minutes=0, on_inserted=lambda: refreshes.append(1)
    )

    manager._run_job("interval")

    assert refreshes == []


def test_disabled_scheduler_does_not_start() -> None:
    manager = SchedulerManager(MockMailSource(), interval_minutes=0)
    manager.start()
    assert not manager.scheduler.running
