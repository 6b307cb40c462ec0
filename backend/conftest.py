import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REMINDERS_PROVIDER"] = "memory"
os.environ["SNAPSHOT_REFRESH_URL"] = ""

import json
import threading
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base, enable_sqlite_foreign_keys
import models  # noqa: F401  (registers tables)
from models.habit import Habit
from models.required_link import RequiredLink
from providers.base import ProviderError
from providers.memory_provider import MemoryReminderProvider
from services.reconciliation_service import ReconciliationEngine
from services.snapshot_service import SnapshotWriter


class FailingCommitProvider(MemoryReminderProvider):
    """Provider whose writes never become durable."""

    def commit(self) -> None:
        self._staged.clear()
        raise ProviderError("provider unavailable")


@pytest.fixture
def db_engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    enable_sqlite_foreign_keys(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def provider():
    return MemoryReminderProvider()


@pytest.fixture
def writer(tmp_path):
    return SnapshotWriter(tmp_path / "snapshot", notifier=None)


@pytest.fixture
def reconciler(provider, session_factory, writer):
    return ReconciliationEngine(
        provider,
        session_factory=session_factory,
        snapshot_writer=writer,
        lock=threading.Lock(),
        lock_timeout=1,
    )


@pytest.fixture
def make_habit(db):
    def _make(name: str, created_at: datetime | None = None) -> Habit:
        h = Habit(name=name)
        if created_at:
            h.created_at = created_at
        db.add(h)
        db.commit()
        db.refresh(h)
        return h
    return _make


@pytest.fixture
def make_link(db):
    def _make(habit: Habit, *keys: str, is_required: bool = True, title: str = "", **legacy) -> RequiredLink:
        link = RequiredLink(
            habit_id=habit.id,
            identity_keys=json.dumps(list(keys)) if keys else None,
            title=title,
            is_required=is_required,
            **legacy,
        )
        db.add(link)
        db.commit()
        db.refresh(link)
        return link
    return _make


@pytest.fixture
def failing_provider():
    return FailingCommitProvider()
