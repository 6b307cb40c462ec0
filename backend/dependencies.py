from fastapi import Depends

from config import SNAPSHOT_DIR
from database import SessionLocal
from providers import BaseReminderProvider, get_provider
from services.reconciliation_service import ReconciliationEngine
from services.snapshot_service import SnapshotWriter


def get_snapshot_writer() -> SnapshotWriter:
    return SnapshotWriter(SNAPSHOT_DIR)


def get_session_factory():
    return SessionLocal


def get_engine(
    provider: BaseReminderProvider = Depends(get_provider),
    writer: SnapshotWriter = Depends(get_snapshot_writer),
    session_factory=Depends(get_session_factory),
) -> ReconciliationEngine:
    """FastAPI dependency — a reconciliation engine wired to the configured provider and cache."""
    return ReconciliationEngine(provider, session_factory=session_factory, snapshot_writer=writer)
