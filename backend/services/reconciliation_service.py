"""
reconciliation_service.py — Habit completion reconciliation
Pulls completed reminders from the provider, buckets them by day, and for every
(habit, day) decides whether all required reminders were done. Results are
upserted one day batch at a time and the snapshot cache is refreshed afterwards.

Runs are single-writer: a process-wide lock serialises them. Nothing here raises
to the caller; every failure ends up as a status on the returned SyncReport.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import BACKFILL_DAYS, SYNC_LOCK_TIMEOUT
from database import SessionLocal
from models.habit import Habit
from providers.base import (
    BaseReminderProvider,
    ProviderAccessError,
    ProviderError,
    ReminderItem,
    ReminderQuery,
)
from services.completion_service import CompletionStore, CompletionSummary
from services.days import DayWindow, local_day, today as local_today
from services.fact_service import FactIndex, build_fact_index
from services.identity_service import IdentityResolver, resolver as default_resolver
from services.link_service import LinkService, filter_required, stored_keys
from services.snapshot_service import SnapshotWriter

logger = logging.getLogger(__name__)

_run_lock = threading.Lock()


class SyncStatus(str, Enum):
    OK = "ok"
    NO_ACCESS = "no_access"
    PROVIDER_ERROR = "provider_error"
    PERSIST_FAILED = "persist_failed"
    BUSY = "busy"
    CANCELLED = "cancelled"


@dataclass
class SyncReport:
    window_start: date
    window_end: date
    status: SyncStatus = SyncStatus.OK
    days_processed: int = 0
    habits: int = 0
    records_written: int = 0
    unresolved_items: int = 0
    links_healed: int = 0
    link_errors: list[str] = field(default_factory=list)
    last_committed_day: date | None = None
    cache_written: bool = False
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.status in (SyncStatus.NO_ACCESS, SyncStatus.PROVIDER_ERROR)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "days_processed": self.days_processed,
            "habits": self.habits,
            "records_written": self.records_written,
            "unresolved_items": self.unresolved_items,
            "links_healed": self.links_healed,
            "link_errors": self.link_errors,
            "last_committed_day": self.last_committed_day.isoformat() if self.last_committed_day else None,
            "cache_written": self.cache_written,
            "error": self.error,
        }


def summarize(links, facts: set[str]) -> CompletionSummary:
    """
    A required link is done iff any of its normalized stored keys is among the
    day's facts. Accepts ORM rows or plain dict rows.
    """
    required = filter_required(links)
    done = sum(1 for link in required if any(key in facts for key in stored_keys(link)))
    return CompletionSummary.from_counts(len(required), done)


class ReconciliationEngine:
    def __init__(
        self,
        provider: BaseReminderProvider,
        session_factory=SessionLocal,
        snapshot_writer: SnapshotWriter | None = None,
        resolver: IdentityResolver | None = None,
        lock: threading.Lock = _run_lock,
        lock_timeout: float = SYNC_LOCK_TIMEOUT,
    ):
        self.provider = provider
        self.session_factory = session_factory
        self.snapshot_writer = snapshot_writer
        self.resolver = resolver or default_resolver
        self.lock = lock
        self.lock_timeout = lock_timeout

    # ------------------------------------------------------------------
    # Single (habit, day)

    def reconcile(self, db: Session, habit_id: str, day: date, facts: set[str], links=None) -> CompletionSummary:
        """Completion summary for one habit on one day. Looks the links up unless given."""
        if links is None:
            links = LinkService.required_links(db, habit_id)
        summary = summarize(links, facts)
        logger.debug(
            f"Habit {habit_id} on {day}: {summary.completed_required}/{summary.total_required}"
        )
        return summary

    # ------------------------------------------------------------------
    # Runs

    def sync_today(self, now: datetime | None = None) -> SyncReport:
        day = local_day(now) if now else local_today()
        return self.sync_window(DayWindow.single(day))

    def sync_history(self, days: int = BACKFILL_DAYS, today: date | None = None,
                     cancel: threading.Event | None = None) -> SyncReport:
        return self.sync_window(DayWindow.ending(today or local_today(), days), cancel=cancel)

    def sync_window(self, window: DayWindow, cancel: threading.Event | None = None) -> SyncReport:
        report = SyncReport(window_start=window.start, window_end=window.end)
        if not self.lock.acquire(timeout=self.lock_timeout):
            report.status = SyncStatus.BUSY
            logger.warning("Reconciliation already running, giving up")
            return report
        try:
            self._run(window, report, cancel)
        finally:
            self.lock.release()

        logger.info(
            f"Reconciliation {window.start}..{window.end}: {report.status.value}, "
            f"{report.days_processed} day(s), {report.records_written} record(s)"
        )
        return report

    # ------------------------------------------------------------------

    def _fetch(self, window: DayWindow, report: SyncReport) -> list[ReminderItem]:
        try:
            return self.provider.fetch_items(
                ReminderQuery.completed_between(window.start_at, window.end_at)
            )
        except ProviderAccessError as e:
            report.status = SyncStatus.NO_ACCESS
            report.error = str(e)
            logger.warning(f"No reminders access, reconciling with zero facts: {e}")
        except ProviderError as e:
            report.status = SyncStatus.PROVIDER_ERROR
            report.error = str(e)
            logger.warning(f"Reminders fetch failed, reconciling with zero facts: {e}")
        return []

    def _heal(self, db: Session, items: list[ReminderItem], report: SyncReport):
        try:
            report.links_healed = LinkService.heal(db, items, self.resolver)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            report.links_healed = 0
            logger.warning(f"Could not record new identity keys on links: {e}")

    def _required_links(self, db: Session, habit_id: str, report: SyncReport) -> list[dict]:
        try:
            return [LinkService.as_row(link) for link in LinkService.required_links(db, habit_id)]
        except SQLAlchemyError as e:
            db.rollback()
            report.link_errors.append(habit_id)
            logger.warning(f"Links for habit {habit_id} unreadable, counting zero required: {e}")
            return []

    def _run(self, window: DayWindow, report: SyncReport, cancel: threading.Event | None):
        items = self._fetch(window, report)
        index: FactIndex = build_fact_index(items, window, self.resolver)
        report.unresolved_items = index.skipped

        db = self.session_factory()
        try:
            try:
                habit_ids = [row.id for row in db.query(Habit.id).order_by(Habit.created_at.asc()).all()]
            except SQLAlchemyError as e:
                report.status = SyncStatus.PERSIST_FAILED
                report.error = str(e)
                logger.error(f"Could not read habits: {e}")
                return
            report.habits = len(habit_ids)

            if items:
                self._heal(db, items, report)

            links_by_habit = {h: self._required_links(db, h, report) for h in habit_ids}

            for day in window.days():
                if cancel is not None and cancel.is_set():
                    report.status = SyncStatus.CANCELLED
                    logger.info(f"Reconciliation cancelled before {day}")
                    break
                try:
                    written = 0
                    for habit_id in habit_ids:
                        summary = self.reconcile(db, habit_id, day, index.facts_for(day), links_by_habit[habit_id])
                        if report.degraded and CompletionStore.get(db, habit_id, day) is not None:
                            # Zero facts from a failed fetch must not wipe out recorded completions
                            continue
                        CompletionStore.upsert(db, habit_id, day, summary)
                        written += 1
                    db.commit()
                except SQLAlchemyError as e:
                    db.rollback()
                    report.status = SyncStatus.PERSIST_FAILED
                    report.error = str(e)
                    logger.error(f"Saving completions for {day} failed, batch rolled back: {e}")
                    break
                report.days_processed += 1
                report.records_written += written
                report.last_committed_day = day

            if report.days_processed and self.snapshot_writer is not None:
                report.cache_written = self.snapshot_writer.write_snapshot(db)
        finally:
            db.close()
