"""
snapshot_service.py — Read cache for the widget
Materializes completion records into small JSON files a sandboxed consumer can
read without touching the database: a habit index, one day-grid per habit and
an all-habits overview. Every file is replaced atomically.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import SNAPSHOT_DIR, SNAPSHOT_DAY_COUNT
from models.habit import Habit
from services.completion_service import CompletionStore
from services.days import DayWindow, day_key, today as local_today
from services.notification_service import notify_snapshot_consumer

logger = logging.getLogger(__name__)

INDEX_FILE = "habits_index.json"
OVERVIEW_FILE = "widget_snapshot.json"
TODAY_PREFIX = "today_"


class SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HabitStub(SnapshotModel):
    id: str
    name: str


class HabitIndex(SnapshotModel):
    updated_at: datetime
    habits: list[HabitStub]


class SnapshotDay(SnapshotModel):
    day_key: str  # YYYY-MM-DD, local calendar date
    is_complete: bool


class TodaySnapshot(SnapshotModel):
    updated_at: datetime
    habit_id: str
    habit_name: str
    total_required: int
    completed_required: int
    is_complete: bool
    days: list[SnapshotDay]  # oldest -> newest, last is today


class OverviewSnapshot(SnapshotModel):
    updated_at: datetime
    days: list[SnapshotDay]  # a day is complete when every habit is
    total_habits: int
    complete_habits: int


@dataclass
class SnapshotBundle:
    index: HabitIndex
    habits: list[TodaySnapshot]
    overview: OverviewSnapshot


def today_file_name(habit_id: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", habit_id)
    return f"{TODAY_PREFIX}{safe}.json"


def build_snapshot(db: Session, window: DayWindow) -> SnapshotBundle:
    """Pure projection of habits and their completion records over the window."""
    now = datetime.now(timezone.utc)
    habits = db.query(Habit).order_by(Habit.created_at.asc(), Habit.id.asc()).all()
    records = CompletionStore.get_range(db, window.start, window.end)

    by_habit: dict[str, dict[date, object]] = {}
    for r in records:
        by_habit.setdefault(r.habit_id, {})[r.date] = r

    days = list(window.days())
    today = window.end

    todays = []
    for h in habits:
        rows = by_habit.get(h.id, {})
        current = rows.get(today)
        todays.append(TodaySnapshot(
            updated_at=now,
            habit_id=h.id,
            habit_name=h.name or "Habit",
            total_required=current.total_required if current else 0,
            completed_required=current.completed_required if current else 0,
            is_complete=bool(current.is_complete) if current else False,
            days=[
                SnapshotDay(day_key=day_key(d), is_complete=bool(rows[d].is_complete) if d in rows else False)
                for d in days
            ],
        ))

    overview_days = []
    for i, d in enumerate(days):
        all_done = bool(todays) and all(t.days[i].is_complete for t in todays)
        overview_days.append(SnapshotDay(day_key=day_key(d), is_complete=all_done))

    return SnapshotBundle(
        index=HabitIndex(updated_at=now, habits=[HabitStub(id=h.id, name=h.name or "Habit") for h in habits]),
        habits=todays,
        overview=OverviewSnapshot(
            updated_at=now,
            days=overview_days,
            total_habits=len(todays),
            complete_habits=sum(1 for t in todays if t.is_complete),
        ),
    )


class SnapshotWriter:
    """Owns the snapshot directory. Readers only ever see whole files."""

    def __init__(
        self,
        cache_dir: str | os.PathLike = SNAPSHOT_DIR,
        notifier: Callable[[], bool] | None = notify_snapshot_consumer,
    ):
        self.cache_dir = Path(cache_dir)
        self.notifier = notifier

    # ------------------------------------------------------------------
    def _write(self, filename: str, payload: SnapshotModel):
        """Write to a temp file in the same directory, fsync, then swap into place."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.cache_dir / filename
        data = payload.model_dump_json(by_alias=True)
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                delete=False,
                dir=str(self.cache_dir),
                prefix=filename + ".tmp.",
            ) as f:
                tmp_path = Path(f.name)
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()

    def _read(self, filename: str, model: type[SnapshotModel]):
        path = self.cache_dir / filename
        try:
            return model.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as e:
            logger.warning(f"Snapshot file {filename} unreadable: {e}")
            return None

    def _remove_stale(self, keep: set[str]):
        for path in self.cache_dir.glob(f"{TODAY_PREFIX}*.json"):
            if path.name not in keep:
                try:
                    path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove stale snapshot {path.name}: {e}")

    # ------------------------------------------------------------------
    def write_snapshot(self, db: Session, day_count: int | None = None, today: date | None = None) -> bool:
        """
        Rebuild every artifact from the database. Failures leave the previous
        cache in place and return False; the next trigger tries again.
        """
        window = DayWindow.ending(today or local_today(), day_count or SNAPSHOT_DAY_COUNT)
        try:
            bundle = build_snapshot(db, window)

            # Per-habit files before the index, so the index never names a missing file
            names = set()
            for payload in bundle.habits:
                name = today_file_name(payload.habit_id)
                self._write(name, payload)
                names.add(name)
            self._write(INDEX_FILE, bundle.index)
            self._write(OVERVIEW_FILE, bundle.overview)
            self._remove_stale(names)
        except (OSError, SQLAlchemyError, ValueError) as e:
            logger.error(f"Snapshot write failed, keeping previous cache: {e}")
            return False

        logger.info(f"Snapshot written for {len(bundle.habits)} habit(s), {len(window)} day(s)")
        if self.notifier:
            self.notifier()
        return True

    def read_index(self) -> HabitIndex | None:
        return self._read(INDEX_FILE, HabitIndex)

    def read_today(self, habit_id: str) -> TodaySnapshot | None:
        return self._read(today_file_name(habit_id), TodaySnapshot)

    def read_overview(self) -> OverviewSnapshot | None:
        return self._read(OVERVIEW_FILE, OverviewSnapshot)
