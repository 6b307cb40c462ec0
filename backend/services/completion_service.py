"""
completion_service.py — Per-(habit, day) completion records
One row per habit per day, found-or-created and updated in place. Upserts do not
commit: the reconciliation run owns the transaction for the whole day batch.
"""

from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.orm import Session

from models.habit_completion import HabitCompletion


@dataclass(frozen=True)
class CompletionSummary:
    total_required: int
    completed_required: int
    is_complete: bool

    @classmethod
    def from_counts(cls, total: int, completed: int) -> "CompletionSummary":
        completed = max(0, min(completed, total))
        return cls(
            total_required=total,
            completed_required=completed,
            is_complete=total > 0 and completed == total,
        )

    def to_dict(self) -> dict:
        return {
            "total_required": self.total_required,
            "completed_required": self.completed_required,
            "is_complete": self.is_complete,
        }


class CompletionStore:
    @staticmethod
    def get(db: Session, habit_id: str, day: date) -> HabitCompletion | None:
        return db.query(HabitCompletion).filter_by(habit_id=habit_id, date=day).first()

    @staticmethod
    def upsert(db: Session, habit_id: str, day: date, summary: CompletionSummary) -> HabitCompletion:
        record = CompletionStore.get(db, habit_id, day)
        if record is None:
            record = HabitCompletion(habit_id=habit_id, date=day)
            db.add(record)

        # Assign only on change so a repeat run leaves rows untouched
        values = {
            "total_required": summary.total_required,
            "completed_required": summary.completed_required,
            "is_complete": summary.is_complete,
        }
        for key, value in values.items():
            if getattr(record, key) != value:
                setattr(record, key, value)

        # Session runs with autoflush off; flush so the next lookup in this batch finds the row
        db.flush()
        return record

    @staticmethod
    def get_range(db: Session, start: date, end: date, habit_id: str | None = None) -> list[HabitCompletion]:
        """Records with start <= date <= end, oldest first."""
        query = db.query(HabitCompletion).filter(
            HabitCompletion.date >= start,
            HabitCompletion.date <= end,
        )
        if habit_id is not None:
            query = query.filter(HabitCompletion.habit_id == habit_id)
        return query.order_by(HabitCompletion.date.asc()).all()

    @staticmethod
    def calculate_streak(db: Session, habit_id: str, today: date) -> int:
        """Count backward consecutive complete days. 1 day grace period for today."""
        records = db.query(HabitCompletion).filter_by(habit_id=habit_id, is_complete=True)\
                    .order_by(HabitCompletion.date.desc()).all()
        if not records:
            return 0

        streak = 0
        curr_date = today

        # 1-day grace: the streak survives until today is over
        if records[0].date != today:
            curr_date = today - timedelta(days=1)

        for record in records:
            if record.date == curr_date:
                streak += 1
                curr_date -= timedelta(days=1)
            elif record.date > curr_date:
                continue
            else:
                # Missing day
                break

        return streak
