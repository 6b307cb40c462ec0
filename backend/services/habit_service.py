"""
habit_service.py — Habits
CRUD for habits plus read-outs over their reconciled completion records.
Deleting a habit removes its links and completion records with it.
"""

import logging
from datetime import date, timedelta

from sqlalchemy.orm import Session

from models.habit import Habit
from services.completion_service import CompletionStore
from services.days import day_key, today as local_today

logger = logging.getLogger(__name__)


class HabitService:
    @staticmethod
    def create(db: Session, data: dict) -> Habit | None:
        try:
            h = Habit(name=data.get("name"))
            db.add(h)
            db.commit()
            db.refresh(h)
            return h
        except Exception as e:
            logger.error(f"Creating habit failed: {e}")
            db.rollback()
            return None

    @staticmethod
    def get_by_id(db: Session, habit_id: str) -> Habit | None:
        return db.query(Habit).filter_by(id=habit_id).first()

    @staticmethod
    def get_all(db: Session, today: date | None = None) -> list[dict]:
        """All habits with today's reconciled status."""
        today = today or local_today()
        habits = db.query(Habit).order_by(Habit.created_at.asc()).all()
        result = []
        for h in habits:
            record = CompletionStore.get(db, h.id, today)
            result.append({
                "habit": h,
                "completed_today": bool(record and record.is_complete),
                "total_required": record.total_required if record else 0,
                "completed_required": record.completed_required if record else 0,
            })
        return result

    @staticmethod
    def update(db: Session, habit_id: str, data: dict) -> Habit | None:
        try:
            h = HabitService.get_by_id(db, habit_id)
            if not h: return None
            if data.get("name"):
                h.name = data["name"]
            db.commit()
            db.refresh(h)
            return h
        except Exception as e:
            logger.error(f"Updating habit {habit_id} failed: {e}")
            db.rollback()
            return None

    @staticmethod
    def delete(db: Session, habit_id: str) -> bool:
        try:
            h = HabitService.get_by_id(db, habit_id)
            if h:
                db.delete(h)
                db.commit()
                return True
            return False
        except Exception as e:
            logger.error(f"Deleting habit {habit_id} failed: {e}")
            db.rollback()
            return False

    @staticmethod
    def get_history(db: Session, habit_id: str, days: int = 30, today: date | None = None) -> list:
        today = today or local_today()
        start_date = today - timedelta(days=max(days, 1) - 1)
        records = CompletionStore.get_range(db, start_date, today, habit_id=habit_id)
        return [
            {
                "date": day_key(r.date),
                "total_required": r.total_required,
                "completed_required": r.completed_required,
                "is_complete": r.is_complete,
            }
            for r in records
        ]

    @staticmethod
    def get_streaks(db: Session, today: date | None = None) -> list:
        today = today or local_today()
        habits = db.query(Habit).order_by(Habit.created_at.asc()).all()
        return [
            {"habit_id": h.id, "habit": h.name, "streak": CompletionStore.calculate_streak(db, h.id, today)}
            for h in habits
        ]
