import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from database import Base


def new_habit_id() -> str:
    return str(uuid.uuid4())


class Habit(Base):
    __tablename__ = "habits"

    id = Column(String(36), primary_key=True, default=new_habit_id)  # stable for the habit's lifetime
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    links = relationship(
        "RequiredLink",
        back_populates="habit",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    completions = relationship(
        "HabitCompletion",
        back_populates="habit",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
