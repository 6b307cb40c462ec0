from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from database import Base


class RequiredLink(Base):
    """An external reminder that counts toward a habit."""

    __tablename__ = "habit_reminder_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(String(36), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True)
    identity_keys = Column(Text, nullable=True)  # JSON array, every key ever recorded, in order
    title = Column(String(500), nullable=True)
    is_required = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Written by the first link scheme (provider local id); read as an identity key
    ek_reminder_id = Column(String(255), nullable=True)

    habit = relationship("Habit", back_populates="links")
