# Import all models so they register with SQLAlchemy Base.metadata
# This ensures Base.metadata.create_all() creates all tables

from models.habit import Habit
from models.required_link import RequiredLink
from models.habit_completion import HabitCompletion

__all__ = [
    "Habit",
    "RequiredLink",
    "HabitCompletion",
]
