from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


class ProviderError(Exception):
    """The reminders provider could not be read or written."""


class ProviderAccessError(ProviderError):
    """Access to the reminders provider was not granted or has been revoked."""


@dataclass
class ReminderItem:
    """A reminder as the provider currently reports it."""

    local_id: str
    title: str = ""
    list_name: str = ""
    external_id: str | None = None
    due_at: datetime | None = None
    is_completed: bool = False
    completed_at: datetime | None = None
    recurrence_rules: list[str] = field(default_factory=list)
    url: str | None = None  # reserved field, carries the stamp

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rules)


@dataclass
class ReminderQuery:
    """Predicate for fetch_items. Bounds are half-open: [start, end)."""

    completed: bool | None = None
    completed_start: datetime | None = None
    completed_end: datetime | None = None
    due_start: datetime | None = None
    due_end: datetime | None = None

    @classmethod
    def completed_between(cls, start: datetime, end: datetime) -> "ReminderQuery":
        return cls(completed=True, completed_start=start, completed_end=end)

    @classmethod
    def outstanding(cls) -> "ReminderQuery":
        return cls(completed=False)

    def matches(self, item: ReminderItem) -> bool:
        if self.completed is not None and item.is_completed != self.completed:
            return False
        if self.completed_start or self.completed_end:
            if item.completed_at is None:
                return False
            if self.completed_start and _naive(item.completed_at) < _naive(self.completed_start):
                return False
            if self.completed_end and _naive(item.completed_at) >= _naive(self.completed_end):
                return False
        if self.due_start or self.due_end:
            if item.due_at is None:
                return False
            if self.due_start and _naive(item.due_at) < _naive(self.due_start):
                return False
            if self.due_end and _naive(item.due_at) >= _naive(self.due_end):
                return False
        return True


def _naive(value: datetime) -> datetime:
    """Compare in local wall-clock time whatever the offset awareness of either side."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class BaseReminderProvider(ABC):
    """Abstract base class for reminder sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The name of this provider (e.g. 'memory', 'http')."""
        ...

    @abstractmethod
    def has_access(self) -> bool:
        """Whether reading reminders is currently permitted."""
        ...

    @abstractmethod
    def fetch_items(self, query: ReminderQuery) -> list[ReminderItem]:
        """
        Fetch reminders matching the query.

        Raises:
            ProviderAccessError: access not granted.
            ProviderError: any other failure talking to the provider.
        """
        ...

    @abstractmethod
    def get_item(self, local_id: str) -> ReminderItem | None:
        ...

    @abstractmethod
    def save(self, item: ReminderItem) -> None:
        """Stage a write of the item. Nothing is durable until commit()."""
        ...

    @abstractmethod
    def commit(self) -> None:
        """Make staged writes durable. Raises ProviderError on failure."""
        ...
