import copy
import logging

from providers.base import (
    BaseReminderProvider,
    ProviderAccessError,
    ReminderItem,
    ReminderQuery,
)

logger = logging.getLogger(__name__)


class MemoryReminderProvider(BaseReminderProvider):
    """In-process reminder store. Items are copied in and out so callers never share state with it."""

    def __init__(self, items: list[ReminderItem] | None = None, access_granted: bool = True):
        self._items: dict[str, ReminderItem] = {}
        self._staged: dict[str, ReminderItem] = {}
        self.access_granted = access_granted
        self.commit_count = 0
        for item in items or []:
            self.put(item)

    @property
    def name(self) -> str:
        return "memory"

    def put(self, item: ReminderItem):
        """Insert or replace an item directly, as the provider's own UI would."""
        self._items[item.local_id] = copy.deepcopy(item)

    def has_access(self) -> bool:
        return self.access_granted

    def _check_access(self):
        if not self.access_granted:
            raise ProviderAccessError("Reminders access not granted")

    def fetch_items(self, query: ReminderQuery) -> list[ReminderItem]:
        self._check_access()
        found = [copy.deepcopy(i) for i in self._items.values() if query.matches(i)]
        logger.debug(f"Reminders: fetched {len(found)} item(s).")
        return found

    def get_item(self, local_id: str) -> ReminderItem | None:
        self._check_access()
        item = self._items.get(local_id)
        return copy.deepcopy(item) if item else None

    def save(self, item: ReminderItem) -> None:
        self._check_access()
        self._staged[item.local_id] = copy.deepcopy(item)

    def commit(self) -> None:
        """Apply staged saves. A refused commit drops them, like a failed write would."""
        try:
            self._check_access()
            self._items.update(self._staged)
            self.commit_count += 1
        finally:
            self._staged.clear()
