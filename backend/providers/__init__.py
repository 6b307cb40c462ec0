from providers.base import (
    BaseReminderProvider,
    ProviderAccessError,
    ProviderError,
    ReminderItem,
    ReminderQuery,
)
from providers.memory_provider import MemoryReminderProvider
from providers.http_provider import HttpReminderProvider

from config import (
    REMINDERS_PROVIDER, REMINDERS_API_URL, REMINDERS_API_TOKEN, REMINDERS_TIMEOUT
)

_provider: BaseReminderProvider | None = None


def get_provider() -> BaseReminderProvider:
    """The configured reminders provider, created on first use."""
    global _provider
    if _provider is None:
        if REMINDERS_PROVIDER == "http":
            _provider = HttpReminderProvider(REMINDERS_API_URL, REMINDERS_API_TOKEN, REMINDERS_TIMEOUT)
        else:
            _provider = MemoryReminderProvider()
    return _provider


__all__ = [
    "BaseReminderProvider",
    "ProviderAccessError",
    "ProviderError",
    "ReminderItem",
    "ReminderQuery",
    "MemoryReminderProvider",
    "HttpReminderProvider",
    "get_provider",
]
