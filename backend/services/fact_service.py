"""
fact_service.py — Completion fact index
Buckets completed reminders by the local day they were completed on, as sets of
identity keys. Built fresh for every reconciliation run and never persisted.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from providers.base import ReminderItem
from services.days import DayWindow, local_day
from services.identity_service import IdentityResolver, resolver as default_resolver

logger = logging.getLogger(__name__)


@dataclass
class FactIndex:
    window: DayWindow
    by_day: dict[date, set[str]] = field(default_factory=dict)
    skipped: int = 0  # completed in window but no resolvable identity
    ignored: int = 0  # not completed, or completed outside the window

    def facts_for(self, day: date) -> set[str]:
        return self.by_day.get(day, set())

    @property
    def fact_count(self) -> int:
        return sum(len(keys) for keys in self.by_day.values())


def build_fact_index(
    items: list[ReminderItem],
    window: DayWindow,
    resolver: IdentityResolver | None = None,
) -> FactIndex:
    """Each completed item lands in at most one day: the local day of its completion timestamp."""
    resolver = resolver or default_resolver
    index = FactIndex(window=window)

    for item in items:
        if not item.is_completed or item.completed_at is None:
            index.ignored += 1
            continue

        day = local_day(item.completed_at)
        if day not in window:
            index.ignored += 1
            continue

        keys = resolver.resolve(item)
        if not keys:
            index.skipped += 1
            logger.debug(f"Skipping completed reminder with no identity: {item.title!r}")
            continue

        index.by_day.setdefault(day, set()).update(keys)

    if index.skipped:
        logger.info(f"Fact index: {index.skipped} completed reminder(s) had no resolvable identity")
    return index
