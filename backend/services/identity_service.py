"""
identity_service.py — Reminder identity resolution
Turns a reminder into a comparable identity key and normalizes stored keys, so
links written under any of the historical key schemes match current facts.
Also stamps reminders with an app-owned token to make their identity durable.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from urllib.parse import urlsplit

from config import STAMP_URL_SCHEME
from providers.base import BaseReminderProvider, ProviderError, ReminderItem

logger = logging.getLogger(__name__)

STAMP_HOST = "reminder-link"
LEGACY_STAMP_HOST = "stamp"

# Prefixes written by earlier storage schemes; never part of the key itself
LEGACY_PREFIXES = ("stamp:", "ext:", "id:")

TITLE_KEY_PREFIX = "title:"


class StampError(Exception):
    """The stamp could not be committed to the provider."""


class KeyKind(str, Enum):
    STAMP = "stamp"
    EXTERNAL = "external"
    LOCAL = "local"
    TITLE = "title"


@dataclass(frozen=True)
class IdentityStrategy:
    kind: KeyKind
    extract: Callable[[ReminderItem], str | None]


def stamp_url(token: str) -> str:
    return f"{STAMP_URL_SCHEME}://{STAMP_HOST}/{token}"


def stamped_token(item: ReminderItem) -> str | None:
    """Our token, read back from the reminder's URL field, if it carries one."""
    if not item.url:
        return None
    parts = urlsplit(item.url)
    if parts.scheme.lower() != STAMP_URL_SCHEME.lower():
        return None
    if parts.netloc.lower() not in (STAMP_HOST, LEGACY_STAMP_HOST):
        return None
    token = parts.path.strip("/")
    return token or None


def _external_id(item: ReminderItem) -> str | None:
    return (item.external_id or "").strip() or None


def _local_id(item: ReminderItem) -> str | None:
    return (item.local_id or "").strip() or None


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip()).casefold()


def title_key(title: str, list_name: str) -> str | None:
    title = _squash(title)
    if not title:
        return None
    return f"{TITLE_KEY_PREFIX}{title}|{_squash(list_name)}"


def _title_fallback(item: ReminderItem) -> str | None:
    # Heuristic: two recurring reminders with the same title in the same list collide.
    if not item.is_recurring:
        return None
    return title_key(item.title, item.list_name)


DEFAULT_STRATEGIES = (
    IdentityStrategy(KeyKind.STAMP, stamped_token),
    IdentityStrategy(KeyKind.EXTERNAL, _external_id),
    IdentityStrategy(KeyKind.LOCAL, _local_id),
    IdentityStrategy(KeyKind.TITLE, _title_fallback),
)

STRONG_KINDS = frozenset({KeyKind.STAMP, KeyKind.EXTERNAL, KeyKind.LOCAL})


def normalize(stored_key: str) -> str:
    """Strip legacy storage prefixes so old- and new-format keys compare equal."""
    key = (stored_key or "").strip()
    stripped = True
    while stripped:
        stripped = False
        for prefix in LEGACY_PREFIXES:
            if key.startswith(prefix):
                key = key[len(prefix):]
                stripped = True
    return key


def is_title_key(key: str) -> bool:
    return key.startswith(TITLE_KEY_PREFIX)


class IdentityResolver:
    """Ordered list of key strategies; the first one that yields a key wins."""

    def __init__(self, strategies=DEFAULT_STRATEGIES):
        self.strategies = tuple(strategies)

    def resolve_with_kind(self, item: ReminderItem) -> tuple[KeyKind, str] | None:
        for strategy in self.strategies:
            value = strategy.extract(item)
            if value:
                return strategy.kind, normalize(value)
        return None

    def resolve(self, item: ReminderItem) -> frozenset[str]:
        found = self.resolve_with_kind(item)
        return frozenset({found[1]}) if found else frozenset()

    def keyed(self, item: ReminderItem) -> list[tuple[KeyKind, str]]:
        """Every key the item exposes right now, in priority order."""
        out = []
        seen = set()
        for strategy in self.strategies:
            value = strategy.extract(item)
            if not value:
                continue
            key = normalize(value)
            if key and key not in seen:
                seen.add(key)
                out.append((strategy.kind, key))
        return out

    def link_keys(self, item: ReminderItem) -> list[str]:
        return [key for _, key in self.keyed(item)]

    def strong_keys(self, item: ReminderItem) -> set[str]:
        return {key for kind, key in self.keyed(item) if kind in STRONG_KINDS}

    # ------------------------------------------------------------------
    def stamp(self, item: ReminderItem, provider: BaseReminderProvider) -> str | None:
        """
        Write an app-owned token into the reminder and commit it to the provider.

        Returns the token (the existing one if already stamped), or None when the
        reminder's URL field is taken by something else and cannot be stamped.
        Raises StampError when the provider write fails; the item is left unchanged.
        """
        existing = stamped_token(item)
        if existing:
            return existing
        if item.url:
            logger.info(f"Reminder {item.local_id} carries a foreign URL, leaving it unstamped")
            return None

        token = str(uuid.uuid4())
        item.url = stamp_url(token)
        try:
            provider.save(item)
            provider.commit()
        except ProviderError as e:
            item.url = None
            raise StampError(f"Could not stamp reminder {item.local_id}: {e}") from e
        logger.info(f"Stamped reminder {item.local_id}")
        return token


resolver = IdentityResolver()
