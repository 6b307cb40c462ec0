"""
link_service.py — Habit ↔ reminder links
Required-link lookup for reconciliation, plus the write path that attaches a
reminder to a habit (stamp first, then save the link) and the healing pass that
records new identity keys on links written under older key schemes.
"""

import json
import logging

from sqlalchemy.orm import Session

from field_access import RecordAccessor, accessor_for
from models.habit import Habit
from models.required_link import RequiredLink
from providers.base import BaseReminderProvider, ReminderItem
from services.identity_service import (
    IdentityResolver,
    is_title_key,
    normalize,
    resolver as default_resolver,
)

logger = logging.getLogger(__name__)

# Fields that older link schemas used to hold a single reminder identifier
LEGACY_KEY_FIELDS = (
    "stamped_uuid",
    "stamp_uuid",
    "stamp",
    "reminder_external_identifier",
    "calendar_item_external_identifier",
    "ek_reminder_id",
    "reminder_identifier",
    "calendar_item_identifier",
    "reminder_id",
)

REQUIRED_FLAG_FIELDS = ("is_required", "required")


def stored_keys(record) -> list[str]:
    """All identity keys recorded on a link, normalized, deduped in order."""
    acc = accessor_for(record)
    raw = [str(k) for k in acc.get_list("identity_keys") if k]
    for name in LEGACY_KEY_FIELDS:
        value = acc.get_str(name)
        if value:
            raw.append(value)

    seen = set()
    keys = []
    for key in map(normalize, raw):
        if key and key not in seen:
            seen.add(key)
            keys.append(key)
    return keys


def is_required(record) -> bool:
    """A schema without any required flag has no optional links: everything counts."""
    acc = accessor_for(record)
    for name in REQUIRED_FLAG_FIELDS:
        if acc.has_field(name):
            return acc.get_bool(name, default=True)
    return True


def filter_required(records) -> list[RecordAccessor]:
    return [acc for acc in map(accessor_for, records) if is_required(acc)]


def _set_keys(link: RequiredLink, keys: list[str]):
    link.identity_keys = json.dumps(keys)


def _merge_keys(link: RequiredLink, new_keys: list[str]) -> bool:
    current = stored_keys(link)
    merged = current + [k for k in new_keys if k not in current]
    if merged == current:
        return False
    _set_keys(link, merged)
    return True


def _strong(keys) -> set[str]:
    return {k for k in keys if not is_title_key(k)}


class LinkService:
    @staticmethod
    def required_links(db: Session, habit_id: str) -> list[RequiredLink]:
        """Only the links flagged as required for this habit."""
        links = db.query(RequiredLink).filter_by(habit_id=habit_id).order_by(RequiredLink.id).all()
        return [acc.record for acc in filter_required(links)]

    @staticmethod
    def as_row(record) -> dict:
        """Detached plain-dict copy of a link, safe to hold across commits."""
        acc = accessor_for(record)
        return {
            "id": acc.get("id"),
            "habit_id": acc.get("habit_id"),
            "title": acc.get_str("title"),
            "identity_keys": stored_keys(acc),
            "is_required": is_required(acc),
        }

    @staticmethod
    def get_all(db: Session, habit_id: str) -> list[RequiredLink]:
        return db.query(RequiredLink).filter_by(habit_id=habit_id).order_by(RequiredLink.id).all()

    @staticmethod
    def get_by_id(db: Session, link_id: int) -> RequiredLink | None:
        return db.query(RequiredLink).filter_by(id=link_id).first()

    @staticmethod
    def find_for_item(db: Session, habit_id: str, keys: list[str]) -> RequiredLink | None:
        wanted = _strong(keys)
        if not wanted:
            return None
        for link in LinkService.get_all(db, habit_id):
            if wanted & _strong(stored_keys(link)):
                return link
        return None

    @staticmethod
    def attach(
        db: Session,
        provider: BaseReminderProvider,
        habit_id: str,
        item: ReminderItem,
        is_required: bool = True,
        resolver: IdentityResolver | None = None,
    ) -> RequiredLink | None:
        """
        Link a reminder to a habit.

        The stamp is committed to the provider before the link is saved; if that
        fails StampError propagates and nothing is written locally. Re-attaching
        an already stamped reminder reuses its token and updates the same link.
        Returns None if the habit does not exist.
        """
        resolver = resolver or default_resolver
        if not db.query(Habit).filter_by(id=habit_id).first():
            return None

        resolver.stamp(item, provider)
        keys = resolver.link_keys(item)

        try:
            link = LinkService.find_for_item(db, habit_id, keys)
            if link:
                _merge_keys(link, keys)
                link.title = item.title or link.title
                link.is_required = is_required
            else:
                link = RequiredLink(
                    habit_id=habit_id,
                    title=item.title,
                    is_required=is_required,
                )
                _set_keys(link, keys)
                db.add(link)
            db.commit()
            db.refresh(link)
            return link
        except Exception:
            db.rollback()
            raise

    @staticmethod
    def update(db: Session, link_id: int, data: dict) -> RequiredLink | None:
        try:
            link = LinkService.get_by_id(db, link_id)
            if not link:
                return None
            if data.get("is_required") is not None:
                link.is_required = bool(data["is_required"])
            if data.get("title"):
                link.title = data["title"]
            db.commit()
            db.refresh(link)
            return link
        except Exception as e:
            logger.error(f"Updating link {link_id} failed: {e}")
            db.rollback()
            return None

    @staticmethod
    def delete(db: Session, link_id: int) -> bool:
        try:
            link = LinkService.get_by_id(db, link_id)
            if link:
                db.delete(link)
                db.commit()
                return True
            return False
        except Exception as e:
            logger.error(f"Deleting link {link_id} failed: {e}")
            db.rollback()
            return False

    @staticmethod
    def heal(db: Session, items: list[ReminderItem], resolver: IdentityResolver | None = None) -> int:
        """
        Record every key a reminder currently exposes on the links that already
        share a strong key with it. Does not commit. Returns the number of links changed.
        """
        resolver = resolver or default_resolver
        item_keys = []
        for item in items:
            keys = resolver.link_keys(item)
            strong = _strong(keys)
            if strong:
                item_keys.append((strong, keys))
        if not item_keys:
            return 0

        changed = 0
        for link in db.query(RequiredLink).all():
            link_strong = _strong(stored_keys(link))
            if not link_strong:
                continue
            new_keys = []
            for strong, keys in item_keys:
                if strong & link_strong:
                    new_keys.extend(keys)
            if new_keys and _merge_keys(link, new_keys):
                changed += 1
        if changed:
            logger.info(f"Recorded new identity keys on {changed} link(s)")
        return changed
