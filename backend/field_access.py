"""
field_access.py — Capability-checked field access over stored records.
Lets reconciliation read ORM rows and plain dict rows (REST payloads, exports
from older schema revisions) the same way: a field that the record's schema
does not have is "not present", never an error.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable

logger = logging.getLogger(__name__)


class RecordAccessor(ABC):
    """Read-only view over a record whose shape may vary between schema revisions."""

    @abstractmethod
    def has_field(self, name: str) -> bool:
        ...

    @abstractmethod
    def get(self, name: str, default: Any = None) -> Any:
        ...

    @property
    @abstractmethod
    def record(self) -> Any:
        """The wrapped object."""
        ...

    # ------------------------------------------------------------------
    def get_str(self, name: str) -> str | None:
        value = self.get(name)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def get_bool(self, name: str, default: bool = False) -> bool:
        value = self.get(name)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "y")
        return bool(value)

    def get_int(self, name: str, default: int = 0) -> int:
        value = self.get(name)
        try:
            return int(value) if value is not None else default
        except (TypeError, ValueError):
            return default

    def get_list(self, name: str) -> list:
        """List field; JSON text columns are decoded, unreadable values read as empty."""
        value = self.get(name)
        if value is None or value == "":
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, str):
            try:
                decoded = json.loads(value)
            except ValueError:
                logger.warning(f"Field '{name}' holds unreadable JSON, treating as empty")
                return []
            if isinstance(decoded, list):
                return decoded
            logger.warning(f"Field '{name}' is not a JSON list, treating as empty")
        return []


class OrmAccessor(RecordAccessor):
    """Accessor for SQLAlchemy mapped instances; only mapped attributes count as fields."""

    def __init__(self, obj):
        self._obj = obj
        self._fields = set(inspect(type(obj)).attrs.keys())

    @property
    def record(self):
        return self._obj

    def has_field(self, name: str) -> bool:
        return name in self._fields

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self._fields:
            return default
        value = getattr(self._obj, name, default)
        return default if value is None else value


class DictAccessor(RecordAccessor):
    """Accessor for mapping-shaped rows."""

    def __init__(self, row: dict):
        self._row = row

    @property
    def record(self):
        return self._row

    def has_field(self, name: str) -> bool:
        return name in self._row

    def get(self, name: str, default: Any = None) -> Any:
        value = self._row.get(name, default)
        return default if value is None else value


def accessor_for(record) -> RecordAccessor:
    """Wrap any supported record shape in a RecordAccessor."""
    if isinstance(record, RecordAccessor):
        return record
    if isinstance(record, dict):
        return DictAccessor(record)
    try:
        return OrmAccessor(record)
    except NoInspectionAvailable:
        pass
    if hasattr(record, "keys") and hasattr(record, "get"):
        return DictAccessor(dict(record))
    raise TypeError(f"Unsupported record type: {type(record).__name__}")
