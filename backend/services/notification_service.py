"""
notification_service.py — Snapshot refresh signal
Tells the snapshot consumer to re-render. Best effort: the consumer also
refreshes on its own schedule, so a failed signal is only logged.
"""

import logging

import httpx

from config import SNAPSHOT_REFRESH_URL

logger = logging.getLogger(__name__)


def notify_snapshot_consumer(url: str | None = None, timeout: float = 5.0) -> bool:
    """POST an empty refresh request. Returns whether the consumer acknowledged it."""
    target = url if url is not None else SNAPSHOT_REFRESH_URL
    if not target:
        return False
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(target, json={"event": "snapshot_updated"})
            resp.raise_for_status()
        return True
    except httpx.HTTPError as e:
        logger.warning(f"Snapshot refresh signal failed: {e}")
        return False
