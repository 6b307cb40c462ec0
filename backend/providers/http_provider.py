import logging
from datetime import datetime

import httpx

from providers.base import (
    BaseReminderProvider,
    ProviderAccessError,
    ProviderError,
    ReminderItem,
    ReminderQuery,
)

logger = logging.getLogger(__name__)


def _parse_dt(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def item_from_json(data: dict) -> ReminderItem:
    return ReminderItem(
        local_id=str(data.get("local_id") or data.get("id") or ""),
        title=data.get("title") or "",
        list_name=data.get("list_name") or "",
        external_id=data.get("external_id") or None,
        due_at=_parse_dt(data.get("due_at")),
        is_completed=bool(data.get("is_completed", False)),
        completed_at=_parse_dt(data.get("completed_at")),
        recurrence_rules=list(data.get("recurrence_rules") or []),
        url=data.get("url") or None,
    )


def item_to_json(item: ReminderItem) -> dict:
    return {
        "local_id": item.local_id,
        "title": item.title,
        "list_name": item.list_name,
        "external_id": item.external_id,
        "due_at": item.due_at.isoformat() if item.due_at else None,
        "is_completed": item.is_completed,
        "completed_at": item.completed_at.isoformat() if item.completed_at else None,
        "recurrence_rules": item.recurrence_rules,
        "url": item.url,
    }


class HttpReminderProvider(BaseReminderProvider):
    """Provider for a reminders bridge exposing a small REST API, using standard httpx."""

    def __init__(self, base_url: str, api_token: str = "", timeout: float = 10.0,
                 transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.transport = transport
        self._staged: list[dict] = []

    @property
    def name(self) -> str:
        return "http"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(f"Timeout calling {url}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Error calling {url}: {e}") from e

        if resp.status_code in (401, 403):
            raise ProviderAccessError(f"Reminders access denied ({resp.status_code})")
        return resp

    def has_access(self) -> bool:
        try:
            resp = self._request("GET", "/access")
        except ProviderAccessError:
            return False
        except ProviderError as e:
            logger.warning(f"Reminders: access check failed: {e}")
            return False
        if resp.status_code != 200:
            return False
        try:
            body = self._decode(resp, "Access check")
        except ProviderError as e:
            logger.warning(f"Reminders: {e}")
            return False
        return isinstance(body, dict) and bool(body.get("granted", False))


    def _decode(self, resp: httpx.Response, what: str):
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"{what}: response is not JSON") from e

    def fetch_items(self, query: ReminderQuery) -> list[ReminderItem]:
        params = {}
        if query.completed is not None:
            params["completed"] = "true" if query.completed else "false"
        for key in ("completed_start", "completed_end", "due_start", "due_end"):
            value = getattr(query, key)
            if value is not None:
                params[key] = value.isoformat()

        resp = self._request("GET", "/reminders", params=params)
        if resp.status_code != 200:
            raise ProviderError(f"Fetching reminders failed with status {resp.status_code}")
        rows = self._decode(resp, "Fetching reminders")
        if not isinstance(rows, list):
            raise ProviderError("Fetching reminders: expected a list of reminders")
        try:
            items = [item_from_json(row) for row in rows]
        except (ValueError, TypeError, AttributeError) as e:
            raise ProviderError(f"Fetching reminders: malformed reminder: {e}") from e
        # The bridge may ignore some filters; enforce the predicate locally as well.
        return [i for i in items if query.matches(i)]

    def get_item(self, local_id: str) -> ReminderItem | None:
        resp = self._request("GET", f"/reminders/{local_id}")
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise ProviderError(f"Fetching reminder {local_id} failed with status {resp.status_code}")
        data = self._decode(resp, f"Fetching reminder {local_id}")
        try:
            return item_from_json(data)
        except (ValueError, TypeError, AttributeError) as e:
            raise ProviderError(f"Fetching reminder {local_id}: malformed reminder: {e}") from e

    def save(self, item: ReminderItem) -> None:
        self._staged.append(item_to_json(item))

    def commit(self) -> None:
        """Send the staged batch. The batch is dropped whether or not the bridge accepts it."""
        if not self._staged:
            return
        try:
            resp = self._request("POST", "/reminders/batch", json={"items": self._staged})
        finally:
            self._staged.clear()
        if resp.status_code not in (200, 204):
            raise ProviderError(f"Committing reminders failed with status {resp.status_code}")
