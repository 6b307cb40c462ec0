import json
from datetime import datetime

import httpx
import pytest

from providers.base import ProviderAccessError, ProviderError, ReminderItem, ReminderQuery
from providers.http_provider import HttpReminderProvider, item_from_json
from providers.memory_provider import MemoryReminderProvider
from services.notification_service import notify_snapshot_consumer


def http_provider(handler):
    return HttpReminderProvider("http://bridge.test/", api_token="secret",
                                transport=httpx.MockTransport(handler))


def test_query_bounds_are_half_open():
    query = ReminderQuery.completed_between(datetime(2025, 1, 1), datetime(2025, 1, 2))
    inside = ReminderItem(local_id="a", is_completed=True, completed_at=datetime(2025, 1, 1))
    at_end = ReminderItem(local_id="b", is_completed=True, completed_at=datetime(2025, 1, 2))
    open_item = ReminderItem(local_id="c", completed_at=datetime(2025, 1, 1, 5))

    assert query.matches(inside)
    assert not query.matches(at_end)
    assert not query.matches(open_item)


def test_memory_provider_hands_out_copies():
    provider = MemoryReminderProvider([ReminderItem(local_id="L1", title="Walk")])

    item = provider.get_item("L1")
    item.title = "changed"

    assert provider.get_item("L1").title == "Walk"


def test_memory_provider_saves_only_on_commit():
    provider = MemoryReminderProvider([ReminderItem(local_id="L1")])
    item = provider.get_item("L1")
    item.url = "habitsquares://reminder-link/T"

    provider.save(item)
    assert provider.get_item("L1").url is None
    provider.commit()
    assert provider.get_item("L1").url == "habitsquares://reminder-link/T"


def test_memory_provider_without_access():
    provider = MemoryReminderProvider(access_granted=False)
    assert not provider.has_access()
    with pytest.raises(ProviderAccessError):
        provider.fetch_items(ReminderQuery.outstanding())


def test_http_fetch_parses_items_and_sends_filters():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=[
            {"local_id": "L1", "external_id": "E1", "is_completed": True,
             "completed_at": "2025-01-01T09:00:00", "recurrence_rules": ["FREQ=DAILY"]},
            {"local_id": "L2", "is_completed": True, "completed_at": "2025-01-05T09:00:00"},
        ])

    provider = http_provider(handler)
    items = provider.fetch_items(ReminderQuery.completed_between(datetime(2025, 1, 1), datetime(2025, 1, 2)))

    # the bridge ignored the window, the second item is filtered locally
    assert [i.local_id for i in items] == ["L1"]
    assert items[0].is_recurring
    assert seen["params"]["completed"] == "true"
    assert seen["params"]["completed_start"] == "2025-01-01T00:00:00"
    assert seen["auth"] == "Bearer secret"


def test_http_access_denied():
    provider = http_provider(lambda request: httpx.Response(403))

    assert provider.has_access() is False
    with pytest.raises(ProviderAccessError):
        provider.fetch_items(ReminderQuery.outstanding())


def test_http_missing_item_and_server_error():
    def handler(request):
        if request.url.path.endswith("/gone"):
            return httpx.Response(404)
        return httpx.Response(500)

    provider = http_provider(handler)
    assert provider.get_item("gone") is None
    with pytest.raises(ProviderError):
        provider.get_item("boom")


def test_http_transport_failure_is_a_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(ProviderError):
        http_provider(handler).fetch_items(ReminderQuery.outstanding())


def test_http_commit_posts_staged_batch():
    posted = []

    def handler(request):
        posted.append(json.loads(request.content))
        return httpx.Response(204)

    provider = http_provider(handler)
    provider.commit()
    assert posted == []

    provider.save(ReminderItem(local_id="L1", url="habitsquares://reminder-link/T"))
    provider.commit()

    assert len(posted) == 1
    assert posted[0]["items"][0]["local_id"] == "L1"
    assert posted[0]["items"][0]["url"] == "habitsquares://reminder-link/T"


def test_http_commit_failure_raises():
    provider = http_provider(lambda request: httpx.Response(500))
    provider.save(ReminderItem(local_id="L1"))
    with pytest.raises(ProviderError):
        provider.commit()


def test_item_from_json_accepts_utc_suffix():
    item = item_from_json({"id": 7, "completed_at": "2025-01-01T09:00:00Z"})
    assert item.local_id == "7"
    assert item.completed_at.utcoffset().total_seconds() == 0


def test_refresh_signal_without_target():
    assert notify_snapshot_consumer(url="") is False


def test_refresh_signal_failure_is_not_raised(monkeypatch):
    real_client = httpx.Client

    def client_with_transport(**kwargs):
        return real_client(transport=httpx.MockTransport(lambda request: httpx.Response(503)), **kwargs)

    monkeypatch.setattr(httpx, "Client", client_with_transport)

    assert notify_snapshot_consumer(url="http://widget.test/refresh") is False


def test_http_body_that_is_not_json_is_a_provider_error():
    provider = http_provider(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(ProviderError):
        provider.fetch_items(ReminderQuery.outstanding())
    with pytest.raises(ProviderError):
        provider.get_item("L1")
    assert provider.has_access() is False


def test_http_unexpected_body_shape_is_a_provider_error():
    provider = http_provider(lambda request: httpx.Response(200, json={"reminders": []}))
    with pytest.raises(ProviderError):
        provider.fetch_items(ReminderQuery.outstanding())


@pytest.mark.parametrize("row", [
    {"local_id": "L1", "is_completed": True, "completed_at": "yesterday"},
    {"local_id": "L1", "due_at": "soon"},
    "L1",
])
def test_http_malformed_reminder_is_a_provider_error(row):
    provider = http_provider(lambda request: httpx.Response(200, json=[row]))
    with pytest.raises(ProviderError):
        provider.fetch_items(ReminderQuery())


def test_http_failed_commit_drops_the_batch():
    posted = []
    fail = [True]

    def handler(request):
        if fail[0]:
            raise httpx.ConnectError("connection refused")
        posted.append(json.loads(request.content))
        return httpx.Response(204)

    provider = http_provider(handler)
    provider.save(ReminderItem(local_id="A", url="habitsquares://reminder-link/TA"))
    with pytest.raises(ProviderError):
        provider.commit()

    fail[0] = False
    provider.save(ReminderItem(local_id="B", url="habitsquares://reminder-link/TB"))
    provider.commit()

    assert [row["local_id"] for row in posted[0]["items"]] == ["B"]


def test_stamp_after_failed_stamp_writes_only_the_new_reminder():
    from services.identity_service import IdentityResolver, StampError, stamped_token

    posted = []
    fail = [True]

    def handler(request):
        if fail[0]:
            raise httpx.ConnectError("connection refused")
        posted.append(json.loads(request.content))
        return httpx.Response(200)

    provider = http_provider(handler)
    resolver = IdentityResolver()
    first = ReminderItem(local_id="A")
    with pytest.raises(StampError):
        resolver.stamp(first, provider)
    assert first.url is None

    fail[0] = False
    second = ReminderItem(local_id="B")
    token = resolver.stamp(second, provider)

    items = posted[0]["items"]
    assert [row["local_id"] for row in items] == ["B"]
    assert stamped_token(item_from_json(items[0])) == token


def test_memory_provider_refused_commit_drops_staged_saves():
    provider = MemoryReminderProvider([ReminderItem(local_id="A"), ReminderItem(local_id="B")])
    item = provider.get_item("A")
    item.url = "habitsquares://reminder-link/TA"
    provider.save(item)

    provider.access_granted = False
    with pytest.raises(ProviderAccessError):
        provider.commit()
    provider.access_granted = True
    provider.commit()

    assert provider.get_item("A").url is None
    assert provider.commit_count == 1
