from __future__ import annotations

from http.client import IncompleteRead
from urllib.error import URLError

import pytest

from visadesk.app.service_store import SupabaseServiceStore
from visadesk.app.supabase_rest import SupabaseRestClient


ROW = {
    "id": "svc-1",
    "app_id": "visadesk",
    "title": "VOA",
    "passport_number": "A1234567",
    "description": "Renewal",
    "date_entered": "2025-01-10",
    "status": "intake",
    "timestamp": "2025-01-10T09:00:00+00:00",
    "created_by": "user-123",
}


class FakeRealtime:
    def __init__(self, on_change, on_status) -> None:
        self.on_change = on_change
        self.on_status = on_status
        self.started: list = []
        self.stopped = 0
        self.active = False
        self.joined = False

    def start(self, subscription) -> None:
        self.started.append(subscription)
        self.active = True
        self.joined = True

    def stop(self) -> None:
        self.stopped += 1
        self.active = False
        self.joined = False


class RealtimeFactory:
    def __init__(self) -> None:
        self.clients: list[FakeRealtime] = []

    def __call__(self, on_change, on_status) -> FakeRealtime:
        client = FakeRealtime(on_change, on_status)
        self.clients.append(client)
        return client


def _store(*, realtime_factory=None, url="https://demo.supabase.co", api_key="anon-key", on_status=None):
    client = SupabaseRestClient(url=url, api_key=api_key, schema="public")
    return SupabaseServiceStore(
        client,
        table="services",
        app_id="visadesk",
        realtime_factory=realtime_factory,
        on_status=on_status,
    )


def _subscribe(store):
    snapshots: list = []
    errors: list = []
    unsubscribe = store.subscribe(snapshots.append, errors.append)
    return snapshots, errors, unsubscribe


def test_unconfigured_store_reports_error_and_skips_network(supabase_server):
    store = _store(url="", api_key="")
    snapshots, errors, unsubscribe = _subscribe(store)
    assert snapshots == []
    assert errors and "not initialized" in errors[0]
    unsubscribe()

    result = store.insert({"title": "VOA"})
    assert not result.ok
    assert supabase_server.requests == []


def test_subscribe_fetches_ordered_rows_for_app(supabase_server):
    supabase_server.reply([ROW])
    store = _store()

    snapshots, errors, _unsubscribe = _subscribe(store)

    assert errors == []
    [[record]] = snapshots
    assert record.service_id == "svc-1"
    assert record.created_by == "user-123"
    request = supabase_server.requests[0]
    assert request.get_method() == "GET"
    assert request.full_url == (
        "https://demo.supabase.co/rest/v1/services"
        "?select=*&app_id=eq.visadesk&order=timestamp.desc"
    )


def test_fetch_failure_goes_to_error_callback(supabase_server):
    supabase_server.raise_error(URLError("offline"))
    store = _store()
    snapshots, errors, _unsubscribe = _subscribe(store)
    assert snapshots == []
    assert errors and "offline" in errors[0]


def test_insert_posts_row_with_app_id_and_refreshes_without_realtime(supabase_server):
    supabase_server.reply([])
    store = _store()
    snapshots, _errors, _unsubscribe = _subscribe(store)

    supabase_server.reply(None, status=201)
    supabase_server.reply([ROW])
    result = store.insert(
        {
            "title": "VOA",
            "passport_number": "A1234567",
            "description": "Renewal",
            "date_entered": "2025-01-10",
            "status": "intake",
            "created_by": "user-123",
            "timestamp": "ignored",
        }
    )

    assert result.ok
    post = supabase_server.requests[1]
    assert post.get_method() == "POST"
    assert post.get_header("Prefer") == "return=minimal"
    assert supabase_server.payload(1) == [
        {
            "app_id": "visadesk",
            "title": "VOA",
            "passport_number": "A1234567",
            "description": "Renewal",
            "date_entered": "2025-01-10",
            "status": "intake",
            "created_by": "user-123",
        }
    ]
    assert len(snapshots) == 2
    assert snapshots[-1][0].service_id == "svc-1"


def test_patch_sends_only_named_fields(supabase_server):
    store = _store()
    supabase_server.reply([ROW])

    result = store.patch("svc-1", {"status": "follow-up"})

    assert result.ok
    request = supabase_server.requests[0]
    assert request.get_method() == "PATCH"
    assert request.full_url.endswith("/rest/v1/services?id=eq.svc-1&app_id=eq.visadesk")
    assert supabase_server.payload(0) == {"status": "follow-up"}


def test_patch_missing_row_fails(supabase_server):
    store = _store()
    supabase_server.reply([])
    result = store.patch("gone", {"status": "done"})
    assert not result.ok
    assert result.error == "Service no longer exists."


def test_remove_failure_is_a_result_not_an_exception(supabase_server):
    store = _store()
    supabase_server.raise_error(URLError("timed out"))
    result = store.remove("svc-1")
    assert not result.ok
    assert "timed out" in result.error


def test_truncated_response_is_a_result_not_an_exception(supabase_server):
    store = _store()
    supabase_server.raise_error(IncompleteRead(b"", 128))
    result = store.insert({"title": "VOA"})
    assert not result.ok
    assert result.error


def test_realtime_change_triggers_refetch(supabase_server):
    factory = RealtimeFactory()
    supabase_server.reply([])
    store = _store(realtime_factory=factory)
    snapshots, _errors, _unsubscribe = _subscribe(store)

    [client] = factory.clients
    subscription = client.started[0]
    assert subscription.table == "services"
    assert subscription.app_id == "visadesk"
    assert store.realtime_live

    supabase_server.reply([ROW])
    client.on_change({"type": "INSERT", "row": ROW})
    assert len(snapshots) == 2
    assert snapshots[-1][0].service_id == "svc-1"


def test_writes_rely_on_realtime_when_live(supabase_server):
    factory = RealtimeFactory()
    supabase_server.reply([])
    store = _store(realtime_factory=factory)
    snapshots, _errors, _unsubscribe = _subscribe(store)

    supabase_server.reply(None, status=201)
    assert store.insert({"title": "VOA"}).ok
    assert len(supabase_server.requests) == 2
    assert len(snapshots) == 1


def test_writes_refetch_until_realtime_joins(supabase_server):
    factory = RealtimeFactory()
    supabase_server.reply([])
    store = _store(realtime_factory=factory)
    snapshots, _errors, _unsubscribe = _subscribe(store)
    [client] = factory.clients
    client.joined = False
    assert not store.realtime_live

    supabase_server.reply(None, status=201)
    supabase_server.reply([ROW])
    assert store.insert({"title": "VOA"}).ok
    assert len(supabase_server.requests) == 3
    assert snapshots[-1][0].service_id == "svc-1"


def test_authorize_restarts_realtime_with_token(supabase_server):
    factory = RealtimeFactory()
    supabase_server.reply([])
    store = _store(realtime_factory=factory)
    _subscribe(store)

    store.authorize("user-jwt")

    [client] = factory.clients
    assert client.started[-1].access_token == "user-jwt"


def test_last_unsubscribe_stops_realtime(supabase_server):
    factory = RealtimeFactory()
    supabase_server.reply([])
    supabase_server.reply([])
    store = _store(realtime_factory=factory)
    _first, _errors, first_unsubscribe = _subscribe(store)
    _second, _errors2, second_unsubscribe = _subscribe(store)
    [client] = factory.clients

    first_unsubscribe()
    assert client.stopped == 0
    second_unsubscribe()
    assert client.stopped == 1


def test_realtime_status_is_forwarded(supabase_server):
    factory = RealtimeFactory()
    statuses: list = []
    supabase_server.reply([])
    store = _store(realtime_factory=factory, on_status=lambda level, message: statuses.append((level, message)))
    _subscribe(store)

    factory.clients[0].on_status("warning", "Realtime disconnected; reconnecting.")
    assert statuses == [("warning", "Realtime disconnected; reconnecting.")]


@pytest.mark.parametrize("operation", ["patch", "remove"])
def test_blank_id_is_rejected(supabase_server, operation):
    store = _store()
    if operation == "patch":
        result = store.patch("  ", {"status": "done"})
    else:
        result = store.remove("")
    assert not result.ok
    assert supabase_server.requests == []
