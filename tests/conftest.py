from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtWidgets import QApplication  # noqa: E402

from visadesk.app.identity import IdentitySession  # noqa: E402
from visadesk.app.service_models import ServiceRecord  # noqa: E402
from visadesk.app.service_store import StoreResult  # noqa: E402


_ENV_KEYS = (
    "VISADESK_BACKEND",
    "VISADESK_SUPABASE_URL",
    "SUPABASE_URL",
    "VISADESK_SUPABASE_API_KEY",
    "SUPABASE_ANON_KEY",
    "SUPABASE_PUBLISHABLE_KEY",
    "VISADESK_SUPABASE_SCHEMA",
    "VISADESK_SUPABASE_TABLE",
    "VISADESK_APP_ID",
    "VISADESK_AUTH_TOKEN",
    "VISADESK_DB_DEBUG",
    "VISADESK_DB_DEBUG_LOG",
)


@pytest.fixture(scope="session")
def qapp() -> QApplication:
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the settings file at a temp dir and clear connection env vars."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / "config" / "settings.json"
    monkeypatch.setenv("VISADESK_SETTINGS_PATH", str(path))
    return path


class FixedClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


class FakeIdentityProvider:
    def __init__(self, session: IdentitySession | None = None, *, error: Exception | None = None) -> None:
        self.session = session or IdentitySession(
            user_id="user-123",
            access_token="token-abc",
            method="anonymous",
            signed_in=True,
        )
        self.error = error
        self.calls = 0

    def ensure_identity(self) -> IdentitySession:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.session


class FakeServiceStore:
    """Records every call and lets the test push snapshots by hand."""

    backend = "fake"

    def __init__(self, *, result: StoreResult | None = None) -> None:
        self.result = result or StoreResult.success()
        self.calls: list[tuple[str, Any]] = []
        self.subscribers: list[tuple[Any, Any]] = []
        self.unsubscribed = 0
        self.closed = False

    def authorize(self, access_token: str) -> None:
        self.calls.append(("authorize", access_token))

    def subscribe(self, on_change, on_error):
        entry = (on_change, on_error)
        self.subscribers.append(entry)
        self.calls.append(("subscribe", None))

        def _unsubscribe() -> None:
            if entry in self.subscribers:
                self.subscribers.remove(entry)
                self.unsubscribed += 1

        return _unsubscribe

    def insert(self, fields):
        self.calls.append(("insert", dict(fields)))
        return self.result

    def patch(self, service_id, fields):
        self.calls.append(("patch", (service_id, dict(fields))))
        return self.result

    def remove(self, service_id):
        self.calls.append(("remove", service_id))
        return self.result

    def close(self) -> None:
        self.closed = True

    def mutation_calls(self) -> list[tuple[str, Any]]:
        return [call for call in self.calls if call[0] in ("insert", "patch", "remove")]

    def push(self, records: list[ServiceRecord]) -> None:
        for on_change, _on_error in list(self.subscribers):
            on_change(list(records))

    def fail(self, message: str) -> None:
        for _on_change, on_error in list(self.subscribers):
            on_error(message)


@pytest.fixture
def fake_identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def fake_store() -> FakeServiceStore:
    return FakeServiceStore()


def make_record(
    service_id: str = "svc-1",
    *,
    title: str = "VOA",
    status: str = "pending",
    passport_number: str = "A1234567",
    description: str = "Renewal",
    date_entered: str = "2025-01-10",
    timestamp: datetime | None = None,
    created_by: str = "user-123",
) -> ServiceRecord:
    return ServiceRecord(
        service_id=service_id,
        title=title,
        description=description,
        date_entered=date_entered,
        status=status,
        passport_number=passport_number,
        timestamp=timestamp,
        created_by=created_by,
    )


class FakeResponse:
    def __init__(self, status: int, body: bytes) -> None:
        self._status = status
        self._body = body

    def getcode(self) -> int:
        return self._status

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        return None


class FakeSupabaseServer:
    """Stands in for ``urlopen``; queues canned replies and keeps each request."""

    def __init__(self) -> None:
        self.requests: list[Any] = []
        self._replies: list[Any] = []

    def reply(self, body: Any = None, *, status: int = 200) -> None:
        raw = b"" if body is None else json.dumps(body).encode("utf-8")
        self._replies.append(FakeResponse(status, raw))

    def reply_raw(self, body: bytes, *, status: int = 200) -> None:
        self._replies.append(FakeResponse(status, body))

    def raise_error(self, error: Exception) -> None:
        self._replies.append(error)

    def __call__(self, request, timeout: float = 0.0):
        self.requests.append(request)
        if not self._replies:
            return FakeResponse(200, b"[]")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def payload(self, index: int) -> Any:
        data = self.requests[index].data
        return json.loads(data.decode("utf-8")) if data else None


@pytest.fixture
def supabase_server(monkeypatch) -> FakeSupabaseServer:
    server = FakeSupabaseServer()
    monkeypatch.setattr("visadesk.app.supabase_rest.urlopen", server)
    return server


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def identity_factory():
    return FakeIdentityProvider


@pytest.fixture
def store_factory():
    return FakeServiceStore
