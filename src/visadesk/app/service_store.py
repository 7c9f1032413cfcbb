from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Iterator, Mapping, Protocol
from urllib.parse import quote
from uuid import uuid4

from visadesk.app.db_debug import db_debug
from visadesk.app.service_models import ServiceRecord
from visadesk.app.settings_store import BACKEND_LOCAL_SQLITE, BACKEND_SUPABASE, DEFAULT_APP_ID
from visadesk.app.supabase_realtime import RealtimeSubscription, SupabaseRealtimeClient
from visadesk.app.supabase_rest import SupabaseRequestError, SupabaseRestClient


DEFAULT_SQLITE_FILE_NAME = "visadesk_services.sqlite3"
_LOCAL_SQLITE_TABLE = "services"
EDITABLE_FIELDS: tuple[str, ...] = (
    "title",
    "passport_number",
    "description",
    "date_entered",
    "status",
)
_INSERT_FIELDS: tuple[str, ...] = EDITABLE_FIELDS + ("created_by",)

SnapshotCallback = Callable[[list[ServiceRecord]], None]
ErrorCallback = Callable[[str], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class StoreResult:
    ok: bool
    error: str = ""

    @classmethod
    def success(cls) -> "StoreResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, message: str) -> "StoreResult":
        return cls(ok=False, error=str(message or "").strip() or "Store operation failed.")


class ServiceStore(Protocol):
    backend: str

    def authorize(self, access_token: str) -> None:
        raise NotImplementedError

    def subscribe(self, on_change: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        raise NotImplementedError

    def insert(self, fields: Mapping[str, Any]) -> StoreResult:
        raise NotImplementedError

    def patch(self, service_id: str, fields: Mapping[str, Any]) -> StoreResult:
        raise NotImplementedError

    def remove(self, service_id: str) -> StoreResult:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class SubscriberRegistry:
    """Live-query listeners keyed by a token; removal is idempotent."""

    def __init__(self) -> None:
        self._subscribers: dict[int, tuple[SnapshotCallback, ErrorCallback]] = {}
        self._next_token = 0

    def __len__(self) -> int:
        return len(self._subscribers)

    def add(self, on_change: SnapshotCallback, on_error: ErrorCallback) -> int:
        self._next_token += 1
        self._subscribers[self._next_token] = (on_change, on_error)
        return self._next_token

    def discard(self, token: int) -> bool:
        return self._subscribers.pop(token, None) is not None

    def clear(self) -> None:
        self._subscribers.clear()

    def contains(self, token: int) -> bool:
        return token in self._subscribers

    def emit(self, records: list[ServiceRecord], *, token: int | None = None) -> None:
        for current, (on_change, _on_error) in self._targets(token):
            if current in self._subscribers:
                on_change(list(records))

    def emit_error(self, message: str, *, token: int | None = None) -> None:
        for current, (_on_change, on_error) in self._targets(token):
            if current in self._subscribers:
                on_error(message)

    def _targets(self, token: int | None) -> list[tuple[int, tuple[SnapshotCallback, ErrorCallback]]]:
        if token is None:
            return list(self._subscribers.items())
        entry = self._subscribers.get(token)
        return [(token, entry)] if entry is not None else []


def insert_fields(fields: Mapping[str, Any]) -> dict[str, str]:
    """Client-writable fields for a new row; id and timestamp belong to the store."""
    return {key: _as_text(fields.get(key)) for key in _INSERT_FIELDS}


def patch_fields(fields: Mapping[str, Any]) -> dict[str, str]:
    """Named editable fields only; ``created_by`` is never patched."""
    return {key: _as_text(fields[key]) for key in EDITABLE_FIELDS if key in fields}


class LocalSqliteServiceStore:
    backend = BACKEND_LOCAL_SQLITE

    def __init__(
        self,
        data_root: Path | str,
        *,
        app_id: str = DEFAULT_APP_ID,
        sqlite_file_name: str = DEFAULT_SQLITE_FILE_NAME,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.data_root = _normalize_path(Path(data_root))
        self._app_id = str(app_id or "").strip() or DEFAULT_APP_ID
        self._sqlite_file_name = str(sqlite_file_name or "").strip() or DEFAULT_SQLITE_FILE_NAME
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or logging.getLogger("visadesk.store")
        self._subscribers = SubscriberRegistry()
        self._last_timestamp: datetime | None = None

    @property
    def storage_file_path(self) -> Path:
        return self.data_root / self._sqlite_file_name

    def authorize(self, access_token: str) -> None:
        return None

    def subscribe(self, on_change: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        token = self._subscribers.add(on_change, on_error)
        db_debug("sqlite.subscribe", token=token, subscribers=len(self._subscribers))
        self._publish(token=token)

        def _unsubscribe() -> None:
            if self._subscribers.discard(token):
                db_debug("sqlite.unsubscribe", token=token, subscribers=len(self._subscribers))

        return _unsubscribe

    def fetch_services(self) -> list[ServiceRecord]:
        with self._open() as connection:
            rows = connection.execute(
                (
                    "select id, title, passport_number, description, date_entered, status, "
                    f"timestamp, created_by from {_LOCAL_SQLITE_TABLE} "
                    "where app_id = ? order by timestamp desc, rowid desc"
                ),
                (self._app_id,),
            ).fetchall()
        return [ServiceRecord.from_mapping(dict(row)) for row in rows]

    def insert(self, fields: Mapping[str, Any]) -> StoreResult:
        values = insert_fields(fields)
        service_id = uuid4().hex
        timestamp = self._next_timestamp()
        started_at = perf_counter()
        try:
            with self._open() as connection:
                connection.execute(
                    (
                        f"insert into {_LOCAL_SQLITE_TABLE} "
                        "(id, app_id, title, passport_number, description, date_entered, "
                        "status, timestamp, created_by) values (?, ?, ?, ?, ?, ?, ?, ?, ?)"
                    ),
                    (
                        service_id,
                        self._app_id,
                        values["title"],
                        values["passport_number"],
                        values["description"],
                        values["date_entered"],
                        values["status"],
                        timestamp.isoformat(),
                        values["created_by"],
                    ),
                )
                connection.commit()
        except sqlite3.Error as exc:
            self._logger.error("Could not add service: %s", exc)
            db_debug("sqlite.insert.error", error=str(exc))
            return StoreResult.failure(f"Could not add service: {exc}")
        db_debug(
            "sqlite.insert",
            id=service_id,
            duration_ms=round((perf_counter() - started_at) * 1000.0, 2),
        )
        self._publish()
        return StoreResult.success()

    def patch(self, service_id: str, fields: Mapping[str, Any]) -> StoreResult:
        values = patch_fields(fields)
        target = _as_text(service_id)
        if not target:
            return StoreResult.failure("Service id is required.")
        if not values:
            return StoreResult.success()
        assignments = ", ".join(f"{column} = ?" for column in values)
        try:
            with self._open() as connection:
                cursor = connection.execute(
                    f"update {_LOCAL_SQLITE_TABLE} set {assignments} where id = ? and app_id = ?",
                    (*values.values(), target, self._app_id),
                )
                connection.commit()
                changed = cursor.rowcount
        except sqlite3.Error as exc:
            self._logger.error("Could not update service %s: %s", target, exc)
            db_debug("sqlite.patch.error", id=target, error=str(exc))
            return StoreResult.failure(f"Could not update service: {exc}")
        if changed == 0:
            self._logger.error("Could not update service %s: not found", target)
            return StoreResult.failure("Service no longer exists.")
        db_debug("sqlite.patch", id=target, fields=sorted(values))
        self._publish()
        return StoreResult.success()

    def remove(self, service_id: str) -> StoreResult:
        target = _as_text(service_id)
        if not target:
            return StoreResult.failure("Service id is required.")
        try:
            with self._open() as connection:
                cursor = connection.execute(
                    f"delete from {_LOCAL_SQLITE_TABLE} where id = ? and app_id = ?",
                    (target, self._app_id),
                )
                connection.commit()
                changed = cursor.rowcount
        except sqlite3.Error as exc:
            self._logger.error("Could not delete service %s: %s", target, exc)
            db_debug("sqlite.remove.error", id=target, error=str(exc))
            return StoreResult.failure(f"Could not delete service: {exc}")
        if changed == 0:
            self._logger.error("Could not delete service %s: not found", target)
            return StoreResult.failure("Service no longer exists.")
        db_debug("sqlite.remove", id=target)
        self._publish()
        return StoreResult.success()

    def close(self) -> None:
        self._subscribers.clear()

    def _publish(self, *, token: int | None = None) -> None:
        try:
            records = self.fetch_services()
        except sqlite3.Error as exc:
            self._logger.error("Could not read services: %s", exc)
            db_debug("sqlite.fetch.error", error=str(exc))
            self._subscribers.emit_error(f"Could not read services: {exc}", token=token)
            return
        self._subscribers.emit(records, token=token)

    def _next_timestamp(self) -> datetime:
        timestamp = self._clock()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        last = self._last_timestamp
        if last is not None and timestamp <= last:
            timestamp = last + timedelta(microseconds=1)
        self._last_timestamp = timestamp
        return timestamp

    @contextmanager
    def _open(self) -> Iterator[sqlite3.Connection]:
        self.data_root.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(self.storage_file_path), timeout=4.0)
        connection.row_factory = sqlite3.Row
        try:
            self._ensure_schema(connection)
            yield connection
        finally:
            connection.close()

    def _ensure_schema(self, connection: sqlite3.Connection) -> None:
        connection.execute(
            f"""
            create table if not exists {_LOCAL_SQLITE_TABLE} (
                id text primary key,
                app_id text not null,
                title text not null default '',
                passport_number text not null default '',
                description text not null default '',
                date_entered text not null default '',
                status text not null default '',
                timestamp text not null,
                created_by text not null default ''
            )
            """
        )


RealtimeFactory = Callable[
    [Callable[[dict[str, Any]], None], Callable[[str, str], None]],
    Any,
]


def _default_realtime_factory(
    on_change: Callable[[dict[str, Any]], None],
    on_status: Callable[[str, str], None],
) -> SupabaseRealtimeClient:
    return SupabaseRealtimeClient(on_change=on_change, on_status=on_status)


class SupabaseServiceStore:
    """Shared ``services`` table behind PostgREST, scoped by ``app_id``.

    Subscribers receive the full ordered list on subscribe and again after
    every realtime change. Until the realtime channel has joined the store re-reads
    after its own writes instead.
    """

    backend = BACKEND_SUPABASE

    def __init__(
        self,
        rest_client: SupabaseRestClient,
        *,
        table: str,
        app_id: str,
        schema: str = "public",
        realtime_factory: RealtimeFactory | None = _default_realtime_factory,
        on_status: Callable[[str, str], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._rest = rest_client
        self._table = str(table or "").strip()
        self._app_id = str(app_id or "").strip() or DEFAULT_APP_ID
        self._schema = str(schema or "").strip() or "public"
        self._realtime_factory = realtime_factory
        self._on_status = on_status
        self._logger = logger or logging.getLogger("visadesk.store")
        self._subscribers = SubscriberRegistry()
        self._realtime: Any | None = None

    @property
    def configured(self) -> bool:
        return bool(self._rest.configured and self._table)

    @property
    def realtime_live(self) -> bool:
        client = self._realtime
        return bool(client is not None and client.joined)

    def authorize(self, access_token: str) -> None:
        self._rest.set_access_token(access_token)
        if self._realtime is not None and len(self._subscribers):
            self._start_realtime()

    def subscribe(self, on_change: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        if not self.configured:
            message = "Supabase store is not initialized; live updates are unavailable."
            self._logger.error(message)
            on_error(message)
            return lambda: None

        token = self._subscribers.add(on_change, on_error)
        db_debug("supabase.subscribe", token=token, subscribers=len(self._subscribers))
        self._publish(token=token)
        if self._subscribers.contains(token):
            self._start_realtime()

        def _unsubscribe() -> None:
            if not self._subscribers.discard(token):
                return
            db_debug("supabase.unsubscribe", token=token, subscribers=len(self._subscribers))
            if not len(self._subscribers):
                self._stop_realtime()

        return _unsubscribe

    def fetch_services(self) -> list[ServiceRecord]:
        rows = self._rest.request_json(
            method="GET",
            path=self._table_path(),
            query=f"?select=*&app_id=eq.{self._quoted_app_id()}&order=timestamp.desc",
        )
        if not isinstance(rows, list):
            return []
        return [ServiceRecord.from_mapping(row) for row in rows if isinstance(row, dict)]

    def insert(self, fields: Mapping[str, Any]) -> StoreResult:
        if not self.configured:
            return self._not_initialized("insert")
        row: dict[str, Any] = {"app_id": self._app_id, **insert_fields(fields)}
        try:
            self._rest.request_json(
                method="POST",
                path=self._table_path(),
                payload=[row],
                prefer="return=minimal",
                expect_json=False,
            )
        except SupabaseRequestError as exc:
            self._logger.error("Could not add service: %s", exc)
            return StoreResult.failure(f"Could not add service: {exc}")
        db_debug("supabase.insert", table=self._table)
        self._refresh_after_write()
        return StoreResult.success()

    def patch(self, service_id: str, fields: Mapping[str, Any]) -> StoreResult:
        if not self.configured:
            return self._not_initialized("patch")
        target = _as_text(service_id)
        if not target:
            return StoreResult.failure("Service id is required.")
        values = patch_fields(fields)
        if not values:
            return StoreResult.success()
        try:
            updated = self._rest.request_json(
                method="PATCH",
                path=self._table_path(),
                query=self._row_query(target),
                payload=values,
                prefer="return=representation",
            )
        except SupabaseRequestError as exc:
            self._logger.error("Could not update service %s: %s", target, exc)
            return StoreResult.failure(f"Could not update service: {exc}")
        if isinstance(updated, list) and not updated:
            self._logger.error("Could not update service %s: not found", target)
            return StoreResult.failure("Service no longer exists.")
        db_debug("supabase.patch", table=self._table, id=target, fields=sorted(values))
        self._refresh_after_write()
        return StoreResult.success()

    def remove(self, service_id: str) -> StoreResult:
        if not self.configured:
            return self._not_initialized("remove")
        target = _as_text(service_id)
        if not target:
            return StoreResult.failure("Service id is required.")
        try:
            removed = self._rest.request_json(
                method="DELETE",
                path=self._table_path(),
                query=self._row_query(target),
                prefer="return=representation",
            )
        except SupabaseRequestError as exc:
            self._logger.error("Could not delete service %s: %s", target, exc)
            return StoreResult.failure(f"Could not delete service: {exc}")
        if isinstance(removed, list) and not removed:
            self._logger.error("Could not delete service %s: not found", target)
            return StoreResult.failure("Service no longer exists.")
        db_debug("supabase.remove", table=self._table, id=target)
        self._refresh_after_write()
        return StoreResult.success()

    def close(self) -> None:
        self._subscribers.clear()
        self._stop_realtime()

    def _publish(self, *, token: int | None = None) -> None:
        try:
            records = self.fetch_services()
        except SupabaseRequestError as exc:
            self._logger.error("Could not read services: %s", exc)
            self._subscribers.emit_error(f"Could not read services: {exc}", token=token)
            return
        self._subscribers.emit(records, token=token)

    def _refresh_after_write(self) -> None:
        if len(self._subscribers) and not self.realtime_live:
            self._publish()

    def _on_realtime_change(self, change: dict[str, Any]) -> None:
        db_debug("supabase.realtime.change", type=change.get("type", ""))
        if len(self._subscribers):
            self._publish()

    def _on_realtime_status(self, level: str, message: str) -> None:
        if level == "warning":
            self._logger.warning("%s", message)
        else:
            self._logger.info("%s", message)
        if self._on_status is not None:
            self._on_status(level, message)

    def _start_realtime(self) -> None:
        if self._realtime_factory is None:
            return
        if self._realtime is None:
            self._realtime = self._realtime_factory(self._on_realtime_change, self._on_realtime_status)
        self._realtime.start(
            RealtimeSubscription(
                url=self._rest.url,
                api_key=self._rest.api_key,
                schema=self._schema,
                table=self._table,
                app_id=self._app_id,
                access_token=self._rest.access_token,
            )
        )

    def _stop_realtime(self) -> None:
        if self._realtime is not None:
            self._realtime.stop()

    def _not_initialized(self, operation: str) -> StoreResult:
        message = f"Supabase store is not initialized; {operation} skipped."
        self._logger.error(message)
        return StoreResult.failure(message)

    def _table_path(self) -> str:
        return f"/rest/v1/{quote(self._table, safe='_')}"

    def _quoted_app_id(self) -> str:
        return quote(self._app_id, safe="_-")

    def _row_query(self, service_id: str) -> str:
        return f"?id=eq.{quote(service_id, safe='_-')}&app_id=eq.{self._quoted_app_id()}"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _normalize_path(path: Path) -> Path:
    expanded = path.expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded
