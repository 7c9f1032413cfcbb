from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode, urlsplit, urlunsplit

from PySide6.QtCore import QObject, QTimer, QUrl
from PySide6.QtNetwork import QAbstractSocket

from visadesk.app.db_debug import db_debug

try:
    from PySide6.QtWebSockets import QWebSocket
except ImportError:  # pragma: no cover - optional Qt module in some runtimes
    QWebSocket = None  # type: ignore[assignment]


_HEARTBEAT_INTERVAL_MS = 25_000
_RECONNECT_DELAY_MS = 2_000
_CHANGE_EVENT_TYPES = {"INSERT", "UPDATE", "DELETE"}


@dataclass(frozen=True, slots=True)
class RealtimeSubscription:
    url: str
    api_key: str
    schema: str
    table: str
    app_id: str
    access_token: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key and self.schema and self.table and self.app_id)


def realtime_available() -> bool:
    return QWebSocket is not None


class SupabaseRealtimeClient(QObject):
    """Phoenix-channel listener for ``postgres_changes`` on one table.

    Every INSERT/UPDATE/DELETE that belongs to the subscribed app id calls
    ``on_change`` with the change payload; callers re-read the table.
    """

    def __init__(
        self,
        *,
        parent: QObject | None = None,
        on_change: Callable[[dict[str, Any]], None] | None = None,
        on_status: Callable[[str, str], None] | None = None,
    ) -> None:
        super().__init__(parent)
        self._on_change = on_change
        self._on_status = on_status
        self._subscription: RealtimeSubscription | None = None
        self._socket: QWebSocket | None = None
        self._active = False
        self._joined = False
        self._join_ref = ""
        self._next_ref_value = 0

        self._heartbeat_timer = QTimer(self)
        self._heartbeat_timer.setInterval(_HEARTBEAT_INTERVAL_MS)
        self._heartbeat_timer.timeout.connect(self._send_heartbeat)

        self._reconnect_timer = QTimer(self)
        self._reconnect_timer.setSingleShot(True)
        self._reconnect_timer.setInterval(_RECONNECT_DELAY_MS)
        self._reconnect_timer.timeout.connect(self._connect_socket)

    @property
    def available(self) -> bool:
        return realtime_available()

    @property
    def active(self) -> bool:
        return bool(self._active and self._subscription is not None)

    @property
    def joined(self) -> bool:
        return self._joined

    def start(self, subscription: RealtimeSubscription) -> None:
        if not subscription.configured:
            self._emit_status("warning", "Realtime updates are not configured.")
            db_debug("supabase.realtime.start_skipped", reason="not_configured")
            self.stop()
            return
        if not self.available:
            self._emit_status("warning", "QtWebSockets is unavailable in this runtime.")
            db_debug("supabase.realtime.start_skipped", reason="qtwebsockets_unavailable")
            self.stop()
            return
        if self._active and self._subscription == subscription:
            db_debug("supabase.realtime.start_skipped", reason="already_active")
            return

        self.stop()
        self._subscription = subscription
        self._active = True
        db_debug("supabase.realtime.start", schema=subscription.schema, table=subscription.table)
        self._connect_socket()

    def stop(self) -> None:
        was_active = self._active
        self._active = False
        self._joined = False
        self._join_ref = ""
        self._heartbeat_timer.stop()
        self._reconnect_timer.stop()
        self._teardown_socket()
        self._subscription = None
        if was_active:
            db_debug("supabase.realtime.stop")

    def _ensure_socket(self) -> QWebSocket | None:
        if not self.available:
            return None
        socket = self._socket
        if socket is not None:
            return socket

        socket = QWebSocket(parent=self)
        socket.connected.connect(self._on_connected)
        socket.disconnected.connect(self._on_disconnected)
        socket.textMessageReceived.connect(self._on_text_message_received)
        socket.errorOccurred.connect(self._on_error_occurred)
        self._socket = socket
        return socket

    def _teardown_socket(self) -> None:
        socket = self._socket
        self._socket = None
        if socket is None:
            return
        for signal, slot in (
            (socket.connected, self._on_connected),
            (socket.disconnected, self._on_disconnected),
            (socket.textMessageReceived, self._on_text_message_received),
            (socket.errorOccurred, self._on_error_occurred),
        ):
            try:
                signal.disconnect(slot)
            except (RuntimeError, TypeError):
                pass
        socket.abort()
        socket.deleteLater()

    def _connect_socket(self) -> None:
        if not self._active:
            return
        subscription = self._subscription
        if subscription is None:
            return
        socket = self._ensure_socket()
        if socket is None:
            return
        if socket.state() in (
            QAbstractSocket.SocketState.ConnectingState,
            QAbstractSocket.SocketState.ConnectedState,
        ):
            return

        self._joined = False
        self._join_ref = ""
        self._emit_status("info", f"Connecting realtime updates for {subscription.table}.")
        db_debug("supabase.realtime.connecting", schema=subscription.schema, table=subscription.table)
        socket.open(QUrl(build_websocket_url(subscription)))

    def _on_connected(self) -> None:
        if not self._active or self._subscription is None:
            return
        self._emit_status("info", "Realtime connected.")
        db_debug("supabase.realtime.connected", table=self._subscription.table)
        self._send_join()

    def _on_disconnected(self) -> None:
        self._heartbeat_timer.stop()
        self._joined = False
        db_debug("supabase.realtime.disconnected", will_reconnect=bool(self._active))
        if self._active:
            self._emit_status("warning", "Realtime disconnected; reconnecting.")
            self._reconnect_timer.start()

    def _on_error_occurred(self, _error) -> None:
        socket = self._socket
        message = "Realtime socket error."
        if socket is not None:
            detail = str(socket.errorString() or "").strip()
            if detail:
                message = f"{message} {detail}"
        self._emit_status("warning", message)
        db_debug("supabase.realtime.error", message=message)

    def _on_text_message_received(self, message: str) -> None:
        if not self._active:
            return
        try:
            event = json.loads(message)
        except ValueError:
            db_debug("supabase.realtime.message_invalid_json")
            return
        if not isinstance(event, dict):
            return

        event_name = str(event.get("event", "") or "").strip()
        payload = event.get("payload")
        if event_name == "phx_reply":
            self._handle_join_reply(payload, ref=str(event.get("ref", "") or "").strip())
            return
        if event_name == "postgres_changes":
            change = self._extract_change(payload)
            if change is not None and self._on_change is not None:
                self._on_change(change)

    def _handle_join_reply(self, payload: object, *, ref: str) -> None:
        if ref != self._join_ref or not isinstance(payload, dict):
            return
        status = str(payload.get("status", "") or "").strip().lower()
        if status == "ok":
            self._joined = True
            self._heartbeat_timer.start()
            self._emit_status("info", "Realtime subscription joined.")
            db_debug("supabase.realtime.joined")
            return
        self._emit_status("warning", "Realtime join was rejected.")
        db_debug("supabase.realtime.join_rejected", status=status or "unknown")

    def _send_join(self) -> None:
        socket = self._socket
        subscription = self._subscription
        if socket is None or subscription is None:
            return
        if socket.state() != QAbstractSocket.SocketState.ConnectedState:
            return
        self._join_ref = self._next_ref()
        socket.sendTextMessage(
            json.dumps(build_join_message(subscription, ref=self._join_ref), separators=(",", ":"))
        )

    def _send_heartbeat(self) -> None:
        socket = self._socket
        if socket is None or socket.state() != QAbstractSocket.SocketState.ConnectedState:
            return
        heartbeat = {
            "topic": "phoenix",
            "event": "heartbeat",
            "payload": {},
            "ref": self._next_ref(),
        }
        socket.sendTextMessage(json.dumps(heartbeat, separators=(",", ":")))

    def _next_ref(self) -> str:
        self._next_ref_value += 1
        return str(self._next_ref_value)

    def _extract_change(self, payload: object) -> dict[str, Any] | None:
        subscription = self._subscription
        if subscription is None or not isinstance(payload, dict):
            return None
        candidate = payload.get("data")
        if not isinstance(candidate, dict):
            candidate = payload
        event_type = str(candidate.get("type") or candidate.get("eventType") or "").strip().upper()
        if event_type not in _CHANGE_EVENT_TYPES:
            return None
        row = candidate.get("record") or candidate.get("new")
        if event_type == "DELETE":
            # delete payloads only carry the primary key unless the table uses full replica identity
            row = candidate.get("old_record") or candidate.get("old")
            if isinstance(row, dict) and "app_id" not in row:
                return {"type": event_type, "row": row}
        if not isinstance(row, dict):
            return None
        if str(row.get("app_id", "") or "").strip() != subscription.app_id:
            return None
        return {"type": event_type, "row": row}

    def _emit_status(self, level: str, message: str) -> None:
        callback = self._on_status
        if callback is None:
            return
        callback(str(level or "info"), str(message or "").strip())


def build_websocket_url(subscription: RealtimeSubscription) -> str:
    parsed = urlsplit(subscription.url)
    scheme = "wss" if parsed.scheme.casefold() == "https" else "ws"
    query = urlencode({"apikey": subscription.api_key, "vsn": "1.0.0"})
    return urlunsplit((scheme, parsed.netloc, "/realtime/v1/websocket", query, ""))


def build_join_message(subscription: RealtimeSubscription, *, ref: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"self": False},
            "presence": {"key": ""},
            "postgres_changes": [
                {
                    "event": "*",
                    "schema": subscription.schema,
                    "table": subscription.table,
                    "filter": f"app_id=eq.{subscription.app_id}",
                }
            ],
            "private": False,
        }
    }
    if subscription.access_token:
        payload["access_token"] = subscription.access_token
    return {
        "topic": f"realtime:{subscription.schema}:{subscription.table}",
        "event": "phx_join",
        "payload": payload,
        "ref": ref,
    }
