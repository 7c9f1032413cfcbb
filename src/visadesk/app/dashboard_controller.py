from __future__ import annotations

import logging
from typing import Callable

from visadesk.app.db_debug import db_debug
from visadesk.app.identity import IdentityProvider, IdentitySession
from visadesk.app.service_draft import ServiceDraft
from visadesk.app.service_models import ServiceRecord
from visadesk.app.service_store import ServiceStore, StoreResult, Unsubscribe
from visadesk.app.state_containers import DashboardState
from visadesk.app.status_summary import count_by_status


StateListener = Callable[[DashboardState], None]


class DashboardController:
    """Owns the dashboard state and routes user actions to the store.

    The live subscription is opened only once identity resolution has
    finished, and is reopened whenever the store object is replaced. The
    displayed list changes only through subscription snapshots.
    """

    def __init__(
        self,
        *,
        identity_provider: IdentityProvider,
        record_store: ServiceStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._identity_provider = identity_provider
        self._store = record_store
        self._logger = logger or logging.getLogger("visadesk.dashboard")
        self._state = DashboardState()
        self._listeners: list[StateListener] = []
        self._unsubscribe: Unsubscribe | None = None
        self._subscription_generation = 0
        self._session: IdentitySession | None = None

    @property
    def state(self) -> DashboardState:
        return self._state

    @property
    def record_store(self) -> ServiceStore | None:
        return self._store

    @property
    def session(self) -> IdentitySession | None:
        return self._session

    def add_listener(self, callback: StateListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                return

        return _remove

    def start(self) -> None:
        if self._state.identity_ready:
            return
        try:
            session = self._identity_provider.ensure_identity()
        except Exception as exc:
            # a broken provider must not keep the dashboard from loading
            self._logger.error("Identity provider failed: %s", exc)
            session = IdentitySession(user_id="", error=str(exc))
        self._session = session
        self._state.user_id = session.user_id
        self._state.identity_ready = True
        if session.error:
            self._state.status_message = "Signed out: changes may not be saved."
        db_debug("dashboard.identity_ready", signed_in=session.signed_in, method=session.method)
        if self._store is not None:
            self._store.authorize(session.access_token)
        self._sync_subscription()

    def set_record_store(self, store: ServiceStore | None) -> None:
        if store is self._store:
            return
        self._teardown_subscription()
        self._store = store
        if store is not None and self._session is not None:
            store.authorize(self._session.access_token)
        self._sync_subscription()

    def shutdown(self) -> None:
        self._teardown_subscription()
        self._listeners.clear()

    def set_status_message(self, message: str) -> None:
        self._state.status_message = str(message or "").strip()
        self._notify()

    def open_add_modal(self) -> None:
        self._state.show_add_modal = True
        self._state.form_error = ""
        self._notify()

    def close_add_modal(self) -> None:
        self._state.show_add_modal = False
        self._state.form_error = ""
        self._notify()

    def open_edit_modal(self, service: ServiceRecord) -> None:
        self._state.current_service = service
        self._state.show_edit_modal = True
        self._state.form_error = ""
        self._notify()

    def close_edit_modal(self) -> None:
        self._state.show_edit_modal = False
        self._state.current_service = None
        self._state.form_error = ""
        self._notify()

    def open_delete_modal(self, service: ServiceRecord) -> None:
        self._state.current_service = service
        self._state.show_delete_modal = True
        self._state.form_error = ""
        self._notify()

    def close_delete_modal(self) -> None:
        self._state.show_delete_modal = False
        self._state.current_service = None
        self._state.form_error = ""
        self._notify()

    def submit_add(self, draft: ServiceDraft) -> bool:
        if not self._accept_draft(draft, action="add"):
            return False
        store = self._require_store("add")
        if store is None:
            return False
        fields = dict(draft.to_fields())
        fields["created_by"] = self._state.user_id
        result = store.insert(fields)
        if not self._handle_result(result, action="add"):
            return False
        self.close_add_modal()
        return True

    def submit_edit(self, draft: ServiceDraft) -> bool:
        if not self._accept_draft(draft, action="edit"):
            return False
        service = self._state.current_service
        if service is None:
            self._logger.error("Edit submitted without a selected service.")
            return False
        changes = draft.changed_fields(service)
        if not changes:
            self.close_edit_modal()
            return True
        store = self._require_store("edit")
        if store is None:
            return False
        result = store.patch(service.service_id, changes)
        if not self._handle_result(result, action="edit"):
            return False
        self.close_edit_modal()
        return True

    def confirm_delete(self) -> bool:
        service = self._state.current_service
        if service is None:
            self._logger.error("Delete confirmed without a selected service.")
            return False
        store = self._require_store("delete")
        if store is None:
            return False
        result = store.remove(service.service_id)
        if not self._handle_result(result, action="delete"):
            return False
        self.close_delete_modal()
        return True

    def _sync_subscription(self) -> None:
        self._teardown_subscription()
        if not self._state.identity_ready:
            return
        store = self._store
        if store is None:
            self._logger.error("No service store is configured; the list will stay empty.")
            self._state.loading = False
            self._notify()
            return

        self._subscription_generation += 1
        generation = self._subscription_generation
        self._state.loading = True
        self._notify()
        db_debug("dashboard.subscribe", backend=getattr(store, "backend", ""), generation=generation)
        self._unsubscribe = store.subscribe(
            lambda records: self._on_snapshot(generation, records),
            lambda message: self._on_subscription_error(generation, message),
        )

    def _teardown_subscription(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        self._subscription_generation += 1
        if unsubscribe is not None:
            unsubscribe()

    def _on_snapshot(self, generation: int, records: list[ServiceRecord]) -> None:
        if generation != self._subscription_generation:
            return
        self._state.services = list(records)
        self._state.counts = count_by_status(self._state.services)
        self._state.loading = False
        self._notify()

    def _on_subscription_error(self, generation: int, message: str) -> None:
        if generation != self._subscription_generation:
            return
        self._logger.error("Service subscription failed: %s", message)
        self._state.loading = False
        self._state.status_message = message
        self._notify()

    def _accept_draft(self, draft: ServiceDraft, *, action: str) -> bool:
        errors = draft.validate()
        if not errors:
            return True
        self._logger.error(
            "Rejected %s submission: %s",
            action,
            "; ".join(f"{error.field}: {error.message}" for error in errors),
        )
        self._state.form_error = errors[0].message
        self._notify()
        return False

    def _require_store(self, action: str) -> ServiceStore | None:
        if self._store is not None:
            return self._store
        self._logger.error("Cannot %s service: no store is configured.", action)
        self._state.form_error = "The service store is not available."
        self._notify()
        return None

    def _handle_result(self, result: StoreResult, *, action: str) -> bool:
        if result.ok:
            return True
        self._logger.error("Service %s failed: %s", action, result.error)
        self._state.form_error = result.error
        self._notify()
        return False

    def _notify(self) -> None:
        for listener in tuple(self._listeners):
            listener(self._state)
