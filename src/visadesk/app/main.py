from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Callable, Sequence

from PySide6.QtCore import QTimer, Qt
from PySide6.QtWidgets import (
    QApplication,
    QFrame,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from visadesk.app.dashboard_controller import DashboardController
from visadesk.app.db_debug import db_debug
from visadesk.app.settings_store import (
    load_dark_mode,
    load_data_storage_backend,
    load_data_storage_folder,
    load_supabase_settings,
    save_dark_mode,
)
from visadesk.app.state_containers import DashboardState
from visadesk.app.storage_runtime import build_storage_runtime
from visadesk.ui.forms import ServiceDeletePanel, ServiceFormWidget
from visadesk.ui.theme import apply_app_theme, theme_mode_for
from visadesk.ui.widgets import ServiceTable, StatusSummaryBar
from visadesk.ui.window import ModalOverlay
from visadesk.version import APP_VERSION


OVERDUE_REFRESH_INTERVAL_MS = 60_000


class DashboardWindow(QMainWindow):
    def __init__(
        self,
        controller: DashboardController,
        *,
        dark_mode_enabled: bool = False,
        clock: Callable[[], datetime] | None = None,
        refresh_interval_ms: int = OVERDUE_REFRESH_INTERVAL_MS,
    ) -> None:
        super().__init__()
        self._controller = controller
        self._dark_mode_enabled = bool(dark_mode_enabled)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rendered_services: object = None
        self._was_add_open = False
        self._was_edit_open = False
        self._was_delete_open = False
        self._started = False

        self.setWindowTitle("VisaDesk")
        self.setMinimumSize(960, 600)
        self.resize(1180, 720)

        root = QWidget(self)
        root.setObjectName("DashboardRoot")
        self.setCentralWidget(root)
        root_layout = QVBoxLayout(root)
        root_layout.setContentsMargins(18, 16, 18, 16)
        root_layout.setSpacing(14)

        header = QFrame(root)
        header.setObjectName("DashboardHeader")
        header_layout = QHBoxLayout(header)
        header_layout.setContentsMargins(0, 0, 0, 0)
        header_layout.setSpacing(10)

        title_label = QLabel("Service Dashboard", header)
        title_label.setObjectName("DashboardTitle")
        header_layout.addWidget(title_label)

        self.user_label = QLabel(header)
        self.user_label.setObjectName("DashboardUserLabel")
        header_layout.addWidget(self.user_label)
        header_layout.addStretch(1)

        self.theme_button = QPushButton("Dark mode", header)
        self.theme_button.setObjectName("DashboardHeaderButton")
        self.theme_button.setCheckable(True)
        self.theme_button.setChecked(self._dark_mode_enabled)
        self.theme_button.toggled.connect(self._on_dark_mode_toggled)
        header_layout.addWidget(self.theme_button)

        self.add_button = QPushButton("Add Service", header)
        self.add_button.setObjectName("DashboardHeaderButton")
        self.add_button.setProperty("primary", "true")
        self.add_button.clicked.connect(self._controller.open_add_modal)
        header_layout.addWidget(self.add_button)
        root_layout.addWidget(header)

        self.status_message_label = QLabel(root)
        self.status_message_label.setObjectName("DashboardStatusMessage")
        self.status_message_label.setWordWrap(True)
        self.status_message_label.setVisible(False)
        root_layout.addWidget(self.status_message_label)

        self.summary_bar = StatusSummaryBar(root)
        root_layout.addWidget(self.summary_bar)

        self.loading_label = QLabel("Loading services...", root)
        self.loading_label.setObjectName("DashboardLoadingLabel")
        self.loading_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        root_layout.addWidget(self.loading_label)

        self.empty_label = QLabel("No services yet.\nClick Add Service to create the first one.", root)
        self.empty_label.setObjectName("DashboardEmptyState")
        self.empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.empty_label.setVisible(False)
        root_layout.addWidget(self.empty_label)

        self.table = ServiceTable(
            on_edit=self._controller.open_edit_modal,
            on_delete=self._controller.open_delete_modal,
            clock=self._clock,
            parent=root,
        )
        root_layout.addWidget(self.table, 1)

        self.add_form = ServiceFormWidget(
            submit_text="Add Service",
            on_submit=self._controller.submit_add,
            on_cancel=self._controller.close_add_modal,
        )
        self.add_overlay = ModalOverlay(root, title="Add Service", on_close=self._controller.close_add_modal)
        self.add_overlay.set_content(self.add_form)

        self.edit_form = ServiceFormWidget(
            submit_text="Save Changes",
            on_submit=self._controller.submit_edit,
            on_cancel=self._controller.close_edit_modal,
        )
        self.edit_overlay = ModalOverlay(root, title="Edit Service", on_close=self._controller.close_edit_modal)
        self.edit_overlay.set_content(self.edit_form)

        self.delete_panel = ServiceDeletePanel(
            on_confirm=self._controller.confirm_delete,
            on_cancel=self._controller.close_delete_modal,
        )
        self.delete_overlay = ModalOverlay(
            root,
            title="Delete Service",
            on_close=self._controller.close_delete_modal,
            card_width=440,
        )
        self.delete_overlay.set_content(self.delete_panel)

        self._refresh_timer = QTimer(self)
        self._refresh_timer.setInterval(max(1_000, int(refresh_interval_ms)))
        self._refresh_timer.timeout.connect(self._refresh_overdue)
        self._refresh_timer.start()

        self._remove_listener = self._controller.add_listener(self.render)
        self.render(self._controller.state)

    @property
    def controller(self) -> DashboardController:
        return self._controller

    def render(self, state: DashboardState) -> None:
        if state.identity_ready:
            self.user_label.setText(f"Signed in as {state.user_id or 'unknown user'}")
        else:
            self.user_label.setText("Signing in...")
        self.add_button.setEnabled(state.identity_ready)

        self.status_message_label.setText(state.status_message)
        self.status_message_label.setVisible(bool(state.status_message))

        self.summary_bar.set_counts(state.counts)
        if state.services is not self._rendered_services:
            self._rendered_services = state.services
            self.table.set_services(state.services)
        self.loading_label.setVisible(state.loading)
        self.empty_label.setVisible(not state.loading and not state.services)
        self.table.setVisible(bool(state.services))

        if state.show_add_modal and not self._was_add_open:
            self.add_form.reset()
        if state.show_edit_modal and not self._was_edit_open and state.current_service is not None:
            self.edit_form.load_record(state.current_service)
        if state.show_delete_modal and not self._was_delete_open:
            self.delete_panel.set_service(state.current_service)
        self._was_add_open = state.show_add_modal
        self._was_edit_open = state.show_edit_modal
        self._was_delete_open = state.show_delete_modal

        if state.show_add_modal:
            self.add_form.set_error(state.form_error)
        if state.show_edit_modal:
            self.edit_form.set_error(state.form_error)
        if state.show_delete_modal:
            self.delete_panel.set_error(state.form_error)

        self.add_overlay.sync(state.show_add_modal)
        self.edit_overlay.sync(state.show_edit_modal)
        self.delete_overlay.sync(state.show_delete_modal)

    def show_realtime_status(self, level: str, message: str) -> None:
        if not message:
            return
        timeout_ms = 0 if level == "warning" else 5_000
        self.statusBar().showMessage(message, timeout_ms)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._controller.start()

    def showEvent(self, event) -> None:
        super().showEvent(event)
        if not self._started:
            QTimer.singleShot(0, self.start)

    def closeEvent(self, event) -> None:
        self._refresh_timer.stop()
        self._remove_listener()
        store = self._controller.record_store
        self._controller.shutdown()
        if store is not None:
            store.close()
        db_debug("app.window_closed")
        super().closeEvent(event)

    def _refresh_overdue(self) -> None:
        self.table.render_rows()

    def _on_dark_mode_toggled(self, checked: bool) -> None:
        self._dark_mode_enabled = bool(checked)
        save_dark_mode(self._dark_mode_enabled)
        app = QApplication.instance()
        if app is not None:
            apply_app_theme(app, mode=theme_mode_for(self._dark_mode_enabled))


def _configure_logging() -> None:
    level_name = str(os.environ.get("VISADESK_LOG_LEVEL", "") or "").strip().upper() or "INFO"
    level = getattr(logging, level_name, logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(argv: Sequence[str] | None = None) -> int:
    _configure_logging()
    app = QApplication.instance()
    if app is None:
        app = QApplication(list(argv or sys.argv))

    app.setApplicationName("visadesk")
    app.setApplicationVersion(APP_VERSION)

    dark_mode_enabled = load_dark_mode(default=False)
    apply_app_theme(app, mode=theme_mode_for(dark_mode_enabled))

    window: DashboardWindow | None = None

    def _on_realtime_status(level: str, message: str) -> None:
        if window is not None:
            window.show_realtime_status(level, message)

    runtime = build_storage_runtime(
        backend=load_data_storage_backend(),
        data_root=load_data_storage_folder(),
        supabase_settings=load_supabase_settings(),
        on_realtime_status=_on_realtime_status,
    )
    db_debug("app.started", backend=runtime.backend, app_version=APP_VERSION)

    controller = DashboardController(
        identity_provider=runtime.identity_provider,
        record_store=runtime.record_store,
    )
    if runtime.warnings:
        controller.set_status_message(" ".join(runtime.warnings))
    window = DashboardWindow(controller, dark_mode_enabled=dark_mode_enabled)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(run())
