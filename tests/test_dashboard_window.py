from __future__ import annotations

import pytest

from visadesk.app.dashboard_controller import DashboardController
from visadesk.app.identity import LocalIdentityProvider
from visadesk.app.main import DashboardWindow
from visadesk.app.service_draft import ServiceDraft
from visadesk.app.service_store import LocalSqliteServiceStore


@pytest.fixture
def window(qapp, tmp_path, clock):
    store = LocalSqliteServiceStore(tmp_path / "data", clock=clock)
    controller = DashboardController(identity_provider=LocalIdentityProvider(), record_store=store)
    dashboard = DashboardWindow(controller, clock=clock)
    yield dashboard
    dashboard.close()
    dashboard.deleteLater()


def _voa_draft() -> ServiceDraft:
    return ServiceDraft(
        title="VOA",
        passport_number="A1234567",
        description="Renewal",
        date_entered="2025-01-10",
    )


def test_initial_state_is_loading(window):
    assert window.loading_label.isHidden() is False
    assert window.add_button.isEnabled() is False
    assert window.user_label.text() == "Signing in..."


def test_start_loads_empty_list(window):
    window.start()
    assert window.loading_label.isHidden() is True
    assert window.empty_label.isHidden() is False
    assert window.add_button.isEnabled() is True
    assert window.user_label.text().startswith("Signed in as local-")


def test_add_flow_updates_table_and_counts(window):
    window.start()
    controller = window.controller

    controller.open_add_modal()
    assert window.add_overlay.isHidden() is False

    window.add_form.load_draft(_voa_draft())
    window.add_form.submit_button.click()

    assert window.add_overlay.isHidden() is True
    assert window.table.rowCount() == 1
    assert window.summary_bar.count_text("intake") == "1"
    [record] = controller.state.services
    assert record.created_by == controller.state.user_id


def test_validation_error_is_shown_inline(window):
    window.start()
    window.controller.open_add_modal()
    window.add_form.load_draft(ServiceDraft(title="VOA", description="", date_entered="2025-01-10"))

    window.add_form.submit_button.click()

    assert window.add_overlay.isHidden() is False
    assert window.add_form.error_text() == "Description is required."


def test_edit_flow_prefills_form(window):
    window.start()
    controller = window.controller
    controller.submit_add(_voa_draft())
    [record] = controller.state.services

    controller.open_edit_modal(record)
    assert window.edit_form.draft().description == "Renewal"

    window.edit_form.status_combo.setCurrentIndex(window.edit_form.status_combo.findData("follow-up"))
    window.edit_form.submit_button.click()

    assert window.edit_overlay.isHidden() is True
    [updated] = controller.state.services
    assert updated.status == "follow-up"
    assert window.summary_bar.count_text("follow-up") == "1"


def test_delete_flow(window):
    window.start()
    controller = window.controller
    controller.submit_add(_voa_draft())
    [record] = controller.state.services

    window.table.action_button(0, "delete").click()
    assert window.delete_overlay.isHidden() is False
    window.delete_panel.confirm_button.click()

    assert window.delete_overlay.isHidden() is True
    assert controller.state.services == []
    assert window.empty_label.isHidden() is False


def test_escape_closes_edit_modal_through_controller(window):
    window.start()
    controller = window.controller
    controller.submit_add(_voa_draft())
    controller.open_edit_modal(controller.state.services[0])

    window.edit_overlay.request_close()

    assert controller.state.show_edit_modal is False
    assert controller.state.current_service is None
    assert window.edit_overlay.isHidden() is True


def test_dark_mode_toggle_applies_and_persists_theme(window, qapp):
    from visadesk.app.settings_store import load_dark_mode
    from visadesk.ui.theme import current_theme_mode

    window.theme_button.setChecked(True)
    assert current_theme_mode(qapp) == "dark"
    assert load_dark_mode() is True
    assert "ServiceStatusBadge" in qapp.styleSheet()

    window.theme_button.setChecked(False)
    assert current_theme_mode(qapp) == "light"
    assert load_dark_mode() is False
