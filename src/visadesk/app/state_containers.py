from __future__ import annotations

from dataclasses import dataclass, field

from visadesk.app.service_models import ServiceRecord
from visadesk.app.status_summary import empty_status_counts


@dataclass(slots=True)
class DashboardState:
    services: list[ServiceRecord] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=empty_status_counts)
    show_add_modal: bool = False
    show_edit_modal: bool = False
    show_delete_modal: bool = False
    current_service: ServiceRecord | None = None
    loading: bool = True
    user_id: str = ""
    identity_ready: bool = False
    form_error: str = ""
    status_message: str = ""
