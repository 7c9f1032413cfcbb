from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Mapping, Sequence

from PySide6.QtCore import Qt
from PySide6.QtGui import QBrush, QColor, QPainter, QPainterPath
from PySide6.QtWidgets import (
    QAbstractItemView,
    QFrame,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from visadesk.app.service_models import (
    SERVICE_STATUSES,
    ServiceRecord,
    elapsed_days,
    is_known_status,
    is_overdue,
    status_color,
    status_label,
)


OVERDUE_ROLE = int(Qt.ItemDataRole.UserRole) + 1
SERVICE_ID_ROLE = int(Qt.ItemDataRole.UserRole) + 2
_OVERDUE_BACKGROUND = QColor(220, 38, 38, 46)
_COLUMNS: tuple[str, ...] = (
    "Service",
    "Passport",
    "Description",
    "Date Entered",
    "Status",
    "Created By",
    "Actions",
)
STATUS_COLUMN = 4
ACTIONS_COLUMN = 6


class StatusBadge(QLabel):
    def __init__(self, status: str, parent: QWidget | None = None) -> None:
        super().__init__(status_label(status), parent)
        self.setObjectName("ServiceStatusBadge")
        self.setProperty("badgeRole", status if is_known_status(status) else "unknown")
        self.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._corner_radius = 9
        self._fill = QColor(status_color(status))

    @property
    def fill_color(self) -> QColor:
        return QColor(self._fill)

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        rect = self.rect().adjusted(1, 1, -1, -1)
        path = QPainterPath()
        path.addRoundedRect(rect, self._corner_radius, self._corner_radius)
        painter.fillPath(path, self._fill)
        painter.end()
        super().paintEvent(event)


class ServiceTable(QTableWidget):
    """One row per service with a status badge and Edit/Delete actions.

    Overdue state depends on wall-clock time, so every ``render`` call
    re-evaluates it against ``clock()``.
    """

    def __init__(
        self,
        *,
        on_edit: Callable[[ServiceRecord], None] | None = None,
        on_delete: Callable[[ServiceRecord], None] | None = None,
        clock: Callable[[], datetime] | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(0, len(_COLUMNS), parent)
        self.setObjectName("ServiceTable")
        self._on_edit = on_edit
        self._on_delete = on_delete
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._services: list[ServiceRecord] = []

        self.setHorizontalHeaderLabels(list(_COLUMNS))
        self.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.setSelectionMode(QAbstractItemView.SelectionMode.NoSelection)
        self.setAlternatingRowColors(False)
        self.setWordWrap(True)
        self.verticalHeader().setVisible(False)
        header = self.horizontalHeader()
        header.setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
        header.setSectionResizeMode(2, QHeaderView.ResizeMode.Stretch)

    @property
    def services(self) -> list[ServiceRecord]:
        return list(self._services)

    def set_services(self, services: Sequence[ServiceRecord]) -> None:
        self._services = list(services)
        self.render_rows()

    def render_rows(self, now: datetime | None = None) -> None:
        reference = now or self._clock()
        self.setRowCount(len(self._services))
        for row, service in enumerate(self._services):
            overdue = is_overdue(service, reference)
            values = (
                service.title,
                service.passport_number,
                service.description,
                service.date_entered,
                "",
                service.created_by,
                "",
            )
            for column, value in enumerate(values):
                item = QTableWidgetItem(value)
                item.setData(SERVICE_ID_ROLE, service.service_id)
                item.setData(OVERDUE_ROLE, overdue)
                if overdue:
                    item.setBackground(QBrush(_OVERDUE_BACKGROUND))
                    days = elapsed_days(service.timestamp, reference) if service.timestamp else 0
                    item.setToolTip(f"Overdue: created {days} day(s) ago")
                self.setItem(row, column, item)
            self.setCellWidget(row, STATUS_COLUMN, self._build_badge_cell(service))
            self.setCellWidget(row, ACTIONS_COLUMN, self._build_actions_cell(service))

    def row_overdue(self, row: int) -> bool:
        item = self.item(row, 0)
        return bool(item is not None and item.data(OVERDUE_ROLE))

    def action_button(self, row: int, action: str) -> QPushButton | None:
        cell = self.cellWidget(row, ACTIONS_COLUMN)
        if cell is None:
            return None
        for button in cell.findChildren(QPushButton):
            if button.property("actionRole") == action:
                return button
        return None

    def _build_badge_cell(self, service: ServiceRecord) -> QWidget:
        cell = QWidget(self)
        layout = QHBoxLayout(cell)
        layout.setContentsMargins(6, 2, 6, 2)
        layout.addWidget(StatusBadge(service.status, cell), 0, Qt.AlignmentFlag.AlignCenter)
        return cell

    def _build_actions_cell(self, service: ServiceRecord) -> QWidget:
        cell = QWidget(self)
        layout = QHBoxLayout(cell)
        layout.setContentsMargins(4, 2, 4, 2)
        layout.setSpacing(6)

        edit_button = QPushButton("Edit", cell)
        edit_button.setObjectName("ServiceRowButton")
        edit_button.setProperty("actionRole", "edit")
        edit_button.setCursor(Qt.CursorShape.PointingHandCursor)
        edit_button.clicked.connect(lambda _checked=False, record=service: self._emit_edit(record))
        layout.addWidget(edit_button)

        delete_button = QPushButton("Delete", cell)
        delete_button.setObjectName("ServiceRowButton")
        delete_button.setProperty("actionRole", "delete")
        delete_button.setCursor(Qt.CursorShape.PointingHandCursor)
        delete_button.clicked.connect(lambda _checked=False, record=service: self._emit_delete(record))
        layout.addWidget(delete_button)
        return cell

    def _emit_edit(self, service: ServiceRecord) -> None:
        if self._on_edit is not None:
            self._on_edit(service)

    def _emit_delete(self, service: ServiceRecord) -> None:
        if self._on_delete is not None:
            self._on_delete(service)


class StatusSummaryBar(QFrame):
    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("StatusSummaryBar")
        self._count_labels: dict[str, QLabel] = {}

        layout = QHBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(12)

        for status in SERVICE_STATUSES:
            card = QFrame(self)
            card.setObjectName("StatusSummaryCard")
            card.setProperty("statusRole", status)
            card_layout = QVBoxLayout(card)
            card_layout.setContentsMargins(14, 10, 14, 10)
            card_layout.setSpacing(2)

            count_label = QLabel("0", card)
            count_label.setObjectName("StatusSummaryCount")
            card_layout.addWidget(count_label)

            name_label = QLabel(status_label(status), card)
            name_label.setObjectName("StatusSummaryLabel")
            card_layout.addWidget(name_label)

            self._count_labels[status] = count_label
            layout.addWidget(card, 1)

    def set_counts(self, counts: Mapping[str, int]) -> None:
        for status, label in self._count_labels.items():
            label.setText(str(int(counts.get(status, 0))))

    def count_text(self, status: str) -> str:
        label = self._count_labels.get(status)
        return label.text() if label is not None else ""
