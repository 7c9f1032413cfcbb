from __future__ import annotations

from typing import Callable

from PySide6.QtWidgets import (
    QComboBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from visadesk.app.service_draft import ServiceDraft
from visadesk.app.service_models import SERVICE_CATEGORIES, SERVICE_STATUSES, ServiceRecord, status_label


class ServiceFormWidget(QWidget):
    """Inputs for one service draft.

    The widget only collects input. It hands the whole draft to
    ``on_submit`` and leaves insert vs patch to whoever owns it.
    """

    def __init__(
        self,
        *,
        submit_text: str = "Save",
        on_submit: Callable[[ServiceDraft], None] | None = None,
        on_cancel: Callable[[], None] | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("ServiceForm")
        self._on_submit = on_submit
        self._on_cancel = on_cancel

        root = QVBoxLayout(self)
        root.setContentsMargins(0, 0, 0, 0)
        root.setSpacing(10)

        self._error_label = QLabel(self)
        self._error_label.setObjectName("ServiceFormError")
        self._error_label.setWordWrap(True)
        self._error_label.setVisible(False)
        root.addWidget(self._error_label)

        self._form = QFormLayout()
        self._form.setContentsMargins(0, 0, 0, 0)
        self._form.setHorizontalSpacing(12)
        self._form.setVerticalSpacing(10)

        self.title_combo = QComboBox(self)
        self.title_combo.setObjectName("ServiceFormCombo")
        self.title_combo.addItem("Select a service", "")
        for category in SERVICE_CATEGORIES:
            self.title_combo.addItem(category.name, category.name)
        self.title_combo.currentIndexChanged.connect(self._sync_passport_visibility)
        self._form.addRow("Service", self.title_combo)

        self.passport_input = QLineEdit(self)
        self.passport_input.setObjectName("ServiceFormInput")
        self.passport_input.setPlaceholderText("Passport number")
        self._form.addRow("Passport", self.passport_input)

        self.description_input = QLineEdit(self)
        self.description_input.setObjectName("ServiceFormInput")
        self._form.addRow("Description", self.description_input)

        self.date_input = QLineEdit(self)
        self.date_input.setObjectName("ServiceFormInput")
        self.date_input.setPlaceholderText("YYYY-MM-DD")
        self._form.addRow("Date entered", self.date_input)

        self.status_combo = QComboBox(self)
        self.status_combo.setObjectName("ServiceFormCombo")
        for status in SERVICE_STATUSES:
            self.status_combo.addItem(status_label(status), status)
        self._form.addRow("Status", self.status_combo)

        root.addLayout(self._form)

        footer = QHBoxLayout()
        footer.setContentsMargins(0, 0, 0, 0)
        footer.setSpacing(8)
        footer.addStretch(1)

        cancel_button = QPushButton("Cancel", self)
        cancel_button.setObjectName("ServiceFormButton")
        cancel_button.clicked.connect(self._on_cancel_clicked)
        footer.addWidget(cancel_button)

        self.submit_button = QPushButton(submit_text, self)
        self.submit_button.setObjectName("ServiceFormButton")
        self.submit_button.setProperty("primary", "true")
        self.submit_button.clicked.connect(self._on_submit_clicked)
        footer.addWidget(self.submit_button)

        root.addLayout(footer)

        self._base_title_count = self.title_combo.count()
        self._base_status_count = self.status_combo.count()
        self.load_draft(ServiceDraft())

    @property
    def passport_visible(self) -> bool:
        return self.draft().passport_visible

    def draft(self) -> ServiceDraft:
        return ServiceDraft(
            title=str(self.title_combo.currentData() or ""),
            passport_number=self.passport_input.text(),
            description=self.description_input.text(),
            date_entered=self.date_input.text(),
            status=str(self.status_combo.currentData() or ""),
        )

    def load_draft(self, draft: ServiceDraft) -> None:
        _drop_extra_items(self.title_combo, self._base_title_count)
        _drop_extra_items(self.status_combo, self._base_status_count)
        title_index = self.title_combo.findData(draft.title)
        if title_index < 0:
            # titles outside the category list still round-trip through edit, for this record only
            self.title_combo.addItem(draft.title, draft.title)
            title_index = self.title_combo.count() - 1
        self.title_combo.setCurrentIndex(title_index)
        self.passport_input.setText(draft.passport_number)
        self.description_input.setText(draft.description)
        self.date_input.setText(draft.date_entered)
        status_index = self.status_combo.findData(draft.status)
        if status_index < 0:
            self.status_combo.addItem(status_label(draft.status), draft.status)
            status_index = self.status_combo.count() - 1
        self.status_combo.setCurrentIndex(status_index)
        self._sync_passport_visibility()
        self.set_error("")

    def load_record(self, record: ServiceRecord) -> None:
        self.load_draft(ServiceDraft.from_record(record))

    def reset(self) -> None:
        self.load_draft(ServiceDraft())

    def set_error(self, message: str) -> None:
        text = str(message or "").strip()
        self._error_label.setText(text)
        self._error_label.setVisible(bool(text))

    def error_text(self) -> str:
        return self._error_label.text()

    def _sync_passport_visibility(self, _index: int = -1) -> None:
        # hiding the row keeps the typed value
        self._form.setRowVisible(self.passport_input, self.draft().passport_visible)

    def _on_submit_clicked(self) -> None:
        if self._on_submit is not None:
            self._on_submit(self.draft())

    def _on_cancel_clicked(self) -> None:
        if self._on_cancel is not None:
            self._on_cancel()


class ServiceDeletePanel(QWidget):
    def __init__(
        self,
        *,
        on_confirm: Callable[[], None] | None = None,
        on_cancel: Callable[[], None] | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("ServiceDeletePanel")
        self._on_confirm = on_confirm
        self._on_cancel = on_cancel

        root = QVBoxLayout(self)
        root.setContentsMargins(0, 0, 0, 0)
        root.setSpacing(10)

        self._message_label = QLabel(self)
        self._message_label.setObjectName("ServiceDeleteMessage")
        self._message_label.setWordWrap(True)
        root.addWidget(self._message_label)

        self._error_label = QLabel(self)
        self._error_label.setObjectName("ServiceFormError")
        self._error_label.setWordWrap(True)
        self._error_label.setVisible(False)
        root.addWidget(self._error_label)

        footer = QHBoxLayout()
        footer.setContentsMargins(0, 0, 0, 0)
        footer.setSpacing(8)
        footer.addStretch(1)

        self.cancel_button = QPushButton("Cancel", self)
        self.cancel_button.setObjectName("ServiceFormButton")
        self.cancel_button.clicked.connect(self._on_cancel_clicked)
        footer.addWidget(self.cancel_button)

        self.confirm_button = QPushButton("Delete", self)
        self.confirm_button.setObjectName("ServiceFormDangerButton")
        self.confirm_button.clicked.connect(self._on_confirm_clicked)
        footer.addWidget(self.confirm_button)

        root.addLayout(footer)

    def set_service(self, record: ServiceRecord | None) -> None:
        if record is None:
            self._message_label.setText("")
        else:
            label = record.title or "this service"
            detail = f" for passport {record.passport_number}" if record.passport_number else ""
            self._message_label.setText(
                f"Delete {label}{detail}? This cannot be undone."
            )
        self.set_error("")

    def message_text(self) -> str:
        return self._message_label.text()

    def set_error(self, message: str) -> None:
        text = str(message or "").strip()
        self._error_label.setText(text)
        self._error_label.setVisible(bool(text))

    def _on_confirm_clicked(self) -> None:
        if self._on_confirm is not None:
            self._on_confirm()

    def _on_cancel_clicked(self) -> None:
        if self._on_cancel is not None:
            self._on_cancel()


def _drop_extra_items(combo: QComboBox, keep: int) -> None:
    while combo.count() > keep:
        combo.removeItem(combo.count() - 1)
