from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from visadesk.app.service_models import (
    SERVICE_STATUSES,
    STATUS_INTAKE,
    ServiceRecord,
    normalize_date_text,
    requires_passport,
    today_iso,
)


@dataclass(frozen=True, slots=True)
class DraftError:
    field: str
    message: str


@dataclass(slots=True)
class ServiceDraft:
    """Editable copy of a service record's user-facing fields.

    The passport number stays in the draft while the chosen category hides
    the input, so switching back to a passport category restores it.
    It is only dropped when the draft is turned into persisted fields.
    """

    title: str = ""
    passport_number: str = ""
    description: str = ""
    date_entered: str = field(default_factory=today_iso)
    status: str = STATUS_INTAKE

    @classmethod
    def from_record(cls, record: ServiceRecord) -> "ServiceDraft":
        return cls(
            title=record.title,
            passport_number=record.passport_number,
            description=record.description,
            date_entered=normalize_date_text(record.date_entered),
            status=record.status,
        )

    @property
    def passport_visible(self) -> bool:
        return requires_passport(self.title)

    def validate(self) -> list[DraftError]:
        errors: list[DraftError] = []
        if self.status not in SERVICE_STATUSES:
            errors.append(DraftError("status", f"Unknown status '{self.status}'."))
        if not self.title.strip():
            errors.append(DraftError("title", "Choose a service title."))
        if not self.description.strip():
            errors.append(DraftError("description", "Description is required."))
        if not self.date_entered.strip():
            errors.append(DraftError("date_entered", "Date entered is required."))
        elif not _is_calendar_date(self.date_entered):
            errors.append(DraftError("date_entered", f"'{self.date_entered}' is not a valid date."))
        return errors

    def to_fields(self) -> dict[str, str]:
        return {
            "title": self.title.strip(),
            "passport_number": self.passport_number.strip() if self.passport_visible else "",
            "description": self.description.strip(),
            "date_entered": normalize_date_text(self.date_entered),
            "status": self.status.strip(),
        }

    def changed_fields(self, record: ServiceRecord) -> dict[str, str]:
        """Persisted fields whose value differs from ``record``.

        A passport number stored on an exempt record is left alone unless the
        title itself changes, since the hidden input cannot have been edited.
        """
        current = {
            "title": record.title,
            "passport_number": record.passport_number,
            "description": record.description,
            "date_entered": normalize_date_text(record.date_entered),
            "status": record.status,
        }
        fields = self.to_fields()
        if not self.passport_visible and fields["title"] == record.title:
            fields.pop("passport_number")
        return {key: value for key, value in fields.items() if current[key] != value}


def _is_calendar_date(value: str) -> bool:
    try:
        date.fromisoformat(normalize_date_text(value))
    except ValueError:
        return False
    return True
