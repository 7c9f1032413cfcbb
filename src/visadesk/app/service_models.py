from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any


STATUS_INTAKE = "intake"
STATUS_VERIFIED = "verified"
STATUS_PENDING = "pending"
STATUS_FOLLOW_UP = "follow-up"
STATUS_DONE = "done"

SERVICE_STATUSES: tuple[str, ...] = (
    STATUS_INTAKE,
    STATUS_VERIFIED,
    STATUS_PENDING,
    STATUS_FOLLOW_UP,
    STATUS_DONE,
)
_STATUS_LABEL_OVERRIDES: dict[str, str] = {
    STATUS_FOLLOW_UP: "Follow Up",
}
_STATUS_COLORS: dict[str, str] = {
    STATUS_INTAKE: "#2563EB",
    STATUS_VERIFIED: "#7C3AED",
    STATUS_PENDING: "#CA8A04",
    STATUS_FOLLOW_UP: "#EA580C",
    STATUS_DONE: "#16A34A",
}
DEFAULT_STATUS_COLOR = "#4B5563"
OVERDUE_AFTER_DAYS = 2
_SECONDS_PER_DAY = 86_400


@dataclass(frozen=True, slots=True)
class ServiceCategory:
    name: str
    requires_passport: bool = True


SERVICE_CATEGORIES: tuple[ServiceCategory, ...] = (
    ServiceCategory("VOA"),
    ServiceCategory("Visa Extension"),
    ServiceCategory("Re-entry Permit"),
    ServiceCategory("90-Day Report"),
    ServiceCategory("Work Permit"),
    ServiceCategory("Company Registration", requires_passport=False),
    ServiceCategory("Document Translation", requires_passport=False),
    ServiceCategory("Other"),
)
_CATEGORIES_BY_NAME: dict[str, ServiceCategory] = {
    category.name.casefold(): category for category in SERVICE_CATEGORIES
}


def category_for_title(title: Any) -> ServiceCategory:
    """Look up a category by title; unknown titles keep the passport field."""
    text = _as_text(title)
    return _CATEGORIES_BY_NAME.get(text.casefold(), ServiceCategory(text))


def requires_passport(title: Any) -> bool:
    return category_for_title(title).requires_passport


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def parse_iso_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = _as_text(value)
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_date_text(value: Any) -> str:
    """Truncate a date or timestamp-like value to ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = _as_text(value)
    if not text:
        return ""
    head = text[:10]
    try:
        return date.fromisoformat(head).isoformat()
    except ValueError:
        return text


def today_iso() -> str:
    return date.today().isoformat()


def is_known_status(value: Any) -> bool:
    return _as_text(value) in SERVICE_STATUSES


def status_label(value: Any) -> str:
    text = _as_text(value)
    override = _STATUS_LABEL_OVERRIDES.get(text)
    if override is not None:
        return override
    return text.capitalize()


def status_color(value: Any) -> str:
    return _STATUS_COLORS.get(_as_text(value), DEFAULT_STATUS_COLOR)


@dataclass(slots=True)
class ServiceRecord:
    service_id: str
    title: str
    description: str
    date_entered: str
    status: str = STATUS_INTAKE
    passport_number: str = ""
    timestamp: datetime | None = None
    created_by: str = ""

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> "ServiceRecord":
        if not isinstance(value, Mapping):
            return cls(service_id="", title="", description="", date_entered="")
        return cls(
            service_id=_as_text(value.get("id") or value.get("service_id")),
            title=_as_text(value.get("title")),
            description=_as_text(value.get("description")),
            date_entered=normalize_date_text(
                value.get("date_entered") or value.get("dateEntered")
            ),
            status=_as_text(value.get("status")),
            passport_number=_as_text(
                value.get("passport_number") or value.get("passportNumber")
            ),
            timestamp=parse_iso_datetime(value.get("timestamp")),
            created_by=_as_text(value.get("created_by") or value.get("createdBy")),
        )

    def to_mapping(self) -> dict[str, str]:
        return {
            "id": _as_text(self.service_id),
            "title": _as_text(self.title),
            "passport_number": _as_text(self.passport_number),
            "description": _as_text(self.description),
            "date_entered": normalize_date_text(self.date_entered),
            "status": _as_text(self.status),
            "timestamp": self.timestamp.isoformat() if self.timestamp is not None else "",
            "created_by": _as_text(self.created_by),
        }


def elapsed_days(timestamp: datetime, now: datetime | None = None) -> int:
    """Whole days between ``timestamp`` and ``now``, rounded up, never negative."""
    reference = now or datetime.now(timezone.utc)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    seconds = abs((reference - timestamp).total_seconds())
    return math.ceil(seconds / _SECONDS_PER_DAY)


def is_overdue(record: ServiceRecord, now: datetime | None = None) -> bool:
    if record.status == STATUS_DONE or record.timestamp is None:
        return False
    return elapsed_days(record.timestamp, now) > OVERDUE_AFTER_DAYS
