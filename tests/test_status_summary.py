from __future__ import annotations

from visadesk.app.service_models import SERVICE_STATUSES
from visadesk.app.status_summary import count_by_status, empty_status_counts


def test_empty_counts_cover_every_status():
    assert empty_status_counts() == {status: 0 for status in SERVICE_STATUSES}
    assert count_by_status([]) == empty_status_counts()


def test_counts_sum_to_records_with_known_status(record_factory):
    records = [
        record_factory("1", status="intake"),
        record_factory("2", status="intake"),
        record_factory("3", status="pending"),
        record_factory("4", status="follow-up"),
        record_factory("5", status="done"),
        record_factory("6", status="archived"),
        record_factory("7", status=""),
    ]
    counts = count_by_status(records)
    assert counts == {
        "intake": 2,
        "verified": 0,
        "pending": 1,
        "follow-up": 1,
        "done": 1,
    }
    assert sum(counts.values()) == 5
