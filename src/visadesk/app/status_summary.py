from __future__ import annotations

from typing import Iterable

from visadesk.app.service_models import SERVICE_STATUSES, ServiceRecord


def empty_status_counts() -> dict[str, int]:
    return {status: 0 for status in SERVICE_STATUSES}


def count_by_status(records: Iterable[ServiceRecord]) -> dict[str, int]:
    """Bucket records by workflow status.

    Records carrying a status outside the fixed workflow are skipped, so the
    buckets only add up to the number of records with a known status.
    """
    counts = empty_status_counts()
    for record in records:
        if record.status in counts:
            counts[record.status] += 1
    return counts
