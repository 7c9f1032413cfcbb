from __future__ import annotations

import itertools
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping


TRACE_ENV = "VISADESK_DB_DEBUG"
TRACE_LOG_ENV = "VISADESK_DB_DEBUG_LOG"
REDACTED = "<redacted>"

# Keys are compared after casefolding and dropping "_" and "-", so
# "passportNumber" and "passport_number" match the same entry.
_CREDENTIAL_KEYS = frozenset(
    {"apikey", "authorization", "accesstoken", "authtoken", "refreshtoken", "token", "secret", "password"}
)
_PERSONAL_KEYS = frozenset({"passportnumber", "passport"})
_SEQUENCE = itertools.count(1)


def trace_enabled() -> bool:
    return str(os.getenv(TRACE_ENV, "") or "").strip().casefold() in {"1", "true", "yes", "on", "y"}


def db_debug(event: str, **payload: object) -> None:
    """Append one JSON line describing a store, identity or realtime event.

    Nothing is written unless ``VISADESK_DB_DEBUG`` is truthy. Credentials
    and passport numbers are replaced before the line is built, including
    inside nested record payloads.
    """
    if not trace_enabled():
        return
    line = json.dumps(
        {
            "seq": next(_SEQUENCE),
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "event": str(event or "").strip() or "unknown",
            "data": scrub(payload),
        },
        ensure_ascii=True,
        default=str,
    )
    target = _trace_path()
    if target is not None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as handle:
                handle.write(f"{line}\n")
            return
        except OSError:
            pass
    try:
        sys.stderr.write(f"[visadesk-trace] {line}\n")
    except (OSError, ValueError):
        pass


def scrub(value: object) -> object:
    if isinstance(value, Mapping):
        return {str(key): REDACTED if _is_sensitive(key) else scrub(raw) for key, raw in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub(entry) for entry in value]
    return value


def _is_sensitive(key: object) -> bool:
    normalized = str(key or "").casefold().replace("_", "").replace("-", "").strip()
    return normalized in _CREDENTIAL_KEYS or normalized in _PERSONAL_KEYS


def _trace_path() -> Path | None:
    target = str(os.getenv(TRACE_LOG_ENV, "") or "").strip()
    return Path(target).expanduser() if target else None
