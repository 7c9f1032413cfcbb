from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from visadesk.app.identity import IdentityProvider, LocalIdentityProvider, SupabaseIdentityProvider
from visadesk.app.service_store import LocalSqliteServiceStore, ServiceStore, SupabaseServiceStore
from visadesk.app.settings_store import (
    BACKEND_LOCAL_SQLITE,
    BACKEND_SUPABASE,
    SupabaseSettings,
    normalize_data_storage_backend,
)
from visadesk.app.supabase_rest import SupabaseRestClient


@dataclass(frozen=True, slots=True)
class StorageRuntimeSelection:
    backend: str
    data_root: Path
    identity_provider: IdentityProvider
    record_store: ServiceStore
    supabase_settings: SupabaseSettings
    warnings: tuple[str, ...] = ()


def build_storage_runtime(
    *,
    backend: str,
    data_root: Path | str,
    supabase_settings: SupabaseSettings | None = None,
    on_realtime_status: Callable[[str, str], None] | None = None,
    logger: logging.Logger | None = None,
) -> StorageRuntimeSelection:
    log = logger or logging.getLogger("visadesk.store")
    normalized_backend = normalize_data_storage_backend(backend, default=BACKEND_LOCAL_SQLITE)
    normalized_root = _normalize_path(Path(data_root))
    settings = supabase_settings or SupabaseSettings()
    warnings: list[str] = []

    if normalized_backend == BACKEND_SUPABASE and not settings.configured:
        normalized_backend = BACKEND_LOCAL_SQLITE
        warnings.append(
            "Supabase backend is selected, but URL/API key is missing. "
            "Falling back to local SQLite storage."
        )

    identity_provider: IdentityProvider
    record_store: ServiceStore
    if normalized_backend == BACKEND_SUPABASE:
        rest_client = SupabaseRestClient(
            url=settings.url,
            api_key=settings.api_key,
            schema=settings.schema,
            timeout_seconds=settings.timeout_seconds,
        )
        identity_provider = SupabaseIdentityProvider(
            rest_client,
            auth_token=settings.auth_token,
            logger=logging.getLogger("visadesk.identity"),
        )
        record_store = SupabaseServiceStore(
            rest_client,
            table=settings.services_table,
            app_id=settings.app_id,
            schema=settings.schema,
            on_status=on_realtime_status,
            logger=log,
        )
    else:
        identity_provider = LocalIdentityProvider()
        record_store = LocalSqliteServiceStore(
            normalized_root,
            app_id=settings.app_id,
            logger=log,
        )

    for warning in warnings:
        log.warning(warning)
    return StorageRuntimeSelection(
        backend=normalized_backend,
        data_root=normalized_root,
        identity_provider=identity_provider,
        record_store=record_store,
        supabase_settings=settings,
        warnings=tuple(warnings),
    )


def _normalize_path(path: Path) -> Path:
    expanded = path.expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded
