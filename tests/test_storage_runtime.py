from __future__ import annotations

from visadesk.app.identity import LocalIdentityProvider, SupabaseIdentityProvider
from visadesk.app.service_store import LocalSqliteServiceStore, SupabaseServiceStore
from visadesk.app.settings_store import BACKEND_LOCAL_SQLITE, BACKEND_SUPABASE, SupabaseSettings
from visadesk.app.storage_runtime import build_storage_runtime


def test_local_backend(tmp_path):
    runtime = build_storage_runtime(backend="local_sqlite", data_root=tmp_path)
    assert runtime.backend == BACKEND_LOCAL_SQLITE
    assert isinstance(runtime.identity_provider, LocalIdentityProvider)
    assert isinstance(runtime.record_store, LocalSqliteServiceStore)
    assert runtime.warnings == ()


def test_supabase_without_credentials_falls_back(tmp_path, caplog):
    with caplog.at_level("WARNING", logger="visadesk.store"):
        runtime = build_storage_runtime(
            backend="supabase",
            data_root=tmp_path,
            supabase_settings=SupabaseSettings(),
        )
    assert runtime.backend == BACKEND_LOCAL_SQLITE
    assert isinstance(runtime.record_store, LocalSqliteServiceStore)
    assert len(runtime.warnings) == 1
    assert "Falling back" in caplog.text


def test_supabase_backend(tmp_path):
    runtime = build_storage_runtime(
        backend="supabase",
        data_root=tmp_path,
        supabase_settings=SupabaseSettings(url="https://demo.supabase.co", api_key="anon-key"),
    )
    assert runtime.backend == BACKEND_SUPABASE
    assert isinstance(runtime.identity_provider, SupabaseIdentityProvider)
    assert isinstance(runtime.record_store, SupabaseServiceStore)
    assert runtime.record_store.configured
