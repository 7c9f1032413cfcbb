from __future__ import annotations

import json

from visadesk.app.settings_store import (
    BACKEND_LOCAL_SQLITE,
    BACKEND_SUPABASE,
    DEFAULT_APP_ID,
    load_dark_mode,
    load_data_storage_backend,
    load_data_storage_folder,
    load_settings,
    load_supabase_settings,
    normalize_data_storage_backend,
    save_dark_mode,
    settings_path,
)


def _write_settings(path, values) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(values), encoding="utf-8")


def test_settings_path_honours_override(isolated_settings):
    assert settings_path() == isolated_settings


def test_missing_or_corrupt_file_reads_as_empty(isolated_settings):
    assert load_settings() == {}
    isolated_settings.parent.mkdir(parents=True, exist_ok=True)
    isolated_settings.write_text("{not json", encoding="utf-8")
    assert load_settings() == {}


def test_dark_mode_round_trip(isolated_settings):
    assert load_dark_mode() is False
    save_dark_mode(True)
    assert load_dark_mode() is True
    assert json.loads(isolated_settings.read_text(encoding="utf-8"))["darkMode"] is True


def test_backend_normalization(isolated_settings, monkeypatch):
    assert normalize_data_storage_backend("SUPABASE") == BACKEND_SUPABASE
    assert normalize_data_storage_backend("mongo") == BACKEND_LOCAL_SQLITE
    assert load_data_storage_backend() == BACKEND_LOCAL_SQLITE

    monkeypatch.setenv("VISADESK_BACKEND", "supabase")
    assert load_data_storage_backend() == BACKEND_SUPABASE

    _write_settings(isolated_settings, {"dataStorageBackend": "local_sqlite"})
    assert load_data_storage_backend() == BACKEND_LOCAL_SQLITE


def test_data_folder_from_settings(isolated_settings, tmp_path):
    target = tmp_path / "records"
    _write_settings(isolated_settings, {"dataStorageFolder": str(target)})
    assert load_data_storage_folder() == target.resolve()


def test_supabase_settings_defaults(isolated_settings):
    settings = load_supabase_settings()
    assert settings.configured is False
    assert settings.schema == "public"
    assert settings.services_table == "services"
    assert settings.app_id == DEFAULT_APP_ID


def test_supabase_settings_file_wins_over_environment(isolated_settings, monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "env-key")
    monkeypatch.setenv("VISADESK_APP_ID", "env-app")
    _write_settings(isolated_settings, {"supabaseUrl": "https://file.supabase.co/", "appId": "file-app"})

    settings = load_supabase_settings()

    assert settings.url == "https://file.supabase.co"
    assert settings.api_key == "env-key"
    assert settings.app_id == "file-app"
    assert settings.configured is True


def test_auth_token_comes_only_from_environment(isolated_settings, monkeypatch):
    _write_settings(isolated_settings, {"authToken": "from-file"})
    assert load_supabase_settings().auth_token == ""
    monkeypatch.setenv("VISADESK_AUTH_TOKEN", "from-env")
    assert load_supabase_settings().auth_token == "from-env"


def test_redacted_mapping_hides_api_key(isolated_settings, monkeypatch):
    monkeypatch.setenv("VISADESK_SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.setenv("VISADESK_SUPABASE_API_KEY", "secret-key")
    mapping = load_supabase_settings().to_mapping(redact_api_key=True)
    assert mapping["api_key"] == "********"
    assert mapping["url"] == "https://env.supabase.co"
