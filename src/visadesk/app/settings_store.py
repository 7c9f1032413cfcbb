from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping


_APP_SETTINGS_DIRNAME = "visadesk"
_DARK_MODE_KEY = "darkMode"
_DATA_STORAGE_FOLDER_KEY = "dataStorageFolder"
_DATA_STORAGE_BACKEND_KEY = "dataStorageBackend"
_SUPABASE_URL_KEY = "supabaseUrl"
_SUPABASE_API_KEY = "supabaseApiKey"
_SUPABASE_SCHEMA_KEY = "supabaseSchema"
_SUPABASE_SERVICES_TABLE_KEY = "supabaseServicesTable"
_APP_ID_KEY = "appId"
_SUPABASE_TIMEOUT_KEY = "supabaseTimeoutSeconds"
BACKEND_LOCAL_SQLITE = "local_sqlite"
BACKEND_SUPABASE = "supabase"
DEFAULT_DATA_STORAGE_BACKEND = BACKEND_LOCAL_SQLITE
DEFAULT_SUPABASE_SCHEMA = "public"
DEFAULT_SUPABASE_SERVICES_TABLE = "services"
DEFAULT_APP_ID = "visadesk"
DEFAULT_TIMEOUT_SECONDS = 8.0
SUPPORTED_DATA_STORAGE_BACKENDS: tuple[str, ...] = (
    BACKEND_LOCAL_SQLITE,
    BACKEND_SUPABASE,
)


def _app_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[3]


def _resolve_settings_path() -> Path:
    env = os.environ
    override = str(env.get("VISADESK_SETTINGS_PATH", "") or "").strip()
    if override:
        return Path(override).expanduser()
    if os.name == "nt":
        appdata = str(env.get("APPDATA", "") or "").strip()
        if appdata:
            return Path(appdata) / _APP_SETTINGS_DIRNAME / "settings.json"
        localappdata = str(env.get("LOCALAPPDATA", "") or "").strip()
        if localappdata:
            return Path(localappdata) / _APP_SETTINGS_DIRNAME / "settings.json"
    else:
        xdg_config_home = str(env.get("XDG_CONFIG_HOME", "") or "").strip()
        if xdg_config_home:
            return Path(xdg_config_home) / _APP_SETTINGS_DIRNAME / "settings.json"
        home = str(env.get("HOME", "") or "").strip()
        if home:
            return Path(home) / ".config" / _APP_SETTINGS_DIRNAME / "settings.json"
    return _app_root() / "config" / "settings.json"


@dataclass(frozen=True, slots=True)
class SupabaseSettings:
    """Connection details for the shared services collection.

    ``app_id`` is the tenant identifier that scopes every row the dashboard
    reads or writes. ``auth_token`` is only ever taken from the environment.
    """

    url: str = ""
    api_key: str = ""
    schema: str = DEFAULT_SUPABASE_SCHEMA
    services_table: str = DEFAULT_SUPABASE_SERVICES_TABLE
    app_id: str = DEFAULT_APP_ID
    auth_token: str = ""
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    def to_mapping(self, *, redact_api_key: bool = False) -> dict[str, str]:
        api_key = self.api_key
        if redact_api_key and api_key:
            api_key = "********"
        return {
            "url": self.url,
            "api_key": api_key,
            "schema": self.schema,
            "services_table": self.services_table,
            "app_id": self.app_id,
        }


def settings_path() -> Path:
    return _resolve_settings_path()


def load_settings() -> dict[str, Any]:
    path = settings_path()
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def save_settings(settings: dict[str, Any]) -> None:
    path = settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2), encoding="utf-8")


def default_data_storage_folder() -> Path:
    return (_app_root() / "data").resolve()


def normalize_data_storage_folder(
    value: str | Path | None,
    *,
    default: Path | None = None,
) -> Path:
    fallback = Path(default) if default is not None else default_data_storage_folder()
    candidate: Path
    if isinstance(value, Path):
        candidate = value
    elif isinstance(value, str):
        text = value.strip()
        candidate = Path(text) if text else fallback
    else:
        candidate = fallback

    candidate = candidate.expanduser()
    if not candidate.is_absolute():
        candidate = _app_root() / candidate
    try:
        return candidate.resolve()
    except OSError:
        return candidate


def load_data_storage_folder(default: Path | None = None) -> Path:
    value = load_settings().get(_DATA_STORAGE_FOLDER_KEY)
    if not isinstance(value, str) or not value.strip():
        return normalize_data_storage_folder(default)
    return normalize_data_storage_folder(value, default=default)


def normalize_data_storage_backend(
    value: str | None,
    *,
    default: str = DEFAULT_DATA_STORAGE_BACKEND,
) -> str:
    fallback = str(default or DEFAULT_DATA_STORAGE_BACKEND).strip().lower()
    if fallback not in SUPPORTED_DATA_STORAGE_BACKENDS:
        fallback = DEFAULT_DATA_STORAGE_BACKEND
    normalized = str(value or "").strip().lower()
    if normalized in SUPPORTED_DATA_STORAGE_BACKENDS:
        return normalized
    return fallback


def load_data_storage_backend(default: str = DEFAULT_DATA_STORAGE_BACKEND) -> str:
    value = load_settings().get(_DATA_STORAGE_BACKEND_KEY)
    if not isinstance(value, str) or not value.strip():
        value = os.environ.get("VISADESK_BACKEND", "")
    return normalize_data_storage_backend(value, default=default)


def normalize_supabase_settings(
    value: SupabaseSettings | Mapping[str, Any] | None,
) -> SupabaseSettings:
    if isinstance(value, SupabaseSettings):
        raw: Mapping[str, Any] = {
            "url": value.url,
            "api_key": value.api_key,
            "schema": value.schema,
            "services_table": value.services_table,
            "app_id": value.app_id,
            "auth_token": value.auth_token,
            "timeout_seconds": value.timeout_seconds,
        }
    elif isinstance(value, Mapping):
        raw = value
    else:
        raw = {}

    timeout_raw = raw.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    try:
        timeout_seconds = float(timeout_raw)
    except (TypeError, ValueError):
        timeout_seconds = DEFAULT_TIMEOUT_SECONDS

    return SupabaseSettings(
        url=str(raw.get("url", "") or "").strip().rstrip("/"),
        api_key=str(raw.get("api_key", "") or "").strip(),
        schema=str(raw.get("schema", "") or "").strip() or DEFAULT_SUPABASE_SCHEMA,
        services_table=(
            str(raw.get("services_table", "") or "").strip() or DEFAULT_SUPABASE_SERVICES_TABLE
        ),
        app_id=str(raw.get("app_id", "") or "").strip() or DEFAULT_APP_ID,
        auth_token=str(raw.get("auth_token", "") or "").strip(),
        timeout_seconds=max(1.0, timeout_seconds),
    )


def load_supabase_settings() -> SupabaseSettings:
    """Settings file values, with empty entries filled from the environment."""
    settings = load_settings()
    env = os.environ

    def _stored(key: str) -> str:
        return str(settings.get(key, "") or "").strip()

    return normalize_supabase_settings(
        {
            "url": _stored(_SUPABASE_URL_KEY)
            or _first_env(env, ("VISADESK_SUPABASE_URL", "SUPABASE_URL")),
            "api_key": _stored(_SUPABASE_API_KEY)
            or _first_env(
                env,
                (
                    "VISADESK_SUPABASE_API_KEY",
                    "SUPABASE_ANON_KEY",
                    "SUPABASE_PUBLISHABLE_KEY",
                ),
            ),
            "schema": _stored(_SUPABASE_SCHEMA_KEY) or _first_env(env, ("VISADESK_SUPABASE_SCHEMA",)),
            "services_table": _stored(_SUPABASE_SERVICES_TABLE_KEY)
            or _first_env(env, ("VISADESK_SUPABASE_TABLE",)),
            "app_id": _stored(_APP_ID_KEY) or _first_env(env, ("VISADESK_APP_ID",)),
            "auth_token": _first_env(env, ("VISADESK_AUTH_TOKEN",)),
            "timeout_seconds": settings.get(_SUPABASE_TIMEOUT_KEY, DEFAULT_TIMEOUT_SECONDS),
        }
    )


def load_dark_mode(default: bool = False) -> bool:
    value = load_settings().get(_DARK_MODE_KEY, default)
    if isinstance(value, bool):
        return value
    return bool(default)


def save_dark_mode(enabled: bool) -> None:
    settings = load_settings()
    settings[_DARK_MODE_KEY] = bool(enabled)
    save_settings(settings)


def _first_env(values: Mapping[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = str(values.get(key, "") or "").strip()
        if value:
            return value
    return ""
