from __future__ import annotations

import json
from http.client import HTTPException
from time import perf_counter
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from visadesk.app.db_debug import db_debug
from visadesk.app.settings_store import DEFAULT_TIMEOUT_SECONDS


class SupabaseRequestError(RuntimeError):
    """Raised when a Supabase REST call fails or returns an unreadable body."""

    def __init__(self, message: str, *, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = max(0, int(status_code))


class SupabaseRestClient:
    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        schema: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._url = str(url or "").strip().rstrip("/")
        self._api_key = str(api_key or "").strip()
        self._schema = str(schema or "").strip()
        self._timeout_seconds = max(1.0, float(timeout_seconds))
        self._access_token = ""

    @property
    def configured(self) -> bool:
        return bool(self._url and self._api_key)

    @property
    def url(self) -> str:
        return self._url

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def access_token(self) -> str:
        return self._access_token

    def set_access_token(self, token: str) -> None:
        self._access_token = str(token or "").strip()

    def request_json(
        self,
        *,
        method: str,
        path: str,
        query: str = "",
        payload: Any | None = None,
        prefer: str = "",
        bearer: str = "",
        expect_json: bool = True,
    ) -> Any:
        if not self.configured:
            raise SupabaseRequestError("Supabase URL or API key is missing.")
        verb = method.upper()
        request_url = f"{self._url}{path}{query}"
        request_data: bytes | None = None
        if payload is not None:
            request_data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        db_debug(
            "supabase.request",
            method=verb,
            path=path,
            query_present=bool(query),
            payload_bytes=len(request_data) if request_data is not None else 0,
        )
        token = bearer or self._access_token or self._api_key
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token}",
        }
        if self._schema and path.startswith("/rest/"):
            headers["Accept-Profile"] = self._schema
            headers["Content-Profile"] = self._schema
        if payload is not None:
            headers["Content-Type"] = "application/json"
        if prefer:
            headers["Prefer"] = prefer

        request = Request(request_url, data=request_data, headers=headers, method=verb)
        started_at = perf_counter()
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                status_code = int(response.getcode() or 0)
                body = response.read()
        except HTTPError as exc:
            detail_body = ""
            try:
                detail_body = exc.read().decode("utf-8", errors="replace").strip()
            except (OSError, ValueError):
                detail_body = ""
            detail = f"{exc.code} {exc.reason}"
            if detail_body:
                detail = f"{detail}: {detail_body}"
            db_debug(
                "supabase.request.error",
                method=verb,
                path=path,
                code=int(exc.code),
                reason=str(exc.reason),
            )
            raise SupabaseRequestError(
                f"Supabase request failed for {path}: {detail}",
                status_code=int(exc.code),
            ) from exc
        except (URLError, HTTPException, OSError) as exc:
            db_debug("supabase.request.error", method=verb, path=path, error=str(exc))
            raise SupabaseRequestError(f"Supabase request failed for {path}: {exc}") from exc

        db_debug(
            "supabase.response",
            method=verb,
            path=path,
            status=status_code,
            body_bytes=len(body),
            duration_ms=round((perf_counter() - started_at) * 1000.0, 2),
        )
        if not expect_json or not body:
            return None
        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as exc:
            db_debug(
                "supabase.response.parse_error",
                method=verb,
                path=path,
                body_bytes=len(body),
                error=str(exc),
            )
            raise SupabaseRequestError(
                f"Supabase returned non-JSON payload for {path} ({len(body)} bytes).",
                status_code=status_code,
            ) from exc
