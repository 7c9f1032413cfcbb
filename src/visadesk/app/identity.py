from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

from visadesk.app.db_debug import db_debug
from visadesk.app.supabase_rest import SupabaseRequestError, SupabaseRestClient


IDENTITY_METHOD_CUSTOM_TOKEN = "custom_token"
IDENTITY_METHOD_ANONYMOUS = "anonymous"
IDENTITY_METHOD_LOCAL = "local"


@dataclass(frozen=True, slots=True)
class IdentitySession:
    user_id: str
    access_token: str = ""
    method: str = IDENTITY_METHOD_LOCAL
    signed_in: bool = False
    error: str = ""


class IdentityProvider(Protocol):
    def ensure_identity(self) -> IdentitySession:
        raise NotImplementedError


def new_local_user_id() -> str:
    return f"local-{uuid4().hex[:12]}"


class LocalIdentityProvider:
    """Identity for the single-machine backend: one random id per session."""

    def __init__(self) -> None:
        self._session: IdentitySession | None = None

    def ensure_identity(self) -> IdentitySession:
        if self._session is None:
            self._session = IdentitySession(user_id=new_local_user_id())
            db_debug("identity.ready", method=IDENTITY_METHOD_LOCAL)
        return self._session


class SupabaseIdentityProvider:
    """Signs in against Supabase Auth once per session.

    A configured custom token is checked with ``/auth/v1/user``; otherwise an
    anonymous user is created through ``/auth/v1/signup``. Sign-in failures
    are logged and the session falls back to a random local id so the
    dashboard never waits on authentication.
    """

    def __init__(
        self,
        rest_client: SupabaseRestClient,
        *,
        auth_token: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        self._rest = rest_client
        self._auth_token = str(auth_token or "").strip()
        self._logger = logger or logging.getLogger("visadesk.identity")
        self._session: IdentitySession | None = None

    def ensure_identity(self) -> IdentitySession:
        if self._session is not None:
            return self._session
        try:
            session = self._sign_in()
        except SupabaseRequestError as exc:
            self._logger.error("Sign-in failed; continuing with a local identity: %s", exc)
            session = IdentitySession(user_id=new_local_user_id(), error=str(exc))
        self._session = session
        db_debug(
            "identity.ready",
            method=session.method,
            signed_in=session.signed_in,
            failed=bool(session.error),
        )
        return session

    def _sign_in(self) -> IdentitySession:
        if self._auth_token:
            body = self._rest.request_json(
                method="GET",
                path="/auth/v1/user",
                bearer=self._auth_token,
            )
            user_id = _extract_user_id(body)
            access_token = self._auth_token
            method = IDENTITY_METHOD_CUSTOM_TOKEN
        else:
            body = self._rest.request_json(
                method="POST",
                path="/auth/v1/signup",
                payload={},
                bearer=self._rest.api_key,
            )
            user_id = _extract_user_id(body)
            access_token = _as_text(body.get("access_token")) if isinstance(body, dict) else ""
            method = IDENTITY_METHOD_ANONYMOUS

        if not user_id:
            self._logger.warning("Sign-in returned no user id; using a generated one.")
            user_id = new_local_user_id()
        return IdentitySession(
            user_id=user_id,
            access_token=access_token,
            method=method,
            signed_in=True,
        )


def _extract_user_id(body: Any) -> str:
    if not isinstance(body, dict):
        return ""
    user = body.get("user")
    if isinstance(user, dict):
        return _as_text(user.get("id"))
    return _as_text(body.get("id"))


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
