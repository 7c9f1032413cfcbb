from __future__ import annotations

import io
from urllib.error import HTTPError

from visadesk.app.identity import (
    IDENTITY_METHOD_ANONYMOUS,
    IDENTITY_METHOD_CUSTOM_TOKEN,
    IDENTITY_METHOD_LOCAL,
    LocalIdentityProvider,
    SupabaseIdentityProvider,
)
from visadesk.app.supabase_rest import SupabaseRestClient


def _rest() -> SupabaseRestClient:
    return SupabaseRestClient(url="https://demo.supabase.co", api_key="anon-key")


def test_local_identity_is_stable_per_session():
    provider = LocalIdentityProvider()
    first = provider.ensure_identity()
    assert first.user_id.startswith("local-")
    assert first.method == IDENTITY_METHOD_LOCAL
    assert provider.ensure_identity() is first


def test_anonymous_sign_in(supabase_server):
    supabase_server.reply({"access_token": "jwt-1", "user": {"id": "anon-42"}})
    provider = SupabaseIdentityProvider(_rest())

    session = provider.ensure_identity()

    assert session.user_id == "anon-42"
    assert session.access_token == "jwt-1"
    assert session.method == IDENTITY_METHOD_ANONYMOUS
    assert session.signed_in
    request = supabase_server.requests[0]
    assert request.get_method() == "POST"
    assert request.full_url == "https://demo.supabase.co/auth/v1/signup"
    assert request.get_header("Authorization") == "Bearer anon-key"


def test_custom_token_sign_in(supabase_server):
    supabase_server.reply({"id": "staff-7"})
    provider = SupabaseIdentityProvider(_rest(), auth_token="custom-jwt")

    session = provider.ensure_identity()

    assert session.user_id == "staff-7"
    assert session.access_token == "custom-jwt"
    assert session.method == IDENTITY_METHOD_CUSTOM_TOKEN
    request = supabase_server.requests[0]
    assert request.get_method() == "GET"
    assert request.full_url.endswith("/auth/v1/user")
    assert request.get_header("Authorization") == "Bearer custom-jwt"


def test_sign_in_happens_once(supabase_server):
    supabase_server.reply({"access_token": "jwt-1", "user": {"id": "anon-42"}})
    provider = SupabaseIdentityProvider(_rest())
    provider.ensure_identity()
    provider.ensure_identity()
    assert len(supabase_server.requests) == 1


def test_sign_in_failure_falls_back_to_local_id(supabase_server, caplog):
    supabase_server.raise_error(
        HTTPError("https://demo.supabase.co/auth/v1/signup", 422, "Unprocessable", {}, io.BytesIO(b""))
    )
    provider = SupabaseIdentityProvider(_rest())

    with caplog.at_level("ERROR", logger="visadesk.identity"):
        session = provider.ensure_identity()

    assert session.user_id.startswith("local-")
    assert session.signed_in is False
    assert "422" in session.error
    assert "Sign-in failed" in caplog.text
