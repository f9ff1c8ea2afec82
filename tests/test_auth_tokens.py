"""Tests for JWT inspection and session token storage."""

from __future__ import annotations

import base64
import json
import pathlib
import sys
from datetime import datetime, timedelta, timezone

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from auth_tokens import (
    SESSION_TOKENS_KEY,
    AuthTokens,
    StaffUser,
    current_user,
    decode_token_payload,
    is_token_expired,
    token_expiration,
    tokens_from_session,
)


def make_token(payload) -> str:
    def _segment(data) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment(payload)}.signature"


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_decode_token_payload_reads_claims_without_padding() -> None:
    token = make_token({"exp": 1714564800, "user": {"username": "sita"}})

    payload = decode_token_payload(token)

    assert payload == {"exp": 1714564800, "user": {"username": "sita"}}


def test_decode_token_payload_rejects_malformed_tokens() -> None:
    assert decode_token_payload(None) is None
    assert decode_token_payload("") is None
    assert decode_token_payload("only.two") is None
    assert decode_token_payload("a.%%%.c") is None
    assert decode_token_payload(make_token(["not", "a", "dict"])) is None


def test_token_expiration_is_utc_datetime() -> None:
    exp = int((NOW + timedelta(minutes=5)).timestamp())

    assert token_expiration(make_token({"exp": exp})) == NOW + timedelta(minutes=5)
    assert token_expiration(make_token({"sub": "1"})) is None


def test_is_token_expired_compares_against_now() -> None:
    future = make_token({"exp": int((NOW + timedelta(minutes=1)).timestamp())})
    past = make_token({"exp": int((NOW - timedelta(seconds=1)).timestamp())})

    assert is_token_expired(future, NOW) is False
    assert is_token_expired(past, NOW) is True
    assert is_token_expired(None, NOW) is True
    assert is_token_expired(future, NOW.replace(tzinfo=None)) is False


def test_current_user_maps_staff_flag_to_role() -> None:
    admin = make_token({"user": {"username": "sita", "email": "sita@example.com", "is_staff": True}})
    plain = make_token({"exp": 1})

    assert current_user(admin) == StaffUser(name="sita", email="sita@example.com", role="Admin")
    assert current_user(plain) == StaffUser(name="User", email="", role="User")
    assert current_user("garbage") is None


def test_valid_access_token_discards_expired_access() -> None:
    tokens = AuthTokens()
    tokens.store(make_token({"exp": int((NOW - timedelta(minutes=1)).timestamp())}), "refresh", 7)

    assert tokens.valid_access_token(NOW) is None
    assert tokens.access_token is None
    assert tokens.refresh_token == "refresh"
    assert tokens.is_authenticated(NOW) is False


def test_update_access_keeps_refresh_unless_rotated() -> None:
    tokens = AuthTokens(access_token="a", refresh_token="r", user_id=1)

    tokens.update_access("a2")
    assert (tokens.access_token, tokens.refresh_token) == ("a2", "r")

    tokens.update_access("a3", "r2")
    assert (tokens.access_token, tokens.refresh_token) == ("a3", "r2")

    tokens.clear()
    assert tokens == AuthTokens()


def test_user_reads_live_access_token() -> None:
    exp = int((NOW + timedelta(hours=1)).timestamp())
    tokens = AuthTokens(access_token=make_token({"exp": exp, "user": {"username": "ram"}}))

    user = tokens.user(NOW)

    assert user is not None and user.name == "ram"


def test_tokens_from_session_reuses_stored_instance() -> None:
    state = {}

    first = tokens_from_session(state)
    first.store("a", "r", 3)
    second = tokens_from_session(state)

    assert second is first
    assert state[SESSION_TOKENS_KEY] is first


def test_tokens_from_session_replaces_foreign_values() -> None:
    state = {SESSION_TOKENS_KEY: {"access_token": "a"}}

    tokens = tokens_from_session(state)

    assert isinstance(tokens, AuthTokens)
    assert tokens.access_token is None
