"""Access/refresh token storage and JWT inspection for staff sessions."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional


SESSION_TOKENS_KEY = "_trek_api_tokens"


@dataclass(frozen=True)
class StaffUser:
    """The signed-in staff member as described by the access token."""

    name: str
    email: str
    role: str


def decode_token_payload(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the claims of a JWT without verifying its signature.

    The signature is checked by the backend on every request; the portal only
    needs the expiry and the embedded user details.
    """

    if not token:
        return None

    parts = str(token).split(".")
    if len(parts) != 3:
        return None

    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(segment.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def token_expiration(token: Optional[str]) -> Optional[datetime]:
    payload = decode_token_payload(token)
    if not payload:
        return None

    exp = payload.get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(float(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def is_token_expired(token: Optional[str], now: Optional[datetime] = None) -> bool:
    """Return ``True`` when ``token`` is missing, malformed or past its ``exp``."""

    expires_at = token_expiration(token)
    if expires_at is None:
        return True

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current >= expires_at


def current_user(token: Optional[str]) -> Optional[StaffUser]:
    payload = decode_token_payload(token)
    if payload is None:
        return None

    user = payload.get("user")
    if not isinstance(user, dict):
        user = {}

    return StaffUser(
        name=str(user.get("username") or "User"),
        email=str(user.get("email") or ""),
        role="Admin" if user.get("is_staff") else "User",
    )


@dataclass
class AuthTokens:
    """Mutable token holder shared by every API call in a session."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user_id: Optional[int] = None

    def store(self, access_token: str, refresh_token: str, user_id: Optional[int]) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.user_id = user_id

    def update_access(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user_id = None

    def access_expired(self, now: Optional[datetime] = None) -> bool:
        return is_token_expired(self.access_token, now)

    def valid_access_token(self, now: Optional[datetime] = None) -> Optional[str]:
        """Return the access token, discarding it first if it has expired."""

        if self.access_expired(now):
            self.access_token = None
            return None
        return self.access_token

    def is_authenticated(self, now: Optional[datetime] = None) -> bool:
        return self.valid_access_token(now) is not None

    def user(self, now: Optional[datetime] = None) -> Optional[StaffUser]:
        return current_user(self.valid_access_token(now))


def tokens_from_session(state: MutableMapping[str, Any]) -> AuthTokens:
    """Return the :class:`AuthTokens` kept in ``state``, creating it on first use."""

    tokens = state.get(SESSION_TOKENS_KEY)
    if not isinstance(tokens, AuthTokens):
        tokens = AuthTokens()
        state[SESSION_TOKENS_KEY] = tokens
    return tokens


__all__ = [
    "AuthTokens",
    "SESSION_TOKENS_KEY",
    "StaffUser",
    "current_user",
    "decode_token_payload",
    "is_token_expired",
    "token_expiration",
    "tokens_from_session",
]
