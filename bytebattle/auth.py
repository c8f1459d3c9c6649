"""
Email/password authentication on top of the DB client.

Passwords are stored as salted PBKDF2 hashes; signing in opens a session
(an opaque bearer token) which the client remembers as the current one.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional

from bytebattle.db import DbClient
from bytebattle.types import AuthError, DuplicateRecord

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 120_000
MIN_PASSWORD_LENGTH = 6
SESSION_TTL_SECONDS = 3600


def hash_password(password: str, *, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS
    )
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if scheme != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations)
    )
    return hmac.compare_digest(digest.hex(), expected)


@dataclass
class AuthSession:
    access_token: str
    user: dict
    expires_at: float = field(
        default_factory=lambda: time.time() + SESSION_TTL_SECONDS
    )

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at

    def as_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "token_type": "bearer",
            "expires_at": self.expires_at,
            "user": self.user,
        }


class AuthClient:
    """
    Sign-up/sign-in against ``users`` and track open sessions by token.

    ``current_session`` is the most recent sign-in on this client. The client
    returned by ``get_auth_client()`` is shared by the whole process, so
    callers serving more than one user pass their ``access_token`` to
    ``get_current_user`` and ``sign_out`` instead of relying on it.
    """

    def __init__(self, db: DbClient):
        self.db = db
        self.sessions: dict[str, AuthSession] = {}
        self.current_session: Optional[AuthSession] = None

    def _open_session(self, user: dict) -> AuthSession:
        session = AuthSession(secrets.token_hex(32), user)
        self.sessions[session.access_token] = session
        self.current_session = session
        return session

    def sign_up(self, email: str, password: str, username: str) -> dict:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise AuthError("a valid email address is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if not username:
            raise AuthError("username is required")
        try:
            user = self.db.create_user(email, hash_password(password), username)
        except DuplicateRecord as exc:
            raise AuthError("user already registered") from exc
        session = self._open_session(user)
        logger.info("Registered user %s", user["id"])
        return {"user": user, "session": session.as_dict()}

    def sign_in(self, email: str, password: str) -> dict:
        record = self.db.get_user_by_email((email or "").strip().lower())
        if not record or not verify_password(password or "", record["password_hash"]):
            raise AuthError("invalid login credentials")
        user = self.db.get_user(record["id"])
        session = self._open_session(user)
        return {"user": user, "session": session.as_dict()}

    def sign_out(self, access_token: Optional[str] = None) -> None:
        session = self._lookup(access_token)
        if session is None:
            return
        self.sessions.pop(session.access_token, None)
        if session is self.current_session:
            self.current_session = None

    def get_current_user(self, access_token: Optional[str] = None) -> Optional[dict]:
        session = self._lookup(access_token)
        if session is None:
            return None
        if session.expired:
            self.sign_out(session.access_token)
            return None
        return session.user

    def _lookup(self, access_token: Optional[str]) -> Optional[AuthSession]:
        if access_token is None:
            return self.current_session
        return self.sessions.get(access_token)
