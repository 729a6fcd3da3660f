"""Authentication layer.

Accounts log in with email/password and receive an opaque bearer token.
Tokens are held in-memory and expire after ``token_ttl_seconds``; passwords
are stored as salted PBKDF2-SHA256 hashes.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.deps import get_services
from descgen.accounts.models import Account
from descgen.errors import AuthenticationError, AuthorizationError
from descgen.plans import Feature
from descgen.plans import require_feature as _require_feature
from descgen.services import Services

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------
_PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, *, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), _PBKDF2_ITERATIONS
    )
    return f"pbkdf2_sha256${_PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$", 3)
    except ValueError:
        return False
    if scheme != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations)
    )
    return hmac.compare_digest(digest.hex(), expected)


# ---------------------------------------------------------------------------
# Token store  (token -> {account_id, created_at})
# ---------------------------------------------------------------------------

class SessionStore:
    def __init__(self, ttl_seconds: int = 24 * 60 * 60, clock: Callable[[], float] = time.time):
        self._ttl = ttl_seconds
        self._clock = clock
        self._tokens: dict[str, dict] = {}

    def issue(self, account_id: str) -> dict:
        token = secrets.token_hex(32)
        session = {"token": token, "account_id": account_id, "created_at": self._clock()}
        self._tokens[token] = session
        return session

    def _prune_expired(self) -> None:
        now = self._clock()
        expired = [t for t, s in self._tokens.items() if now - s["created_at"] > self._ttl]
        for t in expired:
            del self._tokens[t]

    def validate(self, token: str) -> Optional[dict]:
        """Return session dict if valid, else None."""
        self._prune_expired()
        return self._tokens.get(token)

    def revoke(self, token: str) -> bool:
        """Revoke (logout) a token. Returns True if it existed."""
        return self._tokens.pop(token, None) is not None


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------
# Paths that do NOT require authentication
PUBLIC_PATHS = {
    "/health",
    "/api/health",
    "/api/",
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
    "/api/auth/login",
    "/api/auth/register",
    "/api/subscriptions/plans",
}
# Signed by the caller instead of a bearer token
PUBLIC_PREFIXES = ("/api/webhooks/",)

bearer_scheme = HTTPBearer(auto_error=False)


def is_public_path(path: str) -> bool:
    path = path.rstrip("/") or "/"
    return (
        path in PUBLIC_PATHS
        or f"{path}/" in PUBLIC_PATHS
        or path.startswith(PUBLIC_PREFIXES)
        or path.startswith("/api/docs")
        or path.startswith("/api/redoc")
        or path.startswith("/api/openapi")
    )


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


async def require_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    sessions: SessionStore = Depends(get_sessions),
) -> dict:
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    session = sessions.validate(credentials.credentials)
    if not session:
        raise AuthenticationError("Invalid or expired token")
    return session


async def require_auth(
    session: dict = Depends(require_session),
    services: Services = Depends(get_services),
) -> Account:
    """Validate the bearer token and load the owning account."""
    account = services.accounts.get(session["account_id"])
    if account is None:
        raise AuthenticationError("Account no longer exists")
    return account


async def require_active_subscription(account: Account = Depends(require_auth)) -> Account:
    if not account.is_entitled:
        raise AuthorizationError(
            "Active subscription required",
            details={"subscription_status": account.subscription_status.value},
        )
    return account


def require_feature(feature: Feature):
    """Dependency factory: active subscription whose plan includes *feature*."""

    async def _dependency(account: Account = Depends(require_active_subscription)) -> Account:
        _require_feature(account.plan, feature)
        return account

    return _dependency
