"""JWT token creation and validation for kidtrack authentication."""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import jwt

from kidtrack.auth.roles import Role
from kidtrack.models.profile import Profile

logger = logging.getLogger(__name__)

DEFAULT_SECRET = "test-secret-key-do-not-use"


class TokenExpiredError(Exception):
    """Raised when a JWT token has expired."""


class TokenInvalidError(Exception):
    """Raised when a JWT token is invalid."""


def jwt_secret() -> str:
    return os.environ.get("KIDTRACK_JWT_SECRET", DEFAULT_SECRET)


def create_token(
    user_id: str, role: str, *, email: str | None = None, exp_minutes: int = 60
) -> str:
    """Create a JWT token carrying the user's id and account role."""
    now = int(time.time())
    payload: dict[str, Any] = {
        "sub": user_id,
        "role": str(role),
        "iat": now,
        "exp": now + (exp_minutes * 60),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, jwt_secret(), algorithm="HS256")


def verify_token(token: str, secret: str) -> dict[str, Any]:
    """Verify and decode a JWT token."""
    try:
        payload = jwt.decode(token, secret, algorithms=["HS256"])
        return payload
    except jwt.ExpiredSignatureError as e:
        logger.warning("Token expired: %s", e)
        raise TokenExpiredError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token: %s", e)
        raise TokenInvalidError("Token is invalid") from e


def user_from_token(token: str, secret: str) -> Profile:
    """Resolve the authenticated user carried by a token."""
    payload = verify_token(token, secret)
    user_id = payload.get("sub")
    if not user_id:
        raise TokenInvalidError("Token missing user ID")
    try:
        role = Role(payload.get("role"))
    except ValueError as e:
        raise TokenInvalidError(f"Token carries unknown role: {payload.get('role')!r}") from e
    email = payload.get("email") or f"{user_id}@token"
    return Profile(id=user_id, email=email, full_name=user_id, role=role)
