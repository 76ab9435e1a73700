"""
Bearer-token authentication for the payment endpoints.

Tokens are HS256 JWTs whose "sub" claim is the user id. They are issued
by the storefront's login flow; create_access_token() exists for tools
and tests that need a token for a known user.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, g, request
from jose import JWTError, jwt

from .exceptions import AuthenticationError


def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    """Create a signed token for user_id using the app's JWT settings."""
    config = current_app.config
    minutes = expires_minutes if expires_minutes is not None else config["JWT_EXPIRES_MINUTES"]
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, config["JWT_SECRET_KEY"], algorithm=config["JWT_ALGORITHM"])


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        AuthenticationError: If the token is invalid, expired or has no subject
    """
    config = current_app.config
    try:
        claims = jwt.decode(
            token, config["JWT_SECRET_KEY"], algorithms=[config["JWT_ALGORITHM"]]
        )
    except JWTError as e:
        raise AuthenticationError(f"Invalid or expired token: {e}") from e

    if not claims.get("sub"):
        raise AuthenticationError("Token has no subject")
    return claims


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Missing bearer token")
    return token.strip()


def login_required(view):
    """
    Require a valid bearer token; sets g.user_id for the view.

    Raises:
        AuthenticationError: Rendered as HTTP 401 by the app error handler
    """

    @wraps(view)
    def wrapper(*args, **kwargs):
        claims = decode_access_token(_bearer_token())
        try:
            g.user_id = int(claims["sub"])
        except ValueError as e:
            raise AuthenticationError("Token subject is not a user id") from e
        return view(*args, **kwargs)

    return wrapper
