"""
Session-token verification.

The identity collaborator issues an HS256 JWT (cookie SESSION_COOKIE or a
Bearer header). We only read it: the user id and, when the user linked a
Google account, the Drive credentials used for external attachments.
"""

import logging
from dataclasses import dataclass, field

import jwt
from fastapi import Request

from assistant_gateway.core.config import SESSION_COOKIE, SESSION_SECRET
from assistant_gateway.core.credentials import CredentialCache
from assistant_gateway.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass
class SessionUser:
    user_id: str
    credentials: CredentialCache = field(default_factory=CredentialCache)


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def decode_session_token(token: str, secret: str | None = None) -> SessionUser:
    """Verify the token and build a SessionUser. Raises UnauthorizedError."""
    secret = secret or SESSION_SECRET
    if not secret:
        raise UnauthorizedError("Session secret is not configured")
    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        logger.info("[auth:decode_session_token] invalid token: %s", e)
        raise UnauthorizedError("Invalid token") from e
    user_id = claims.get("userId") or claims.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    expires_ms = claims.get("accessTokenExpires")
    credentials = CredentialCache(
        access_token=claims.get("accessToken"),
        expires_at=float(expires_ms) / 1000 if expires_ms else None,
        refresh_token=claims.get("refreshToken"),
    )
    return SessionUser(user_id=str(user_id), credentials=credentials)


def require_session(request: Request) -> SessionUser:
    """FastAPI dependency: 401 unless a valid session token is present."""
    token = _extract_token(request)
    if not token:
        raise UnauthorizedError("Unauthorized")
    return decode_session_token(token)


def optional_session(request: Request) -> SessionUser | None:
    """FastAPI dependency: the session when present and valid, else None."""
    token = _extract_token(request)
    if not token:
        return None
    try:
        return decode_session_token(token)
    except UnauthorizedError:
        return None
