"""Bearer tokens for the remote notes API.

The ``sub`` claim is the owner id. Every notes route resolves its owner
through ``current_owner``; nothing in a request body can name another owner.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from notesync import config

bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(owner_id: str, expires_in: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_in if expires_in is not None else config.token_lifetime())
    claims = {"sub": owner_id, "iat": int(now.timestamp()), "exp": int(exp.timestamp())}
    return jwt.encode(claims, config.jwt_secret(), algorithm=config.jwt_algorithm())


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, config.jwt_secret(), algorithms=[config.jwt_algorithm()])


def current_owner(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> str:
    """Owner id of the request, from ``Authorization: Bearer <jwt>``."""
    if creds is None or creds.scheme.lower() != "bearer":
        raise _unauthorized("Missing credentials")
    try:
        claims = decode_token(creds.credentials)
    except JWTError:
        raise _unauthorized("Invalid or expired token")
    owner_id = claims.get("sub")
    if not owner_id:
        raise _unauthorized("Token has no owner")
    return str(owner_id)
