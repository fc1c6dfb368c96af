"""Identity providers seen by the sync engine.

Signing in and out happens elsewhere (OAuth flow, token refresh); the engine
only asks whether an identity is present and, for remote calls, which bearer
token to send.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from jose import JWTError, jwt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    access_token: Optional[str] = None


class IdentityProvider(Protocol):
    def current_identity(self) -> Optional[Identity]: ...


class StaticIdentityProvider:
    def __init__(self, identity: Optional[Identity] = None):
        self.identity = identity

    def current_identity(self) -> Optional[Identity]:
        return self.identity


class SessionIdentityProvider:
    """Holds the access token of the signed-in user.

    The token is not verified here (the remote store does that); its ``sub``
    claim names the user and its ``exp`` claim ends the session.
    """

    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._claims: dict = {}

    def sign_in(self, access_token: str) -> Identity:
        try:
            claims = jwt.get_unverified_claims(access_token)
        except JWTError as e:
            raise ValueError("Malformed access token") from e
        if not claims.get("sub"):
            raise ValueError("Access token has no subject")
        self._token = access_token
        self._claims = claims
        logger.info("Signed in as %s", claims["sub"])
        return Identity(user_id=str(claims["sub"]), access_token=access_token)

    def sign_out(self) -> None:
        self._token = None
        self._claims = {}

    def current_identity(self) -> Optional[Identity]:
        if self._token is None:
            return None
        exp = self._claims.get("exp")
        if exp is not None and datetime.now(timezone.utc).timestamp() >= float(exp):
            logger.info("Access token expired, treating session as signed out")
            return None
        return Identity(user_id=str(self._claims["sub"]), access_token=self._token)
