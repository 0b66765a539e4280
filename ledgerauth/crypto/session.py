"""Verification of platform session tokens (HS256 JWTs).

The consent decision is made by a signed-in platform user, authenticated by
the session token the dashboard already holds. That token is unrelated to the
OAuth access tokens this server issues.
"""

import jwt
from pydantic import BaseModel, ConfigDict

SESSION_ALGORITHM = "HS256"


class SessionUser(BaseModel):
    """The authenticated platform user behind a session token."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None


class SessionVerifier:
    """Verifies HS256 session JWTs signed with the platform secret."""

    def __init__(self, secret: str, audience: str | None = None) -> None:
        self._secret = secret
        self._audience = audience

    def verify(self, token: str) -> SessionUser | None:
        """Return the session user, or None if the token does not verify."""
        if not self._secret or not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[SESSION_ALGORITHM],
                audience=self._audience,
                options={
                    "require": ["sub", "exp"],
                    "verify_aud": self._audience is not None,
                },
            )
        except jwt.PyJWTError:
            return None
        return SessionUser(id=claims["sub"], email=claims.get("email"))
