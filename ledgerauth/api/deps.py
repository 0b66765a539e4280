"""FastAPI dependencies shared by the OAuth routers."""

import binascii
from base64 import b64decode
from typing import Annotated
from urllib.parse import unquote

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.core.errors import (
    InvalidClientError,
    InvalidRequestError,
    InvalidTokenError,
    LoginRequiredError,
)
from ledgerauth.core.settings import OAuthSettings
from ledgerauth.crypto.session import SessionUser, SessionVerifier
from ledgerauth.db.engine import commit_or_fail, get_session
from ledgerauth.db.models_oauth import OAuthTokenEntity
from ledgerauth.oauth.token_service import validate_access_token

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_bearer = HTTPBearer(auto_error=False)


class PresentedClient(BaseModel):
    """Client id and optional secret presented on a token/revoke call."""

    client_id: str | None = None
    client_secret: str | None = None


def _load_settings() -> OAuthSettings:
    return OAuthSettings()


async def read_request_body(request: Request) -> dict[str, str]:
    """Read a form-encoded or JSON body into a flat dict.

    Token and revocation requests may use either encoding.
    """
    content_type = request.headers.get("content-type", "")
    if FORM_CONTENT_TYPE in content_type:
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str)}
    try:
        body = await request.json()
    except ValueError as exc:
        raise InvalidRequestError("Request body must be JSON or form-encoded") from exc
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be an object")
    return body


def _parse_basic(header: str) -> PresentedClient:
    try:
        decoded = b64decode(header, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise InvalidClientError("Invalid client credentials") from exc
    client_id, sep, secret = decoded.partition(":")
    if not sep:
        raise InvalidClientError("Invalid client credentials")
    return PresentedClient(
        client_id=unquote(client_id), client_secret=unquote(secret) or None
    )


def client_credentials(
    request: Request, client_id: str | None, client_secret: str | None
) -> PresentedClient:
    """Resolve client credentials from HTTP Basic or the request body."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Basic "):
        return PresentedClient(client_id=client_id, client_secret=client_secret)

    basic = _parse_basic(auth[len("Basic ") :])
    if client_secret:
        raise InvalidRequestError("Multiple client authentication methods")
    if client_id and client_id != basic.client_id:
        raise InvalidRequestError("client_id does not match Authorization header")
    return basic


async def require_session_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    settings: Annotated[OAuthSettings, Depends(_load_settings)],
) -> SessionUser:
    """Authenticate the platform user making a consent or account call."""
    verifier = SessionVerifier(
        settings.session_jwt_secret, settings.session_jwt_audience or None
    )
    user = verifier.verify(credentials.credentials) if credentials else None
    if user is None:
        raise LoginRequiredError("User must be authenticated")
    return user


async def require_oauth_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> OAuthTokenEntity:
    """Authenticate a resource request made with an issued access token."""
    if credentials is None:
        raise InvalidTokenError("Missing access token")
    entity = await validate_access_token(db, credentials.credentials)
    if entity is None:
        raise InvalidTokenError("Invalid access token")
    await commit_or_fail(db)
    return entity
