"""OAuth token endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from ledgerauth.api.deps import client_credentials, read_request_body
from ledgerauth.core.errors import InvalidRequestError, UnsupportedGrantTypeError
from ledgerauth.core.settings import OAuthSettings
from ledgerauth.db.engine import commit_or_fail, get_session
from ledgerauth.db.repo_oauth import get_active_client
from ledgerauth.oauth.clients import authenticate_client
from ledgerauth.oauth.grants import exchange_authorization_code, refresh_access_token
from ledgerauth.oauth.types import TokenRequest, TokenResponse

router = APIRouter()

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"

# RFC 6749 section 5.1
NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def _load_settings() -> OAuthSettings:
    return OAuthSettings()


def parse_token_request(raw: dict) -> TokenRequest:
    """Validate a token request body of either grant."""
    try:
        return TokenRequest.model_validate(raw)
    except ValidationError as exc:
        raise InvalidRequestError("Missing required parameters") from exc


@router.post("/oauth/token", response_model=TokenResponse)
async def token_endpoint(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[OAuthSettings, Depends(_load_settings)],
) -> JSONResponse:
    """POST /oauth/token -- exchange an auth code or refresh token."""
    form = parse_token_request(await read_request_body(request))
    creds = client_credentials(request, form.client_id, form.client_secret)
    client = await get_active_client(db, creds.client_id)
    authenticate_client(client, creds.client_secret)

    if form.grant_type == GRANT_AUTHORIZATION_CODE:
        if not form.code or not form.redirect_uri:
            raise InvalidRequestError("Missing required parameters")
        result = await exchange_authorization_code(
            db,
            client,
            settings,
            code=form.code,
            redirect_uri=form.redirect_uri,
            code_verifier=form.code_verifier,
        )
    elif form.grant_type == GRANT_REFRESH_TOKEN:
        if not form.refresh_token:
            raise InvalidRequestError("Missing refresh_token")
        result = await refresh_access_token(
            db,
            client,
            settings,
            refresh_token=form.refresh_token,
            scope=form.scope,
        )
    else:
        raise UnsupportedGrantTypeError("Grant type not supported")

    await commit_or_fail(db)
    return JSONResponse(result.model_dump(), headers=NO_STORE_HEADERS)
