"""OAuth token revocation endpoint (RFC 7009)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.api.deps import client_credentials, read_request_body
from ledgerauth.core.errors import InvalidRequestError
from ledgerauth.db.engine import commit_or_fail, get_session
from ledgerauth.db.repo_oauth import get_active_client
from ledgerauth.oauth.clients import authenticate_client
from ledgerauth.oauth.token_service import revoke_token
from ledgerauth.oauth.types import RevokeRequest, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/oauth/revoke", response_model=SuccessResponse)
async def revoke(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> SuccessResponse:
    """POST /oauth/revoke -- revoke a token (idempotent per RFC 7009)."""
    try:
        form = RevokeRequest.model_validate(await read_request_body(request))
    except ValidationError as exc:
        raise InvalidRequestError("Invalid revocation request") from exc
    if not form.token:
        raise InvalidRequestError("Missing required parameters")

    creds = client_credentials(request, form.client_id, form.client_secret)
    client = await get_active_client(db, creds.client_id)
    authenticate_client(client, creds.client_secret)

    if await revoke_token(db, token=form.token, application_id=client.id):
        await commit_or_fail(db)
        logger.info("Revoked token for application %s", client.id)
    return SuccessResponse()
