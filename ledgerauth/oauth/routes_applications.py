"""Authorized-application management for signed-in users, and token info."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.api.deps import require_oauth_token, require_session_user
from ledgerauth.core.errors import ForbiddenError, InvalidTokenError
from ledgerauth.core.timeutil import utcnow
from ledgerauth.crypto.session import SessionUser
from ledgerauth.db.engine import commit_or_fail, get_session
from ledgerauth.db.models_oauth import OAuthApplicationEntity, OAuthTokenEntity
from ledgerauth.db.repo_team import get_team_for_member
from ledgerauth.oauth.token_service import (
    list_authorized_applications,
    revoke_user_application_tokens,
)
from ledgerauth.oauth.types import (
    AuthorizedApplicationOut,
    AuthorizedApplicationsResponse,
    SuccessResponse,
    TokenInfoResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _require_membership(db: AsyncSession, user: SessionUser, team_id: str) -> None:
    if await get_team_for_member(db, user.id, team_id) is None:
        raise ForbiddenError("User is not a member of the selected team")


@router.get("/oauth/applications", response_model=AuthorizedApplicationsResponse)
async def list_applications(
    db: Annotated[AsyncSession, Depends(get_session)],
    user: Annotated[SessionUser, Depends(require_session_user)],
    team_id: Annotated[str, Query()],
) -> AuthorizedApplicationsResponse:
    """GET /oauth/applications -- applications the user has authorized."""
    await _require_membership(db, user, team_id)
    apps = await list_authorized_applications(db, user_id=user.id, team_id=team_id)
    return AuthorizedApplicationsResponse(
        data=[AuthorizedApplicationOut(**a.model_dump()) for a in apps]
    )


@router.delete("/oauth/applications/{application_id}", response_model=SuccessResponse)
async def revoke_application(
    application_id: str,
    db: Annotated[AsyncSession, Depends(get_session)],
    user: Annotated[SessionUser, Depends(require_session_user)],
    team_id: Annotated[str, Query()],
) -> SuccessResponse:
    """DELETE /oauth/applications/{id} -- revoke the user's grant to an app."""
    await _require_membership(db, user, team_id)
    revoked = await revoke_user_application_tokens(
        db, user_id=user.id, team_id=team_id, application_id=application_id
    )
    await commit_or_fail(db)
    logger.info(
        "User %s revoked %d tokens of application %s",
        user.id,
        revoked,
        application_id,
    )
    return SuccessResponse()


@router.get("/oauth/tokeninfo", response_model=TokenInfoResponse)
async def token_info(
    db: Annotated[AsyncSession, Depends(get_session)],
    token: Annotated[OAuthTokenEntity, Depends(require_oauth_token)],
) -> TokenInfoResponse:
    """GET /oauth/tokeninfo -- describe the presented access token."""
    app = await db.get(OAuthApplicationEntity, token.application_id)
    if app is None:
        raise InvalidTokenError("Invalid access token")

    expiry = token.expires_at
    now = utcnow() if expiry.tzinfo else utcnow().replace(tzinfo=None)
    return TokenInfoResponse(
        client_id=app.client_id,
        user_id=token.user_id,
        team_id=token.team_id,
        scopes=list(token.scopes or []),
        expires_in=max(0, int((expiry - now).total_seconds())),
    )
