"""OAuth authorization endpoint: consent-screen data and the consent decision."""

import logging
from typing import Annotated
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.api.deps import require_session_user
from ledgerauth.core.errors import (
    ForbiddenError,
    InvalidRequestError,
    UnsupportedResponseTypeError,
)
from ledgerauth.core.settings import OAuthSettings
from ledgerauth.crypto.session import SessionUser
from ledgerauth.db.engine import commit_or_fail, get_session
from ledgerauth.db.repo_oauth import get_active_client
from ledgerauth.db.repo_team import get_team_for_member, get_user_by_id
from ledgerauth.notify.email import AppInstalled, AppInstalledNotifier, get_notifier
from ledgerauth.oauth.auth_code import AuthCodeParams, create_authorization_code
from ledgerauth.oauth.clients import (
    ConfidentialClient,
    PublicClient,
    parse_scope,
    require_pkce,
    validate_redirect_uri,
    validate_scopes,
)
from ledgerauth.oauth.pkce import SUPPORTED_METHODS
from ledgerauth.oauth.types import (
    ApplicationInfo,
    AuthorizationQuery,
    ConsentDecision,
    RedirectResponseBody,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RESPONSE_TYPE_CODE = "code"


def _load_settings() -> OAuthSettings:
    return OAuthSettings()


def build_redirect_url(redirect_uri: str, params: dict[str, str]) -> str:
    """Append params to a redirect URI, keeping its existing query."""
    parts = urlsplit(redirect_uri)
    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in params
    ]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _validate_request_shape(q: AuthorizationQuery) -> None:
    if q.response_type is not None and q.response_type != RESPONSE_TYPE_CODE:
        raise UnsupportedResponseTypeError("Unsupported response_type")
    if (
        q.code_challenge_method is not None
        and q.code_challenge_method not in SUPPORTED_METHODS
    ):
        raise InvalidRequestError("Unsupported code_challenge_method")


async def _validate_client_request(
    db: AsyncSession,
    client_id: str,
    code_challenge: str | None,
    redirect_uri: str,
    scopes: list[str],
) -> tuple[PublicClient | ConfidentialClient, list[str]]:
    """Run the checks shared by the GET and POST handlers, in order."""
    client = await get_active_client(db, client_id)
    require_pkce(client, code_challenge)
    validate_redirect_uri(client, redirect_uri)
    return client, validate_scopes(client, scopes)


@router.get("/oauth/authorize", response_model=ApplicationInfo)
async def authorize(
    db: Annotated[AsyncSession, Depends(get_session)],
    q: Annotated[AuthorizationQuery, Query()],
) -> ApplicationInfo:
    """GET /oauth/authorize -- validate a request and describe the client."""
    _validate_request_shape(q)
    client, scopes = await _validate_client_request(
        db, q.client_id, q.code_challenge, q.redirect_uri, parse_scope(q.scope)
    )
    return ApplicationInfo(
        id=client.id,
        name=client.name,
        description=client.description,
        logo_url=client.logo_url,
        website=client.website,
        client_id=client.client_id,
        scopes=scopes,
        redirect_uri=q.redirect_uri,
        state=q.state,
    )


async def _schedule_notification(
    db: AsyncSession,
    background: BackgroundTasks,
    notifier: AppInstalledNotifier,
    user: SessionUser,
    team_name: str | None,
    app_name: str,
) -> None:
    email = user.email
    if not email:
        entity = await get_user_by_id(db, user.id)
        email = entity.email if entity else None
    if not email:
        logger.debug("No email for user %s; skipping install notice", user.id)
        return
    background.add_task(
        notifier.send,
        AppInstalled(email=email, team_name=team_name or "", app_name=app_name),
    )


@router.post("/oauth/authorize", response_model=RedirectResponseBody)
async def authorize_decision(
    db: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[OAuthSettings, Depends(_load_settings)],
    user: Annotated[SessionUser, Depends(require_session_user)],
    notifier: Annotated[AppInstalledNotifier, Depends(get_notifier)],
    body: ConsentDecision,
    background: BackgroundTasks,
) -> RedirectResponseBody:
    """POST /oauth/authorize -- record the user's allow/deny decision."""
    client, scopes = await _validate_client_request(
        db, body.client_id, body.code_challenge, body.redirect_uri, body.scopes
    )
    team = await get_team_for_member(db, user.id, body.team_id)
    if team is None:
        raise ForbiddenError("User is not a member of the selected team")

    if body.decision == "deny":
        url = build_redirect_url(
            body.redirect_uri,
            {
                "error": "access_denied",
                "error_description": "User denied access",
                "state": body.state,
            },
        )
        return RedirectResponseBody(redirect_url=url)

    issued = await create_authorization_code(
        db,
        AuthCodeParams(
            application_id=client.id,
            user_id=user.id,
            team_id=team.id,
            scopes=scopes,
            redirect_uri=body.redirect_uri,
            code_challenge=body.code_challenge,
            ttl_seconds=settings.auth_code_ttl,
        ),
    )
    await commit_or_fail(db)
    await _schedule_notification(db, background, notifier, user, team.name, client.name)

    url = build_redirect_url(
        body.redirect_uri, {"code": issued.code, "state": body.state}
    )
    return RedirectResponseBody(redirect_url=url)
