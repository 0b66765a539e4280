"""Token endpoint grants: authorization_code exchange and refresh rotation.

Both grants persist their security-relevant writes (a claimed code, a
revoked family) with an explicit commit before raising, since the request
session is rolled back on any exception. The handler commits the rest.
"""

import logging
from typing import NoReturn

from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.core.errors import InvalidGrantError, InvalidScopeError
from ledgerauth.core.settings import OAuthSettings
from ledgerauth.core.timeutil import is_expired
from ledgerauth.db.engine import commit_or_fail
from ledgerauth.db.models_oauth import TOKEN_KIND_REFRESH, OAuthTokenEntity
from ledgerauth.oauth.auth_code import (
    claim_authorization_code,
    get_consumed_code,
    record_code_family,
)
from ledgerauth.oauth.clients import ConfidentialClient, PublicClient, parse_scope
from ledgerauth.oauth.pkce import verify_pkce
from ledgerauth.oauth.token_service import (
    IssuedTokenPair,
    TokenGrant,
    get_token,
    issue_token_pair,
    revoke_family,
    rotate_refresh_token,
)
from ledgerauth.oauth.types import TokenResponse

logger = logging.getLogger(__name__)


def _token_response(pair: IssuedTokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        expires_in=pair.expires_in,
        refresh_token=pair.refresh_token,
        scope=" ".join(pair.scopes),
    )


async def _reject_reused_code(
    session: AsyncSession, client: PublicClient | ConfidentialClient, code: str
) -> NoReturn:
    """Handle a code that could not be claimed; always raises invalid_grant."""
    consumed = await get_consumed_code(session, code)
    if consumed is None or consumed.application_id != client.id:
        raise InvalidGrantError("Invalid authorization code")

    revoked = 0
    if consumed.family_id:
        revoked = await revoke_family(session, consumed.family_id)
    await commit_or_fail(session)
    logger.warning(
        "Authorization code reuse for application %s; revoked %d tokens",
        client.id,
        revoked,
    )
    raise InvalidGrantError("Authorization code already used")


async def exchange_authorization_code(
    session: AsyncSession,
    client: PublicClient | ConfidentialClient,
    settings: OAuthSettings,
    *,
    code: str,
    redirect_uri: str,
    code_verifier: str | None,
) -> TokenResponse:
    """Redeem an authorization code for a new token family.

    The claim is committed before any further check, so a code that fails
    validation is still spent.
    """
    auth_code = await claim_authorization_code(session, code)
    if auth_code is None:
        await _reject_reused_code(session, client, code)
    await commit_or_fail(session)

    if is_expired(auth_code.expires_at):
        raise InvalidGrantError("Authorization code expired")
    if auth_code.application_id != client.id:
        raise InvalidGrantError(
            "Authorization code does not belong to this application"
        )
    if auth_code.redirect_uri != redirect_uri:
        raise InvalidGrantError("Invalid redirect URI")
    if auth_code.code_challenge:
        if not code_verifier:
            raise InvalidGrantError(
                "Code verifier is required when code challenge is present"
            )
        if not verify_pkce(
            code_verifier,
            auth_code.code_challenge,
            auth_code.code_challenge_method or "S256",
        ):
            raise InvalidGrantError("Invalid code verifier")

    grant = TokenGrant(
        application_id=client.id,
        user_id=auth_code.user_id,
        team_id=auth_code.team_id,
        scopes=list(auth_code.scopes or []),
        access_ttl=settings.access_token_ttl,
        refresh_ttl=settings.refresh_token_ttl,
    )
    pair = await issue_token_pair(session, grant)
    await record_code_family(session, auth_code.id, pair.family_id)
    return _token_response(pair)


async def _reject_reused_refresh(
    session: AsyncSession, token: OAuthTokenEntity
) -> NoReturn:
    """Revoke the family of a replayed refresh token; always raises."""
    revoked = await revoke_family(session, token.family_id)
    await commit_or_fail(session)
    logger.warning(
        "Refresh token reuse for application %s; revoked %d tokens in family %s",
        token.application_id,
        revoked,
        token.family_id,
    )
    raise InvalidGrantError("Refresh token revoked")


def _narrow_scopes(granted: list[str], scope: str | None) -> list[str]:
    requested = parse_scope(scope)
    if not requested:
        return granted
    for s in requested:
        if s not in granted:
            raise InvalidScopeError(
                f"Requested scope '{s}' is not authorized for this token"
            )
    return requested


async def refresh_access_token(
    session: AsyncSession,
    client: PublicClient | ConfidentialClient,
    settings: OAuthSettings,
    *,
    refresh_token: str,
    scope: str | None = None,
) -> TokenResponse:
    """Rotate a refresh token, detecting replay of an already-rotated one."""
    current = await get_token(session, refresh_token, kind=TOKEN_KIND_REFRESH)
    if current is None or current.application_id != client.id:
        raise InvalidGrantError("Invalid refresh token")
    if current.rotated_to is not None:
        await _reject_reused_refresh(session, current)
    if current.revoked:
        raise InvalidGrantError("Refresh token revoked")
    if is_expired(current.expires_at):
        raise InvalidGrantError("Refresh token expired")

    scopes = _narrow_scopes(list(current.scopes or []), scope)
    grant = TokenGrant(
        application_id=client.id,
        user_id=current.user_id,
        team_id=current.team_id,
        scopes=scopes,
        access_ttl=settings.access_token_ttl,
        refresh_ttl=settings.refresh_token_ttl,
    )
    pair = await rotate_refresh_token(session, current, grant)
    if pair is None:
        await _reject_reused_refresh(session, current)
    return _token_response(pair)
