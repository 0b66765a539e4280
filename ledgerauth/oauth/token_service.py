"""Opaque token issuance, rotation, revocation, and validation."""

import logging
from datetime import datetime, timedelta

import uuid_utils
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.core.settings import (
    ACCESS_TOKEN_TTL_DEFAULT,
    REFRESH_TOKEN_TTL_DEFAULT,
)
from ledgerauth.core.timeutil import is_expired, utcnow
from ledgerauth.crypto.credentials import (
    ACCESS_TOKEN_PREFIX,
    REFRESH_TOKEN_PREFIX,
    generate_opaque,
    hash_token,
)
from ledgerauth.db.models_oauth import (
    TOKEN_KIND_ACCESS,
    TOKEN_KIND_REFRESH,
    OAuthApplicationEntity,
    OAuthTokenEntity,
)

logger = logging.getLogger(__name__)


class TokenGrant(BaseModel):
    """Who and what a token pair is issued for."""

    application_id: str
    user_id: str
    team_id: str
    scopes: list[str]
    access_ttl: int = ACCESS_TOKEN_TTL_DEFAULT
    refresh_ttl: int = REFRESH_TOKEN_TTL_DEFAULT


class IssuedTokenPair(BaseModel):
    """Raw token values; they are never persisted."""

    access_token: str
    refresh_token: str
    refresh_token_id: str
    family_id: str
    expires_in: int
    scopes: list[str]


class AuthorizedApplication(BaseModel):
    """An application holding a live grant for a user in a team."""

    id: str
    name: str
    description: str | None = None
    logo_url: str | None = None
    website: str | None = None
    scopes: list[str]
    last_used_at: datetime | None = None
    created_at: datetime


def new_family_id() -> str:
    return str(uuid_utils.uuid7())


def new_token_id() -> str:
    return str(uuid_utils.uuid7())


async def issue_token_pair(
    session: AsyncSession,
    grant: TokenGrant,
    *,
    family_id: str | None = None,
    refresh_token_id: str | None = None,
) -> IssuedTokenPair:
    """Create and store an access + refresh token pair.

    A new family is started unless ``family_id`` is given (rotation).
    ``refresh_token_id`` lets the caller reserve the refresh row's id before
    the insert.
    """
    now = utcnow()
    family = family_id or new_family_id()
    refresh_id = refresh_token_id or new_token_id()
    access = generate_opaque(ACCESS_TOKEN_PREFIX)
    refresh = generate_opaque(REFRESH_TOKEN_PREFIX)

    session.add(
        OAuthTokenEntity(
            id=refresh_id,
            token_hash=hash_token(refresh),
            kind=TOKEN_KIND_REFRESH,
            application_id=grant.application_id,
            user_id=grant.user_id,
            team_id=grant.team_id,
            scopes=grant.scopes,
            family_id=family,
            issued_at=now,
            expires_at=now + timedelta(seconds=grant.refresh_ttl),
            revoked=False,
        )
    )
    session.add(
        OAuthTokenEntity(
            id=new_token_id(),
            token_hash=hash_token(access),
            kind=TOKEN_KIND_ACCESS,
            application_id=grant.application_id,
            user_id=grant.user_id,
            team_id=grant.team_id,
            scopes=grant.scopes,
            family_id=family,
            refresh_token_id=refresh_id,
            issued_at=now,
            expires_at=now + timedelta(seconds=grant.access_ttl),
            revoked=False,
        )
    )
    await session.flush()

    return IssuedTokenPair(
        access_token=access,
        refresh_token=refresh,
        refresh_token_id=refresh_id,
        family_id=family,
        expires_in=grant.access_ttl,
        scopes=grant.scopes,
    )


async def get_token(
    session: AsyncSession, token: str, kind: str | None = None
) -> OAuthTokenEntity | None:
    """Look up a token row by the hash of its raw value."""
    stmt = select(OAuthTokenEntity).where(
        OAuthTokenEntity.token_hash == hash_token(token)
    )
    if kind is not None:
        stmt = stmt.where(OAuthTokenEntity.kind == kind)
    stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def mark_rotated(
    session: AsyncSession, refresh_token_id: str, successor_id: str
) -> bool:
    """Atomically point a refresh token at its successor.

    Matches only an unrotated, unrevoked row, so concurrent rotations of the
    same token cannot both succeed. Returns False for the loser.
    """
    stmt = (
        update(OAuthTokenEntity)
        .where(
            OAuthTokenEntity.id == refresh_token_id,
            OAuthTokenEntity.kind == TOKEN_KIND_REFRESH,
            OAuthTokenEntity.rotated_to.is_(None),
            OAuthTokenEntity.revoked.is_(False),
        )
        .values(rotated_to=successor_id)
        .returning(OAuthTokenEntity.id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def rotate_refresh_token(
    session: AsyncSession,
    current: OAuthTokenEntity,
    grant: TokenGrant,
) -> IssuedTokenPair | None:
    """Exchange a refresh token for a new pair in the same family.

    Returns None if another request rotated the token first. The access
    token issued alongside the old refresh token is revoked.
    """
    successor_id = new_token_id()
    if not await mark_rotated(session, current.id, successor_id):
        return None

    await session.execute(
        update(OAuthTokenEntity)
        .where(
            OAuthTokenEntity.refresh_token_id == current.id,
            OAuthTokenEntity.kind == TOKEN_KIND_ACCESS,
            OAuthTokenEntity.revoked.is_(False),
        )
        .values(revoked=True, revoked_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return await issue_token_pair(
        session,
        grant,
        family_id=current.family_id,
        refresh_token_id=successor_id,
    )


async def revoke_family(session: AsyncSession, family_id: str) -> int:
    """Revoke every token in a family. Returns the number newly revoked."""
    stmt = (
        update(OAuthTokenEntity)
        .where(
            OAuthTokenEntity.family_id == family_id,
            OAuthTokenEntity.revoked.is_(False),
        )
        .values(revoked=True, revoked_at=utcnow())
        .returning(OAuthTokenEntity.id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return len(result.all())


async def revoke_token(
    session: AsyncSession, *, token: str, application_id: str
) -> bool:
    """Revoke a token by its raw value (idempotent, per RFC 7009).

    Tokens of other applications are left alone. Revoking a refresh token
    revokes its whole family. Returns True if anything was revoked; callers
    must not reveal this to the client.
    """
    entity = await get_token(session, token)
    if entity is None or entity.application_id != application_id:
        return False
    if entity.kind == TOKEN_KIND_REFRESH:
        return await revoke_family(session, entity.family_id) > 0

    stmt = (
        update(OAuthTokenEntity)
        .where(
            OAuthTokenEntity.id == entity.id,
            OAuthTokenEntity.revoked.is_(False),
        )
        .values(revoked=True, revoked_at=utcnow())
        .returning(OAuthTokenEntity.id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def validate_access_token(
    session: AsyncSession, token: str
) -> OAuthTokenEntity | None:
    """Return the access token row if it may be used, updating last use."""
    stmt = (
        select(OAuthTokenEntity, OAuthApplicationEntity.active)
        .join(
            OAuthApplicationEntity,
            OAuthApplicationEntity.id == OAuthTokenEntity.application_id,
        )
        .where(
            OAuthTokenEntity.token_hash == hash_token(token),
            OAuthTokenEntity.kind == TOKEN_KIND_ACCESS,
            OAuthTokenEntity.revoked.is_(False),
        )
        .execution_options(populate_existing=True)
    )
    row = (await session.execute(stmt)).one_or_none()
    if row is None:
        return None
    entity, application_active = row
    if not application_active or is_expired(entity.expires_at):
        return None

    entity.last_used_at = utcnow()
    await session.flush()
    return entity


async def list_authorized_applications(
    session: AsyncSession, *, user_id: str, team_id: str
) -> list[AuthorizedApplication]:
    """Applications with a live refresh token for the user in the team."""
    stmt = (
        select(OAuthTokenEntity, OAuthApplicationEntity)
        .join(
            OAuthApplicationEntity,
            OAuthApplicationEntity.id == OAuthTokenEntity.application_id,
        )
        .where(
            OAuthTokenEntity.user_id == user_id,
            OAuthTokenEntity.team_id == team_id,
            OAuthTokenEntity.kind == TOKEN_KIND_REFRESH,
            OAuthTokenEntity.revoked.is_(False),
            OAuthTokenEntity.rotated_to.is_(None),
            OAuthTokenEntity.expires_at > utcnow(),
        )
        .order_by(OAuthTokenEntity.issued_at.desc())
    )
    rows = (await session.execute(stmt)).all()

    last_used = await _last_access_use(session, user_id=user_id, team_id=team_id)
    apps: dict[str, AuthorizedApplication] = {}
    for token, app in rows:
        if app.id in apps:
            continue
        apps[app.id] = AuthorizedApplication(
            id=app.id,
            name=app.name,
            description=app.description,
            logo_url=app.logo_url,
            website=app.website,
            scopes=list(token.scopes or []),
            last_used_at=last_used.get(app.id),
            created_at=token.issued_at,
        )
    return list(apps.values())


async def _last_access_use(
    session: AsyncSession, *, user_id: str, team_id: str
) -> dict[str, datetime]:
    stmt = select(OAuthTokenEntity.application_id, OAuthTokenEntity.last_used_at).where(
        OAuthTokenEntity.user_id == user_id,
        OAuthTokenEntity.team_id == team_id,
        OAuthTokenEntity.kind == TOKEN_KIND_ACCESS,
        OAuthTokenEntity.last_used_at.is_not(None),
    )
    latest: dict[str, datetime] = {}
    for application_id, used_at in (await session.execute(stmt)).all():
        if application_id not in latest or used_at > latest[application_id]:
            latest[application_id] = used_at
    return latest


async def revoke_user_application_tokens(
    session: AsyncSession, *, user_id: str, team_id: str, application_id: str
) -> int:
    """Revoke every token a user holds for an application in a team."""
    stmt = (
        update(OAuthTokenEntity)
        .where(
            OAuthTokenEntity.user_id == user_id,
            OAuthTokenEntity.team_id == team_id,
            OAuthTokenEntity.application_id == application_id,
            OAuthTokenEntity.revoked.is_(False),
        )
        .values(revoked=True, revoked_at=utcnow())
        .returning(OAuthTokenEntity.id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return len(result.all())
