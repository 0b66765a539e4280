"""Authorization code issuance and single-use redemption."""

import logging
from datetime import datetime, timedelta

import uuid_utils
from pydantic import BaseModel
from sqlalchemy import Insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.core.errors import ServerError
from ledgerauth.core.settings import AUTH_CODE_TTL_DEFAULT
from ledgerauth.core.timeutil import utcnow
from ledgerauth.crypto.credentials import (
    AUTH_CODE_PREFIX,
    generate_opaque,
    hash_token,
)
from ledgerauth.db.models_oauth import AuthorizationCodeEntity
from ledgerauth.oauth.pkce import PKCE_METHOD_S256

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 3


class AuthCodeParams(BaseModel):
    """Parameters for creating an authorization code."""

    application_id: str
    user_id: str
    team_id: str
    scopes: list[str]
    redirect_uri: str
    code_challenge: str | None = None
    ttl_seconds: int = AUTH_CODE_TTL_DEFAULT


class IssuedCode(BaseModel):
    """A newly issued code; the raw value exists only in this object."""

    code: str
    expires_at: datetime


def generate_code() -> str:
    """Generate a cryptographically random authorization code."""
    return generate_opaque(AUTH_CODE_PREFIX)


def _insert_ignoring_duplicates(session: AsyncSession, values: dict) -> Insert:
    """INSERT that yields no row instead of failing on a duplicate code hash."""
    dialect = session.bind.dialect.name if session.bind is not None else ""
    if dialect == "postgresql":
        stmt = postgresql.insert(AuthorizationCodeEntity).values(**values)
    else:
        stmt = sqlite.insert(AuthorizationCodeEntity).values(**values)
    return stmt.on_conflict_do_nothing(
        index_elements=[AuthorizationCodeEntity.code_hash]
    ).returning(AuthorizationCodeEntity.id)


async def create_authorization_code(
    session: AsyncSession, params: AuthCodeParams
) -> IssuedCode:
    """Create and store a new authorization code.

    A value colliding with an existing code is discarded and regenerated;
    running out of attempts is a server error.
    """
    now = utcnow()
    expires_at = now + timedelta(seconds=params.ttl_seconds)
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        code = generate_code()
        values = {
            "id": str(uuid_utils.uuid7()),
            "code_hash": hash_token(code),
            "application_id": params.application_id,
            "user_id": params.user_id,
            "team_id": params.team_id,
            "scopes": params.scopes,
            "redirect_uri": params.redirect_uri,
            "code_challenge": params.code_challenge,
            "code_challenge_method": (
                PKCE_METHOD_S256 if params.code_challenge else None
            ),
            "issued_at": now,
            "expires_at": expires_at,
        }
        result = await session.execute(_insert_ignoring_duplicates(session, values))
        if result.scalar_one_or_none() is not None:
            return IssuedCode(code=code, expires_at=expires_at)
        logger.warning("Authorization code collision on attempt %d", attempt)
    raise ServerError("Failed to create authorization code")


async def claim_authorization_code(
    session: AsyncSession, code: str
) -> AuthorizationCodeEntity | None:
    """Atomically mark a code consumed and return it.

    The conditional update matches only while ``consumed_at`` is null, so of
    any number of concurrent claims exactly one gets the row back.
    """
    stmt = (
        update(AuthorizationCodeEntity)
        .where(
            AuthorizationCodeEntity.code_hash == hash_token(code),
            AuthorizationCodeEntity.consumed_at.is_(None),
        )
        .values(consumed_at=utcnow())
        .returning(AuthorizationCodeEntity)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_consumed_code(
    session: AsyncSession, code: str
) -> AuthorizationCodeEntity | None:
    """Return the code if it exists and has already been redeemed."""
    stmt = select(AuthorizationCodeEntity).where(
        AuthorizationCodeEntity.code_hash == hash_token(code),
        AuthorizationCodeEntity.consumed_at.is_not(None),
    )
    stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def record_code_family(
    session: AsyncSession, code_id: str, family_id: str
) -> None:
    """Link a redeemed code to the token family it produced."""
    stmt = (
        update(AuthorizationCodeEntity)
        .where(AuthorizationCodeEntity.id == code_id)
        .values(family_id=family_id)
    )
    await session.execute(stmt)
