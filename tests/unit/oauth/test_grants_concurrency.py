"""Concurrent redemption and rotation, each contender on its own connection."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ledgerauth.core.errors import InvalidGrantError
from ledgerauth.core.settings import OAuthSettings
from ledgerauth.db.base import BaseEntity
from ledgerauth.db.models_oauth import OAuthApplicationEntity, OAuthTokenEntity
from ledgerauth.db.models_user import TeamEntity, UserEntity, UsersOnTeamEntity
from ledgerauth.db.repo_oauth import to_client
from ledgerauth.oauth.auth_code import AuthCodeParams, create_authorization_code
from ledgerauth.oauth.clients import PublicClient
from ledgerauth.oauth.grants import exchange_authorization_code, refresh_access_token
from ledgerauth.oauth.pkce import s256_challenge
from ledgerauth.oauth.token_service import TokenGrant, issue_token_pair

CONTENDERS = 3
USER_ID = "user-1"
TEAM_ID = "team-1"
REDIRECT_URI = "https://app.example.com/cb"
VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
WON = "TokenResponse"

SessionFactory = async_sessionmaker[AsyncSession]


@pytest.fixture
async def factory(tmp_path: Path) -> AsyncIterator[SessionFactory]:
    """Sessions on a SQLite file, so each one gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'oauth.sqlite'}")
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def public_client(factory: SessionFactory) -> PublicClient:
    entity = OAuthApplicationEntity(
        id="app-public",
        client_id="lga_client_public_race",
        is_public=True,
        active=True,
        redirect_uris=[REDIRECT_URI],
        scopes=["read", "write"],
        name="Public App",
        team_id=TEAM_ID,
    )
    async with factory() as session:
        session.add_all(
            [
                UserEntity(id=USER_ID, email="owner@example.com", full_name="Owner"),
                TeamEntity(id=TEAM_ID, name="Acme Finance"),
                UsersOnTeamEntity(user_id=USER_ID, team_id=TEAM_ID, role="owner"),
                entity,
            ]
        )
        await session.commit()
    client = to_client(entity)
    assert isinstance(client, PublicClient)
    return client


async def _redeem(factory: SessionFactory, client: PublicClient, code: str) -> str:
    async with factory() as session:
        try:
            result = await exchange_authorization_code(
                session,
                client,
                OAuthSettings(),
                code=code,
                redirect_uri=REDIRECT_URI,
                code_verifier=VERIFIER,
            )
        except InvalidGrantError as exc:
            await session.rollback()
            return exc.message
        await session.commit()
        return type(result).__name__


async def _rotate(factory: SessionFactory, client: PublicClient, token: str) -> str:
    async with factory() as session:
        try:
            result = await refresh_access_token(
                session, client, OAuthSettings(), refresh_token=token
            )
        except InvalidGrantError as exc:
            await session.rollback()
            return exc.message
        await session.commit()
        return type(result).__name__


class TestConcurrentRedemption:
    async def test_exactly_one_exchange_wins(
        self, factory: SessionFactory, public_client: PublicClient
    ) -> None:
        async with factory() as session:
            issued = await create_authorization_code(
                session,
                AuthCodeParams(
                    application_id=public_client.id,
                    user_id=USER_ID,
                    team_id=TEAM_ID,
                    scopes=["read"],
                    redirect_uri=REDIRECT_URI,
                    code_challenge=s256_challenge(VERIFIER),
                ),
            )
            await session.commit()

        outcomes = await asyncio.gather(
            *(_redeem(factory, public_client, issued.code) for _ in range(CONTENDERS))
        )

        assert outcomes.count(WON) == 1
        assert sorted(o for o in outcomes if o != WON) == [
            "Authorization code already used"
        ] * (CONTENDERS - 1)


class TestConcurrentRotation:
    async def test_exactly_one_rotation_wins(
        self, factory: SessionFactory, public_client: PublicClient
    ) -> None:
        async with factory() as session:
            pair = await issue_token_pair(
                session,
                TokenGrant(
                    application_id=public_client.id,
                    user_id=USER_ID,
                    team_id=TEAM_ID,
                    scopes=["read"],
                ),
            )
            await session.commit()

        outcomes = await asyncio.gather(
            *(
                _rotate(factory, public_client, pair.refresh_token)
                for _ in range(CONTENDERS)
            )
        )

        assert outcomes.count(WON) == 1
        assert sorted(o for o in outcomes if o != WON) == [
            "Refresh token revoked"
        ] * (CONTENDERS - 1)

        async with factory() as session:
            revoked = (
                await session.execute(
                    select(OAuthTokenEntity.revoked).where(
                        OAuthTokenEntity.family_id == pair.family_id
                    )
                )
            ).scalars().all()
        # original pair plus the winner's pair, all revoked by the losers
        assert len(revoked) == 4
        assert all(revoked)
