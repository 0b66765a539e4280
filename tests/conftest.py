"""Shared test fixtures for ledgerauth."""

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta

import jwt
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ledgerauth.core.app import create_app
from ledgerauth.core.settings import EmailSettings
from ledgerauth.crypto.credentials import hash_client_secret
from ledgerauth.db.base import BaseEntity
from ledgerauth.db.engine import get_session
from ledgerauth.db.models_oauth import OAuthApplicationEntity
from ledgerauth.db.models_user import TeamEntity, UserEntity, UsersOnTeamEntity
from ledgerauth.notify.email import AppInstalledNotifier, get_notifier

SESSION_SECRET = "test-session-secret-with-enough-bytes-for-hs256"
USER_ID = "user-1"
USER_EMAIL = "owner@example.com"
TEAM_ID = "team-1"
OTHER_TEAM_ID = "team-2"
REDIRECT_URI = "https://app.example.com/cb"
PUBLIC_CLIENT_ID = "lga_client_public_test"
CONFIDENTIAL_CLIENT_ID = "lga_client_confidential_test"
CONFIDENTIAL_SECRET = "lga_app_secret_test_value"


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for test settings."""
    monkeypatch.setenv("OAUTH_SESSION_JWT_SECRET", SESSION_SECRET)
    monkeypatch.setenv("OAUTH_RATE_LIMIT_MAX_REQUESTS", "1000")
    monkeypatch.setenv("OAUTH_RATE_LIMIT_REDIS_URL", "")
    monkeypatch.setenv("OAUTH_EMAIL_API_KEY", "")


@pytest.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    """Create an in-memory SQLite async session for tests."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def app(db_session: AsyncSession) -> FastAPI:
    """Create the app with the DB session and notifier overridden."""
    application = create_app()

    async def _override_session() -> AsyncIterator[AsyncSession]:
        try:
            yield db_session
        except Exception:
            await db_session.rollback()
            raise

    application.dependency_overrides[get_session] = _override_session
    application.dependency_overrides[get_notifier] = lambda: AppInstalledNotifier(
        EmailSettings(api_key="")
    )
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Create an httpx test client for the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_session_token() -> Callable[..., str]:
    """Factory for platform session JWTs."""

    def _make(
        user_id: str = USER_ID,
        email: str | None = USER_EMAIL,
        expires_in: int = 3600,
        secret: str = SESSION_SECRET,
    ) -> str:
        claims = {
            "sub": user_id,
            "aud": "authenticated",
            "exp": datetime.now(UTC) + timedelta(seconds=expires_in),
        }
        if email is not None:
            claims["email"] = email
        return jwt.encode(claims, secret, algorithm="HS256")

    return _make


@pytest.fixture
def session_headers(make_session_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_session_token()}"}


@pytest.fixture
async def member(db_session: AsyncSession) -> UserEntity:
    """A user who belongs to TEAM_ID but not to OTHER_TEAM_ID."""
    user = UserEntity(id=USER_ID, email=USER_EMAIL, full_name="Team Owner")
    db_session.add_all(
        [
            user,
            TeamEntity(id=TEAM_ID, name="Acme Finance"),
            TeamEntity(id=OTHER_TEAM_ID, name="Other Co"),
            UsersOnTeamEntity(user_id=USER_ID, team_id=TEAM_ID, role="owner"),
        ]
    )
    await db_session.commit()
    return user


@pytest.fixture
async def public_app(
    db_session: AsyncSession, member: UserEntity
) -> OAuthApplicationEntity:
    """A public client registered for read and write."""
    entity = OAuthApplicationEntity(
        id="app-public",
        client_id=PUBLIC_CLIENT_ID,
        client_secret_hash=None,
        is_public=True,
        active=True,
        redirect_uris=[REDIRECT_URI],
        scopes=["read", "write"],
        name="Public App",
        description="A single-page app",
        logo_url="https://app.example.com/logo.png",
        website="https://app.example.com",
        team_id=TEAM_ID,
    )
    db_session.add(entity)
    await db_session.commit()
    return entity


@pytest.fixture
async def confidential_app(
    db_session: AsyncSession, member: UserEntity
) -> OAuthApplicationEntity:
    """A confidential client authenticating with CONFIDENTIAL_SECRET."""
    entity = OAuthApplicationEntity(
        id="app-confidential",
        client_id=CONFIDENTIAL_CLIENT_ID,
        client_secret_hash=hash_client_secret(CONFIDENTIAL_SECRET),
        is_public=False,
        active=True,
        redirect_uris=[REDIRECT_URI, "https://server.example.com/callback?src=oauth"],
        scopes=["read", "write", "reports"],
        name="Server App",
        team_id=TEAM_ID,
    )
    db_session.add(entity)
    await db_session.commit()
    return entity
