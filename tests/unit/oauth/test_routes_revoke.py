"""Tests for the OAuth token revocation endpoint."""

from base64 import b64encode

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.db.models_oauth import OAuthApplicationEntity
from ledgerauth.oauth.token_service import (
    IssuedTokenPair,
    TokenGrant,
    get_token,
    issue_token_pair,
    validate_access_token,
)

HTTP_OK = 200
HTTP_BAD_REQUEST = 400

CONFIDENTIAL_SECRET = "lga_app_secret_test_value"


async def _pair(db: AsyncSession, app: OAuthApplicationEntity) -> IssuedTokenPair:
    pair = await issue_token_pair(
        db,
        TokenGrant(
            application_id=app.id,
            user_id="user-1",
            team_id="team-1",
            scopes=["read"],
        ),
    )
    await db.commit()
    return pair


class TestRevoke:
    """Tests for POST /oauth/revoke."""

    async def test_revokes_access_token(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        public_app: OAuthApplicationEntity,
    ) -> None:
        pair = await _pair(db_session, public_app)
        resp = await client.post(
            "/oauth/revoke",
            json={"token": pair.access_token, "client_id": public_app.client_id},
        )
        assert resp.status_code == HTTP_OK
        assert resp.json() == {"success": True}
        assert await validate_access_token(db_session, pair.access_token) is None

    async def test_refresh_revokes_family(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        public_app: OAuthApplicationEntity,
    ) -> None:
        pair = await _pair(db_session, public_app)
        resp = await client.post(
            "/oauth/revoke",
            data={
                "token": pair.refresh_token,
                "token_type_hint": "refresh_token",
                "client_id": public_app.client_id,
            },
        )
        assert resp.status_code == HTTP_OK
        assert await validate_access_token(db_session, pair.access_token) is None
        refresh = await get_token(db_session, pair.refresh_token)
        assert refresh is not None
        assert refresh.revoked is True

    async def test_unknown_and_repeated_tokens_succeed(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        public_app: OAuthApplicationEntity,
    ) -> None:
        pair = await _pair(db_session, public_app)
        for token in ("lga_access_token_unknown", pair.access_token, pair.access_token):
            resp = await client.post(
                "/oauth/revoke",
                json={"token": token, "client_id": public_app.client_id},
            )
            assert resp.status_code == HTTP_OK
            assert resp.json() == {"success": True}

    async def test_other_application_token_untouched(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        public_app: OAuthApplicationEntity,
        confidential_app: OAuthApplicationEntity,
    ) -> None:
        pair = await _pair(db_session, public_app)
        resp = await client.post(
            "/oauth/revoke",
            json={
                "token": pair.access_token,
                "client_id": confidential_app.client_id,
                "client_secret": CONFIDENTIAL_SECRET,
            },
        )
        assert resp.status_code == HTTP_OK
        assert resp.json() == {"success": True}
        assert await validate_access_token(db_session, pair.access_token)

    async def test_confidential_basic_auth(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        confidential_app: OAuthApplicationEntity,
    ) -> None:
        pair = await _pair(db_session, confidential_app)
        raw = b64encode(
            f"{confidential_app.client_id}:{CONFIDENTIAL_SECRET}".encode()
        ).decode()
        resp = await client.post(
            "/oauth/revoke",
            data={"token": pair.access_token},
            headers={"Authorization": f"Basic {raw}"},
        )
        assert resp.status_code == HTTP_OK
        assert await validate_access_token(db_session, pair.access_token) is None

    async def test_confidential_wrong_secret(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        confidential_app: OAuthApplicationEntity,
    ) -> None:
        pair = await _pair(db_session, confidential_app)
        resp = await client.post(
            "/oauth/revoke",
            json={
                "token": pair.access_token,
                "client_id": confidential_app.client_id,
                "client_secret": "wrong",
            },
        )
        assert resp.status_code == HTTP_BAD_REQUEST
        assert resp.json() == {"message": "Invalid client credentials"}
        assert await validate_access_token(db_session, pair.access_token)

    async def test_public_with_secret(
        self, client: AsyncClient, public_app: OAuthApplicationEntity
    ) -> None:
        resp = await client.post(
            "/oauth/revoke",
            json={
                "token": "t",
                "client_id": public_app.client_id,
                "client_secret": "s",
            },
        )
        assert resp.status_code == HTTP_BAD_REQUEST
        assert resp.json() == {"message": "Public clients must not send client_secret"}

    async def test_unknown_client(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/oauth/revoke", json={"token": "t", "client_id": "lga_client_nope"}
        )
        assert resp.status_code == HTTP_BAD_REQUEST
        assert resp.json() == {"message": "Invalid client_id"}

    async def test_missing_token(
        self, client: AsyncClient, public_app: OAuthApplicationEntity
    ) -> None:
        resp = await client.post(
            "/oauth/revoke", json={"client_id": public_app.client_id}
        )
        assert resp.status_code == HTTP_BAD_REQUEST
