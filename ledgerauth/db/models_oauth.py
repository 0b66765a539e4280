"""SQLAlchemy models for OAuth applications, authorization codes, and tokens."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ledgerauth.db.base import BaseEntity

TOKEN_KIND_ACCESS = "access"
TOKEN_KIND_REFRESH = "refresh"


class OAuthApplicationEntity(BaseEntity):
    """Registered OAuth client. Written by the admin flow, read-only here."""

    __tablename__ = "oauth_applications"

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    client_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    client_secret_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    redirect_uris: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    website: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    team_id: Mapped[str | None] = mapped_column(
        String(48), ForeignKey("teams.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AuthorizationCodeEntity(BaseEntity):
    """Single-use authorization code.

    ``consumed_at`` is null while the code is redeemable and is set exactly
    once by a conditional update. ``family_id`` records the token family the
    code was exchanged for, so a replayed code can revoke what it produced.
    """

    __tablename__ = "oauth_authorization_codes"

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    code_hash: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    application_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("oauth_applications.id"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("users.id"), nullable=False
    )
    team_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("teams.id"), nullable=False
    )
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    redirect_uri: Mapped[str] = mapped_column(String(2048), nullable=False)
    code_challenge: Mapped[str | None] = mapped_column(String(128), nullable=True)
    code_challenge_method: Mapped[str | None] = mapped_column(
        String(10), nullable=True
    )
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    consumed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    family_id: Mapped[str | None] = mapped_column(String(48), nullable=True)


class OAuthTokenEntity(BaseEntity):
    """Access or refresh token; only the SHA-256 of the raw value is stored."""

    __tablename__ = "oauth_tokens"

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    token_hash: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    application_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("oauth_applications.id"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("users.id"), nullable=False
    )
    team_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("teams.id"), nullable=False
    )
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    family_id: Mapped[str] = mapped_column(String(48), nullable=False, index=True)
    # Successor id on a rotated refresh token; no FK, it is set before the
    # successor row is inserted.
    rotated_to: Mapped[str | None] = mapped_column(String(48), nullable=True)
    refresh_token_id: Mapped[str | None] = mapped_column(String(48), nullable=True)
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
