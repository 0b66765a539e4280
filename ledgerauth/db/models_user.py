"""SQLAlchemy models for the user and team directory.

These tables are owned by the surrounding platform. The authorization server
only reads them: for foreign keys, membership checks at consent time, and the
team name used in the install notification.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ledgerauth.db.base import BaseEntity


class UserEntity(BaseEntity):
    """A platform user."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class TeamEntity(BaseEntity):
    """A tenant; applications are authorized against a team."""

    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class UsersOnTeamEntity(BaseEntity):
    """Membership of a user in a team."""

    __tablename__ = "users_on_team"

    user_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("users.id"), primary_key=True
    )
    team_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("teams.id"), primary_key=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
