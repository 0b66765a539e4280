"""Read-only queries against the team directory."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.db.models_user import TeamEntity, UserEntity, UsersOnTeamEntity


async def get_teams_by_user_id(
    session: AsyncSession, user_id: str
) -> list[TeamEntity]:
    """Return every team the user belongs to."""
    stmt = (
        select(TeamEntity)
        .join(UsersOnTeamEntity, UsersOnTeamEntity.team_id == TeamEntity.id)
        .where(UsersOnTeamEntity.user_id == user_id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_team_for_member(
    session: AsyncSession, user_id: str, team_id: str
) -> TeamEntity | None:
    """Return the team if the user is a member of it, else None."""
    teams = await get_teams_by_user_id(session, user_id)
    return next((t for t in teams if t.id == team_id), None)


async def get_user_by_id(session: AsyncSession, user_id: str) -> UserEntity | None:
    """Look up a user by primary key."""
    stmt = select(UserEntity).where(UserEntity.id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
