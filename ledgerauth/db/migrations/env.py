"""Alembic environment configuration for async migrations."""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from ledgerauth.core.settings import DatabaseSettings
from ledgerauth.db.base import BaseEntity
from ledgerauth.db.models_oauth import (
    AuthorizationCodeEntity,
    OAuthApplicationEntity,
    OAuthTokenEntity,
)
from ledgerauth.db.models_user import TeamEntity, UserEntity, UsersOnTeamEntity

# Importing the entities registers their tables on BaseEntity.metadata.
_registered = (
    UserEntity,
    TeamEntity,
    UsersOnTeamEntity,
    OAuthApplicationEntity,
    AuthorizationCodeEntity,
    OAuthTokenEntity,
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = BaseEntity.metadata


def _database_url() -> str:
    return config.get_main_option("sqlalchemy.url") or DatabaseSettings().async_url


def run_migrations_offline() -> None:
    """Emit migration SQL without a database connection."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations through the async engine."""
    engine = create_async_engine(DatabaseSettings().async_url)
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
