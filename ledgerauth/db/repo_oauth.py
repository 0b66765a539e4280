"""Repository for OAuth application lookups."""

import logging

from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerauth.core.errors import InvalidClientError
from ledgerauth.db.models_oauth import OAuthApplicationEntity
from ledgerauth.oauth.clients import (
    ConfidentialClient,
    OAuthClient,
    PublicClient,
)

logger = logging.getLogger(__name__)

_client_adapter: TypeAdapter[PublicClient | ConfidentialClient] = TypeAdapter(
    OAuthClient
)


async def get_application_by_client_id(
    session: AsyncSession, client_id: str
) -> OAuthApplicationEntity | None:
    """Look up an application by its public client identifier."""
    stmt = select(OAuthApplicationEntity).where(
        OAuthApplicationEntity.client_id == client_id
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def to_client(
    entity: OAuthApplicationEntity,
) -> PublicClient | ConfidentialClient | None:
    """Build the typed client variant for an application row.

    A public row never carries a usable secret, so any stored hash is
    dropped. A confidential row without a hash cannot authenticate and is
    rejected.
    """
    data = {
        "id": entity.id,
        "client_id": entity.client_id,
        "name": entity.name,
        "description": entity.description,
        "logo_url": entity.logo_url,
        "website": entity.website,
        "active": entity.active,
        "redirect_uris": list(entity.redirect_uris or []),
        "scopes": list(entity.scopes or []),
    }
    if entity.is_public:
        return _client_adapter.validate_python({**data, "kind": "public"})
    if not entity.client_secret_hash:
        logger.error("Confidential application %s has no client secret", entity.id)
        return None
    return _client_adapter.validate_python(
        {
            **data,
            "kind": "confidential",
            "client_secret_hash": entity.client_secret_hash,
        }
    )


async def get_active_client(
    session: AsyncSession, client_id: str | None
) -> PublicClient | ConfidentialClient:
    """Resolve an active, well-formed client or raise invalid_client."""
    if not client_id:
        raise InvalidClientError("Invalid client_id")
    entity = await get_application_by_client_id(session, client_id)
    if entity is None or not entity.active:
        raise InvalidClientError("Invalid client_id")
    client = to_client(entity)
    if client is None:
        raise InvalidClientError("Invalid client_id")
    return client
