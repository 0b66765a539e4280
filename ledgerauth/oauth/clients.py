"""OAuth client variants and the rules that depend on client type.

A registered application is either a public client (native apps, SPAs) that
cannot hold a secret and must use PKCE, or a confidential client that always
authenticates with its secret. ``authenticate_client`` and ``require_pkce``
are the only places that branch on the variant.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from ledgerauth.core.errors import (
    InvalidClientError,
    InvalidRequestError,
    InvalidScopeError,
)
from ledgerauth.crypto.credentials import verify_client_secret


class _ClientBase(BaseModel):
    id: str
    client_id: str
    name: str
    description: str | None = None
    logo_url: str | None = None
    website: str | None = None
    active: bool = True
    redirect_uris: list[str] = Field(default_factory=list)
    scopes: list[str] = Field(default_factory=list)


class PublicClient(_ClientBase):
    """A client without a secret; PKCE is mandatory."""

    kind: Literal["public"] = "public"


class ConfidentialClient(_ClientBase):
    """A client that authenticates with a secret."""

    kind: Literal["confidential"] = "confidential"
    client_secret_hash: str


OAuthClient = Annotated[
    PublicClient | ConfidentialClient, Field(discriminator="kind")
]


def authenticate_client(
    client: PublicClient | ConfidentialClient, client_secret: str | None
) -> None:
    """Apply the client-authentication rule for the client's type.

    Public clients must not present a secret; confidential clients must
    present one that verifies.
    """
    if isinstance(client, PublicClient):
        if client_secret:
            raise InvalidRequestError("Public clients must not send client_secret")
        return
    if not client_secret or not verify_client_secret(
        client_secret, client.client_secret_hash
    ):
        raise InvalidClientError("Invalid client credentials")


def require_pkce(
    client: PublicClient | ConfidentialClient, code_challenge: str | None
) -> None:
    """Public clients must send a PKCE challenge; confidential ones may."""
    if isinstance(client, PublicClient) and not code_challenge:
        raise InvalidRequestError("PKCE is required for public clients")


def validate_redirect_uri(
    client: PublicClient | ConfidentialClient, redirect_uri: str
) -> None:
    """Require a byte-exact match against a registered redirect URI."""
    if redirect_uri not in client.redirect_uris:
        raise InvalidRequestError("Invalid redirect_uri")


def parse_scope(scope: str | None) -> list[str]:
    """Split a space-delimited scope string, dropping blanks and duplicates."""
    if not scope:
        return []
    return dedupe_scopes(scope.split(" "))


def dedupe_scopes(scopes: list[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(s for s in scopes if s))


def validate_scopes(
    client: PublicClient | ConfidentialClient, requested: list[str]
) -> list[str]:
    """Return the requested scopes if all are registered for the client."""
    scopes = dedupe_scopes(requested)
    if not scopes:
        raise InvalidScopeError("At least one scope is required")
    invalid = [s for s in scopes if s not in client.scopes]
    if invalid:
        raise InvalidScopeError(f"Invalid scopes: {', '.join(invalid)}")
    return scopes
