"""Request and response models for the OAuth endpoints."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

# Opaque CSRF token chosen by the client; echoed back unchanged.
State = Annotated[
    str, Field(min_length=32, max_length=512, pattern=r"^[A-Za-z0-9_.-]+$")
]


def _to_camel(name: str) -> str:
    """Convert snake_case to camelCase for JSON serialization."""
    parts = name.split("_")
    return parts[0] + "".join(p.capitalize() for p in parts[1:])


class AuthorizationQuery(BaseModel):
    """Query parameters of GET /oauth/authorize."""

    client_id: str
    redirect_uri: str
    scope: str
    state: State
    response_type: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None


class ConsentDecision(BaseModel):
    """Body of POST /oauth/authorize."""

    model_config = ConfigDict(populate_by_name=True)

    client_id: str
    decision: Literal["allow", "deny"]
    scopes: list[str]
    redirect_uri: str
    state: State
    code_challenge: str | None = None
    team_id: str = Field(alias="teamId")


class ApplicationInfo(BaseModel):
    """Consent-screen payload for a validated authorization request."""

    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)

    id: str
    name: str
    description: str | None = None
    logo_url: str | None = None
    website: str | None = None
    client_id: str
    scopes: list[str]
    redirect_uri: str
    state: str


class RedirectResponseBody(BaseModel):
    """Where the consent UI should send the browser next."""

    redirect_url: str


class TokenRequest(BaseModel):
    """Body of POST /oauth/token, for either grant."""

    model_config = ConfigDict(extra="ignore")

    grant_type: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    code_verifier: str | None = None
    refresh_token: str | None = None
    scope: str | None = None


class TokenResponse(BaseModel):
    """OAuth token endpoint response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    scope: str


class RevokeRequest(BaseModel):
    """Body of POST /oauth/revoke."""

    model_config = ConfigDict(extra="ignore")

    token: str | None = None
    token_type_hint: Literal["access_token", "refresh_token"] | None = None
    client_id: str | None = None
    client_secret: str | None = None


class SuccessResponse(BaseModel):
    success: bool = True


class AuthorizedApplicationOut(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)

    id: str
    name: str
    description: str | None = None
    logo_url: str | None = None
    website: str | None = None
    scopes: list[str]
    last_used_at: datetime | None = None
    created_at: datetime


class AuthorizedApplicationsResponse(BaseModel):
    data: list[AuthorizedApplicationOut] = Field(default_factory=list)


class TokenInfoResponse(BaseModel):
    """What a resource server learns from a valid access token."""

    client_id: str
    user_id: str
    team_id: str
    scopes: list[str]
    expires_in: int
