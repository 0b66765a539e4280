"""Opaque credential generation and hashing.

Client secrets are hashed with Argon2id. Codes and tokens are high-entropy
random values, so a plain SHA-256 digest is enough to look them up without
storing the raw value.
"""

import hashlib
import secrets

import argon2
from pydantic import BaseModel

CLIENT_ID_PREFIX = "lga_client_"
CLIENT_SECRET_PREFIX = "lga_app_secret_"
AUTH_CODE_PREFIX = "lga_authorization_code_"
ACCESS_TOKEN_PREFIX = "lga_access_token_"
REFRESH_TOKEN_PREFIX = "lga_refresh_token_"

OPAQUE_ENTROPY_BYTES = 32
CLIENT_ID_ENTROPY_BYTES = 18

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,
    parallelism=1,
)


class ClientCredentials(BaseModel):
    """Freshly generated client credentials.

    ``client_secret`` is shown once to the developer; only the hash is stored.
    """

    client_id: str
    client_secret: str
    client_secret_hash: str


def generate_opaque(prefix: str, nbytes: int = OPAQUE_ENTROPY_BYTES) -> str:
    """Generate a prefixed, URL-safe random value."""
    return f"{prefix}{secrets.token_urlsafe(nbytes)}"


def hash_token(token: str) -> str:
    """SHA-256 hash a code or token for database storage."""
    return hashlib.sha256(token.encode()).hexdigest()


def hash_client_secret(secret: str) -> str:
    """Hash a client secret using Argon2id."""
    return _hasher.hash(secret)


def verify_client_secret(plain: str, hashed: str) -> bool:
    """Verify a presented client secret against its Argon2 hash."""
    try:
        return _hasher.verify(hashed, plain)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


def generate_client_credentials() -> ClientCredentials:
    """Generate a client id and secret pair for a confidential application."""
    secret = generate_opaque(CLIENT_SECRET_PREFIX)
    return ClientCredentials(
        client_id=generate_opaque(CLIENT_ID_PREFIX, CLIENT_ID_ENTROPY_BYTES),
        client_secret=secret,
        client_secret_hash=hash_client_secret(secret),
    )
