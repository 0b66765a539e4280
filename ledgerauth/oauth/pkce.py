"""PKCE (RFC 7636) verification."""

import hashlib
import re
import secrets
from base64 import urlsafe_b64encode

PKCE_METHOD_S256 = "S256"
SUPPORTED_METHODS = frozenset({PKCE_METHOD_S256})

# RFC 7636 section 4.1: 43-128 unreserved characters.
_VERIFIER_RE = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


def s256_challenge(code_verifier: str) -> str:
    """Compute BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def is_well_formed_verifier(code_verifier: str) -> bool:
    return bool(_VERIFIER_RE.match(code_verifier))


def verify_pkce(
    code_verifier: str,
    code_challenge: str,
    method: str | None = PKCE_METHOD_S256,
) -> bool:
    """Check a verifier against a stored challenge.

    Only S256 is issued; a stored challenge without a method is treated as
    S256. Malformed verifiers never match.
    """
    if (method or PKCE_METHOD_S256) not in SUPPORTED_METHODS:
        return False
    if not is_well_formed_verifier(code_verifier):
        return False
    computed = s256_challenge(code_verifier).encode("ascii")
    return secrets.compare_digest(computed, code_challenge.encode())
