"""Tests for PKCE challenge computation and verification."""

import hashlib
from base64 import urlsafe_b64encode

from ledgerauth.oauth.pkce import is_well_formed_verifier, s256_challenge, verify_pkce

# RFC 7636 appendix B
RFC_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
RFC_CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def _make_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class TestS256Challenge:
    """Tests for challenge derivation."""

    def test_rfc_vector(self) -> None:
        assert s256_challenge(RFC_VERIFIER) == RFC_CHALLENGE

    def test_no_padding(self) -> None:
        assert "=" not in s256_challenge("a" * 64)


class TestVerifierFormat:
    def test_accepts_unreserved_chars(self) -> None:
        assert is_well_formed_verifier("A1-._~" * 8)

    def test_rejects_short(self) -> None:
        assert not is_well_formed_verifier("a" * 42)

    def test_rejects_long(self) -> None:
        assert not is_well_formed_verifier("a" * 129)

    def test_rejects_reserved_chars(self) -> None:
        assert not is_well_formed_verifier("a" * 42 + "+")


class TestVerifyPKCE:
    """Tests for S256 PKCE verification."""

    def test_valid_verifier(self) -> None:
        assert verify_pkce(RFC_VERIFIER, RFC_CHALLENGE) is True

    def test_other_verifier_fails(self) -> None:
        other = "x" * 43
        assert verify_pkce(other, RFC_CHALLENGE) is False

    def test_matches_independent_computation(self) -> None:
        verifier = "v" * 50
        assert verify_pkce(verifier, _make_challenge(verifier)) is True

    def test_missing_method_treated_as_s256(self) -> None:
        assert verify_pkce(RFC_VERIFIER, RFC_CHALLENGE, None) is True

    def test_plain_method_rejected(self) -> None:
        assert verify_pkce(RFC_VERIFIER, RFC_VERIFIER, "plain") is False

    def test_empty_verifier_fails(self) -> None:
        assert verify_pkce("", RFC_CHALLENGE) is False

    def test_non_ascii_challenge_does_not_raise(self) -> None:
        assert verify_pkce(RFC_VERIFIER, "é" * 43) is False
