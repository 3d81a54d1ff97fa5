"""Property-based tests for webhook signature verification.

For any body and secret, the signature GitHub would send verifies, and any
single changed byte in the body or digest does not.
"""

import pytest
from hypothesis import assume, given, settings, strategies as st

from webhook_runners.config import ConfigurationError
from webhook_runners.webhook.signature import (
    SIGNATURE_PREFIX,
    MalformedSignatureError,
    compute_signature,
    verify_signature,
)

secrets_strategy = st.text(min_size=1, max_size=64)
bodies = st.binary(max_size=2048)


class TestSignatureVerification:
    """HMAC-SHA256 verification over the raw body."""

    @given(body=bodies, secret=secrets_strategy)
    @settings(max_examples=100)
    def test_computed_signature_verifies(self, body: bytes, secret: str) -> None:
        assert verify_signature(body, secret, compute_signature(body, secret))

    @given(body=bodies, secret=secrets_strategy)
    @settings(max_examples=100)
    def test_uppercase_hex_verifies(self, body: bytes, secret: str) -> None:
        digest = compute_signature(body, secret)[len(SIGNATURE_PREFIX):]
        assert verify_signature(body, secret, SIGNATURE_PREFIX + digest.upper())

    @given(body=bodies.filter(len), secret=secrets_strategy, data=st.data())
    @settings(max_examples=100)
    def test_flipped_body_byte_is_forged(self, body: bytes, secret: str, data) -> None:
        signature = compute_signature(body, secret)
        index = data.draw(st.integers(min_value=0, max_value=len(body) - 1))
        flip = data.draw(st.integers(min_value=1, max_value=255))
        tampered = bytearray(body)
        tampered[index] ^= flip

        assert not verify_signature(bytes(tampered), secret, signature)

    @given(body=bodies, secret=secrets_strategy, data=st.data())
    @settings(max_examples=100)
    def test_flipped_signature_byte_is_forged(self, body: bytes, secret: str, data) -> None:
        digest = bytearray(bytes.fromhex(compute_signature(body, secret)[len(SIGNATURE_PREFIX):]))
        index = data.draw(st.integers(min_value=0, max_value=len(digest) - 1))
        flip = data.draw(st.integers(min_value=1, max_value=255))
        digest[index] ^= flip

        assert not verify_signature(body, secret, SIGNATURE_PREFIX + digest.hex())

    @given(body=bodies, secret=secrets_strategy, other=secrets_strategy)
    @settings(max_examples=100)
    def test_wrong_secret_is_forged(self, body: bytes, secret: str, other: str) -> None:
        assume(secret != other)
        assert not verify_signature(body, other, compute_signature(body, secret))


class TestMalformedSignatures:
    """Malformed headers are rejected before any comparison."""

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature(self, signature) -> None:
        with pytest.raises(MalformedSignatureError):
            verify_signature(b"{}", "secret", signature)

    def test_missing_prefix(self) -> None:
        digest = compute_signature(b"{}", "secret")[len(SIGNATURE_PREFIX):]
        with pytest.raises(MalformedSignatureError):
            verify_signature(b"{}", "secret", digest)

    def test_sha1_prefix(self) -> None:
        digest = compute_signature(b"{}", "secret")[len(SIGNATURE_PREFIX):]
        with pytest.raises(MalformedSignatureError):
            verify_signature(b"{}", "secret", "sha1=" + digest)

    @pytest.mark.parametrize(
        "digest",
        ["zz" * 32, "ab cd" + "ab" * 30, "abc", "ab" * 31, "ab" * 33, ""],
    )
    def test_invalid_hex(self, digest: str) -> None:
        with pytest.raises(MalformedSignatureError):
            verify_signature(b"{}", "secret", SIGNATURE_PREFIX + digest)

    def test_missing_secret_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            verify_signature(b"{}", "", compute_signature(b"{}", "secret"))


def test_known_github_signature():
    """Example delivery from the GitHub webhook validation docs."""
    signature = "sha256=757107ea0eb2509fc211221cce984b8a37570b6d7586c22c46f4379c8b043e17"
    assert verify_signature(b"Hello, World!", "It's a Secret to Everybody", signature)
