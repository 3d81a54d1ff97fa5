"""GitHub webhook signature verification.

GitHub signs each delivery with HMAC-SHA256 over the raw request body, keyed
with the webhook secret, and sends the hex digest in the X-Hub-Signature-256
header as ``sha256=<hex>``. See
https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries
"""

import hashlib
import hmac
import string
from typing import Optional

from ..config import ConfigurationError

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


class MalformedSignatureError(Exception):
    """Raised when the signature header is missing or cannot be decoded."""


def compute_signature(body: bytes, secret: str) -> str:
    """Compute the X-Hub-Signature-256 header value for a body.

    Args:
        body: The raw request body.
        secret: The webhook secret.

    Returns:
        str: "sha256=" followed by the lowercase hex HMAC digest.
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def _decode_signature(signature: Optional[str]) -> bytes:
    if not signature:
        raise MalformedSignatureError(f"missing {SIGNATURE_HEADER} header")
    if not signature.startswith(SIGNATURE_PREFIX):
        raise MalformedSignatureError("invalid signature: missing sha256= prefix")
    hex_digest = signature[len(SIGNATURE_PREFIX):]
    # bytes.fromhex tolerates embedded whitespace
    if not hex_digest or any(c not in string.hexdigits for c in hex_digest):
        raise MalformedSignatureError("invalid signature: not hex encoded")
    if len(hex_digest) != hashlib.sha256().digest_size * 2:
        raise MalformedSignatureError("invalid signature: wrong digest length")
    return bytes.fromhex(hex_digest)


def verify_signature(body: bytes, secret: str, signature: Optional[str]) -> bool:
    """Verify a webhook body against its X-Hub-Signature-256 value.

    The comparison is constant time and runs over the exact bytes received;
    the body must not be parsed or re-serialized first.

    Args:
        body: The raw request body.
        secret: The configured webhook secret.
        signature: The X-Hub-Signature-256 header value.

    Returns:
        True if the signature matches, False if it does not.

    Raises:
        ConfigurationError: If no secret is configured.
        MalformedSignatureError: If the header is missing, lacks the
            sha256= prefix, or is not a hex SHA-256 digest.
    """
    if not secret:
        raise ConfigurationError("missing GITHUB_WEBHOOK_SECRET")

    supplied = _decode_signature(signature)
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return hmac.compare_digest(expected, supplied)
