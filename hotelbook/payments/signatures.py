"""HMAC-SHA256 verification for payment provider callbacks."""

import hashlib
import hmac
import logging

from hotelbook.config import settings
from hotelbook.errors import InvalidSignatureError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Payment-Signature"


def compute_signature(payload: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature of a raw request body."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_callback_signature(payload: bytes, signature: str | None, secret: str | None = None) -> None:
    """Raise ``InvalidSignatureError`` unless *signature* matches *payload*.

    With no secret configured, verification is skipped; the settings
    validator refuses that combination in production.
    """
    secret = settings.payment_webhook_secret if secret is None else secret
    if not secret:
        logger.debug("Payment webhook secret not configured; accepting unsigned callback")
        return

    if not signature:
        logger.warning("Payment callback rejected: missing %s header", SIGNATURE_HEADER)
        raise InvalidSignatureError("Missing callback signature")

    expected = compute_signature(payload, secret)
    if not hmac.compare_digest(expected, signature.strip()):
        logger.warning("Payment callback rejected: signature mismatch")
        raise InvalidSignatureError()
