"""Webhook authenticity check.

The provider signs the raw callback body with HMAC-SHA256 using the
shared webhook secret and sends the hex digest in a header.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from app.core.config import Settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    payload: bytes,
    signature: Optional[str],
    config: Settings,
) -> bool:
    """Return True when *payload* is authentic.

    Without a configured secret, webhooks are accepted outside production
    (with a warning) and refused in production.
    """
    if not config.webhook_secret:
        if config.is_production:
            logger.error("Webhook refused: webhook_secret is not configured in production")
            return False
        logger.warning("Webhook signature not checked: webhook_secret is not configured")
        return True

    if not signature:
        logger.warning("Webhook refused: missing %s header", config.webhook_signature_header)
        return False

    expected = compute_signature(config.webhook_secret, payload)
    # Some senders prefix the digest with the algorithm name
    provided = signature.strip().removeprefix("sha256=").lower()
    is_valid = hmac.compare_digest(expected, provided)
    if not is_valid:
        logger.warning("Webhook refused: invalid signature %s...", provided[:8])
    return is_valid
