"""Webhook signature helpers."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, payload: bytes) -> str:
    """Return the ``X-Hub-Signature-256`` value GitHub sends for ``payload``."""

    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_webhook_signature(secret: str | None, payload: bytes, raw_signature: str | None) -> bool:
    """Check a delivery signature in constant time.

    Without a configured secret every delivery is accepted; with one, a missing
    or mismatching signature is rejected.
    """

    if not secret:
        return True
    if not raw_signature:
        return False
    return hmac.compare_digest(sign_payload(secret, payload), raw_signature)
