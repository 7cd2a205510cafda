"""
Payment webhook signature checks

Stripe-style "t=...,v1=..." headers on inbound payment notifications:
- Signatures are compared with hmac.compare_digest
- The signed timestamp must fall inside the tolerance window
- Verification runs on the raw body, before any JSON parsing
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from .exceptions import InvalidSignatureError

logger = logging.getLogger(__name__)

# Default tolerance for the signed timestamp (seconds)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """Constant-time equality; empty values never match"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 of payload keyed with secret"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(
    timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[float] = None
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds
        now: Current time override (tests)

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
        current_time = int(now if now is not None else time.time())
        age = abs(current_time - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


def parse_signature_header(signature_header: str) -> tuple[Optional[str], list[str]]:
    """
    Parse a Stripe-style signature header.

    Format: "t=<timestamp>,v1=<signature>[,v1=<signature>...]"
    Several v1 entries are sent while a signing secret is being rolled.
    """
    timestamp = None
    signatures = []
    for item in signature_header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_payment_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
    tolerance: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """
    Verify a payment webhook signature.

    The signed message is "<timestamp>.<raw body>" and the expected signature is
    the hex HMAC-SHA256 of that message keyed with the endpoint secret.

    Raises:
        InvalidSignatureError: on any verification failure
    """
    if not secret:
        logger.error("❌ Webhook secret not configured - refusing to process payment webhook")
        raise InvalidSignatureError("Webhook secret not configured")

    if not signature_header:
        logger.warning("🚫 Payment webhook missing signature header")
        raise InvalidSignatureError("Missing webhook signature")

    timestamp, signatures = parse_signature_header(signature_header)

    if not timestamp or not signatures:
        logger.warning("🚫 Payment webhook invalid signature format")
        raise InvalidSignatureError("Invalid signature format")

    if not verify_timestamp(timestamp, max_age=tolerance, now=now):
        raise InvalidSignatureError("Webhook timestamp expired")

    signed_payload = timestamp.encode("utf-8") + b"." + payload
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    if not any(constant_time_compare(expected_signature, sig) for sig in signatures):
        logger.warning("🚫 Payment webhook signature mismatch")
        raise InvalidSignatureError("Invalid webhook signature")

    logger.debug("✅ Payment webhook signature verified")


def create_webhook_signature(secret: str, payload: bytes, timestamp: Optional[int] = None) -> str:
    """
    Create a signature header for testing or replaying webhooks locally.

    Returns:
        Header value in "t=<timestamp>,v1=<signature>" format
    """
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed_payload = str(timestamp).encode("utf-8") + b"." + payload
    return f"t={timestamp},v1={compute_hmac_sha256(secret, signed_payload)}"
