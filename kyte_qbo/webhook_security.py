"""
Webhook Security Module

Signature verification for QuickBooks (Intuit) webhooks.
- Signature is checked over the raw request bytes, before any JSON parsing
- Constant-time signature comparison
- Rejections happen before any business logic runs
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Request

from . import config
from .exceptions import KyteBridgeError, SignatureError, ValidationError

logger = logging.getLogger(__name__)

INTUIT_SIGNATURE_HEADER = "intuit-signature"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def compute_hmac_sha256_base64(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload and return base64 encoded"""
    signature = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(signature).decode("utf-8")


def verify_intuit_signature(signature: Optional[str], raw_body: bytes, secret: Optional[str]) -> bool:
    """
    Check an ``intuit-signature`` header against the raw body.

    Args:
        signature: Header value (base64 HMAC-SHA256)
        raw_body: Request body exactly as received
        secret: Verifier token from the Intuit developer dashboard

    Returns:
        True only when every input is present and the signature matches
    """
    if not signature or not secret or raw_body is None:
        return False
    expected = compute_hmac_sha256_base64(secret, raw_body)
    return constant_time_compare(expected, signature.strip())


async def verify_intuit_webhook(request: Request, secret: Optional[str]) -> bytes:
    """
    Verify an Intuit webhook request and return its raw body.

    Raises:
        SignatureError: 401 when the signature header is missing, 403 on mismatch
        KyteBridgeError: 500 when no verifier token is configured
        ValidationError: 400 when the request has no body
    """
    signature = request.headers.get(INTUIT_SIGNATURE_HEADER, "")
    if not signature:
        logger.error("❌ Missing intuit-signature header")
        raise SignatureError("Missing webhook signature", status_code=401, code="MISSING_SIGNATURE")

    if not secret:
        logger.error("❌ QBO_WEBHOOK_VERIFIER_TOKEN is not configured")
        raise KyteBridgeError("Webhook verifier token is not configured", code="WEBHOOK_NOT_CONFIGURED")

    # Get raw body BEFORE any parsing
    raw_body = await request.body()
    if not raw_body:
        logger.error("❌ Webhook request has no raw body")
        raise ValidationError("Raw request body is required for signature verification")

    if not verify_intuit_signature(signature, raw_body, secret):
        logger.warning(f"🚫 Intuit webhook signature mismatch ({len(raw_body)} bytes)")
        raise SignatureError("Invalid webhook signature")

    logger.info("✅ Intuit webhook signature verified")
    return raw_body


async def intuit_webhook_body(request: Request) -> bytes:
    """FastAPI dependency: verified raw body of an Intuit webhook"""
    return await verify_intuit_webhook(request, config.QBO_WEBHOOK_VERIFIER_TOKEN)
