"""
Webhook Security Module

Signature helpers for inbound payment-gateway webhooks.
- Constant-time signature comparison
- Midtrans notification signature (SHA-512 over order_id + status_code + gross_amount + server key)
- Amount normalisation so "102000.00" and 102000 compare equal
"""

import hashlib
import hmac
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

logger = logging.getLogger(__name__)

MIDTRANS_REQUIRED_FIELDS = ("order_id", "status_code", "gross_amount", "signature_key", "transaction_status")


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_midtrans_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    payload = f"{order_id}{status_code}{gross_amount}{server_key}".encode("utf-8")
    return hashlib.sha512(payload).hexdigest()


def missing_midtrans_fields(payload: dict) -> list[str]:
    return [field for field in MIDTRANS_REQUIRED_FIELDS if not payload.get(field)]


def verify_midtrans_signature(payload: dict, server_key: str) -> bool:
    """Recompute the notification signature and compare it to signature_key"""
    if not server_key:
        logger.error("❌ MIDTRANS_SERVER_KEY not configured, rejecting webhook")
        return False

    expected = compute_midtrans_signature(
        str(payload.get("order_id", "")),
        str(payload.get("status_code", "")),
        str(payload.get("gross_amount", "")),
        server_key,
    )
    is_valid = constant_time_compare(expected, str(payload.get("signature_key", "")))
    if not is_valid:
        logger.warning(f"🚫 Midtrans signature mismatch for order_id {payload.get('order_id')}")
    return is_valid


def parse_amount(value) -> Optional[Decimal]:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def amounts_match(a, b) -> bool:
    left, right = parse_amount(a), parse_amount(b)
    return left is not None and right is not None and left == right
