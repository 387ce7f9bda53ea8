"""Stripe payment_intent.succeeded webhook handling."""

import hashlib
import hmac
import logging
import time
from typing import Any, Optional

from pydantic import ValidationError

from healthy_meals.common.exceptions import PaymentCallbackError
from healthy_meals.payments.schemas import TokenPurchase

logger = logging.getLogger(__name__)

TOKEN_PURCHASE_TYPE = "token_purchase"


def verify_stripe_signature(
    payload: bytes,
    signature_header: str,
    webhook_secret: str,
    tolerance: int = 300,
    now: Optional[float] = None,
) -> bool:
    """Verify Stripe webhook signature (v1 scheme).

    Stripe sends: t=<timestamp>,v1=<signature>[,v1=<signature>...]
    Signatures older than ``tolerance`` seconds are rejected; 0 disables the
    age check.
    """
    if not signature_header or not webhook_secret:
        return False

    timestamp = ""
    signatures = []
    for item in signature_header.split(","):
        key, _, value = item.partition("=")
        key, value = key.strip(), value.strip()
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    if not timestamp or not signatures:
        return False

    try:
        signed_at = int(timestamp)
    except ValueError:
        return False
    if tolerance and abs((now or time.time()) - signed_at) > tolerance:
        return False

    signed_payload = f"{timestamp}.".encode() + payload
    computed = hmac.new(
        webhook_secret.encode(),
        signed_payload,
        hashlib.sha256,
    ).hexdigest()

    return any(hmac.compare_digest(computed, sig) for sig in signatures)


def event_object(event_data: dict[str, Any]) -> dict[str, Any]:
    """Return ``data.object`` of an event, or {} when it is missing or malformed."""
    data = event_data.get("data")
    if not isinstance(data, dict):
        return {}
    obj = data.get("object")
    return obj if isinstance(obj, dict) else {}


def parse_token_purchase(event_data: dict[str, Any]) -> Optional[TokenPurchase]:
    """Extract a token purchase from a payment_intent.succeeded event.

    Returns None for events that are not token purchases (acknowledged and
    ignored). Raises PaymentCallbackError when a token purchase event lacks
    usable metadata.
    """
    event_type = event_data.get("type", "")
    if event_type != "payment_intent.succeeded":
        logger.debug("Ignoring Stripe event type: %s", event_type)
        return None

    intent = event_object(event_data)
    metadata = intent.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    if metadata.get("purchaseType") != TOKEN_PURCHASE_TYPE:
        logger.info("Skipping non-token payment %s", intent.get("id", ""))
        return None

    user_id = metadata.get("userId", "")
    token_amount = metadata.get("tokenAmount", "")
    if not user_id or not token_amount:
        raise PaymentCallbackError("Token purchase missing userId/tokenAmount metadata")

    try:
        return TokenPurchase(
            user_id=user_id,
            token_amount=int(token_amount),
            payment_intent_id=intent.get("id", ""),
        )
    except (ValueError, ValidationError) as e:
        raise PaymentCallbackError(f"Invalid token purchase metadata: {e}") from e
