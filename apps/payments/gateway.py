"""
Payment processor integration.

Hosted checkout sessions are created over the processor's REST API with
``requests``; webhook signatures use the ``t=<unix>,v1=<hex>`` header
scheme (HMAC-SHA256 over ``"<t>.<raw body>"``).

Without an API key, or with DEBUG on, sessions are emulated locally so
the booking flow can be exercised end to end in development.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from typing import Dict, Optional

import requests
from django.conf import settings  # type: ignore

from shared.domain.value_objects import Money

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """Processor unreachable or refused to create the session."""


class SignatureVerificationError(Exception):
    """Webhook signature missing, malformed, stale or wrong."""


def _api_key() -> str:
    return getattr(settings, "PAYMENT_API_KEY", "")


def _emulated() -> bool:
    return settings.DEBUG or not _api_key()


def open_checkout_session(
    *,
    order_code: str,
    amount: Money,
    description: str,
    metadata: Dict[str, str],
    success_url: str,
    cancel_url: str,
    customer_email: str = "",
) -> dict:
    """
    Ask the processor for a hosted checkout page charging ``amount``.

    Returns:
        dict: ``session_id`` and ``checkout_url`` of the created session.
    """
    logger.info(f"Opening checkout session for {order_code}: {amount}")

    if _emulated():
        logger.warning("Payment API emulation in use (DEBUG or no PAYMENT_API_KEY)")
        session_id = f"cs_emul_{uuid.uuid4().hex[:24]}"
        base = getattr(settings, "PAYMENT_EMULATION_CHECKOUT_URL", "https://checkout.example.test/pay/")
        return {"session_id": session_id, "checkout_url": f"{base}{session_id}"}

    form = {
        "mode": "payment",
        "client_reference_id": order_code,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "line_items[0][quantity]": 1,
        "line_items[0][price_data][currency]": amount.currency.lower(),
        "line_items[0][price_data][unit_amount]": amount.minor_units,
        "line_items[0][price_data][product_data][name]": description,
    }
    for key, value in metadata.items():
        form[f"metadata[{key}]"] = value
    if customer_email:
        form["customer_email"] = customer_email

    headers = {
        "Authorization": f"Bearer {_api_key()}",
        "Idempotency-Key": f"checkout-{order_code}-{uuid.uuid4().hex[:8]}",
    }
    base_url = getattr(settings, "PAYMENT_API_BASE_URL", "https://api.stripe.com/v1/")
    timeout = getattr(settings, "PAYMENT_API_TIMEOUT", 15)

    try:
        response = requests.post(f"{base_url}checkout/sessions", data=form, headers=headers, timeout=timeout)
        response.raise_for_status()
        result = response.json()
    except requests.exceptions.RequestException as e:
        logger.error(f"Payment API request failed for {order_code}: {e}")
        raise PaymentGatewayError(f"Payment processor unavailable: {e}") from e
    except ValueError as e:
        logger.error(f"Payment API returned a non-JSON body for {order_code}")
        raise PaymentGatewayError("Payment processor returned an invalid response") from e

    session_id, checkout_url = result.get("id"), result.get("url")
    if not session_id or not checkout_url:
        error_msg = (result.get("error") or {}).get("message", "Unknown error")
        logger.error(f"Payment API refused session for {order_code}: {error_msg}")
        raise PaymentGatewayError(f"Payment processor error: {error_msg}")

    logger.info(f"Checkout session {session_id} created for {order_code}")
    return {"session_id": session_id, "checkout_url": checkout_url}


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def build_signature_header(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(payload, secret, timestamp)}"


def verify_webhook_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> None:
    """Raises SignatureVerificationError unless one v1 signature matches within tolerance."""
    if not secret:
        raise SignatureVerificationError("Webhook secret is not configured")
    if not header:
        raise SignatureVerificationError("Signature header missing")

    timestamp = None
    candidates = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            candidates.append(value)

    try:
        timestamp = int(timestamp)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise SignatureVerificationError("Signature timestamp missing or invalid") from None
    if not candidates:
        raise SignatureVerificationError("No v1 signature in header")

    now = time.time() if now is None else now
    if tolerance_seconds and abs(now - timestamp) > tolerance_seconds:
        raise SignatureVerificationError("Signature timestamp outside tolerance")

    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
        raise SignatureVerificationError("Signature mismatch")
