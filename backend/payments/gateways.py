"""
Payment gateway adapters. Services talk to `get_gateway()` and never to a
provider SDK directly, so the backend is a setting
(`PAYMENT_GATEWAY_BACKEND`).
"""
from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe
from django.conf import settings
from django.core.cache import cache
from django.utils.module_loading import import_string

from common.exceptions import PaymentError


@dataclass
class GatewayIntent:
    id: str
    client_secret: Optional[str]
    amount_cents: int
    currency: str
    status: str
    metadata: Dict[str, str] = field(default_factory=dict)
    latest_charge: Optional[str] = None


class PaymentGateway:
    name = "GENERIC"

    def create_intent(self, *, amount_cents: int, currency: str, metadata: Dict[str, str],
                      customer_id: Optional[str] = None) -> GatewayIntent:
        raise NotImplementedError

    def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        raise NotImplementedError

    def create_refund(self, *, intent_id: str, amount_cents: int, reason: Optional[str] = None,
                      metadata: Optional[Dict[str, str]] = None) -> str:
        raise NotImplementedError

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        """Verify `signature` over the raw body; raise ValueError on mismatch."""
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    name = "STRIPE"

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        if not self.api_key:
            raise PaymentError("Stripe secret key not configured")
        self.api_version = getattr(settings, "STRIPE_API_VERSION", None) or None

    def _opts(self) -> Dict[str, Any]:
        opts = {"api_key": self.api_key}
        if self.api_version:
            opts["stripe_version"] = self.api_version
        return opts

    @staticmethod
    def _to_intent(pi) -> GatewayIntent:
        return GatewayIntent(
            id=pi["id"],
            client_secret=pi.get("client_secret"),
            amount_cents=pi["amount"],
            currency=pi["currency"],
            status=pi["status"],
            metadata=dict(pi.get("metadata") or {}),
            latest_charge=pi.get("latest_charge"),
        )

    def create_intent(self, *, amount_cents, currency, metadata, customer_id=None):
        params = dict(
            amount=amount_cents,
            currency=currency.lower(),
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
        if customer_id:
            params["customer"] = customer_id
        try:
            return self._to_intent(stripe.PaymentIntent.create(**params, **self._opts()))
        except stripe.StripeError as exc:
            raise PaymentError(f"Payment provider error: {exc.user_message or exc}") from exc

    def retrieve_intent(self, intent_id):
        try:
            return self._to_intent(stripe.PaymentIntent.retrieve(intent_id, **self._opts()))
        except stripe.StripeError as exc:
            raise PaymentError(f"Payment provider error: {exc.user_message or exc}") from exc

    def create_refund(self, *, intent_id, amount_cents, reason=None, metadata=None):
        params = dict(payment_intent=intent_id, amount=amount_cents, metadata=metadata or {})
        if reason in ("duplicate", "fraudulent", "requested_by_customer"):
            params["reason"] = reason
        try:
            return stripe.Refund.create(**params, **self._opts())["id"]
        except stripe.StripeError as exc:
            raise PaymentError(f"Payment provider error: {exc.user_message or exc}") from exc

    def construct_event(self, payload, signature, secret):
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as exc:
            raise ValueError(str(exc)) from exc
        return event.to_dict() if hasattr(event, "to_dict") else dict(event)


class SignedPayloadGateway(PaymentGateway):
    """
    Local gateway for development and tests: intents live in the Django cache
    and webhooks carry `t=<ts>,v1=<hmac-sha256(secret, "<ts>.<body>")>`, the
    same header shape Stripe uses.
    """
    name = "LOCAL"
    CACHE_PREFIX = "payments:intent:"
    TTL = 60 * 60 * 24
    TOLERANCE = 300

    def _key(self, intent_id: str) -> str:
        return f"{self.CACHE_PREFIX}{intent_id}"

    def create_intent(self, *, amount_cents, currency, metadata, customer_id=None):
        intent_id = f"pi_local_{uuid.uuid4().hex[:24]}"
        intent = GatewayIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:12]}",
            amount_cents=amount_cents,
            currency=currency.lower(),
            status="requires_payment_method",
            metadata=dict(metadata),
        )
        cache.set(self._key(intent_id), intent, self.TTL)
        return intent

    def retrieve_intent(self, intent_id):
        intent = cache.get(self._key(intent_id))
        if intent is None:
            raise PaymentError(f"Payment intent {intent_id} not found")
        return intent

    def create_refund(self, *, intent_id, amount_cents, reason=None, metadata=None):
        self.retrieve_intent(intent_id)
        return f"re_local_{uuid.uuid4().hex[:24]}"

    @staticmethod
    def sign(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
        ts = int(timestamp if timestamp is not None else time.time())
        mac = hmac.new(secret.encode(), msg=f"{ts}.".encode() + payload, digestmod=hashlib.sha256).hexdigest()
        return f"t={ts},v1={mac}"

    def construct_event(self, payload, signature, secret):
        if isinstance(payload, str):
            payload = payload.encode()
        parts = dict(p.split("=", 1) for p in (signature or "").split(",") if "=" in p)
        if "t" not in parts or "v1" not in parts:
            raise ValueError("Unable to extract timestamp and signatures from header")
        timestamp = int(parts["t"])
        expected = self.sign(payload, secret, timestamp).split("v1=", 1)[1]
        if not hmac.compare_digest(expected, parts["v1"]):
            raise ValueError("No signatures found matching the expected signature for payload")
        if timestamp < time.time() - self.TOLERANCE:
            raise ValueError("Timestamp outside the tolerance zone")
        return json.loads(payload.decode() or "{}")


def get_gateway() -> PaymentGateway:
    return import_string(settings.PAYMENT_GATEWAY_BACKEND)()
