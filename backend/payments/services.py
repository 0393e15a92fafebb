"""
Payment flows on top of the configured gateway: intent creation, webhook
outcome handling and refunds. Order status changes go through the order
service so the transition table is enforced here too.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from django.conf import settings
from django.utils import timezone

from common.events import DomainEvent, PAYMENT_FAILED_NOTIFICATION
from common.exceptions import NotFound, PaymentError, ValidationFailed, WebhookVerificationError
from common.transactions import run_atomic
from commerce.models import Order, OrderStatus, PaymentStatus
from commerce.services.orders import is_valid_status_transition, update_order_status
from .gateways import get_gateway
from .models import Payment

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED})


def to_cents(amount) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentIntentResult:
    client_secret: str
    payment_intent_id: str
    amount: Decimal
    currency: str


@dataclass
class PaymentOutcome:
    payment_count: int
    order: Optional[Order] = None
    events: List[DomainEvent] = field(default_factory=list)


def create_payment_intent(order_id, amount=None, *, store_id: Optional[str] = None,
                          currency: Optional[str] = None, customer_id: Optional[str] = None,
                          metadata: Optional[Dict[str, str]] = None) -> PaymentIntentResult:
    qs = Order.objects.filter(pk=order_id, deleted_at__isnull=True)
    if store_id:
        qs = qs.filter(store_id=store_id)
    order = qs.first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")

    if order.status not in PAYABLE_STATUSES:
        raise ValidationFailed(f"Order {order.order_number} cannot accept payment in status {order.status}")

    amount = order.total_amount if amount is None else Decimal(amount)
    if amount <= 0:
        raise ValidationFailed("Amount must be greater than zero")
    if amount != order.total_amount:
        raise ValidationFailed(
            f"Amount {amount} does not match order total {order.total_amount}",
            details={"amount": str(amount), "orderTotal": str(order.total_amount)},
        )
    currency = (currency or getattr(settings, "PAYMENT_DEFAULT_CURRENCY", "usd")).lower()

    gateway = get_gateway()
    intent = gateway.create_intent(
        amount_cents=to_cents(amount),
        currency=currency,
        metadata={
            "orderId": str(order.pk),
            "orderNumber": order.order_number,
            "storeId": str(order.store_id),
            **(metadata or {}),
        },
        customer_id=customer_id,
    )
    Payment.objects.create(
        store_id=order.store_id,
        order=order,
        amount=amount,
        currency=currency.upper(),
        status="PENDING",
        gateway=gateway.name,
        gateway_payment_id=intent.id,
        gateway_customer_id=customer_id,
        metadata=intent.metadata,
    )
    Order.objects.filter(pk=order.pk).update(payment_gateway=gateway.name, payment_method="CREDIT_CARD")
    logger.info("Payment intent %s created for order %s (%s %s)", intent.id, order.order_number, amount, currency)
    return PaymentIntentResult(
        client_secret=intent.client_secret or "",
        payment_intent_id=intent.id,
        amount=amount,
        currency=currency,
    )


def _order_id_from_intent(intent) -> str:
    order_id = (intent.metadata or {}).get("orderId")
    if not order_id:
        raise PaymentError("Order ID not found in payment intent metadata")
    return order_id


def _advance(order: Order, *targets: str) -> List[DomainEvent]:
    """Walk the order through `targets`, skipping steps the current state does not allow."""
    events: List[DomainEvent] = []
    for target in targets:
        if not is_valid_status_transition(order.status, target):
            continue
        result = update_order_status(order.pk, target, store_id=str(order.store_id))
        if result is not None:
            order = result.order
            events.extend(result.events)
    return events


def handle_payment_succeeded(intent_id: str) -> PaymentOutcome:
    intent = get_gateway().retrieve_intent(intent_id)
    order_id = _order_id_from_intent(intent)

    def _apply() -> PaymentOutcome:
        count = Payment.objects.filter(gateway_payment_id=intent_id).update(
            status="PAID", gateway_charge_id=intent.latest_charge, updated_at=timezone.now(),
        )
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        order.payment_status = PaymentStatus.PAID
        order.save(update_fields=["payment_status", "updated_at"])
        events = _advance(order, OrderStatus.PAID, OrderStatus.PROCESSING)
        return PaymentOutcome(payment_count=count, order=Order.objects.get(pk=order_id), events=events)

    outcome = run_atomic(_apply)
    logger.info("Payment %s succeeded for order %s", intent_id, order_id)
    return outcome


def handle_payment_failed(intent_id: str, failure_code: Optional[str] = None,
                          failure_message: Optional[str] = None) -> PaymentOutcome:
    intent = get_gateway().retrieve_intent(intent_id)
    order_id = _order_id_from_intent(intent)

    def _apply() -> PaymentOutcome:
        count = Payment.objects.filter(gateway_payment_id=intent_id).update(
            status="FAILED", failure_code=failure_code, failure_message=failure_message,
            updated_at=timezone.now(),
        )
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        order.payment_status = PaymentStatus.FAILED
        order.save(update_fields=["payment_status", "updated_at"])
        events = _advance(order, OrderStatus.PAYMENT_FAILED)
        events.append(DomainEvent(
            kind=PAYMENT_FAILED_NOTIFICATION,
            entity_type="Order",
            entity_id=str(order.pk),
            store_id=str(order.store_id),
            payload={"order_number": order.order_number, "failure_message": failure_message or ""},
        ))
        return PaymentOutcome(payment_count=count, order=Order.objects.get(pk=order_id), events=events)

    outcome = run_atomic(_apply)
    logger.warning("Payment %s failed for order %s: %s %s", intent_id, order_id, failure_code, failure_message)
    return outcome


def refund_payment(payment_id, *, store_id: Optional[str] = None, amount=None,
                   reason: Optional[str] = None) -> PaymentOutcome:
    qs = Payment.objects.select_related("order").filter(pk=payment_id)
    if store_id:
        qs = qs.filter(store_id=store_id)
    payment = qs.first()
    if payment is None:
        raise NotFound(f"Payment {payment_id} not found")
    if payment.status != "PAID":
        raise PaymentError("Can only refund completed payments")
    if not payment.gateway_payment_id:
        raise PaymentError("Payment intent ID not found")

    refund_amount = Decimal(amount) if amount is not None else payment.amount
    if refund_amount <= 0:
        raise ValidationFailed("Refund amount must be greater than zero")
    if refund_amount > payment.amount:
        raise ValidationFailed("Refund exceeds payment amount.")

    get_gateway().create_refund(
        intent_id=payment.gateway_payment_id,
        amount_cents=to_cents(refund_amount),
        reason=reason,
        metadata={"orderId": str(payment.order_id), "orderNumber": payment.order.order_number},
    )

    def _apply() -> PaymentOutcome:
        Payment.objects.filter(pk=payment.pk).update(
            status="REFUNDED", refunded_amount=refund_amount, refunded_at=timezone.now(),
            updated_at=timezone.now(),
        )
        order = Order.objects.select_for_update().get(pk=payment.order_id)
        order.payment_status = PaymentStatus.REFUNDED
        order.save(update_fields=["payment_status", "updated_at"])
        events: List[DomainEvent] = []
        if refund_amount == payment.amount:
            if is_valid_status_transition(order.status, OrderStatus.REFUNDED):
                events = _advance(order, OrderStatus.REFUNDED)
            elif is_valid_status_transition(order.status, OrderStatus.CANCELED):
                result = update_order_status(order.pk, OrderStatus.CANCELED, store_id=str(order.store_id),
                                             cancel_reason=reason or "Refund processed")
                events = result.events if result else []
        return PaymentOutcome(payment_count=1, order=Order.objects.get(pk=order.pk), events=events)

    outcome = run_atomic(_apply)
    logger.info("Refunded %s on payment %s (order %s)", refund_amount, payment.pk, payment.order.order_number)
    return outcome


def verify_webhook_signature(payload: bytes, signature: str, secret: Optional[str] = None) -> dict:
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    try:
        return get_gateway().construct_event(payload, signature, secret)
    except ValueError as exc:
        raise WebhookVerificationError(f"Webhook signature verification failed: {exc}") from exc


def get_payment_by_order_id(order_id) -> Optional[Payment]:
    return Payment.objects.filter(order_id=order_id).order_by("-created_at").first()
