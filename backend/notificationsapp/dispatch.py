"""
Runs the side effects that services hand back as DomainEvents. Called by
views after the owning transaction has committed; a failed side effect is
logged and counted, never raised back into the request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List

from common.events import (
    DomainEvent,
    LOW_STOCK_NOTIFICATION,
    ORDER_CONFIRMATION_EMAIL,
    ORDER_SHIPPED_NOTIFICATION,
    PAYMENT_FAILED_NOTIFICATION,
    SHIPPING_CONFIRMATION_EMAIL,
)
from commerce.models import Order
from . import emails, services

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def _order(event: DomainEvent) -> Order:
    return (
        Order.objects.select_related("store", "customer", "user", "shipping_address")
        .prefetch_related("items")
        .get(pk=event.entity_id)
    )


def _order_confirmation(event: DomainEvent) -> None:
    emails.send_order_confirmation(_order(event))


def _shipping_confirmation(event: DomainEvent) -> None:
    emails.send_shipping_confirmation(_order(event))


def _order_shipped(event: DomainEvent) -> None:
    order = _order(event)
    user_id = order.user_id or (order.customer.user_id if order.customer_id else None)
    if not user_id:
        return
    tracking = event.payload.get("tracking_number")
    services.create_notification(
        user_id,
        "Order Shipped",
        f"Your order {order.order_number} has shipped" + (f" (tracking: {tracking})" if tracking else ""),
        type="order_update",
        store_id=str(order.store_id),
        link_url=f"/orders/{order.pk}",
    )


def _low_stock(event: DomainEvent) -> None:
    p = event.payload
    services.notify_store_admins(
        event.store_id,
        "Low Stock Alert",
        f"{p['name']} is running low ({p['quantity']} remaining, threshold: {p['threshold']})",
        type="low_stock",
        link_url=f"/products/{event.entity_id}",
    )


def _payment_failed(event: DomainEvent) -> None:
    p = event.payload
    reason = p.get("failure_message")
    services.notify_store_admins(
        event.store_id,
        "Payment Failed",
        f"Payment for order {p.get('order_number')} failed" + (f": {reason}" if reason else ""),
        type="payment_failed",
        link_url=f"/orders/{event.entity_id}",
    )


HANDLERS: Dict[str, Callable[[DomainEvent], None]] = {
    ORDER_CONFIRMATION_EMAIL: _order_confirmation,
    SHIPPING_CONFIRMATION_EMAIL: _shipping_confirmation,
    ORDER_SHIPPED_NOTIFICATION: _order_shipped,
    LOW_STOCK_NOTIFICATION: _low_stock,
    PAYMENT_FAILED_NOTIFICATION: _payment_failed,
}


def dispatch_events(events: Iterable[DomainEvent]) -> DispatchReport:
    report = DispatchReport()
    for event in events or ():
        handler = HANDLERS.get(event.kind)
        if handler is None:
            logger.warning("No handler for event kind %s", event.kind)
            continue
        try:
            handler(event)
            report.sent += 1
        except Exception as exc:
            report.failed += 1
            report.errors.append(f"{event.kind}:{event.entity_id}: {exc}")
            logger.exception("Side effect %s for %s %s failed", event.kind, event.entity_type, event.entity_id)
    return report
