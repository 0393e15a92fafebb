"""
Order lifecycle: the status transition table, the transactional status
update, and the read side (listing, detail, invoice data, CSV export).

Side effects of a transition (emails, in-app notifications) are returned as
DomainEvents and dispatched by the caller once the update has committed.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple

from django.conf import settings
from django.db.models import Count, Q
from django.utils import timezone

from common.events import (
    DomainEvent,
    ORDER_CONFIRMATION_EMAIL,
    ORDER_SHIPPED_NOTIFICATION,
    SHIPPING_CONFIRMATION_EMAIL,
)
from common.exceptions import InvalidTransition, UnprocessableEntity, ValidationFailed
from common.pagination import clamp_page, clamp_per_page, page_meta
from common.tenancy import TenantContext
from common.transactions import run_atomic
from commerce.models import Order, OrderStatus, ShippingStatus
from inventory.services import lines_for_order, restore_stock
from platformapp.services.audit import record_audit

logger = logging.getLogger(__name__)

S = OrderStatus

ORDER_STATUS_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PENDING: frozenset({S.PAID, S.PAYMENT_FAILED, S.CANCELED}),
    S.PAYMENT_FAILED: frozenset({S.PAID, S.CANCELED}),
    S.PAID: frozenset({S.PROCESSING, S.CANCELED, S.REFUNDED}),
    S.PROCESSING: frozenset({S.SHIPPED, S.CANCELED, S.REFUNDED}),
    S.SHIPPED: frozenset({S.DELIVERED, S.CANCELED}),
    S.DELIVERED: frozenset({S.REFUNDED}),
    S.CANCELED: frozenset(),
    S.REFUNDED: frozenset(),
}

CSV_HEADER = (
    "Order Number", "Customer Name", "Customer Email", "Status", "Payment Status", "Payment Method",
    "Subtotal", "Tax", "Shipping", "Discount", "Total", "Items Count", "Created At",
)

SORT_FIELDS = {"created_at": "created_at", "total_amount": "total_amount", "order_number": "order_number"}


def is_valid_status_transition(current: str, new: str) -> bool:
    return new in ORDER_STATUS_TRANSITIONS.get(current, frozenset())


@dataclass
class StatusUpdateResult:
    order: Order
    previous_status: str
    events: List[DomainEvent] = field(default_factory=list)


def _order_events(order: Order, new_status: str) -> List[DomainEvent]:
    base = dict(entity_type="Order", entity_id=str(order.pk), store_id=str(order.store_id))
    if new_status == S.SHIPPED:
        payload = {"order_number": order.order_number, "tracking_number": order.tracking_number}
        return [
            DomainEvent(kind=SHIPPING_CONFIRMATION_EMAIL, payload=payload, **base),
            DomainEvent(kind=ORDER_SHIPPED_NOTIFICATION, payload=payload, **base),
        ]
    if new_status == S.PROCESSING:
        return [DomainEvent(kind=ORDER_CONFIRMATION_EMAIL, payload={"order_number": order.order_number}, **base)]
    return []


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing or ''}\n{timezone.now().isoformat()}: {note}".strip()


def _scoped_orders(store_id: Optional[str]):
    qs = Order.objects.filter(deleted_at__isnull=True)
    if store_id:
        qs = qs.filter(store_id=store_id)
    return qs


def update_order_status(order_id, new_status: str, *, store_id: Optional[str] = None,
                        tracking_number: Optional[str] = None, tracking_url: Optional[str] = None,
                        admin_note: Optional[str] = None, cancel_reason: Optional[str] = None,
                        context: Optional[TenantContext] = None) -> Optional[StatusUpdateResult]:
    """
    Move an order to `new_status`.

    Returns None when the order does not exist, is soft-deleted, or belongs to
    another store. Omitting `store_id` is reserved for super-admin callers.
    Raises InvalidTransition / ValidationFailed before anything is written.
    """
    if new_status not in ORDER_STATUS_TRANSITIONS:
        raise ValidationFailed(f"Unknown order status: {new_status}")
    new_status = S(new_status)

    def _apply() -> Optional[StatusUpdateResult]:
        order = _scoped_orders(store_id).select_for_update().filter(pk=order_id).first()
        if order is None:
            return None

        previous = order.status
        if not is_valid_status_transition(previous, new_status):
            raise InvalidTransition(previous, new_status)
        if new_status == S.SHIPPED and not (tracking_number or "").strip():
            raise ValidationFailed("Tracking number is required when marking order as shipped")

        now = timezone.now()
        order.status = new_status
        if new_status == S.SHIPPED:
            order.shipping_status = ShippingStatus.IN_TRANSIT
        elif new_status == S.DELIVERED:
            order.shipping_status = ShippingStatus.DELIVERED
            order.fulfilled_at = now
        elif new_status == S.CANCELED:
            order.shipping_status = ShippingStatus.PENDING
            order.canceled_at = now
            order.cancel_reason = cancel_reason or order.cancel_reason

        order.tracking_number = tracking_number or order.tracking_number
        order.tracking_url = tracking_url or order.tracking_url
        if admin_note:
            order.admin_note = _append_note(order.admin_note, admin_note)
        order.save()

        if new_status == S.CANCELED:
            restore_stock(str(order.store_id), lines_for_order(order), order.pk, reason="Cancellation")

        return StatusUpdateResult(order=order, previous_status=previous, events=_order_events(order, new_status))

    result = run_atomic(_apply)
    if result is None:
        return None

    audit = context.audit_kwargs() if context else {}
    audit["store_id"] = str(result.order.store_id)
    record_audit("UPDATE", "Order", str(result.order.pk),
                 changes={"status": {"old": result.previous_status, "new": new_status}}, **audit)
    logger.info("Order %s status %s -> %s", result.order.order_number, result.previous_status, new_status)
    return result


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderQuery:
    """Explicit filter spec for order listing; `store_id=None` means all stores (super admin)."""
    store_id: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    page: int = 1
    per_page: int = 10

    def normalized(self) -> "OrderQuery":
        return OrderQuery(
            store_id=self.store_id,
            status=self.status or None,
            search=(self.search or "").strip() or None,
            date_from=self.date_from,
            date_to=self.date_to,
            sort_by=self.sort_by if self.sort_by in SORT_FIELDS else "created_at",
            sort_order="asc" if self.sort_order == "asc" else "desc",
            page=clamp_page(self.page),
            per_page=clamp_per_page(self.per_page, default=10),
        )

    def to_filter(self) -> Q:
        cond = Q(deleted_at__isnull=True)
        if self.store_id:
            cond &= Q(store_id=self.store_id)
        if self.status:
            cond &= Q(status=self.status)
        if self.search:
            cond &= (
                Q(order_number__icontains=self.search)
                | Q(customer__first_name__icontains=self.search)
                | Q(customer__last_name__icontains=self.search)
                | Q(customer__email__icontains=self.search)
            )
        if self.date_from:
            cond &= Q(created_at__gte=self.date_from)
        if self.date_to:
            cond &= Q(created_at__lte=self.date_to)
        return cond

    def ordering(self) -> Tuple[str, ...]:
        column = SORT_FIELDS[self.sort_by]
        prefix = "-" if self.sort_order == "desc" else ""
        return (f"{prefix}{column}", "-id")


def _listing_queryset(query: OrderQuery):
    return (
        Order.objects.filter(query.to_filter())
        .select_related("customer", "user")
        .annotate(items_count=Count("items"))
        .order_by(*query.ordering())
    )


def list_orders(query: OrderQuery):
    """Returns (orders, meta)."""
    query = query.normalized()
    qs = _listing_queryset(query)
    total = qs.count()
    offset = (query.page - 1) * query.per_page
    return list(qs[offset:offset + query.per_page]), page_meta(query.page, query.per_page, total)


def get_order(order_id, store_id: Optional[str] = None) -> Optional[Order]:
    return (
        _scoped_orders(store_id)
        .select_related("customer", "user", "shipping_address", "billing_address", "store")
        .prefetch_related("items", "payments")
        .filter(pk=order_id)
        .first()
    )


def _address_block(address) -> Optional[dict]:
    if address is None:
        return None
    return {
        "name": address.full_name,
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "postalCode": address.postal_code,
        "country": address.country,
        "phone": address.phone,
    }


def get_invoice_data(order_id, store_id: Optional[str] = None) -> Optional[dict]:
    order = get_order(order_id, store_id)
    if order is None:
        return None

    store = order.store
    customer = order.customer
    user = order.user
    if customer:
        buyer_name = customer.full_name
    elif user:
        buyer_name = user.full_name or user.email
    else:
        buyer_name = "Guest Customer"

    return {
        "orderNumber": order.order_number,
        "invoiceNumber": order.order_number,
        "invoiceDate": order.created_at,
        "dueDate": order.created_at,
        "status": order.payment_status,
        "seller": {
            "name": store.name,
            "email": store.email,
            "phone": store.phone,
            "address": {
                "street": store.address or "",
                "city": store.city or "",
                "state": store.state or "",
                "postalCode": store.postal_code or "",
                "country": store.country,
            },
        },
        "buyer": {
            "name": buyer_name,
            "email": (customer.email if customer else None) or (user.email if user else ""),
            "phone": (customer.phone if customer else None) or (user.phone if user else ""),
            "address": _address_block(order.billing_address),
        },
        "items": [
            {
                "description": f"{i.product_name} - {i.variant_name}" if i.variant_name else i.product_name,
                "sku": i.sku,
                "quantity": i.quantity,
                "unitPrice": i.price,
                "subtotal": i.subtotal,
                "tax": i.tax_amount,
                "discount": i.discount_amount,
                "total": i.total_amount,
            }
            for i in order.items.all()
        ],
        "subtotal": order.subtotal,
        "taxAmount": order.tax_amount,
        "shippingAmount": order.shipping_amount,
        "discountAmount": order.discount_amount,
        "totalAmount": order.total_amount,
        "paymentMethod": order.payment_method or None,
        "paymentStatus": order.payment_status,
        "paymentGateway": order.payment_gateway or None,
        "shippingAddress": _address_block(order.shipping_address),
        "shippingMethod": order.shipping_method or None,
        "trackingNumber": order.tracking_number,
        "customerNote": order.customer_note,
        "adminNote": order.admin_note,
    }


def format_csv_rows(orders) -> str:
    """13 fixed columns; fields containing a comma are double-quoted; header only when empty."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for order in orders:
        items_count = getattr(order, "items_count", None)
        if items_count is None:
            items_count = order.items.count()
        writer.writerow([
            order.order_number,
            order.customer_name,
            order.customer_email,
            order.status,
            order.payment_status,
            order.payment_method or "N/A",
            str(order.subtotal),
            str(order.tax_amount),
            str(order.shipping_amount),
            str(order.discount_amount),
            str(order.total_amount),
            str(items_count),
            order.created_at.isoformat(),
        ])
    return buf.getvalue().rstrip("\n")


def export_orders_csv(query: OrderQuery) -> str:
    query = query.normalized()
    limit = getattr(settings, "ORDER_EXPORT_MAX_ROWS", 10000)
    orders = _listing_queryset(query)
    total = orders.count()
    if total > limit:
        raise UnprocessableEntity(
            f"Export matches {total} orders, more than the limit of {limit}. Narrow the filters and try again.",
            details={"total": total, "limit": limit},
        )
    return format_csv_rows(orders)
