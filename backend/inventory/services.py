"""
Stock accounting. Every quantity change on a product or variant writes an
InventoryLog row in the same transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from django.db.models import Q

from common.events import DomainEvent, LOW_STOCK_NOTIFICATION
from common.exceptions import InsufficientStock, NotFound, ValidationFailed
from common.pagination import clamp_page, clamp_per_page, page_meta
from common.transactions import run_atomic
from commerce.models import InventoryStatus, Product, ProductVariant
from .models import InventoryLog

logger = logging.getLogger(__name__)

ADJUSTMENT_TYPES = ("ADD", "REMOVE", "SET")


def determine_inventory_status(quantity: int, low_stock_threshold: int) -> str:
    if quantity <= 0:
        return InventoryStatus.OUT_OF_STOCK
    if quantity <= low_stock_threshold:
        return InventoryStatus.LOW_STOCK
    return InventoryStatus.IN_STOCK


@dataclass(frozen=True)
class StockAdjustment:
    product_id: str
    quantity: int
    type: str
    reason: str
    note: Optional[str] = None
    user_id: Optional[str] = None


@dataclass
class StockAdjustmentResult:
    product: Product
    log: InventoryLog
    previous_status: str
    events: List[DomainEvent] = field(default_factory=list)


@dataclass(frozen=True)
class StockLine:
    product_id: str
    quantity: int
    variant_id: Optional[str] = None


def _low_stock_event(product, store_id) -> DomainEvent:
    return DomainEvent(
        kind=LOW_STOCK_NOTIFICATION,
        entity_type="Product",
        entity_id=str(product.pk),
        store_id=str(store_id),
        payload={
            "name": product.name,
            "quantity": product.inventory_qty,
            "threshold": product.low_stock_threshold,
        },
    )


def _crossed_into_low_stock(previous_status: str, product) -> bool:
    return previous_status != "LOW_STOCK" and product.inventory_status == "LOW_STOCK"


def adjust_stock(store_id: str, adjustment: StockAdjustment) -> StockAdjustmentResult:
    """
    ADD / REMOVE / SET a product's on-hand quantity under a row lock.
    Crossing into LOW_STOCK yields a low-stock event for the store admins.
    """
    if adjustment.quantity < 0:
        raise ValidationFailed("Quantity must be non-negative")
    kind = (adjustment.type or "").upper()
    if kind not in ADJUSTMENT_TYPES:
        raise ValidationFailed(f"Invalid adjustment type: {adjustment.type}")

    def _apply():
        product = (
            Product.objects.select_for_update()
            .filter(pk=adjustment.product_id, store_id=store_id, deleted_at__isnull=True)
            .first()
        )
        if product is None:
            raise NotFound("Product not found or does not belong to this store")

        previous_qty = product.inventory_qty
        previous_status = product.inventory_status
        if kind == "ADD":
            new_qty = previous_qty + adjustment.quantity
        elif kind == "REMOVE":
            new_qty = previous_qty - adjustment.quantity
            if new_qty < 0:
                raise ValidationFailed(
                    f"Cannot remove {adjustment.quantity} units. Current stock: {previous_qty}"
                )
        else:
            new_qty = adjustment.quantity

        product.inventory_qty = new_qty
        product.save(update_fields=["inventory_qty", "updated_at"])
        log = InventoryLog.objects.create(
            store_id=store_id,
            product=product,
            previous_qty=previous_qty,
            new_qty=new_qty,
            change_qty=new_qty - previous_qty,
            reason=adjustment.reason,
            note=adjustment.note,
            user_id=adjustment.user_id,
        )
        return StockAdjustmentResult(product=product, log=log, previous_status=previous_status)

    result = run_atomic(_apply)
    if _crossed_into_low_stock(result.previous_status, result.product):
        result.events.append(_low_stock_event(result.product, store_id))
    logger.info("Stock %s %s on product %s: %s -> %s", kind, adjustment.quantity, result.product.pk,
                result.log.previous_qty, result.log.new_qty)
    return result


def _move_stock(store_id: str, line: StockLine, delta: int, reason: str, note: str,
                *, strict: bool) -> Tuple[Optional[object], Optional[str]]:
    """
    Apply `delta` to the variant (when it tracks its own stock) or the product.
    Must run inside a transaction. Returns (product, previous_status).
    """
    product = Product.objects.select_for_update().filter(pk=line.product_id, store_id=store_id).first()
    if product is None:
        if strict:
            raise NotFound(f"Product {line.product_id} not found")
        return None, None

    variant = None
    if line.variant_id:
        variant = ProductVariant.objects.select_for_update().filter(pk=line.variant_id, product=product).first()

    if variant is not None:
        if not variant.track_inventory:
            return product, product.inventory_status
        previous = variant.stock
        new_qty = previous + delta
        if new_qty < 0:
            raise InsufficientStock(f"{product.name} - {variant.name}", previous, -delta)
        variant.stock = new_qty
        variant.save(update_fields=["stock", "updated_at"])
    else:
        if not product.track_inventory:
            return product, product.inventory_status
        previous = product.inventory_qty
        new_qty = previous + delta
        if new_qty < 0:
            raise InsufficientStock(product.name, previous, -delta)

    previous_status = product.inventory_status
    if variant is None:
        product.inventory_qty = new_qty
        product.save(update_fields=["inventory_qty", "updated_at"])

    InventoryLog.objects.create(
        store_id=store_id,
        product=product,
        variant=variant,
        previous_qty=previous,
        new_qty=new_qty,
        change_qty=delta,
        reason=reason,
        note=note,
    )
    return product, previous_status


def deduct_stock(store_id: str, lines: Iterable[StockLine], order_id) -> List[DomainEvent]:
    """Sale: decrement stock for each line. Call inside the order's transaction."""
    events = []
    for line in lines:
        product, previous_status = _move_stock(store_id, line, -int(line.quantity), "Sale",
                                               f"Order {order_id}", strict=True)
        if product is not None and _crossed_into_low_stock(previous_status, product):
            events.append(_low_stock_event(product, store_id))
    return events


def restore_stock(store_id: str, lines: Iterable[StockLine], order_id, reason: str = "Cancellation") -> None:
    """Put stock back for a canceled/refunded order; products deleted since are skipped."""
    for line in lines:
        _move_stock(store_id, line, int(line.quantity), reason, f"Order {order_id}", strict=False)


def lines_for_order(order) -> List[StockLine]:
    return [
        StockLine(product_id=str(item.product_id), quantity=item.quantity,
                  variant_id=str(item.variant_id) if item.variant_id else None)
        for item in order.items.all()
        if item.product_id
    ]


def get_inventory_levels(store_id: str, *, search: Optional[str] = None, category_id=None, brand_id=None,
                         low_stock_only: bool = False, page=1, per_page=20):
    page = clamp_page(page)
    per_page = clamp_per_page(per_page)
    qs = Product.objects.alive().filter(store_id=store_id).select_related("category", "brand")
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(sku__icontains=search))
    if category_id:
        qs = qs.filter(category_id=category_id)
    if brand_id:
        qs = qs.filter(brand_id=brand_id)
    if low_stock_only:
        qs = qs.filter(inventory_status__in=["LOW_STOCK", "OUT_OF_STOCK"])
    qs = qs.order_by("name")
    total = qs.count()
    offset = (page - 1) * per_page
    return list(qs[offset:offset + per_page]), page_meta(page, per_page, total)


def get_low_stock_items(store_id: str):
    return list(
        Product.objects.alive()
        .filter(store_id=store_id, track_inventory=True, inventory_status__in=["LOW_STOCK", "OUT_OF_STOCK"])
        .select_related("category", "brand")
        .order_by("inventory_status", "inventory_qty")
    )


def get_inventory_history(store_id: str, product_id, limit: int = 50):
    return list(
        InventoryLog.objects.filter(store_id=store_id, product_id=product_id)
        .select_related("product")
        .order_by("-created_at")[:max(1, min(int(limit), 500))]
    )
