"""Product rules shared by the admin API: per-store SKU/slug uniqueness and guarded deletes."""
from __future__ import annotations

import logging

from common.exceptions import Conflict, NotFound
from commerce.models import OrderItem, OrderStatus, Product

logger = logging.getLogger(__name__)

OPEN_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PROCESSING)


def ensure_unique_sku(store_id: str, sku: str, exclude_id=None) -> None:
    qs = Product.objects.alive().filter(store_id=store_id, sku=sku)
    if exclude_id:
        qs = qs.exclude(pk=exclude_id)
    if qs.exists():
        raise Conflict(f"SKU '{sku}' already exists in this store")


def get_product(product_id, store_id: str) -> Product:
    product = Product.objects.alive().filter(pk=product_id, store_id=store_id).first()
    if product is None:
        raise NotFound("Product not found")
    return product


def delete_product(product_id, store_id: str) -> Product:
    product = get_product(product_id, store_id)
    open_orders = (
        OrderItem.objects.filter(product=product, order__status__in=OPEN_ORDER_STATUSES,
                                 order__deleted_at__isnull=True)
        .values("order_id").distinct().count()
    )
    if open_orders:
        raise Conflict(
            f"Cannot delete product with {open_orders} open order(s). "
            "Fulfil or cancel those orders first."
        )
    product.soft_delete()
    logger.info("Product %s soft-deleted in store %s", product.pk, store_id)
    return product
