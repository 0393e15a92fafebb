"""
Transactional email. Messages are recorded as EmailDispatch rows and sent
by a Celery task; a cache key per (entity, event) suppresses duplicates for
EMAIL_DEDUP_TTL_SECONDS.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.cache import cache
from django.core.serializers.json import DjangoJSONEncoder

from .models import EmailDispatch
from .tasks import deliver_email

logger = logging.getLogger(__name__)

ORDER_CONFIRMATION = "order_confirmation"
SHIPPING_CONFIRMATION = "shipping_confirmation"


def dedup_key(entity_id, event: str) -> str:
    return f"email:{entity_id}:{event}"


def queue_email(to_address: str, subject: str, template: str, context: Dict[str, Any], *,
                store_id: Optional[str] = None, entity_type: Optional[str] = None,
                entity_id: Optional[str] = None, event: Optional[str] = None) -> Optional[EmailDispatch]:
    """Returns the dispatch, or None when the same entity/event was already queued within the TTL."""
    key = dedup_key(entity_id, event) if entity_id and event else None
    if key and not cache.add(key, 1, timeout=getattr(settings, "EMAIL_DEDUP_TTL_SECONDS", 86400)):
        logger.info("Skipping duplicate email %s", key)
        return None

    dispatch = EmailDispatch.objects.create(
        store_id=store_id,
        to_address=to_address,
        subject=subject,
        template=template,
        context_json=json.loads(json.dumps(context, cls=DjangoJSONEncoder)),
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id else None,
        event=event,
        dedup_key=key,
    )
    deliver_email.delay(dispatch.pk)
    return dispatch


def _address_lines(address) -> Dict[str, str]:
    if address is None:
        return {}
    return {
        "name": address.full_name,
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }


def _order_context(order) -> Dict[str, Any]:
    store = order.store
    return {
        "store_name": store.name,
        "customer_name": order.customer_name,
        "order_number": order.order_number,
        "order_date": order.created_at,
        "items": [
            {"name": i.product_name, "variant": i.variant_name, "quantity": i.quantity,
             "price": i.price, "total": i.total_amount}
            for i in order.items.all()
        ],
        "subtotal": order.subtotal,
        "tax_amount": order.tax_amount,
        "shipping_amount": order.shipping_amount,
        "discount_amount": order.discount_amount,
        "total_amount": order.total_amount,
        "currency": order.currency,
        "shipping_address": _address_lines(order.shipping_address),
        "tracking_number": order.tracking_number,
        "tracking_url": order.tracking_url,
        "order_url": f"{settings.STOREFRONT_URL.rstrip('/')}/orders/{order.pk}",
    }


def _send_for_order(order, event: str, subject: str) -> Optional[EmailDispatch]:
    recipient = order.customer_email
    if not recipient:
        logger.warning("Order %s has no customer email; %s not sent", order.order_number, event)
        return None
    return queue_email(
        recipient, subject, event, _order_context(order),
        store_id=str(order.store_id), entity_type="Order", entity_id=str(order.pk), event=event,
    )


def send_order_confirmation(order) -> Optional[EmailDispatch]:
    return _send_for_order(order, ORDER_CONFIRMATION, f"Order Confirmation - {order.order_number}")


def send_shipping_confirmation(order) -> Optional[EmailDispatch]:
    return _send_for_order(order, SHIPPING_CONFIRMATION, f"Your Order Has Shipped - {order.order_number}")
