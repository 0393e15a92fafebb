from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Kinds understood by notificationsapp.dispatch
ORDER_CONFIRMATION_EMAIL = "order_confirmation"
SHIPPING_CONFIRMATION_EMAIL = "shipping_confirmation"
ORDER_SHIPPED_NOTIFICATION = "order_shipped"
LOW_STOCK_NOTIFICATION = "low_stock"
PAYMENT_FAILED_NOTIFICATION = "payment_failed"


@dataclass(frozen=True)
class DomainEvent:
    """
    A side effect requested by a committed mutation. Services return these
    instead of firing them; the caller dispatches after commit.
    """
    kind: str
    entity_type: str
    entity_id: str
    store_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
