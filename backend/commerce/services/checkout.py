"""
Checkout: cart validation against live catalog data, shipping quotes, tax,
order numbering and order creation.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from django.db.models import F
from django.utils import timezone

from common.events import DomainEvent
from common.exceptions import ValidationFailed
from common.transactions import run_retryable
from commerce.models import Address, Customer, Order, OrderItem, Product, ProductVariant, ZERO
from inventory.services import StockLine, deduct_stock
from platformapp.services.audit import record_audit

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
FREE_SHIPPING_THRESHOLD = Decimal("50.00")

# US state -> rate; everything else (and every non-US destination) is untaxed
US_STATE_TAX_RATES = {
    "CA": Decimal("0.0725"),
    "NY": Decimal("0.08"),
    "TX": Decimal("0.0625"),
    "FL": Decimal("0.06"),
}


def to_cents(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartItem:
    product_id: str
    quantity: int
    variant_id: Optional[str] = None
    price: Optional[Decimal] = None  # client-side hint; validate_cart re-prices from the catalog


@dataclass(frozen=True)
class ValidatedCartItem:
    product_id: str
    product_name: str
    sku: str
    price: Decimal
    quantity: int
    available_stock: int
    subtotal: Decimal
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    image: str = ""


@dataclass
class ValidatedCart:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    items: List[ValidatedCartItem] = field(default_factory=list)
    subtotal: Decimal = ZERO


@dataclass(frozen=True)
class ShippingAddress:
    country: str
    city: str
    postal_code: str
    address1: str
    state: Optional[str] = None
    address2: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    phone: str = ""


@dataclass(frozen=True)
class ShippingOption:
    id: str
    name: str
    description: str
    cost: Decimal
    estimated_days: str


@dataclass
class CheckoutInput:
    store_id: str
    items: Sequence[CartItem]
    shipping_address: ShippingAddress
    shipping_method: str
    shipping_cost: Decimal
    billing_address: Optional[ShippingAddress] = None
    customer_id: Optional[str] = None
    user_id: Optional[str] = None
    discount_code: Optional[str] = None
    customer_note: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class CheckoutResult:
    order: Order
    events: List[DomainEvent] = field(default_factory=list)


def _stock_key(item) -> tuple:
    return str(item.product_id), str(item.variant_id) if item.variant_id else None


def validate_cart(store_id: str, items: Sequence[CartItem]) -> ValidatedCart:
    """
    Re-price every line from the catalog and check stock. Lines that fail are
    reported in `errors` and left out of `items`; nothing is written.
    """
    errors: List[str] = []
    validated: List[ValidatedCartItem] = []

    # Repeated lines for the same product or variant draw on the same stock.
    requested = defaultdict(int)
    for item in items:
        requested[_stock_key(item)] += max(int(item.quantity or 0), 0)
    short = set()

    product_ids = {str(i.product_id) for i in items}
    products = {
        str(p.pk): p
        for p in Product.objects.alive().filter(store_id=store_id, pk__in=product_ids, is_published=True)
    }

    for item in items:
        product = products.get(str(item.product_id))
        if product is None:
            errors.append(f"Product {item.product_id} not found or unavailable")
            continue

        variant = None
        if item.variant_id:
            variant = ProductVariant.objects.alive().filter(pk=item.variant_id, product=product).first()
            if variant is None:
                errors.append(f"Variant {item.variant_id} not found for product {product.name}")
                continue

        if variant is not None:
            price = variant.effective_price
            available = variant.stock
            tracked = variant.track_inventory
        else:
            price = product.price
            available = product.inventory_qty
            tracked = product.track_inventory

        quantity = int(item.quantity or 0)
        if quantity <= 0:
            errors.append(f"Invalid quantity for {product.name}")
            continue
        key = _stock_key(item)
        if tracked and available < requested[key]:
            if key not in short:
                short.add(key)
                errors.append(
                    f"Insufficient stock for {product.name}. Available: {available}, Requested: {requested[key]}"
                )
            continue

        validated.append(ValidatedCartItem(
            product_id=str(product.pk),
            variant_id=str(variant.pk) if variant else None,
            product_name=product.name,
            variant_name=variant.name if variant else None,
            sku=variant.sku if variant else product.sku,
            image=product.thumbnail_url or "",
            price=Decimal(price),
            quantity=quantity,
            available_stock=available,
            subtotal=to_cents(Decimal(price) * quantity),
        ))

    subtotal = to_cents(sum((i.subtotal for i in validated), ZERO))
    return ValidatedCart(is_valid=not errors and bool(validated), errors=errors, items=validated,
                         subtotal=subtotal)


def _cart_value(items: Sequence) -> Decimal:
    total = ZERO
    for item in items:
        price = getattr(item, "price", None)
        if price is not None:
            total += Decimal(price) * int(item.quantity)
    return to_cents(total)


def calculate_shipping(address: ShippingAddress, items: Sequence, *,
                       store_id: Optional[str] = None) -> List[ShippingOption]:
    """
    Flat-rate quotes. Carrier integration is out of scope. With `store_id` the
    free-shipping threshold is measured on catalog prices, otherwise on the
    prices the items already carry.
    """
    domestic = (address.country or "").upper() == "US"
    if domestic:
        options = [
            ShippingOption("standard", "Standard Shipping", "5-7 business days", Decimal("5.99"), "5-7 days"),
            ShippingOption("express", "Express Shipping", "2-3 business days", Decimal("12.99"), "2-3 days"),
        ]
    else:
        options = [
            ShippingOption("standard", "International Standard", "10-15 business days",
                           Decimal("15.99"), "10-15 days"),
            ShippingOption("express", "International Express", "5-7 business days",
                           Decimal("29.99"), "5-7 days"),
        ]
    if domestic:
        cart_value = validate_cart(store_id, items).subtotal if store_id else _cart_value(items)
        if cart_value >= FREE_SHIPPING_THRESHOLD:
            options.append(ShippingOption("free", "Free Shipping", "7-10 business days", ZERO, "7-10 days"))
    return options


def calculate_tax(address: ShippingAddress, subtotal) -> Decimal:
    if (address.country or "").upper() != "US":
        return ZERO
    rate = US_STATE_TAX_RATES.get((address.state or "").upper())
    if rate is None:
        return ZERO
    return to_cents(Decimal(subtotal) * rate)


def format_order_number(existing_count: int) -> str:
    return f"ORD-{existing_count + 1:05d}"


def generate_order_number(store_id: str) -> str:
    # Count-based; two concurrent checkouts can draw the same number and the
    # second insert then fails on uniq_order_number_per_store.
    return format_order_number(Order.objects.filter(store_id=store_id).count())


def _address_row(store_id: str, address: ShippingAddress, kind: str, customer_id=None) -> Address:
    return Address.objects.create(
        store_id=store_id,
        customer_id=customer_id,
        type=kind,
        first_name=address.first_name or "",
        last_name=address.last_name or "",
        address1=address.address1,
        address2=address.address2 or "",
        city=address.city,
        state=address.state or "",
        postal_code=address.postal_code,
        country=(address.country or "").upper(),
        phone=address.phone or "",
    )


def create_order(data: CheckoutInput) -> CheckoutResult:
    """
    Validate, price and persist an order in one transaction: addresses,
    order, line snapshots and stock deduction commit together or not at all.
    The order starts PENDING; confirmation goes out when it reaches PROCESSING.
    """
    cart = validate_cart(data.store_id, data.items)
    if not cart.is_valid:
        reason = ", ".join(cart.errors) if cart.errors else "Cart is empty"
        raise ValidationFailed(f"Cart validation failed: {reason}", details={"errors": cart.errors})

    subtotal = cart.subtotal
    tax_amount = calculate_tax(data.shipping_address, subtotal)
    shipping_amount = to_cents(data.shipping_cost or 0)
    discount_amount = ZERO
    total_amount = Order.compute_total(subtotal, tax_amount, shipping_amount, discount_amount)

    def _persist() -> CheckoutResult:
        customer = None
        if data.customer_id:
            customer = Customer.objects.alive().filter(pk=data.customer_id, store_id=data.store_id).first()
            if customer is None:
                raise ValidationFailed("Customer not found in this store")

        shipping = _address_row(data.store_id, data.shipping_address, "SHIPPING", data.customer_id)
        billing = (
            _address_row(data.store_id, data.billing_address, "BILLING", data.customer_id)
            if data.billing_address else shipping
        )
        order = Order.objects.create(
            store_id=data.store_id,
            customer=customer,
            user_id=data.user_id,
            order_number=generate_order_number(data.store_id),
            shipping_address=shipping,
            billing_address=billing,
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_amount=shipping_amount,
            discount_amount=discount_amount,
            total_amount=total_amount,
            discount_code=data.discount_code or "",
            shipping_method=data.shipping_method or "",
            customer_note=data.customer_note,
            ip_address=data.ip_address,
        )
        for line in cart.items:
            OrderItem.objects.create(
                order=order,
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                variant_name=line.variant_name,
                sku=line.sku,
                image_url=line.image,
                price=line.price,
                quantity=line.quantity,
            )
        events = deduct_stock(
            data.store_id,
            [StockLine(product_id=i.product_id, quantity=i.quantity, variant_id=i.variant_id) for i in cart.items],
            order.pk,
        )
        if customer is not None:
            Customer.objects.filter(pk=customer.pk).update(
                total_orders=F("total_orders") + 1,
                total_spent=F("total_spent") + total_amount,
                last_order_at=timezone.now(),
            )
        return CheckoutResult(order=order, events=events)

    result = run_retryable(_persist)
    record_audit(
        "CREATE", "Order", str(result.order.pk),
        store_id=data.store_id, user_id=data.user_id,
        changes={"order_number": result.order.order_number, "total_amount": total_amount,
                 "items": len(cart.items)},
        ip_address=data.ip_address, user_agent=data.user_agent,
    )
    logger.info("Order %s created in store %s (%s items, total %s)",
                result.order.order_number, data.store_id, len(cart.items), total_amount)
    return result
