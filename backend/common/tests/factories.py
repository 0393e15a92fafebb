"""Small builders shared by the app test suites."""
from decimal import Decimal
from itertools import count

from django.contrib.auth import get_user_model

from commerce.models import Customer, Order, OrderItem, Product, ProductVariant
from platformapp.models import Store, StoreMembership

User = get_user_model()
_seq = count(1)


def make_user(email=None, password="pass-1234", **extra):
    n = next(_seq)
    extra.setdefault("full_name", f"User {n}")
    return User.objects.create_user(email or f"user{n}@example.com", password, **extra)


def make_superuser(email=None, password="pass-1234"):
    n = next(_seq)
    return User.objects.create_superuser(email or f"root{n}@example.com", password, full_name="Root")


def make_store(name=None, **extra):
    n = next(_seq)
    extra.setdefault("email", f"store{n}@example.com")
    return Store.objects.create(slug=f"store-{n}", name=name or f"Store {n}", **extra)


def add_member(store, user, role=StoreMembership.ROLE_STORE_ADMIN):
    return StoreMembership.objects.create(store=store, user=user, role=role)


def make_product(store, name=None, price="10.00", qty=10, **extra):
    n = next(_seq)
    extra.setdefault("is_published", True)
    return Product.objects.create(
        store=store,
        name=name or f"Product {n}",
        sku=extra.pop("sku", f"SKU-{n}"),
        price=Decimal(price),
        inventory_qty=qty,
        **extra,
    )


def make_variant(product, name="Large", price=None, stock=5, **extra):
    n = next(_seq)
    return ProductVariant.objects.create(
        product=product, name=name, sku=f"{product.sku}-V{n}",
        price=Decimal(price) if price is not None else None, stock=stock, **extra,
    )


def make_customer(store, first_name="John", last_name="Doe", **extra):
    n = next(_seq)
    extra.setdefault("email", f"customer{n}@example.com")
    return Customer.objects.create(store=store, first_name=first_name, last_name=last_name, **extra)


def make_order(store, status="PENDING", customer=None, items=(), **extra):
    """`items` is a sequence of (product, quantity); totals are derived from them."""
    n = next(_seq)
    subtotal = sum((Decimal(p.price) * q for p, q in items), Decimal("0.00"))
    tax = Decimal(extra.pop("tax_amount", "0.00"))
    shipping = Decimal(extra.pop("shipping_amount", "0.00"))
    order = Order.objects.create(
        store=store,
        customer=customer,
        order_number=extra.pop("order_number", f"ORD-T{n:05d}"),
        status=status,
        subtotal=subtotal,
        tax_amount=tax,
        shipping_amount=shipping,
        total_amount=Order.compute_total(subtotal, tax, shipping, 0),
        **extra,
    )
    for product, quantity in items:
        OrderItem.objects.create(
            order=order, product=product, product_name=product.name, sku=product.sku,
            price=product.price, quantity=quantity,
        )
    return order
