from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.text import slugify
from common.models import BaseModel, SoftDeleteModel

ZERO = Decimal("0.00")
MONEY = dict(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])


class InventoryStatus(models.TextChoices):
    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class OrderStatus(models.TextChoices):
    PENDING = "PENDING"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class ShippingStatus(models.TextChoices):
    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"


class Product(SoftDeleteModel):
    store    = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="products")
    category = models.ForeignKey("taxonomy.Category", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="products")
    brand    = models.ForeignKey("taxonomy.Brand", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="products")

    # storefront
    name        = models.CharField(max_length=200)
    slug        = models.SlugField(max_length=220)
    description = models.TextField(blank=True)
    sku         = models.CharField(max_length=120)
    barcode     = models.CharField(max_length=120, blank=True)
    thumbnail_url = models.URLField(blank=True)

    # pricing (variant prices override)
    price            = models.DecimalField(**MONEY)
    compare_at_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    cost_price       = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    # stock
    track_inventory     = models.BooleanField(default=True)
    inventory_qty       = models.IntegerField(default=0, validators=[MinValueValidator(0)])
    low_stock_threshold = models.IntegerField(default=5, validators=[MinValueValidator(0)])
    inventory_status    = models.CharField(max_length=16, choices=InventoryStatus.choices,
                                           default=InventoryStatus.OUT_OF_STOCK)

    # visibility
    is_published = models.BooleanField(default=False)
    published_at = models.DateTimeField(blank=True, null=True)

    class Meta(SoftDeleteModel.Meta):
        constraints = [
            models.UniqueConstraint(fields=["store", "sku"], condition=Q(deleted_at__isnull=True),
                                    name="uniq_product_sku_per_store"),
            models.UniqueConstraint(fields=["store", "slug"], condition=Q(deleted_at__isnull=True),
                                    name="uniq_product_slug_per_store"),
        ]
        indexes = [
            models.Index(fields=["store", "is_published"]),
            models.Index(fields=["store", "inventory_status"]),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        from inventory.services import determine_inventory_status

        if not self.slug:
            base = slugify(self.name) or "product"
            cand, i = base, 1
            while Product.objects.alive().filter(store_id=self.store_id, slug=cand).exclude(pk=self.pk).exists():
                i += 1
                cand = f"{base}-{i}"
            self.slug = cand
        if self.is_published and not self.published_at:
            self.published_at = timezone.now()
        self.inventory_status = determine_inventory_status(self.inventory_qty, self.low_stock_threshold)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "inventory_qty" in update_fields:
            kwargs["update_fields"] = set(update_fields) | {"inventory_status"}
        super().save(*args, **kwargs)


class ProductVariant(SoftDeleteModel):
    product = models.ForeignKey("commerce.Product", on_delete=models.CASCADE, related_name="variants")
    name    = models.CharField(max_length=200)
    sku     = models.CharField(max_length=120)
    price   = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)  # falls back to product
    stock   = models.IntegerField(default=0, validators=[MinValueValidator(0)])
    track_inventory = models.BooleanField(default=True)
    low_stock_threshold = models.IntegerField(default=5)
    attributes = models.JSONField(default=dict, blank=True)

    class Meta(SoftDeleteModel.Meta):
        ordering = ("name",)
        indexes = [models.Index(fields=["product", "sku"])]

    def __str__(self):
        return f"{self.product.name} - {self.name}"

    @property
    def effective_price(self) -> Decimal:
        return self.price if self.price is not None else self.product.price


class Customer(SoftDeleteModel):
    store = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="customers")
    user  = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                              related_name="customer_profiles")
    email      = models.EmailField()
    first_name = models.CharField(max_length=100)
    last_name  = models.CharField(max_length=100, blank=True)
    phone      = models.CharField(max_length=40, blank=True)
    is_guest   = models.BooleanField(default=False)
    marketing_opt_in = models.BooleanField(default=False)
    total_orders = models.PositiveIntegerField(default=0)
    total_spent  = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    last_order_at = models.DateTimeField(blank=True, null=True)

    class Meta(SoftDeleteModel.Meta):
        indexes = [models.Index(fields=["store", "email"])]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return self.full_name or self.email


class Address(BaseModel):
    TYPE_CHOICES = [("SHIPPING", "Shipping"), ("BILLING", "Billing")]

    store    = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="addresses")
    customer = models.ForeignKey("commerce.Customer", on_delete=models.CASCADE, null=True, blank=True,
                                 related_name="addresses")
    type        = models.CharField(max_length=10, choices=TYPE_CHOICES, default="SHIPPING")
    first_name  = models.CharField(max_length=100, blank=True)
    last_name   = models.CharField(max_length=100, blank=True)
    company     = models.CharField(max_length=200, blank=True)
    address1    = models.CharField(max_length=255)
    address2    = models.CharField(max_length=255, blank=True)
    city        = models.CharField(max_length=100)
    state       = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20)
    country     = models.CharField(max_length=2)
    phone       = models.CharField(max_length=40, blank=True)
    is_default  = models.BooleanField(default=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def street(self) -> str:
        return f"{self.address1} {self.address2}".strip() if self.address2 else self.address1


class Order(SoftDeleteModel):
    """
    Status only moves through commerce.services.orders.update_order_status.
    total_amount = subtotal + tax_amount + shipping_amount - discount_amount
    """
    store    = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="orders")
    customer = models.ForeignKey("commerce.Customer", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="orders")
    user     = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="orders")
    order_number = models.CharField(max_length=32)

    status          = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    payment_status  = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    shipping_status = models.CharField(max_length=20, choices=ShippingStatus.choices,
                                       default=ShippingStatus.PENDING)

    subtotal        = models.DecimalField(**MONEY)
    tax_amount      = models.DecimalField(default=ZERO, **MONEY)
    shipping_amount = models.DecimalField(default=ZERO, **MONEY)
    discount_amount = models.DecimalField(default=ZERO, **MONEY)
    total_amount    = models.DecimalField(**MONEY)
    currency        = models.CharField(max_length=3, default="USD")
    discount_code   = models.CharField(max_length=64, blank=True)

    shipping_address = models.ForeignKey("commerce.Address", on_delete=models.PROTECT, null=True, blank=True,
                                         related_name="+")
    billing_address  = models.ForeignKey("commerce.Address", on_delete=models.PROTECT, null=True, blank=True,
                                         related_name="+")
    shipping_method  = models.CharField(max_length=50, blank=True)
    payment_method   = models.CharField(max_length=50, blank=True)
    payment_gateway  = models.CharField(max_length=50, blank=True)
    tracking_number  = models.CharField(max_length=120, blank=True, null=True)
    tracking_url     = models.URLField(max_length=500, blank=True, null=True)

    customer_note = models.TextField(blank=True, null=True)
    admin_note    = models.TextField(blank=True, null=True)
    ip_address    = models.GenericIPAddressField(blank=True, null=True)

    fulfilled_at  = models.DateTimeField(blank=True, null=True)
    canceled_at   = models.DateTimeField(blank=True, null=True)
    cancel_reason = models.CharField(max_length=255, blank=True, null=True)

    class Meta(SoftDeleteModel.Meta):
        constraints = [
            # no retry on collision: concurrent checkouts can still race on the count
            models.UniqueConstraint(fields=["store", "order_number"], name="uniq_order_number_per_store"),
        ]
        indexes = [
            models.Index(fields=["store", "status"]),
            models.Index(fields=["store", "-created_at"]),
        ]

    def __str__(self):
        return self.order_number

    @staticmethod
    def compute_total(subtotal, tax, shipping, discount) -> Decimal:
        return (Decimal(subtotal) + Decimal(tax) + Decimal(shipping) - Decimal(discount)).quantize(Decimal("0.01"))

    def clean(self):
        super().clean()
        expected = self.compute_total(self.subtotal, self.tax_amount, self.shipping_amount, self.discount_amount)
        if Decimal(self.total_amount) != expected:
            raise ValidationError({"total_amount": f"Total must equal {expected}"})

    @property
    def customer_name(self) -> str:
        if self.customer_id:
            return self.customer.full_name
        if self.user_id:
            return self.user.full_name or self.user.email
        return "Guest"

    @property
    def customer_email(self) -> str:
        if self.customer_id:
            return self.customer.email
        if self.user_id:
            return self.user.email
        return ""


class OrderItem(BaseModel):
    """Purchase-time snapshot; never edited after insert."""
    order   = models.ForeignKey("commerce.Order", on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("commerce.Product", on_delete=models.SET_NULL, null=True, blank=True,
                                related_name="order_items")
    variant = models.ForeignKey("commerce.ProductVariant", on_delete=models.SET_NULL, null=True, blank=True,
                                related_name="order_items")
    product_name = models.CharField(max_length=200)
    variant_name = models.CharField(max_length=200, blank=True, null=True)
    sku          = models.CharField(max_length=120)
    image_url    = models.URLField(blank=True)
    price        = models.DecimalField(**MONEY)
    quantity     = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    subtotal        = models.DecimalField(**MONEY)
    tax_amount      = models.DecimalField(default=ZERO, **MONEY)
    discount_amount = models.DecimalField(default=ZERO, **MONEY)
    total_amount    = models.DecimalField(**MONEY)

    class Meta(BaseModel.Meta):
        ordering = ("created_at",)

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Order items are immutable once created")
        line = (Decimal(self.price) * self.quantity).quantize(Decimal("0.01"))
        self.subtotal = line
        self.total_amount = line + Decimal(self.tax_amount) - Decimal(self.discount_amount)
        super().save(*args, **kwargs)
