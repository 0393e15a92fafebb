from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from common.tenancy import TenantContext
from taxonomy.services import ensure_unique_slug
from .models import Product, ProductVariant, Customer, Address, Order, OrderItem, OrderStatus
from .services import catalog
from .services.checkout import CartItem, ShippingAddress
from .services.orders import SORT_FIELDS


# ---------- Catalog ----------
class ProductVariantSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(required=False)

    class Meta:
        model = ProductVariant
        fields = ("id", "name", "sku", "price", "stock", "track_inventory", "low_stock_threshold", "attributes")


class ProductListSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)
    brand_name    = serializers.CharField(source="brand.name", read_only=True, default=None)

    class Meta:
        model = Product
        fields = (
            "id", "name", "slug", "sku", "price", "compare_at_price", "thumbnail_url",
            "inventory_qty", "inventory_status", "is_published", "category", "category_name",
            "brand", "brand_name", "created_at", "updated_at",
        )


class ProductDetailSerializer(serializers.ModelSerializer):
    variants = ProductVariantSerializer(many=True, required=False)

    class Meta:
        model = Product
        fields = (
            "id", "name", "slug", "description", "sku", "barcode", "thumbnail_url",
            "price", "compare_at_price", "cost_price",
            "track_inventory", "inventory_qty", "low_stock_threshold", "inventory_status",
            "is_published", "published_at", "category", "brand", "variants",
            "created_at", "updated_at",
        )
        read_only_fields = ("id", "inventory_status", "published_at", "created_at", "updated_at")
        extra_kwargs = {"slug": {"required": False, "allow_blank": True}}

    def _store_id(self):
        ctx: TenantContext = self.context.get("tenant_context")
        return ctx.store_id if ctx else None

    def validate_sku(self, value):
        store_id = self._store_id()
        if store_id:
            catalog.ensure_unique_sku(store_id, value, exclude_id=getattr(self.instance, "pk", None))
        return value

    def validate_slug(self, value):
        store_id = self._store_id()
        if value and store_id:
            ensure_unique_slug(Product, store_id, value, exclude_id=getattr(self.instance, "pk", None))
        return value

    def validate(self, attrs):
        store_id = self._store_id()
        for key in ("category", "brand"):
            related = attrs.get(key)
            if related is not None and store_id and str(related.store_id) != str(store_id):
                raise serializers.ValidationError({key: "Must belong to the same store"})
        if self.instance is not None and "inventory_qty" in attrs \
                and attrs["inventory_qty"] != self.instance.inventory_qty:
            raise serializers.ValidationError(
                {"inventory_qty": "Use the inventory adjust endpoint to change stock"}
            )
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        variants_data = validated_data.pop("variants", [])
        product = Product.objects.create(**validated_data)
        for var in variants_data:
            var.pop("id", None)
            ProductVariant.objects.create(product=product, **var)
        return product

    @transaction.atomic
    def update(self, instance, validated_data):
        variants_data = validated_data.pop("variants", None)
        instance = super().update(instance, validated_data)
        if variants_data is None:
            return instance

        existing = {str(v.id): v for v in instance.variants.alive()}
        keep = set()
        for payload in variants_data:
            var_id = str(payload.pop("id", "") or "")
            if var_id in existing:
                obj = existing[var_id]
                for k, v in payload.items():
                    setattr(obj, k, v)
                obj.save()
                keep.add(var_id)
            else:
                keep.add(str(ProductVariant.objects.create(product=instance, **payload).id))
        for var_id, obj in existing.items():
            if var_id not in keep:
                obj.soft_delete()
        return instance


# ---------- Customers ----------
class AddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = Address
        fields = ("id", "type", "first_name", "last_name", "company", "address1", "address2",
                  "city", "state", "postal_code", "country", "phone", "is_default")
        read_only_fields = ("id",)


class CustomerSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Customer
        fields = ("id", "email", "first_name", "last_name", "full_name", "phone", "is_guest",
                  "marketing_opt_in", "total_orders", "total_spent", "last_order_at", "created_at")
        read_only_fields = ("id", "total_orders", "total_spent", "last_order_at", "created_at")


# ---------- Orders ----------
class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ("id", "product", "variant", "product_name", "variant_name", "sku", "image_url",
                  "price", "quantity", "subtotal", "tax_amount", "discount_amount", "total_amount")
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    customer_name  = serializers.CharField(read_only=True)
    customer_email = serializers.CharField(read_only=True)
    items_count    = serializers.IntegerField(read_only=True, default=None)

    class Meta:
        model = Order
        fields = ("id", "order_number", "status", "payment_status", "shipping_status",
                  "customer", "customer_name", "customer_email", "items_count",
                  "subtotal", "total_amount", "currency", "created_at")
        read_only_fields = fields


class OrderDetailSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    shipping_address = AddressSerializer(read_only=True)
    billing_address  = AddressSerializer(read_only=True)
    customer_name    = serializers.CharField(read_only=True)
    customer_email   = serializers.CharField(read_only=True)

    class Meta:
        model = Order
        fields = (
            "id", "order_number", "status", "payment_status", "shipping_status",
            "customer", "customer_name", "customer_email", "user",
            "subtotal", "tax_amount", "shipping_amount", "discount_amount", "total_amount", "currency",
            "discount_code", "shipping_method", "payment_method", "payment_gateway",
            "tracking_number", "tracking_url", "customer_note", "admin_note",
            "shipping_address", "billing_address", "items",
            "fulfilled_at", "canceled_at", "cancel_reason", "created_at", "updated_at",
        )
        read_only_fields = fields


class OrderStatusUpdateSerializer(serializers.Serializer):
    status          = serializers.ChoiceField(choices=OrderStatus.choices)
    tracking_number = serializers.CharField(required=False, allow_blank=True, max_length=120)
    tracking_url    = serializers.URLField(required=False, allow_blank=True, max_length=500)
    admin_note      = serializers.CharField(required=False, allow_blank=True)
    cancel_reason   = serializers.CharField(required=False, allow_blank=True, max_length=255)


class OrderListQuerySerializer(serializers.Serializer):
    status     = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    search     = serializers.CharField(required=False, allow_blank=True)
    date_from  = serializers.DateTimeField(required=False)
    date_to    = serializers.DateTimeField(required=False)
    sort_by    = serializers.ChoiceField(choices=sorted(SORT_FIELDS), required=False, default="created_at")
    sort_order = serializers.ChoiceField(choices=("asc", "desc"), required=False, default="desc")
    page       = serializers.IntegerField(required=False, default=1)
    per_page   = serializers.IntegerField(required=False, default=10)


# ---------- Checkout ----------
class CartItemSerializer(serializers.Serializer):
    product_id = serializers.CharField()
    variant_id = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    quantity   = serializers.IntegerField()
    price      = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)

    def to_cart_item(self, data=None) -> CartItem:
        data = data if data is not None else self.validated_data
        return CartItem(
            product_id=data["product_id"],
            quantity=data["quantity"],
            variant_id=data.get("variant_id") or None,
            price=data.get("price"),
        )


class ShippingAddressSerializer(serializers.Serializer):
    country     = serializers.CharField(max_length=2)
    state       = serializers.CharField(required=False, allow_blank=True, max_length=100)
    city        = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20)
    address1    = serializers.CharField(max_length=255)
    address2    = serializers.CharField(required=False, allow_blank=True, max_length=255)
    first_name  = serializers.CharField(required=False, allow_blank=True, max_length=100)
    last_name   = serializers.CharField(required=False, allow_blank=True, max_length=100)
    phone       = serializers.CharField(required=False, allow_blank=True, max_length=40)

    @staticmethod
    def to_address(data) -> ShippingAddress:
        return ShippingAddress(
            country=data["country"].upper(),
            state=(data.get("state") or "").upper() or None,
            city=data["city"],
            postal_code=data["postal_code"],
            address1=data["address1"],
            address2=data.get("address2") or None,
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            phone=data.get("phone", ""),
        )


def _cart_items(rows):
    return [CartItemSerializer().to_cart_item(row) for row in rows]


class CartValidateSerializer(serializers.Serializer):
    items = CartItemSerializer(many=True, allow_empty=False)

    def cart_items(self):
        return _cart_items(self.validated_data["items"])


class ShippingQuoteSerializer(CartValidateSerializer):
    shipping_address = ShippingAddressSerializer()

    def address(self) -> ShippingAddress:
        return ShippingAddressSerializer.to_address(self.validated_data["shipping_address"])


class TaxQuoteSerializer(serializers.Serializer):
    shipping_address = ShippingAddressSerializer()
    subtotal         = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))

    def address(self) -> ShippingAddress:
        return ShippingAddressSerializer.to_address(self.validated_data["shipping_address"])


class CheckoutCompleteSerializer(ShippingQuoteSerializer):
    billing_address = ShippingAddressSerializer(required=False)
    shipping_method = serializers.CharField(max_length=50)
    shipping_cost   = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    customer_id     = serializers.UUIDField(required=False, allow_null=True)
    discount_code   = serializers.CharField(required=False, allow_blank=True, max_length=64)
    customer_note   = serializers.CharField(required=False, allow_blank=True)

    def billing(self):
        data = self.validated_data.get("billing_address")
        return ShippingAddressSerializer.to_address(data) if data else None
