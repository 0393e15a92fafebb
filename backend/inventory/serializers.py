from rest_framework import serializers

from commerce.models import Product
from .models import InventoryLog
from .services import ADJUSTMENT_TYPES


class InventoryLevelSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)
    brand_name    = serializers.CharField(source="brand.name", read_only=True, default=None)

    class Meta:
        model = Product
        fields = ("id", "name", "sku", "inventory_qty", "low_stock_threshold", "inventory_status",
                  "track_inventory", "category_name", "brand_name", "updated_at")
        read_only_fields = fields


class InventoryLogSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = InventoryLog
        fields = ("id", "product", "product_name", "variant", "previous_qty", "new_qty", "change_qty",
                  "reason", "note", "user_id", "created_at")
        read_only_fields = fields


class StockAdjustmentSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity   = serializers.IntegerField(min_value=0)
    type       = serializers.ChoiceField(choices=ADJUSTMENT_TYPES)
    reason     = serializers.CharField(max_length=64)
    note       = serializers.CharField(required=False, allow_blank=True)


class InventoryQuerySerializer(serializers.Serializer):
    search         = serializers.CharField(required=False, allow_blank=True)
    category_id    = serializers.UUIDField(required=False)
    brand_id       = serializers.UUIDField(required=False)
    low_stock_only = serializers.BooleanField(required=False, default=False)
    page           = serializers.IntegerField(required=False, default=1)
    per_page       = serializers.IntegerField(required=False, default=20)
