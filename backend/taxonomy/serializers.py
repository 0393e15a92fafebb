from rest_framework import serializers

from common.tenancy import TenantContext
from .models import Category, Brand
from . import services


class _StoreScopedSerializer(serializers.ModelSerializer):
    def _store_id(self):
        ctx: TenantContext = self.context.get("tenant_context")
        return ctx.store_id if ctx else None

    def validate_slug(self, value):
        store_id = self._store_id()
        if store_id:
            services.ensure_unique_slug(self.Meta.model, store_id, value,
                                        exclude_id=getattr(self.instance, "pk", None))
        return value


class CategorySerializer(_StoreScopedSerializer):
    class Meta:
        model = Category
        fields = ("id", "name", "slug", "description", "parent", "image_url", "sort_order",
                  "is_published", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")

    def validate(self, attrs):
        store_id = self._store_id()
        parent = attrs.get("parent")
        if parent is not None and store_id:
            services.validate_parent(store_id, parent.pk, category_id=getattr(self.instance, "pk", None))
        return attrs


class BrandSerializer(_StoreScopedSerializer):
    class Meta:
        model = Brand
        fields = ("id", "name", "slug", "description", "logo_url", "website_url",
                  "is_published", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")
