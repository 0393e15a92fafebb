from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response

from common.mixins import AuditedActionsMixin, TenantScopedModelViewSet
from platformapp.permissions import IsStoreAdminOrReadOnly
from .models import Category, Brand
from .serializers import CategorySerializer, BrandSerializer
from . import services


class CategoryViewSet(AuditedActionsMixin, TenantScopedModelViewSet):
    """
    Filtering: q (name/slug), parent, is_published
    Ordering: sort_order, name, created_at
    """
    queryset = Category.objects.all()
    serializer_class = CategorySerializer
    permission_classes = [IsStoreAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["parent", "is_published"]
    search_fields = ("name", "slug")
    ordering_fields = ("sort_order", "name", "created_at")
    default_ordering = ("sort_order", "name")

    def destroy(self, request, *args, **kwargs):
        category = services.delete_category(kwargs["pk"], self.require_store_id())
        self._audit("DELETE", category)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"])
    def tree(self, request):
        return Response(services.build_tree(self.require_store_id()))


class BrandViewSet(AuditedActionsMixin, TenantScopedModelViewSet):
    queryset = Brand.objects.all()
    serializer_class = BrandSerializer
    permission_classes = [IsStoreAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["is_published"]
    search_fields = ("name", "slug")
    ordering_fields = ("name", "created_at")
    default_ordering = ("name",)

    def destroy(self, request, *args, **kwargs):
        brand = services.delete_brand(kwargs["pk"], self.require_store_id())
        self._audit("DELETE", brand)
        return Response(status=status.HTTP_204_NO_CONTENT)
