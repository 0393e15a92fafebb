from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from common.exceptions import Forbidden, ValidationFailed
from common.pagination import enveloped
from common.tenancy import get_context
from notificationsapp.dispatch import dispatch_events
from platformapp.permissions import IsStoreAdminOrReadOnly
from . import services
from .serializers import (
    InventoryLevelSerializer, InventoryLogSerializer, StockAdjustmentSerializer, InventoryQuerySerializer,
)


class InventoryViewSet(viewsets.ViewSet):
    """
    GET  /inventory/                 stock levels (search, category_id, brand_id, low_stock_only)
    POST /inventory/adjust/          ADD / REMOVE / SET
    GET  /inventory/low-stock/
    GET  /inventory/history/?product_id=<uuid>&limit=50
    """
    permission_classes = [IsStoreAdminOrReadOnly]

    def _store_id(self, request) -> str:
        store_id = get_context(request).store_id
        if not store_id:
            raise Forbidden("Store context required (send X-Store-ID or ?store=)")
        return store_id

    def list(self, request):
        store_id = self._store_id(request)
        params = InventoryQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        data = params.validated_data
        rows, meta = services.get_inventory_levels(
            store_id,
            search=data.get("search") or None,
            category_id=data.get("category_id"),
            brand_id=data.get("brand_id"),
            low_stock_only=data["low_stock_only"],
            page=data["page"],
            per_page=data["per_page"],
        )
        return enveloped(InventoryLevelSerializer(rows, many=True).data, meta)

    @action(detail=False, methods=["post"])
    def adjust(self, request):
        store_id = self._store_id(request)
        ser = StockAdjustmentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        ctx = get_context(request)
        result = services.adjust_stock(store_id, services.StockAdjustment(
            product_id=str(data["product_id"]),
            quantity=data["quantity"],
            type=data["type"],
            reason=data["reason"],
            note=data.get("note") or None,
            user_id=ctx.user_id,
        ))
        dispatch_events(result.events)
        return Response(
            {
                "product": InventoryLevelSerializer(result.product).data,
                "log": InventoryLogSerializer(result.log).data,
            },
            status=status.HTTP_200_OK,
        )

    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request):
        rows = services.get_low_stock_items(self._store_id(request))
        return Response(InventoryLevelSerializer(rows, many=True).data)

    @action(detail=False, methods=["get"])
    def history(self, request):
        store_id = self._store_id(request)
        product_id = request.query_params.get("product_id")
        if not product_id:
            raise ValidationFailed("product_id is required")
        try:
            limit = int(request.query_params.get("limit", 50))
        except ValueError:
            raise ValidationFailed("limit must be an integer")
        rows = services.get_inventory_history(store_id, product_id, limit=limit)
        return Response(InventoryLogSerializer(rows, many=True).data)
