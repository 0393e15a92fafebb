from dataclasses import asdict

from django.http import HttpResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import MethodNotAllowed
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import Forbidden, NotFound
from common.mixins import AuditedActionsMixin, TenantScopedModelViewSet
from common.pagination import enveloped
from common.tenancy import get_context
from notificationsapp.dispatch import dispatch_events
from platformapp.permissions import IsStoreAdminOrReadOnly
from .models import Product, Customer, Order
from .serializers import (
    ProductListSerializer, ProductDetailSerializer, CustomerSerializer,
    OrderListSerializer, OrderDetailSerializer, OrderStatusUpdateSerializer, OrderListQuerySerializer,
    CartValidateSerializer, ShippingQuoteSerializer, TaxQuoteSerializer, CheckoutCompleteSerializer,
)
from .services import catalog, checkout
from .services.orders import (
    OrderQuery, list_orders, get_order, get_invoice_data, export_orders_csv, update_order_status,
)


class ProductViewSet(AuditedActionsMixin, TenantScopedModelViewSet):
    """
    Filtering: q (name/sku/description), category, brand, is_published, inventory_status
    Ordering: created_at, name, price, inventory_qty
    """
    queryset = Product.objects.select_related("category", "brand").prefetch_related("variants")
    permission_classes = [IsStoreAdminOrReadOnly]
    search_fields = ("name", "sku", "description")
    ordering_fields = ("created_at", "name", "price", "inventory_qty")

    def get_serializer_class(self):
        if self.action == "list":
            return ProductListSerializer
        return ProductDetailSerializer

    def destroy(self, request, *args, **kwargs):
        product = catalog.delete_product(kwargs["pk"], self.require_store_id())
        self._audit("DELETE", product)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CustomerViewSet(AuditedActionsMixin, TenantScopedModelViewSet):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    permission_classes = [IsStoreAdminOrReadOnly]
    search_fields = ("email", "first_name", "last_name")
    ordering_fields = ("created_at", "email", "total_spent", "total_orders")


class OrderViewSet(TenantScopedModelViewSet):
    """
    Orders are created through checkout; here they are read, moved through
    their lifecycle, invoiced and exported.
    """
    queryset = Order.objects.select_related("customer", "user", "shipping_address", "billing_address") \
        .prefetch_related("items")
    permission_classes = [IsStoreAdminOrReadOnly]
    allow_cross_tenant_read = True
    http_method_names = ["get", "post", "head", "options"]

    def get_serializer_class(self):
        if self.action == "list":
            return OrderListSerializer
        return OrderDetailSerializer

    def _scope(self):
        """Store id to filter on, or None for a super admin reading every store."""
        ctx = self.tenant_context
        if ctx.store_id:
            return ctx.store_id
        if ctx.is_super_admin:
            return None
        raise Forbidden("Store context required (send X-Store-ID or ?store=)")

    def _query(self) -> OrderQuery:
        params = OrderListQuerySerializer(data=self.request.query_params)
        params.is_valid(raise_exception=True)
        data = params.validated_data
        return OrderQuery(
            store_id=self._scope(),
            status=data.get("status"),
            search=data.get("search"),
            date_from=data.get("date_from"),
            date_to=data.get("date_to"),
            sort_by=data["sort_by"],
            sort_order=data["sort_order"],
            page=data["page"],
            per_page=data["per_page"],
        )

    def create(self, request, *args, **kwargs):
        raise MethodNotAllowed("POST", detail="Orders are created through checkout")

    def list(self, request, *args, **kwargs):
        rows, meta = list_orders(self._query())
        return enveloped(OrderListSerializer(rows, many=True).data, meta)

    def retrieve(self, request, *args, **kwargs):
        order = get_order(kwargs["pk"], self._scope())
        if order is None:
            raise NotFound.for_entity("Order")
        return Response(OrderDetailSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request, pk=None):
        ser = OrderStatusUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        result = update_order_status(
            pk,
            data["status"],
            store_id=self._scope(),
            tracking_number=data.get("tracking_number") or None,
            tracking_url=data.get("tracking_url") or None,
            admin_note=data.get("admin_note") or None,
            cancel_reason=data.get("cancel_reason") or None,
            context=self.tenant_context,
        )
        if result is None:
            raise NotFound.for_entity("Order")
        dispatch_events(result.events)
        return Response(OrderDetailSerializer(get_order(result.order.pk)).data)

    @action(detail=True, methods=["get"])
    def invoice(self, request, pk=None):
        data = get_invoice_data(pk, self._scope())
        if data is None:
            raise NotFound.for_entity("Order")
        return Response(data)

    @action(detail=False, methods=["get"])
    def export(self, request):
        body = export_orders_csv(self._query())
        stamp = timezone.now().strftime("%Y%m%d")
        resp = HttpResponse(body, content_type="text/csv; charset=utf-8")
        resp["Content-Disposition"] = f'attachment; filename="orders-{stamp}.csv"'
        return resp


# ---------- Checkout (storefront; guests allowed) ----------
class _CheckoutView(APIView):
    permission_classes = [AllowAny]
    throttle_scope = "checkout"
    input_serializer = None

    def store_id(self, request) -> str:
        ctx = get_context(request)
        if not ctx.has_store:
            raise Forbidden("Store context required (send X-Store-ID or ?store=)")
        return ctx.store_id

    def payload(self, request):
        ser = self.input_serializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return ser


class CheckoutValidateView(_CheckoutView):
    """POST /api/v1/checkout/validate/ → {is_valid, errors, items, subtotal}"""
    input_serializer = CartValidateSerializer

    def post(self, request):
        store_id = self.store_id(request)
        ser = self.payload(request)
        return Response(asdict(checkout.validate_cart(store_id, ser.cart_items())))


class CheckoutShippingView(_CheckoutView):
    input_serializer = ShippingQuoteSerializer

    def post(self, request):
        store_id = self.store_id(request)
        ser = self.payload(request)
        options = checkout.calculate_shipping(ser.address(), ser.cart_items(), store_id=store_id)
        return Response([asdict(o) for o in options])


class CheckoutTaxView(_CheckoutView):
    input_serializer = TaxQuoteSerializer

    def post(self, request):
        self.store_id(request)
        ser = self.payload(request)
        subtotal = ser.validated_data["subtotal"]
        return Response({"subtotal": subtotal, "tax_amount": checkout.calculate_tax(ser.address(), subtotal)})


class CheckoutCompleteView(_CheckoutView):
    input_serializer = CheckoutCompleteSerializer

    def post(self, request):
        store_id = self.store_id(request)
        ser = self.payload(request)
        data = ser.validated_data
        ctx = get_context(request)
        result = checkout.create_order(checkout.CheckoutInput(
            store_id=store_id,
            items=ser.cart_items(),
            shipping_address=ser.address(),
            billing_address=ser.billing(),
            shipping_method=data["shipping_method"],
            shipping_cost=data["shipping_cost"],
            customer_id=str(data["customer_id"]) if data.get("customer_id") else None,
            user_id=ctx.user_id,
            discount_code=data.get("discount_code") or None,
            customer_note=data.get("customer_note") or None,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        ))
        dispatch_events(result.events)
        return Response(OrderDetailSerializer(get_order(result.order.pk)).data, status=status.HTTP_201_CREATED)
