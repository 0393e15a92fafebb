from django.contrib.auth import get_user_model
from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import Forbidden, NotFound, ValidationFailed
from common.mixins import AuditedActionsMixin
from common.pagination import enveloped
from common.tenancy import get_context
from .models import Store, StoreMembership
from .permissions import IsSuperAdmin, is_store_admin
from .serializers import (
    StoreSerializer, StoreMembershipSerializer, AuditLogSerializer, AuditLogQuerySerializer,
)
from .services.audit import AuditLogQuery, get_audit_logs, get_entity_history


# Public utility: resolve store id by slug (storefront bootstrapping by domain/slug)
class StoreResolveView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        slug = (request.query_params.get("slug") or "").strip()
        if not slug:
            raise ValidationFailed("slug required")
        store = Store.objects.alive().filter(slug=slug, status="ACTIVE").first()
        if not store:
            raise NotFound.for_entity("Store")
        return Response({"id": str(store.id), "slug": store.slug, "name": store.name, "currency": store.currency})


class StoreViewSet(AuditedActionsMixin, viewsets.ModelViewSet):
    """Stores are the tenants: members see their own, super admins see all."""
    serializer_class = StoreSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["slug", "status", "plan"]

    def get_queryset(self):
        qs = Store.objects.alive().order_by("name")
        user = self.request.user
        if user.is_superuser:
            return qs
        return qs.filter(memberships__user=user).distinct()

    def get_permissions(self):
        if self.action in ("create", "destroy"):
            return [IsSuperAdmin()]
        return super().get_permissions()

    def get_audit_store_id(self, obj):
        return obj.pk

    def _require_admin(self, store):
        if not is_store_admin(self.request.user, str(store.pk)):
            raise Forbidden("Store admin role required")

    def perform_update(self, serializer):
        self._require_admin(serializer.instance)
        return super().perform_update(serializer)

    def perform_destroy(self, instance):
        self._audit("DELETE", instance)
        instance.soft_delete()

    @action(detail=True, methods=["get", "post"], url_path="members")
    def members(self, request, pk=None):
        store = self.get_object()
        if request.method == "GET":
            rows = StoreMembership.objects.filter(store=store).select_related("user").order_by("created_at")
            return Response(StoreMembershipSerializer(rows, many=True).data)

        self._require_admin(store)
        ser = StoreMembershipSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        membership, _ = StoreMembership.objects.update_or_create(
            store=store, user=ser.validated_data["user"],
            defaults={"role": ser.validated_data.get("role", StoreMembership.ROLE_STAFF)},
        )
        self._audit("UPDATE", store, changes={"member": str(membership.user_id), "role": membership.role})
        return Response(StoreMembershipSerializer(membership).data, status=status.HTTP_201_CREATED)


class AuditLogViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    GET /api/v1/audit-logs/?entity_type=Order&action=UPDATE&page=1&limit=50
    Store admins read their store; super admins may omit the store to read everything.
    """
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated]

    def _store_scope(self):
        ctx = get_context(self.request)
        if ctx.store_id:
            if not is_store_admin(self.request.user, ctx.store_id):
                raise Forbidden("Store admin role required")
            return ctx.store_id
        if ctx.is_super_admin:
            return None
        raise Forbidden("Store context required (send X-Store-ID or ?store=)")

    def list(self, request, *args, **kwargs):
        store_id = self._store_scope()
        params = AuditLogQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        data = params.validated_data
        query = AuditLogQuery(
            store_id=store_id,
            user_id=str(data["user_id"]) if data.get("user_id") else None,
            entity_type=data.get("entity_type"),
            entity_id=data.get("entity_id"),
            action=data.get("action"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            page=data["page"],
            limit=data["limit"],
        )
        rows, meta = get_audit_logs(query)
        return enveloped(self.get_serializer(rows, many=True).data, meta)

    @action(detail=False, methods=["get"], url_path="history")
    def history(self, request):
        store_id = self._store_scope()
        entity_type = request.query_params.get("entity_type")
        entity_id = request.query_params.get("entity_id")
        if not entity_type or not entity_id:
            raise ValidationFailed("entity_type and entity_id are required")
        rows = get_entity_history(entity_type, entity_id, store_id=store_id)
        return Response(self.get_serializer(rows, many=True).data)
