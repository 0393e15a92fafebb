# backend/common/mixins.py
from __future__ import annotations

from typing import Iterable, Dict, Any, Optional
from django.db.models import Q, Model
from django.core.exceptions import FieldDoesNotExist
from rest_framework.viewsets import ModelViewSet
from rest_framework.permissions import SAFE_METHODS

from common.exceptions import Forbidden
from common.tenancy import TenantContext, get_context, STORE_QUERY_PARAM


# -----------------------------
# Base tenant-scoped MVSet
# -----------------------------
class TenantScopedModelViewSet(ModelViewSet):
    """
    Opinionated, multi-tenant base ViewSet:

    - Reads the store from the request's TenantContext (`X-Store-ID` header or `?store=`).
    - If a store is present, auto-filters queryset by `<tenant_field>_id=...` and
      injects it on create; a payload cannot move a row to another store.
    - If the store is missing:
        * super admins may read across stores when `allow_cross_tenant_read` is True;
        * other reads return an empty set; writes are forbidden.
    - Rows from other stores are simply absent, so detail lookups answer 404.
    - Soft-deletable models hide deleted rows and `destroy` marks instead of deleting.
    - Adds simple "q" search (icontains across `search_fields`) and "order" (comma-separated).

    Override:
      - `tenant_field` (default "store")
      - `allow_cross_tenant_read` (default False)
      - `search_fields` (tuple of field names)
      - `ordering_fields` (tuple of field names allowed for ordering)
      - `default_ordering` (sequence)
    """
    tenant_field = "store"
    allow_cross_tenant_read = False

    search_fields: Iterable[str] = tuple()
    ordering_fields: Iterable[str] = tuple()
    default_ordering: Iterable[str] = ("-created_at",)

    # ---- Tenant helpers ----
    @property
    def tenant_context(self) -> TenantContext:
        ctx = getattr(self, "_tenant_context", None)
        if ctx is None:
            ctx = get_context(self.request)
            self._tenant_context = ctx
        return ctx

    def get_store_id(self) -> Optional[str]:
        return self.tenant_context.store_id

    def require_store_id(self) -> str:
        if not self.tenant_context.has_store:
            raise Forbidden("Store context required (send X-Store-ID or ?store=)")
        return self.tenant_context.store_id

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["tenant_context"] = self.tenant_context
        return ctx

    # ---- Queryset plumbing ----
    def _model_class(self) -> type[Model]:
        if hasattr(self, "queryset") and self.queryset is not None:
            return self.queryset.model
        return self.get_serializer_class().Meta.model  # type: ignore[attr-defined]

    def _has_field(self, field_name: str) -> bool:
        try:
            self._model_class()._meta.get_field(field_name)
            return True
        except FieldDoesNotExist:
            return False

    def _apply_tenant_filter(self, qs, store_id: str):
        return qs.filter(**{f"{self.tenant_field}_id": store_id})

    def _apply_search(self, qs):
        q = self.request.query_params.get("q")
        if not q:
            return qs
        fields = tuple(self.search_fields) or tuple(
            f for f in ("name", "title", "description") if self._has_field(f)
        )
        if not fields:
            return qs
        cond = Q()
        for f in fields:
            cond |= Q(**{f"{f}__icontains": q})
        return qs.filter(cond)

    def _apply_ordering(self, qs):
        order_param = self.request.query_params.get("order")
        fields_allowed = set(self.ordering_fields or ())
        if order_param:
            items = [s.strip() for s in order_param.split(",") if s.strip()]
            cleaned = []
            for it in items:
                base = it[1:] if it.startswith("-") else it
                if not fields_allowed or base in fields_allowed:
                    cleaned.append(it)
            if cleaned:
                return qs.order_by(*cleaned)
        return qs.order_by(*self.default_ordering) if self.default_ordering else qs

    def _apply_simple_filters(self, qs):
        """
        For any query param that matches a real model field (and is not a control param),
        apply an exact filter. For 'in' semantics, allow CSV via <field>__in=a,b,c
        """
        IGNORE = {STORE_QUERY_PARAM, "q", "order", "page", "limit", self.tenant_field}
        params = self.request.query_params
        filters: Dict[str, Any] = {}

        for key, value in params.items():
            if key in IGNORE or key.startswith(f"{self.tenant_field}_"):
                continue
            base = key.split("__", 1)[0]
            if not self._has_field(base):
                continue
            if key.endswith("__in"):
                filters[key] = [v for v in value.split(",") if v != ""]
            else:
                filters[key] = value

        return qs.filter(**filters) if filters else qs

    def get_queryset(self):
        if hasattr(self, "queryset") and self.queryset is not None:
            qs = self.queryset.all()
        else:
            qs = self._model_class().objects.all()

        if self._has_field("deleted_at"):
            qs = qs.filter(deleted_at__isnull=True)

        store_id = self.get_store_id()
        if not store_id:
            if self.request.method in SAFE_METHODS:
                if not (self.allow_cross_tenant_read and self.tenant_context.is_super_admin):
                    return qs.none()
            else:
                raise Forbidden("Store context required (send X-Store-ID or ?store=)")
        else:
            qs = self._apply_tenant_filter(qs, store_id)

        qs = self._apply_simple_filters(qs)
        qs = self._apply_search(qs)
        qs = self._apply_ordering(qs)
        return qs

    # ---- Writes ----
    def perform_create(self, serializer):
        return serializer.save(**{f"{self.tenant_field}_id": self.require_store_id()})

    def perform_update(self, serializer):
        return serializer.save()

    def perform_destroy(self, instance):
        if hasattr(instance, "soft_delete"):
            instance.soft_delete()
        else:
            instance.delete()


class AuditedActionsMixin:
    """Attach to ViewSets you want to auto-audit; put it before TenantScopedModelViewSet."""
    audit_entity: Optional[str] = None

    def get_audit_store_id(self, obj):
        return getattr(obj, f"{getattr(self, 'tenant_field', 'store')}_id", None)

    def _audit(self, action: str, obj, changes=None):
        from platformapp.services.audit import record_audit

        ctx = get_context(self.request)
        store_id = self.get_audit_store_id(obj) or ctx.store_id
        record_audit(
            action,
            self.audit_entity or obj.__class__.__name__,
            str(getattr(obj, "pk", "") or ""),
            store_id=str(store_id) if store_id else None,
            user_id=ctx.user_id,
            changes=changes,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )

    def perform_create(self, serializer):
        obj = super().perform_create(serializer)
        obj = obj if obj is not None else serializer.instance
        self._audit("CREATE", obj, changes=dict(serializer.validated_data))
        return obj

    def perform_update(self, serializer):
        obj = super().perform_update(serializer)
        obj = obj if obj is not None else serializer.instance
        self._audit("UPDATE", obj, changes=dict(serializer.validated_data))
        return obj

    def perform_destroy(self, instance):
        self._audit("DELETE", instance)
        return super().perform_destroy(instance)
