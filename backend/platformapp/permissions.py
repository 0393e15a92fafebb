# backend/platformapp/permissions.py
from __future__ import annotations
from typing import Optional

from rest_framework.permissions import BasePermission, SAFE_METHODS

from common.tenancy import get_context
from platformapp.models import StoreMembership


# --------------------------
# Helpers
# --------------------------
def _has_role(user, store_id: Optional[str], roles: set[str] | None = None) -> bool:
    if not user or not getattr(user, "is_authenticated", False) or not store_id:
        return False
    qs = StoreMembership.objects.filter(store_id=store_id, user_id=user.pk)
    if roles:
        qs = qs.filter(role__in=roles)
    return qs.exists()


def is_store_admin(user, store_id: Optional[str]) -> bool:
    if getattr(user, "is_superuser", False):
        return True
    return _has_role(user, store_id, roles={StoreMembership.ROLE_STORE_ADMIN})


def is_store_member(user, store_id: Optional[str]) -> bool:
    if getattr(user, "is_superuser", False):
        return True
    return _has_role(user, store_id)


# --------------------------
# Permissions
# --------------------------
class IsStoreMember(BasePermission):
    """
    Any membership on the requested store (or super admin). Requests without a
    store pass here; the tenant-scoped ViewSet decides what they may see.
    """
    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        ctx = get_context(request)
        if not ctx.store_id:
            return True
        return is_store_member(user, ctx.store_id)


class IsStoreAdminOrReadOnly(IsStoreMember):
    """
    SAFE_METHODS → any member.
    Mutations → store admin (or super admin).
    """
    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        if request.method in SAFE_METHODS:
            return True
        return is_store_admin(request.user, get_context(request).store_id)


class IsSuperAdmin(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_superuser)
