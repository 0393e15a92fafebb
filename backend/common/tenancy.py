from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

STORE_HEADER = "HTTP_X_STORE_ID"  # maps to X-Store-ID
STORE_QUERY_PARAM = "store"


@dataclass(frozen=True)
class TenantContext:
    """
    Immutable per-request view of who is calling and for which store.

    Built once by `core.middleware.RequestContextMiddleware` and handed to
    services explicitly. Nothing here is stored at module level.
    """
    store_id: Optional[str] = None
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    is_super_admin: bool = False

    @property
    def has_store(self) -> bool:
        return bool(self.store_id)

    def with_user(self, user) -> "TenantContext":
        """DRF authenticates after middleware runs; re-bind the user once it is known."""
        if not user or not getattr(user, "is_authenticated", False):
            return self
        return replace(
            self,
            user_id=str(user.pk),
            is_super_admin=bool(getattr(user, "is_superuser", False)),
        )

    def audit_kwargs(self) -> dict:
        return {
            "store_id": self.store_id,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }


def client_ip(request) -> Optional[str]:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.META.get("HTTP_X_REAL_IP") or request.META.get("REMOTE_ADDR")


def store_id_from_request(request) -> Optional[str]:
    sid = request.META.get(STORE_HEADER) or request.GET.get(STORE_QUERY_PARAM)
    return str(sid).strip() if sid else None


def build_context(request) -> TenantContext:
    user = getattr(request, "user", None)
    ctx = TenantContext(
        store_id=store_id_from_request(request),
        ip_address=client_ip(request),
        user_agent=(request.META.get("HTTP_USER_AGENT") or "")[:500] or None,
        request_id=getattr(request, "request_id", None),
    )
    return ctx.with_user(user)


def get_context(request) -> TenantContext:
    """
    Context for a DRF request: the middleware's value re-bound to the
    authenticated user (JWT auth only resolves inside the view).
    """
    base = getattr(request, "tenant_context", None)
    if base is None:
        # DRF Request proxies attribute access to the wrapped HttpRequest
        base = build_context(request)
    return base.with_user(getattr(request, "user", None))
