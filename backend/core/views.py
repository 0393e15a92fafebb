from django.conf import settings
from django.core.cache import cache
from django.db import connection, DatabaseError
from django.http import JsonResponse
from django.utils import timezone

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny

from common.tenancy import get_context


def healthz(_request):
    return JsonResponse({"ok": True})


class DeepHealthView(APIView):
    """
    GET /api/v1/core/deep-health/?db=1&cache=1
    Return component statuses. All checks optional.
    """
    permission_classes = [AllowAny]

    def get(self, request):
        check_db = request.query_params.get("db") == "1"
        check_cache = request.query_params.get("cache") == "1"

        out = {"ok": True, "time": timezone.now().isoformat(), "debug": bool(settings.DEBUG)}

        if check_db:
            try:
                with connection.cursor() as cur:
                    cur.execute("SELECT 1;")
                    cur.fetchone()
                out["db"] = {"ok": True}
            except DatabaseError as e:
                out["ok"] = False
                out["db"] = {"ok": False, "error": str(e)}

        if check_cache:
            cache.set("core_healthz_probe", "1", timeout=10)
            ok = cache.get("core_healthz_probe") == "1"
            out["cache"] = {"ok": ok}
            out["ok"] = out["ok"] and ok

        return Response(out)


class WhoAmIView(APIView):
    permission_classes = [AllowAny]  # allow anonymous; returns minimal info

    def get(self, request):
        ctx = get_context(request)
        data = {
            "isAuthenticated": bool(request.user and request.user.is_authenticated),
            "userId": ctx.user_id,
            "storeId": ctx.store_id,
            "isSuperAdmin": ctx.is_super_admin,
            "requestId": ctx.request_id,
        }
        if data["isAuthenticated"]:
            data["email"] = getattr(request.user, "email", None)
        return Response(data)
