import logging
import time
import uuid

from common.tenancy import build_context

logger = logging.getLogger(__name__)


class RequestContextMiddleware:
    """
    Assigns a request id and attaches an immutable TenantContext to
    `request.tenant_context`. The context lives on the request object only,
    so it ends with the request whether the view succeeded or raised.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = request.META.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        request.request_id = rid
        request.tenant_context = build_context(request)
        response = self.get_response(request)
        response["X-Request-ID"] = rid
        return response


class TimingMiddleware:
    """
    Adds X-Response-Time-ms for quick perf inspection.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        t0 = time.perf_counter()
        resp = self.get_response(request)
        dt = int((time.perf_counter() - t0) * 1000)
        resp["X-Response-Time-ms"] = str(dt)
        if dt > 2000:
            logger.warning("Slow request %s %s took %dms", request.method, request.path, dt)
        return resp
