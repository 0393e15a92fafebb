import json

from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from django.test import SimpleTestCase
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response

from common.exceptions import (
    Conflict, InvalidTransition, InsufficientStock, RateLimitExceeded, api_exception_handler, error_body,
)
from common.pagination import clamp_page, clamp_per_page, enveloped, page_meta
from common.renderers import EnvelopeJSONRenderer


class PageMetaTest(SimpleTestCase):
    def test_middle_page(self):
        self.assertEqual(page_meta(2, 10, 35), {
            "page": 2, "perPage": 10, "total": 35, "totalPages": 4,
            "hasNextPage": True, "hasPreviousPage": True,
        })

    def test_empty_result(self):
        meta = page_meta(1, 10, 0)
        self.assertEqual(meta["totalPages"], 0)
        self.assertFalse(meta["hasNextPage"])
        self.assertFalse(meta["hasPreviousPage"])

    def test_clamping(self):
        self.assertEqual(clamp_page("0"), 1)
        self.assertEqual(clamp_page("abc"), 1)
        self.assertEqual(clamp_per_page("500"), 100)
        self.assertEqual(clamp_per_page("-3"), 1)
        self.assertEqual(clamp_per_page(None, default=10), 10)


class ExceptionHandlerTest(SimpleTestCase):
    def test_app_error_renders_code_and_message(self):
        resp = api_exception_handler(Conflict("SKU 'A' already exists in this store"), {})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data, {"error": {"code": "CONFLICT", "message": "SKU 'A' already exists in this store"}})

    def test_invalid_transition_carries_details(self):
        resp = api_exception_handler(InvalidTransition("DELIVERED", "PENDING"), {})
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.data["error"]["details"], {"currentStatus": "DELIVERED", "requestedStatus": "PENDING"})

    def test_insufficient_stock_message(self):
        exc = InsufficientStock("Blue Mug", 1, 3)
        self.assertEqual(exc.message, "Insufficient stock for Blue Mug. Available: 1, Requested: 3")

    def test_django_errors_are_mapped(self):
        self.assertEqual(api_exception_handler(Http404(), {}).status_code, 404)
        resp = api_exception_handler(DjangoValidationError("bad value"), {})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["error"]["message"], "Invalid request")
        self.assertEqual(resp.data["error"]["details"], {"errors": ["bad value"]})

    def test_drf_validation_error_keeps_field_details(self):
        resp = api_exception_handler(drf_exceptions.ValidationError({"email": ["required"]}), {})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["error"]["code"], "VALIDATION_ERROR")
        self.assertIn("email", resp.data["error"]["details"])

    def test_rate_limit_sets_headers(self):
        resp = api_exception_handler(RateLimitExceeded(retry_after=30, limit=5), {})
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp["Retry-After"], "30")
        self.assertEqual(resp["X-RateLimit-Limit"], "5")
        self.assertEqual(resp["X-RateLimit-Remaining"], "0")

    def test_unknown_errors_are_hidden(self):
        resp = api_exception_handler(RuntimeError("secret detail"), {})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.data, error_body("INTERNAL_ERROR", "An unexpected error occurred"))


class RendererTest(SimpleTestCase):
    def _render(self, response):
        return json.loads(EnvelopeJSONRenderer().render(response.data, renderer_context={"response": response}))

    def test_success_is_wrapped(self):
        self.assertEqual(self._render(Response({"id": 1})), {"data": {"id": 1}})

    def test_enveloped_page_passes_through(self):
        resp = enveloped([1, 2], page_meta(1, 10, 2))
        body = self._render(resp)
        self.assertEqual(body["data"], [1, 2])
        self.assertEqual(body["meta"]["total"], 2)

    def test_errors_pass_through(self):
        resp = Response(error_body("NOT_FOUND", "Order not found"), status=404)
        self.assertEqual(self._render(resp), {"error": {"code": "NOT_FOUND", "message": "Order not found"}})
