import json
import time
from decimal import Decimal

from django.core import mail
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from common.exceptions import NotFound, PaymentError, ValidationFailed, WebhookVerificationError
from common.tests.factories import add_member, make_customer, make_order, make_product, make_store, make_user
from notificationsapp.models import Notification
from payments.gateways import SignedPayloadGateway
from payments.models import Payment, WebhookEvent
from payments.services import (
    create_payment_intent, get_payment_by_order_id, handle_payment_failed, handle_payment_succeeded,
    refund_payment, verify_webhook_signature,
)

SECRET = "whsec_test"


class PaymentFlowMixin:
    def setUp(self):
        super().setUp()
        self.store = make_store()
        self.product = make_product(self.store, price="25.00", qty=10)
        self.customer = make_customer(self.store)
        self.order = make_order(self.store, customer=self.customer, items=[(self.product, 2)])

    def _intent(self, amount="50.00"):
        return create_payment_intent(self.order.pk, amount, store_id=str(self.store.pk))


class PaymentServiceTest(PaymentFlowMixin, TestCase):
    def test_intent_records_pending_payment(self):
        result = self._intent()
        self.assertTrue(result.payment_intent_id.startswith("pi_local_"))
        self.assertTrue(result.client_secret)
        payment = get_payment_by_order_id(self.order.pk)
        self.assertEqual(payment.status, "PENDING")
        self.assertEqual(payment.amount, Decimal("50.00"))
        self.assertEqual(payment.gateway_payment_id, result.payment_intent_id)
        self.assertEqual(payment.metadata["orderId"], str(self.order.pk))

    def test_intent_for_unknown_or_foreign_order(self):
        with self.assertRaises(NotFound) as ctx:
            create_payment_intent(self.order.pk, "10.00", store_id=str(make_store().pk))
        self.assertEqual(ctx.exception.message, f"Order {self.order.pk} not found")

    def test_intent_amount_defaults_to_order_total(self):
        result = create_payment_intent(self.order.pk, store_id=str(self.store.pk))
        self.assertEqual(result.amount, Decimal("50.00"))
        self.assertEqual(get_payment_by_order_id(self.order.pk).amount, Decimal("50.00"))

    def test_intent_amount_must_match_order_total(self):
        with self.assertRaises(ValidationFailed) as ctx:
            self._intent(amount="0.50")
        self.assertEqual(ctx.exception.message, "Amount 0.50 does not match order total 50.00")
        self.assertFalse(Payment.objects.exists())

    def test_intent_rejected_once_order_is_paid(self):
        handle_payment_succeeded(self._intent().payment_intent_id)
        with self.assertRaises(ValidationFailed) as ctx:
            self._intent()
        self.assertEqual(ctx.exception.message,
                         f"Order {self.order.order_number} cannot accept payment in status PROCESSING")
        self.assertEqual(Payment.objects.count(), 1)

    def test_intent_allowed_after_failed_payment(self):
        handle_payment_failed(self._intent().payment_intent_id, "card_declined", "Declined")
        self.assertTrue(self._intent().payment_intent_id.startswith("pi_local_"))

    def test_success_moves_order_to_processing(self):
        result = self._intent()
        outcome = handle_payment_succeeded(result.payment_intent_id)
        self.assertEqual(outcome.payment_count, 1)
        self.assertEqual(outcome.order.status, "PROCESSING")
        self.assertEqual(outcome.order.payment_status, "PAID")
        self.assertEqual([e.kind for e in outcome.events], ["order_confirmation"])
        self.assertEqual(Payment.objects.get().status, "PAID")

    def test_success_without_order_metadata(self):
        intent = SignedPayloadGateway().create_intent(amount_cents=100, currency="usd", metadata={})
        with self.assertRaises(PaymentError) as ctx:
            handle_payment_succeeded(intent.id)
        self.assertEqual(ctx.exception.message, "Order ID not found in payment intent metadata")

    def test_failure_marks_order_and_requests_alert(self):
        result = self._intent()
        outcome = handle_payment_failed(result.payment_intent_id, "card_declined", "Your card was declined.")
        self.assertEqual(outcome.order.status, "PAYMENT_FAILED")
        self.assertEqual(outcome.order.payment_status, "FAILED")
        payment = Payment.objects.get()
        self.assertEqual((payment.status, payment.failure_code), ("FAILED", "card_declined"))
        self.assertEqual([e.kind for e in outcome.events], ["payment_failed"])

    def test_refund_requires_completed_payment(self):
        self._intent()
        payment = Payment.objects.get()
        with self.assertRaises(PaymentError) as ctx:
            refund_payment(payment.pk, store_id=str(self.store.pk))
        self.assertEqual(ctx.exception.message, "Can only refund completed payments")

    def test_refund_requires_intent_id(self):
        result = self._intent()
        handle_payment_succeeded(result.payment_intent_id)
        Payment.objects.update(gateway_payment_id=None)
        with self.assertRaises(PaymentError) as ctx:
            refund_payment(Payment.objects.get().pk, store_id=str(self.store.pk))
        self.assertEqual(ctx.exception.message, "Payment intent ID not found")

    def test_refund_cannot_exceed_payment(self):
        result = self._intent()
        handle_payment_succeeded(result.payment_intent_id)
        with self.assertRaises(ValidationFailed) as ctx:
            refund_payment(Payment.objects.get().pk, store_id=str(self.store.pk), amount="50.01")
        self.assertEqual(ctx.exception.message, "Refund exceeds payment amount.")

    def test_full_refund_refunds_order(self):
        result = self._intent()
        handle_payment_succeeded(result.payment_intent_id)
        outcome = refund_payment(Payment.objects.get().pk, store_id=str(self.store.pk))
        self.assertEqual(outcome.order.status, "REFUNDED")
        self.assertEqual(outcome.order.payment_status, "REFUNDED")
        payment = Payment.objects.get()
        self.assertEqual(payment.status, "REFUNDED")
        self.assertEqual(payment.refunded_amount, Decimal("50.00"))
        self.assertIsNotNone(payment.refunded_at)

    def test_partial_refund_leaves_order_status(self):
        result = self._intent()
        handle_payment_succeeded(result.payment_intent_id)
        outcome = refund_payment(Payment.objects.get().pk, store_id=str(self.store.pk), amount="10.00")
        self.assertEqual(outcome.order.status, "PROCESSING")
        self.assertEqual(outcome.order.payment_status, "REFUNDED")
        self.assertEqual(Payment.objects.get().refunded_amount, Decimal("10.00"))


class WebhookSignatureTest(TestCase):
    def test_valid_signature_returns_event(self):
        body = json.dumps({"id": "evt_1", "type": "ping"}).encode()
        event = verify_webhook_signature(body, SignedPayloadGateway.sign(body, SECRET), SECRET)
        self.assertEqual(event["id"], "evt_1")

    def test_tampered_body_is_rejected(self):
        body = json.dumps({"id": "evt_1"}).encode()
        signature = SignedPayloadGateway.sign(body, SECRET)
        with self.assertRaises(WebhookVerificationError) as ctx:
            verify_webhook_signature(body + b" ", signature, SECRET)
        self.assertTrue(ctx.exception.message.startswith("Webhook signature verification failed: "))
        self.assertEqual(ctx.exception.status_code, 400)

    def test_stale_signature_is_rejected(self):
        body = json.dumps({"id": "evt_1"}).encode()
        signature = SignedPayloadGateway.sign(body, SECRET, timestamp=int(time.time()) - 301)
        with self.assertRaises(WebhookVerificationError) as ctx:
            verify_webhook_signature(body, signature, SECRET)
        self.assertIn("tolerance", ctx.exception.message)

    def test_malformed_header_is_rejected(self):
        with self.assertRaises(WebhookVerificationError):
            verify_webhook_signature(b"{}", "garbage", SECRET)


class PaymentApiTest(PaymentFlowMixin, APITestCase):
    """
    Intent creation from the storefront, the signed webhook and admin refunds.
    """

    def setUp(self):
        super().setUp()
        self.admin = make_user()
        add_member(self.store, self.admin)
        self.headers = {"HTTP_X_STORE_ID": str(self.store.pk)}

    def _post_webhook(self, event, secret=SECRET):
        body = json.dumps(event).encode()
        return self.client.post(
            reverse("payment-webhook"), data=body, content_type="application/json",
            HTTP_STRIPE_SIGNATURE=SignedPayloadGateway.sign(body, secret),
        )

    def test_guest_can_create_intent(self):
        data = {"order_id": str(self.order.pk), "amount": "50.00"}
        response = self.client.post(reverse("payment-intent"), data, format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["payment_intent_id"].startswith("pi_local_"))

    def test_intent_requires_store_context(self):
        data = {"order_id": str(self.order.pk)}
        response = self.client.post(reverse("payment-intent"), data, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Payment.objects.exists())

    def test_intent_for_wrong_amount_is_400(self):
        data = {"order_id": str(self.order.pk), "amount": "0.50"}
        response = self.client.post(reverse("payment-intent"), data, format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_bad_signature_is_400_and_changes_nothing(self):
        result = self._intent()
        event = {"id": "evt_1", "type": "payment_intent.succeeded",
                 "data": {"object": {"id": result.payment_intent_id}}}
        response = self._post_webhook(event, secret="whsec_wrong")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["error"]["code"], "WEBHOOK_VERIFICATION_FAILED")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "PENDING")
        self.assertFalse(WebhookEvent.objects.exists())

    def test_succeeded_webhook_confirms_order(self):
        result = self._intent()
        event = {"id": "evt_2", "type": "payment_intent.succeeded",
                 "data": {"object": {"id": result.payment_intent_id}}}
        response = self._post_webhook(event)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), {"data": {"received": True}})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "PROCESSING")
        self.assertTrue(WebhookEvent.objects.get(event_id="evt_2").handled)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, f"Order Confirmation - {self.order.order_number}")

    def test_failed_webhook_alerts_admins(self):
        result = self._intent()
        event = {"id": "evt_3", "type": "payment_intent.payment_failed",
                 "data": {"object": {"id": result.payment_intent_id,
                                     "last_payment_error": {"code": "card_declined", "message": "Declined"}}}}
        response = self._post_webhook(event)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "PAYMENT_FAILED")
        note = Notification.objects.get(user=self.admin)
        self.assertEqual(note.type, "payment_failed")

    def test_unknown_event_is_acknowledged(self):
        response = self._post_webhook({"id": "evt_4", "type": "charge.updated", "data": {"object": {}}})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(WebhookEvent.objects.get(event_id="evt_4").handled)

    def test_admin_refund(self):
        result = self._intent()
        handle_payment_succeeded(result.payment_intent_id)
        payment = Payment.objects.get()
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse("payment-refund", args=[payment.pk]), {"amount": "50.00"},
                                    format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "REFUNDED")

    def test_refund_of_pending_payment_is_402(self):
        self._intent()
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse("payment-refund", args=[Payment.objects.get().pk]), {},
                                    format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
