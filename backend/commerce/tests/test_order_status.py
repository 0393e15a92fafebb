from itertools import product as pairs
from unittest import mock

from django.test import TestCase

from common.events import ORDER_CONFIRMATION_EMAIL, ORDER_SHIPPED_NOTIFICATION, SHIPPING_CONFIRMATION_EMAIL
from common.exceptions import InvalidTransition, ValidationFailed
from common.tests.factories import make_store, make_product, make_order, make_user
from commerce.models import Order, OrderStatus
from commerce.services.orders import (
    ORDER_STATUS_TRANSITIONS, is_valid_status_transition, update_order_status,
)
from common.tenancy import TenantContext
from inventory.models import InventoryLog
from platformapp.models import AuditLog

ALLOWED = {
    ("PENDING", "PAID"), ("PENDING", "PAYMENT_FAILED"), ("PENDING", "CANCELED"),
    ("PAYMENT_FAILED", "PAID"), ("PAYMENT_FAILED", "CANCELED"),
    ("PAID", "PROCESSING"), ("PAID", "CANCELED"), ("PAID", "REFUNDED"),
    ("PROCESSING", "SHIPPED"), ("PROCESSING", "CANCELED"), ("PROCESSING", "REFUNDED"),
    ("SHIPPED", "DELIVERED"), ("SHIPPED", "CANCELED"),
    ("DELIVERED", "REFUNDED"),
}


class TransitionTableTest(TestCase):
    def test_every_pair_matches_the_table(self):
        statuses = [s.value for s in OrderStatus]
        for current, new in pairs(statuses, statuses):
            self.assertEqual(is_valid_status_transition(current, new), (current, new) in ALLOWED,
                             f"{current} -> {new}")

    def test_terminal_states_have_no_exits(self):
        self.assertEqual(ORDER_STATUS_TRANSITIONS[OrderStatus.CANCELED], frozenset())
        self.assertEqual(ORDER_STATUS_TRANSITIONS[OrderStatus.REFUNDED], frozenset())


class UpdateOrderStatusTest(TestCase):
    def setUp(self):
        self.store = make_store()
        self.product = make_product(self.store, qty=10)
        self.order = make_order(self.store, status="PROCESSING", items=[(self.product, 2)])

    def test_invalid_transition_raises_and_persists_nothing(self):
        order = make_order(self.store, status="DELIVERED")
        with self.assertRaises(InvalidTransition) as ctx:
            update_order_status(order.pk, "PENDING", store_id=str(self.store.pk))
        self.assertEqual(ctx.exception.status_code, 422)
        self.assertIn("Cannot change from DELIVERED to PENDING", ctx.exception.message)
        order.refresh_from_db()
        self.assertEqual(order.status, "DELIVERED")
        self.assertFalse(AuditLog.objects.filter(entity_id=str(order.pk)).exists())

    def test_shipping_without_tracking_fails_before_any_write(self):
        with mock.patch.object(Order, "save") as save:
            with self.assertRaises(ValidationFailed) as ctx:
                update_order_status(self.order.pk, "SHIPPED", store_id=str(self.store.pk))
        save.assert_not_called()
        self.assertEqual(ctx.exception.message, "Tracking number is required when marking order as shipped")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "PROCESSING")

    def test_blank_tracking_number_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            update_order_status(self.order.pk, "SHIPPED", store_id=str(self.store.pk), tracking_number="   ")

    def test_shipping_sets_in_transit_and_requests_notifications(self):
        result = update_order_status(self.order.pk, "SHIPPED", store_id=str(self.store.pk),
                                     tracking_number="1Z999", tracking_url="https://track.example.com/1Z999")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "SHIPPED")
        self.assertEqual(self.order.shipping_status, "IN_TRANSIT")
        self.assertEqual(self.order.tracking_number, "1Z999")
        kinds = [e.kind for e in result.events]
        self.assertEqual(kinds, [SHIPPING_CONFIRMATION_EMAIL, ORDER_SHIPPED_NOTIFICATION])

    def test_tracking_is_kept_when_not_supplied(self):
        update_order_status(self.order.pk, "SHIPPED", store_id=str(self.store.pk), tracking_number="TRK-1")
        update_order_status(self.order.pk, "DELIVERED", store_id=str(self.store.pk))
        self.order.refresh_from_db()
        self.assertEqual(self.order.tracking_number, "TRK-1")

    def test_delivered_records_fulfilment(self):
        update_order_status(self.order.pk, "SHIPPED", store_id=str(self.store.pk), tracking_number="T")
        update_order_status(self.order.pk, "DELIVERED", store_id=str(self.store.pk))
        self.order.refresh_from_db()
        self.assertEqual(self.order.shipping_status, "DELIVERED")
        self.assertIsNotNone(self.order.fulfilled_at)

    def test_cancel_restores_stock(self):
        update_order_status(self.order.pk, "CANCELED", store_id=str(self.store.pk), cancel_reason="Changed mind")
        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.order.status, "CANCELED")
        self.assertEqual(self.order.shipping_status, "PENDING")
        self.assertIsNotNone(self.order.canceled_at)
        self.assertEqual(self.order.cancel_reason, "Changed mind")
        self.assertEqual(self.product.inventory_qty, 12)
        log = InventoryLog.objects.get(product=self.product)
        self.assertEqual((log.change_qty, log.reason), (2, "Cancellation"))

    def test_processing_requests_order_confirmation(self):
        order = make_order(self.store, status="PAID")
        result = update_order_status(order.pk, "PROCESSING", store_id=str(self.store.pk))
        self.assertEqual([e.kind for e in result.events], [ORDER_CONFIRMATION_EMAIL])

    def test_admin_notes_are_appended_with_timestamp(self):
        self.order.admin_note = "first"
        self.order.save()
        update_order_status(self.order.pk, "SHIPPED", store_id=str(self.store.pk),
                            tracking_number="T", admin_note="handed to carrier")
        self.order.refresh_from_db()
        lines = self.order.admin_note.split("\n")
        self.assertEqual(lines[0], "first")
        self.assertTrue(lines[1].endswith(": handed to carrier"))

    def test_other_store_sees_nothing(self):
        other = make_store()
        self.assertIsNone(update_order_status(self.order.pk, "SHIPPED", store_id=str(other.pk),
                                              tracking_number="T"))
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "PROCESSING")

    def test_soft_deleted_order_is_not_found(self):
        self.order.soft_delete()
        self.assertIsNone(update_order_status(self.order.pk, "CANCELED", store_id=str(self.store.pk)))

    def test_writes_status_audit_entry(self):
        user = make_user()
        ctx = TenantContext(store_id=str(self.store.pk), user_id=str(user.pk), ip_address="10.0.0.1")
        update_order_status(self.order.pk, "CANCELED", store_id=str(self.store.pk), context=ctx)
        entry = AuditLog.objects.get(entity_type="Order", entity_id=str(self.order.pk))
        self.assertEqual(entry.action, "UPDATE")
        self.assertEqual(entry.changes, {"status": {"old": "PROCESSING", "new": "CANCELED"}})
        self.assertEqual(str(entry.user_id), str(user.pk))
        self.assertEqual(entry.ip_address, "10.0.0.1")

    def test_unknown_status_is_a_validation_error(self):
        with self.assertRaises(ValidationFailed):
            update_order_status(self.order.pk, "LOST", store_id=str(self.store.pk))
