from unittest import mock

from django.core import mail
from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from common.events import DomainEvent, LOW_STOCK_NOTIFICATION, ORDER_CONFIRMATION_EMAIL
from common.exceptions import NotFound
from common.tests.factories import add_member, make_customer, make_order, make_product, make_store, make_user
from notificationsapp import emails, services
from notificationsapp.dispatch import dispatch_events
from notificationsapp.models import EmailDeliveryLog, EmailDispatch, Notification
from platformapp.models import StoreMembership


class StoreAdminFanOutTest(TestCase):
    def setUp(self):
        self.store = make_store()
        self.admins = [make_user(), make_user()]
        for user in self.admins:
            add_member(self.store, user)
        self.staff = make_user()
        add_member(self.store, self.staff, role=StoreMembership.ROLE_STAFF)

    def test_low_stock_event_notifies_every_admin(self):
        product = make_product(self.store, name="Teapot", qty=2, low_stock_threshold=5)
        report = dispatch_events([DomainEvent(
            kind=LOW_STOCK_NOTIFICATION, entity_type="Product", entity_id=str(product.pk),
            store_id=str(self.store.pk), payload={"name": "Teapot", "quantity": 2, "threshold": 5},
        )])
        self.assertEqual((report.sent, report.failed), (1, 0))
        notes = Notification.objects.filter(store=self.store)
        self.assertEqual(sorted(n.user_id for n in notes), sorted(u.pk for u in self.admins))
        self.assertEqual(notes[0].message, "Teapot is running low (2 remaining, threshold: 5)")
        self.assertEqual(notes[0].link_url, f"/products/{product.pk}")
        self.assertFalse(Notification.objects.filter(user=self.staff).exists())

    def test_handler_failure_is_counted_not_raised(self):
        order = make_order(self.store)
        event = DomainEvent(kind=ORDER_CONFIRMATION_EMAIL, entity_type="Order", entity_id=str(order.pk),
                            store_id=str(self.store.pk))
        with mock.patch.object(emails, "send_order_confirmation", side_effect=RuntimeError("smtp down")):
            report = dispatch_events([event])
        self.assertEqual((report.sent, report.failed), (0, 1))
        self.assertIn("smtp down", report.errors[0])

    def test_unknown_kind_is_skipped(self):
        report = dispatch_events([DomainEvent(kind="carrier_pigeon", entity_type="Order", entity_id="x")])
        self.assertEqual((report.sent, report.failed), (0, 0))


class InboxServiceTest(TestCase):
    def setUp(self):
        self.user = make_user()
        self.other = make_user()
        self.first = services.create_notification(self.user.pk, "Welcome", "Hello")
        self.second = services.create_notification(self.user.pk, "Order Shipped", "On its way", type="order_update")

    def test_unread_count_and_listing(self):
        self.assertEqual(services.get_unread_count(self.user.pk), 2)
        rows, meta = services.list_notifications(self.user.pk, is_read=False)
        self.assertEqual(meta["total"], 2)
        self.assertEqual(rows[0].pk, self.second.pk)

    def test_mark_as_read_only_for_owner(self):
        with self.assertRaises(NotFound):
            services.mark_as_read(self.first.pk, self.other.pk)
        note = services.mark_as_read(self.first.pk, self.user.pk)
        self.assertTrue(note.is_read)
        self.assertIsNotNone(note.read_at)
        self.assertEqual(services.get_unread_count(self.user.pk), 1)

    def test_mark_all_as_read(self):
        self.assertEqual(services.mark_all_as_read(self.user.pk), 2)
        self.assertEqual(services.mark_all_as_read(self.user.pk), 0)


class OrderEmailTest(TestCase):
    def setUp(self):
        cache.clear()
        self.store = make_store(name="Corner Shop")
        self.product = make_product(self.store, name="Mug", price="12.00")
        self.customer = make_customer(self.store)
        self.order = make_order(self.store, customer=self.customer, items=[(self.product, 2)])

    def test_confirmation_is_sent_once(self):
        first = emails.send_order_confirmation(self.order)
        second = emails.send_order_confirmation(self.order)
        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.subject, f"Order Confirmation - {self.order.order_number}")
        self.assertEqual(message.to, [self.customer.email])
        self.assertIn("Mug", message.body)
        self.assertEqual(message.alternatives[0][1], "text/html")
        dispatch = EmailDispatch.objects.get()
        self.assertEqual(dispatch.status, "sent")
        self.assertEqual(dispatch.dedup_key, f"email:{self.order.pk}:order_confirmation")

    def test_shipping_and_confirmation_are_deduplicated_separately(self):
        emails.send_order_confirmation(self.order)
        emails.send_shipping_confirmation(self.order)
        self.assertEqual(len(mail.outbox), 2)

    def test_order_without_email_is_skipped(self):
        guest_order = make_order(self.store)
        self.assertIsNone(emails.send_order_confirmation(guest_order))
        self.assertEqual(len(mail.outbox), 0)

    def test_delivery_failure_is_recorded(self):
        with mock.patch("notificationsapp.tasks.EmailMultiAlternatives.send", side_effect=ValueError("bad header")):
            dispatch = emails.send_order_confirmation(self.order)
        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, "failed")
        self.assertEqual(dispatch.error_message, "bad header")
        self.assertEqual(EmailDeliveryLog.objects.get(dispatch=dispatch).status, "failed")


class NotificationApiTest(APITestCase):
    """
    Users only ever see and change their own notifications.
    """

    def setUp(self):
        self.user = make_user()
        self.client.force_authenticate(self.user)
        self.note = services.create_notification(self.user.pk, "Hi", "There")
        services.create_notification(make_user().pk, "Not yours", "Hidden")

    def test_list_and_unread_count(self):
        response = self.client.get(reverse("notification-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["meta"]["total"], 1)
        response = self.client.get(reverse("notification-unread-count"))
        self.assertEqual(response.data, {"count": 1})

    def test_mark_read(self):
        response = self.client.post(reverse("notification-read", args=[self.note.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["is_read"])

    def test_read_all(self):
        response = self.client.post(reverse("notification-read-all"))
        self.assertEqual(response.data, {"updated": 1})

    def test_anonymous_is_rejected(self):
        self.client.force_authenticate(None)
        response = self.client.get(reverse("notification-list"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
