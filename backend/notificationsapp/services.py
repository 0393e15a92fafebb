"""In-app notifications: per-user inbox plus fan-out to a store's admins."""
from __future__ import annotations

import logging
from typing import List, Optional

from django.utils import timezone

from common.exceptions import NotFound
from common.pagination import clamp_page, clamp_per_page, page_meta
from platformapp.models import StoreMembership
from .models import Notification

logger = logging.getLogger(__name__)


def create_notification(user_id, title: str, message: str, *, type: str = "system",
                        store_id: Optional[str] = None, link_url: Optional[str] = None,
                        link_text: Optional[str] = None) -> Notification:
    return Notification.objects.create(
        user_id=user_id,
        store_id=store_id,
        title=title,
        message=message,
        type=type,
        link_url=link_url,
        link_text=link_text,
    )


def _inbox(user_id, store_id: Optional[str] = None):
    qs = Notification.objects.filter(user_id=user_id)
    if store_id:
        qs = qs.filter(store_id=store_id)
    return qs


def list_notifications(user_id, *, store_id: Optional[str] = None, is_read: Optional[bool] = None,
                       page=1, per_page=50):
    page = clamp_page(page)
    per_page = clamp_per_page(per_page, default=50)
    qs = _inbox(user_id, store_id)
    if is_read is not None:
        qs = qs.filter(is_read=is_read)
    qs = qs.order_by("-created_at")
    total = qs.count()
    offset = (page - 1) * per_page
    return list(qs[offset:offset + per_page]), page_meta(page, per_page, total)


def get_unread_count(user_id, store_id: Optional[str] = None) -> int:
    return _inbox(user_id, store_id).filter(is_read=False).count()


def mark_as_read(notification_id, user_id) -> Notification:
    notification = Notification.objects.filter(pk=notification_id, user_id=user_id).first()
    if notification is None:
        raise NotFound("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = timezone.now()
        notification.save(update_fields=["is_read", "read_at", "updated_at"])
    return notification


def mark_all_as_read(user_id, store_id: Optional[str] = None) -> int:
    now = timezone.now()
    return _inbox(user_id, store_id).filter(is_read=False).update(is_read=True, read_at=now, updated_at=now)


def notify_store_admins(store_id, title: str, message: str, *, type: str = "system",
                        link_url: Optional[str] = None) -> List[Notification]:
    admin_ids = list(
        StoreMembership.objects.filter(store_id=store_id, role=StoreMembership.ROLE_STORE_ADMIN)
        .values_list("user_id", flat=True)
    )
    created = Notification.objects.bulk_create([
        Notification(user_id=uid, store_id=store_id, title=title, message=message, type=type, link_url=link_url)
        for uid in admin_ids
    ])
    logger.info("Notified %d admin(s) of store %s: %s", len(created), store_id, title)
    return created
