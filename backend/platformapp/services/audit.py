from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.utils import timezone

from common.exceptions import ValidationFailed
from common.pagination import page_meta
from platformapp.models import AuditLog

logger = logging.getLogger(__name__)

REDACT_KEYS = {"password", "token", "access", "refresh", "card", "cvv", "pin", "secret", "client_secret"}


def _sanitize(changes: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in (changes or {}).items():
        if str(k).lower() in REDACT_KEYS:
            out[k] = "***"
        elif isinstance(v, dict):
            out[k] = _sanitize(v)
        else:
            out[k] = v
    # Decimals, dates, UUIDs and model instances become JSON-safe strings
    return json.loads(json.dumps(out, cls=DjangoJSONEncoder, default=str))


def record_audit(action: str, entity_type: str, entity_id: str, *,
                 store_id: Optional[str] = None, user_id: Optional[str] = None,
                 changes: Optional[Dict[str, Any]] = None,
                 ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Optional[AuditLog]:
    """
    Append an audit entry. Never raises: a failed write is logged and
    returns None so auditing cannot block the primary operation.
    """
    try:
        if not action or not entity_type or not entity_id:
            raise ValueError("action, entity_type, and entity_id are required")
        action = action.upper()
        if action not in AuditLog.ACTIONS:
            raise ValueError(f"Invalid action: {action}. Must be one of: {', '.join(AuditLog.ACTIONS)}")
        with transaction.atomic():
            return AuditLog.objects.create(
                store_id=store_id or None,
                user_id=user_id or None,
                action=action,
                entity_type=entity_type[:120],
                entity_id=str(entity_id)[:120],
                changes=_sanitize(changes) if changes else None,
                ip_address=ip_address or None,
                user_agent=(user_agent or "")[:500] or None,
            )
    except Exception:
        logger.exception("Failed to write audit log %s %s %s", action, entity_type, entity_id)
        return None


@dataclass(frozen=True)
class AuditLogQuery:
    store_id: Optional[str] = None
    user_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    action: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = 1
    limit: int = 50

    def validate(self):
        if self.page < 1:
            raise ValidationFailed("page must be >= 1")
        if self.limit < 1 or self.limit > 100:
            raise ValidationFailed("limit must be between 1 and 100")

    def to_filter(self) -> Dict[str, Any]:
        f: Dict[str, Any] = {}
        if self.store_id:
            f["store_id"] = self.store_id
        if self.user_id:
            f["user_id"] = self.user_id
        if self.entity_type:
            f["entity_type"] = self.entity_type
        if self.entity_id:
            f["entity_id"] = self.entity_id
        if self.action:
            f["action"] = self.action.upper()
        if self.start_date:
            f["created_at__gte"] = self.start_date
        if self.end_date:
            f["created_at__lte"] = self.end_date
        return f


def get_audit_logs(query: AuditLogQuery):
    """Returns (rows, meta) newest first."""
    query.validate()
    qs = AuditLog.objects.filter(**query.to_filter()).order_by("-created_at", "-id")
    total = qs.count()
    offset = (query.page - 1) * query.limit
    rows = list(qs[offset:offset + query.limit])
    return rows, page_meta(query.page, query.limit, total)


def get_entity_history(entity_type: str, entity_id: str, *, store_id: Optional[str] = None, limit: int = 50):
    qs = AuditLog.objects.filter(entity_type=entity_type, entity_id=str(entity_id))
    if store_id:
        qs = qs.filter(store_id=store_id)
    return list(qs.order_by("-created_at", "-id")[:limit])


def purge_expired_audit_logs(retention_days: Optional[int] = None) -> int:
    days = retention_days if retention_days is not None else settings.AUDIT_LOG_RETENTION_DAYS
    if days < 1:
        raise ValueError("retention_days must be >= 1")
    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = AuditLog.objects.older_than(cutoff).delete()
    if deleted:
        logger.info("Purged %d audit log entries older than %s", deleted, cutoff.isoformat())
    return deleted
