import logging

from celery import shared_task

from .services.audit import purge_expired_audit_logs

logger = logging.getLogger(__name__)


@shared_task
def purge_audit_logs(retention_days=None):
    """Beat: drop audit entries past the retention window."""
    deleted = purge_expired_audit_logs(retention_days)
    logger.info("purge_audit_logs removed %d rows", deleted)
    return deleted
