import logging
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils import timezone

from .models import EmailDispatch, EmailDeliveryLog

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRYABLE = (SMTPException, ConnectionError, TimeoutError)


def render_email(dispatch: EmailDispatch):
    ctx = dict(dispatch.context_json or {}, subject=dispatch.subject)
    base = f"notificationsapp/emails/{dispatch.template}"
    return render_to_string(f"{base}.txt", ctx), render_to_string(f"{base}.html", ctx)


@shared_task(bind=True, autoretry_for=RETRYABLE,
             retry_backoff=True, retry_backoff_max=600, retry_jitter=False, max_retries=MAX_RETRIES)
def deliver_email(self, dispatch_id: int):
    d = EmailDispatch.objects.filter(id=dispatch_id).first()
    if not d or d.status == "sent":
        return

    d.status = "sending"
    d.attempts += 1
    d.save(update_fields=["status", "attempts"])

    try:
        text_body, html_body = render_email(d)
        reply_to = [settings.EMAIL_REPLY_TO] if getattr(settings, "EMAIL_REPLY_TO", None) else None
        msg = EmailMultiAlternatives(d.subject, text_body, settings.DEFAULT_FROM_EMAIL, [d.to_address],
                                     reply_to=reply_to)
        msg.attach_alternative(html_body, "text/html")
        msg.send()
    except Exception as e:
        final = not isinstance(e, RETRYABLE) or self.request.retries >= MAX_RETRIES
        d.status = "failed" if final else "queued"
        d.error_message = str(e)
        d.save(update_fields=["status", "error_message"])
        EmailDeliveryLog.objects.create(dispatch=d, attempt=d.attempts, status="failed", error=str(e))
        logger.warning("Email %s to %s failed (attempt %d): %s", d.pk, d.to_address, d.attempts, e)
        raise

    d.status = "sent"
    d.sent_at = timezone.now()
    d.error_message = None
    d.save(update_fields=["status", "sent_at", "error_message"])
    EmailDeliveryLog.objects.create(dispatch=d, attempt=d.attempts, status="sent")
    logger.info("Email %s (%s) sent to %s", d.pk, d.template, d.to_address)
