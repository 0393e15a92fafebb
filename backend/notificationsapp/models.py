from django.conf import settings
from django.db import models

from common.models import BaseModel


EMAIL_STATUS = (
    ("queued", "Queued"),
    ("sending", "Sending"),
    ("sent", "Sent"),
    ("failed", "Failed"),
)


class Notification(BaseModel):
    """In-app notification for one user; `type` drives the dashboard icon (order_update, low_stock, ...)."""
    store = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, null=True, blank=True,
                              related_name="notifications")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    title = models.CharField(max_length=200)
    message = models.TextField()
    type = models.CharField(max_length=40, default="system")
    link_url = models.CharField(max_length=500, blank=True, null=True)
    link_text = models.CharField(max_length=120, blank=True, null=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(blank=True, null=True)

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(fields=["user", "is_read"]),
            models.Index(fields=["user", "-created_at"]),
        ]

    def __str__(self):
        return f"{self.title} -> {self.user_id}"


class EmailDispatch(models.Model):
    """One outbound transactional email; delivered by notificationsapp.tasks.deliver_email."""
    id = models.BigAutoField(primary_key=True)
    store = models.ForeignKey("platformapp.Store", on_delete=models.SET_NULL, null=True, blank=True,
                              related_name="email_dispatches")

    to_address = models.EmailField()
    subject = models.CharField(max_length=255)
    template = models.CharField(max_length=120)  # base name under notificationsapp/emails/
    context_json = models.JSONField(default=dict, blank=True)

    entity_type = models.CharField(max_length=60, blank=True, null=True)
    entity_id = models.CharField(max_length=120, blank=True, null=True)
    event = models.CharField(max_length=60, blank=True, null=True)
    dedup_key = models.CharField(max_length=255, blank=True, null=True, db_index=True)

    status = models.CharField(max_length=16, choices=EMAIL_STATUS, default="queued")
    attempts = models.PositiveIntegerField(default=0)
    error_message = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [models.Index(fields=["status", "created_at"])]

    def __str__(self):
        return f"{self.template} -> {self.to_address} ({self.status})"


class EmailDeliveryLog(models.Model):
    id = models.BigAutoField(primary_key=True)
    dispatch = models.ForeignKey("notificationsapp.EmailDispatch", on_delete=models.CASCADE, related_name="logs")
    attempt = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=16, default="sent")
    error = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("created_at",)
