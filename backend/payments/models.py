from decimal import Decimal

from django.db import models

from common.models import BaseModel


class Payment(BaseModel):
    """
    One gateway payment against an Order. The gateway intent id is the join key
    for webhook callbacks.
    """
    STATUS_CHOICES = [
        ("PENDING", "Pending"),
        ("PAID", "Paid"),
        ("FAILED", "Failed"),
        ("REFUNDED", "Refunded"),
    ]

    store = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="payments")
    order = models.ForeignKey("commerce.Order", on_delete=models.CASCADE, related_name="payments")

    amount   = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    status   = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    method   = models.CharField(max_length=40, default="CREDIT_CARD")
    gateway  = models.CharField(max_length=40, default="STRIPE")

    gateway_payment_id  = models.CharField(max_length=120, blank=True, null=True)  # payment intent id
    gateway_charge_id   = models.CharField(max_length=120, blank=True, null=True)
    gateway_customer_id = models.CharField(max_length=120, blank=True, null=True)

    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    refunded_at     = models.DateTimeField(blank=True, null=True)
    failure_code    = models.CharField(max_length=64, blank=True, null=True)
    failure_message = models.TextField(blank=True, null=True)
    metadata        = models.JSONField(default=dict, blank=True)

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(fields=["store", "order", "status"]),
            models.Index(fields=["gateway_payment_id"]),
        ]

    def __str__(self):
        return f"{self.gateway} {self.gateway_payment_id or self.pk} ({self.status})"


class WebhookEvent(BaseModel):
    """
    Raw webhook log (for audits/debugging).
    """
    event_id   = models.CharField(max_length=120, blank=True, null=True, db_index=True)
    event_type = models.CharField(max_length=80)
    payload    = models.JSONField(default=dict, blank=True)
    signature  = models.CharField(max_length=500, blank=True, null=True)
    handled    = models.BooleanField(default=False)
    error      = models.TextField(blank=True, null=True)

    def __str__(self):
        return f"{self.event_type} ({self.event_id})"
