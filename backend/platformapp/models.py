from django.conf import settings
from django.db import models
from common.models import BaseModel, SoftDeleteModel


class Store(SoftDeleteModel):
    STATUS_CHOICES = [("ACTIVE", "Active"), ("SUSPENDED", "Suspended"), ("TRIAL", "Trial")]

    slug = models.SlugField(max_length=100, unique=True)
    name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=40, blank=True)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=2, default="US")
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")
    plan = models.CharField(max_length=20, default="FREE")

    def __str__(self):
        return self.name


class StoreMembership(BaseModel):
    ROLE_STORE_ADMIN = "STORE_ADMIN"
    ROLE_STAFF = "STAFF"
    ROLE_CHOICES = [(ROLE_STORE_ADMIN, "Store admin"), (ROLE_STAFF, "Staff")]

    store = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="memberships")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="store_memberships")
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_STAFF)

    class Meta:
        constraints = [models.UniqueConstraint(fields=["store", "user"], name="uniq_store_membership")]


class AuditLogQuerySet(models.QuerySet):
    def older_than(self, cutoff):
        return self.filter(created_at__lt=cutoff)


class AuditLog(models.Model):
    """Append-only. Rows leave only through the retention purge (bulk queryset delete)."""
    ACTIONS = ("CREATE", "UPDATE", "DELETE")

    id = models.BigAutoField(primary_key=True)
    store = models.ForeignKey("platformapp.Store", on_delete=models.SET_NULL, related_name="audit_logs",
                              blank=True, null=True)
    user_id = models.UUIDField(blank=True, null=True, db_index=True)
    action = models.CharField(max_length=20)
    entity_type = models.CharField(max_length=120)
    entity_id = models.CharField(max_length=120)
    changes = models.JSONField(blank=True, null=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.CharField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at", "-id")
        indexes = [models.Index(fields=["entity_type", "entity_id"])]

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError("Audit log entries are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit log entries cannot be deleted individually")
