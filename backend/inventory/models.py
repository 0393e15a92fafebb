from django.db import models
from common.models import BaseModel


class InventoryLog(BaseModel):
    """Append-only stock movement record; one row per quantity change."""
    store   = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="inventory_logs")
    product = models.ForeignKey("commerce.Product", on_delete=models.CASCADE, related_name="inventory_logs")
    variant = models.ForeignKey("commerce.ProductVariant", on_delete=models.SET_NULL, null=True, blank=True,
                                related_name="inventory_logs")
    previous_qty = models.IntegerField()
    new_qty      = models.IntegerField()
    change_qty   = models.IntegerField()
    reason  = models.CharField(max_length=64)
    note    = models.CharField(max_length=255, blank=True, null=True)
    user_id = models.UUIDField(blank=True, null=True)

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(fields=["store", "product", "-created_at"]),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Inventory log entries are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Inventory log entries cannot be deleted")
