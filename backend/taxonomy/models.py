from django.db import models
from common.models import SoftDeleteModel


class Category(SoftDeleteModel):
    store = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="categories")
    parent = models.ForeignKey("self", on_delete=models.PROTECT, related_name="children", blank=True, null=True)
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=120)
    description = models.TextField(blank=True)
    image_url = models.URLField(blank=True)
    sort_order = models.PositiveIntegerField(default=0)
    is_published = models.BooleanField(default=True)

    class Meta(SoftDeleteModel.Meta):
        ordering = ("sort_order", "name")
        indexes = [models.Index(fields=["store", "slug"])]

    def __str__(self):
        return self.name


class Brand(SoftDeleteModel):
    store = models.ForeignKey("platformapp.Store", on_delete=models.CASCADE, related_name="brands")
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=120)
    description = models.TextField(blank=True)
    logo_url = models.URLField(blank=True)
    website_url = models.URLField(blank=True)
    is_published = models.BooleanField(default=True)

    class Meta(SoftDeleteModel.Meta):
        ordering = ("name",)
        indexes = [models.Index(fields=["store", "slug"])]

    def __str__(self):
        return self.name
