"""
Category / brand rules the ViewSets delegate to: per-store slug uniqueness,
acyclic category trees, and deletes that refuse to orphan products.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from common.exceptions import Conflict, NotFound, ValidationFailed
from .models import Brand, Category

logger = logging.getLogger(__name__)


def ensure_unique_slug(model, store_id: str, slug: str, exclude_id=None) -> None:
    qs = model.objects.alive().filter(store_id=store_id, slug=slug)
    if exclude_id:
        qs = qs.exclude(pk=exclude_id)
    if qs.exists():
        raise Conflict(f"Slug '{slug}' already exists in this store")


def get_category(category_id, store_id: str) -> Category:
    category = Category.objects.alive().filter(pk=category_id, store_id=store_id).first()
    if not category:
        raise NotFound("Category not found")
    return category


def get_descendant_ids(category_id, store_id: str) -> List:
    """Breadth-first walk of live subcategories."""
    found, queue = [], [category_id]
    while queue:
        current = queue.pop(0)
        children = list(
            Category.objects.alive().filter(store_id=store_id, parent_id=current).values_list("id", flat=True)
        )
        found.extend(children)
        queue.extend(children)
    return found


def validate_parent(store_id: str, parent_id, category_id=None) -> None:
    if not parent_id:
        return
    if not Category.objects.alive().filter(pk=parent_id, store_id=store_id).exists():
        raise ValidationFailed("Parent category not found")
    if category_id is None:
        return
    if str(category_id) == str(parent_id):
        raise ValidationFailed("Category cannot be its own parent")
    descendants = {str(x) for x in get_descendant_ids(category_id, store_id)}
    if str(parent_id) in descendants:
        raise ValidationFailed("Cannot move category to its own descendant")


def delete_category(category_id, store_id: str) -> Category:
    category = get_category(category_id, store_id)
    if Category.objects.alive().filter(parent=category).exists():
        raise Conflict("Cannot delete category with subcategories. Please delete or move subcategories first.")
    if category.products.filter(deleted_at__isnull=True).exists():
        raise Conflict("Cannot delete category with products. Please move products to another category first.")
    category.soft_delete()
    logger.info("Category %s soft-deleted in store %s", category.pk, store_id)
    return category


def get_brand(brand_id, store_id: str) -> Brand:
    brand = Brand.objects.alive().filter(pk=brand_id, store_id=store_id).first()
    if not brand:
        raise NotFound("Brand not found")
    return brand


def delete_brand(brand_id, store_id: str) -> Brand:
    brand = get_brand(brand_id, store_id)
    if brand.products.filter(deleted_at__isnull=True).exists():
        raise Conflict("Cannot delete brand with products. Please remove or reassign products first.")
    brand.soft_delete()
    logger.info("Brand %s soft-deleted in store %s", brand.pk, store_id)
    return brand


def build_tree(store_id: str, *, published_only: bool = False) -> List[dict]:
    qs = Category.objects.alive().filter(store_id=store_id)
    if published_only:
        qs = qs.filter(is_published=True)
    nodes = {}
    for c in qs.order_by("sort_order", "name"):
        nodes[c.pk] = {"id": str(c.pk), "name": c.name, "slug": c.slug, "parentId": c.parent_id, "children": []}
    roots = []
    for node in nodes.values():
        parent: Optional[dict] = nodes.get(node["parentId"])
        if parent:
            parent["children"].append(node)
        else:
            roots.append(node)
        node["parentId"] = str(node["parentId"]) if node["parentId"] else None
    return roots
