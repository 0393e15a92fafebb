from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from common.exceptions import Conflict, ValidationFailed
from common.tests.factories import add_member, make_product, make_store, make_user
from taxonomy import services
from taxonomy.models import Brand, Category


def make_category(store, name, parent=None):
    return Category.objects.create(store=store, name=name, slug=name.lower().replace(" ", "-"), parent=parent)


class CategoryRulesTest(TestCase):
    def setUp(self):
        self.store = make_store()
        self.root = make_category(self.store, "Kitchen")
        self.child = make_category(self.store, "Cookware", parent=self.root)
        self.grandchild = make_category(self.store, "Pans", parent=self.child)

    def test_descendants(self):
        ids = services.get_descendant_ids(self.root.pk, str(self.store.pk))
        self.assertEqual(set(ids), {self.child.pk, self.grandchild.pk})

    def test_parent_cycles_are_rejected(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.validate_parent(str(self.store.pk), self.root.pk, category_id=self.root.pk)
        self.assertEqual(ctx.exception.message, "Category cannot be its own parent")
        with self.assertRaises(ValidationFailed) as ctx:
            services.validate_parent(str(self.store.pk), self.grandchild.pk, category_id=self.root.pk)
        self.assertEqual(ctx.exception.message, "Cannot move category to its own descendant")

    def test_parent_must_exist_in_store(self):
        foreign = make_category(make_store(), "Elsewhere")
        with self.assertRaises(ValidationFailed):
            services.validate_parent(str(self.store.pk), foreign.pk)

    def test_delete_with_subcategories_conflicts(self):
        with self.assertRaises(Conflict) as ctx:
            services.delete_category(self.root.pk, str(self.store.pk))
        self.assertEqual(
            ctx.exception.message,
            "Cannot delete category with subcategories. Please delete or move subcategories first.",
        )

    def test_delete_with_products_conflicts(self):
        make_product(self.store, category=self.grandchild)
        with self.assertRaises(Conflict) as ctx:
            services.delete_category(self.grandchild.pk, str(self.store.pk))
        self.assertEqual(
            ctx.exception.message,
            "Cannot delete category with products. Please move products to another category first.",
        )

    def test_leaf_delete_is_soft(self):
        services.delete_category(self.grandchild.pk, str(self.store.pk))
        self.grandchild.refresh_from_db()
        self.assertIsNotNone(self.grandchild.deleted_at)

    def test_tree(self):
        tree = services.build_tree(str(self.store.pk))
        self.assertEqual(len(tree), 1)
        self.assertEqual(tree[0]["children"][0]["children"][0]["name"], "Pans")
        self.assertIsNone(tree[0]["parentId"])


class BrandRulesTest(TestCase):
    def test_delete_with_products_conflicts(self):
        store = make_store()
        brand = Brand.objects.create(store=store, name="Acme", slug="acme")
        make_product(store, brand=brand)
        with self.assertRaises(Conflict) as ctx:
            services.delete_brand(brand.pk, str(store.pk))
        self.assertEqual(
            ctx.exception.message,
            "Cannot delete brand with products. Please remove or reassign products first.",
        )


class CategoryApiTest(APITestCase):
    """
    Category endpoints are tenant scoped and slugs are unique per store.
    """

    def setUp(self):
        self.store = make_store()
        self.admin = make_user()
        add_member(self.store, self.admin)
        self.client.force_authenticate(self.admin)
        self.headers = {"HTTP_X_STORE_ID": str(self.store.pk)}

    def test_create_and_duplicate_slug(self):
        data = {"name": "Garden", "slug": "garden"}
        response = self.client.post(reverse("category-list"), data, format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(reverse("category-list"), data, format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json()["error"]["message"], "Slug 'garden' already exists in this store")

    def test_other_store_categories_are_invisible(self):
        make_category(make_store(), "Hidden")
        make_category(self.store, "Visible")
        response = self.client.get(reverse("category-list"), **self.headers)
        self.assertEqual([c["name"] for c in response.json()["data"]], ["Visible"])

    def test_delete_conflict_is_409(self):
        parent = make_category(self.store, "Parent")
        make_category(self.store, "Child", parent=parent)
        response = self.client.delete(reverse("category-detail", args=[parent.pk]), **self.headers)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
