from django.contrib import admin

from .models import Product, ProductVariant, Customer, Order, OrderItem


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "sku", "store", "price", "inventory_qty", "inventory_status", "is_published")
    list_filter = ("inventory_status", "is_published")
    search_fields = ("name", "sku")
    inlines = [ProductVariantInline]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("email", "first_name", "last_name", "store", "total_orders", "total_spent")
    search_fields = ("email", "first_name", "last_name")


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product_name", "variant_name", "sku", "price", "quantity", "subtotal", "total_amount")
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "store", "status", "payment_status", "total_amount", "created_at")
    list_filter = ("status", "payment_status", "shipping_status")
    search_fields = ("order_number",)
    # status changes must go through the order service
    readonly_fields = ("status", "payment_status", "shipping_status")
    inlines = [OrderItemInline]
