from django.contrib import admin

from .models import Notification, EmailDispatch, EmailDeliveryLog


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "user", "type", "is_read", "created_at")
    list_filter = ("type", "is_read")


class EmailDeliveryLogInline(admin.TabularInline):
    model = EmailDeliveryLog
    extra = 0
    readonly_fields = ("attempt", "status", "error", "created_at")


@admin.register(EmailDispatch)
class EmailDispatchAdmin(admin.ModelAdmin):
    list_display = ("subject", "to_address", "template", "status", "attempts", "created_at")
    list_filter = ("status", "template")
    search_fields = ("to_address", "subject", "entity_id")
    inlines = [EmailDeliveryLogInline]
