from django.apps import AppConfig


class PlatformappConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "platformapp"
    verbose_name = "Stores & audit"
