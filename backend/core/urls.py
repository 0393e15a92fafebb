from django.urls import path

from .views import healthz, DeepHealthView, WhoAmIView

urlpatterns = [
    path("healthz/", healthz, name="core-healthz"),
    path("deep-health/", DeepHealthView.as_view(), name="core-deep-health"),
    path("whoami/", WhoAmIView.as_view(), name="core-whoami"),
]
