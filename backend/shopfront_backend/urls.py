from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView


def root(_r):
    return JsonResponse({
        "service": "shopfront-backend",
        "docs": "/api/docs/",
        "health": "/api/v1/core/healthz/",
    })


urlpatterns = [
    path("admin/", admin.site.urls),

    # API docs
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),

    path("api/v1/core/", include("core.urls")),
    path("api/v1/auth/", include("identity.urls")),

    # Feature routers
    path("api/v1/", include("platformapp.urls")),
    path("api/v1/", include("taxonomy.urls")),
    path("api/v1/", include("commerce.urls")),
    path("api/v1/", include("inventory.urls")),
    path("api/v1/", include("payments.urls")),
    path("api/v1/", include("notificationsapp.urls")),

    path("", root),
]
