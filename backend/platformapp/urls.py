from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import StoreViewSet, AuditLogViewSet, StoreResolveView

router = DefaultRouter()
router.register(r'stores', StoreViewSet, basename='store')
router.register(r'audit-logs', AuditLogViewSet, basename='audit-log')

urlpatterns = [
    path('stores/resolve/', StoreResolveView.as_view(), name='store-resolve'),
    path('', include(router.urls)),
]
