from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    ProductViewSet, CustomerViewSet, OrderViewSet,
    CheckoutValidateView, CheckoutShippingView, CheckoutTaxView, CheckoutCompleteView,
)

router = DefaultRouter()
router.register(r'products',  ProductViewSet,  basename='product')
router.register(r'customers', CustomerViewSet, basename='customer')
router.register(r'orders',    OrderViewSet,    basename='order')

urlpatterns = [
    path('checkout/validate/', CheckoutValidateView.as_view(), name='checkout-validate'),
    path('checkout/shipping/', CheckoutShippingView.as_view(), name='checkout-shipping'),
    path('checkout/tax/',      CheckoutTaxView.as_view(),      name='checkout-tax'),
    path('checkout/complete/', CheckoutCompleteView.as_view(), name='checkout-complete'),
    path('', include(router.urls)),
]
