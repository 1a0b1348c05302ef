"""
Finance App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import ExchangeRateViewSet, BankAccountViewSet, EstimateViewSet, InvoiceViewSet

router = DefaultRouter()
router.register(r'exchange-rates', ExchangeRateViewSet, basename='exchange-rate')
router.register(r'bank-accounts', BankAccountViewSet, basename='bank-account')
router.register(r'estimates', EstimateViewSet, basename='estimate')
router.register(r'invoices', InvoiceViewSet, basename='invoice')

urlpatterns = [
    path('', include(router.urls)),
]
