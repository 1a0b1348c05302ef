"""
Logistics App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    RegionViewSet, CustomerViewSet, CargoBatchViewSet,
    ShipmentViewSet, ParcelViewSet,
)

router = DefaultRouter()
router.register(r'regions', RegionViewSet, basename='region')
router.register(r'customers', CustomerViewSet, basename='customer')
router.register(r'batches', CargoBatchViewSet, basename='batch')
router.register(r'shipments', ShipmentViewSet, basename='shipment')
router.register(r'parcels', ParcelViewSet, basename='parcel')

urlpatterns = [
    path('', include(router.urls)),
]
