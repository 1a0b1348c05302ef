"""
Agents App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AgentViewSet, SettlementViewSet

router = DefaultRouter()
router.register(r'agents', AgentViewSet, basename='agent')
router.register(r'settlements', SettlementViewSet, basename='settlement')

urlpatterns = [
    path('', include(router.urls)),
]
