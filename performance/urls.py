"""
Performance App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import EmployeeBadgeViewSet, EmployeeMilestoneViewSet, leaderboard

router = DefaultRouter()
router.register(r'badges', EmployeeBadgeViewSet, basename='badge')
router.register(r'milestones', EmployeeMilestoneViewSet, basename='milestone')

urlpatterns = [
    path('leaderboard/', leaderboard, name='leaderboard'),
    path('', include(router.urls)),
]
