"""
Core App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
)

from .views import (
    UserViewSet, SettingViewSet, NotificationViewSet, AuditLogViewSet,
    permission_modules,
)

router = DefaultRouter()
router.register(r'users', UserViewSet, basename='user')
router.register(r'settings', SettingViewSet, basename='setting')
router.register(r'notifications', NotificationViewSet, basename='notification')
router.register(r'audit-logs', AuditLogViewSet, basename='audit-log')

urlpatterns = [
    # JWT Authentication
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    path('permission-modules/', permission_modules, name='permission-modules'),

    # Router URLs
    path('', include(router.urls)),
]
