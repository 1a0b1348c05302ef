"""
Cargo Back Office Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework.decorators import api_view
from rest_framework.response import Response

from core.health import health_check, readiness_check


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "Cargo Back Office"
admin.site.site_title = "Cargo Back Office Admin"
admin.site.index_title = "Operations"


@api_view(['GET'])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'Cargo Back Office API',
        'version': '1.0.0',
        'endpoints': {
            'auth': {
                'token': '/api/auth/token/',
                'refresh': '/api/auth/token/refresh/',
            },
            'users': '/api/users/',
            'settings': '/api/settings/',
            'notifications': '/api/notifications/',
            'logistics': {
                'regions': '/api/regions/',
                'customers': '/api/customers/',
                'batches': '/api/batches/',
                'shipments': '/api/shipments/',
                'parcels': '/api/parcels/',
            },
            'finance': {
                'exchange_rates': '/api/exchange-rates/',
                'bank_accounts': '/api/bank-accounts/',
                'estimates': '/api/estimates/',
                'invoices': '/api/invoices/',
            },
            'agents': '/api/agents/',
            'expenses': '/api/expenses/',
            'payroll': {
                'salaries': '/api/salaries/',
                'advances': '/api/salary-advances/',
                'runs': '/api/payroll-runs/',
            },
            'performance': {
                'leaderboard': '/api/leaderboard/',
                'badges': '/api/badges/',
                'milestones': '/api/milestones/',
            },
            'docs': '/api/docs/',
        }
    })


urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Health checks (load balancer / orchestrator)
    path('health/', health_check, name='health-check'),
    path('health/ready/', readiness_check, name='readiness-check'),

    # API Root
    path('api/', api_root, name='api-root'),

    # OpenAPI schema
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # App URLs
    path('api/', include('core.urls')),
    path('api/', include('logistics.urls')),
    path('api/', include('finance.urls')),
    path('api/', include('agents.urls')),
    path('api/', include('expenses.urls')),
    path('api/', include('payroll.urls')),
    path('api/', include('performance.urls')),
]

# Serve media files (expense receipts) in development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
