"""
Payroll App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import EmployeeSalaryViewSet, SalaryAdvanceViewSet, PayrollRunViewSet

router = DefaultRouter()
router.register(r'salaries', EmployeeSalaryViewSet, basename='salary')
router.register(r'salary-advances', SalaryAdvanceViewSet, basename='salary-advance')
router.register(r'payroll-runs', PayrollRunViewSet, basename='payroll-run')

urlpatterns = [
    path('', include(router.urls)),
]
