"""
CORE App - Module Permissions

Catalogue of back-office modules and the actions that can be granted on
each, plus DRF permission classes built on top of it.

The commissions, approvals and orders modules are part of the catalogue so
roles and templates can carry them, but no endpoint here checks them yet.
"""

import logging
from typing import Dict, Iterable, List, Set, Tuple

from django.db import transaction
from rest_framework import permissions

from .models import EmployeePermission, UserRole

logger = logging.getLogger(__name__)


# ============================================
# MODULE CATALOGUE
# ============================================

PERMISSION_MODULES: Dict[str, Dict] = {
    'shipments': {
        'label': 'Shipments',
        'description': 'Manage shipments and parcels',
        'actions': ['view', 'create', 'edit', 'delete', 'export'],
        'special_actions': {'manage': 'Manage batch assignments'},
    },
    'customers': {
        'label': 'Customers',
        'description': 'Manage customer records',
        'actions': ['view', 'create', 'edit', 'delete', 'export'],
        'special_actions': {},
    },
    'invoices': {
        'label': 'Invoices & Billing',
        'description': 'Manage invoices and payments',
        'actions': ['view', 'create', 'edit', 'delete', 'export'],
        'special_actions': {'approve': 'Record/verify payments'},
    },
    'estimates': {
        'label': 'Estimates',
        'description': 'Manage shipping estimates',
        'actions': ['view', 'create', 'edit', 'delete'],
        'special_actions': {'approve': 'Convert to invoice'},
    },
    'expenses': {
        'label': 'Expenses',
        'description': 'Manage company expenses',
        'actions': ['view', 'create', 'edit', 'delete', 'export'],
        'special_actions': {'approve': 'Approve/deny expenses'},
    },
    'employees': {
        'label': 'Employees',
        'description': 'Manage employee records',
        'actions': ['view', 'create', 'edit', 'delete'],
        'special_actions': {'manage': 'Manage permissions'},
    },
    'agents': {
        'label': 'Agents',
        'description': 'Manage agent accounts',
        'actions': ['view', 'create', 'edit', 'delete'],
        'special_actions': {
            'manage': 'Manage agent regions',
            'approve': 'Approve and pay settlements',
        },
    },
    'accounting': {
        'label': 'Accounting',
        'description': 'Bank accounts and exchange rates',
        'actions': ['view', 'create', 'edit', 'delete', 'export'],
        'special_actions': {
            'approve': 'Record deposits',
            'manage': 'Manage exchange rates',
        },
    },
    'payroll': {
        'label': 'Payroll',
        'description': 'Manage salaries and payroll runs',
        'actions': ['view', 'create', 'edit', 'delete'],
        'special_actions': {'approve': 'Process payroll'},
    },
    'commissions': {
        'label': 'Commissions',
        'description': 'Manage employee commissions',
        'actions': ['view', 'create', 'edit', 'delete'],
        'special_actions': {'approve': 'Pay commissions'},
    },
    'analytics': {
        'label': 'Analytics & Reports',
        'description': 'View business analytics and reports',
        'actions': ['view', 'export'],
        'special_actions': {},
    },
    'settings': {
        'label': 'Settings',
        'description': 'System configuration and pricing',
        'actions': ['view', 'edit'],
        'special_actions': {'manage': 'Manage regions and pricing'},
    },
    'approvals': {
        'label': 'Approvals',
        'description': 'Approval requests and workflows',
        'actions': ['view'],
        'special_actions': {'approve': 'Review and approve requests'},
    },
    'orders': {
        'label': 'Shop For Me Orders',
        'description': 'Manage shopping orders',
        'actions': ['view', 'create', 'edit', 'delete'],
        'special_actions': {'approve': 'Process orders'},
    },
    'notifications': {
        'label': 'Notifications',
        'description': 'System notifications management',
        'actions': ['view', 'create'],
        'special_actions': {'manage': 'Send bulk notifications'},
    },
    'audit_logs': {
        'label': 'Audit Logs',
        'description': 'View system audit trail',
        'actions': ['view', 'export'],
        'special_actions': {},
    },
}


def module_actions(module: str) -> List[str]:
    """Standard plus special actions available on a module."""
    config = PERMISSION_MODULES.get(module)
    if config is None:
        return []
    return list(config['actions']) + list(config['special_actions'].keys())


def all_permission_pairs() -> List[Tuple[str, str]]:
    """Every (module, action) pair in the catalogue."""
    return [
        (module, action)
        for module in PERMISSION_MODULES
        for action in module_actions(module)
    ]


def is_valid_permission(module: str, action: str) -> bool:
    return action in module_actions(module)


# ============================================
# GRANTS
# ============================================

def effective_permissions(user) -> Set[Tuple[str, str]]:
    """
    Resolve the (module, action) pairs a user holds.

    Super admins implicitly hold every permission; everyone else holds
    exactly their stored grants.
    """
    if not user or not user.is_authenticated:
        return set()
    if user.role == UserRole.SUPER_ADMIN:
        return set(all_permission_pairs())
    return set(
        EmployeePermission.objects.filter(employee=user).values_list('module', 'action')
    )


def can(user, module: str, action: str) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.role == UserRole.SUPER_ADMIN:
        return is_valid_permission(module, action)
    return EmployeePermission.objects.filter(
        employee=user, module=module, action=action
    ).exists()


def get_module_permissions(user, module: str) -> List[str]:
    return sorted(action for m, action in effective_permissions(user) if m == module)


@transaction.atomic
def replace_permissions(employee, pairs: Iterable[Tuple[str, str]], granted_by=None) -> int:
    """
    Replace an employee's whole permission set.

    Existing grants are deleted and the new set inserted in one transaction.

    Args:
        employee: User receiving the grants
        pairs: Iterable of (module, action)
        granted_by: User performing the change

    Returns:
        Number of grants stored

    Raises:
        ValueError: If a pair is not in the module catalogue
    """
    wanted = []
    for module, action in pairs:
        if not is_valid_permission(module, action):
            raise ValueError(f"Unknown permission: {module}.{action}")
        if (module, action) not in wanted:
            wanted.append((module, action))

    EmployeePermission.objects.filter(employee=employee).delete()
    EmployeePermission.objects.bulk_create([
        EmployeePermission(
            employee=employee,
            module=module,
            action=action,
            granted_by=granted_by,
        )
        for module, action in wanted
    ])

    logger.info(f"[PERMISSIONS] {employee.email} now holds {len(wanted)} grants")
    return len(wanted)


# ============================================
# DRF PERMISSION CLASSES
# ============================================

class IsSuperAdmin(permissions.BasePermission):
    """Permission for super admins only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.SUPER_ADMIN


class IsStaffMember(permissions.BasePermission):
    """Permission for employees and super admins."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.is_staff_member


ACTION_MAP = {
    'list': 'view',
    'retrieve': 'view',
    'create': 'create',
    'update': 'edit',
    'partial_update': 'edit',
    'destroy': 'delete',
}


class HasModulePermission(permissions.BasePermission):
    """
    Checks the module grant matching the viewset action.

    The view declares `permission_module`; custom actions can be mapped
    through `permission_actions = {'approve': 'approve', ...}`. Actions not
    mapped anywhere fall back to 'view' for safe methods and 'edit' otherwise.
    """

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False

        module = getattr(view, 'permission_module', None)
        if module is None:
            return True

        view_action = getattr(view, 'action', None)
        custom = getattr(view, 'permission_actions', {})
        if view_action in custom:
            needed = custom[view_action]
        elif view_action in ACTION_MAP:
            needed = ACTION_MAP[view_action]
        else:
            needed = 'view' if request.method in permissions.SAFE_METHODS else 'edit'

        return can(request.user, module, needed)
