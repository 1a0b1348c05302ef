"""
CORE App - Custom Employee Roles & Permission Templates

Both are JSON documents in the settings table:
- `employee_roles`: {"roles": [{id, name, label, description, default_permissions}]}
- `permission_templates`: {"templates": [{id, name, description, permissions}]}

`default_permissions` and `permissions` map "module.action" keys to booleans.
"""

import logging
from typing import Dict, List, Optional

from .models import Setting
from .permissions import all_permission_pairs, replace_permissions

logger = logging.getLogger(__name__)

ROLES_KEY = 'employee_roles'
TEMPLATES_KEY = 'permission_templates'


DEFAULT_ROLES: List[Dict] = [
    {'id': 'manager', 'name': 'manager', 'label': 'Manager',
     'description': 'Full access to all features', 'default_permissions': {}},
    {'id': 'operations', 'name': 'operations', 'label': 'Operations',
     'description': 'Manage shipments and logistics', 'default_permissions': {}},
    {'id': 'finance', 'name': 'finance', 'label': 'Finance',
     'description': 'Handle invoices and expenses', 'default_permissions': {}},
    {'id': 'customer_support', 'name': 'customer_support', 'label': 'Customer Support',
     'description': 'Assist customers', 'default_permissions': {}},
]


def _flags(*pairs) -> Dict[str, bool]:
    return {f"{module}.{action}": True for module, action in pairs}


DEFAULT_TEMPLATES: List[Dict] = [
    {
        'id': 'full_access',
        'name': 'Full Access',
        'description': 'All permissions enabled',
        'permissions': _flags(*all_permission_pairs()),
    },
    {
        'id': 'read_only',
        'name': 'View Only',
        'description': 'Can only view reports',
        'permissions': _flags(('analytics', 'view')),
    },
    {
        'id': 'operations',
        'name': 'Operations Team',
        'description': 'Shipments and customer management',
        'permissions': _flags(
            ('shipments', 'view'), ('shipments', 'create'), ('shipments', 'edit'),
            ('shipments', 'manage'),
            ('customers', 'view'), ('customers', 'create'), ('customers', 'edit'),
            ('analytics', 'view'),
        ),
    },
    {
        'id': 'finance',
        'name': 'Finance Team',
        'description': 'Invoices and expenses management',
        'permissions': _flags(
            ('invoices', 'view'), ('invoices', 'create'), ('invoices', 'edit'),
            ('invoices', 'approve'),
            ('expenses', 'view'), ('expenses', 'create'), ('expenses', 'edit'),
            ('expenses', 'approve'),
            ('analytics', 'view'),
        ),
    },
]


# ============================================
# ROLES
# ============================================

def get_roles() -> List[Dict]:
    value = Setting.get_value(ROLES_KEY) or {}
    return value.get('roles') or DEFAULT_ROLES


def role_options() -> List[Dict]:
    """Roles as value/label pairs for select inputs."""
    return [
        {'value': role['name'], 'label': role['label'],
         'default_permissions': role.get('default_permissions', {})}
        for role in get_roles()
    ]


def get_role_label(value: str) -> str:
    """Stored label, then default label, then the raw value."""
    for role in get_roles():
        if role['name'] == value:
            return role['label']
    for role in DEFAULT_ROLES:
        if role['name'] == value:
            return role['label']
    return value


def get_role_default_permissions(value: str) -> Dict[str, bool]:
    for role in get_roles():
        if role['name'] == value:
            return role.get('default_permissions') or {}
    return {}


def save_roles(roles: List[Dict], user=None) -> Setting:
    names = [role['name'] for role in roles]
    if len(names) != len(set(names)):
        raise ValueError("Role names must be unique")
    return Setting.set_value(
        ROLES_KEY,
        {'roles': roles},
        user=user,
        category='employees',
        description='Custom employee roles',
    )


# ============================================
# PERMISSION TEMPLATES
# ============================================

def get_templates() -> List[Dict]:
    value = Setting.get_value(TEMPLATES_KEY) or {}
    return value.get('templates') or DEFAULT_TEMPLATES


def get_template(template_id: str) -> Optional[Dict]:
    for template in get_templates():
        if template['id'] == template_id:
            return template
    return None


def save_templates(templates: List[Dict], user=None) -> Setting:
    return Setting.set_value(
        TEMPLATES_KEY,
        {'templates': templates},
        user=user,
        category='employees',
        description='Permission templates for quick assignment',
    )


def flags_to_pairs(flags: Dict[str, bool]):
    """Turn {"module.action": True} into [(module, action)]."""
    pairs = []
    for key, enabled in flags.items():
        if not enabled or '.' not in key:
            continue
        module, action = key.split('.', 1)
        pairs.append((module, action))
    return pairs


def apply_template(employee, template_id: str, granted_by=None) -> int:
    """
    Replace an employee's permissions with a template's set.

    Raises:
        ValueError: If the template does not exist
    """
    template = get_template(template_id)
    if template is None:
        raise ValueError(f"Unknown permission template: {template_id}")

    count = replace_permissions(employee, flags_to_pairs(template['permissions']), granted_by)
    logger.info(f"[PERMISSIONS] Template '{template_id}' applied to {employee.email}")
    return count
