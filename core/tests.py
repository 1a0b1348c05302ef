"""
Cargo Back Office Core Tests
=============================

Tests for:
1. Custom User Model (email login, roles)
2. Module permissions (catalogue, grants, super admin bypass)
3. Custom roles & permission templates
4. Notifications inbox
5. Users / settings API
"""

from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from core.models import (
    AuditAction, AuditLog, EmployeePermission, Notification, NotificationType,
    Setting, User, UserRole,
)
from core.permissions import (
    all_permission_pairs, can, effective_permissions, get_module_permissions,
    is_valid_permission, replace_permissions,
)
from core.roles import (
    DEFAULT_ROLES, apply_template, flags_to_pairs, get_role_label, get_roles,
    get_templates, save_roles,
)
from core.services import NotificationService


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def test_create_user_normalizes_email(self):
        user = User.objects.create_user(email='Ops@EXAMPLE.com', password='s3cret-pass')
        self.assertEqual(user.email, 'Ops@example.com')
        self.assertTrue(user.check_password('s3cret-pass'))
        self.assertEqual(user.role, UserRole.CUSTOMER)

    def test_email_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='')

    def test_superuser_is_super_admin(self):
        user = User.objects.create_superuser(email='root@example.com', password='x')
        self.assertTrue(user.is_super_admin)
        self.assertTrue(user.is_staff)

    def test_role_helpers(self):
        employee = User.objects.create_user(email='e@example.com', role=UserRole.EMPLOYEE)
        agent = User.objects.create_user(email='a@example.com', role=UserRole.AGENT)
        self.assertTrue(employee.is_staff_member)
        self.assertFalse(agent.is_staff_member)
        self.assertTrue(agent.is_agent)
        self.assertEqual(employee.display_name, 'e@example.com')


class TestPermissions(TestCase):
    """Module grants."""

    def setUp(self):
        self.admin = User.objects.create_user(email='admin@example.com', role=UserRole.SUPER_ADMIN)
        self.employee = User.objects.create_user(email='emp@example.com', role=UserRole.EMPLOYEE)

    # ==========================================
    # Catalogue
    # ==========================================

    def test_special_actions_are_valid(self):
        self.assertTrue(is_valid_permission('expenses', 'approve'))
        self.assertTrue(is_valid_permission('agents', 'manage'))
        self.assertFalse(is_valid_permission('analytics', 'delete'))
        self.assertFalse(is_valid_permission('rockets', 'view'))

    # ==========================================
    # Resolution
    # ==========================================

    def test_super_admin_holds_everything(self):
        self.assertEqual(effective_permissions(self.admin), set(all_permission_pairs()))
        self.assertTrue(can(self.admin, 'payroll', 'approve'))
        self.assertFalse(can(self.admin, 'payroll', 'launch'))

    def test_employee_holds_only_grants(self):
        EmployeePermission.objects.create(employee=self.employee, module='invoices', action='view')
        self.assertTrue(can(self.employee, 'invoices', 'view'))
        self.assertFalse(can(self.employee, 'invoices', 'create'))
        self.assertEqual(get_module_permissions(self.employee, 'invoices'), ['view'])

    def test_anonymous_holds_nothing(self):
        self.assertEqual(effective_permissions(None), set())
        self.assertFalse(can(None, 'invoices', 'view'))

    # ==========================================
    # Replacement
    # ==========================================

    def test_replace_is_full_replacement(self):
        replace_permissions(self.employee, [('shipments', 'view'), ('shipments', 'edit')])
        count = replace_permissions(self.employee, [('expenses', 'view'), ('expenses', 'view')])
        self.assertEqual(count, 1)
        self.assertEqual(effective_permissions(self.employee), {('expenses', 'view')})

    def test_replace_rejects_unknown_pair(self):
        replace_permissions(self.employee, [('shipments', 'view')])
        with self.assertRaises(ValueError):
            replace_permissions(self.employee, [('shipments', 'view'), ('shipments', 'fly')])
        # Nothing changed
        self.assertEqual(effective_permissions(self.employee), {('shipments', 'view')})


class TestRolesAndTemplates(TestCase):

    def setUp(self):
        self.employee = User.objects.create_user(email='emp@example.com', role=UserRole.EMPLOYEE)

    def test_default_roles_when_unset(self):
        self.assertEqual(get_roles(), DEFAULT_ROLES)
        self.assertEqual(get_role_label('customer_support'), 'Customer Support')
        self.assertEqual(get_role_label('unknown'), 'unknown')

    def test_saved_roles_override_defaults(self):
        save_roles([{'id': 'warehouse', 'name': 'warehouse', 'label': 'Warehouse'}])
        self.assertEqual([r['name'] for r in get_roles()], ['warehouse'])
        self.assertEqual(get_role_label('warehouse'), 'Warehouse')
        # Falls back to the default label
        self.assertEqual(get_role_label('finance'), 'Finance')

    def test_duplicate_role_names_rejected(self):
        with self.assertRaises(ValueError):
            save_roles([
                {'id': '1', 'name': 'ops', 'label': 'Ops'},
                {'id': '2', 'name': 'ops', 'label': 'Ops 2'},
            ])

    def test_flags_to_pairs_skips_disabled(self):
        pairs = flags_to_pairs({'invoices.view': True, 'invoices.edit': False, 'broken': True})
        self.assertEqual(pairs, [('invoices', 'view')])

    def test_apply_finance_template(self):
        count = apply_template(self.employee, 'finance')
        self.assertEqual(count, 9)
        self.assertTrue(can(self.employee, 'expenses', 'approve'))
        self.assertFalse(can(self.employee, 'shipments', 'view'))

    def test_apply_unknown_template(self):
        with self.assertRaises(ValueError):
            apply_template(self.employee, 'nope')

    def test_full_access_template_covers_catalogue(self):
        full = next(t for t in get_templates() if t['id'] == 'full_access')
        self.assertEqual(len(full['permissions']), len(all_permission_pairs()))


class TestNotifications(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='n@example.com', role=UserRole.EMPLOYEE)

    def test_notify_and_read(self):
        note = NotificationService.notify(
            self.user, 'Hello', 'World', notification_type=NotificationType.EXPENSE
        )
        self.assertEqual(NotificationService.unread_count(self.user), 1)
        NotificationService.mark_read(note)
        self.assertEqual(NotificationService.unread_count(self.user), 0)

    def test_notify_none_user(self):
        self.assertIsNone(NotificationService.notify(None, 'x', 'y'))

    def test_notify_failure_is_swallowed(self):
        """A failed insert never breaks the caller."""
        with patch.object(Notification.objects, 'create', side_effect=RuntimeError('db down')):
            self.assertIsNone(NotificationService.notify(self.user, 'x', 'y'))

    def test_mark_all_read(self):
        NotificationService.notify(self.user, 'a', 'a')
        NotificationService.notify(self.user, 'b', 'b')
        self.assertEqual(NotificationService.mark_all_read(self.user), 2)
        self.assertEqual(NotificationService.unread_count(self.user), 0)


class TestCoreAPI(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(email='admin@example.com', role=UserRole.SUPER_ADMIN)
        self.employee = User.objects.create_user(
            email='emp@example.com', full_name='Emp', role=UserRole.EMPLOYEE, employee_role='finance'
        )

    # ==========================================
    # Users & permissions
    # ==========================================

    def test_me_includes_permissions(self):
        EmployeePermission.objects.create(employee=self.employee, module='invoices', action='view')
        self.client.force_authenticate(self.employee)
        response = self.client.get(reverse('user-me'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['permissions'], ['invoices.view'])
        self.assertEqual(response.data['employee_role_label'], 'Finance')

    def test_user_list_needs_employees_view(self):
        self.client.force_authenticate(self.employee)
        response = self.client.get(reverse('user-list'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_replace_permissions_endpoint(self):
        self.client.force_authenticate(self.admin)
        url = reverse('user-grants', args=[self.employee.id])
        response = self.client.put(
            url,
            {'permissions': [{'module': 'expenses', 'action': 'approve'}]},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertTrue(
            AuditLog.objects.filter(action=AuditAction.PERMISSIONS, target_id=str(self.employee.id)).exists()
        )

    def test_invalid_permission_rejected(self):
        self.client.force_authenticate(self.admin)
        url = reverse('user-grants', args=[self.employee.id])
        response = self.client.put(
            url, {'permissions': [{'module': 'expenses', 'action': 'teleport'}]}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    # ==========================================
    # Settings
    # ==========================================

    def test_setting_upsert_by_key(self):
        self.client.force_authenticate(self.admin)
        url = reverse('setting-list')
        created = self.client.post(url, {'key': 'company_name', 'value': {'name': 'A'}}, format='json')
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        updated = self.client.post(url, {'key': 'company_name', 'value': {'name': 'B'}}, format='json')
        self.assertEqual(updated.status_code, status.HTTP_200_OK)
        self.assertEqual(Setting.get_value('company_name'), {'name': 'B'})

    def test_roles_put_requires_settings_edit(self):
        EmployeePermission.objects.create(employee=self.employee, module='settings', action='view')
        self.client.force_authenticate(self.employee)
        url = reverse('setting-roles')
        self.assertEqual(self.client.get(url).status_code, status.HTTP_200_OK)
        response = self.client.put(url, [{'id': 'x', 'name': 'x', 'label': 'X'}], format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # ==========================================
    # Notifications & health
    # ==========================================

    def test_inbox_is_private(self):
        NotificationService.notify(self.admin, 'Admin only', '...')
        NotificationService.notify(self.employee, 'Mine', '...')
        self.client.force_authenticate(self.employee)
        response = self.client.get(reverse('notification-list'))
        self.assertEqual([n['title'] for n in response.data['results']], ['Mine'])

    def test_health(self):
        response = self.client.get(reverse('health-check'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')
