"""
CORE App - Users, Settings, Permissions and Inbox

Handles: Users (Super admins, Employees, Agents, Customers),
generic key/value settings, per-employee module permissions,
in-app notifications and the audit trail.
"""

import uuid
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
from django.conf import settings


class UserRole(models.TextChoices):
    """User role enumeration."""
    SUPER_ADMIN = 'SUPER_ADMIN', 'Super Admin'
    EMPLOYEE = 'EMPLOYEE', 'Employee'
    AGENT = 'AGENT', 'Agent'
    CUSTOMER = 'CUSTOMER', 'Customer'


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('An email address is required')

        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.SUPER_ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as primary identifier.

    Staff members (SUPER_ADMIN and EMPLOYEE) appear on the leaderboard
    and in payroll. `employee_role` names one of the custom roles kept in
    the `employee_roles` setting (manager, operations, finance, ...).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, verbose_name="Email")

    # Profile
    full_name = models.CharField(max_length=150, blank=True, verbose_name="Full name")
    phone = models.CharField(max_length=20, blank=True, verbose_name="Phone")
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
        verbose_name="Role"
    )
    employee_role = models.CharField(
        max_length=50,
        blank=True,
        verbose_name="Employee role",
        help_text="Custom role name, e.g. operations or finance"
    )

    # Django Auth Fields
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(auto_now_add=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        ordering = ['-date_joined']

    def __str__(self):
        return f"{self.full_name or self.email} ({self.role})"

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    @property
    def is_staff_member(self) -> bool:
        """Employees and super admins."""
        return self.role in (UserRole.SUPER_ADMIN, UserRole.EMPLOYEE)

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


# ===========================================
# SETTINGS (key / JSON value)
# ===========================================

class Setting(models.Model):
    """
    Generic key/value configuration row.

    Structured configuration such as custom employee roles and
    permission templates is stored here as JSON documents.
    """

    key = models.CharField(max_length=100, unique=True, verbose_name="Key")
    value = models.JSONField(default=dict, blank=True, verbose_name="Value")
    category = models.CharField(max_length=50, default='general', verbose_name="Category")
    description = models.CharField(max_length=255, blank=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Setting"
        verbose_name_plural = "Settings"
        ordering = ['category', 'key']

    def __str__(self):
        return f"{self.category}/{self.key}"

    @classmethod
    def get_value(cls, key: str, default=None):
        row = cls.objects.filter(key=key).first()
        return row.value if row else default

    @classmethod
    def set_value(cls, key: str, value, user=None, category: str = 'general',
                  description: str = '') -> 'Setting':
        """Insert or update a setting by key."""
        defaults = {'value': value, 'category': category, 'updated_by': user}
        if description:
            defaults['description'] = description
        row, _ = cls.objects.update_or_create(key=key, defaults=defaults)
        return row


# ===========================================
# EMPLOYEE PERMISSIONS
# ===========================================

class EmployeePermission(models.Model):
    """One granted (module, action) pair for an employee."""

    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='module_permissions',
        verbose_name="Employee"
    )
    module = models.CharField(max_length=50)
    action = models.CharField(max_length=20)
    granted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Employee permission"
        verbose_name_plural = "Employee permissions"
        unique_together = ['employee', 'module', 'action']
        ordering = ['module', 'action']

    def __str__(self):
        return f"{self.employee.email}: {self.module}.{self.action}"


# ===========================================
# NOTIFICATIONS (inbox)
# ===========================================

class NotificationType(models.TextChoices):
    INFO = 'info', 'Info'
    SHIPMENT = 'shipment', 'Shipment'
    EXPENSE = 'expense', 'Expense'
    PAYROLL = 'payroll', 'Payroll'
    BADGE = 'badge', 'Badge'
    MILESTONE = 'milestone', 'Milestone'


class Notification(models.Model):
    """In-app inbox message for a user."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    notification_type = models.CharField(
        max_length=20,
        choices=NotificationType.choices,
        default=NotificationType.INFO,
        verbose_name="Type"
    )
    shipment = models.ForeignKey(
        'logistics.Shipment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Notification"
        verbose_name_plural = "Notifications"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_read']),
        ]

    def __str__(self):
        return f"{self.user.email}: {self.title}"


# ===========================================
# AUDIT TRAIL
# ===========================================

class AuditAction(models.TextChoices):
    CREATE = 'CREATE', 'Create'
    UPDATE = 'UPDATE', 'Update'
    DELETE = 'DELETE', 'Delete'
    APPROVE = 'APPROVE', 'Approve'
    REJECT = 'REJECT', 'Reject'
    PAY = 'PAY', 'Pay'
    PERMISSIONS = 'PERMISSIONS', 'Permissions change'


class AuditLog(models.Model):
    """Append-only record of back-office actions."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    action = models.CharField(max_length=20, choices=AuditAction.choices)
    target_model = models.CharField(max_length=100)
    target_id = models.CharField(max_length=64, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Audit log entry"
        verbose_name_plural = "Audit log"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['target_model', 'target_id']),
        ]

    def __str__(self):
        return f"{self.action} {self.target_model}:{self.target_id}"

    @classmethod
    def log(cls, user, action: str, target, details: dict = None) -> 'AuditLog':
        """Record an action against a model instance."""
        return cls.objects.create(
            user=user if user is not None and user.is_authenticated else None,
            action=action,
            target_model=target.__class__.__name__,
            target_id=str(target.pk),
            details=details or {},
        )
