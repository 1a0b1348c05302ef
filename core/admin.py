"""
Django Admin configuration for CORE app.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Setting, EmployeePermission, Notification, AuditLog


class EmployeePermissionInline(admin.TabularInline):
    model = EmployeePermission
    fk_name = 'employee'
    extra = 0
    fields = ('module', 'action', 'granted_by', 'created_at')
    readonly_fields = ('granted_by', 'created_at')


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Custom admin for User model with email-based auth."""

    list_display = (
        'email',
        'full_name',
        'role',
        'employee_role',
        'is_active',
        'date_joined'
    )
    list_filter = ('role', 'employee_role', 'is_active', 'is_staff')
    search_fields = ('email', 'full_name', 'phone')
    ordering = ('-date_joined',)
    inlines = [EmployeePermissionInline]

    fieldsets = (
        (None, {
            'fields': ('email', 'password')
        }),
        ('Profile', {
            'fields': ('full_name', 'phone', 'role', 'employee_role')
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'full_name', 'role', 'password1', 'password2'),
        }),
    )


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ('key', 'category', 'updated_by', 'updated_at')
    list_filter = ('category',)
    search_fields = ('key', 'description')
    readonly_fields = ('updated_by', 'created_at', 'updated_at')

    def save_model(self, request, obj, form, change):
        obj.updated_by = request.user
        super().save_model(request, obj, form, change)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'user', 'notification_type', 'is_read', 'created_at')
    list_filter = ('notification_type', 'is_read')
    search_fields = ('title', 'message', 'user__email')
    raw_id_fields = ('user', 'shipment')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Read-only admin for audit trail."""

    list_display = ('created_at', 'user_display', 'action', 'target_model', 'target_id_short')
    list_filter = ('action', 'target_model', 'created_at')
    search_fields = ('user__email', 'user__full_name', 'target_model', 'target_id')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    readonly_fields = ('user', 'action', 'target_model', 'target_id', 'details', 'created_at')

    def user_display(self, obj):
        if obj.user:
            return obj.user.display_name
        return "System"
    user_display.short_description = "User"

    def target_id_short(self, obj):
        return obj.target_id[:8] if obj.target_id else "-"
    target_id_short.short_description = "ID"

    def has_add_permission(self, request):
        return False
