"""
Core App Serializers - Users, Permissions, Settings, Notifications
"""

from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password

from .models import Setting, Notification, AuditLog, UserRole
from .permissions import is_valid_permission
from .roles import get_role_label

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model (read operations)."""

    employee_role_label = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'email', 'full_name', 'phone', 'role',
            'employee_role', 'employee_role_label', 'is_active', 'date_joined'
        ]
        read_only_fields = ['id', 'date_joined']

    def get_employee_role_label(self, obj):
        return get_role_label(obj.employee_role) if obj.employee_role else ''


class UserCreateSerializer(serializers.ModelSerializer):
    """Serializer for creating back-office users (super admin only)."""

    password = serializers.CharField(
        write_only=True,
        required=True,
        validators=[validate_password]
    )

    class Meta:
        model = User
        fields = ['email', 'password', 'full_name', 'phone', 'role', 'employee_role']

    def create(self, validated_data):
        return User.objects.create_user(
            email=validated_data['email'],
            password=validated_data['password'],
            full_name=validated_data.get('full_name', ''),
            phone=validated_data.get('phone', ''),
            role=validated_data.get('role', UserRole.EMPLOYEE),
            employee_role=validated_data.get('employee_role', ''),
        )


class PermissionPairSerializer(serializers.Serializer):
    module = serializers.CharField(max_length=50)
    action = serializers.CharField(max_length=20)

    def validate(self, attrs):
        if not is_valid_permission(attrs['module'], attrs['action']):
            raise serializers.ValidationError(
                f"Unknown permission: {attrs['module']}.{attrs['action']}"
            )
        return attrs


class PermissionUpdateSerializer(serializers.Serializer):
    """Full replacement of an employee's permission set."""

    permissions = PermissionPairSerializer(many=True)


class ApplyTemplateSerializer(serializers.Serializer):
    template_id = serializers.CharField(max_length=50)


class SettingSerializer(serializers.ModelSerializer):

    updated_by_email = serializers.EmailField(source='updated_by.email', read_only=True)

    class Meta:
        model = Setting
        fields = [
            'key', 'value', 'category', 'description',
            'updated_by', 'updated_by_email', 'updated_at'
        ]
        read_only_fields = ['updated_by', 'updated_at']


class CustomRoleSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=50)
    name = serializers.SlugField(max_length=50)
    label = serializers.CharField(max_length=100)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    default_permissions = serializers.DictField(
        child=serializers.BooleanField(), required=False, default=dict
    )


class PermissionTemplateSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=50)
    name = serializers.CharField(max_length=100)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    permissions = serializers.DictField(child=serializers.BooleanField(), default=dict)


class NotificationSerializer(serializers.ModelSerializer):

    class Meta:
        model = Notification
        fields = [
            'id', 'title', 'message', 'notification_type',
            'shipment', 'is_read', 'created_at'
        ]
        read_only_fields = fields


class AuditLogSerializer(serializers.ModelSerializer):

    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            'id', 'user', 'user_email', 'action', 'target_model',
            'target_id', 'details', 'created_at'
        ]
        read_only_fields = fields
