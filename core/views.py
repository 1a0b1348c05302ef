"""
Core App Views - Users, Permissions, Settings & Notifications API
"""

from rest_framework import viewsets, status, permissions, mixins
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response
from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404

from .models import Setting, Notification, AuditLog, AuditAction, UserRole
from .permissions import (
    PERMISSION_MODULES, HasModulePermission, IsStaffMember,
    can, effective_permissions, replace_permissions,
)
from .roles import (
    get_roles, save_roles, get_templates, save_templates, apply_template,
)
from .serializers import (
    UserSerializer, UserCreateSerializer, PermissionUpdateSerializer,
    ApplyTemplateSerializer, SettingSerializer, CustomRoleSerializer,
    PermissionTemplateSerializer, NotificationSerializer, AuditLogSerializer,
)
from .services import NotificationService

User = get_user_model()


class UserViewSet(viewsets.ModelViewSet):
    """
    ViewSet for back-office users.

    Access is governed by the `employees` module grants; every
    authenticated user may read their own profile through `me`.
    """

    queryset = User.objects.all()
    permission_classes = [HasModulePermission]
    permission_module = 'employees'
    permission_actions = {
        'grants': 'manage',
        'apply_template': 'manage',
        'staff': 'view',
    }
    search_fields = ['email', 'full_name']
    filterset_fields = ['role', 'employee_role', 'is_active']

    def get_serializer_class(self):
        if self.action == 'create':
            return UserCreateSerializer
        return UserSerializer

    def perform_create(self, serializer):
        user = serializer.save()
        AuditLog.log(self.request.user, AuditAction.CREATE, user, {'role': user.role})

    @action(detail=False, methods=['get'], permission_classes=[permissions.IsAuthenticated])
    def me(self, request):
        """Current user profile with effective permissions."""
        data = UserSerializer(request.user).data
        data['permissions'] = sorted(
            f"{module}.{act}" for module, act in effective_permissions(request.user)
        )
        return Response(data)

    @action(detail=False, methods=['get'])
    def staff(self, request):
        """Employees and super admins."""
        users = User.objects.filter(
            role__in=[UserRole.SUPER_ADMIN, UserRole.EMPLOYEE], is_active=True
        ).order_by('full_name')
        return Response(UserSerializer(users, many=True).data)

    @action(detail=True, methods=['get', 'put'], url_path='permissions')
    def grants(self, request, pk=None):
        """Read or fully replace an employee's module permissions."""
        employee = self.get_object()

        if request.method == 'GET':
            pairs = sorted(effective_permissions(employee))
            return Response([{'module': m, 'action': a} for m, a in pairs])

        serializer = PermissionUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        pairs = [(p['module'], p['action']) for p in serializer.validated_data['permissions']]

        count = replace_permissions(employee, pairs, granted_by=request.user)
        AuditLog.log(request.user, AuditAction.PERMISSIONS, employee, {'count': count})
        return Response({'message': 'Permissions updated.', 'count': count})

    @action(detail=True, methods=['post'], url_path='apply-template')
    def apply_template(self, request, pk=None):
        employee = self.get_object()
        serializer = ApplyTemplateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            count = apply_template(
                employee, serializer.validated_data['template_id'], granted_by=request.user
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(
            request.user, AuditAction.PERMISSIONS, employee,
            {'template': serializer.validated_data['template_id'], 'count': count}
        )
        return Response({'message': 'Template applied.', 'count': count})


@api_view(['GET'])
@permission_classes([IsStaffMember])
def permission_modules(request):
    """Module catalogue for the permissions editor."""
    return Response(PERMISSION_MODULES)


class SettingViewSet(viewsets.ModelViewSet):
    """Key/value settings, addressed by key."""

    queryset = Setting.objects.all()
    serializer_class = SettingSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'settings'
    permission_actions = {
        'create': 'edit',
        'destroy': 'edit',
        'grouped': 'view',
        'roles': 'view',
        'templates': 'view',
    }
    lookup_field = 'key'
    filterset_fields = ['category']
    pagination_class = None

    def perform_create(self, serializer):
        serializer.save(updated_by=self.request.user)

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)

    def create(self, request, *args, **kwargs):
        """Upsert: posting an existing key updates it."""
        key = request.data.get('key')
        existing = Setting.objects.filter(key=key).first() if key else None
        serializer = self.get_serializer(existing, data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save(updated_by=request.user)
        code = status.HTTP_200_OK if existing else status.HTTP_201_CREATED
        return Response(serializer.data, status=code)

    @action(detail=False, methods=['get'])
    def grouped(self, request):
        """All settings as a {key: value} map."""
        qs = self.filter_queryset(self.get_queryset())
        return Response({row.key: row.value for row in qs})

    @action(detail=False, methods=['get', 'put'])
    def roles(self, request):
        """Custom employee roles."""
        if request.method == 'GET':
            return Response(get_roles())

        if not can(request.user, 'settings', 'edit'):
            return Response({'error': 'Permission denied.'}, status=status.HTTP_403_FORBIDDEN)

        serializer = CustomRoleSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)
        try:
            save_roles(serializer.validated_data, user=request.user)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(get_roles())

    @action(detail=False, methods=['get', 'put'])
    def templates(self, request):
        """Permission templates."""
        if request.method == 'GET':
            return Response(get_templates())

        if not can(request.user, 'settings', 'edit'):
            return Response({'error': 'Permission denied.'}, status=status.HTTP_403_FORBIDDEN)

        serializer = PermissionTemplateSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)
        save_templates(serializer.validated_data, user=request.user)
        return Response(get_templates())


class NotificationViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          viewsets.GenericViewSet):
    """Current user's inbox."""

    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['is_read', 'notification_type']

    def get_queryset(self):
        return Notification.objects.filter(user=self.request.user)

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return Response({'unread': NotificationService.unread_count(request.user)})

    @action(detail=True, methods=['post'], url_path='mark-read')
    def mark_read(self, request, pk=None):
        notification = get_object_or_404(self.get_queryset(), pk=pk)
        NotificationService.mark_read(notification)
        return Response(NotificationSerializer(notification).data)

    @action(detail=False, methods=['post'], url_path='mark-all-read')
    def mark_all_read(self, request):
        updated = NotificationService.mark_all_read(request.user)
        return Response({'updated': updated})


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):

    queryset = AuditLog.objects.select_related('user')
    serializer_class = AuditLogSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'audit_logs'
    filterset_fields = ['action', 'target_model', 'target_id']
