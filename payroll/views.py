"""
Payroll App Views - Salaries, Advances & Payroll Runs API
"""

from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action
from rest_framework.response import Response
from django.shortcuts import get_object_or_404

from core.models import AuditAction, AuditLog
from core.permissions import HasModulePermission
from finance.models import BankAccount
from .models import EmployeeSalary, SalaryAdvance, AdvanceStatus, PayrollRun, PayrollStatus
from .serializers import (
    EmployeeSalarySerializer, SalaryAdvanceSerializer, PayrollRunSerializer,
    PayrollRunCreateSerializer, PayrollItemSerializer,
    BankAccountChoiceSerializer, AdvanceApprovalSerializer,
)
from .services import PayrollService


class EmployeeSalaryViewSet(viewsets.ModelViewSet):
    """Salary configurations; ?employee=<id>, ?active=true."""

    queryset = EmployeeSalary.objects.select_related('employee')
    serializer_class = EmployeeSalarySerializer
    permission_classes = [HasModulePermission]
    permission_module = 'payroll'

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('employee'):
            qs = qs.filter(employee_id=params['employee'])
        if params.get('active') == 'true':
            qs = qs.filter(is_active=True)
        return qs


class SalaryAdvanceViewSet(viewsets.ModelViewSet):
    """Salary advances; ?status=, ?employee=."""

    queryset = SalaryAdvance.objects.select_related('employee')
    serializer_class = SalaryAdvanceSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'payroll'
    permission_actions = {'approve': 'approve', 'reject': 'approve'}

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('employee'):
            qs = qs.filter(employee_id=params['employee'])
        return qs

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    def update(self, request, *args, **kwargs):
        advance = self.get_object()
        if advance.status != AdvanceStatus.PENDING:
            return Response(
                {'error': f"Only pending advances can be edited ({advance.status})"},
                status=status.HTTP_400_BAD_REQUEST
            )
        return super().update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        advance = self.get_object()
        if advance.status != AdvanceStatus.PENDING:
            return Response(
                {'error': f"Only pending advances can be deleted ({advance.status})"},
                status=status.HTTP_400_BAD_REQUEST
            )
        return super().destroy(request, *args, **kwargs)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        """Approve an advance, optionally paying it from a bank account."""
        advance = self.get_object()
        serializer = AdvanceApprovalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        bank_account = None
        if serializer.validated_data.get('bank_account'):
            bank_account = get_object_or_404(
                BankAccount, pk=serializer.validated_data['bank_account'], is_active=True
            )

        try:
            advance = PayrollService.approve_advance(advance, request.user, bank_account=bank_account)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.APPROVE, advance)
        return Response(SalaryAdvanceSerializer(advance).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        advance = self.get_object()
        try:
            advance = PayrollService.reject_advance(advance, request.user)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.REJECT, advance)
        return Response(SalaryAdvanceSerializer(advance).data)


class PayrollRunViewSet(mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        mixins.DestroyModelMixin,
                        viewsets.GenericViewSet):
    """
    Monthly payroll runs.

    POST creates a draft, then generate -> approve -> process.
    """

    queryset = PayrollRun.objects.all()
    serializer_class = PayrollRunSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'payroll'
    permission_actions = {
        'generate': 'edit',
        'approve': 'approve',
        'process': 'approve',
        'items': 'view',
    }

    def create(self, request):
        serializer = PayrollRunCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            run = PayrollService.create_run(
                data['period_year'], data['period_month'], user=request.user, notes=data['notes']
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(PayrollRunSerializer(run).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        run = self.get_object()
        if run.status != PayrollStatus.DRAFT:
            return Response(
                {'error': "Only draft payroll runs can be deleted."},
                status=status.HTTP_400_BAD_REQUEST
            )
        run.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get'])
    def items(self, request, pk=None):
        run = self.get_object()
        return Response(PayrollItemSerializer(run.items.all(), many=True).data)

    @action(detail=True, methods=['post'])
    def generate(self, request, pk=None):
        run = self.get_object()
        try:
            run = PayrollService.generate_items(run)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(PayrollRunSerializer(run).data)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        run = self.get_object()
        try:
            run = PayrollService.approve(run, user=request.user)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.APPROVE, run)
        return Response(PayrollRunSerializer(run).data)

    @action(detail=True, methods=['post'])
    def process(self, request, pk=None):
        """Pay the run from the selected bank account."""
        run = self.get_object()
        serializer = BankAccountChoiceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bank_account = get_object_or_404(
            BankAccount, pk=serializer.validated_data['bank_account'], is_active=True
        )

        try:
            run = PayrollService.process(run, bank_account, user=request.user)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.PAY, run, {'bank_account': bank_account.name})
        return Response(PayrollRunSerializer(run).data)
