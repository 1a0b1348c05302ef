"""
Expenses App Views - Expenses & Approval Queue API
"""

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from django.shortcuts import get_object_or_404

from core.models import AuditAction, AuditLog
from core.permissions import HasModulePermission, can
from finance.models import BankAccount
from .models import Expense, ExpenseCategory
from .serializers import (
    ExpenseSerializer, ExpenseSubmitSerializer, ExpenseCategorySerializer,
    ApproveSerializer, DenySerializer, ClarificationSerializer, ResubmitSerializer,
)
from .services import ExpenseService, REVIEWABLE


class ExpenseCategoryViewSet(viewsets.ModelViewSet):

    queryset = ExpenseCategory.objects.all()
    serializer_class = ExpenseCategorySerializer
    permission_classes = [HasModulePermission]
    permission_module = 'expenses'
    permission_actions = {'create': 'edit', 'destroy': 'edit'}
    pagination_class = None

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.query_params.get('active') == 'true':
            qs = qs.filter(is_active=True)
        return qs


class ExpenseViewSet(viewsets.ModelViewSet):
    """
    Expenses and their approval workflow.

    Filters: ?category=, ?region=<code>, ?status=, ?shipment=, ?search= (description).
    """

    queryset = Expense.objects.select_related('shipment', 'region', 'submitted_by')
    serializer_class = ExpenseSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'expenses'
    permission_actions = {
        'approve': 'approve',
        'deny': 'approve',
        'clarify': 'approve',
        'resubmit': 'create',
        'pending': 'view',
        'stats': 'view',
    }

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        for field in ('category', 'status'):
            if params.get(field) and params[field] != 'all':
                qs = qs.filter(**{field: params[field]})
        if params.get('region') and params['region'] != 'all':
            qs = qs.filter(region__code=params['region'])
        if params.get('shipment'):
            qs = qs.filter(shipment_id=params['shipment'])
        if params.get('search'):
            qs = qs.filter(description__icontains=params['search'])
        return qs

    def create(self, request):
        serializer = ExpenseSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        try:
            expense = ExpenseService.submit(
                request.user,
                data.pop('category'),
                data.pop('amount'),
                currency=data.pop('currency').upper(),
                assigned_to=data.pop('assigned_to', None),
                **data,
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        expense = self.get_object()
        if expense.status not in REVIEWABLE:
            return Response(
                {'error': f"A reviewed expense cannot be edited ({expense.status})"},
                status=status.HTTP_400_BAD_REQUEST
            )
        return super().update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        expense = self.get_object()
        if expense.status not in REVIEWABLE:
            return Response(
                {'error': f"A reviewed expense cannot be deleted ({expense.status})"},
                status=status.HTTP_400_BAD_REQUEST
            )
        return super().destroy(request, *args, **kwargs)

    @action(detail=False, methods=['get'])
    def pending(self, request):
        """Approval queue, oldest first."""
        queue = ExpenseService.pending_queue().select_related('shipment', 'region', 'submitted_by')
        page = self.paginate_queryset(queue)
        serializer = ExpenseSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response(ExpenseService.stats())

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        expense = self.get_object()
        serializer = ApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        bank_account = None
        if serializer.validated_data.get('bank_account'):
            bank_account = get_object_or_404(
                BankAccount, pk=serializer.validated_data['bank_account'], is_active=True
            )

        try:
            expense = ExpenseService.approve(expense, request.user, bank_account=bank_account)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.APPROVE, expense)
        return Response(ExpenseSerializer(expense).data)

    @action(detail=True, methods=['post'])
    def deny(self, request, pk=None):
        expense = self.get_object()
        serializer = DenySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            expense = ExpenseService.deny(expense, request.user, serializer.validated_data['reason'])
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.REJECT, expense, {'reason': expense.denial_reason})
        return Response(ExpenseSerializer(expense).data)

    @action(detail=True, methods=['post'])
    def clarify(self, request, pk=None):
        """Ask the submitter for more information."""
        expense = self.get_object()
        serializer = ClarificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            expense = ExpenseService.request_clarification(
                expense, request.user, serializer.validated_data['notes']
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ExpenseSerializer(expense).data)

    @action(detail=True, methods=['post'])
    def resubmit(self, request, pk=None):
        expense = self.get_object()
        if expense.submitted_by_id != request.user.id and not can(request.user, 'expenses', 'edit'):
            return Response(
                {'error': "Only the submitter can resubmit this expense."},
                status=status.HTTP_403_FORBIDDEN
            )

        serializer = ResubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            expense = ExpenseService.resubmit(
                expense, description=serializer.validated_data.get('description')
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ExpenseSerializer(expense).data)
