"""
Finance App Views - Exchange Rates, Bank Accounts, Estimates & Invoices API
"""

from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action
from rest_framework.response import Response
from django.db.models import Q
from django.shortcuts import get_object_or_404

from core.models import AuditAction, AuditLog, User
from core.permissions import HasModulePermission
from logistics.models import Customer, Region, Shipment
from .models import (
    ExchangeRate, BankAccount, BankAccountService, BankTransactionType,
    Estimate, Invoice,
)
from .serializers import (
    ExchangeRateSerializer, BankAccountSerializer, BankTransactionSerializer,
    DepositSerializer, EstimateSerializer, EstimateCreateSerializer,
    EstimateStatusSerializer, InvoiceSerializer, InvoiceListSerializer,
    InvoiceCreateSerializer, RecordPaymentSerializer, InvoicePaymentSerializer,
    ConvertAmountSerializer,
)
from .services import CurrencyService, EstimateService, InvoiceService


class ExchangeRateViewSet(viewsets.ModelViewSet):
    """Rates to TZS; `convert` turns an amount from one currency to another."""

    queryset = ExchangeRate.objects.all()
    serializer_class = ExchangeRateSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'accounting'
    permission_actions = {
        'convert': 'view',
        'create': 'manage', 'update': 'manage',
        'partial_update': 'manage', 'destroy': 'manage',
    }
    pagination_class = None

    def perform_create(self, serializer):
        serializer.save(updated_by=self.request.user)

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)

    @action(detail=False, methods=['post'])
    def convert(self, request):
        serializer = ConvertAmountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        converted = CurrencyService.convert(
            data['amount'], data['from_currency'].upper(), data['to_currency'].upper()
        )
        return Response({
            'amount': data['amount'],
            'from_currency': data['from_currency'].upper(),
            'to_currency': data['to_currency'].upper(),
            'converted': converted,
        })


class BankAccountViewSet(viewsets.ModelViewSet):

    queryset = BankAccount.objects.all()
    serializer_class = BankAccountSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'accounting'
    permission_actions = {'transactions': 'view', 'deposit': 'approve'}

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.query_params.get('active') == 'true':
            qs = qs.filter(is_active=True)
        return qs

    @action(detail=True, methods=['get'])
    def transactions(self, request, pk=None):
        """Ledger of an account, newest first."""
        account = self.get_object()
        page = self.paginate_queryset(account.transactions.all())
        serializer = BankTransactionSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=['post'])
    def deposit(self, request, pk=None):
        account = self.get_object()
        serializer = DepositSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        tx = BankAccountService.credit(
            account,
            data['amount'],
            BankTransactionType.DEPOSIT,
            description=data['description'],
            reference=data['reference'],
            user=request.user,
        )
        account.refresh_from_db()
        return Response({
            'transaction': BankTransactionSerializer(tx).data,
            'current_balance': account.current_balance,
        })


class EstimateViewSet(mixins.ListModelMixin,
                      mixins.RetrieveModelMixin,
                      mixins.DestroyModelMixin,
                      viewsets.GenericViewSet):
    """
    Estimates. Creation computes totals from the submitted lines.

    Filters: ?status=, ?customer=, ?search= (estimate number or customer name).
    """

    queryset = Estimate.objects.select_related('customer')
    serializer_class = EstimateSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'estimates'
    permission_actions = {'set_status': 'edit', 'convert': 'approve'}

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('customer'):
            qs = qs.filter(customer_id=params['customer'])
        if params.get('search'):
            term = params['search']
            qs = qs.filter(Q(estimate_number__icontains=term) | Q(customer__name__icontains=term))
        return qs

    def create(self, request):
        serializer = EstimateCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        customer = get_object_or_404(Customer, pk=data.pop('customer'))
        extra = {
            'weight_kg': data.pop('weight_kg'),
            'rate_per_kg': data.pop('rate_per_kg'),
            'notes': data.pop('notes'),
        }
        shipment_id = data.pop('shipment', None)
        if shipment_id:
            extra['shipment'] = get_object_or_404(Shipment, pk=shipment_id)
        region_code = data.pop('origin_region', '')
        if region_code:
            extra['origin_region'] = get_object_or_404(Region, code=region_code)
        if data.get('valid_until'):
            extra['valid_until'] = data.pop('valid_until')

        try:
            estimate = EstimateService.create_estimate(
                customer,
                [dict(item) for item in data['items']],
                currency=data['currency'].upper(),
                discount=data['discount'],
                tax_rate=data['tax_rate'],
                user=request.user,
                **extra,
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.CREATE, estimate)
        return Response(EstimateSerializer(estimate).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        estimate = self.get_object()
        serializer = EstimateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            EstimateService.set_status(estimate, serializer.validated_data['status'])
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(EstimateSerializer(estimate).data)

    @action(detail=True, methods=['post'])
    def convert(self, request, pk=None):
        """Create an invoice from this estimate."""
        estimate = self.get_object()
        try:
            invoice = EstimateService.convert_to_invoice(estimate, user=request.user)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.CREATE, invoice, {'estimate': estimate.estimate_number})
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


class InvoiceViewSet(mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    """
    Invoices with items and payments.

    Filters: ?status=, ?invoice_type=, ?customer=, ?agent=,
    ?search= (invoice number or customer name).
    """

    queryset = Invoice.objects.select_related('customer', 'agent').prefetch_related('items', 'payments')
    permission_classes = [HasModulePermission]
    permission_module = 'invoices'
    permission_actions = {'payments': 'view', 'pay': 'approve', 'cancel': 'edit'}

    def get_serializer_class(self):
        if self.action == 'list':
            return InvoiceListSerializer
        return InvoiceSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        for field in ('status', 'invoice_type'):
            if params.get(field):
                qs = qs.filter(**{field: params[field]})
        if params.get('customer'):
            qs = qs.filter(customer_id=params['customer'])
        if params.get('agent'):
            qs = qs.filter(agent_id=params['agent'])
        if params.get('search'):
            term = params['search']
            qs = qs.filter(Q(invoice_number__icontains=term) | Q(customer__name__icontains=term))
        return qs

    def create(self, request):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        customer = get_object_or_404(Customer, pk=data['customer']) if data.get('customer') else None
        agent = get_object_or_404(User, pk=data['agent']) if data.get('agent') else None
        extra = {'notes': data['notes']}
        if data.get('shipment'):
            extra['shipment'] = get_object_or_404(Shipment, pk=data['shipment'])
        if data.get('due_date'):
            extra['due_date'] = data['due_date']

        try:
            invoice = InvoiceService.create_invoice(
                [dict(item) for item in data['items']],
                customer=customer,
                agent=agent,
                currency=data['currency'].upper(),
                discount=data['discount'],
                tax_rate=data['tax_rate'],
                invoice_type=data['invoice_type'],
                user=request.user,
                **extra,
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.CREATE, invoice)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def payments(self, request, pk=None):
        invoice = self.get_object()
        return Response(InvoicePaymentSerializer(invoice.payments.all(), many=True).data)

    @action(detail=True, methods=['post'])
    def pay(self, request, pk=None):
        """Record a payment, optionally crediting a bank account."""
        invoice = self.get_object()
        serializer = RecordPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        bank_account = None
        if data.get('bank_account'):
            bank_account = get_object_or_404(BankAccount, pk=data['bank_account'], is_active=True)

        try:
            payment = InvoiceService.record_payment(
                invoice,
                data['amount'],
                currency=(data.get('currency') or invoice.currency).upper(),
                payment_method=data['payment_method'],
                bank_account=bank_account,
                reference=data['reference'],
                user=request.user,
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        invoice.refresh_from_db()
        AuditLog.log(request.user, AuditAction.PAY, invoice, {'amount': str(data['amount'])})
        return Response({
            'payment': InvoicePaymentSerializer(payment).data,
            'invoice': InvoiceSerializer(invoice).data,
        })

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        invoice = self.get_object()
        try:
            InvoiceService.cancel(invoice)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(InvoiceSerializer(invoice).data)
