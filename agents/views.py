"""
Agents App Views - Agent Accounts, Configuration, Cargo Billing & Settlements
"""

from rest_framework import viewsets, status, mixins, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from django.shortcuts import get_object_or_404

from core.models import AuditAction, AuditLog, UserRole
from core.permissions import HasModulePermission, can
from finance.models import BankAccount, Invoice
from finance.serializers import InvoiceListSerializer, InvoiceSerializer
from logistics.models import Shipment
from .models import AgentProfile, Settlement
from .serializers import (
    AgentProfileSerializer, AgentCreateSerializer,
    AgentConfigSerializer, AgentCargoInvoiceSerializer,
    SettlementSerializer, SettlementCreateSerializer, SettlementStatusSerializer,
)
from .services import AgentService, SettlementService


class AgentViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   viewsets.GenericViewSet):
    """
    Agents and their configuration.

    Changing region assignments requires the `agents.manage` grant.
    """

    queryset = AgentProfile.objects.select_related('user').prefetch_related('regions')
    serializer_class = AgentProfileSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'agents'
    permission_actions = {'config': 'view', 'cargo_invoice': 'edit', 'my_config': 'view'}

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.query_params.get('active') == 'true':
            qs = qs.filter(is_active=True)
        if self.request.query_params.get('region'):
            qs = qs.filter(regions__code=self.request.query_params['region'])
        return qs

    def get_permissions(self):
        if self.action == 'my_config':
            return [permissions.IsAuthenticated()]
        return super().get_permissions()

    def create(self, request):
        serializer = AgentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        try:
            profile = AgentService.create_agent(
                email=data.pop('email'),
                full_name=data.pop('full_name'),
                password=data.pop('password', None),
                phone=data.pop('phone'),
                regions=data.pop('regions', []),
                created_by=request.user,
                **data,
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.CREATE, profile.user)
        return Response(AgentProfileSerializer(profile).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        profile = self.get_object()
        serializer = AgentConfigSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        regions = data.pop('regions', None)
        if regions is not None:
            if not can(request.user, 'agents', 'manage'):
                return Response(
                    {'error': "You do not have permission to change agent regions."},
                    status=status.HTTP_403_FORBIDDEN
                )

        AgentService.update_config(profile, regions=regions, **data)
        AuditLog.log(request.user, AuditAction.UPDATE, profile, {k: str(v) for k, v in data.items()})
        return Response(AgentProfileSerializer(profile).data)

    @action(detail=True, methods=['get'])
    def config(self, request, pk=None):
        profile = self.get_object()
        return Response(AgentService.full_config(profile.user))

    @action(detail=False, methods=['get'], url_path='me')
    def my_config(self, request):
        """Configuration of the calling agent."""
        if request.user.role != UserRole.AGENT:
            return Response({'error': "Only agents have a configuration."}, status=status.HTTP_403_FORBIDDEN)
        return Response(AgentService.full_config(request.user))

    @action(detail=True, methods=['post'], url_path='cargo-invoice')
    def cargo_invoice(self, request, pk=None):
        """Invoice the agent for selected shipments at their rate per kg."""
        profile = self.get_object()
        serializer = AgentCargoInvoiceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        shipments = list(Shipment.objects.filter(id__in=data['shipment_ids']).order_by('created_at'))
        if len(shipments) != len(set(data['shipment_ids'])):
            return Response({'error': "Some shipments were not found."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            invoice = AgentService.create_cargo_invoice(
                profile.user,
                shipments,
                user=request.user,
                rate_per_kg=data.get('rate_per_kg'),
                currency=data.get('currency'),
                extra_items=[dict(item) for item in data.get('extra_items', [])],
                notes=data['notes'],
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.CREATE, invoice, {'agent': profile.user.email})
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


class SettlementViewSet(mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        viewsets.GenericViewSet):
    """
    Agent settlements; ?status=, ?agent=, ?type=, ?search= (settlement number).

    Approving, paying and cancelling require the `agents.approve` grant.
    """

    queryset = Settlement.objects.select_related('agent').prefetch_related('items__invoice')
    serializer_class = SettlementSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'agents'
    permission_actions = {
        'set_status': 'approve',
        'unsettled': 'view',
        'balances': 'view',
    }

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('status') and params['status'] != 'all':
            qs = qs.filter(status=params['status'])
        if params.get('agent'):
            qs = qs.filter(agent_id=params['agent'])
        if params.get('type'):
            qs = qs.filter(settlement_type=params['type'])
        if params.get('search'):
            qs = qs.filter(settlement_number__icontains=params['search'])
        return qs

    def get_permissions(self):
        if self.action in ('mine', 'my_balance'):
            return [permissions.IsAuthenticated()]
        return super().get_permissions()

    def _agent_or_404(self, agent_id):
        return get_object_or_404(AgentProfile, user_id=agent_id).user

    def create(self, request):
        serializer = SettlementCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        agent = self._agent_or_404(data['agent'])

        invoices = list(Invoice.objects.filter(id__in=data['invoice_ids']))
        if len(invoices) != len(set(data['invoice_ids'])):
            return Response({'error': "Some invoices were not found."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            settlement = SettlementService.create_settlement(
                agent,
                data['settlement_type'],
                invoices=invoices,
                amount=data.get('amount'),
                currency=data.get('currency'),
                period_start=data.get('period_start'),
                period_end=data.get('period_end'),
                notes=data['notes'],
                user=request.user,
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        AuditLog.log(request.user, AuditAction.CREATE, settlement, {'agent': agent.email})
        return Response(SettlementSerializer(settlement).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        """Approve, pay (optionally through a bank account) or cancel."""
        settlement = self.get_object()
        serializer = SettlementStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        bank_account = None
        if data.get('bank_account'):
            bank_account = get_object_or_404(BankAccount, pk=data['bank_account'], is_active=True)

        try:
            settlement = SettlementService.update_status(
                settlement,
                data['status'],
                user=request.user,
                bank_account=bank_account,
                payment_reference=data['payment_reference'],
            )
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        audit_action = {
            'approved': AuditAction.APPROVE,
            'paid': AuditAction.PAY,
            'cancelled': AuditAction.REJECT,
        }[data['status']]
        AuditLog.log(request.user, audit_action, settlement)
        return Response(SettlementSerializer(settlement).data)

    @action(detail=False, methods=['get'])
    def unsettled(self, request):
        """Paid invoices of ?agent= not yet in a settlement."""
        if not request.query_params.get('agent'):
            return Response({'error': "agent is required."}, status=status.HTTP_400_BAD_REQUEST)
        agent = self._agent_or_404(request.query_params['agent'])
        invoices = SettlementService.unsettled_invoices(agent)
        return Response(InvoiceListSerializer(invoices, many=True).data)

    @action(detail=False, methods=['get'])
    def balances(self, request):
        return Response(SettlementService.all_balances())

    @action(detail=False, methods=['get'])
    def mine(self, request):
        """Settlements of the calling agent."""
        if request.user.role != UserRole.AGENT:
            return Response({'error': "Only agents have settlements."}, status=status.HTTP_403_FORBIDDEN)
        qs = super().get_queryset().filter(agent=request.user)
        return Response(SettlementSerializer(qs, many=True).data)

    @action(detail=False, methods=['get'], url_path='my-balance')
    def my_balance(self, request):
        if request.user.role != UserRole.AGENT:
            return Response({'error': "Only agents have a balance."}, status=status.HTTP_403_FORBIDDEN)
        return Response(SettlementService.agent_balance(request.user))
