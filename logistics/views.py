"""
Logistics App Views - Shipments, Parcels, Batches & Customers API
"""

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from django.db.models import Q
from django.shortcuts import get_object_or_404

from core.models import UserRole
from core.permissions import HasModulePermission
from .models import Region, Customer, CargoBatch, Shipment, Parcel
from .serializers import (
    RegionSerializer, CustomerSerializer, CargoBatchSerializer,
    ShipmentSerializer, ShipmentListSerializer, ParcelSerializer,
    StatusUpdateSerializer, BulkStatusUpdateSerializer,
    BatchStatusUpdateSerializer, BatchGroupSerializer,
)
from .services import ShipmentService, group_shipments_by_batch


class RegionViewSet(viewsets.ModelViewSet):

    queryset = Region.objects.all()
    serializer_class = RegionSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'settings'
    permission_actions = {
        'create': 'manage', 'update': 'manage',
        'partial_update': 'manage', 'destroy': 'manage',
    }
    pagination_class = None
    lookup_field = 'code'

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.query_params.get('active') == 'true':
            qs = qs.filter(is_active=True)
        return qs


class CustomerViewSet(viewsets.ModelViewSet):

    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'customers'
    search_fields = ['name', 'company_name', 'email', 'phone', 'customer_code']


class CargoBatchViewSet(viewsets.ModelViewSet):

    queryset = CargoBatch.objects.select_related('origin_region')
    serializer_class = CargoBatchSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'shipments'
    permission_actions = {
        'create': 'manage', 'update': 'manage',
        'partial_update': 'manage', 'destroy': 'manage',
    }
    filterset_fields = ['status', 'cargo_type', 'origin_region']

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)


class ShipmentViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Shipment management.

    Filters: ?status=, ?region=<code>, ?search= (tracking number or description).
    Agents only see the shipments they collected.
    """

    queryset = Shipment.objects.select_related('origin_region', 'customer', 'batch')
    permission_classes = [HasModulePermission]
    permission_module = 'shipments'
    permission_actions = {
        'update_status': 'edit',
        'bulk_status': 'edit',
        'batch_status': 'manage',
        'batches': 'view',
        'track': 'view',
    }

    def get_serializer_class(self):
        if self.action == 'list':
            return ShipmentListSerializer
        return ShipmentSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if user.role == UserRole.AGENT:
            qs = qs.filter(agent=user)

        params = self.request.query_params
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('region'):
            qs = qs.filter(origin_region__code=params['region'])
        if params.get('search'):
            term = params['search']
            qs = qs.filter(Q(tracking_number__icontains=term) | Q(description__icontains=term))
        return qs

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        shipment = self.get_object()
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ShipmentService.update_status(shipment, serializer.validated_data['status'])
        return Response(ShipmentSerializer(shipment).data)

    @action(detail=False, methods=['post'], url_path='bulk-status')
    def bulk_status(self, request):
        serializer = BulkStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        allowed_ids = self.get_queryset().filter(
            id__in=serializer.validated_data['shipment_ids']
        ).values_list('id', flat=True)
        count = ShipmentService.bulk_update_status(allowed_ids, serializer.validated_data['status'])
        return Response({'updated': count})

    @action(detail=False, methods=['get'])
    def batches(self, request):
        """Shipments grouped by cargo batch (unbatched grouped per region)."""
        groups = group_shipments_by_batch(self.get_queryset())
        return Response(BatchGroupSerializer(groups, many=True).data)

    @action(detail=False, methods=['post'], url_path='batch-status')
    def batch_status(self, request):
        serializer = BatchStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        count = ShipmentService.update_batch_status(
            serializer.validated_data['batch_key'],
            serializer.validated_data['status'],
        )
        return Response({'updated': count})

    @action(detail=False, methods=['get'], url_path=r'track/(?P<tracking_number>[A-Za-z0-9]+)')
    def track(self, request, tracking_number=None):
        shipment = get_object_or_404(self.get_queryset(), tracking_number__iexact=tracking_number)
        return Response(ShipmentSerializer(shipment).data)


class ParcelViewSet(viewsets.ModelViewSet):
    """Parcels; list with ?shipment=<id> for one shipment's parcels (oldest first)."""

    queryset = Parcel.objects.select_related('shipment')
    serializer_class = ParcelSerializer
    permission_classes = [HasModulePermission]
    permission_module = 'shipments'
    permission_actions = {'pickup': 'edit', 'by_barcode': 'view'}
    filterset_fields = ['shipment']

    @action(detail=True, methods=['post'])
    def pickup(self, request, pk=None):
        parcel = self.get_object()
        try:
            parcel = ShipmentService.record_parcel_pickup(parcel, user=request.user)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ParcelSerializer(parcel).data)

    @action(detail=False, methods=['get'], url_path=r'barcode/(?P<barcode>[^/]+)')
    def by_barcode(self, request, barcode=None):
        parcel = get_object_or_404(self.get_queryset(), barcode=barcode)
        return Response(ParcelSerializer(parcel).data)
