"""
Logistics App Serializers - Regions, Customers, Shipments & Parcels
"""

from rest_framework import serializers

from .models import Region, Customer, CargoBatch, Shipment, Parcel, ShipmentStatus
from .services import requires_settlement, invoice_recipient


class RegionSerializer(serializers.ModelSerializer):

    class Meta:
        model = Region
        fields = ['id', 'code', 'name', 'currency', 'flag_emoji', 'is_active', 'display_order']


class CustomerSerializer(serializers.ModelSerializer):

    shipment_count = serializers.IntegerField(source='shipments.count', read_only=True)

    class Meta:
        model = Customer
        fields = [
            'id', 'customer_code', 'name', 'company_name', 'email', 'phone',
            'address', 'user', 'shipment_count', 'created_at'
        ]
        read_only_fields = ['id', 'customer_code', 'created_at']


class CargoBatchSerializer(serializers.ModelSerializer):

    origin_region_code = serializers.CharField(source='origin_region.code', read_only=True)

    class Meta:
        model = CargoBatch
        fields = [
            'id', 'batch_number', 'origin_region', 'origin_region_code',
            'cargo_type', 'arrival_week_start', 'status', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']


class ParcelSerializer(serializers.ModelSerializer):

    tracking_number = serializers.CharField(source='shipment.tracking_number', read_only=True)

    class Meta:
        model = Parcel
        fields = [
            'id', 'shipment', 'tracking_number', 'barcode', 'weight_kg',
            'dimensions', 'description', 'picked_up_at', 'created_at'
        ]
        read_only_fields = ['id', 'picked_up_at', 'created_at']


class ShipmentSerializer(serializers.ModelSerializer):
    """Serializer for Shipment model."""

    origin_region_code = serializers.CharField(source='origin_region.code', read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)
    requires_settlement = serializers.SerializerMethodField()
    invoice_recipient = serializers.SerializerMethodField()

    class Meta:
        model = Shipment
        fields = [
            'id', 'tracking_number', 'origin_region', 'origin_region_code',
            'cargo_type', 'status', 'total_weight_kg', 'description',
            'warehouse_location', 'billing_party', 'requires_settlement',
            'invoice_recipient', 'customer', 'customer_name', 'batch',
            'batch_number', 'agent', 'created_by', 'created_at',
            'collected_at', 'in_transit_at', 'arrived_at', 'delivered_at',
        ]
        read_only_fields = [
            'id', 'tracking_number', 'status', 'created_by', 'created_at',
            'collected_at', 'in_transit_at', 'arrived_at', 'delivered_at',
        ]

    def get_requires_settlement(self, obj):
        return requires_settlement(obj.billing_party)

    def get_invoice_recipient(self, obj):
        return invoice_recipient(obj.billing_party)


class ShipmentListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for shipment listings."""

    origin_region_code = serializers.CharField(source='origin_region.code', read_only=True)

    class Meta:
        model = Shipment
        fields = [
            'id', 'tracking_number', 'origin_region_code', 'status',
            'total_weight_kg', 'customer', 'batch', 'created_at'
        ]


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ShipmentStatus.choices)


class BulkStatusUpdateSerializer(serializers.Serializer):
    shipment_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    status = serializers.ChoiceField(choices=ShipmentStatus.choices)


class BatchStatusUpdateSerializer(serializers.Serializer):
    batch_key = serializers.CharField(max_length=64)
    status = serializers.ChoiceField(choices=ShipmentStatus.choices)


class BatchGroupSerializer(serializers.Serializer):
    """Read-only view of a group built by group_shipments_by_batch."""

    key = serializers.CharField()
    batch_id = serializers.CharField(allow_null=True)
    batch_number = serializers.CharField(allow_null=True)
    origin_region = serializers.CharField()
    cargo_type = serializers.CharField()
    arrival_week_start = serializers.DateField(allow_null=True)
    status = serializers.CharField()
    first_status = serializers.CharField()
    shipment_count = serializers.IntegerField()
    total_weight = serializers.DecimalField(max_digits=12, decimal_places=2)
    shipments = ShipmentListSerializer(many=True)
