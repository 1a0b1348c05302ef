"""
Agents App Serializers
"""

from decimal import Decimal

from rest_framework import serializers

from finance.serializers import LineItemSerializer
from logistics.models import Region
from .models import AgentProfile, Settlement, SettlementItem, SettlementType


class AgentProfileSerializer(serializers.ModelSerializer):

    email = serializers.EmailField(source='user.email', read_only=True)
    full_name = serializers.CharField(source='user.full_name', read_only=True)
    phone = serializers.CharField(source='user.phone', read_only=True)
    user_id = serializers.UUIDField(source='user.id', read_only=True)
    regions = serializers.SlugRelatedField(slug_field='code', many=True, read_only=True)

    class Meta:
        model = AgentProfile
        fields = [
            'id', 'user_id', 'email', 'full_name', 'phone', 'company_name',
            'regions', 'can_have_consolidated_cargo', 'billing_currency',
            'rate_per_kg', 'is_active', 'created_at'
        ]


class AgentCreateSerializer(serializers.Serializer):

    email = serializers.EmailField()
    full_name = serializers.CharField(max_length=150)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    password = serializers.CharField(write_only=True, required=False, min_length=8)
    company_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    regions = serializers.SlugRelatedField(
        slug_field='code', queryset=Region.objects.all(), many=True, required=False
    )
    can_have_consolidated_cargo = serializers.BooleanField(default=False)
    billing_currency = serializers.CharField(max_length=3, default='USD')
    rate_per_kg = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal('0'), default=Decimal('0.00')
    )


class AgentConfigSerializer(serializers.Serializer):
    """Partial configuration update; omitted fields are left unchanged."""

    company_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    regions = serializers.SlugRelatedField(
        slug_field='code', queryset=Region.objects.all(), many=True, required=False
    )
    can_have_consolidated_cargo = serializers.BooleanField(required=False)
    billing_currency = serializers.CharField(max_length=3, required=False)
    rate_per_kg = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False
    )
    is_active = serializers.BooleanField(required=False)


class AgentCargoInvoiceSerializer(serializers.Serializer):

    shipment_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    rate_per_kg = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    currency = serializers.CharField(max_length=3, required=False)
    extra_items = LineItemSerializer(many=True, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


# ===========================================
# SETTLEMENTS
# ===========================================

class SettlementItemSerializer(serializers.ModelSerializer):

    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    invoice_amount = serializers.DecimalField(
        source='invoice.amount', max_digits=14, decimal_places=2, read_only=True
    )
    invoice_currency = serializers.CharField(source='invoice.currency', read_only=True)

    class Meta:
        model = SettlementItem
        fields = [
            'id', 'invoice', 'invoice_number', 'invoice_amount', 'invoice_currency',
            'amount', 'currency'
        ]


class SettlementSerializer(serializers.ModelSerializer):

    agent_name = serializers.CharField(source='agent.display_name', read_only=True)
    items = SettlementItemSerializer(many=True, read_only=True)

    class Meta:
        model = Settlement
        fields = [
            'id', 'settlement_number', 'agent', 'agent_name', 'settlement_type',
            'period_start', 'period_end', 'total_amount', 'currency', 'amount_in_tzs',
            'status', 'notes', 'approved_by', 'approved_at', 'paid_at',
            'payment_reference', 'bank_account', 'items', 'created_by', 'created_at'
        ]
        read_only_fields = fields


class SettlementCreateSerializer(serializers.Serializer):

    agent = serializers.UUIDField()
    settlement_type = serializers.ChoiceField(choices=SettlementType.choices)
    invoice_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    currency = serializers.CharField(max_length=3, required=False)
    period_start = serializers.DateField(required=False, allow_null=True)
    period_end = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class SettlementStatusSerializer(serializers.Serializer):

    status = serializers.ChoiceField(choices=['approved', 'paid', 'cancelled'])
    bank_account = serializers.UUIDField(required=False, allow_null=True)
    payment_reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
