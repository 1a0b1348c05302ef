"""
Expenses App Serializers
"""

from decimal import Decimal

from rest_framework import serializers

from core.models import User
from logistics.models import Region, Shipment
from .models import Expense, ExpenseCategory


class ExpenseCategorySerializer(serializers.ModelSerializer):

    class Meta:
        model = ExpenseCategory
        fields = ['id', 'value', 'label', 'is_active', 'display_order']


class ExpenseSerializer(serializers.ModelSerializer):

    tracking_number = serializers.CharField(source='shipment.tracking_number', read_only=True)
    region_code = serializers.CharField(source='region.code', read_only=True)
    submitted_by_name = serializers.CharField(source='submitted_by.display_name', read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id', 'category', 'amount', 'currency', 'description', 'region',
            'region_code', 'shipment', 'tracking_number', 'receipt', 'status',
            'submitted_by', 'submitted_by_name', 'assigned_to', 'approved_by',
            'approved_at', 'denial_reason', 'clarification_notes',
            'paid_from_account', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'status', 'submitted_by', 'approved_by', 'approved_at',
            'denial_reason', 'clarification_notes', 'paid_from_account',
            'created_at', 'updated_at'
        ]


class ExpenseSubmitSerializer(serializers.Serializer):

    category = serializers.SlugField(max_length=50)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    currency = serializers.CharField(max_length=3, default='USD')
    description = serializers.CharField(required=False, allow_blank=True, default='')
    region = serializers.SlugRelatedField(
        slug_field='code', queryset=Region.objects.all(), required=False, allow_null=True
    )
    shipment = serializers.PrimaryKeyRelatedField(
        queryset=Shipment.objects.all(), required=False, allow_null=True
    )
    assigned_to = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(is_active=True), required=False, allow_null=True
    )
    receipt = serializers.FileField(required=False, allow_null=True)


class ApproveSerializer(serializers.Serializer):
    bank_account = serializers.UUIDField(required=False, allow_null=True)


class DenySerializer(serializers.Serializer):
    reason = serializers.CharField()


class ClarificationSerializer(serializers.Serializer):
    notes = serializers.CharField()


class ResubmitSerializer(serializers.Serializer):
    description = serializers.CharField(required=False, allow_blank=True)
