"""
Finance App Serializers - Rates, Bank Accounts, Estimates & Invoices
"""

from decimal import Decimal

from rest_framework import serializers

from .models import (
    ExchangeRate, BankAccount, BankTransaction, Estimate, EstimateStatus,
    Invoice, InvoiceItem, InvoicePayment, InvoiceType, ItemType, UnitTypeChoices,
)


class ExchangeRateSerializer(serializers.ModelSerializer):

    class Meta:
        model = ExchangeRate
        fields = ['id', 'currency_code', 'currency_name', 'rate_to_tzs', 'updated_at']
        read_only_fields = ['id', 'updated_at']

    def validate_currency_code(self, value):
        return value.upper()

    def validate_rate_to_tzs(self, value):
        if value <= 0:
            raise serializers.ValidationError("Rate must be positive.")
        return value


class BankAccountSerializer(serializers.ModelSerializer):

    class Meta:
        model = BankAccount
        fields = [
            'id', 'name', 'bank_name', 'account_number', 'currency',
            'current_balance', 'is_active', 'created_at'
        ]
        read_only_fields = ['id', 'current_balance', 'created_at']


class BankTransactionSerializer(serializers.ModelSerializer):

    class Meta:
        model = BankTransaction
        fields = [
            'id', 'transaction_type', 'amount', 'balance_before',
            'balance_after', 'description', 'reference', 'created_at'
        ]


class DepositSerializer(serializers.Serializer):
    """Manual deposit into a company account."""

    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    description = serializers.CharField(max_length=255, required=False, default='Manual deposit')
    reference = serializers.CharField(max_length=100, required=False, default='')


class LineItemSerializer(serializers.Serializer):
    """Incoming line item; the amount is always computed server-side."""

    item_type = serializers.ChoiceField(choices=ItemType.choices, default=ItemType.OTHER)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, default=1)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2)
    unit_type = serializers.ChoiceField(choices=UnitTypeChoices.choices, default=UnitTypeChoices.FIXED)
    weight_kg = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)


class EstimateSerializer(serializers.ModelSerializer):

    customer_name = serializers.CharField(source='customer.name', read_only=True)

    class Meta:
        model = Estimate
        fields = [
            'id', 'estimate_number', 'customer', 'customer_name', 'shipment',
            'origin_region', 'currency', 'weight_kg', 'rate_per_kg',
            'line_items', 'subtotal', 'discount', 'discount_amount',
            'tax_rate', 'tax_amount', 'total', 'status', 'valid_until',
            'notes', 'created_by', 'created_at'
        ]
        read_only_fields = fields


class EstimateCreateSerializer(serializers.Serializer):

    customer = serializers.UUIDField()
    shipment = serializers.UUIDField(required=False, allow_null=True)
    origin_region = serializers.CharField(required=False, allow_blank=True)
    currency = serializers.CharField(max_length=3, default='USD')
    weight_kg = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, default=0)
    rate_per_kg = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, default=0)
    items = LineItemSerializer(many=True)
    discount = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, default=0)
    valid_until = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one line item is required.")
        return value


class EstimateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        c for c in EstimateStatus.choices if c[0] != EstimateStatus.CONVERTED
    ])


class InvoiceItemSerializer(serializers.ModelSerializer):

    class Meta:
        model = InvoiceItem
        fields = [
            'id', 'item_type', 'description', 'quantity', 'unit_price',
            'unit_type', 'weight_kg', 'amount', 'position'
        ]
        read_only_fields = ['id', 'amount']


class InvoicePaymentSerializer(serializers.ModelSerializer):

    class Meta:
        model = InvoicePayment
        fields = [
            'id', 'amount', 'currency', 'amount_in_tzs', 'payment_method',
            'reference', 'bank_account', 'recorded_by', 'paid_at'
        ]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    """Full invoice with its lines and payments."""

    items = InvoiceItemSerializer(many=True, read_only=True)
    payments = InvoicePaymentSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    balance_due = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'invoice_type', 'customer', 'customer_name',
            'agent', 'shipment', 'estimate', 'currency', 'subtotal', 'discount',
            'discount_amount', 'tax_rate', 'tax_amount', 'amount', 'amount_in_tzs',
            'amount_paid', 'balance_due', 'status', 'due_date', 'paid_at',
            'payment_method', 'notes', 'created_by', 'created_at', 'items', 'payments'
        ]
        read_only_fields = fields


class InvoiceListSerializer(serializers.ModelSerializer):

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'invoice_type', 'customer', 'agent',
            'currency', 'amount', 'amount_paid', 'status', 'due_date', 'created_at'
        ]


class InvoiceCreateSerializer(serializers.Serializer):

    invoice_type = serializers.ChoiceField(choices=InvoiceType.choices, default=InvoiceType.SHIPPING)
    customer = serializers.UUIDField(required=False, allow_null=True)
    agent = serializers.UUIDField(required=False, allow_null=True)
    shipment = serializers.UUIDField(required=False, allow_null=True)
    currency = serializers.CharField(max_length=3, default='USD')
    items = LineItemSerializer(many=True)
    discount = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, default=0)
    due_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if not attrs.get('customer') and not attrs.get('agent'):
            raise serializers.ValidationError("Either customer or agent is required.")
        if not attrs.get('items'):
            raise serializers.ValidationError({'items': "At least one line item is required."})
        return attrs


class RecordPaymentSerializer(serializers.Serializer):

    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    currency = serializers.CharField(max_length=3, required=False)
    payment_method = serializers.CharField(max_length=30, default='bank_transfer')
    bank_account = serializers.UUIDField(required=False, allow_null=True)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class ConvertAmountSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=16, decimal_places=2)
    from_currency = serializers.CharField(max_length=3)
    to_currency = serializers.CharField(max_length=3, default='TZS')
