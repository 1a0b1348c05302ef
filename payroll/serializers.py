"""
Payroll App Serializers
"""

from decimal import Decimal

from rest_framework import serializers

from .models import EmployeeSalary, SalaryAdvance, PayrollRun, PayrollItem


class EmployeeSalarySerializer(serializers.ModelSerializer):

    employee_name = serializers.CharField(source='employee.display_name', read_only=True)

    class Meta:
        model = EmployeeSalary
        fields = [
            'id', 'employee', 'employee_name', 'base_salary', 'currency',
            'pay_frequency', 'paye_rate', 'nssf_employee_rate', 'nssf_employer_rate',
            'health_insurance', 'other_allowances', 'effective_from', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, attrs):
        for field in ('paye_rate', 'nssf_employee_rate', 'nssf_employer_rate'):
            rate = attrs.get(field)
            if rate is not None and not Decimal('0') <= rate <= Decimal('100'):
                raise serializers.ValidationError({field: "Rate must be between 0 and 100."})
        return attrs


class SalaryAdvanceSerializer(serializers.ModelSerializer):

    employee_name = serializers.CharField(source='employee.display_name', read_only=True)

    class Meta:
        model = SalaryAdvance
        fields = [
            'id', 'employee', 'employee_name', 'amount', 'currency', 'advance_date',
            'reason', 'status', 'approved_by', 'approved_at', 'deducted_in_payroll',
            'paid_from_account', 'created_by', 'created_at'
        ]
        read_only_fields = [
            'id', 'status', 'approved_by', 'approved_at', 'deducted_in_payroll',
            'paid_from_account', 'created_by', 'created_at'
        ]

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be positive.")
        return value


class PayrollItemSerializer(serializers.ModelSerializer):

    class Meta:
        model = PayrollItem
        fields = [
            'id', 'employee', 'employee_name', 'base_salary', 'other_allowances',
            'gross_salary', 'paye_deduction', 'nssf_employee_deduction',
            'nssf_employer_contribution', 'health_deduction', 'advance_deduction',
            'other_deductions', 'total_deductions', 'net_salary', 'currency', 'status'
        ]


class PayrollRunSerializer(serializers.ModelSerializer):

    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = PayrollRun
        fields = [
            'id', 'payroll_number', 'period_month', 'period_year', 'run_date',
            'status', 'currency', 'total_gross', 'total_deductions', 'total_net',
            'total_employer_contributions', 'paid_from_account', 'paid_at',
            'paid_by', 'notes', 'item_count', 'created_at'
        ]
        read_only_fields = fields


class PayrollRunCreateSerializer(serializers.Serializer):
    period_year = serializers.IntegerField(min_value=2000, max_value=2100)
    period_month = serializers.IntegerField(min_value=1, max_value=12)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BankAccountChoiceSerializer(serializers.Serializer):
    bank_account = serializers.UUIDField()


class AdvanceApprovalSerializer(serializers.Serializer):
    bank_account = serializers.UUIDField(required=False, allow_null=True)
