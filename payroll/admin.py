"""
Django Admin configuration for PAYROLL app.
"""

from django.contrib import admin

from .models import EmployeeSalary, SalaryAdvance, PayrollRun, PayrollItem


@admin.register(EmployeeSalary)
class EmployeeSalaryAdmin(admin.ModelAdmin):
    list_display = ('employee', 'base_salary', 'other_allowances', 'currency', 'effective_from', 'is_active')
    list_filter = ('is_active', 'currency')
    search_fields = ('employee__email', 'employee__full_name')
    raw_id_fields = ('employee',)


@admin.register(SalaryAdvance)
class SalaryAdvanceAdmin(admin.ModelAdmin):
    list_display = ('employee', 'amount', 'currency', 'advance_date', 'status', 'deducted_in_payroll')
    list_filter = ('status',)
    search_fields = ('employee__email', 'employee__full_name', 'reason')
    readonly_fields = ('approved_by', 'approved_at', 'deducted_in_payroll', 'paid_from_account')
    raw_id_fields = ('employee', 'created_by')


class PayrollItemInline(admin.TabularInline):
    model = PayrollItem
    extra = 0
    fields = ('employee_name', 'gross_salary', 'total_deductions', 'net_salary', 'nssf_employer_contribution', 'status')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PayrollRun)
class PayrollRunAdmin(admin.ModelAdmin):
    list_display = (
        'payroll_number', 'period_month', 'period_year', 'status',
        'total_gross', 'total_net', 'total_employer_contributions', 'paid_at'
    )
    list_filter = ('status', 'period_year')
    readonly_fields = (
        'payroll_number', 'total_gross', 'total_deductions', 'total_net',
        'total_employer_contributions', 'paid_from_account', 'paid_at', 'paid_by'
    )
    inlines = [PayrollItemInline]
