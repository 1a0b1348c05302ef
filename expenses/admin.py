"""
Django Admin configuration for EXPENSES app.
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import Expense, ExpenseCategory, ExpenseStatus
from .services import ExpenseService


@admin.register(ExpenseCategory)
class ExpenseCategoryAdmin(admin.ModelAdmin):
    list_display = ('value', 'label', 'is_active', 'display_order')
    list_editable = ('is_active', 'display_order')


STATUS_COLORS = {
    ExpenseStatus.PENDING: '#f59e0b',
    ExpenseStatus.APPROVED: '#10b981',
    ExpenseStatus.DENIED: '#ef4444',
    ExpenseStatus.NEEDS_CLARIFICATION: '#f97316',
}


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = (
        'category', 'amount_display', 'status_badge', 'region', 'shipment',
        'submitted_by', 'assigned_to', 'created_at'
    )
    list_filter = ('status', 'category', 'region', 'currency')
    search_fields = ('description', 'shipment__tracking_number', 'submitted_by__email')
    readonly_fields = ('status', 'approved_by', 'approved_at', 'paid_from_account', 'created_at')
    raw_id_fields = ('shipment', 'submitted_by', 'assigned_to', 'approved_by')
    date_hierarchy = 'created_at'
    actions = ['approve_selected']

    def status_badge(self, obj):
        return format_html(
            '<span style="padding:2px 6px;border-radius:8px;color:white;background:{};font-size:11px;">{}</span>',
            STATUS_COLORS.get(obj.status, '#6b7280'), obj.get_status_display()
        )
    status_badge.short_description = "Status"

    @admin.action(description="Approve selected expenses")
    def approve_selected(self, request, queryset):
        approved = 0
        for expense in queryset:
            try:
                ExpenseService.approve(expense, request.user)
                approved += 1
            except ValueError as e:
                self.message_user(request, f"⚠️ {expense.id}: {e}", level='warning')
        self.message_user(request, f"✅ {approved} expense(s) approved.")
