"""
Django Admin configuration for FINANCE app.
"""

import csv

from django.contrib import admin
from django.http import HttpResponse
from django.utils.html import format_html

from .models import (
    ExchangeRate, BankAccount, BankTransaction, Estimate,
    Invoice, InvoiceItem, InvoicePayment, InvoiceStatus,
)


@admin.register(ExchangeRate)
class ExchangeRateAdmin(admin.ModelAdmin):
    list_display = ('currency_code', 'currency_name', 'rate_to_tzs', 'updated_by', 'updated_at')
    readonly_fields = ('updated_by', 'updated_at')

    def save_model(self, request, obj, form, change):
        obj.updated_by = request.user
        super().save_model(request, obj, form, change)


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ('name', 'bank_name', 'account_number', 'currency', 'balance_display', 'is_active')
    list_filter = ('currency', 'is_active')
    search_fields = ('name', 'bank_name', 'account_number')
    readonly_fields = ('current_balance', 'created_at')

    def balance_display(self, obj):
        return f"{obj.currency} {obj.current_balance:,.2f}"
    balance_display.short_description = "Balance"


@admin.register(BankTransaction)
class BankTransactionAdmin(admin.ModelAdmin):
    """Ledger rows are written by BankAccountService only."""

    list_display = (
        'short_id', 'account', 'transaction_type', 'formatted_amount',
        'balance_after', 'reference', 'created_at'
    )
    list_filter = ('transaction_type', 'account', 'created_at')
    search_fields = ('id', 'reference', 'description')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    actions = ['export_transactions_csv']

    def short_id(self, obj):
        return str(obj.id)[:8]
    short_id.short_description = "ID"

    def formatted_amount(self, obj):
        sign = '+' if obj.amount >= 0 else ''
        return f"{sign}{obj.amount} {obj.account.currency}"
    formatted_amount.short_description = "Amount"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="📥 Export as CSV")
    def export_transactions_csv(self, request, queryset):
        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = 'attachment; filename="bank_transactions.csv"'
        response.write('﻿')

        writer = csv.writer(response)
        writer.writerow([
            'ID', 'Account', 'Type', 'Amount', 'Balance before', 'Balance after',
            'Description', 'Reference', 'Date'
        ])
        for t in queryset.select_related('account'):
            writer.writerow([
                str(t.id)[:8],
                t.account.name,
                t.get_transaction_type_display(),
                t.amount,
                t.balance_before,
                t.balance_after,
                t.description,
                t.reference,
                t.created_at.strftime('%d/%m/%Y %H:%M'),
            ])
        return response


@admin.register(Estimate)
class EstimateAdmin(admin.ModelAdmin):
    list_display = ('estimate_number', 'customer', 'currency', 'total', 'status', 'valid_until', 'created_by')
    list_filter = ('status', 'currency')
    search_fields = ('estimate_number', 'customer__name')
    readonly_fields = ('estimate_number', 'subtotal', 'discount_amount', 'tax_amount', 'total', 'created_at')
    raw_id_fields = ('customer', 'shipment', 'created_by')


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    fields = ('position', 'item_type', 'description', 'quantity', 'unit_price', 'unit_type', 'amount')
    readonly_fields = ('amount',)


class InvoicePaymentInline(admin.TabularInline):
    model = InvoicePayment
    extra = 0
    fields = ('amount', 'currency', 'payment_method', 'bank_account', 'reference', 'paid_at', 'recorded_by')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


STATUS_COLORS = {
    InvoiceStatus.DRAFT: '#6b7280',
    InvoiceStatus.PENDING: '#f59e0b',
    InvoiceStatus.PARTIALLY_PAID: '#3b82f6',
    InvoiceStatus.PAID: '#10b981',
    InvoiceStatus.CANCELLED: '#ef4444',
}


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    """Invoices with their lines and received payments."""

    list_display = (
        'invoice_number', 'invoice_type', 'billed_to', 'amount_display',
        'status_badge', 'due_date', 'created_at'
    )
    list_filter = ('invoice_type', 'status', 'currency', 'created_at')
    search_fields = ('invoice_number', 'customer__name', 'agent__email', 'notes')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    readonly_fields = (
        'invoice_number', 'subtotal', 'discount_amount', 'tax_amount',
        'amount', 'amount_in_tzs', 'amount_paid', 'paid_at', 'created_at'
    )
    raw_id_fields = ('customer', 'agent', 'shipment', 'estimate', 'created_by')
    inlines = [InvoiceItemInline, InvoicePaymentInline]

    def billed_to(self, obj):
        if obj.customer_id:
            return obj.customer.name
        if obj.agent_id:
            return obj.agent.display_name
        return "-"
    billed_to.short_description = "Billed to"

    def amount_display(self, obj):
        return f"{obj.currency} {obj.amount:,.2f}"
    amount_display.short_description = "Amount"

    def status_badge(self, obj):
        return format_html(
            '<span style="padding:2px 6px;border-radius:8px;color:white;background:{};font-size:11px;">{}</span>',
            STATUS_COLORS.get(obj.status, '#6b7280'), obj.get_status_display()
        )
    status_badge.short_description = "Status"
