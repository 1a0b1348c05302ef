"""
Django Admin configuration for AGENTS app.
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import AgentProfile, Settlement, SettlementItem

STATUS_COLORS = {
    'pending': '#d39e00',
    'approved': '#1e6fd9',
    'paid': '#1e8a4c',
    'cancelled': '#6c757d',
}


@admin.register(AgentProfile)
class AgentProfileAdmin(admin.ModelAdmin):
    list_display = (
        'user', 'company_name', 'region_list', 'billing_currency',
        'rate_per_kg', 'can_have_consolidated_cargo', 'is_active'
    )
    list_filter = ('is_active', 'billing_currency', 'can_have_consolidated_cargo', 'regions')
    search_fields = ('user__email', 'user__full_name', 'company_name')
    filter_horizontal = ('regions',)
    raw_id_fields = ('user',)

    def region_list(self, obj):
        return ", ".join(r.code for r in obj.regions.all()) or "-"
    region_list.short_description = "Regions"


class SettlementItemInline(admin.TabularInline):
    model = SettlementItem
    extra = 0
    fields = ('invoice', 'amount', 'currency')
    readonly_fields = fields
    can_delete = False


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    list_display = (
        'settlement_number', 'agent', 'settlement_type', 'total_amount',
        'currency', 'status_badge', 'created_at'
    )
    list_filter = ('status', 'settlement_type', 'currency')
    search_fields = ('settlement_number', 'agent__email', 'agent__full_name')
    readonly_fields = (
        'settlement_number', 'total_amount', 'amount_in_tzs', 'status',
        'approved_by', 'approved_at', 'paid_at', 'bank_account', 'created_by', 'created_at'
    )
    raw_id_fields = ('agent',)
    inlines = [SettlementItemInline]
    date_hierarchy = 'created_at'

    def status_badge(self, obj):
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; '
            'border-radius: 3px;">{}</span>',
            STATUS_COLORS.get(obj.status, '#6c757d'),
            obj.get_status_display()
        )
    status_badge.short_description = 'Status'
