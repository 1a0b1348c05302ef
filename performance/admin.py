"""
Django Admin configuration for PERFORMANCE app.
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import EmployeeBadge, EmployeeMilestone

TIER_COLORS = {
    'gold': '#d4a017',
    'silver': '#8a8d91',
    'bronze': '#b06a2c',
}


@admin.register(EmployeeBadge)
class EmployeeBadgeAdmin(admin.ModelAdmin):
    list_display = ('employee', 'badge_type', 'tier_badge', 'period_start', 'rank', 'value', 'achieved_at')
    list_filter = ('tier', 'metric', 'period')
    search_fields = ('employee__email', 'employee__full_name', 'badge_type')
    readonly_fields = ('achieved_at',)
    date_hierarchy = 'achieved_at'

    def tier_badge(self, obj):
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; '
            'border-radius: 3px;">{}</span>',
            TIER_COLORS.get(obj.tier, '#6c757d'),
            obj.get_tier_display()
        )
    tier_badge.short_description = 'Tier'


@admin.register(EmployeeMilestone)
class EmployeeMilestoneAdmin(admin.ModelAdmin):
    list_display = ('employee', 'milestone_type', 'value', 'achieved_at', 'notified_at')
    list_filter = ('milestone_type',)
    search_fields = ('employee__email', 'employee__full_name')
