"""
Django Admin configuration for LOGISTICS app.
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import Region, Customer, CargoBatch, Shipment, Parcel, ShipmentStatus
from .services import ShipmentService


@admin.register(Region)
class RegionAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'flag_emoji', 'currency', 'is_active', 'display_order')
    list_filter = ('is_active', 'currency')
    list_editable = ('is_active', 'display_order')
    ordering = ('display_order', 'name')


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('customer_code', 'name', 'company_name', 'email', 'phone', 'created_at')
    search_fields = ('customer_code', 'name', 'company_name', 'email', 'phone')
    readonly_fields = ('customer_code', 'created_at')
    raw_id_fields = ('user',)


class ParcelInline(admin.TabularInline):
    model = Parcel
    extra = 0
    fields = ('barcode', 'weight_kg', 'dimensions', 'description', 'picked_up_at')
    readonly_fields = ('picked_up_at',)


@admin.register(CargoBatch)
class CargoBatchAdmin(admin.ModelAdmin):
    list_display = ('batch_number', 'origin_region', 'cargo_type', 'arrival_week_start', 'status')
    list_filter = ('status', 'cargo_type', 'origin_region')
    search_fields = ('batch_number',)


STATUS_COLORS = {
    ShipmentStatus.COLLECTED: '#6b7280',
    ShipmentStatus.IN_TRANSIT: '#3b82f6',
    ShipmentStatus.ARRIVED: '#f59e0b',
    ShipmentStatus.DELIVERED: '#10b981',
}


@admin.register(Shipment)
class ShipmentAdmin(admin.ModelAdmin):
    """Admin for shipments with status badge and bulk status actions."""

    list_display = (
        'tracking_number', 'origin_region', 'cargo_type', 'status_badge',
        'total_weight_kg', 'customer', 'batch', 'created_at',
    )
    list_filter = ('status', 'origin_region', 'cargo_type', 'billing_party')
    search_fields = ('tracking_number', 'description', 'customer__name')
    readonly_fields = (
        'tracking_number', 'created_at', 'collected_at',
        'in_transit_at', 'arrived_at', 'delivered_at',
    )
    raw_id_fields = ('customer', 'agent', 'created_by')
    date_hierarchy = 'created_at'
    inlines = [ParcelInline]
    actions = ['mark_in_transit', 'mark_arrived', 'mark_delivered']

    def status_badge(self, obj):
        return format_html(
            '<span style="padding:2px 6px;border-radius:8px;color:white;background:{};font-size:11px;">{}</span>',
            STATUS_COLORS.get(obj.status, '#6b7280'), obj.get_status_display()
        )
    status_badge.short_description = "Status"

    def _bulk(self, request, queryset, status):
        count = ShipmentService.bulk_update_status(queryset.values_list('id', flat=True), status)
        self.message_user(request, f"✅ {count} shipment(s) updated.")

    @admin.action(description="Mark selected as In Transit")
    def mark_in_transit(self, request, queryset):
        self._bulk(request, queryset, ShipmentStatus.IN_TRANSIT)

    @admin.action(description="Mark selected as Arrived")
    def mark_arrived(self, request, queryset):
        self._bulk(request, queryset, ShipmentStatus.ARRIVED)

    @admin.action(description="Mark selected as Delivered")
    def mark_delivered(self, request, queryset):
        self._bulk(request, queryset, ShipmentStatus.DELIVERED)


@admin.register(Parcel)
class ParcelAdmin(admin.ModelAdmin):
    list_display = ('barcode', 'shipment', 'weight_kg', 'dimensions', 'picked_up_at')
    search_fields = ('barcode', 'shipment__tracking_number')
    raw_id_fields = ('shipment', 'picked_up_by')
