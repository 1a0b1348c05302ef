"""
LOGISTICS App - Shipments, Parcels & Cargo Batches

Handles: Origin regions, customers, consolidated batches,
shipments moving collected → in_transit → arrived → delivered,
and the parcels inside each shipment.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.conf import settings


class ShipmentStatus(models.TextChoices):
    """Shipment lifecycle, in order."""
    COLLECTED = 'collected', 'Collected'
    IN_TRANSIT = 'in_transit', 'In Transit'
    ARRIVED = 'arrived', 'Arrived'
    DELIVERED = 'delivered', 'Delivered'


# Timestamp field stamped when a shipment enters each status
STATUS_TIMESTAMP_FIELDS = {
    ShipmentStatus.COLLECTED: 'collected_at',
    ShipmentStatus.IN_TRANSIT: 'in_transit_at',
    ShipmentStatus.ARRIVED: 'arrived_at',
    ShipmentStatus.DELIVERED: 'delivered_at',
}


class CargoType(models.TextChoices):
    AIR = 'air', 'Air'
    SEA = 'sea', 'Sea'


class BillingParty(models.TextChoices):
    """Who the shipment is billed to."""
    CUSTOMER_DIRECT = 'customer_direct', 'Customer Direct'
    AGENT_COLLECT = 'agent_collect', 'Agent Collect'
    INTERNAL = 'internal', 'Internal'


DEFAULT_REGIONS = [
    {'code': 'europe', 'name': 'Europe', 'currency': 'GBP', 'flag_emoji': '🇪🇺'},
    {'code': 'dubai', 'name': 'Dubai', 'currency': 'USD', 'flag_emoji': '🇦🇪'},
    {'code': 'china', 'name': 'China', 'currency': 'USD', 'flag_emoji': '🇨🇳'},
    {'code': 'india', 'name': 'India', 'currency': 'USD', 'flag_emoji': '🇮🇳'},
]


class Region(models.Model):
    """Origin region that cargo is collected from."""

    code = models.SlugField(max_length=30, unique=True, verbose_name="Code")
    name = models.CharField(max_length=100, verbose_name="Name")
    currency = models.CharField(max_length=3, default='USD', verbose_name="Billing currency")
    flag_emoji = models.CharField(max_length=10, blank=True)
    is_active = models.BooleanField(default=True)
    display_order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        verbose_name = "Region"
        verbose_name_plural = "Regions"
        ordering = ['display_order', 'name']

    def __str__(self):
        return f"{self.flag_emoji} {self.name}".strip()

    @classmethod
    def ensure_defaults(cls) -> int:
        """Create the standard regions that are missing. Returns the number created."""
        created = 0
        for order, data in enumerate(DEFAULT_REGIONS):
            _, was_created = cls.objects.get_or_create(
                code=data['code'],
                defaults={**data, 'display_order': order},
            )
            created += int(was_created)
        return created


class Customer(models.Model):
    """Shipper or consignee the company bills."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer_code = models.CharField(max_length=20, unique=True, blank=True)
    name = models.CharField(max_length=150, verbose_name="Name")
    company_name = models.CharField(max_length=150, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='customer_profile',
        verbose_name="Portal account"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Customer"
        verbose_name_plural = "Customers"
        ordering = ['name']

    def __str__(self):
        return f"{self.customer_code} {self.name}".strip()

    def save(self, *args, **kwargs):
        if not self.customer_code:
            self.customer_code = self.get_next_customer_code()
        super().save(*args, **kwargs)

    @classmethod
    def get_next_customer_code(cls) -> str:
        """
        Generate next sequential customer code.
        Format: CT0001
        """
        last = cls.objects.filter(
            customer_code__startswith='CT'
        ).order_by('-customer_code').first()

        next_seq = 1
        if last:
            try:
                next_seq = int(last.customer_code[2:]) + 1
            except ValueError:
                next_seq = 1
        return f"CT{next_seq:04d}"


class BatchStatus(models.TextChoices):
    OPEN = 'open', 'Open'
    IN_TRANSIT = 'in_transit', 'In Transit'
    ARRIVED = 'arrived', 'Arrived'
    CLOSED = 'closed', 'Closed'


class CargoBatch(models.Model):
    """Shipments consolidated from one region for the same arrival window."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch_number = models.CharField(max_length=30, unique=True)
    origin_region = models.ForeignKey(
        Region,
        on_delete=models.PROTECT,
        related_name='batches'
    )
    cargo_type = models.CharField(max_length=10, choices=CargoType.choices, default=CargoType.AIR)
    arrival_week_start = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=BatchStatus.choices, default=BatchStatus.OPEN)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Cargo batch"
        verbose_name_plural = "Cargo batches"
        ordering = ['-created_at']

    def __str__(self):
        return self.batch_number


class Shipment(models.Model):
    """
    A consignment tracked from collection abroad to delivery.

    Each status change stamps its own timestamp (collected_at, ...).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tracking_number = models.CharField(max_length=20, unique=True, verbose_name="Tracking number")

    origin_region = models.ForeignKey(
        Region,
        on_delete=models.PROTECT,
        related_name='shipments',
        verbose_name="Origin region"
    )
    cargo_type = models.CharField(max_length=10, choices=CargoType.choices, default=CargoType.AIR)
    status = models.CharField(
        max_length=20,
        choices=ShipmentStatus.choices,
        default=ShipmentStatus.COLLECTED,
        verbose_name="Status"
    )
    total_weight_kg = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Total weight (kg)"
    )
    description = models.TextField(blank=True)
    warehouse_location = models.CharField(max_length=100, blank=True)
    billing_party = models.CharField(
        max_length=20,
        choices=BillingParty.choices,
        default=BillingParty.CUSTOMER_DIRECT
    )

    # Relations
    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='shipments'
    )
    batch = models.ForeignKey(
        CargoBatch,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='shipments'
    )
    agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='agent_shipments',
        verbose_name="Collecting agent"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_shipments'
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    collected_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    arrived_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Shipment"
        verbose_name_plural = "Shipments"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['origin_region', 'status']),
        ]

    def __str__(self):
        return f"{self.tracking_number} - {self.status}"

    def save(self, *args, **kwargs):
        if not self.tracking_number:
            from .services import generate_tracking_number
            self.tracking_number = generate_tracking_number()
        super().save(*args, **kwargs)

    @property
    def is_delivered(self) -> bool:
        return self.status == ShipmentStatus.DELIVERED


class Parcel(models.Model):
    """A single labelled piece inside a shipment."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shipment = models.ForeignKey(
        Shipment,
        on_delete=models.CASCADE,
        related_name='parcels'
    )
    barcode = models.CharField(max_length=50, unique=True, verbose_name="Barcode")
    weight_kg = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    dimensions = models.CharField(max_length=50, blank=True, help_text="L x W x H in cm")
    description = models.CharField(max_length=255, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    picked_up_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Parcel"
        verbose_name_plural = "Parcels"
        ordering = ['created_at']

    def __str__(self):
        return f"{self.barcode} ({self.weight_kg} kg)"
