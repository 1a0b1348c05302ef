"""
LOGISTICS App - Shipment Services

Tracking numbers, status transitions and batch grouping.
"""

import logging
import uuid
from collections import Counter
from decimal import Decimal
from typing import Dict, Iterable, List

from django.db import transaction
from django.utils import timezone

from .models import (
    Shipment, ShipmentStatus, Parcel, BillingParty, STATUS_TIMESTAMP_FIELDS,
)

logger = logging.getLogger(__name__)

TRACKING_PREFIX = 'AST'


def generate_tracking_number(today=None) -> str:
    """
    Generate a unique tracking number.
    Format: AST + YYMMDD + 6 upper-case hex characters (AST250114A1B2C3)
    """
    today = today or timezone.localdate()
    for _ in range(10):
        candidate = f"{TRACKING_PREFIX}{today:%y%m%d}{uuid.uuid4().hex[:6].upper()}"
        if not Shipment.objects.filter(tracking_number=candidate).exists():
            return candidate
    raise RuntimeError("Could not allocate a unique tracking number")


# ===========================================
# BILLING PARTY
# ===========================================

def requires_settlement(billing_party: str) -> bool:
    """Only agent-collected shipments need an agent settlement."""
    return billing_party == BillingParty.AGENT_COLLECT


def invoice_recipient(billing_party: str) -> str:
    """Who the invoice is issued to: 'customer', 'agent' or 'internal'."""
    return {
        BillingParty.CUSTOMER_DIRECT: 'customer',
        BillingParty.AGENT_COLLECT: 'agent',
        BillingParty.INTERNAL: 'internal',
    }[billing_party]


# ===========================================
# STATUS TRANSITIONS
# ===========================================

class ShipmentService:
    """Status changes for shipments and parcels."""

    @staticmethod
    def _apply_status(shipment: Shipment, status: str) -> Shipment:
        if status not in ShipmentStatus.values:
            raise ValueError(f"Unknown shipment status: {status}")

        shipment.status = status
        setattr(shipment, STATUS_TIMESTAMP_FIELDS[status], timezone.now())
        shipment.save()
        return shipment

    @classmethod
    @transaction.atomic
    def update_status(cls, shipment: Shipment, status: str) -> Shipment:
        """
        Move a shipment to `status` and stamp the matching timestamp.

        Raises:
            ValueError: If the status is unknown
        """
        previous = shipment.status
        cls._apply_status(shipment, status)
        logger.info(f"[SHIPMENT] {shipment.tracking_number}: {previous} -> {status}")
        return shipment

    @classmethod
    @transaction.atomic
    def bulk_update_status(cls, shipment_ids: Iterable, status: str) -> int:
        """
        Apply one status to many shipments.

        Returns:
            Number of shipments updated
        """
        if status not in ShipmentStatus.values:
            raise ValueError(f"Unknown shipment status: {status}")

        count = 0
        for shipment in Shipment.objects.select_for_update().filter(id__in=list(shipment_ids)):
            cls._apply_status(shipment, status)
            count += 1

        logger.info(f"[SHIPMENT] Bulk status {status} applied to {count} shipments")
        return count

    @classmethod
    def update_batch_status(cls, batch_key: str, status: str) -> int:
        """Apply a status to every shipment in a batch group (see group_shipments_by_batch)."""
        return cls.bulk_update_status(
            shipments_for_batch_key(batch_key).values_list('id', flat=True), status
        )

    @staticmethod
    @transaction.atomic
    def record_parcel_pickup(parcel: Parcel, user=None) -> Parcel:
        """Stamp a parcel as picked up. The first pickup wins."""
        parcel = Parcel.objects.select_for_update().get(pk=parcel.pk)
        if parcel.picked_up_at is not None:
            raise ValueError(f"Parcel {parcel.barcode} was already picked up")

        parcel.picked_up_at = timezone.now()
        parcel.picked_up_by = user
        parcel.save(update_fields=['picked_up_at', 'picked_up_by'])
        return parcel


# ===========================================
# BATCH GROUPING
# ===========================================

UNBATCHED_PREFIX = 'unbatched-'


def batch_key(shipment) -> str:
    """Group key: the batch id, or unbatched-<region code>."""
    if shipment.batch_id:
        return str(shipment.batch_id)
    return f"{UNBATCHED_PREFIX}{shipment.origin_region.code}"


def shipments_for_batch_key(key: str):
    if key.startswith(UNBATCHED_PREFIX):
        return Shipment.objects.filter(
            batch__isnull=True,
            origin_region__code=key[len(UNBATCHED_PREFIX):],
        )
    return Shipment.objects.filter(batch_id=key)


def group_shipments_by_batch(shipments: Iterable[Shipment]) -> List[Dict]:
    """
    Group shipments by cargo batch.

    Shipments without a batch are grouped per origin region. Each shipment
    lands in exactly one group, so a group's total weight is the sum of its
    members' weights. `first_status` is the first member's status and
    `status` the most common member status, ties going to the earliest seen.
    Groups are ordered by their first member's creation time, newest first.
    """
    groups: Dict[str, Dict] = {}

    for shipment in shipments:
        key = batch_key(shipment)
        group = groups.get(key)
        if group is None:
            batch = shipment.batch if shipment.batch_id else None
            group = groups[key] = {
                'key': key,
                'batch_id': str(shipment.batch_id) if shipment.batch_id else None,
                'batch_number': batch.batch_number if batch else None,
                'cargo_type': batch.cargo_type if batch else shipment.cargo_type,
                'arrival_week_start': batch.arrival_week_start if batch else None,
                'origin_region': shipment.origin_region.code,
                'first_status': shipment.status or ShipmentStatus.COLLECTED,
                'shipments': [],
                'total_weight': Decimal('0.00'),
            }
        group['shipments'].append(shipment)
        group['total_weight'] += shipment.total_weight_kg or Decimal('0.00')

    for group in groups.values():
        counts = Counter(s.status or ShipmentStatus.COLLECTED for s in group['shipments'])
        group['status'] = counts.most_common(1)[0][0]
        group['shipment_count'] = len(group['shipments'])

    return sorted(
        groups.values(),
        key=lambda g: g['shipments'][0].created_at,
        reverse=True,
    )
