"""
LOGISTICS App - Django Signals

Notify customers when their shipment changes status.
"""

import logging
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from logistics.models import Shipment

logger = logging.getLogger(__name__)


# Store previous status for change detection
_previous_status = {}


@receiver(pre_save, sender=Shipment)
def capture_previous_status(sender, instance, **kwargs):
    """Capture the previous status before save for change detection."""
    if instance.pk:
        previous = Shipment.objects.filter(pk=instance.pk).values_list('status', flat=True).first()
        if previous is not None:
            _previous_status[instance.pk] = previous


@receiver(post_save, sender=Shipment)
def on_shipment_saved(sender, instance, created, **kwargs):
    previous = _previous_status.pop(instance.pk, None)
    if created or previous is None or previous == instance.status:
        return

    logger.info(
        f"[SIGNAL] Shipment {instance.tracking_number} status changed: "
        f"{previous} -> {instance.status}"
    )
    _notify_customer(instance)


def _notify_customer(shipment: Shipment):
    customer = shipment.customer
    if customer is None or customer.user_id is None:
        return

    from core.models import NotificationType
    from core.services import NotificationService

    NotificationService.notify(
        customer.user,
        title=f"Shipment {shipment.get_status_display()}",
        message=(
            f"Your shipment {shipment.tracking_number} is now "
            f"{shipment.get_status_display().lower()}."
        ),
        notification_type=NotificationType.SHIPMENT,
        shipment=shipment,
    )
