"""
CORE App - Notification Service

Notification failures are logged, never raised to the caller.
"""

import logging
from typing import Optional

from django.db import transaction

from .models import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """Create and manage in-app notifications."""

    @staticmethod
    def notify(user, title: str, message: str,
               notification_type: str = NotificationType.INFO,
               shipment=None) -> Optional[Notification]:
        """
        Create a notification for a user.

        Returns:
            The Notification, or None if the user is missing or the insert failed
        """
        if user is None:
            return None

        try:
            with transaction.atomic():
                return Notification.objects.create(
                    user=user,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    shipment=shipment,
                )
        except Exception as e:
            logger.warning(f"[NOTIFY] Failed to notify {user.pk}: {e}")
            return None

    @staticmethod
    def unread_count(user) -> int:
        return Notification.objects.filter(user=user, is_read=False).count()

    @staticmethod
    def mark_read(notification: Notification) -> Notification:
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=['is_read'])
        return notification

    @staticmethod
    def mark_all_read(user) -> int:
        return Notification.objects.filter(user=user, is_read=False).update(is_read=True)
