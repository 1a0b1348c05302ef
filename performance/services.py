"""
PERFORMANCE App - Leaderboards, Badges & Milestones

Ranks staff (super admins and employees) on four metrics:
- revenue:   paid invoices they created (amount in TZS), since paid_at
- invoices:  invoices they created, since created_at
- estimates: estimates they created, since created_at
- shipments: shipments they created, since created_at
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.models import NotificationType, User, UserRole
from core.services import NotificationService
from finance.models import Estimate, Invoice, InvoiceStatus
from logistics.models import Shipment
from .models import (
    BadgeTier, EmployeeBadge, EmployeeMilestone, Metric, Period,
)

logger = logging.getLogger(__name__)


# ============================================
# BADGE & MILESTONE DEFINITIONS
# ============================================

BADGE_TIERS: Dict[str, Dict[str, Any]] = {
    'gold': {
        'rank': 1,
        'label': 'Top Performer',
        'icon': '👑',
    },
    'silver': {
        'rank': 2,
        'label': 'High Achiever',
        'icon': '🥈',
    },
    'bronze': {
        'rank': 3,
        'label': 'Rising Star',
        'icon': '🥉',
    },
}

TIER_BY_RANK = {info['rank']: tier for tier, info in BADGE_TIERS.items()}

BADGE_PERIODS = ['week', 'month', 'quarter', 'year']

MILESTONES: List[Dict[str, Any]] = [
    {'type': 'invoices', 'value': 10, 'label': '10 Invoices Created', 'icon': '📝'},
    {'type': 'invoices', 'value': 25, 'label': '25 Invoices Created', 'icon': '📝'},
    {'type': 'invoices', 'value': 50, 'label': '50 Invoices Created', 'icon': '📝'},
    {'type': 'invoices', 'value': 100, 'label': '100 Invoices Created', 'icon': '🎯'},

    {'type': 'estimates', 'value': 10, 'label': '10 Estimates Created', 'icon': '📋'},
    {'type': 'estimates', 'value': 25, 'label': '25 Estimates Created', 'icon': '📋'},
    {'type': 'estimates', 'value': 50, 'label': '50 Estimates Created', 'icon': '📋'},
    {'type': 'estimates', 'value': 100, 'label': '100 Estimates Created', 'icon': '🎯'},

    {'type': 'shipments', 'value': 10, 'label': '10 Shipments Handled', 'icon': '📦'},
    {'type': 'shipments', 'value': 25, 'label': '25 Shipments Handled', 'icon': '📦'},
    {'type': 'shipments', 'value': 50, 'label': '50 Shipments Handled', 'icon': '📦'},
    {'type': 'shipments', 'value': 100, 'label': '100 Shipments Handled', 'icon': '🚀'},

    # Revenue in TZS
    {'type': 'revenue', 'value': 1_000_000, 'label': '1M TZS Revenue Generated', 'icon': '💰'},
    {'type': 'revenue', 'value': 5_000_000, 'label': '5M TZS Revenue Generated', 'icon': '💰'},
    {'type': 'revenue', 'value': 10_000_000, 'label': '10M TZS Revenue Generated', 'icon': '💎'},
    {'type': 'revenue', 'value': 50_000_000, 'label': '50M TZS Revenue Generated', 'icon': '🏆'},
    {'type': 'revenue', 'value': 100_000_000, 'label': '100M TZS Revenue Generated', 'icon': '👑'},
]


# ============================================
# HELPER FUNCTIONS
# ============================================

def period_start(period: str, today: Optional[date] = None) -> Optional[date]:
    """
    First day of the current period (weeks start on Monday).

    Returns None for the all-time period.
    """
    today = today or timezone.localdate()

    if period == Period.WEEK:
        return today - timedelta(days=today.weekday())
    if period == Period.MONTH:
        return today.replace(day=1)
    if period == Period.QUARTER:
        return today.replace(month=3 * ((today.month - 1) // 3) + 1, day=1)
    if period == Period.YEAR:
        return today.replace(month=1, day=1)
    if period == Period.ALL:
        return None
    raise ValueError(f"Unknown period: {period}")


def rank_entries(entries: Iterable[Dict]) -> List[Dict]:
    """
    Sort entries by `value` descending and number them from 1.

    The sort is stable: tied entries keep their incoming order.
    """
    ranked = sorted(entries, key=lambda e: e['value'], reverse=True)
    for rank, entry in enumerate(ranked, 1):
        entry['rank'] = rank
    return ranked


def staff_members():
    return User.objects.filter(
        role__in=[UserRole.SUPER_ADMIN, UserRole.EMPLOYEE],
        is_active=True,
    ).order_by('date_joined')


def metric_values(metric: str, user_ids: List, since: Optional[date] = None) -> Dict[Any, Any]:
    """
    Metric totals keyed by creator id, for the given users only.

    Users with nothing recorded are absent from the result.
    """
    if metric == Metric.REVENUE:
        qs = Invoice.objects.filter(status=InvoiceStatus.PAID, created_by__in=user_ids)
        if since:
            qs = qs.filter(paid_at__date__gte=since)
        rows = qs.values('created_by').annotate(total=Sum(Coalesce('amount_in_tzs', 'amount')))
        return {row['created_by']: row['total'] or Decimal('0') for row in rows}

    models_by_metric = {
        'invoices': Invoice,
        'estimates': Estimate,
        'shipments': Shipment,
    }
    if metric not in models_by_metric:
        raise ValueError(f"Unknown metric: {metric}")

    qs = models_by_metric[metric].objects.filter(created_by__in=user_ids)
    if since:
        qs = qs.filter(created_at__date__gte=since)
    rows = qs.values('created_by').annotate(total=Count('id'))
    return {row['created_by']: row['total'] for row in rows}


# ============================================
# PERFORMANCE SERVICE
# ============================================

class PerformanceService:
    """Leaderboards, period badges and lifetime milestones for staff."""

    @classmethod
    def get_leaderboard(cls, metric: str = Metric.REVENUE, period: str = Period.MONTH,
                        today: Optional[date] = None, limit: Optional[int] = None) -> List[Dict]:
        """
        Rank every staff member on a metric for the current period.

        Args:
            metric: revenue, invoices, estimates or shipments
            period: week, month, quarter, year or all
            today: Reference date (default: today)
            limit: Keep only the first N entries

        Returns:
            List of dicts with rank, employee_id, name and value.
        """
        since = period_start(period, today)
        staff = list(staff_members())
        values = metric_values(metric, [u.id for u in staff], since)
        zero = Decimal('0') if metric == Metric.REVENUE else 0

        leaderboard = rank_entries(
            {
                'employee_id': user.id,
                'name': user.display_name,
                'value': values.get(user.id, zero),
            }
            for user in staff
        )
        return leaderboard[:limit] if limit else leaderboard

    @classmethod
    def award_badges(cls, today: Optional[date] = None) -> int:
        """
        Award gold/silver/bronze to the top 3 of each metric and period.

        Entries with a zero value get nothing. A badge already held for the
        same period start is skipped.

        Returns:
            Number of newly awarded badges.
        """
        awarded = 0

        for period in BADGE_PERIODS:
            start = period_start(period, today)

            for metric in Metric.values:
                leaderboard = cls.get_leaderboard(metric, period, today=today, limit=3)

                for entry in leaderboard:
                    if not entry['value']:
                        continue
                    if cls._award(entry, metric, period, start):
                        awarded += 1

        logger.info(f"[PERFORMANCE] {awarded} badge(s) awarded")
        return awarded

    @staticmethod
    def _award(entry: Dict, metric: str, period: str, start: date) -> bool:
        tier = TIER_BY_RANK[entry['rank']]
        badge_type = f"{period}_{metric}_{tier}"

        exists = EmployeeBadge.objects.filter(
            employee_id=entry['employee_id'],
            badge_type=badge_type,
            period_start=start,
        ).exists()
        if exists:
            return False

        try:
            with transaction.atomic():
                badge = EmployeeBadge.objects.create(
                    employee_id=entry['employee_id'],
                    badge_type=badge_type,
                    tier=tier,
                    metric=metric,
                    period=period,
                    period_start=start,
                    rank=entry['rank'],
                    value=entry['value'],
                )
        except IntegrityError:
            return False

        info = BADGE_TIERS[tier]
        NotificationService.notify(
            badge.employee,
            f"{info['icon']} New Badge Earned!",
            f"You earned the {info['label']} badge for "
            f"{Metric(metric).label} ({Period(period).label})!",
            notification_type=NotificationType.BADGE,
        )
        logger.info(f"[PERFORMANCE] Badge {badge_type} awarded to {entry['name']}")
        return True

    @classmethod
    def lifetime_metrics(cls, users) -> Dict[Any, Dict[str, Any]]:
        """All-time value of every metric, keyed by user id then metric."""
        user_ids = [u.id for u in users]
        totals = {user_id: {} for user_id in user_ids}
        for metric in Metric.values:
            values = metric_values(metric, user_ids)
            for user_id in user_ids:
                totals[user_id][metric] = values.get(user_id, 0)
        return totals

    @classmethod
    def check_milestones(cls, users=None) -> List[EmployeeMilestone]:
        """
        Record and announce every milestone newly reached.

        Args:
            users: Staff to check (default: all staff members)

        Returns:
            The milestones created by this call.
        """
        users = list(users if users is not None else staff_members())
        totals = cls.lifetime_metrics(users)

        achieved = set(
            EmployeeMilestone.objects.filter(employee__in=users)
            .values_list('employee_id', 'milestone_type', 'value')
        )

        created = []
        for user in users:
            for milestone in MILESTONES:
                key = (user.id, milestone['type'], milestone['value'])
                if key in achieved:
                    continue
                if totals[user.id][milestone['type']] < milestone['value']:
                    continue

                try:
                    with transaction.atomic():
                        record = EmployeeMilestone.objects.create(
                            employee=user,
                            milestone_type=milestone['type'],
                            value=milestone['value'],
                            notified_at=timezone.now(),
                        )
                except IntegrityError:
                    continue

                NotificationService.notify(
                    user,
                    f"{milestone['icon']} Milestone Achieved!",
                    f"Congratulations! You've reached {milestone['label']}.",
                    notification_type=NotificationType.MILESTONE,
                )
                logger.info(f"[PERFORMANCE] {user.email} reached {milestone['label']}")
                created.append(record)

        return created

    @staticmethod
    def badge_summary(user) -> Dict[str, Any]:
        """Badges held by a user with their display labels."""
        badges = EmployeeBadge.objects.filter(employee=user)
        return {
            'total_badges': badges.count(),
            'by_tier': {
                tier: badges.filter(tier=tier).count() for tier in BadgeTier.values
            },
            'badges': [
                {
                    'badge_type': b.badge_type,
                    'tier': b.tier,
                    'icon': BADGE_TIERS[b.tier]['icon'],
                    'label': (
                        f"{Period(b.period).label} {Metric(b.metric).label} "
                        f"{BADGE_TIERS[b.tier]['label']}"
                    ),
                    'period_start': b.period_start.isoformat(),
                    'rank': b.rank,
                    'value': b.value,
                }
                for b in badges
            ],
        }
