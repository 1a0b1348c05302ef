"""
PERFORMANCE App - Employee Badges & Milestones

Badges are awarded to the top three employees of a metric over a period
(week, month, quarter, year). Milestones are lifetime thresholds and are
recorded once per employee.
"""

import uuid
from django.db import models
from django.conf import settings


class Metric(models.TextChoices):
    REVENUE = 'revenue', 'Revenue'
    INVOICES = 'invoices', 'Invoices'
    ESTIMATES = 'estimates', 'Estimates'
    SHIPMENTS = 'shipments', 'Shipments'


class Period(models.TextChoices):
    WEEK = 'week', 'Weekly'
    MONTH = 'month', 'Monthly'
    QUARTER = 'quarter', 'Quarterly'
    YEAR = 'year', 'Yearly'
    ALL = 'all', 'All Time'


class BadgeTier(models.TextChoices):
    GOLD = 'gold', 'Gold'
    SILVER = 'silver', 'Silver'
    BRONZE = 'bronze', 'Bronze'


class EmployeeBadge(models.Model):
    """
    A ranking badge, e.g. `month_revenue_gold`.

    Unique per (employee, badge_type, period_start): re-running the award
    job within the same period never duplicates a badge.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='badges'
    )
    badge_type = models.CharField(max_length=50)
    tier = models.CharField(max_length=10, choices=BadgeTier.choices)
    metric = models.CharField(max_length=20, choices=Metric.choices)
    period = models.CharField(max_length=10, choices=Period.choices)
    period_start = models.DateField()
    rank = models.PositiveSmallIntegerField()
    value = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    achieved_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Badge"
        verbose_name_plural = "Badges"
        ordering = ['-achieved_at']
        constraints = [
            models.UniqueConstraint(
                fields=['employee', 'badge_type', 'period_start'],
                name='unique_badge_per_period'
            ),
        ]

    def __str__(self):
        return f"{self.employee} - {self.badge_type} ({self.period_start})"


class EmployeeMilestone(models.Model):
    """A lifetime threshold reached by an employee (e.g. 50 invoices)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='milestones'
    )
    milestone_type = models.CharField(max_length=20, choices=Metric.choices)
    value = models.BigIntegerField()
    achieved_at = models.DateTimeField(auto_now_add=True)
    notified_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Milestone"
        verbose_name_plural = "Milestones"
        ordering = ['-achieved_at']
        constraints = [
            models.UniqueConstraint(
                fields=['employee', 'milestone_type', 'value'],
                name='unique_milestone'
            ),
        ]

    def __str__(self):
        return f"{self.employee} - {self.milestone_type} {self.value}"
