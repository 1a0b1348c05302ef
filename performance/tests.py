"""
Cargo Back Office Performance Tests
====================================

Tests for:
1. Period boundaries and ranking
2. Leaderboard metrics
3. Badge awarding
4. Milestones
5. Leaderboard API
"""

from datetime import date, timedelta
from decimal import Decimal
from itertools import count

from django.conf import settings
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from core.models import Notification, NotificationType, User, UserRole
from finance.models import Estimate, Invoice, InvoiceStatus
from logistics.models import Customer, Region, Shipment
from performance.models import EmployeeBadge, EmployeeMilestone
from performance.services import PerformanceService, period_start, rank_entries
from performance.tasks import award_performance_badges, check_employee_milestones

_numbers = count(1)


class PerformanceTestMixin:

    def setUp(self):
        Region.ensure_defaults()
        self.region = Region.objects.get(code='china')
        self.customer = Customer.objects.create(name='Acme Imports')
        self.alice = User.objects.create_user(email='alice@example.com', full_name='Alice', role=UserRole.EMPLOYEE)
        self.bob = User.objects.create_user(email='bob@example.com', full_name='Bob', role=UserRole.EMPLOYEE)
        self.admin = User.objects.create_user(email='boss@example.com', full_name='Boss', role=UserRole.SUPER_ADMIN)

    def invoice(self, user, amount='100.00', amount_in_tzs=None, paid=False):
        return Invoice.objects.create(
            invoice_number=f"INV-T{next(_numbers):05d}",
            customer=self.customer,
            amount=Decimal(amount),
            amount_in_tzs=amount_in_tzs,
            status=InvoiceStatus.PAID if paid else InvoiceStatus.PENDING,
            paid_at=timezone.now() if paid else None,
            created_by=user,
        )

    def estimate(self, user):
        return Estimate.objects.create(
            estimate_number=f"EST-T{next(_numbers):05d}",
            customer=self.customer,
            created_by=user,
        )

    def shipment(self, user):
        return Shipment.objects.create(origin_region=self.region, created_by=user)


class TestPeriodsAndRanking(TestCase):
    """Pure helpers."""

    def test_period_starts(self):
        wednesday = date(2025, 5, 14)
        self.assertEqual(period_start('week', wednesday), date(2025, 5, 12))
        self.assertEqual(period_start('month', wednesday), date(2025, 5, 1))
        self.assertEqual(period_start('quarter', wednesday), date(2025, 4, 1))
        self.assertEqual(period_start('year', wednesday), date(2025, 1, 1))
        self.assertIsNone(period_start('all', wednesday))

    def test_week_starts_on_monday(self):
        monday = date(2025, 5, 12)
        sunday = date(2025, 5, 18)
        self.assertEqual(period_start('week', monday), monday)
        self.assertEqual(period_start('week', sunday), monday)

    def test_unknown_period(self):
        with self.assertRaises(ValueError):
            period_start('decade', date(2025, 1, 1))

    def test_rank_entries_stable(self):
        """Ties keep their incoming order; ranks run 1..n."""
        ranked = rank_entries([
            {'name': 'a', 'value': 5},
            {'name': 'b', 'value': 9},
            {'name': 'c', 'value': 5},
            {'name': 'd', 'value': 0},
        ])
        self.assertEqual([e['name'] for e in ranked], ['b', 'a', 'c', 'd'])
        self.assertEqual([e['rank'] for e in ranked], [1, 2, 3, 4])

    def test_rank_empty(self):
        self.assertEqual(rank_entries([]), [])


class TestLeaderboard(PerformanceTestMixin, TestCase):

    def test_revenue_prefers_tzs_amount(self):
        self.invoice(self.alice, '100.00', amount_in_tzs=Decimal('250000'), paid=True)
        self.invoice(self.bob, '300000.00', paid=True)
        self.invoice(self.bob, '999999.00')

        board = PerformanceService.get_leaderboard('revenue', 'month')
        self.assertEqual(board[0]['employee_id'], self.bob.id)
        self.assertEqual(board[0]['value'], Decimal('300000.00'))
        self.assertEqual(board[1]['value'], Decimal('250000.00'))
        self.assertEqual(board[2]['value'], Decimal('0'))

    def test_counts_and_staff_only(self):
        customer_user = User.objects.create_user(email='c@example.com', role=UserRole.CUSTOMER)
        self.shipment(self.bob)
        self.shipment(self.bob)
        self.shipment(self.alice)
        self.shipment(customer_user)

        board = PerformanceService.get_leaderboard('shipments', 'week')
        self.assertEqual(len(board), 3)
        self.assertEqual([(e['name'], e['value']) for e in board[:2]], [('Bob', 2), ('Alice', 1)])

    def test_old_records_only_count_all_time(self):
        estimate = self.estimate(self.alice)
        Estimate.objects.filter(pk=estimate.pk).update(created_at=timezone.now() - timedelta(days=400))

        yearly = PerformanceService.get_leaderboard('estimates', 'year')
        self.assertEqual(sum(e['value'] for e in yearly), 0)

        all_time = PerformanceService.get_leaderboard('estimates', 'all')
        self.assertEqual(all_time[0]['value'], 1)

    def test_limit(self):
        board = PerformanceService.get_leaderboard('invoices', 'month', limit=2)
        self.assertEqual(len(board), 2)


class TestAwardBadges(PerformanceTestMixin, TestCase):

    def test_top_non_zero_entries_awarded(self):
        self.invoice(self.alice)
        self.invoice(self.alice)
        self.invoice(self.bob)

        awarded = PerformanceService.award_badges()
        # alice gold + bob silver, in each of the four periods
        self.assertEqual(awarded, 8)
        self.assertFalse(EmployeeBadge.objects.filter(employee=self.admin).exists())

        gold = EmployeeBadge.objects.get(employee=self.alice, period='month')
        self.assertEqual(gold.badge_type, 'month_invoices_gold')
        self.assertEqual(gold.rank, 1)
        self.assertEqual(gold.value, Decimal('2'))
        self.assertEqual(gold.period_start, period_start('month'))

    def test_rerun_skips_existing(self):
        self.invoice(self.alice)
        PerformanceService.award_badges()
        self.assertEqual(PerformanceService.award_badges(), 0)
        self.assertEqual(EmployeeBadge.objects.count(), 4)

    def test_badge_notification(self):
        self.shipment(self.bob)
        PerformanceService.award_badges()

        notes = Notification.objects.filter(user=self.bob, notification_type=NotificationType.BADGE)
        self.assertEqual(notes.count(), 4)
        monthly = notes.get(message__contains='(Monthly)')
        self.assertEqual(monthly.title, '👑 New Badge Earned!')
        self.assertEqual(monthly.message, 'You earned the Top Performer badge for Shipments (Monthly)!')

    def test_task_returns_count(self):
        self.estimate(self.bob)
        self.assertEqual(award_performance_badges(), {'awarded': 4})


class TestMilestones(PerformanceTestMixin, TestCase):

    def test_invoice_milestone_recorded_once(self):
        for _ in range(10):
            self.invoice(self.alice)

        created = PerformanceService.check_milestones()
        self.assertEqual(len(created), 1)
        milestone = created[0]
        self.assertEqual((milestone.employee, milestone.milestone_type, milestone.value), (self.alice, 'invoices', 10))
        self.assertIsNotNone(milestone.notified_at)

        self.assertEqual(PerformanceService.check_milestones(), [])
        self.assertEqual(EmployeeMilestone.objects.count(), 1)

    def test_milestone_notification(self):
        for _ in range(10):
            self.shipment(self.bob)
        PerformanceService.check_milestones()

        note = Notification.objects.get(user=self.bob)
        self.assertEqual(note.title, '📦 Milestone Achieved!')
        self.assertEqual(note.message, "Congratulations! You've reached 10 Shipments Handled.")
        self.assertEqual(note.notification_type, NotificationType.MILESTONE)

    def test_revenue_thresholds(self):
        self.invoice(self.alice, '0.00', amount_in_tzs=Decimal('5500000'), paid=True)
        PerformanceService.check_milestones([self.alice])
        values = set(
            EmployeeMilestone.objects.filter(milestone_type='revenue').values_list('value', flat=True)
        )
        self.assertEqual(values, {1_000_000, 5_000_000})

    def test_task(self):
        self.assertEqual(check_employee_milestones(), {'milestones': 0})

    def test_scheduled_once_a_day(self):
        schedule = settings.CELERY_BEAT_SCHEDULE['check-employee-milestones']['schedule']
        self.assertEqual(schedule.hour, {7})
        self.assertEqual(schedule.minute, {0})
        self.assertEqual(len(schedule.day_of_month), 31)


class TestPerformanceAPI(PerformanceTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def test_leaderboard(self):
        self.invoice(self.bob)
        self.client.force_authenticate(self.alice)
        response = self.client.get(reverse('leaderboard'), {'metric': 'invoices', 'period': 'week'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['metric'], 'invoices')
        self.assertEqual(response.data['results'][0]['name'], 'Bob')
        self.assertEqual(response.data['results'][0]['rank'], 1)

    def test_invalid_metric(self):
        self.client.force_authenticate(self.alice)
        response = self.client.get(reverse('leaderboard'), {'metric': 'smiles'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customers_forbidden(self):
        customer_user = User.objects.create_user(email='c@example.com', role=UserRole.CUSTOMER)
        self.client.force_authenticate(customer_user)
        response = self.client.get(reverse('leaderboard'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_award_requires_super_admin(self):
        self.client.force_authenticate(self.alice)
        response = self.client.post(reverse('badge-award'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse('badge-award'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_my_badges(self):
        self.invoice(self.alice)
        PerformanceService.award_badges()
        self.client.force_authenticate(self.alice)
        response = self.client.get(reverse('badge-mine'))
        self.assertEqual(response.data['total_badges'], 4)
        self.assertEqual(response.data['by_tier']['gold'], 4)
