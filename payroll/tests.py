"""
Cargo Back Office Payroll Tests
================================

Tests for:
1. Pay calculation (gross, statutory deductions, advances, employer share)
2. Salary activation
3. Advances (approval, bank debit, single deduction)
4. Payroll run lifecycle and bank balance check
5. Monthly draft task
"""

from decimal import Decimal
from types import SimpleNamespace

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from core.models import Notification, NotificationType, User, UserRole
from finance.models import BankAccount, BankTransaction, ExchangeRate, InsufficientFundsError
from payroll.models import (
    EmployeeSalary, SalaryAdvance, AdvanceStatus,
    PayrollRun, PayrollStatus, PayrollItemStatus,
)
from payroll.services import PayrollService, PayrollStateError, compute_payroll_item
from payroll.tasks import create_monthly_payroll_draft


def salary(**overrides):
    values = {
        'base_salary': Decimal('1000000'),
        'other_allowances': Decimal('200000'),
        'paye_rate': Decimal('10'),
        'nssf_employee_rate': Decimal('10'),
        'nssf_employer_rate': Decimal('10'),
        'health_insurance': Decimal('50000'),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestComputePayrollItem(TestCase):
    """Pure pay calculation."""

    def test_full_breakdown(self):
        item = compute_payroll_item(salary(), Decimal('100000'))
        self.assertEqual(item['gross_salary'], Decimal('1200000.00'))
        self.assertEqual(item['paye_deduction'], Decimal('120000.00'))
        self.assertEqual(item['nssf_employee_deduction'], Decimal('120000.00'))
        self.assertEqual(item['health_deduction'], Decimal('50000.00'))
        self.assertEqual(item['advance_deduction'], Decimal('100000.00'))
        self.assertEqual(item['total_deductions'], Decimal('390000.00'))
        self.assertEqual(item['net_salary'], Decimal('810000.00'))

    def test_employer_contribution_not_deducted(self):
        """NSSF employer share is reported but leaves net pay alone."""
        item = compute_payroll_item(salary(nssf_employer_rate=Decimal('20')))
        self.assertEqual(item['nssf_employer_contribution'], Decimal('240000.00'))
        self.assertEqual(item['net_salary'], Decimal('910000.00'))

    def test_net_can_be_negative(self):
        item = compute_payroll_item(
            salary(base_salary=Decimal('100'), other_allowances=0, paye_rate=0,
                   nssf_employee_rate=0, health_insurance=0),
            Decimal('500'),
        )
        self.assertEqual(item['net_salary'], Decimal('-400.00'))

    def test_missing_rates_count_as_zero(self):
        item = compute_payroll_item(salary(paye_rate=None, nssf_employee_rate=None, health_insurance=None))
        self.assertEqual(item['total_deductions'], Decimal('0.00'))
        self.assertEqual(item['net_salary'], item['gross_salary'])


class PayrollTestMixin:

    def setUp(self):
        self.admin = User.objects.create_user(
            email='hr@example.com', full_name='HR Admin', role=UserRole.SUPER_ADMIN
        )
        self.alice = User.objects.create_user(email='alice@example.com', full_name='Alice', role=UserRole.EMPLOYEE)
        self.bob = User.objects.create_user(email='bob@example.com', full_name='Bob', role=UserRole.EMPLOYEE)
        self.carol = User.objects.create_user(email='carol@example.com', full_name='Carol', role=UserRole.EMPLOYEE)

        EmployeeSalary.objects.create(
            employee=self.alice,
            base_salary=Decimal('1000000'),
            other_allowances=Decimal('200000'),
            paye_rate=Decimal('10'),
            nssf_employee_rate=Decimal('10'),
            nssf_employer_rate=Decimal('10'),
            health_insurance=Decimal('50000'),
        )
        EmployeeSalary.objects.create(employee=self.bob, base_salary=Decimal('500000'))

        self.advance = PayrollService.request_advance(self.alice, Decimal('100000'), reason='School fees')
        PayrollService.approve_advance(self.advance, self.admin)


class TestSalaries(PayrollTestMixin, TestCase):

    def test_new_salary_deactivates_previous(self):
        old = EmployeeSalary.objects.get(employee=self.bob)
        new = EmployeeSalary.objects.create(employee=self.bob, base_salary=Decimal('600000'))
        old.refresh_from_db()
        self.assertFalse(old.is_active)
        self.assertTrue(new.is_active)
        self.assertEqual(EmployeeSalary.objects.filter(employee=self.bob, is_active=True).count(), 1)


class TestAdvances(PayrollTestMixin, TestCase):

    def test_approve_with_bank_account_debits(self):
        account = BankAccount.objects.create(name='Payroll', currency='TZS', current_balance=Decimal('200000'))
        advance = PayrollService.request_advance(self.bob, Decimal('75000'))
        advance = PayrollService.approve_advance(advance, self.admin, bank_account=account)
        account.refresh_from_db()
        self.assertEqual(advance.status, AdvanceStatus.APPROVED)
        self.assertEqual(advance.paid_from_account, account)
        self.assertEqual(account.current_balance, Decimal('125000.00'))

    def test_approve_twice_rejected(self):
        with self.assertRaises(ValueError):
            PayrollService.approve_advance(self.advance, self.admin)

    def test_reject_pending(self):
        advance = PayrollService.request_advance(self.bob, Decimal('10000'))
        advance = PayrollService.reject_advance(advance, self.admin)
        self.assertEqual(advance.status, AdvanceStatus.REJECTED)


class TestPayrollRun(PayrollTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.run = PayrollService.create_run(2025, 3, user=self.admin)

    # ==========================================
    # Draft & generation
    # ==========================================

    def test_number_and_uniqueness(self):
        self.assertEqual(self.run.payroll_number, 'PAY-2025-03')
        self.assertEqual(self.run.status, PayrollStatus.DRAFT)
        with self.assertRaises(PayrollStateError):
            PayrollService.create_run(2025, 3)

    def test_invalid_month(self):
        with self.assertRaises(PayrollStateError):
            PayrollService.create_run(2025, 13)

    def test_generate_skips_employees_without_salary(self):
        run = PayrollService.generate_items(self.run)
        employees = set(run.items.values_list('employee_id', flat=True))
        self.assertEqual(employees, {self.alice.id, self.bob.id})
        self.assertEqual(run.status, PayrollStatus.GENERATED)

    def test_generate_totals(self):
        run = PayrollService.generate_items(self.run)
        self.assertEqual(run.total_gross, Decimal('1700000.00'))
        self.assertEqual(run.total_deductions, Decimal('390000.00'))
        self.assertEqual(run.total_net, Decimal('1310000.00'))
        self.assertEqual(run.total_employer_contributions, Decimal('120000.00'))

        alice = run.items.get(employee=self.alice)
        self.assertEqual(alice.advance_deduction, Decimal('100000.00'))
        self.assertEqual(alice.net_salary, Decimal('810000.00'))
        self.assertEqual(alice.employee_name, 'Alice')

    def test_advance_deducted_once(self):
        PayrollService.generate_items(self.run)
        self.advance.refresh_from_db()
        self.assertEqual(self.advance.status, AdvanceStatus.DEDUCTED)
        self.assertEqual(self.advance.deducted_in_payroll, self.run)

        next_run = PayrollService.generate_items(PayrollService.create_run(2025, 4))
        self.assertEqual(next_run.items.get(employee=self.alice).advance_deduction, Decimal('0.00'))

    def test_pending_advance_not_deducted(self):
        PayrollService.request_advance(self.bob, Decimal('30000'))
        run = PayrollService.generate_items(self.run)
        self.assertEqual(run.items.get(employee=self.bob).advance_deduction, Decimal('0.00'))

    def test_generate_only_from_draft(self):
        PayrollService.generate_items(self.run)
        with self.assertRaises(PayrollStateError):
            PayrollService.generate_items(self.run)

    # ==========================================
    # Approval & payment
    # ==========================================

    def test_approve_requires_generated(self):
        with self.assertRaises(PayrollStateError):
            PayrollService.approve(self.run)
        run = PayrollService.approve(PayrollService.generate_items(self.run))
        self.assertEqual(run.status, PayrollStatus.APPROVED)

    def test_insufficient_balance_blocks_payment(self):
        """Net pay plus employer share must be covered."""
        account = BankAccount.objects.create(name='Low', currency='TZS', current_balance=Decimal('1429999.99'))
        run = PayrollService.generate_items(self.run)
        with self.assertRaises(InsufficientFundsError):
            PayrollService.process(run, account, user=self.admin)

        run.refresh_from_db()
        account.refresh_from_db()
        self.assertEqual(run.status, PayrollStatus.GENERATED)
        self.assertEqual(account.current_balance, Decimal('1429999.99'))

    def test_process_pays_run(self):
        account = BankAccount.objects.create(name='Main', currency='TZS', current_balance=Decimal('2000000'))
        run = PayrollService.approve(PayrollService.generate_items(self.run))
        run = PayrollService.process(run, account, user=self.admin)
        account.refresh_from_db()

        self.assertEqual(run.status, PayrollStatus.PAID)
        self.assertEqual(run.paid_from_account, account)
        self.assertEqual(run.paid_by, self.admin)
        self.assertIsNotNone(run.paid_at)
        self.assertEqual(account.current_balance, Decimal('570000.00'))
        self.assertFalse(run.items.exclude(status=PayrollItemStatus.PAID).exists())
        self.assertTrue(BankTransaction.objects.filter(reference='PAY-2025-03').exists())
        self.assertEqual(
            Notification.objects.filter(notification_type=NotificationType.PAYROLL).count(), 2
        )

    def test_process_draft_rejected(self):
        account = BankAccount.objects.create(name='Main', currency='TZS', current_balance=Decimal('2000000'))
        with self.assertRaises(PayrollStateError):
            PayrollService.process(self.run, account)

    # ==========================================
    # Currencies
    # ==========================================

    def test_foreign_salary_converted_into_run_totals(self):
        ExchangeRate.objects.create(currency_code='USD', rate_to_tzs=Decimal('2500'))
        EmployeeSalary.objects.create(employee=self.carol, base_salary=Decimal('1000'), currency='USD')

        run = PayrollService.generate_items(self.run)
        carol = run.items.get(employee=self.carol)
        self.assertEqual(carol.currency, 'USD')
        self.assertEqual(carol.net_salary, Decimal('1000.00'))
        self.assertEqual(run.total_gross, Decimal('4200000.00'))
        self.assertEqual(run.total_net, Decimal('3810000.00'))

        account = BankAccount.objects.create(name='Main', currency='TZS', current_balance=Decimal('10000000'))
        PayrollService.process(run, account, user=self.admin)
        account.refresh_from_db()
        # 3,810,000 net + 120,000 employer share
        self.assertEqual(account.current_balance, Decimal('6070000.00'))

    def test_foreign_advance_deducted_in_salary_currency(self):
        ExchangeRate.objects.create(currency_code='USD', rate_to_tzs=Decimal('2500'))
        advance = PayrollService.request_advance(self.bob, Decimal('40'), currency='USD')
        PayrollService.approve_advance(advance, self.admin)

        run = PayrollService.generate_items(self.run)
        bob = run.items.get(employee=self.bob)
        self.assertEqual(bob.advance_deduction, Decimal('100000.00'))
        self.assertEqual(bob.net_salary, Decimal('400000.00'))


class TestPayrollTask(TestCase):

    def test_creates_draft_once(self):
        result = create_monthly_payroll_draft(year=2025, month=6)
        self.assertTrue(result['created'])
        self.assertEqual(result['payroll_number'], 'PAY-2025-06')

        again = create_monthly_payroll_draft(year=2025, month=6)
        self.assertFalse(again['created'])
        self.assertEqual(PayrollRun.objects.count(), 1)

    def test_defaults_to_previous_month(self):
        result = create_monthly_payroll_draft()
        self.assertTrue(result['created'])
        self.assertEqual(PayrollRun.objects.get().status, PayrollStatus.DRAFT)


class TestPayrollAPI(PayrollTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(self.admin)

    def test_full_cycle(self):
        created = self.client.post(
            reverse('payroll-run-list'), {'period_year': 2025, 'period_month': 7}, format='json'
        )
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        run_id = created.data['id']

        generated = self.client.post(reverse('payroll-run-generate', args=[run_id]))
        self.assertEqual(generated.data['status'], PayrollStatus.GENERATED)
        self.assertEqual(generated.data['item_count'], 2)

        account = BankAccount.objects.create(name='Main', currency='TZS', current_balance=Decimal('100'))
        refused = self.client.post(
            reverse('payroll-run-process', args=[run_id]), {'bank_account': str(account.id)}, format='json'
        )
        self.assertEqual(refused.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Insufficient balance', refused.data['error'])

    def test_approved_advance_is_locked(self):
        account = BankAccount.objects.create(name='Payroll', currency='TZS', current_balance=Decimal('200000'))
        advance = PayrollService.request_advance(self.bob, Decimal('100000'))
        PayrollService.approve_advance(advance, self.admin, bank_account=account)

        url = reverse('salary-advance-detail', args=[advance.id])
        response = self.client.patch(url, {'amount': '1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_400_BAD_REQUEST)

        run = PayrollService.generate_items(PayrollService.create_run(2025, 8))
        self.assertEqual(run.items.get(employee=self.bob).advance_deduction, Decimal('100000.00'))

    def test_pending_advance_editable(self):
        advance = PayrollService.request_advance(self.bob, Decimal('30000'))
        response = self.client.patch(
            reverse('salary-advance-detail', args=[advance.id]), {'amount': '25000.00'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        advance.refresh_from_db()
        self.assertEqual(advance.amount, Decimal('25000.00'))

    def test_employee_cannot_view_payroll(self):
        self.client.force_authenticate(self.alice)
        response = self.client.get(reverse('payroll-run-list'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
