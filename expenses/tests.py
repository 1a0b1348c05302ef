"""
Cargo Back Office Expenses Tests
=================================

Tests for:
1. Submission and approver notification
2. Approve / deny / clarify / resubmit transitions
3. Approval queue and statistics
4. Expenses API
"""

from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from core.models import EmployeePermission, Notification, NotificationType, User, UserRole
from finance.models import BankAccount, InsufficientFundsError
from expenses.models import Expense, ExpenseCategory, ExpenseStatus
from expenses.services import ExpenseService, WorkflowError


class ExpenseTestMixin:

    def setUp(self):
        ExpenseCategory.ensure_defaults()
        self.submitter = User.objects.create_user(
            email='clerk@example.com', full_name='Clerk', role=UserRole.EMPLOYEE
        )
        self.approver = User.objects.create_user(
            email='boss@example.com', full_name='Boss', role=UserRole.SUPER_ADMIN
        )

    def submit(self, amount='120.00', category='fuel', **kwargs):
        return ExpenseService.submit(
            self.submitter, category, Decimal(amount),
            currency='USD', assigned_to=self.approver, **kwargs
        )


class TestExpenseSubmission(ExpenseTestMixin, TestCase):

    def test_seeded_categories(self):
        self.assertEqual(ExpenseCategory.objects.count(), 8)
        self.assertEqual(ExpenseCategory.ensure_defaults(), 0)

    def test_submit_is_pending_and_notifies_approver(self):
        expense = self.submit(description='Diesel for van')
        self.assertEqual(expense.status, ExpenseStatus.PENDING)
        self.assertEqual(expense.submitted_by, self.submitter)

        note = Notification.objects.get(user=self.approver)
        self.assertEqual(note.title, 'Expense Awaiting Your Approval')
        self.assertEqual(
            note.message,
            'A new expense of USD 120.00 has been submitted for your approval.'
        )
        self.assertEqual(note.notification_type, NotificationType.EXPENSE)

    def test_unknown_category_rejected(self):
        with self.assertRaises(WorkflowError):
            self.submit(category='bribes')

    def test_inactive_category_rejected(self):
        ExpenseCategory.objects.filter(value='fuel').update(is_active=False)
        with self.assertRaises(WorkflowError):
            self.submit()


class TestExpenseWorkflow(ExpenseTestMixin, TestCase):

    # ==========================================
    # Approve
    # ==========================================

    def test_approve_notifies_submitter(self):
        expense = ExpenseService.approve(self.submit(), self.approver)
        self.assertEqual(expense.status, ExpenseStatus.APPROVED)
        self.assertEqual(expense.approved_by, self.approver)
        self.assertIsNotNone(expense.approved_at)

        note = Notification.objects.get(user=self.submitter)
        self.assertEqual(note.title, 'Expense Approved')
        self.assertEqual(note.message, 'Your expense of USD 120.00 has been approved.')

    def test_approve_twice_rejected(self):
        expense = ExpenseService.approve(self.submit(), self.approver)
        with self.assertRaises(WorkflowError):
            ExpenseService.approve(expense, self.approver)

    def test_approve_with_bank_account_debits(self):
        account = BankAccount.objects.create(name='Petty cash', currency='USD', current_balance=Decimal('500'))
        expense = ExpenseService.approve(self.submit(), self.approver, bank_account=account)
        account.refresh_from_db()
        self.assertEqual(account.current_balance, Decimal('380.00'))
        self.assertEqual(expense.paid_from_account, account)

    def test_approve_insufficient_funds_keeps_pending(self):
        account = BankAccount.objects.create(name='Empty', currency='USD')
        expense = self.submit()
        with self.assertRaises(InsufficientFundsError):
            ExpenseService.approve(expense, self.approver, bank_account=account)
        expense.refresh_from_db()
        self.assertEqual(expense.status, ExpenseStatus.PENDING)

    # ==========================================
    # Deny
    # ==========================================

    def test_deny_requires_reason(self):
        expense = self.submit()
        with self.assertRaises(WorkflowError):
            ExpenseService.deny(expense, self.approver, '   ')

    def test_deny_records_reason(self):
        expense = ExpenseService.deny(self.submit(), self.approver, 'No receipt')
        self.assertEqual(expense.status, ExpenseStatus.DENIED)
        self.assertEqual(expense.denial_reason, 'No receipt')
        note = Notification.objects.get(user=self.submitter)
        self.assertEqual(note.message, 'Your expense of USD 120.00 has been denied. Reason: No receipt')

    def test_denied_cannot_be_approved(self):
        expense = ExpenseService.deny(self.submit(), self.approver, 'Duplicate')
        with self.assertRaises(WorkflowError):
            ExpenseService.approve(expense, self.approver)

    # ==========================================
    # Clarification loop
    # ==========================================

    def test_clarify_then_resubmit(self):
        expense = ExpenseService.request_clarification(self.submit(), self.approver, 'Which vehicle?')
        self.assertEqual(expense.status, ExpenseStatus.NEEDS_CLARIFICATION)
        self.assertEqual(expense.clarification_notes, 'Which vehicle?')
        note = Notification.objects.get(user=self.submitter)
        self.assertEqual(note.title, 'Expense Needs Clarification')

        expense = ExpenseService.resubmit(expense, description='Van T123')
        self.assertEqual(expense.status, ExpenseStatus.PENDING)
        self.assertEqual(expense.clarification_notes, '')
        self.assertEqual(expense.description, 'Van T123')

    def test_resubmit_keeps_description_when_omitted(self):
        expense = self.submit(description='Original')
        expense = ExpenseService.request_clarification(expense, self.approver, 'Details?')
        expense = ExpenseService.resubmit(expense)
        self.assertEqual(expense.description, 'Original')

    def test_clarified_expense_can_be_approved(self):
        expense = ExpenseService.request_clarification(self.submit(), self.approver, 'Why?')
        expense = ExpenseService.approve(expense, self.approver)
        self.assertEqual(expense.status, ExpenseStatus.APPROVED)

    def test_clarify_only_from_pending(self):
        expense = ExpenseService.request_clarification(self.submit(), self.approver, 'Why?')
        with self.assertRaises(WorkflowError):
            ExpenseService.request_clarification(expense, self.approver, 'Again?')

    def test_resubmit_pending_rejected(self):
        with self.assertRaises(WorkflowError):
            ExpenseService.resubmit(self.submit())


class TestExpenseQueries(ExpenseTestMixin, TestCase):

    def test_pending_queue_oldest_first(self):
        first = self.submit('10')
        second = self.submit('20')
        ExpenseService.request_clarification(second, self.approver, 'Receipt?')
        approved = ExpenseService.approve(self.submit('30'), self.approver)

        queue = list(ExpenseService.pending_queue())
        self.assertEqual([e.id for e in queue], [first.id, second.id])
        self.assertNotIn(approved, queue)

    def test_stats(self):
        ExpenseService.approve(self.submit('100', category='fuel'), self.approver)
        ExpenseService.approve(self.submit('50', category='customs'), self.approver)
        self.submit('70', category='fuel')
        ExpenseService.request_clarification(self.submit('5'), self.approver, '?')

        stats = ExpenseService.stats()
        self.assertEqual(stats['total'], 4)
        self.assertEqual(stats['total_amount'], Decimal('150.00'))
        self.assertEqual(stats['this_month'], 2)
        self.assertEqual(stats['this_month_amount'], Decimal('150.00'))
        self.assertEqual(stats['by_category']['fuel'], Decimal('100.00'))
        self.assertEqual(stats['by_category']['storage'], Decimal('0.00'))
        self.assertEqual(stats['pending_count'], 1)
        self.assertEqual(stats['needs_clarification_count'], 1)
        self.assertEqual(stats['approved_count'], 2)


class TestExpenseAPI(ExpenseTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        EmployeePermission.objects.create(employee=self.submitter, module='expenses', action='create')

    def test_submit_and_approve(self):
        self.client.force_authenticate(self.submitter)
        response = self.client.post(
            reverse('expense-list'),
            {'category': 'storage', 'amount': '45.50', 'currency': 'usd', 'assigned_to': str(self.approver.id)},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], ExpenseStatus.PENDING)
        url = reverse('expense-approve', args=[response.data['id']])

        forbidden = self.client.post(url, {}, format='json')
        self.assertEqual(forbidden.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.approver)
        approved = self.client.post(url, {}, format='json')
        self.assertEqual(approved.status_code, status.HTTP_200_OK)
        self.assertEqual(approved.data['status'], ExpenseStatus.APPROVED)

    def test_illegal_transition_is_400(self):
        expense = ExpenseService.approve(self.submit(), self.approver)
        self.client.force_authenticate(self.approver)
        response = self.client.post(
            reverse('expense-deny', args=[expense.id]), {'reason': 'Late'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_filter_by_status(self):
        self.submit()
        ExpenseService.approve(self.submit(), self.approver)
        self.client.force_authenticate(self.approver)
        response = self.client.get(reverse('expense-list'), {'status': 'approved'})
        self.assertEqual(response.data['count'], 1)

    def test_reviewed_expense_is_locked(self):
        account = BankAccount.objects.create(name='Ops', currency='USD', current_balance=Decimal('500'))
        expense = ExpenseService.approve(self.submit('120.00'), self.approver, bank_account=account)
        self.client.force_authenticate(self.approver)
        url = reverse('expense-detail', args=[expense.id])

        response = self.client.patch(url, {'amount': '1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_400_BAD_REQUEST)
        expense.refresh_from_db()
        self.assertEqual(expense.amount, Decimal('120.00'))

    def test_pending_expense_editable(self):
        expense = self.submit('120.00')
        self.client.force_authenticate(self.approver)
        response = self.client.patch(
            reverse('expense-detail', args=[expense.id]), {'amount': '99.00'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        expense.refresh_from_db()
        self.assertEqual(expense.amount, Decimal('99.00'))
