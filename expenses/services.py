"""
EXPENSES App - Approval Workflow

pending ──approve──> approved
   │ └──deny──────> denied
   └─clarify─> needs_clarification ──resubmit──> pending
                      (approve / deny also allowed from here)
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from core.models import NotificationType
from core.services import NotificationService
from finance.models import BankAccountService, BankTransactionType
from finance.services import CurrencyService
from .models import Expense, ExpenseCategory, ExpenseStatus

logger = logging.getLogger(__name__)

REVIEWABLE = (ExpenseStatus.PENDING, ExpenseStatus.NEEDS_CLARIFICATION)


class WorkflowError(ValueError):
    """Raised on a transition the expense workflow does not allow."""


class ExpenseService:

    @staticmethod
    def _lock(expense: Expense) -> Expense:
        return Expense.objects.select_for_update().get(pk=expense.pk)

    @staticmethod
    def _notify_submitter(expense: Expense, title: str, message: str):
        if expense.submitted_by_id:
            NotificationService.notify(
                expense.submitted_by, title, message,
                notification_type=NotificationType.EXPENSE,
            )

    @staticmethod
    @transaction.atomic
    def submit(user, category: str, amount: Decimal, currency: str = 'USD',
               assigned_to=None, **fields) -> Expense:
        """
        Record a new expense as pending and notify the approver.

        Raises:
            WorkflowError: If the category is unknown/inactive or amount not positive
        """
        if not ExpenseCategory.objects.filter(value=category, is_active=True).exists():
            raise WorkflowError(f"Unknown expense category: {category}")
        if amount <= 0:
            raise WorkflowError("Expense amount must be positive")

        expense = Expense.objects.create(
            category=category,
            amount=amount,
            currency=currency,
            assigned_to=assigned_to,
            submitted_by=user,
            status=ExpenseStatus.PENDING,
            **fields,
        )

        if assigned_to is not None:
            NotificationService.notify(
                assigned_to,
                'Expense Awaiting Your Approval',
                f"A new expense of {expense.amount_display} has been submitted for your approval.",
                notification_type=NotificationType.EXPENSE,
            )

        logger.info(f"[EXPENSES] {expense.amount_display} submitted by {getattr(user, 'email', '?')}")
        return expense

    @classmethod
    @transaction.atomic
    def approve(cls, expense: Expense, user, bank_account=None) -> Expense:
        """
        Approve a pending (or clarified) expense.

        When a bank account is given the amount is paid out of it.

        Raises:
            WorkflowError: If the expense is not awaiting review
            InsufficientFundsError: If the account cannot cover the expense
        """
        expense = cls._lock(expense)
        if expense.status not in REVIEWABLE:
            raise WorkflowError(f"Cannot approve an expense that is {expense.status}")

        if bank_account is not None:
            BankAccountService.debit(
                bank_account,
                CurrencyService.convert(expense.amount, expense.currency, bank_account.currency),
                BankTransactionType.EXPENSE,
                description=f"Expense: {expense.category}",
                reference=str(expense.id),
                user=user,
            )
            expense.paid_from_account = bank_account

        expense.status = ExpenseStatus.APPROVED
        expense.approved_by = user
        expense.approved_at = timezone.now()
        expense.save()

        cls._notify_submitter(
            expense, 'Expense Approved',
            f"Your expense of {expense.amount_display} has been approved."
        )
        logger.info(f"[EXPENSES] {expense.id} approved by {user.email}")
        return expense

    @classmethod
    @transaction.atomic
    def deny(cls, expense: Expense, user, reason: str) -> Expense:
        """
        Raises:
            WorkflowError: If no reason is given or the expense is not awaiting review
        """
        reason = (reason or '').strip()
        if not reason:
            raise WorkflowError("A reason is required to deny an expense")

        expense = cls._lock(expense)
        if expense.status not in REVIEWABLE:
            raise WorkflowError(f"Cannot deny an expense that is {expense.status}")

        expense.status = ExpenseStatus.DENIED
        expense.approved_by = user
        expense.approved_at = timezone.now()
        expense.denial_reason = reason
        expense.save()

        cls._notify_submitter(
            expense, 'Expense Denied',
            f"Your expense of {expense.amount_display} has been denied. Reason: {reason}"
        )
        logger.info(f"[EXPENSES] {expense.id} denied by {user.email}")
        return expense

    @classmethod
    @transaction.atomic
    def request_clarification(cls, expense: Expense, user, notes: str) -> Expense:
        notes = (notes or '').strip()
        if not notes:
            raise WorkflowError("Clarification notes are required")

        expense = cls._lock(expense)
        if expense.status != ExpenseStatus.PENDING:
            raise WorkflowError(f"Cannot request clarification on an expense that is {expense.status}")

        expense.status = ExpenseStatus.NEEDS_CLARIFICATION
        expense.clarification_notes = notes
        expense.save()

        cls._notify_submitter(
            expense, 'Expense Needs Clarification',
            f"Your expense of {expense.amount_display} needs clarification: {notes}"
        )
        logger.info(f"[EXPENSES] Clarification requested on {expense.id} by {user.email}")
        return expense

    @classmethod
    @transaction.atomic
    def resubmit(cls, expense: Expense, description: Optional[str] = None) -> Expense:
        """Send a clarified expense back to the approval queue."""
        expense = cls._lock(expense)
        if expense.status != ExpenseStatus.NEEDS_CLARIFICATION:
            raise WorkflowError("Only expenses needing clarification can be resubmitted")

        expense.status = ExpenseStatus.PENDING
        expense.clarification_notes = ''
        if description is not None:
            expense.description = description
        expense.save()

        logger.info(f"[EXPENSES] {expense.id} resubmitted")
        return expense

    # ===========================================
    # QUERIES
    # ===========================================

    @staticmethod
    def pending_queue():
        """Expenses awaiting review, oldest first."""
        return Expense.objects.filter(status__in=REVIEWABLE).order_by('created_at')

    @staticmethod
    def stats(queryset=None) -> Dict:
        """
        Approved totals plus counts per status.

        Amounts are summed as stored, without currency conversion.
        """
        qs = Expense.objects.all() if queryset is None else queryset
        approved = qs.filter(status=ExpenseStatus.APPROVED)

        today = timezone.localdate()
        this_month = approved.filter(created_at__year=today.year, created_at__month=today.month)

        counts = qs.aggregate(
            total=Count('id'),
            pending=Count('id', filter=Q(status=ExpenseStatus.PENDING)),
            needs_clarification=Count('id', filter=Q(status=ExpenseStatus.NEEDS_CLARIFICATION)),
            approved=Count('id', filter=Q(status=ExpenseStatus.APPROVED)),
        )

        by_category = {value: Decimal('0.00') for value in ExpenseCategory.objects.values_list('value', flat=True)}
        for row in approved.values('category').annotate(total=Sum('amount')):
            by_category[row['category']] = row['total']

        return {
            'total': counts['total'],
            'total_amount': approved.aggregate(s=Sum('amount'))['s'] or Decimal('0.00'),
            'this_month': this_month.count(),
            'this_month_amount': this_month.aggregate(s=Sum('amount'))['s'] or Decimal('0.00'),
            'by_category': by_category,
            'pending_count': counts['pending'],
            'needs_clarification_count': counts['needs_clarification'],
            'approved_count': counts['approved'],
        }
