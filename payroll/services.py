"""
PAYROLL App - Payroll Services

Monthly pay calculation:
    gross      = base salary + allowances
    deductions = PAYE% x gross + NSSF employee% x gross
                 + health insurance + approved advances
    net        = gross - deductions          (may be negative)
    employer   = NSSF employer% x gross      (paid on top, not deducted)

Run lifecycle: draft -> generated -> approved -> paid
"""

import logging
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

from django.db import transaction
from django.utils import timezone

from core.models import NotificationType
from core.services import NotificationService
from finance.models import BankAccountService, BankTransactionType
from finance.services import CurrencyService
from .models import (
    EmployeeSalary, SalaryAdvance, AdvanceStatus,
    PayrollRun, PayrollItem, PayrollStatus, PayrollItemStatus,
)

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
HUNDRED = Decimal('100')

RUN_TOTAL_FIELDS = [
    ('gross', 'gross_salary'),
    ('deductions', 'total_deductions'),
    ('net', 'net_salary'),
    ('employer', 'nssf_employer_contribution'),
]


class PayrollStateError(ValueError):
    """Raised when a payroll run is not in the state an operation needs."""


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_payroll_item(salary, advance_total=Decimal('0')) -> Dict[str, Decimal]:
    """
    Pay breakdown for one salary.

    Args:
        salary: Object with base_salary, other_allowances, paye_rate,
            nssf_employee_rate, nssf_employer_rate and health_insurance
        advance_total: Approved advances recovered this period

    Returns:
        Dict of the PayrollItem money fields
    """
    base = _money(salary.base_salary)
    allowances = _money(salary.other_allowances)
    gross = base + allowances

    paye = _money(gross * Decimal(str(salary.paye_rate or 0)) / HUNDRED)
    nssf_employee = _money(gross * Decimal(str(salary.nssf_employee_rate or 0)) / HUNDRED)
    nssf_employer = _money(gross * Decimal(str(salary.nssf_employer_rate or 0)) / HUNDRED)
    health = _money(salary.health_insurance)
    advance = _money(advance_total)

    total_deductions = paye + nssf_employee + health + advance

    return {
        'base_salary': base,
        'other_allowances': allowances,
        'gross_salary': gross,
        'paye_deduction': paye,
        'nssf_employee_deduction': nssf_employee,
        'nssf_employer_contribution': nssf_employer,
        'health_deduction': health,
        'advance_deduction': advance,
        'other_deductions': Decimal('0.00'),
        'total_deductions': total_deductions,
        'net_salary': gross - total_deductions,
    }


class PayrollService:

    # ===========================================
    # RUNS
    # ===========================================

    @staticmethod
    def create_run(year: int, month: int, user=None, notes: str = '') -> PayrollRun:
        """
        Open a draft run for a period.

        Raises:
            PayrollStateError: If the month is invalid or a run already exists
        """
        if not 1 <= month <= 12:
            raise PayrollStateError(f"Invalid month: {month}")
        if PayrollRun.objects.filter(period_year=year, period_month=month).exists():
            raise PayrollStateError(f"A payroll run for {year}-{month:02d} already exists")

        run = PayrollRun.objects.create(
            payroll_number=PayrollRun.number_for(year, month),
            period_year=year,
            period_month=month,
            created_by=user,
            notes=notes,
        )
        logger.info(f"[PAYROLL] Draft {run.payroll_number} created")
        return run

    @staticmethod
    @transaction.atomic
    def generate_items(run: PayrollRun) -> PayrollRun:
        """
        Compute one item per employee with an active salary.

        Employees without an active salary get no item. Approved advances not
        yet recovered are deducted in full, in the salary currency, and marked
        deducted. Items are stated in the salary currency; run totals are
        converted into the run currency.

        Raises:
            PayrollStateError: If the run is not a draft
        """
        run = PayrollRun.objects.select_for_update().get(pk=run.pk)
        if run.status != PayrollStatus.DRAFT:
            raise PayrollStateError(f"Items can only be generated for a draft run ({run.status})")

        advances = defaultdict(list)
        for advance in SalaryAdvance.objects.select_for_update().filter(
            status=AdvanceStatus.APPROVED, deducted_in_payroll__isnull=True
        ):
            advances[advance.employee_id].append(advance)

        items = []
        totals = defaultdict(lambda: Decimal('0.00'))
        rates = CurrencyService.rates_map()
        salaries = EmployeeSalary.objects.filter(is_active=True).select_related('employee')

        for salary in salaries:
            employee_advances = advances.get(salary.employee_id, [])
            advance_total = sum(
                (CurrencyService.convert(a.amount, a.currency, salary.currency, rates)
                 for a in employee_advances),
                Decimal('0'),
            )
            breakdown = compute_payroll_item(salary, advance_total)

            items.append(PayrollItem(
                payroll_run=run,
                employee=salary.employee,
                employee_name=salary.employee.display_name,
                currency=salary.currency,
                **breakdown,
            ))

            # Items keep the salary currency, run totals are in the run currency
            for total, field in RUN_TOTAL_FIELDS:
                totals[total] += CurrencyService.convert(
                    breakdown[field], salary.currency, run.currency, rates
                )

            for advance in employee_advances:
                advance.status = AdvanceStatus.DEDUCTED
                advance.deducted_in_payroll = run
                advance.save(update_fields=['status', 'deducted_in_payroll', 'updated_at'])

        PayrollItem.objects.bulk_create(items)

        run.total_gross = totals['gross']
        run.total_deductions = totals['deductions']
        run.total_net = totals['net']
        run.total_employer_contributions = totals['employer']
        run.status = PayrollStatus.GENERATED
        run.save()

        logger.info(
            f"[PAYROLL] {run.payroll_number} generated: {len(items)} item(s), "
            f"net {run.total_net}, employer {run.total_employer_contributions}"
        )
        return run

    @staticmethod
    @transaction.atomic
    def approve(run: PayrollRun, user=None) -> PayrollRun:
        run = PayrollRun.objects.select_for_update().get(pk=run.pk)
        if run.status != PayrollStatus.GENERATED:
            raise PayrollStateError(f"Only generated runs can be approved ({run.status})")

        run.status = PayrollStatus.APPROVED
        run.save(update_fields=['status', 'updated_at'])
        logger.info(f"[PAYROLL] {run.payroll_number} approved by {getattr(user, 'email', 'system')}")
        return run

    @staticmethod
    @transaction.atomic
    def process(run: PayrollRun, bank_account, user=None) -> PayrollRun:
        """
        Pay a run out of a bank account.

        The account is debited net pay plus employer contributions, in the
        account's currency. Items and run are marked paid.

        Raises:
            PayrollStateError: If the run is not generated or approved
            InsufficientFundsError: If the account balance is too low
        """
        run = PayrollRun.objects.select_for_update().get(pk=run.pk)
        if run.status not in (PayrollStatus.GENERATED, PayrollStatus.APPROVED):
            raise PayrollStateError(f"Run {run.payroll_number} cannot be paid ({run.status})")

        payout = CurrencyService.convert(run.total_payout, run.currency, bank_account.currency)
        if payout > 0:
            BankAccountService.debit(
                bank_account,
                payout,
                BankTransactionType.PAYROLL,
                description=f"Payroll {run.payroll_number}",
                reference=run.payroll_number,
                user=user,
            )

        run.items.update(status=PayrollItemStatus.PAID)
        run.status = PayrollStatus.PAID
        run.paid_from_account = bank_account
        run.paid_at = timezone.now()
        run.paid_by = user
        run.save()

        for item in run.items.select_related('employee'):
            NotificationService.notify(
                item.employee,
                'Salary Paid',
                f"Your salary for {run.period_year}-{run.period_month:02d} "
                f"({item.currency} {item.net_salary:,.2f}) has been paid.",
                notification_type=NotificationType.PAYROLL,
            )

        logger.info(f"[PAYROLL] {run.payroll_number} paid from {bank_account.name}: {payout}")
        return run

    # ===========================================
    # ADVANCES
    # ===========================================

    @staticmethod
    def request_advance(employee, amount: Decimal, reason: str = '', user=None, **fields) -> SalaryAdvance:
        if amount <= 0:
            raise ValueError("Advance amount must be positive")
        return SalaryAdvance.objects.create(
            employee=employee,
            amount=amount,
            reason=reason,
            created_by=user,
            **fields,
        )

    @staticmethod
    @transaction.atomic
    def approve_advance(advance: SalaryAdvance, user, bank_account=None) -> SalaryAdvance:
        """
        Approve a pending advance, paying it from a bank account when given.

        Raises:
            ValueError: If the advance is not pending
            InsufficientFundsError: If the account cannot cover the advance
        """
        advance = SalaryAdvance.objects.select_for_update().get(pk=advance.pk)
        if advance.status != AdvanceStatus.PENDING:
            raise ValueError(f"Only pending advances can be approved ({advance.status})")

        if bank_account is not None:
            BankAccountService.debit(
                bank_account,
                CurrencyService.convert(advance.amount, advance.currency, bank_account.currency),
                BankTransactionType.SALARY_ADVANCE,
                description=f"Salary advance: {advance.employee.display_name}",
                reference=str(advance.id),
                user=user,
            )
            advance.paid_from_account = bank_account

        advance.status = AdvanceStatus.APPROVED
        advance.approved_by = user
        advance.approved_at = timezone.now()
        advance.save()

        logger.info(f"[PAYROLL] Advance {advance.amount} for {advance.employee.email} approved")
        return advance

    @staticmethod
    def reject_advance(advance: SalaryAdvance, user) -> SalaryAdvance:
        if advance.status != AdvanceStatus.PENDING:
            raise ValueError(f"Only pending advances can be rejected ({advance.status})")
        advance.status = AdvanceStatus.REJECTED
        advance.approved_by = user
        advance.approved_at = timezone.now()
        advance.save()
        return advance
