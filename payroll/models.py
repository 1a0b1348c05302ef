"""
PAYROLL App - Salaries, Advances & Monthly Payroll Runs

Handles: Salary configuration per employee with statutory rates,
salary advances, payroll runs and their per-employee items.
"""

import uuid
from decimal import Decimal
from django.db import models, transaction
from django.conf import settings
from django.utils import timezone


def _default_currency():
    return settings.PAYROLL_DEFAULT_CURRENCY


class PayFrequency(models.TextChoices):
    MONTHLY = 'monthly', 'Monthly'


class EmployeeSalary(models.Model):
    """
    Salary configuration of an employee.

    Only one salary per employee is active; saving an active salary
    deactivates the others.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='salaries'
    )
    base_salary = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, default=_default_currency)
    pay_frequency = models.CharField(
        max_length=20,
        choices=PayFrequency.choices,
        default=PayFrequency.MONTHLY
    )

    # Statutory rates (percent of gross)
    paye_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'), verbose_name="PAYE %")
    nssf_employee_rate = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0.00'), verbose_name="NSSF employee %"
    )
    nssf_employer_rate = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0.00'), verbose_name="NSSF employer %"
    )

    # Fixed monthly amounts
    health_insurance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    other_allowances = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    effective_from = models.DateField(default=timezone.localdate)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Employee salary"
        verbose_name_plural = "Employee salaries"
        ordering = ['-effective_from', '-created_at']
        indexes = [
            models.Index(fields=['employee', 'is_active']),
        ]

    def __str__(self):
        return f"{self.employee.display_name}: {self.currency} {self.base_salary:,.2f}"

    def save(self, *args, **kwargs):
        with transaction.atomic():
            if self.is_active:
                EmployeeSalary.objects.filter(
                    employee_id=self.employee_id, is_active=True
                ).exclude(pk=self.pk).update(is_active=False)
            super().save(*args, **kwargs)


class AdvanceStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    DEDUCTED = 'deducted', 'Deducted'


class SalaryAdvance(models.Model):
    """Money paid ahead of payroll, recovered in full by the next run."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='salary_advances'
    )
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, default=_default_currency)
    advance_date = models.DateField(default=timezone.localdate)
    reason = models.TextField(blank=True)
    status = models.CharField(
        max_length=20,
        choices=AdvanceStatus.choices,
        default=AdvanceStatus.PENDING
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    deducted_in_payroll = models.ForeignKey(
        'PayrollRun',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='deducted_advances'
    )
    paid_from_account = models.ForeignKey(
        'finance.BankAccount',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='salary_advances'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Salary advance"
        verbose_name_plural = "Salary advances"
        ordering = ['-advance_date', '-created_at']

    def __str__(self):
        return f"{self.employee.display_name}: {self.currency} {self.amount} ({self.status})"


class PayrollStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    GENERATED = 'generated', 'Generated'
    APPROVED = 'approved', 'Approved'
    PAID = 'paid', 'Paid'


class PayrollRun(models.Model):
    """One month of payroll."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payroll_number = models.CharField(max_length=20, unique=True)
    period_month = models.PositiveSmallIntegerField()
    period_year = models.PositiveSmallIntegerField()
    run_date = models.DateField(default=timezone.localdate)
    status = models.CharField(
        max_length=20,
        choices=PayrollStatus.choices,
        default=PayrollStatus.DRAFT
    )
    currency = models.CharField(max_length=3, default=_default_currency)

    total_gross = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    total_deductions = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    total_net = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    total_employer_contributions = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))

    paid_from_account = models.ForeignKey(
        'finance.BankAccount',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payroll_runs'
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    paid_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payroll run"
        verbose_name_plural = "Payroll runs"
        ordering = ['-period_year', '-period_month']
        constraints = [
            models.UniqueConstraint(fields=['period_month', 'period_year'], name='unique_payroll_period'),
        ]

    def __str__(self):
        return f"{self.payroll_number} ({self.status})"

    @staticmethod
    def number_for(year: int, month: int) -> str:
        """Format: PAY-2025-03"""
        return f"PAY-{year}-{month:02d}"

    @property
    def total_payout(self) -> Decimal:
        """What leaves the bank when the run is paid."""
        return self.total_net + self.total_employer_contributions


class PayrollItemStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'


class PayrollItem(models.Model):
    """Pay breakdown of one employee in a run."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payroll_run = models.ForeignKey(PayrollRun, on_delete=models.CASCADE, related_name='items')
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payroll_items'
    )
    employee_name = models.CharField(max_length=150, blank=True)

    base_salary = models.DecimalField(max_digits=14, decimal_places=2)
    other_allowances = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    gross_salary = models.DecimalField(max_digits=14, decimal_places=2)
    paye_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    nssf_employee_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    nssf_employer_contribution = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    health_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    advance_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    other_deductions = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_deductions = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    net_salary = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, default=_default_currency)
    status = models.CharField(
        max_length=20,
        choices=PayrollItemStatus.choices,
        default=PayrollItemStatus.PENDING
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Payroll item"
        verbose_name_plural = "Payroll items"
        ordering = ['employee_name']
        constraints = [
            models.UniqueConstraint(fields=['payroll_run', 'employee'], name='unique_payroll_item_employee'),
        ]

    def __str__(self):
        return f"{self.employee_name}: {self.currency} {self.net_salary:,.2f}"
