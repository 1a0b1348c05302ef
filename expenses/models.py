"""
EXPENSES App - Company Expenses & Approval Workflow

Handles: Expense categories, expenses attached to shipments or regions,
and the pending -> approved / denied / needs_clarification workflow.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.conf import settings


DEFAULT_CATEGORIES = [
    ('shipping', 'Shipping Cost'),
    ('handling', 'Handling Fee'),
    ('customs', 'Customs & Duties'),
    ('insurance', 'Insurance'),
    ('packaging', 'Packaging'),
    ('storage', 'Storage'),
    ('fuel', 'Fuel Surcharge'),
    ('other', 'Other'),
]


class ExpenseCategory(models.Model):

    value = models.SlugField(max_length=50, unique=True)
    label = models.CharField(max_length=100)
    is_active = models.BooleanField(default=True)
    display_order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        verbose_name = "Expense category"
        verbose_name_plural = "Expense categories"
        ordering = ['display_order', 'label']

    def __str__(self):
        return self.label

    @classmethod
    def ensure_defaults(cls) -> int:
        created = 0
        for order, (value, label) in enumerate(DEFAULT_CATEGORIES):
            _, was_created = cls.objects.get_or_create(
                value=value,
                defaults={'label': label, 'display_order': order},
            )
            created += int(was_created)
        return created


class ExpenseStatus(models.TextChoices):
    PENDING = 'pending', 'Pending Approval'
    APPROVED = 'approved', 'Approved'
    DENIED = 'denied', 'Denied'
    NEEDS_CLARIFICATION = 'needs_clarification', 'Needs Clarification'


class Expense(models.Model):
    """
    Money spent by an employee, reviewed by an approver.

    `category` holds an ExpenseCategory value.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    category = models.CharField(max_length=50, verbose_name="Category")
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    description = models.TextField(blank=True)
    region = models.ForeignKey(
        'logistics.Region',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='expenses'
    )
    shipment = models.ForeignKey(
        'logistics.Shipment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='expenses'
    )
    receipt = models.FileField(upload_to='receipts/%Y/%m/', null=True, blank=True)

    status = models.CharField(
        max_length=20,
        choices=ExpenseStatus.choices,
        default=ExpenseStatus.PENDING,
        verbose_name="Status"
    )
    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='submitted_expenses'
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_expenses',
        verbose_name="Approver"
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reviewed_expenses'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    denial_reason = models.TextField(blank=True)
    clarification_notes = models.TextField(blank=True)
    paid_from_account = models.ForeignKey(
        'finance.BankAccount',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='expenses'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Expense"
        verbose_name_plural = "Expenses"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['category']),
        ]

    def __str__(self):
        return f"{self.category} {self.currency} {self.amount} ({self.status})"

    @property
    def amount_display(self) -> str:
        return f"{self.currency} {Decimal(self.amount):.2f}"
