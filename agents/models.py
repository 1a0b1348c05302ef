"""
AGENTS App - Overseas Agent Configuration

An agent is a User with the AGENT role who collects cargo in one or more
origin regions. The profile holds what the back office needs to bill them;
settlements square the money the agent collects or is owed.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.conf import settings

from finance.models import get_next_document_number


class AgentProfile(models.Model):
    """Billing and region configuration of one agent."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='agent_profile',
        verbose_name="Agent"
    )
    regions = models.ManyToManyField(
        'logistics.Region',
        blank=True,
        related_name='agents',
        verbose_name="Assigned regions"
    )
    company_name = models.CharField(max_length=150, blank=True)
    can_have_consolidated_cargo = models.BooleanField(
        default=False,
        verbose_name="Consolidated cargo",
        help_text="Agent may ship cargo that is billed to the agent instead of the customer"
    )
    billing_currency = models.CharField(max_length=3, default='USD')
    rate_per_kg = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Rate per kg"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Agent profile"
        verbose_name_plural = "Agent profiles"
        ordering = ['user__full_name']

    def __str__(self):
        return f"{self.user.display_name} ({self.billing_currency} {self.rate_per_kg}/kg)"


# ===========================================
# SETTLEMENTS
# ===========================================

class SettlementType(models.TextChoices):
    PAYMENT_TO_AGENT = 'payment_to_agent', 'Payment to Agent'
    COLLECTION_FROM_AGENT = 'collection_from_agent', 'Collection from Agent'


class SettlementStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    PAID = 'paid', 'Paid'
    CANCELLED = 'cancelled', 'Cancelled'


class Settlement(models.Model):
    """
    Money squared with an agent over a period.

    A collection settlement gathers the paid invoices of cargo whose
    customers paid the agent; a payment settlement is money owed to the
    agent. Lifecycle: pending -> approved -> paid, or cancelled before paid.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    settlement_number = models.CharField(max_length=20, unique=True)
    agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='settlements'
    )
    settlement_type = models.CharField(max_length=30, choices=SettlementType.choices)
    period_start = models.DateField(null=True, blank=True)
    period_end = models.DateField(null=True, blank=True)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='USD')
    amount_in_tzs = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=SettlementStatus.choices,
        default=SettlementStatus.PENDING
    )
    notes = models.TextField(blank=True)

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_reference = models.CharField(max_length=100, blank=True)
    bank_account = models.ForeignKey(
        'finance.BankAccount',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='settlements'
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
        verbose_name = "Settlement"
        verbose_name_plural = "Settlements"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['agent', 'status']),
        ]

    def __str__(self):
        return f"{self.settlement_number} - {self.currency} {self.total_amount} ({self.status})"

    @classmethod
    def get_next_settlement_number(cls) -> str:
        return get_next_document_number(cls, 'settlement_number', 'SET')


class SettlementItem(models.Model):
    """An invoice included in a settlement, at its value in the settlement currency."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    settlement = models.ForeignKey(Settlement, on_delete=models.CASCADE, related_name='items')
    invoice = models.ForeignKey(
        'finance.Invoice',
        on_delete=models.PROTECT,
        related_name='settlement_items'
    )
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Settlement item"
        verbose_name_plural = "Settlement items"
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['settlement', 'invoice'], name='unique_settlement_invoice'),
        ]

    def __str__(self):
        return f"{self.settlement.settlement_number}: {self.invoice.invoice_number}"
