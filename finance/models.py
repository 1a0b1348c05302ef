"""
FINANCE App - Billing, Currency & Bank Accounts

Handles: Exchange rates to TZS, company bank accounts and their
transaction ledger, estimates, invoices with line items, and payments.
"""

import uuid
from decimal import Decimal
from django.db import models, transaction
from django.conf import settings
from django.utils import timezone


# ===========================================
# EXCHANGE RATES
# ===========================================

DEFAULT_RATES_TO_TZS = {
    'USD': Decimal('2500'),
    'GBP': Decimal('3150'),
    'EUR': Decimal('2700'),
    'AED': Decimal('680'),
    'JPY': Decimal('17'),
    'CNY': Decimal('345'),
    'INR': Decimal('30'),
    'TZS': Decimal('1'),
}

CURRENCY_NAMES = {
    'USD': 'US Dollar',
    'GBP': 'British Pound',
    'EUR': 'Euro',
    'AED': 'UAE Dirham',
    'JPY': 'Japanese Yen',
    'CNY': 'Chinese Yuan',
    'INR': 'Indian Rupee',
    'TZS': 'Tanzanian Shilling',
}


class ExchangeRate(models.Model):
    """How many TZS one unit of a currency is worth."""

    currency_code = models.CharField(max_length=3, unique=True, verbose_name="Currency")
    currency_name = models.CharField(max_length=50, blank=True)
    rate_to_tzs = models.DecimalField(max_digits=14, decimal_places=4, verbose_name="Rate to TZS")
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Exchange rate"
        verbose_name_plural = "Exchange rates"
        ordering = ['currency_code']

    def __str__(self):
        return f"1 {self.currency_code} = {self.rate_to_tzs} TZS"

    @classmethod
    def ensure_defaults(cls) -> int:
        created = 0
        for code, rate in DEFAULT_RATES_TO_TZS.items():
            _, was_created = cls.objects.get_or_create(
                currency_code=code,
                defaults={'rate_to_tzs': rate, 'currency_name': CURRENCY_NAMES.get(code, '')},
            )
            created += int(was_created)
        return created


# ===========================================
# BANK ACCOUNTS & LEDGER
# ===========================================

class BankAccount(models.Model):
    """Company bank or mobile money account."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, verbose_name="Account name")
    bank_name = models.CharField(max_length=100, blank=True)
    account_number = models.CharField(max_length=50, blank=True)
    currency = models.CharField(max_length=3, default='TZS')
    current_balance = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Current balance"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Bank account"
        verbose_name_plural = "Bank accounts"
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.currency} {self.current_balance:,.2f})"


class BankTransactionType(models.TextChoices):
    # Credits (+)
    INVOICE_PAYMENT = 'INVOICE_PAYMENT', 'Invoice payment'
    DEPOSIT = 'DEPOSIT', 'Deposit'
    AGENT_COLLECTION = 'AGENT_COLLECTION', 'Agent collection'

    # Debits (-)
    PAYROLL = 'PAYROLL', 'Payroll'
    SALARY_ADVANCE = 'SALARY_ADVANCE', 'Salary advance'
    EXPENSE = 'EXPENSE', 'Expense'
    WITHDRAWAL = 'WITHDRAWAL', 'Withdrawal'
    AGENT_PAYMENT = 'AGENT_PAYMENT', 'Agent payment'


class BankTransaction(models.Model):
    """
    Ledger row for every bank balance movement.

    Amount is positive for credits and negative for debits.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(
        BankAccount,
        on_delete=models.PROTECT,
        related_name='transactions'
    )
    transaction_type = models.CharField(max_length=20, choices=BankTransactionType.choices)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    balance_before = models.DecimalField(max_digits=14, decimal_places=2)
    balance_after = models.DecimalField(max_digits=14, decimal_places=2)
    description = models.CharField(max_length=255, blank=True)
    reference = models.CharField(max_length=100, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Bank transaction"
        verbose_name_plural = "Bank transactions"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['account', 'created_at']),
        ]

    def __str__(self):
        sign = '+' if self.amount >= 0 else ''
        return f"{self.account.name} | {sign}{self.amount} | {self.transaction_type}"


class InsufficientFundsError(ValueError):
    """Raised when a bank account cannot cover a debit."""


class BankAccountService:
    """
    Balance movements on company accounts.

    All operations lock the account row and write a ledger entry.
    """

    @staticmethod
    @transaction.atomic
    def credit(account: BankAccount, amount: Decimal, transaction_type: str,
               description: str = "", reference: str = "", user=None) -> BankTransaction:
        """
        Add money to an account.

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        account = BankAccount.objects.select_for_update().get(pk=account.pk)
        balance_before = account.current_balance
        account.current_balance += amount
        account.save(update_fields=['current_balance'])

        return BankTransaction.objects.create(
            account=account,
            transaction_type=transaction_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=account.current_balance,
            description=description,
            reference=reference,
            created_by=user,
        )

    @staticmethod
    @transaction.atomic
    def debit(account: BankAccount, amount: Decimal, transaction_type: str,
              description: str = "", reference: str = "", user=None) -> BankTransaction:
        """
        Remove money from an account.

        Raises:
            ValueError: If amount is not positive
            InsufficientFundsError: If the balance does not cover the amount
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        account = BankAccount.objects.select_for_update().get(pk=account.pk)
        if account.current_balance < amount:
            raise InsufficientFundsError(
                f"Insufficient balance in {account.name}: "
                f"{account.current_balance:,.2f} available, {amount:,.2f} required"
            )

        balance_before = account.current_balance
        account.current_balance -= amount
        account.save(update_fields=['current_balance'])

        return BankTransaction.objects.create(
            account=account,
            transaction_type=transaction_type,
            amount=-amount,
            balance_before=balance_before,
            balance_after=account.current_balance,
            description=description,
            reference=reference,
            created_by=user,
        )


# ===========================================
# DOCUMENT NUMBERING
# ===========================================

def get_next_document_number(model, field: str, prefix: str, year: int = None) -> str:
    """
    Generate next sequential document number.
    Format: PREFIX-YYYY-NNNN, restarting every year.
    """
    year = year or timezone.now().year
    stem = f"{prefix}-{year}-"

    last = model.objects.filter(
        **{f"{field}__startswith": stem}
    ).order_by(f"-{field}").values_list(field, flat=True).first()

    next_seq = 1
    if last:
        try:
            next_seq = int(last.split('-')[-1]) + 1
        except (ValueError, IndexError):
            next_seq = 1

    return f"{stem}{next_seq:04d}"


# ===========================================
# LINE ITEMS
# ===========================================

class ItemType(models.TextChoices):
    FREIGHT = 'freight', 'Freight'
    CUSTOMS = 'customs', 'Customs'
    HANDLING = 'handling', 'Handling'
    INSURANCE = 'insurance', 'Insurance'
    DUTY = 'duty', 'Duty'
    TRANSIT = 'transit', 'Transit Fee'
    OTHER = 'other', 'Other'


class UnitTypeChoices(models.TextChoices):
    FIXED = 'fixed', 'Fixed'
    PERCENT = 'percent', 'Percent'
    KG = 'kg', 'Per kg'


# ===========================================
# ESTIMATES
# ===========================================

class EstimateStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    SENT = 'sent', 'Sent'
    ACCEPTED = 'accepted', 'Accepted'
    DECLINED = 'declined', 'Declined'
    CONVERTED = 'converted', 'Converted'


class Estimate(models.Model):
    """
    Quote sent to a customer before shipping.

    Line items are kept as a JSON list of
    {item_type, description, quantity, unit_price, unit_type, amount}.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    estimate_number = models.CharField(max_length=20, unique=True, verbose_name="Estimate number")
    customer = models.ForeignKey(
        'logistics.Customer',
        on_delete=models.PROTECT,
        related_name='estimates'
    )
    shipment = models.ForeignKey(
        'logistics.Shipment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='estimates'
    )
    origin_region = models.ForeignKey(
        'logistics.Region',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    currency = models.CharField(max_length=3, default='USD')
    weight_kg = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    rate_per_kg = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    line_items = models.JSONField(default=list, blank=True)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    discount = models.CharField(max_length=20, blank=True, help_text='"10%" or a fixed amount')
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(
        max_length=20,
        choices=EstimateStatus.choices,
        default=EstimateStatus.DRAFT
    )
    valid_until = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_estimates'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Estimate"
        verbose_name_plural = "Estimates"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['created_by', 'created_at']),
        ]

    def __str__(self):
        return f"{self.estimate_number} - {self.currency} {self.total}"

    @classmethod
    def get_next_estimate_number(cls) -> str:
        return get_next_document_number(cls, 'estimate_number', 'EST')


# ===========================================
# INVOICES
# ===========================================

class InvoiceType(models.TextChoices):
    SHIPPING = 'shipping', 'Shipping'
    PURCHASE_SHIPPING = 'purchase_shipping', 'Purchase & Shipping'
    AGENT_CARGO = 'agent_cargo', 'Agent cargo'


class InvoiceStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    PENDING = 'pending', 'Pending'
    PARTIALLY_PAID = 'partially_paid', 'Partially paid'
    PAID = 'paid', 'Paid'
    CANCELLED = 'cancelled', 'Cancelled'


class Invoice(models.Model):
    """
    Bill issued to a customer or, for agent-collected cargo, to an agent.

    `amount_in_tzs` is frozen from the exchange rate at issue time.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice_number = models.CharField(max_length=20, unique=True, verbose_name="Invoice number")
    invoice_type = models.CharField(
        max_length=20,
        choices=InvoiceType.choices,
        default=InvoiceType.SHIPPING
    )

    # Billed party
    customer = models.ForeignKey(
        'logistics.Customer',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='invoices'
    )
    agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='agent_invoices'
    )

    shipment = models.ForeignKey(
        'logistics.Shipment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invoices'
    )
    estimate = models.OneToOneField(
        Estimate,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invoice'
    )

    currency = models.CharField(max_length=3, default='USD')
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    discount = models.CharField(max_length=20, blank=True)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'), verbose_name="Total")
    amount_in_tzs = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(
        max_length=20,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.PENDING
    )
    due_date = models.DateField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(max_length=30, blank=True)
    notes = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_invoices'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['created_by', 'paid_at']),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.currency} {self.amount}"

    @classmethod
    def get_next_invoice_number(cls) -> str:
        return get_next_document_number(cls, 'invoice_number', 'INV')

    @property
    def balance_due(self) -> Decimal:
        return max(self.amount - self.amount_paid, Decimal('0.00'))


class InvoiceItem(models.Model):
    """One line of an invoice."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    item_type = models.CharField(max_length=20, choices=ItemType.choices, default=ItemType.OTHER)
    description = models.CharField(max_length=255, blank=True)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1.00'))
    unit_price = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    unit_type = models.CharField(
        max_length=10,
        choices=UnitTypeChoices.choices,
        default=UnitTypeChoices.FIXED
    )
    weight_kg = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    position = models.PositiveSmallIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Invoice item"
        verbose_name_plural = "Invoice items"
        ordering = ['position', 'created_at']

    def __str__(self):
        return f"{self.get_item_type_display()}: {self.amount}"


class InvoicePayment(models.Model):
    """Money received against an invoice."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)
    amount_in_tzs = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)
    payment_method = models.CharField(max_length=30, default='bank_transfer')
    reference = models.CharField(max_length=100, blank=True)
    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invoice_payments'
    )
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    paid_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Invoice payment"
        verbose_name_plural = "Invoice payments"
        ordering = ['-paid_at']

    def __str__(self):
        return f"{self.invoice.invoice_number}: {self.currency} {self.amount}"
