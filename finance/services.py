"""
FINANCE App - Billing Services

Currency conversion, estimate and invoice creation, estimate conversion
and payment recording.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .models import (
    ExchangeRate, DEFAULT_RATES_TO_TZS, Estimate, EstimateStatus,
    Invoice, InvoiceItem, InvoicePayment, InvoiceStatus, InvoiceType,
    BankAccountService, BankTransactionType,
)
from .pricing import calculate_totals, quantize

logger = logging.getLogger(__name__)


# ===========================================
# CURRENCY
# ===========================================

class CurrencyService:
    """Conversions through TZS using the stored exchange rates."""

    @staticmethod
    def rates_map() -> Dict[str, Decimal]:
        """Stored rates layered over the built-in defaults."""
        rates = dict(DEFAULT_RATES_TO_TZS)
        for code, rate in ExchangeRate.objects.values_list('currency_code', 'rate_to_tzs'):
            rates[code] = rate
        return rates

    @classmethod
    def convert_to_tzs(cls, amount, currency: str, rates: Optional[Dict] = None) -> Decimal:
        """
        Convert an amount to TZS.
        TZS and currencies without a rate come back unchanged.
        """
        amount = Decimal(str(amount))
        if currency == 'TZS':
            return amount
        rate = (rates if rates is not None else cls.rates_map()).get(currency)
        if not rate:
            return amount
        return quantize(amount * rate)

    @classmethod
    def convert_from_tzs(cls, amount_tzs, currency: str, rates: Optional[Dict] = None) -> Decimal:
        amount_tzs = Decimal(str(amount_tzs))
        if currency == 'TZS':
            return amount_tzs
        rate = (rates if rates is not None else cls.rates_map()).get(currency)
        if not rate:
            return amount_tzs
        return quantize(amount_tzs / rate)

    @classmethod
    def convert(cls, amount, from_currency: str, to_currency: str,
                rates: Optional[Dict] = None) -> Decimal:
        if from_currency == to_currency:
            return Decimal(str(amount))
        rates = rates if rates is not None else cls.rates_map()
        return cls.convert_from_tzs(
            cls.convert_to_tzs(amount, from_currency, rates), to_currency, rates
        )


# ===========================================
# ESTIMATES
# ===========================================

def _serialize_items(items: Iterable[Dict], amounts: List[Decimal]) -> List[Dict]:
    """JSON-safe copy of line items with computed amounts."""
    rows = []
    for item, amount in zip(items, amounts):
        rows.append({
            'item_type': item.get('item_type', 'other'),
            'description': item.get('description', ''),
            'quantity': str(item.get('quantity', 1)),
            'unit_price': str(item.get('unit_price', 0)),
            'unit_type': item.get('unit_type', 'fixed'),
            'amount': str(amount),
        })
    return rows


class EstimateService:

    @staticmethod
    @transaction.atomic
    def create_estimate(customer, items: List[Dict], currency: str = 'USD',
                        discount: str = '', tax_rate=0, user=None, **extra) -> Estimate:
        """
        Create an estimate with server-side totals.

        Args:
            customer: logistics.Customer
            items: Line item dicts (see finance.pricing)
            currency: Document currency
            discount: "10%" or fixed amount
            tax_rate: Percent applied after discount
            user: Creator, credited on the leaderboard
            **extra: shipment, origin_region, weight_kg, rate_per_kg, notes, valid_until

        Raises:
            ValueError: If there are no line items
        """
        if not items:
            raise ValueError("An estimate needs at least one line item")

        totals = calculate_totals(items, discount, tax_rate)
        extra.setdefault(
            'valid_until',
            timezone.localdate() + timedelta(days=settings.ESTIMATE_VALID_DAYS)
        )

        estimate = Estimate.objects.create(
            estimate_number=Estimate.get_next_estimate_number(),
            customer=customer,
            currency=currency,
            line_items=_serialize_items(items, totals['amounts']),
            subtotal=totals['subtotal'],
            discount=discount or '',
            discount_amount=totals['discount_amount'],
            tax_rate=Decimal(str(tax_rate or 0)),
            tax_amount=totals['tax_amount'],
            total=totals['total'],
            created_by=user,
            **extra,
        )
        logger.info(f"[FINANCE] Estimate {estimate.estimate_number} created: {currency} {estimate.total}")
        return estimate

    @staticmethod
    def set_status(estimate: Estimate, status: str) -> Estimate:
        if estimate.status == EstimateStatus.CONVERTED:
            raise ValueError("A converted estimate can no longer change status")
        if status == EstimateStatus.CONVERTED:
            raise ValueError("Use the convert action to turn an estimate into an invoice")
        estimate.status = status
        estimate.save(update_fields=['status', 'updated_at'])
        return estimate

    @staticmethod
    @transaction.atomic
    def convert_to_invoice(estimate: Estimate, user=None) -> Invoice:
        """
        Turn an estimate into an invoice carrying the same lines and totals.

        Raises:
            ValueError: If the estimate was already converted or was declined
        """
        estimate = Estimate.objects.select_for_update().get(pk=estimate.pk)
        if estimate.status == EstimateStatus.CONVERTED:
            raise ValueError(f"Estimate {estimate.estimate_number} is already converted")
        if estimate.status == EstimateStatus.DECLINED:
            raise ValueError("A declined estimate cannot be invoiced")

        invoice = InvoiceService.create_invoice(
            items=estimate.line_items,
            customer=estimate.customer,
            currency=estimate.currency,
            discount=estimate.discount,
            tax_rate=estimate.tax_rate,
            user=user,
            shipment=estimate.shipment,
            estimate=estimate,
            notes=estimate.notes,
        )

        estimate.status = EstimateStatus.CONVERTED
        estimate.save(update_fields=['status', 'updated_at'])
        logger.info(f"[FINANCE] Estimate {estimate.estimate_number} -> {invoice.invoice_number}")
        return invoice


# ===========================================
# INVOICES
# ===========================================

class InvoiceService:

    @staticmethod
    @transaction.atomic
    def create_invoice(items: List[Dict], customer=None, agent=None,
                       currency: str = 'USD', discount: str = '', tax_rate=0,
                       invoice_type: str = InvoiceType.SHIPPING, user=None,
                       status: str = InvoiceStatus.PENDING, **extra) -> Invoice:
        """
        Create an invoice and its line items.

        Totals are computed from the items; `amount_in_tzs` is filled from
        the current exchange rate.

        Raises:
            ValueError: If neither customer nor agent is given, or items are empty
        """
        if customer is None and agent is None:
            raise ValueError("An invoice must be billed to a customer or an agent")
        if not items:
            raise ValueError("An invoice needs at least one line item")

        totals = calculate_totals(items, discount, tax_rate)
        extra.setdefault(
            'due_date',
            timezone.localdate() + timedelta(days=settings.INVOICE_DUE_DAYS)
        )

        invoice = Invoice.objects.create(
            invoice_number=Invoice.get_next_invoice_number(),
            invoice_type=invoice_type,
            customer=customer,
            agent=agent,
            currency=currency,
            subtotal=totals['subtotal'],
            discount=discount or '',
            discount_amount=totals['discount_amount'],
            tax_rate=Decimal(str(tax_rate or 0)),
            tax_amount=totals['tax_amount'],
            amount=totals['total'],
            amount_in_tzs=CurrencyService.convert_to_tzs(totals['total'], currency),
            status=status,
            created_by=user,
            **extra,
        )

        InvoiceItem.objects.bulk_create([
            InvoiceItem(
                invoice=invoice,
                item_type=item.get('item_type', 'other'),
                description=item.get('description', ''),
                quantity=Decimal(str(item.get('quantity', 1))),
                unit_price=Decimal(str(item.get('unit_price', 0))),
                unit_type=item.get('unit_type', 'fixed'),
                weight_kg=item.get('weight_kg'),
                amount=amount,
                position=position,
            )
            for position, (item, amount) in enumerate(zip(items, totals['amounts']))
        ])

        logger.info(
            f"[FINANCE] Invoice {invoice.invoice_number} created: "
            f"{currency} {invoice.amount} (TZS {invoice.amount_in_tzs})"
        )
        return invoice

    @staticmethod
    @transaction.atomic
    def recalculate(invoice: Invoice) -> Invoice:
        """Recompute totals after the line items were edited."""
        items = list(invoice.items.all())
        totals = calculate_totals(
            [
                {'unit_type': i.unit_type, 'quantity': i.quantity, 'unit_price': i.unit_price}
                for i in items
            ],
            invoice.discount,
            invoice.tax_rate,
        )
        for item, amount in zip(items, totals['amounts']):
            if item.amount != amount:
                item.amount = amount
                item.save(update_fields=['amount'])

        invoice.subtotal = totals['subtotal']
        invoice.discount_amount = totals['discount_amount']
        invoice.tax_amount = totals['tax_amount']
        invoice.amount = totals['total']
        invoice.amount_in_tzs = CurrencyService.convert_to_tzs(invoice.amount, invoice.currency)
        invoice.save()
        return invoice

    @staticmethod
    @transaction.atomic
    def record_payment(invoice: Invoice, amount: Decimal, currency: str = None,
                       payment_method: str = 'bank_transfer', bank_account=None,
                       reference: str = '', user=None) -> InvoicePayment:
        """
        Record money received against an invoice.

        The invoice becomes `paid` once payments cover its total, otherwise
        `partially_paid`. When a bank account is given it is credited.

        Raises:
            ValueError: If the invoice is cancelled/paid or amount is not positive
        """
        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
        if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.PAID):
            raise ValueError(f"Invoice {invoice.invoice_number} is {invoice.status}")
        if amount <= 0:
            raise ValueError("Payment amount must be positive")

        currency = currency or invoice.currency
        payment = InvoicePayment.objects.create(
            invoice=invoice,
            amount=amount,
            currency=currency,
            amount_in_tzs=CurrencyService.convert_to_tzs(amount, currency),
            payment_method=payment_method,
            reference=reference,
            bank_account=bank_account,
            recorded_by=user,
        )

        invoice.amount_paid += CurrencyService.convert(amount, currency, invoice.currency)
        invoice.payment_method = payment_method
        if invoice.amount_paid >= invoice.amount:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = timezone.now()
        else:
            invoice.status = InvoiceStatus.PARTIALLY_PAID
        invoice.save()

        if bank_account is not None:
            BankAccountService.credit(
                bank_account,
                CurrencyService.convert(amount, currency, bank_account.currency),
                BankTransactionType.INVOICE_PAYMENT,
                description=f"Payment for {invoice.invoice_number}",
                reference=reference,
                user=user,
            )

        logger.info(
            f"[FINANCE] Payment {currency} {amount} on {invoice.invoice_number} "
            f"-> {invoice.status}"
        )
        return payment

    @staticmethod
    def cancel(invoice: Invoice) -> Invoice:
        if invoice.status == InvoiceStatus.PAID:
            raise ValueError("A paid invoice cannot be cancelled")
        invoice.status = InvoiceStatus.CANCELLED
        invoice.save(update_fields=['status', 'updated_at'])
        return invoice
