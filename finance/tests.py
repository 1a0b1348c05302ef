"""
Cargo Back Office Finance Tests
================================

Tests for:
1. Line item pricing (cascading percentages, discounts, tax)
2. Currency conversion through TZS
3. Bank account ledger (credit, debit, insufficient funds)
4. Invoice creation, numbering and payments
5. Estimate conversion
6. Invoice API permissions
"""

from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from core.models import EmployeePermission, User, UserRole
from logistics.models import Customer
from finance.models import (
    BankAccount, BankAccountService, BankTransaction, BankTransactionType,
    EstimateStatus, ExchangeRate, InsufficientFundsError, InvoiceStatus,
)
from finance.pricing import (
    calculate_line_totals, calculate_totals, parse_discount,
    freight_item, handling_item, transit_item,
)
from finance.services import CurrencyService, EstimateService, InvoiceService


def fixed(amount, quantity=1):
    return {'unit_type': 'fixed', 'quantity': quantity, 'unit_price': amount}


def percent(rate):
    return {'unit_type': 'percent', 'quantity': 1, 'unit_price': rate}


class TestPricing(TestCase):
    """Pure totals calculations."""

    # ==========================================
    # Line Totals
    # ==========================================

    def test_percent_line_applies_to_running_total(self):
        """A percentage line is computed on every line above it."""
        result = calculate_line_totals([
            freight_item(10, 5),
            percent(10),
            percent(10),
        ])
        self.assertEqual(result['amounts'], [Decimal('50.00'), Decimal('5.00'), Decimal('5.50')])
        self.assertEqual(result['subtotal'], Decimal('60.50'))

    def test_leading_percent_line_is_zero(self):
        """A percentage line with nothing above it contributes nothing."""
        result = calculate_line_totals([percent(15), fixed(100)])
        self.assertEqual(result['amounts'][0], Decimal('0.00'))
        self.assertEqual(result['subtotal'], Decimal('100.00'))

    def test_empty_items(self):
        result = calculate_line_totals([])
        self.assertEqual(result['amounts'], [])
        self.assertEqual(result['subtotal'], Decimal('0.00'))

    # ==========================================
    # Discounts & Tax
    # ==========================================

    def test_percentage_discount(self):
        self.assertEqual(parse_discount('10%', Decimal('200')), Decimal('20.00'))

    def test_fixed_discount_strips_text(self):
        """Currency symbols and separators are ignored."""
        self.assertEqual(parse_discount('TZS 5,000', Decimal('9000')), Decimal('5000.00'))

    def test_invalid_discount_is_zero(self):
        self.assertEqual(parse_discount('', Decimal('100')), Decimal('0.00'))
        self.assertEqual(parse_discount('none', Decimal('100')), Decimal('0.00'))
        self.assertEqual(parse_discount('1.2.3', Decimal('100')), Decimal('0.00'))

    def test_tax_applies_after_discount(self):
        """Tax is computed on subtotal minus discount."""
        totals = calculate_totals([fixed(50, quantity=2)], '10%', 18)
        self.assertEqual(totals['subtotal'], Decimal('100.00'))
        self.assertEqual(totals['discount_amount'], Decimal('10.00'))
        self.assertEqual(totals['tax_amount'], Decimal('16.20'))
        self.assertEqual(totals['total'], Decimal('106.20'))

    def test_standard_items(self):
        freight = freight_item('12.5', '4')
        self.assertEqual(freight['unit_type'], 'kg')
        self.assertEqual(freight['quantity'], Decimal('12.5'))
        self.assertEqual(freight['amount'], Decimal('50.00'))
        self.assertEqual(handling_item(25)['item_type'], 'handling')
        self.assertIn('Zanzibar', transit_item(10, 'Zanzibar')['description'])


class TestCurrencyService(TestCase):
    """Conversion through TZS."""

    def test_defaults_used_without_stored_rates(self):
        self.assertEqual(CurrencyService.convert_to_tzs(10, 'USD'), Decimal('25000.00'))

    def test_stored_rate_overrides_default(self):
        ExchangeRate.objects.create(currency_code='USD', rate_to_tzs=Decimal('2600'))
        self.assertEqual(CurrencyService.rates_map()['USD'], Decimal('2600'))
        self.assertEqual(CurrencyService.convert_to_tzs(10, 'USD'), Decimal('26000.00'))

    def test_tzs_is_identity(self):
        self.assertEqual(CurrencyService.convert_to_tzs(1234, 'TZS'), Decimal('1234'))
        self.assertEqual(CurrencyService.convert_from_tzs(1234, 'TZS'), Decimal('1234'))

    def test_unknown_currency_returns_amount(self):
        """Missing rates leave the amount unchanged."""
        self.assertEqual(CurrencyService.convert_to_tzs(10, 'XYZ'), Decimal('10'))
        self.assertEqual(CurrencyService.convert_from_tzs(10, 'XYZ'), Decimal('10'))

    def test_convert_between_currencies(self):
        self.assertEqual(CurrencyService.convert_from_tzs(25000, 'USD'), Decimal('10.00'))
        self.assertEqual(CurrencyService.convert(10, 'USD', 'GBP'), Decimal('7.94'))


class TestBankAccountService(TestCase):
    """Balance movements and the ledger."""

    def setUp(self):
        self.account = BankAccount.objects.create(
            name='Main', currency='TZS', current_balance=Decimal('1000.00')
        )

    def test_credit_writes_ledger(self):
        tx = BankAccountService.credit(self.account, Decimal('500'), BankTransactionType.DEPOSIT)
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal('1500.00'))
        self.assertEqual(tx.balance_before, Decimal('1000.00'))
        self.assertEqual(tx.balance_after, Decimal('1500.00'))

    def test_debit_stores_negative_amount(self):
        tx = BankAccountService.debit(self.account, Decimal('300'), BankTransactionType.EXPENSE)
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal('700.00'))
        self.assertEqual(tx.amount, Decimal('-300'))

    def test_debit_insufficient_funds(self):
        """Overdrawing raises and leaves the balance alone."""
        with self.assertRaises(InsufficientFundsError):
            BankAccountService.debit(self.account, Decimal('1000.01'), BankTransactionType.WITHDRAWAL)
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal('1000.00'))
        self.assertFalse(BankTransaction.objects.exists())

    def test_non_positive_amount_rejected(self):
        with self.assertRaises(ValueError):
            BankAccountService.credit(self.account, Decimal('0'), BankTransactionType.DEPOSIT)
        with self.assertRaises(ValueError):
            BankAccountService.debit(self.account, Decimal('-5'), BankTransactionType.EXPENSE)


class TestInvoiceService(TestCase):
    """Invoice creation and payments."""

    def setUp(self):
        self.staff = User.objects.create_user(
            email='finance@example.com', full_name='Fin Ance', role=UserRole.EMPLOYEE
        )
        self.customer = Customer.objects.create(name='Acme Imports')

    def _invoice(self, amount='100.00'):
        return InvoiceService.create_invoice(
            [fixed(Decimal(amount))], customer=self.customer, currency='USD', user=self.staff
        )

    # ==========================================
    # Creation
    # ==========================================

    def test_invoice_totals_and_tzs_amount(self):
        invoice = InvoiceService.create_invoice(
            [freight_item(20, 5), percent(10)],
            customer=self.customer,
            currency='USD',
            discount='10',
            user=self.staff,
        )
        self.assertEqual(invoice.subtotal, Decimal('110.00'))
        self.assertEqual(invoice.amount, Decimal('100.00'))
        self.assertEqual(invoice.amount_in_tzs, Decimal('250000.00'))
        self.assertEqual(invoice.items.count(), 2)
        self.assertEqual(invoice.status, InvoiceStatus.PENDING)

    def test_due_date_defaults(self):
        invoice = self._invoice()
        expected = timezone.localdate() + timedelta(days=settings.INVOICE_DUE_DAYS)
        self.assertEqual(invoice.due_date, expected)

    def test_sequential_numbers(self):
        """Numbers follow INV-YYYY-NNNN."""
        year = timezone.now().year
        first = self._invoice()
        second = self._invoice()
        self.assertEqual(first.invoice_number, f"INV-{year}-0001")
        self.assertEqual(second.invoice_number, f"INV-{year}-0002")

    def test_billing_party_required(self):
        with self.assertRaises(ValueError):
            InvoiceService.create_invoice([fixed(10)])

    # ==========================================
    # Payments
    # ==========================================

    def test_partial_then_full_payment(self):
        invoice = self._invoice()
        account = BankAccount.objects.create(name='USD account', currency='USD')

        InvoiceService.record_payment(invoice, Decimal('40.00'))
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, InvoiceStatus.PARTIALLY_PAID)
        self.assertIsNone(invoice.paid_at)

        InvoiceService.record_payment(invoice, Decimal('60.00'), bank_account=account)
        invoice.refresh_from_db()
        account.refresh_from_db()
        self.assertEqual(invoice.status, InvoiceStatus.PAID)
        self.assertIsNotNone(invoice.paid_at)
        self.assertEqual(invoice.balance_due, Decimal('0.00'))
        self.assertEqual(account.current_balance, Decimal('60.00'))

    def test_payment_on_paid_invoice_rejected(self):
        invoice = self._invoice()
        InvoiceService.record_payment(invoice, Decimal('100.00'))
        with self.assertRaises(ValueError):
            InvoiceService.record_payment(invoice, Decimal('1.00'))

    def test_cancel_paid_invoice_rejected(self):
        invoice = self._invoice()
        InvoiceService.record_payment(invoice, Decimal('100.00'))
        invoice.refresh_from_db()
        with self.assertRaises(ValueError):
            InvoiceService.cancel(invoice)


class TestEstimateConversion(TestCase):
    """Estimate to invoice."""

    def setUp(self):
        self.customer = Customer.objects.create(name='Beta Traders')
        self.estimate = EstimateService.create_estimate(
            self.customer, [freight_item(10, 8), handling_item(20)], currency='GBP'
        )

    def test_estimate_totals(self):
        self.assertEqual(self.estimate.total, Decimal('100.00'))
        self.assertEqual(len(self.estimate.line_items), 2)
        self.assertEqual(self.estimate.line_items[0]['amount'], '80.00')

    def test_convert_accepted_estimate(self):
        EstimateService.set_status(self.estimate, EstimateStatus.ACCEPTED)
        invoice = EstimateService.convert_to_invoice(self.estimate)
        self.estimate.refresh_from_db()

        self.assertEqual(self.estimate.status, EstimateStatus.CONVERTED)
        self.assertEqual(invoice.estimate, self.estimate)
        self.assertEqual(invoice.amount, Decimal('100.00'))
        self.assertEqual(invoice.currency, 'GBP')
        self.assertEqual(invoice.items.count(), 2)

    def test_convert_twice_rejected(self):
        EstimateService.convert_to_invoice(self.estimate)
        with self.assertRaises(ValueError):
            EstimateService.convert_to_invoice(self.estimate)

    def test_declined_estimate_cannot_convert(self):
        EstimateService.set_status(self.estimate, EstimateStatus.DECLINED)
        with self.assertRaises(ValueError):
            EstimateService.convert_to_invoice(self.estimate)


class TestInvoiceAPI(TestCase):
    """Endpoints respect module permissions."""

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            email='admin@example.com', full_name='Admin', role=UserRole.SUPER_ADMIN
        )
        self.employee = User.objects.create_user(
            email='clerk@example.com', full_name='Clerk', role=UserRole.EMPLOYEE
        )
        self.customer = Customer.objects.create(name='Gamma Ltd')
        self.payload = {
            'customer': str(self.customer.id),
            'currency': 'usd',
            'items': [
                {'item_type': 'freight', 'quantity': '10', 'unit_price': '4.00', 'unit_type': 'kg'},
                {'item_type': 'insurance', 'unit_price': '5', 'unit_type': 'percent'},
            ],
        }

    def test_admin_creates_invoice(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse('invoice-list'), self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['currency'], 'USD')
        self.assertEqual(response.data['amount'], '42.00')
        self.assertEqual(len(response.data['items']), 2)

    def test_employee_without_grant_forbidden(self):
        self.client.force_authenticate(self.employee)
        response = self.client.post(reverse('invoice-list'), self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_payment_needs_approve_grant(self):
        """Creating is not enough to record payments."""
        EmployeePermission.objects.create(employee=self.employee, module='invoices', action='create')
        self.client.force_authenticate(self.employee)
        created = self.client.post(reverse('invoice-list'), self.payload, format='json')
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)

        url = reverse('invoice-pay', args=[created.data['id']])
        response = self.client.post(url, {'amount': '42.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        EmployeePermission.objects.create(employee=self.employee, module='invoices', action='approve')
        response = self.client.post(url, {'amount': '42.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['invoice']['status'], InvoiceStatus.PAID)

    def test_deposit_needs_accounting_approve(self):
        account = BankAccount.objects.create(name='Main', currency='USD', current_balance=Decimal('0'))
        EmployeePermission.objects.create(employee=self.employee, module='accounting', action='edit')
        self.client.force_authenticate(self.employee)
        url = reverse('bank-account-deposit', args=[account.id])

        response = self.client.post(url, {'amount': '50.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        EmployeePermission.objects.create(employee=self.employee, module='accounting', action='approve')
        response = self.client.post(url, {'amount': '50.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['current_balance'], Decimal('50.00'))

    def test_rate_changes_need_accounting_manage(self):
        EmployeePermission.objects.create(employee=self.employee, module='accounting', action='edit')
        self.client.force_authenticate(self.employee)
        payload = {'currency_code': 'eur', 'rate_to_tzs': '2800'}
        response = self.client.post(reverse('exchange-rate-list'), payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        EmployeePermission.objects.create(employee=self.employee, module='accounting', action='manage')
        response = self.client.post(reverse('exchange-rate-list'), payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['currency_code'], 'EUR')
