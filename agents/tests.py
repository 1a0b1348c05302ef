"""
Cargo Back Office Agents Tests
===============================

Tests for:
1. Agent creation and configuration
2. Agent cargo invoices
3. Agent API (region changes need the manage grant)
4. Settlements (unsettled invoices, lifecycle, bank movements, balance)
5. Settlements API
"""

from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from core.models import EmployeePermission, Notification, User, UserRole
from finance.models import BankAccount, BankTransaction, ExchangeRate, InvoiceType
from finance.pricing import handling_item
from finance.services import InvoiceService
from logistics.models import BillingParty, Region, Shipment
from agents.models import AgentProfile, Settlement, SettlementStatus, SettlementType
from agents.services import AgentService, SettlementError, SettlementService


class TestAgentService(TestCase):
    """Agent onboarding and configuration."""

    def setUp(self):
        Region.ensure_defaults()
        self.china = Region.objects.get(code='china')
        self.dubai = Region.objects.get(code='dubai')

    def test_create_agent(self):
        profile = AgentService.create_agent(
            email='agent@example.com',
            full_name='Li Wei',
            regions=[self.china],
            rate_per_kg=Decimal('6.50'),
        )
        self.assertEqual(profile.user.role, UserRole.AGENT)
        self.assertEqual(profile.rate_per_kg, Decimal('6.50'))
        self.assertEqual(list(profile.regions.values_list('code', flat=True)), ['china'])
        self.assertFalse(profile.user.has_usable_password())

    def test_duplicate_email_rejected(self):
        AgentService.create_agent(email='dup@example.com', full_name='First')
        with self.assertRaises(ValueError):
            AgentService.create_agent(email='DUP@example.com', full_name='Second')

    def test_update_config_replaces_regions(self):
        profile = AgentService.create_agent(
            email='cfg@example.com', full_name='Cfg', regions=[self.china]
        )
        AgentService.update_config(profile, regions=[self.dubai], billing_currency='AED')
        profile.refresh_from_db()
        self.assertEqual(profile.billing_currency, 'AED')
        self.assertEqual(list(profile.regions.values_list('code', flat=True)), ['dubai'])

    def test_full_config_lists_regions(self):
        profile = AgentService.create_agent(
            email='full@example.com', full_name='Full', regions=[self.china, self.dubai]
        )
        config = AgentService.full_config(profile.user)
        self.assertEqual({r['code'] for r in config['regions']}, {'china', 'dubai'})
        self.assertIn('flag_emoji', config['regions'][0])

    def test_profile_created_on_first_access(self):
        user = User.objects.create_user(email='bare@example.com', role=UserRole.AGENT)
        self.assertFalse(AgentProfile.objects.filter(user=user).exists())
        AgentService.get_profile(user)
        self.assertTrue(AgentProfile.objects.filter(user=user).exists())

    def test_non_agent_has_no_profile(self):
        user = User.objects.create_user(email='emp@example.com', role=UserRole.EMPLOYEE)
        with self.assertRaises(ValueError):
            AgentService.get_profile(user)


class TestAgentCargoInvoice(TestCase):
    """Billing agents per kilogram."""

    def setUp(self):
        Region.ensure_defaults()
        region = Region.objects.get(code='china')
        self.profile = AgentService.create_agent(
            email='billing@example.com',
            full_name='Billing Agent',
            rate_per_kg=Decimal('5.00'),
            billing_currency='USD',
        )
        self.agent = self.profile.user
        self.shipments = [
            Shipment.objects.create(origin_region=region, total_weight_kg=Decimal('10'), agent=self.agent),
            Shipment.objects.create(origin_region=region, total_weight_kg=Decimal('4.5'), agent=self.agent),
        ]
        self.other = Shipment.objects.create(origin_region=region, total_weight_kg=Decimal('3'))

    def test_one_freight_line_per_shipment(self):
        invoice = AgentService.create_cargo_invoice(self.agent, self.shipments)
        self.assertEqual(invoice.invoice_type, InvoiceType.AGENT_CARGO)
        self.assertEqual(invoice.agent, self.agent)
        self.assertIsNone(invoice.customer)
        self.assertEqual(invoice.items.count(), 2)
        self.assertEqual(invoice.amount, Decimal('72.50'))
        self.assertEqual(invoice.currency, 'USD')

    def test_extra_items_and_rate_override(self):
        invoice = AgentService.create_cargo_invoice(
            self.agent, self.shipments[:1],
            rate_per_kg=Decimal('2'), extra_items=[handling_item(15)],
        )
        self.assertEqual(invoice.amount, Decimal('35.00'))
        self.assertEqual(invoice.shipment, self.shipments[0])

    def test_foreign_shipment_rejected(self):
        with self.assertRaises(ValueError):
            AgentService.create_cargo_invoice(self.agent, self.shipments + [self.other])

    def test_inactive_agent_rejected(self):
        AgentService.update_config(self.profile, is_active=False)
        with self.assertRaises(ValueError):
            AgentService.create_cargo_invoice(self.agent, self.shipments)


class TestAgentAPI(TestCase):

    def setUp(self):
        Region.ensure_defaults()
        self.client = APIClient()
        self.employee = User.objects.create_user(email='ops@example.com', role=UserRole.EMPLOYEE)
        EmployeePermission.objects.create(employee=self.employee, module='agents', action='edit')
        self.profile = AgentService.create_agent(email='api@example.com', full_name='Api Agent')
        self.url = reverse('agent-detail', args=[self.profile.id])

    def test_edit_grant_updates_rate(self):
        self.client.force_authenticate(self.employee)
        response = self.client.patch(self.url, {'rate_per_kg': '7.25'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['rate_per_kg'], '7.25')

    def test_region_change_needs_manage(self):
        self.client.force_authenticate(self.employee)
        response = self.client.patch(self.url, {'regions': ['india']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        EmployeePermission.objects.create(employee=self.employee, module='agents', action='manage')
        response = self.client.patch(self.url, {'regions': ['india']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['regions'], ['india'])

    def test_agent_reads_own_config(self):
        self.client.force_authenticate(self.profile.user)
        response = self.client.get(reverse('agent-my-config'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'api@example.com')


class SettlementTestMixin:

    def setUp(self):
        Region.ensure_defaults()
        ExchangeRate.objects.create(currency_code='USD', rate_to_tzs=Decimal('2500'))
        self.region = Region.objects.get(code='china')
        self.admin = User.objects.create_user(email='boss@example.com', role=UserRole.SUPER_ADMIN)
        self.profile = AgentService.create_agent(
            email='collector@example.com', full_name='Collector', billing_currency='USD'
        )
        self.agent = self.profile.user
        self.collect = self.shipment(BillingParty.AGENT_COLLECT)
        self.direct = self.shipment(BillingParty.CUSTOMER_DIRECT)

    def shipment(self, billing_party):
        return Shipment.objects.create(
            origin_region=self.region, agent=self.agent, billing_party=billing_party
        )

    def invoice(self, amount='100', currency='USD', shipment=None, paid=True):
        invoice = InvoiceService.create_invoice(
            [handling_item(amount)], agent=self.agent, currency=currency, shipment=shipment
        )
        if paid:
            InvoiceService.record_payment(invoice, invoice.amount)
            invoice.refresh_from_db()
        return invoice


class TestSettlementService(SettlementTestMixin, TestCase):

    # ==========================================
    # Unsettled invoices
    # ==========================================

    def test_unsettled_only_paid_collect_invoices(self):
        collected = self.invoice(shipment=self.collect)
        consolidated = self.invoice()
        self.invoice(shipment=self.collect, paid=False)
        self.invoice(shipment=self.direct)

        unsettled = set(SettlementService.unsettled_invoices(self.agent))
        self.assertEqual(unsettled, {collected, consolidated})

    # ==========================================
    # Creation
    # ==========================================

    def test_collection_values_items_in_settlement_currency(self):
        usd = self.invoice('100', shipment=self.collect)
        tzs = self.invoice('250000', currency='TZS', shipment=self.collect)

        settlement = SettlementService.create_settlement(
            self.agent, SettlementType.COLLECTION_FROM_AGENT, invoices=[usd, tzs], user=self.admin
        )
        self.assertEqual(settlement.status, SettlementStatus.PENDING)
        self.assertTrue(settlement.settlement_number.startswith('SET-'))
        self.assertEqual(settlement.currency, 'USD')
        self.assertEqual(settlement.total_amount, Decimal('200.00'))
        self.assertEqual(settlement.amount_in_tzs, Decimal('500000.00'))
        self.assertEqual(
            sorted(settlement.items.values_list('amount', flat=True)),
            [Decimal('100.00'), Decimal('100.00')],
        )
        self.assertFalse(SettlementService.unsettled_invoices(self.agent).exists())

    def test_invoice_settled_once(self):
        invoice = self.invoice(shipment=self.collect)
        SettlementService.create_settlement(self.agent, SettlementType.COLLECTION_FROM_AGENT, invoices=[invoice])
        with self.assertRaises(SettlementError):
            SettlementService.create_settlement(
                self.agent, SettlementType.COLLECTION_FROM_AGENT, invoices=[invoice]
            )

    def test_direct_or_unpaid_invoice_refused(self):
        with self.assertRaises(SettlementError):
            SettlementService.create_settlement(
                self.agent, SettlementType.COLLECTION_FROM_AGENT,
                invoices=[self.invoice(shipment=self.direct)],
            )
        with self.assertRaises(SettlementError):
            SettlementService.create_settlement(
                self.agent, SettlementType.COLLECTION_FROM_AGENT,
                invoices=[self.invoice(shipment=self.collect, paid=False)],
            )
        self.assertFalse(Settlement.objects.exists())

    def test_payment_to_agent_needs_amount(self):
        with self.assertRaises(SettlementError):
            SettlementService.create_settlement(self.agent, SettlementType.PAYMENT_TO_AGENT)
        settlement = SettlementService.create_settlement(
            self.agent, SettlementType.PAYMENT_TO_AGENT, amount=Decimal('30')
        )
        self.assertEqual(settlement.total_amount, Decimal('30.00'))
        self.assertFalse(settlement.items.exists())

    # ==========================================
    # Lifecycle
    # ==========================================

    def test_collection_paid_credits_account(self):
        invoice = self.invoice(shipment=self.collect)
        settlement = SettlementService.create_settlement(
            self.agent, SettlementType.COLLECTION_FROM_AGENT, invoices=[invoice]
        )
        with self.assertRaises(SettlementError):
            SettlementService.update_status(settlement, SettlementStatus.PAID)

        SettlementService.update_status(settlement, SettlementStatus.APPROVED, user=self.admin)
        account = BankAccount.objects.create(name='Main', currency='TZS', current_balance=Decimal('0'))
        settlement = SettlementService.update_status(
            settlement, SettlementStatus.PAID, user=self.admin,
            bank_account=account, payment_reference='WIRE-7',
        )
        account.refresh_from_db()

        self.assertEqual(settlement.approved_by, self.admin)
        self.assertIsNotNone(settlement.paid_at)
        self.assertEqual(settlement.payment_reference, 'WIRE-7')
        self.assertEqual(account.current_balance, Decimal('250000.00'))
        self.assertTrue(BankTransaction.objects.filter(reference=settlement.settlement_number).exists())
        self.assertEqual(Notification.objects.filter(user=self.agent).count(), 2)

    def test_payment_to_agent_debits_account(self):
        settlement = SettlementService.create_settlement(
            self.agent, SettlementType.PAYMENT_TO_AGENT, amount=Decimal('40')
        )
        SettlementService.update_status(settlement, SettlementStatus.APPROVED)
        account = BankAccount.objects.create(name='USD', currency='USD', current_balance=Decimal('100'))
        SettlementService.update_status(settlement, SettlementStatus.PAID, bank_account=account)
        account.refresh_from_db()
        self.assertEqual(account.current_balance, Decimal('60.00'))

    def test_cancel_releases_invoices(self):
        invoice = self.invoice(shipment=self.collect)
        settlement = SettlementService.create_settlement(
            self.agent, SettlementType.COLLECTION_FROM_AGENT, invoices=[invoice]
        )
        SettlementService.update_status(settlement, SettlementStatus.CANCELLED)
        self.assertEqual(list(SettlementService.unsettled_invoices(self.agent)), [invoice])

        with self.assertRaises(SettlementError):
            SettlementService.update_status(settlement, SettlementStatus.APPROVED)

    # ==========================================
    # Balance
    # ==========================================

    def test_agent_balance(self):
        self.invoice('100', shipment=self.collect)
        in_settlement = self.invoice('250000', currency='TZS', shipment=self.collect)
        self.invoice('40', shipment=self.collect, paid=False)
        SettlementService.create_settlement(
            self.agent, SettlementType.COLLECTION_FROM_AGENT, invoices=[in_settlement]
        )
        SettlementService.create_settlement(self.agent, SettlementType.PAYMENT_TO_AGENT, amount=Decimal('30'))

        balance = SettlementService.agent_balance(self.agent)
        self.assertEqual(balance['base_currency'], 'USD')
        self.assertEqual(balance['collected_unsettled'], Decimal('100.00'))
        self.assertEqual(balance['collections_in_settlement'], Decimal('100.00'))
        self.assertEqual(balance['owed_to_agent'], Decimal('30.00'))
        self.assertEqual(balance['uncollected'], Decimal('40.00'))
        self.assertEqual(balance['net_balance'], Decimal('170.00'))

    def test_paid_settlement_leaves_balance(self):
        invoice = self.invoice(shipment=self.collect)
        settlement = SettlementService.create_settlement(
            self.agent, SettlementType.COLLECTION_FROM_AGENT, invoices=[invoice]
        )
        SettlementService.update_status(settlement, SettlementStatus.APPROVED)
        SettlementService.update_status(settlement, SettlementStatus.PAID)
        self.assertEqual(SettlementService.agent_balance(self.agent)['net_balance'], Decimal('0.00'))


class TestSettlementAPI(SettlementTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.clerk = User.objects.create_user(email='clerk@example.com', role=UserRole.EMPLOYEE)
        EmployeePermission.objects.create(employee=self.clerk, module='agents', action='view')
        EmployeePermission.objects.create(employee=self.clerk, module='agents', action='create')

    def test_create_and_approve(self):
        invoice = self.invoice(shipment=self.collect)
        self.client.force_authenticate(self.clerk)
        response = self.client.post(
            reverse('settlement-list'),
            {
                'agent': str(self.agent.id),
                'settlement_type': 'collection_from_agent',
                'invoice_ids': [str(invoice.id)],
            },
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_amount'], '100.00')
        self.assertEqual(len(response.data['items']), 1)

        url = reverse('settlement-set-status', args=[response.data['id']])
        forbidden = self.client.post(url, {'status': 'approved'}, format='json')
        self.assertEqual(forbidden.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        approved = self.client.post(url, {'status': 'approved'}, format='json')
        self.assertEqual(approved.data['status'], SettlementStatus.APPROVED)
        refused = self.client.post(url, {'status': 'approved'}, format='json')
        self.assertEqual(refused.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unsettled_endpoint(self):
        self.invoice(shipment=self.collect)
        self.client.force_authenticate(self.clerk)
        response = self.client.get(reverse('settlement-unsettled'), {'agent': str(self.agent.id)})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_agent_sees_own_settlements_and_balance(self):
        SettlementService.create_settlement(self.agent, SettlementType.PAYMENT_TO_AGENT, amount=Decimal('25'))
        other = AgentService.create_agent(email='other@example.com', full_name='Other').user
        SettlementService.create_settlement(other, SettlementType.PAYMENT_TO_AGENT, amount=Decimal('10'))

        self.client.force_authenticate(self.agent)
        mine = self.client.get(reverse('settlement-mine'))
        self.assertEqual(len(mine.data), 1)
        self.assertEqual(mine.data[0]['total_amount'], '25.00')

        balance = self.client.get(reverse('settlement-my-balance'))
        self.assertEqual(balance.data['owed_to_agent'], Decimal('25.00'))

        listing = self.client.get(reverse('settlement-list'))
        self.assertEqual(listing.status_code, status.HTTP_403_FORBIDDEN)
