"""
Cargo Back Office Logistics Tests
==================================

Tests for:
1. Tracking numbers & customer codes
2. Status transitions (timestamps, bulk, per batch)
3. Batch grouping
4. Customer notification signal
5. Parcels
6. Shipments API (agent scoping, tracking lookup)
"""

from datetime import date, timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from core.models import EmployeePermission, Notification, NotificationType, User, UserRole
from expenses.models import ExpenseCategory
from finance.models import ExchangeRate
from logistics.models import (
    BillingParty, CargoBatch, Customer, Parcel, Region, Shipment, ShipmentStatus,
)
from logistics.services import (
    ShipmentService, generate_tracking_number, group_shipments_by_batch,
    invoice_recipient, requires_settlement,
)


class LogisticsTestMixin:

    def setUp(self):
        Region.ensure_defaults()
        self.china = Region.objects.get(code='china')
        self.dubai = Region.objects.get(code='dubai')

    def shipment(self, region=None, weight='10', **kwargs):
        return Shipment.objects.create(
            origin_region=region or self.china,
            total_weight_kg=Decimal(weight),
            **kwargs
        )


class TestIdentifiers(LogisticsTestMixin, TestCase):

    def test_tracking_number_format(self):
        number = generate_tracking_number(date(2025, 1, 14))
        self.assertTrue(number.startswith('AST250114'))
        self.assertEqual(len(number), 15)
        self.assertEqual(number[9:], number[9:].upper())

    def test_tracking_number_assigned_on_save(self):
        shipment = self.shipment()
        self.assertTrue(shipment.tracking_number.startswith('AST'))
        self.assertNotEqual(shipment.tracking_number, self.shipment().tracking_number)

    def test_customer_codes_sequential(self):
        first = Customer.objects.create(name='First')
        second = Customer.objects.create(name='Second')
        self.assertEqual(first.customer_code, 'CT0001')
        self.assertEqual(second.customer_code, 'CT0002')

    def test_region_defaults_idempotent(self):
        self.assertEqual(Region.objects.count(), 4)
        self.assertEqual(Region.ensure_defaults(), 0)

    def test_seed_command(self):
        out = StringIO()
        call_command('seed_reference_data', stdout=out)
        self.assertIn('Regions created: 0', out.getvalue())
        self.assertTrue(ExchangeRate.objects.exists())
        self.assertTrue(ExpenseCategory.objects.exists())


class TestBillingParty(TestCase):

    def test_settlement_only_for_agent_collect(self):
        self.assertTrue(requires_settlement(BillingParty.AGENT_COLLECT))
        self.assertFalse(requires_settlement(BillingParty.CUSTOMER_DIRECT))
        self.assertFalse(requires_settlement(BillingParty.INTERNAL))

    def test_invoice_recipient(self):
        self.assertEqual(invoice_recipient(BillingParty.CUSTOMER_DIRECT), 'customer')
        self.assertEqual(invoice_recipient(BillingParty.AGENT_COLLECT), 'agent')
        self.assertEqual(invoice_recipient(BillingParty.INTERNAL), 'internal')


class TestStatusUpdates(LogisticsTestMixin, TestCase):

    def test_status_stamps_timestamp(self):
        shipment = ShipmentService.update_status(self.shipment(), ShipmentStatus.IN_TRANSIT)
        shipment.refresh_from_db()
        self.assertEqual(shipment.status, ShipmentStatus.IN_TRANSIT)
        self.assertIsNotNone(shipment.in_transit_at)
        self.assertIsNone(shipment.arrived_at)

    def test_unknown_status(self):
        with self.assertRaises(ValueError):
            ShipmentService.update_status(self.shipment(), 'lost')

    def test_bulk_update(self):
        shipments = [self.shipment(), self.shipment()]
        untouched = self.shipment()
        count = ShipmentService.bulk_update_status([s.id for s in shipments], ShipmentStatus.ARRIVED)
        self.assertEqual(count, 2)
        self.assertEqual(Shipment.objects.filter(status=ShipmentStatus.ARRIVED).count(), 2)
        untouched.refresh_from_db()
        self.assertEqual(untouched.status, ShipmentStatus.COLLECTED)

    def test_batch_key_update_unbatched_region(self):
        self.shipment(self.china)
        self.shipment(self.china)
        other = self.shipment(self.dubai)

        count = ShipmentService.update_batch_status('unbatched-china', ShipmentStatus.DELIVERED)
        self.assertEqual(count, 2)
        other.refresh_from_db()
        self.assertEqual(other.status, ShipmentStatus.COLLECTED)


class TestBatchGrouping(LogisticsTestMixin, TestCase):

    def test_groups_and_weights(self):
        batch = CargoBatch.objects.create(batch_number='CN-AIR-01', origin_region=self.china)
        self.shipment(weight='10', batch=batch)
        self.shipment(weight='2.5', batch=batch)
        self.shipment(weight='4')
        self.shipment(self.dubai, weight='7')

        groups = {g['key']: g for g in group_shipments_by_batch(Shipment.objects.all())}
        self.assertEqual(set(groups), {str(batch.id), 'unbatched-china', 'unbatched-dubai'})
        self.assertEqual(groups[str(batch.id)]['total_weight'], Decimal('12.50'))
        self.assertEqual(groups[str(batch.id)]['batch_number'], 'CN-AIR-01')
        self.assertEqual(groups['unbatched-china']['shipment_count'], 1)
        # Every shipment counted exactly once
        self.assertEqual(sum(g['shipment_count'] for g in groups.values()), 4)

    def test_group_status_is_majority(self):
        a, b, c = self.shipment(), self.shipment(), self.shipment()
        ShipmentService.bulk_update_status([b.id, c.id], ShipmentStatus.IN_TRANSIT)
        for shipment in (b, c):
            shipment.refresh_from_db()
        groups = group_shipments_by_batch([a, b, c])
        self.assertEqual(groups[0]['status'], ShipmentStatus.IN_TRANSIT)
        self.assertEqual(groups[0]['first_status'], ShipmentStatus.COLLECTED)

    def test_newest_group_first(self):
        old = self.shipment(self.dubai)
        self.shipment(self.china)
        Shipment.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=3))

        groups = group_shipments_by_batch(Shipment.objects.order_by('created_at'))
        self.assertEqual([g['key'] for g in groups], ['unbatched-china', 'unbatched-dubai'])

    def test_empty(self):
        self.assertEqual(group_shipments_by_batch([]), [])


class TestShipmentSignals(LogisticsTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.customer_user = User.objects.create_user(email='buyer@example.com', role=UserRole.CUSTOMER)
        self.customer = Customer.objects.create(name='Buyer', user=self.customer_user)

    def test_status_change_notifies_customer(self):
        shipment = self.shipment(customer=self.customer)
        self.assertFalse(Notification.objects.exists())

        ShipmentService.update_status(shipment, ShipmentStatus.ARRIVED)
        note = Notification.objects.get(user=self.customer_user)
        self.assertEqual(note.notification_type, NotificationType.SHIPMENT)
        self.assertEqual(note.shipment, shipment)
        self.assertEqual(note.title, 'Shipment Arrived')

    def test_same_status_does_not_notify(self):
        shipment = self.shipment(customer=self.customer)
        shipment.description = 'Updated'
        shipment.save()
        self.assertFalse(Notification.objects.exists())

    def test_no_customer_account(self):
        shipment = self.shipment(customer=Customer.objects.create(name='Walk-in'))
        ShipmentService.update_status(shipment, ShipmentStatus.DELIVERED)
        self.assertFalse(Notification.objects.exists())


class TestParcels(LogisticsTestMixin, TestCase):

    def test_first_pickup_wins(self):
        clerk = User.objects.create_user(email='clerk@example.com', role=UserRole.EMPLOYEE)
        parcel = Parcel.objects.create(shipment=self.shipment(), barcode='PCL-0001', weight_kg=Decimal('3'))

        parcel = ShipmentService.record_parcel_pickup(parcel, user=clerk)
        self.assertIsNotNone(parcel.picked_up_at)
        self.assertEqual(parcel.picked_up_by, clerk)

        with self.assertRaises(ValueError):
            ShipmentService.record_parcel_pickup(parcel, user=clerk)


class TestShipmentAPI(LogisticsTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.admin = User.objects.create_user(email='admin@example.com', role=UserRole.SUPER_ADMIN)
        self.agent = User.objects.create_user(email='agent@example.com', role=UserRole.AGENT)
        EmployeePermission.objects.create(employee=self.agent, module='shipments', action='view')

    def test_create_sets_creator(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse('shipment-list'),
            {'origin_region': self.china.id, 'total_weight_kg': '12.00'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        shipment = Shipment.objects.get(pk=response.data['id'])
        self.assertEqual(shipment.created_by, self.admin)
        self.assertEqual(shipment.status, ShipmentStatus.COLLECTED)

    def test_agent_sees_own_shipments(self):
        mine = self.shipment(agent=self.agent)
        self.shipment()
        self.client.force_authenticate(self.agent)
        response = self.client.get(reverse('shipment-list'))
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['tracking_number'], mine.tracking_number)

    def test_track_case_insensitive(self):
        shipment = self.shipment()
        self.client.force_authenticate(self.admin)
        response = self.client.get(
            reverse('shipment-track', kwargs={'tracking_number': shipment.tracking_number.lower()})
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], str(shipment.id))

    def test_status_endpoint_needs_edit(self):
        shipment = self.shipment(agent=self.agent)
        self.client.force_authenticate(self.agent)
        url = reverse('shipment-update-status', args=[shipment.id])
        response = self.client.post(url, {'status': 'arrived'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post(url, {'status': 'arrived'}, format='json')
        self.assertEqual(response.data['status'], ShipmentStatus.ARRIVED)

    def test_batches_endpoint(self):
        self.shipment()
        self.shipment(self.dubai)
        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse('shipment-batches'))
        self.assertEqual(len(response.data), 2)
