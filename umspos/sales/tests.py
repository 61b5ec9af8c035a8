"""
Test suite for the sales module
Tests: Selling, Reference numbers, Receipts, Transactions, Returns, Replacements, Faulty meters
"""
from decimal import Decimal

from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from umspos.core.exceptions import InventoryError
from umspos.core.models import AuditLog
from umspos.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from umspos.meters.models import Meter, MinimumStockLevel
from umspos.notifications.models import Notification
from umspos.sales.models import FaultyReturn, SaleBatch, SalesTransaction, SoldMeter
from umspos.sales.services import generate_reference_number, return_sold_meters, update_faulty_status


class SellMetersTests(TestCase):
    """Test counter sales"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='user', name='Cashier')
        TestDataFactory.create_meters(3, meter_type='split', prefix='SP')
        TestDataFactory.create_meters(2, meter_type='gas', prefix='GS')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def _sell(self, serials, prices=None, **extra):
        payload = {
            'serial_numbers': serials,
            'destination': 'Westlands',
            'recipient': 'Acme Ltd',
            'customer_type': 'technician',
            'customer_county': 'Nairobi',
            'customer_contact': '0711000000',
            'unit_prices': prices if prices is not None else {'split': '2500.00', 'gas': '4000.00'},
        }
        payload.update(extra)
        return self.client.post('/api/v1/sales/', payload, format='json')

    def test_sale_creates_transaction_batches_and_sold_meters(self):
        response = self._sell(['sp0001', 'SP0002', 'GS0001'])
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        year = timezone.localtime().year
        self.assertEqual(response.data['reference_number'], f'SR/{year}/00001')
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('9000.00'))
        self.assertEqual(response.data['user_name'], 'Cashier')
        self.assertEqual(len(response.data['batches']), 2)

        split = SaleBatch.objects.get(meter_type='split')
        self.assertEqual(split.batch_amount, 2)
        self.assertEqual(split.total_price, Decimal('5000.00'))
        self.assertEqual(SoldMeter.objects.filter(status='sold').count(), 3)
        self.assertEqual(Meter.objects.get(serial_number='SP0001').status, 'sold')
        self.assertTrue(AuditLog.objects.filter(action='meter_sale').exists())
        self.assertTrue(Notification.objects.filter(type='sale').exists())

    def test_references_increase(self):
        self._sell(['SP0001'])
        response = self._sell(['SP0002'])
        year = timezone.localtime().year
        self.assertEqual(response.data['reference_number'], f'SR/{year}/00002')
        self.assertEqual(generate_reference_number(year), f'SR/{year}/00003')

    def test_reference_sequence_restarts_each_year(self):
        self.assertEqual(generate_reference_number(1999), 'SR/1999/00001')

    def test_reference_sequence_past_five_digits(self):
        for reference in ('SR/2030/99999', 'SR/2030/100000'):
            SalesTransaction.objects.create(
                reference_number=reference, user_name='Seed', sale_date=timezone.now(),
                destination='Nairobi', recipient='Seed',
            )
        self.assertEqual(generate_reference_number(2030), 'SR/2030/100001')

    def test_sold_meter_cannot_be_sold_again(self):
        self._sell(['SP0001'])
        response = self._sell(['SP0001', 'SP0002'])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['serial_numbers'], ['SP0001'])
        self.assertEqual(Meter.objects.get(serial_number='SP0002').status, 'in_stock')
        self.assertEqual(SalesTransaction.objects.count(), 1)

    def test_missing_price_rejects_sale(self):
        response = self._sell(['SP0001', 'GS0001'], prices={'split': '2500'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(SalesTransaction.objects.exists())

    def test_unknown_serial(self):
        response = self._sell(['NOPE'])
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invalid_customer_type(self):
        response = self._sell(['SP0001'], customer_type='wholesale')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_low_stock_alert_after_sale(self):
        MinimumStockLevel.objects.create(meter_type='gas', minimum_level=1)
        self._sell(['GS0001'])
        self.assertTrue(Notification.objects.filter(type='stock_alert', metadata__meter_type='gas').exists())

    def test_one_active_sale_per_meter(self):
        self._sell(['SP0001'])
        sold = SoldMeter.objects.get(serial_number='SP0001')
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                SoldMeter.objects.create(
                    meter=sold.meter, batch=sold.batch, serial_number=sold.serial_number,
                    sold_at=timezone.now(), destination='X', recipient='Y', unit_price=Decimal('1.00'),
                )


class SalesQueryTests(TestCase):
    """Test transaction, batch and receipt endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='admin', name='Admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        meters = TestDataFactory.create_meters(2, meter_type='water', prefix='WT')
        self.sale = TestDataFactory.create_sale(self.user, meters, unit_price=Decimal('1800.00'), recipient='Kamau')

    def test_receipt_by_reference(self):
        response = self.client.get('/api/v1/sales/transactions/by-reference/', {
            'reference': self.sale.reference_number.lower(),
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['meters'], [
            {'serial_number': 'WT0001', 'type': 'water'},
            {'serial_number': 'WT0002', 'type': 'water'},
        ])
        self.assertEqual(response.data['unit_prices'], {'water': Decimal('1800.00')})
        self.assertEqual(response.data['user_name'], 'Admin')

    def test_unknown_reference(self):
        response = self.client.get('/api/v1/sales/transactions/by-reference/', {'reference': 'SR/1990/00001'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_transactions_paginated(self):
        response = self.client.get('/api/v1/sales/transactions/?page_size=1')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_count'], 1)
        self.assertEqual(response.data['total_pages'], 1)
        self.assertEqual(response.data['data'][0]['recipient'], 'Kamau')

    def test_transactions_search(self):
        response = self.client.get('/api/v1/sales/transactions/?search=nobody')
        self.assertEqual(response.data['total_count'], 0)

    def test_transaction_detail(self):
        response = self.client.get(f'/api/v1/sales/transactions/{self.sale.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['batches'][0]['meters']), 2)

    def test_batches_and_batch_meters(self):
        response = self.client.get('/api/v1/sales/batches/?meter_type=Water')
        self.assertEqual(len(response.data), 1)
        batch_id = response.data[0]['id']
        self.assertEqual(response.data[0]['transaction_reference'], self.sale.reference_number)

        response = self.client.get(f'/api/v1/sales/batches/{batch_id}/meters/')
        self.assertEqual([row['serial_number'] for row in response.data], ['WT0001', 'WT0002'])

        response = self.client.get('/api/v1/sales/batches/?meter_type=gas')
        self.assertEqual(response.data, [])

    def test_batches_bad_date(self):
        response = self.client.get('/api/v1/sales/batches/?start_date=not-a-date')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sold_meter_lookup(self):
        response = self.client.get('/api/v1/sales/sold-meters/lookup/?serial=wt0001')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['reference_number'], self.sale.reference_number)

        response = self.client.get('/api/v1/sales/sold-meters/lookup/?serial=NOPE')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ReturnTests(TestCase):
    """Test returns of sold meters"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.sold = TestDataFactory.create_meters(3, meter_type='smart', prefix='RT')
        self.sale = TestDataFactory.create_sale(self.user, self.sold, unit_price=Decimal('5000.00'))
        self.spare = TestDataFactory.create_meter(serial_number='SPARE1', meter_type='smart')

    def test_healthy_return_restocks(self):
        response = self.client.post('/api/v1/sales/returns/', {
            'meters': [{'serial_number': 'rt0001', 'status': 'healthy'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['returned'], ['RT0001'])
        self.assertEqual(Meter.objects.get(serial_number='RT0001').status, 'in_stock')
        self.assertEqual(SoldMeter.objects.get(serial_number='RT0001').status, 'returned')

    def test_returned_meter_can_be_sold_again(self):
        return_sold_meters(self.user, [{'serial_number': 'RT0001', 'status': 'healthy'}])
        TestDataFactory.create_sale(self.user, [Meter.objects.get(serial_number='RT0001')])
        self.assertEqual(SoldMeter.objects.filter(serial_number='RT0001').count(), 2)
        self.assertEqual(SoldMeter.objects.filter(serial_number='RT0001', status='sold').count(), 1)

    def test_faulty_return(self):
        summary = return_sold_meters(self.user, [
            {'serial_number': 'RT0002', 'status': 'faulty', 'fault_description': 'Display blank'},
        ])
        self.assertEqual(summary['faulty'], ['RT0002'])
        self.assertEqual(Meter.objects.get(serial_number='RT0002').status, 'faulty')
        record = FaultyReturn.objects.get(serial_number='RT0002')
        self.assertEqual(record.status, 'pending')
        self.assertEqual(record.meter_type, 'smart')

    def test_faulty_requires_description(self):
        with self.assertRaises(InventoryError):
            return_sold_meters(self.user, [{'serial_number': 'RT0002', 'status': 'faulty'}])

    def test_faulty_with_replacement(self):
        response = self.client.post('/api/v1/sales/returns/', {
            'meters': [{
                'serial_number': 'RT0003', 'status': 'faulty',
                'fault_description': 'No power', 'replacement_serial': 'spare1',
            }],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['replaced'], [{'serial_number': 'RT0003', 'replacement_serial': 'SPARE1'}])

        self.assertEqual(Meter.objects.get(serial_number='RT0003').status, 'replaced')
        self.assertEqual(Meter.objects.get(serial_number='SPARE1').status, 'sold')
        original = SoldMeter.objects.get(serial_number='RT0003')
        self.assertEqual(original.status, 'replaced')
        self.assertEqual(original.replacement_serial, 'SPARE1')
        replacement = SoldMeter.objects.get(serial_number='SPARE1')
        self.assertEqual(replacement.batch_id, original.batch_id)
        self.assertEqual(replacement.unit_price, Decimal('5000.00'))
        self.assertEqual(SaleBatch.objects.get(pk=original.batch_id).batch_amount, 3)
        self.assertTrue(AuditLog.objects.filter(action='meter_replace').exists())

        response = self.client.get('/api/v1/sales/replacements/')
        self.assertEqual([row['serial_number'] for row in response.data], ['RT0003'])

    def test_replacement_must_match_type(self):
        TestDataFactory.create_meter(serial_number='GASSPARE', meter_type='gas')
        response = self.client.post('/api/v1/sales/returns/', {
            'meters': [{
                'serial_number': 'RT0003', 'status': 'faulty',
                'fault_description': 'No power', 'replacement_serial': 'GASSPARE',
            }],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Meter.objects.get(serial_number='RT0003').status, 'sold')
        self.assertEqual(Meter.objects.get(serial_number='GASSPARE').status, 'in_stock')

    def test_return_unsold_meter(self):
        response = self.client.post('/api/v1/sales/returns/', {
            'meters': [{'serial_number': 'SPARE1', 'status': 'healthy'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_available_replacements(self):
        response = self.client.get('/api/v1/sales/replacements/available/?type=Smart')
        self.assertEqual([row['serial_number'] for row in response.data], ['SPARE1'])
        response = self.client.get('/api/v1/sales/replacements/available/?type=solar')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class FaultyStatusTests(TestCase):
    """Test repair tracking for faulty returns"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        meter = TestDataFactory.create_meter(serial_number='FT0001', meter_type='integrated')
        TestDataFactory.create_sale(self.user, [meter])
        return_sold_meters(self.user, [
            {'serial_number': 'FT0001', 'status': 'faulty', 'fault_description': 'Keypad broken'},
        ])
        self.record = FaultyReturn.objects.get(serial_number='FT0001')

    def test_list_filtered_by_status(self):
        response = self.client.get('/api/v1/sales/faulty/?status=pending')
        self.assertEqual(len(response.data), 1)
        response = self.client.get('/api/v1/sales/faulty/?status=repaired')
        self.assertEqual(response.data, [])

    def test_unrepairable_sets_resolver(self):
        response = self.client.patch(f'/api/v1/sales/faulty/{self.record.id}/', {'status': 'unrepairable'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['resolved_by'], self.user.id)
        self.assertEqual(Meter.objects.get(serial_number='FT0001').status, 'faulty')

        response = self.client.patch(f'/api/v1/sales/faulty/{self.record.id}/', {'status': 'pending'}, format='json')
        self.assertIsNone(response.data['resolved_by'])
        self.assertIsNone(response.data['resolved_at'])

    def test_repaired_restocks_and_locks_record(self):
        record = update_faulty_status(self.record, 'repaired', self.user)
        self.assertEqual(record.status, 'repaired')
        self.assertEqual(Meter.objects.get(serial_number='FT0001').status, 'in_stock')

        response = self.client.patch(f'/api/v1/sales/faulty/{self.record.id}/', {'status': 'pending'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_status(self):
        response = self.client.patch(f'/api/v1/sales/faulty/{self.record.id}/', {'status': 'lost'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_history_survives_meter_removal(self):
        Meter.objects.filter(serial_number='FT0001').delete()
        self.record.refresh_from_db()
        self.assertIsNone(self.record.meter_id)
        self.assertEqual(SoldMeter.objects.get(serial_number='FT0001').status, 'faulty')

        response = self.client.patch(f'/api/v1/sales/faulty/{self.record.id}/', {'status': 'repaired'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['serial_numbers'], ['FT0001'])
