"""
Test suite for the meters module
Tests: Adding stock, File import, Lookup, Search, All meters, Export, Purchase batches, Stock levels
"""
import io
from decimal import Decimal

from django.conf import settings
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase
from openpyxl import Workbook
from rest_framework import status

from umspos.core.exceptions import DuplicateMeterError, InventoryError, MeterStateError
from umspos.core.models import AuditLog
from umspos.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from umspos.meters.constants import can_transition, normalize_meter_type
from umspos.meters.models import Meter, MinimumStockLevel, PurchaseBatch
from umspos.meters.services import add_meters, lock_meters, parse_meter_file
from umspos.notifications.models import Notification
from umspos.sales.models import SoldMeter
from umspos.sales.services import return_sold_meters


class MeterLifecycleTests(TestCase):
    """Test status transitions"""

    def test_allowed_transitions(self):
        self.assertTrue(can_transition('in_stock', 'with_agent'))
        self.assertTrue(can_transition('sold', 'replaced'))
        self.assertFalse(can_transition('in_stock', 'faulty'))
        self.assertFalse(can_transition('replaced', 'sold'))

    def test_transition_clears_agent(self):
        agent = TestDataFactory.create_agent()
        meter = TestDataFactory.create_meter(status='with_agent', agent=agent)
        meter.transition_to('in_stock')
        self.assertIsNone(meter.agent)
        self.assertIsNone(meter.assigned_at)

    def test_invalid_transition_raises(self):
        meter = TestDataFactory.create_meter()
        with self.assertRaises(MeterStateError):
            meter.transition_to('faulty')

    def test_normalize_meter_type(self):
        self.assertEqual(normalize_meter_type(' Split '), 'split')
        self.assertEqual(normalize_meter_type('3 PHASE'), '3 phase')
        self.assertIsNone(normalize_meter_type('solar'))


class AddMetersServiceTests(TestCase):
    """Test receiving meters into stock"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='admin')

    def test_one_batch_per_type(self):
        batches = add_meters(self.user, [
            {'serial_number': 'a001', 'type': 'split'},
            {'serial_number': 'A002', 'type': 'Split'},
            {'serial_number': 'G001', 'type': 'gas'},
        ], unit_costs={'split': '1500'})
        self.assertEqual(len(batches), 2)
        self.assertEqual(len({batch.batch_number for batch in batches}), 1)
        split = next(batch for batch in batches if batch.meter_type == 'split')
        self.assertEqual(split.quantity, 2)
        self.assertEqual(split.total_cost, Decimal('3000.00'))
        self.assertTrue(Meter.objects.filter(serial_number='A001', status='in_stock').exists())

    def test_existing_serial_rejects_whole_request(self):
        TestDataFactory.create_meter(serial_number='DUP001')
        with self.assertRaises(DuplicateMeterError) as ctx:
            add_meters(self.user, [
                {'serial_number': 'NEW001', 'type': 'split'},
                {'serial_number': 'dup001', 'type': 'split'},
            ])
        self.assertEqual(ctx.exception.serial_numbers, ['DUP001'])
        self.assertFalse(Meter.objects.filter(serial_number='NEW001').exists())
        self.assertEqual(PurchaseBatch.objects.count(), 0)

    def test_duplicates_within_request(self):
        with self.assertRaises(InventoryError):
            add_meters(self.user, [
                {'serial_number': 'X1', 'type': 'split'},
                {'serial_number': 'x1', 'type': 'split'},
            ])

    def test_invalid_type(self):
        with self.assertRaises(InventoryError):
            add_meters(self.user, [{'serial_number': 'X1', 'type': 'solar'}])

    def test_audit_and_notification(self):
        add_meters(self.user, [{'serial_number': 'N001', 'type': 'water'}])
        self.assertTrue(AuditLog.objects.filter(action='meter_add').exists())
        self.assertTrue(Notification.objects.filter(type='system').exists())

    def test_lock_meters_reports_missing_and_wrong_status(self):
        TestDataFactory.create_meter(serial_number='S1', status='sold')
        with self.assertRaises(InventoryError) as ctx:
            lock_meters(['NOPE'], 'in_stock')
        self.assertEqual(ctx.exception.status_code, 404)
        with self.assertRaises(MeterStateError):
            lock_meters(['S1'], 'in_stock')


class MeterFileParsingTests(TestCase):
    """Test CSV/XLSX parsing"""

    def test_csv(self):
        content = b'serial,type\nabc1,Split\n,gas\nabc2,solar\nabc3,water\n'
        meters, skipped = parse_meter_file('meters.csv', content)
        self.assertEqual(meters, [
            {'serial_number': 'ABC1', 'type': 'split'},
            {'serial_number': 'ABC3', 'type': 'water'},
        ])
        self.assertEqual(skipped, [3, 4])

    def test_xlsx(self):
        wb = Workbook()
        ws = wb.active
        ws.append(['Serial', 'Type'])
        ws.append(['x100', 'Integrated'])
        ws.append([12345, 'gas'])
        buffer = io.BytesIO()
        wb.save(buffer)
        meters, skipped = parse_meter_file('meters.xlsx', buffer.getvalue())
        self.assertEqual([m['serial_number'] for m in meters], ['X100', '12345'])
        self.assertEqual(skipped, [])

    def test_unsupported_extension(self):
        with self.assertRaises(ValueError):
            parse_meter_file('meters.pdf', b'')


class MeterAPITests(TestCase):
    """Test meter endpoints"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_add_meters(self):
        response = self.client.post('/api/v1/meters/', {
            'meters': [
                {'serial_number': 'API001', 'type': 'smart'},
                {'serial_number': 'API002', 'type': 'smart'},
            ],
            'unit_costs': {'smart': '4200.00'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['count'], 2)
        self.assertTrue(response.data['batch_number'].startswith('PB-'))

    def test_add_duplicate_returns_409(self):
        TestDataFactory.create_meter(serial_number='API001')
        response = self.client.post('/api/v1/meters/', {
            'meters': [{'serial_number': 'api001', 'type': 'smart'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['serial_numbers'], ['API001'])

    def test_user_role_cannot_add(self):
        clerk = TestDataFactory.create_user(role='user')
        client = AuthenticatedAPIClient().authenticate_user(clerk)
        response = client.post('/api/v1/meters/', {
            'meters': [{'serial_number': 'API001', 'type': 'smart'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_in_stock_only(self):
        TestDataFactory.create_meter(serial_number='IN1', meter_type='gas')
        TestDataFactory.create_meter(serial_number='OUT1', status='sold')
        response = self.client.get('/api/v1/meters/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([m['serial_number'] for m in response.data], ['IN1'])

        response = self.client.get('/api/v1/meters/?type=water')
        self.assertEqual(response.data, [])

    def test_import_preview(self):
        upload = SimpleUploadedFile('meters.csv', b'serial,type\nf1,gas\nf2,unknown\n', content_type='text/csv')
        response = self.client.post('/api/v1/meters/import/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['meters'], [{'serial_number': 'F1', 'type': 'gas'}])
        self.assertEqual(response.data['skipped_rows'], [3])
        self.assertFalse(Meter.objects.exists())

    def test_delete_only_in_stock(self):
        in_stock = TestDataFactory.create_meter()
        sold = TestDataFactory.create_meter(status='sold')
        response = self.client.delete(f'/api/v1/meters/{sold.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/v1/meters/{in_stock.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Meter.objects.filter(pk=in_stock.id).exists())

    def test_delete_keeps_sale_history(self):
        """A meter sold once and returned healthy can be removed without losing its receipt"""
        meter = TestDataFactory.create_meter(serial_number='HIST1', meter_type='gas')
        sale = TestDataFactory.create_sale(self.admin, [meter])
        return_sold_meters(self.admin, [{'serial_number': 'HIST1', 'status': 'healthy'}])

        response = self.client.delete(f'/api/v1/meters/{meter.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Meter.objects.filter(serial_number='HIST1').exists())

        history = SoldMeter.objects.get(serial_number='HIST1')
        self.assertIsNone(history.meter_id)
        self.assertEqual(history.status, 'returned')

        response = self.client.get('/api/v1/sales/transactions/by-reference/', {'reference': sale.reference_number})
        self.assertEqual(response.data['meters'], [{'serial_number': 'HIST1', 'type': 'gas'}])

    def test_check_and_lookup(self):
        TestDataFactory.create_meter(serial_number='CHK1', status='sold')
        response = self.client.get('/api/v1/meters/check/?serial=chk1')
        self.assertTrue(response.data['exists'])
        self.assertEqual(response.data['status'], 'sold')

        response = self.client.get('/api/v1/meters/lookup/?serial=CHK1')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_search(self):
        agent = TestDataFactory.create_agent(name='Mary')
        TestDataFactory.create_meters(7, prefix='SRCH')
        TestDataFactory.create_meter(serial_number='SRCHAGENT', status='with_agent', agent=agent)
        response = self.client.get('/api/v1/meters/search/?q=srch')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        in_stock = [row for row in response.data if row['status'] == 'in_stock']
        self.assertEqual(len(in_stock), 5)
        with_agent = [row for row in response.data if row['status'] == 'with_agent']
        self.assertEqual(with_agent[0]['agent']['name'], 'Mary')

        response = self.client.get('/api/v1/meters/search/?q=s')
        self.assertEqual(response.data, [])

    def test_all_meters_paginated(self):
        TestDataFactory.create_meters(3)
        response = self.client.get('/api/v1/meters/all/?page_size=2')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(len(response.data['results']), 2)

    def test_all_meters_show_sale_details(self):
        meter = TestDataFactory.create_meter()
        TestDataFactory.create_sale(self.admin, [meter], recipient='Jane')
        response = self.client.get('/api/v1/meters/all/?status=sold')
        row = response.data['results'][0]
        self.assertEqual(row['sale_details']['recipient'], 'Jane')
        self.assertIsNone(row['agent_details'])

    def test_export_csv(self):
        TestDataFactory.create_meter(serial_number='EXP1')
        response = self.client.get('/api/v1/meters/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv; charset=utf-8')
        body = response.content.decode()
        self.assertTrue(body.startswith('serial_number,type,status'))
        self.assertIn('EXP1', body)

    def test_purchase_batches_remaining(self):
        add_meters(self.admin, [
            {'serial_number': 'PBR1', 'type': 'gas'},
            {'serial_number': 'PBR2', 'type': 'gas'},
        ])
        TestDataFactory.create_sale(self.admin, [Meter.objects.get(serial_number='PBR1')])
        response = self.client.get('/api/v1/meters/purchase-batches/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['quantity'], 2)
        self.assertEqual(response.data[0]['remaining_meters'], 1)

    def test_stock_levels(self):
        response = self.client.get('/api/v1/meters/stock-levels/')
        self.assertEqual(response.data['gas'], settings.DEFAULT_MINIMUM_STOCK_LEVEL)

        response = self.client.put('/api/v1/meters/stock-levels/', {'Gas': 3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['gas'], 3)

        response = self.client.put('/api/v1/meters/stock-levels/', {'gas': -1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class MeterCommandTests(TestCase):
    """Test management commands"""

    def test_seed_stock_levels(self):
        MinimumStockLevel.objects.create(meter_type='gas', minimum_level=2)
        call_command('seed_stock_levels', level=5, stdout=io.StringIO())
        self.assertEqual(MinimumStockLevel.objects.count(), 6)
        self.assertEqual(MinimumStockLevel.objects.get(meter_type='gas').minimum_level, 2)
        self.assertEqual(MinimumStockLevel.objects.get(meter_type='split').minimum_level, 5)
