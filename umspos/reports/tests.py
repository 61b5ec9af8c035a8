"""
Test suite for the reports module
Tests: Top sellers, Most selling product, Earnings, Agent inventory, Customer types,
Daily and time-range reports, Stock alerts, Sales export, Cache invalidation
"""
from datetime import date, timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from umspos.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from umspos.meters.models import MinimumStockLevel
from umspos.reports.queries import calculate_report_metrics
from umspos.sales.models import SaleBatch


class ReportsTests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role='admin', name='Alice')
        self.clerk = TestDataFactory.create_user(role='user', name='Bob')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

        split = TestDataFactory.create_meters(3, meter_type='split', prefix='RS')
        gas = TestDataFactory.create_meters(2, meter_type='gas', prefix='RG')
        TestDataFactory.create_meters(2, meter_type='water', prefix='RW')
        TestDataFactory.create_sale(self.admin, split[:2], unit_price=Decimal('1000.00'), customer_type='technician')
        TestDataFactory.create_sale(self.clerk, gas, unit_price=Decimal('4000.00'))

    def test_top_sellers(self):
        response = self.client.get('/api/v1/reports/top-sellers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['user_name'] for row in response.data], ['Bob', 'Alice'])
        self.assertEqual(response.data[0]['total_sales'], 8000.0)

    def test_most_selling_product(self):
        response = self.client.get('/api/v1/reports/most-selling-product/')
        self.assertEqual(response.data['product'], 'gas')

    def test_most_selling_product_without_sales(self):
        SaleBatch.objects.all().delete()
        response = self.client.get('/api/v1/reports/most-selling-product/')
        self.assertEqual(response.data['product'], '')

    def test_earnings_admin_only(self):
        response = self.client.get('/api/v1/reports/earnings/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_earnings'], 10000.0)
        by_type = {row['meter_type']: row['total_earnings'] for row in response.data['earnings']}
        self.assertEqual(by_type, {'gas': 8000.0, 'split': 2000.0})

        accountant = TestDataFactory.create_user(role='accountant')
        client = AuthenticatedAPIClient().authenticate_user(accountant)
        response = client.get('/api/v1/reports/earnings/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_user_role_cannot_view_reports(self):
        client = AuthenticatedAPIClient().authenticate_user(self.clerk)
        response = client.get('/api/v1/reports/top-sellers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = client.get('/api/v1/reports/daily/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_customer_types(self):
        response = self.client.get('/api/v1/reports/customer-types/')
        counts = {row['customer_type']: row['count'] for row in response.data}
        self.assertEqual(counts['technician'], 2)
        self.assertEqual(counts['walk in'], 2)
        self.assertEqual(counts['online'], 0)

    def test_agent_inventory(self):
        agent = TestDataFactory.create_agent(name='Zawadi')
        TestDataFactory.create_meter(status='with_agent', agent=agent, meter_type='smart')
        response = self.client.get('/api/v1/reports/agent-inventory/')
        self.assertEqual(response.data['total_meters'], 1)
        self.assertEqual(response.data['agents'][0]['agent_name'], 'Zawadi')
        self.assertEqual(response.data['agents'][0]['by_type'], {'smart': 1})

    def test_daily(self):
        response = self.client.get('/api/v1/reports/daily/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_sales'], 2)
        self.assertEqual(response.data['total_earnings'], 10000.0)
        self.assertEqual(response.data['remaining_meters_by_type'], [
            {'type': 'split', 'remaining_meters': 1},
            {'type': 'water', 'remaining_meters': 2},
        ])

    def test_time_range(self):
        today = timezone.localdate()
        response = self.client.get('/api/v1/reports/time-range/', {
            'start_date': (today - timedelta(days=4)).isoformat(),
            'end_date': today.isoformat(),
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        metrics = response.data['metrics']
        self.assertEqual(metrics['total_sales'], 10000.0)
        self.assertEqual(metrics['average_daily_sales'], 2000.0)
        self.assertEqual(metrics['total_meters'], 4)
        self.assertEqual(metrics['meters_by_type'], {'split': 2, 'gas': 2})
        self.assertEqual(len(response.data['sales']), 2)

    def test_time_range_excludes_other_days(self):
        response = self.client.get('/api/v1/reports/time-range/', {
            'start_date': '2020-01-01', 'end_date': '2020-01-31',
        })
        self.assertEqual(response.data['sales'], [])
        self.assertEqual(response.data['metrics']['total_sales'], 0.0)

    def test_time_range_validation(self):
        response = self.client.get('/api/v1/reports/time-range/?start_date=2024-02-01&end_date=2024-01-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/reports/time-range/?start_date=01-02-2024')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stock_alerts(self):
        MinimumStockLevel.objects.create(meter_type='water', minimum_level=1)
        MinimumStockLevel.objects.create(meter_type='split', minimum_level=1)
        response = self.client.get('/api/v1/reports/stock-alerts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['stock']), 6)
        low = {item['meter_type'] for item in response.data['low_stock']}
        self.assertIn('split', low)
        self.assertNotIn('water', low)

    def test_sales_export(self):
        response = self.client.get('/api/v1/reports/sales/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        lines = response.content.decode().strip().splitlines()
        self.assertTrue(lines[0].startswith('Reference,Sale Date,Sold By'))
        self.assertEqual(len(lines), 3)

    def test_cache_invalidated_by_new_sale(self):
        response = self.client.get('/api/v1/reports/most-selling-product/')
        self.assertEqual(response.data['product'], 'gas')

        with self.captureOnCommitCallbacks(execute=True):
            water = TestDataFactory.create_meters(3, meter_type='water', prefix='RX')
        with self.captureOnCommitCallbacks(execute=True):
            TestDataFactory.create_sale(self.admin, water)

        response = self.client.get('/api/v1/reports/most-selling-product/')
        self.assertEqual(response.data['product'], 'water')


class ReportMetricsTests(TestCase):
    """Test metric calculation"""

    def test_metrics_over_inclusive_range(self):
        batches = [
            SaleBatch(meter_type='split', batch_amount=2, unit_price=Decimal('100'), total_price=Decimal('200')),
            SaleBatch(meter_type='split', batch_amount=1, unit_price=Decimal('100'), total_price=Decimal('100')),
        ]
        metrics = calculate_report_metrics(batches, date(2024, 1, 1), date(2024, 1, 3))
        self.assertEqual(metrics['total_sales'], 300.0)
        self.assertEqual(metrics['average_daily_sales'], 100.0)
        self.assertEqual(metrics['total_meters'], 3)
        self.assertEqual(metrics['meters_by_type'], {'split': 3})

    def test_empty(self):
        metrics = calculate_report_metrics([], date(2024, 1, 1), date(2024, 1, 1))
        self.assertEqual(metrics['total_sales'], 0.0)
        self.assertEqual(metrics['meters_by_type'], {})
