"""
Test suite for the agents module
Tests: Agent CRUD, Assignment, Returns, Agent sales, Deletion with scanned meters
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from umspos.agents.models import Agent, AgentTransaction
from umspos.core.exceptions import InventoryError
from umspos.core.models import AuditLog
from umspos.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from umspos.meters.models import Meter, MinimumStockLevel
from umspos.notifications.models import Notification
from umspos.sales.models import SoldMeter
from umspos.sales.services import return_sold_meters
from umspos.agents.services import assign_meters_to_agent, delete_agent, record_agent_sale
from umspos.core.cache_utils import INVENTORY_NAMESPACE, get_generation


class AgentCRUDTests(TestCase):
    """Test agent registration and editing"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_create_agent(self):
        response = self.client.post('/api/v1/agents/', {
            'name': 'Peter Otieno', 'phone_number': '0712345678', 'location': 'Kisumu Town', 'county': 'Kisumu',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_active'])
        self.assertEqual(response.data['total_meters'], 0)

    def test_duplicate_phone_rejected(self):
        TestDataFactory.create_agent(phone_number='0712345678')
        response = self.client.post('/api/v1/agents/', {
            'name': 'Other', 'phone_number': '0712345678', 'location': 'Thika',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone_number', response.data)

    def test_invalid_county(self):
        response = self.client.post('/api/v1/agents/', {
            'name': 'Other', 'phone_number': '0799999999', 'location': 'Thika', 'county': 'Atlantis',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_accountant_cannot_create(self):
        accountant = TestDataFactory.create_user(role='accountant')
        client = AuthenticatedAPIClient().authenticate_user(accountant)
        response = client.post('/api/v1/agents/', {
            'name': 'Other', 'phone_number': '0799999999', 'location': 'Thika',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_with_totals(self):
        agent = TestDataFactory.create_agent()
        TestDataFactory.create_meter(status='with_agent', agent=agent)
        TestDataFactory.create_meter(status='with_agent', agent=agent)
        response = self.client.get('/api/v1/agents/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['total_meters'], 2)

    def test_deactivate(self):
        agent = TestDataFactory.create_agent()
        response = self.client.patch(f'/api/v1/agents/{agent.id}/', {'is_active': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        agent.refresh_from_db()
        self.assertFalse(agent.is_active)


class AgentAssignmentTests(TestCase):
    """Test assigning and returning meters"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role='admin')
        self.agent = TestDataFactory.create_agent(name='Grace')
        self.meters = TestDataFactory.create_meters(3, meter_type='split', prefix='AS')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_assign(self):
        response = self.client.post(f'/api/v1/agents/{self.agent.id}/assign/', {
            'serial_numbers': ['as0001', 'AS0002'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['assigned_count'], 2)
        self.assertEqual(response.data['agent']['total_meters'], 2)

        meter = Meter.objects.get(serial_number='AS0001')
        self.assertEqual(meter.status, 'with_agent')
        self.assertEqual(meter.agent_id, self.agent.id)
        self.assertIsNotNone(meter.assigned_at)

        tx = AgentTransaction.objects.get(agent=self.agent)
        self.assertEqual(tx.transaction_type, 'assignment')
        self.assertEqual(tx.quantity, 2)
        self.assertTrue(AuditLog.objects.filter(action='meter_assign').exists())
        self.assertTrue(Notification.objects.filter(type='assignment').exists())

    def test_assign_is_all_or_nothing(self):
        self.meters[1].status = 'sold'
        self.meters[1].save()
        response = self.client.post(f'/api/v1/agents/{self.agent.id}/assign/', {
            'serial_numbers': ['AS0001', 'AS0002'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['serial_numbers'], ['AS0002'])
        self.assertEqual(Meter.objects.get(serial_number='AS0001').status, 'in_stock')

    def test_assign_unknown_serial(self):
        response = self.client.post(f'/api/v1/agents/{self.agent.id}/assign/', {
            'serial_numbers': ['NOPE'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_inactive_agent_cannot_receive(self):
        self.agent.is_active = False
        self.agent.save()
        with self.assertRaises(InventoryError):
            assign_meters_to_agent(self.agent, ['AS0001'], self.admin)

    def test_low_stock_alert_after_assignment(self):
        MinimumStockLevel.objects.create(meter_type='split', minimum_level=2)
        assign_meters_to_agent(self.agent, ['AS0001', 'AS0002'], self.admin)
        alert = Notification.objects.get(type='stock_alert')
        self.assertEqual(alert.metadata['meter_type'], 'split')
        self.assertEqual(alert.metadata['remaining'], 1)

    def test_return(self):
        assign_meters_to_agent(self.agent, ['AS0001', 'AS0002'], self.admin)
        response = self.client.post(f'/api/v1/agents/{self.agent.id}/return/', {
            'serial_numbers': ['AS0001'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        meter = Meter.objects.get(serial_number='AS0001')
        self.assertEqual(meter.status, 'in_stock')
        self.assertIsNone(meter.agent)

    def test_return_meter_of_other_agent(self):
        other = TestDataFactory.create_agent()
        assign_meters_to_agent(other, ['AS0001'], self.admin)
        response = self.client.post(f'/api/v1/agents/{self.agent.id}/return/', {
            'serial_numbers': ['AS0001'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_inventory_and_lookup(self):
        assign_meters_to_agent(self.agent, ['AS0001'], self.admin)
        response = self.client.get(f'/api/v1/agents/{self.agent.id}/inventory/')
        self.assertEqual([m['serial_number'] for m in response.data], ['AS0001'])

        response = self.client.get(f'/api/v1/agents/{self.agent.id}/inventory/lookup/?serial=as0001')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get(f'/api/v1/agents/{self.agent.id}/inventory/lookup/?serial=AS0003')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class AgentSaleTests(TestCase):
    """Test recording sales made by agents"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role='admin')
        self.agent = TestDataFactory.create_agent(name='Grace', location='Eldoret', county='Uasin Gishu')
        TestDataFactory.create_meters(2, meter_type='gas', prefix='AG')
        assign_meters_to_agent(self.agent, ['AG0001', 'AG0002'], self.admin)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_agent_sale(self):
        response = self.client.post(f'/api/v1/agents/{self.agent.id}/sales/', {
            'serial_numbers': ['AG0001'],
            'unit_prices': {'gas': '3000.00'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['recipient'], 'Grace')
        self.assertEqual(response.data['customer_type'], 'agent')
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('3000.00'))

        meter = Meter.objects.get(serial_number='AG0001')
        self.assertEqual(meter.status, 'sold')
        self.assertIsNone(meter.agent)
        sale_tx = AgentTransaction.objects.get(agent=self.agent, transaction_type='sale')
        self.assertEqual(sale_tx.reference_number, response.data['reference_number'])
        self.assertTrue(AuditLog.objects.filter(action='agent_sale').exists())

    def test_agent_sale_requires_price(self):
        response = self.client.post(f'/api/v1/agents/{self.agent.id}/sales/', {
            'serial_numbers': ['AG0001'],
            'unit_prices': {},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Meter.objects.get(serial_number='AG0001').status, 'with_agent')

    def test_transactions_history(self):
        response = self.client.get(f'/api/v1/agents/{self.agent.id}/transactions/?type=assignment')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['quantity'], 2)

    def test_agent_sale_invalidates_reports_after_commit(self):
        generation = get_generation(INVENTORY_NAMESPACE)
        with self.captureOnCommitCallbacks(execute=True):
            record_agent_sale(self.agent, ['AG0002'], {'gas': '3000.00'}, self.admin)
            self.assertEqual(get_generation(INVENTORY_NAMESPACE), generation)
        self.assertGreater(get_generation(INVENTORY_NAMESPACE), generation)


class AgentDeleteTests(TestCase):
    """Test deleting an agent that still holds meters"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role='admin')
        self.agent = TestDataFactory.create_agent()
        TestDataFactory.create_meters(3, meter_type='water', prefix='DL')
        assign_meters_to_agent(self.agent, ['DL0001', 'DL0002', 'DL0003'], self.admin)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_unscanned_meters_block_delete(self):
        response = self.client.delete(f'/api/v1/agents/{self.agent.id}/', {
            'scanned_serials': ['DL0001'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['serial_numbers'], ['DL0002', 'DL0003'])
        self.assertTrue(Agent.objects.filter(pk=self.agent.id).exists())
        self.assertEqual(Meter.objects.filter(status='with_agent').count(), 3)

    def test_delete_with_all_scanned(self):
        result = delete_agent(self.agent, ['dl0001', 'DL0002', 'DL0003'], self.admin)
        self.assertEqual(result, {'restored_count': 3, 'deleted_count': 0})
        self.assertFalse(Agent.objects.filter(pk=self.agent.id).exists())
        self.assertEqual(Meter.objects.filter(status='in_stock').count(), 3)

    def test_write_off_unscanned(self):
        response = self.client.delete(f'/api/v1/agents/{self.agent.id}/', {
            'scanned_serials': ['DL0001'],
            'write_off_unscanned': True,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'restored_count': 1, 'deleted_count': 2})
        self.assertEqual(list(Meter.objects.values_list('serial_number', flat=True)), ['DL0001'])
        self.assertTrue(AuditLog.objects.filter(action='meter_write_off').exists())

    def test_sold_history_survives_delete(self):
        meter = TestDataFactory.create_meter(serial_number='DLSOLD')
        TestDataFactory.create_sale(self.admin, [meter])
        delete_agent(self.agent, ['DL0001', 'DL0002', 'DL0003'], self.admin)
        self.assertTrue(SoldMeter.objects.filter(serial_number='DLSOLD').exists())

    def test_write_off_keeps_earlier_sale_history(self):
        meter = TestDataFactory.create_meter(serial_number='DLOLD', meter_type='water')
        TestDataFactory.create_sale(self.admin, [meter])
        return_sold_meters(self.admin, [{'serial_number': 'DLOLD', 'status': 'healthy'}])
        assign_meters_to_agent(self.agent, ['DLOLD'], self.admin)

        result = delete_agent(self.agent, ['DL0001', 'DL0002', 'DL0003'], self.admin, write_off_unscanned=True)
        self.assertEqual(result['deleted_count'], 1)
        self.assertFalse(Meter.objects.filter(serial_number='DLOLD').exists())
        history = SoldMeter.objects.get(serial_number='DLOLD')
        self.assertIsNone(history.meter_id)
        self.assertEqual(history.batch.batch_amount, 1)
