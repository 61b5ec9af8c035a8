"""
Test suite for the notifications module
Tests: Feed, Polling, Read state
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from umspos.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from umspos.notifications.models import Notification
from umspos.notifications.services import notify


class NotifyServiceTests(TestCase):
    """Test creating notifications"""

    def test_metadata_is_json_safe(self):
        user = TestDataFactory.create_user()
        notification = notify('sale', 'Sold 2 meters', created_by=user, total_amount=Decimal('10.50'))
        self.assertEqual(notification.metadata['total_amount'], '10.50')
        self.assertEqual(notification.created_by, user)


class NotificationFeedTests(TestCase):
    """Test the notification feed"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='user')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.first = notify('system', 'First')
        self.second = notify('sale', 'Second')

    def test_feed_newest_first(self):
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([n['message'] for n in response.data['notifications']], ['Second', 'First'])
        self.assertEqual(response.data['unread_count'], 2)
        self.assertFalse(response.data['notifications'][0]['is_read'])

    def test_poll_after_id(self):
        response = self.client.get(f'/api/v1/notifications/?after_id={self.first.id}')
        self.assertEqual([n['id'] for n in response.data['notifications']], [self.second.id])

        response = self.client.get('/api/v1/notifications/?after_id=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_poll_from_zero_returns_everything_oldest_first(self):
        response = self.client.get('/api/v1/notifications/?after_id=0')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([n['id'] for n in response.data['notifications']], [self.first.id, self.second.id])

        response = self.client.get('/api/v1/notifications/?after_id=-1')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_poll_pages_forward_through_a_burst(self):
        burst = [notify('system', f'Burst {i}') for i in range(60)]

        response = self.client.get(f'/api/v1/notifications/?after_id={self.second.id}')
        ids = [n['id'] for n in response.data['notifications']]
        self.assertEqual(ids, [n.id for n in burst[:50]])

        response = self.client.get(f'/api/v1/notifications/?after_id={max(ids)}')
        self.assertEqual([n['id'] for n in response.data['notifications']], [n.id for n in burst[50:]])

    def test_mark_read_is_per_user(self):
        response = self.client.post(f'/api/v1/notifications/{self.first.id}/read/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.data['unread_count'], 1)
        read = {n['id']: n['is_read'] for n in response.data['notifications']}
        self.assertTrue(read[self.first.id])

        other = TestDataFactory.create_user(role='user')
        client = AuthenticatedAPIClient().authenticate_user(other)
        response = client.get('/api/v1/notifications/')
        self.assertEqual(response.data['unread_count'], 2)

    def test_mark_all_read(self):
        response = self.client.post('/api/v1/notifications/read-all/')
        self.assertEqual(response.data['marked'], 2)
        self.assertEqual(Notification.objects.exclude(read_by=self.user).count(), 0)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
