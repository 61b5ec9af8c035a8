"""
Test suite for the core module
Tests: Login, Signup, Invitations, Users, Permissions, Audit Logs, Cache
"""
from datetime import timedelta
from unittest import mock

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from umspos.core.cache_signals import suspend_cache_signals
from umspos.core.cache_utils import REPORTS_NAMESPACE, cached_query, get_generation, invalidate_reports_cache
from umspos.core.emails import send_welcome_email
from umspos.core.models import AuditLog, User, UserInvitation
from umspos.core.permissions import ADD_METER, VIEW_REPORTS, has_permission, user_has_permission
from umspos.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class LoginTests(TestCase):
    """Test email/password login"""

    def setUp(self):
        self.client = APIClient()
        self.user = TestDataFactory.create_user(email='clerk@test.com', role='user', name='Clerk')

    def test_login_returns_tokens_and_user(self):
        response = self.client.post('/api/v1/auth/login/', {'email': 'clerk@test.com', 'password': 'testpass123'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['role'], 'user')

    def test_login_is_case_insensitive_on_email(self):
        response = self.client.post('/api/v1/auth/login/', {'email': 'CLERK@test.com', 'password': 'testpass123'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'email': 'clerk@test.com', 'password': 'nope'})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_deactivated_account(self):
        """A deactivated user with the right password is told why"""
        self.user.is_active = False
        self.user.save()
        response = self.client.post('/api/v1/auth/login/', {'email': 'clerk@test.com', 'password': 'testpass123'})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['code'], 'ACCOUNT_DEACTIVATED')

    def test_refresh(self):
        login = self.client.post('/api/v1/auth/login/', {'email': 'clerk@test.com', 'password': 'testpass123'})
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_after_user_deleted(self):
        """A refresh token outlives its user only as an invalid token"""
        login = self.client.post('/api/v1/auth/login/', {'email': 'clerk@test.com', 'password': 'testpass123'})
        self.user.delete()
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['code'], 'token_not_valid')

    def test_me_includes_permissions(self):
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_admin'])
        self.assertTrue(response.data['permissions']['manage_sales'])
        self.assertFalse(response.data['permissions']['add_meter'])


class PermissionTableTests(TestCase):
    """Test the role permission table"""

    def test_roles(self):
        self.assertTrue(has_permission('admin', ADD_METER))
        self.assertFalse(has_permission('accountant', ADD_METER))
        self.assertTrue(has_permission('accountant', VIEW_REPORTS))
        self.assertFalse(has_permission('user', VIEW_REPORTS))

    def test_unknown_role_gets_nothing(self):
        self.assertFalse(has_permission('intern', VIEW_REPORTS))

    def test_superuser_bypasses_table(self):
        user = TestDataFactory.create_user(role='user', is_superuser=True)
        self.assertTrue(user_has_permission(user, ADD_METER))

    def test_inactive_user_has_no_permissions(self):
        user = TestDataFactory.create_user(role='admin', is_active=False)
        self.assertFalse(user_has_permission(user, ADD_METER))


@override_settings(RESEND_API_KEY='test-key')
class InvitationTests(TestCase):
    """Test invitations and invitation signup"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    @mock.patch('umspos.core.emails.requests.post')
    def test_create_invitation_sends_email(self, mock_post):
        mock_post.return_value = mock.Mock(status_code=200)
        response = self.client.post('/api/v1/invitations/', {'email': 'New@Test.com', 'role': 'accountant'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['email'], 'new@test.com')
        invitation = UserInvitation.objects.get(email='new@test.com')
        self.assertEqual(invitation.role, 'accountant')
        self.assertTrue(mock_post.called)
        self.assertIn(invitation.token, mock_post.call_args.kwargs['json']['html'])

    @mock.patch('umspos.core.emails.requests.post')
    def test_reinvite_refreshes_token(self, mock_post):
        mock_post.return_value = mock.Mock(status_code=200)
        self.client.post('/api/v1/invitations/', {'email': 'new@test.com', 'role': 'user'})
        first_token = UserInvitation.objects.get(email='new@test.com').token
        self.client.post('/api/v1/invitations/', {'email': 'new@test.com', 'role': 'admin'})
        invitation = UserInvitation.objects.get(email='new@test.com')
        self.assertNotEqual(invitation.token, first_token)
        self.assertEqual(invitation.role, 'admin')
        self.assertEqual(UserInvitation.objects.count(), 1)

    @mock.patch('umspos.core.emails.requests.post')
    def test_email_failure_returns_502(self, mock_post):
        mock_post.return_value = mock.Mock(status_code=422, text='bad', json=lambda: {'message': 'Invalid to'})
        response = self.client.post('/api/v1/invitations/', {'email': 'new@test.com', 'role': 'user'})
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)

    @mock.patch('umspos.core.emails.requests.post')
    def test_welcome_email_escapes_name(self, mock_post):
        mock_post.return_value = mock.Mock(status_code=200)
        send_welcome_email('new@test.com', '<script>alert(1)</script>')
        html = mock_post.call_args.kwargs['json']['html']
        self.assertNotIn('<script>', html)
        self.assertIn('&lt;script&gt;', html)

    def test_invite_existing_user_rejected(self):
        response = self.client.post('/api/v1/invitations/', {'email': self.admin.email, 'role': 'user'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_admin_cannot_invite(self):
        accountant = TestDataFactory.create_user(role='accountant')
        client = AuthenticatedAPIClient().authenticate_user(accountant)
        response = client.post('/api/v1/invitations/', {'email': 'new@test.com', 'role': 'user'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_revoke_invitation(self):
        self._invitation('gone@test.com')
        response = self.client.delete('/api/v1/invitations/?email=gone@test.com')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(UserInvitation.objects.filter(email='gone@test.com').exists())

        response = self.client.delete('/api/v1/invitations/?email=gone@test.com')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_check_token(self):
        invitation = self._invitation('check@test.com')
        anonymous = APIClient()
        response = anonymous.get(f'/api/v1/invitations/check/?token={invitation.token}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'check@test.com')

        response = anonymous.get('/api/v1/invitations/check/?token=unknown')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_signup_consumes_invitation(self):
        invitation = self._invitation('joiner@test.com', role='accountant')
        anonymous = APIClient()
        response = anonymous.post('/api/v1/auth/signup/', {
            'token': invitation.token, 'password': 'Sup3r-Secret-Pass', 'name': 'Joiner',
        })
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        user = User.objects.get(email='joiner@test.com')
        self.assertEqual(user.role, 'accountant')
        invitation.refresh_from_db()
        self.assertTrue(invitation.is_used)

        response = anonymous.post('/api/v1/auth/signup/', {
            'token': invitation.token, 'password': 'Sup3r-Secret-Pass', 'name': 'Again',
        })
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_signup_with_expired_invitation(self):
        invitation = self._invitation('late@test.com')
        invitation.expires_at = timezone.now() - timedelta(minutes=1)
        invitation.save()
        response = APIClient().post('/api/v1/auth/signup/', {
            'token': invitation.token, 'password': 'Sup3r-Secret-Pass', 'name': 'Late',
        })
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(User.objects.filter(email='late@test.com').exists())

    def _invitation(self, email, role='user'):
        now = timezone.now()
        return UserInvitation.objects.create(
            email=email, role=role, token=TestDataFactory.random_string(32), invited_by=self.admin,
            invited_at=now, expires_at=now + timedelta(days=7),
        )


class UserTests(TestCase):
    """Test user management"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_list_users(self):
        TestDataFactory.create_user(role='user')
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

    @override_settings(RESEND_API_KEY='')
    def test_create_user(self):
        """Without an API key the welcome email is skipped"""
        response = self.client.post('/api/v1/users/', {
            'email': 'Cashier@Test.com', 'password': 'Sup3r-Secret-Pass', 'name': 'Cashier', 'role': 'user',
        })
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        user = User.objects.get(email='cashier@test.com')
        self.assertEqual(user.username, 'cashier@test.com')
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='User', object_id=str(user.id)).exists())

    def test_blank_name_shown_as_na(self):
        user = TestDataFactory.create_user(role='user', name='')
        response = self.client.get(f'/api/v1/users/{user.id}/')
        self.assertEqual(response.data['name'], 'N/A')

    def test_update_role(self):
        user = TestDataFactory.create_user(role='user')
        response = self.client.patch(f'/api/v1/users/{user.id}/', {'role': 'accountant'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.role, 'accountant')

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_user(self):
        user = TestDataFactory.create_user(role='user')
        response = self.client.delete(f'/api/v1/users/{user.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=user.id).exists())

    def test_user_role_cannot_manage_users(self):
        clerk = TestDataFactory.create_user(role='user')
        client = AuthenticatedAPIClient().authenticate_user(clerk)
        response = client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AuditLogTests(TestCase):
    """Test audit log visibility"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role='admin')
        self.clerk = TestDataFactory.create_user(role='user')
        self.admin_log = AuditLog.objects.create(user=self.admin, action='create', model_name='Agent', object_id='1')
        self.clerk_log = AuditLog.objects.create(user=self.clerk, action='meter_sale', model_name='SalesTransaction', object_id='2')

    def test_admin_sees_all(self):
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

    def test_user_sees_own(self):
        client = AuthenticatedAPIClient().authenticate_user(self.clerk)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual([row['id'] for row in response.data], [self.clerk_log.id])

        response = client.get(f'/api/v1/audit-logs/{self.admin_log.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_filter_by_action(self):
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?action=meter_sale')
        self.assertEqual(len(response.data), 1)

    def test_bad_date(self):
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?date_from=yesterday')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CacheTests(TestCase):
    """Test namespaced report caching"""

    def setUp(self):
        cache.clear()

    def test_cached_until_invalidated(self):
        calls = []

        @cached_query(REPORTS_NAMESPACE)
        def expensive():
            calls.append(1)
            return len(calls)

        self.assertEqual(expensive(), 1)
        self.assertEqual(expensive(), 1)
        generation = get_generation(REPORTS_NAMESPACE)
        invalidate_reports_cache()
        self.assertEqual(get_generation(REPORTS_NAMESPACE), generation + 1)
        self.assertEqual(expensive(), 2)

    def test_saving_a_meter_bumps_generation_on_commit(self):
        generation = get_generation(REPORTS_NAMESPACE)
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            TestDataFactory.create_meter()
            self.assertEqual(get_generation(REPORTS_NAMESPACE), generation)
        self.assertTrue(callbacks)
        self.assertGreater(get_generation(REPORTS_NAMESPACE), generation)

    def test_suspended_signals_do_not_invalidate(self):
        generation = get_generation(REPORTS_NAMESPACE)
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with suspend_cache_signals():
                TestDataFactory.create_meter()
        self.assertEqual(callbacks, [])
        self.assertEqual(get_generation(REPORTS_NAMESPACE), generation)
