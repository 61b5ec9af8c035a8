"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from umspos.agents.models import Agent
from umspos.meters.models import Meter, PurchaseBatch
from umspos.sales.services import sell_meters
from decimal import Decimal
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(email=None, password='testpass123', role='admin', name=None, is_active=True, is_superuser=False):
        """Create a test user; email doubles as the username"""
        if not email:
            email = f'user_{TestDataFactory.random_string(6).lower()}@test.com'
        return User.objects.create_user(
            username=email,
            email=email,
            password=password,
            role=role,
            name=name if name is not None else f'Test {role.title()}',
            is_active=is_active,
            is_superuser=is_superuser,
        )

    @staticmethod
    def create_agent(name=None, phone_number=None, location='Nairobi CBD', county='Nairobi', is_active=True):
        """Create a test agent"""
        if not name:
            name = f'Agent_{TestDataFactory.random_string(6)}'
        if not phone_number:
            phone_number = f'07{random.randint(10000000, 99999999)}'
        return Agent.objects.create(
            name=name,
            phone_number=phone_number,
            location=location,
            county=county,
            is_active=is_active,
        )

    @staticmethod
    def create_purchase_batch(user=None, meter_type='integrated', quantity=1, unit_cost=Decimal('1000.00')):
        """Create a test purchase batch"""
        return PurchaseBatch.objects.create(
            batch_number=f'PB-TEST-{TestDataFactory.random_string(6).upper()}',
            meter_type=meter_type,
            quantity=quantity,
            unit_cost=unit_cost,
            purchase_date=timezone.localdate(),
            added_by=user,
            adder_name=user.display_name if user else '',
        )

    @staticmethod
    def create_meter(serial_number=None, meter_type='integrated', status='in_stock', agent=None, user=None):
        """Create a test meter"""
        if not serial_number:
            serial_number = f'SN{TestDataFactory.random_string(8).upper()}'
        return Meter.objects.create(
            serial_number=serial_number,
            type=meter_type,
            status=status,
            agent=agent,
            assigned_at=timezone.now() if agent else None,
            added_by=user,
            adder_name=user.display_name if user else '',
        )

    @staticmethod
    def create_meters(count, meter_type='integrated', prefix=None, **kwargs):
        """Create several meters with sequential serial numbers"""
        if not prefix:
            prefix = f'SN{TestDataFactory.random_string(4).upper()}'
        return [
            TestDataFactory.create_meter(serial_number=f'{prefix}{i:04d}', meter_type=meter_type, **kwargs)
            for i in range(1, count + 1)
        ]

    @staticmethod
    def create_sale(user, meters, unit_price=Decimal('2500.00'), recipient='John Doe',
                    destination='Nairobi', customer_type='walk in', sale_date=None):
        """Sell in-stock meters through the sales service"""
        types = {meter.type for meter in meters}
        return sell_meters(
            user,
            [meter.serial_number for meter in meters],
            {
                'destination': destination,
                'recipient': recipient,
                'customer_type': customer_type,
                'sale_date': sale_date,
            },
            {meter_type: unit_price for meter_type in types},
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
