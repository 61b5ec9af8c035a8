from django.db import models
from umspos.core.models import User
from umspos.meters.constants import METER_TYPE_CHOICES


class Agent(models.Model):
    """Third-party distributor holding meters for onward sale"""
    name = models.CharField(max_length=255)
    phone_number = models.CharField(max_length=20, unique=True)
    location = models.CharField(max_length=255)
    county = models.CharField(max_length=50, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'agents'
        ordering = ['-created_at']


class AgentTransaction(models.Model):
    """One row per meter type for every assignment, return or sale"""
    TYPE_ASSIGNMENT = 'assignment'
    TYPE_RETURN = 'return'
    TYPE_SALE = 'sale'

    TRANSACTION_TYPE_CHOICES = [
        (TYPE_ASSIGNMENT, 'Assignment'),
        (TYPE_RETURN, 'Return'),
        (TYPE_SALE, 'Sale'),
    ]

    agent = models.ForeignKey(Agent, on_delete=models.CASCADE, related_name='transactions')
    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPE_CHOICES)
    meter_type = models.CharField(max_length=20, choices=METER_TYPE_CHOICES)
    quantity = models.PositiveIntegerField()
    reference_number = models.CharField(max_length=50, blank=True, null=True)
    performed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='agent_transactions')
    performer_name = models.CharField(max_length=255, blank=True)
    transaction_date = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.agent.name} {self.transaction_type} {self.quantity} x {self.meter_type}"

    class Meta:
        db_table = 'agent_transactions'
        ordering = ['-transaction_date']
        indexes = [
            models.Index(fields=['agent', '-transaction_date'], name='idx_agenttx_agent_date'),
        ]
