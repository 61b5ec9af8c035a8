from django.conf import settings
from django.db import models
from decimal import Decimal
from umspos.core.exceptions import MeterStateError
from umspos.core.models import User
from .constants import (
    METER_TYPE_CHOICES, METER_TYPES, METER_STATUS_CHOICES,
    STATUS_IN_STOCK, STATUS_WITH_AGENT, can_transition,
)


class PurchaseBatch(models.Model):
    """One meter-type group of a stock purchase"""
    batch_number = models.CharField(max_length=50, db_index=True)
    meter_type = models.CharField(max_length=20, choices=METER_TYPE_CHOICES)
    quantity = models.PositiveIntegerField()
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_cost = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    purchase_date = models.DateField()
    added_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='purchase_batches')
    adder_name = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        self.total_cost = (self.unit_cost or Decimal('0.00')) * self.quantity
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.batch_number} ({self.meter_type})"

    class Meta:
        db_table = 'purchase_batches'
        ordering = ['-purchase_date', '-created_at']


class Meter(models.Model):
    """A physical meter; `status` is the single source of truth for where it is"""
    serial_number = models.CharField(max_length=100, unique=True)
    type = models.CharField(max_length=20, choices=METER_TYPE_CHOICES)
    status = models.CharField(max_length=20, choices=METER_STATUS_CHOICES, default=STATUS_IN_STOCK)
    agent = models.ForeignKey('agents.Agent', on_delete=models.PROTECT, null=True, blank=True, related_name='meters')
    assigned_at = models.DateTimeField(null=True, blank=True)
    purchase_batch = models.ForeignKey(PurchaseBatch, on_delete=models.SET_NULL, null=True, blank=True, related_name='meters')
    added_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='meters_added')
    adder_name = models.CharField(max_length=255, blank=True)
    added_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def transition_to(self, status, agent=None, at=None):
        """Move the meter to a new status; the caller saves it"""
        if not can_transition(self.status, status):
            raise MeterStateError(
                f"Meter {self.serial_number} cannot move from {self.status} to {status}",
                [self.serial_number],
            )
        self.status = status
        if status == STATUS_WITH_AGENT:
            self.agent = agent
            self.assigned_at = at
        else:
            self.agent = None
            self.assigned_at = None

    def __str__(self):
        return self.serial_number

    class Meta:
        db_table = 'meters'
        ordering = ['-added_at']
        indexes = [
            models.Index(fields=['status', 'type'], name='idx_meter_status_type'),
            models.Index(fields=['agent', 'status'], name='idx_meter_agent_status'),
        ]


class MinimumStockLevel(models.Model):
    """Low-stock threshold per meter type"""
    meter_type = models.CharField(max_length=20, choices=METER_TYPE_CHOICES, unique=True)
    minimum_level = models.PositiveIntegerField()
    updated_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.meter_type}: {self.minimum_level}"

    @classmethod
    def levels_by_type(cls):
        """Minimum for every meter type, falling back to the configured default"""
        levels = {meter_type: settings.DEFAULT_MINIMUM_STOCK_LEVEL for meter_type in METER_TYPES}
        levels.update(dict(cls.objects.values_list('meter_type', 'minimum_level')))
        return levels

    class Meta:
        db_table = 'minimum_stock_levels'
        ordering = ['meter_type']
