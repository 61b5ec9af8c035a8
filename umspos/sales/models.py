from django.db import models
from decimal import Decimal
from umspos.core.models import User
from umspos.meters.constants import METER_TYPE_CHOICES
from umspos.meters.models import Meter
from .constants import CUSTOMER_TYPE_CHOICES, COUNTY_CHOICES


class SalesTransaction(models.Model):
    """Receipt-level grouping of the batches sold in one checkout"""
    reference_number = models.CharField(max_length=30, unique=True)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='sales_transactions')
    user_name = models.CharField(max_length=255)
    sale_date = models.DateTimeField()
    destination = models.CharField(max_length=255)
    recipient = models.CharField(max_length=255)
    customer_type = models.CharField(max_length=20, choices=CUSTOMER_TYPE_CHOICES, default='walk in')
    customer_county = models.CharField(max_length=50, choices=COUNTY_CHOICES, blank=True, null=True)
    customer_contact = models.CharField(max_length=50, blank=True, null=True)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.reference_number

    class Meta:
        db_table = 'sales_transactions'
        ordering = ['-sale_date', '-id']


class SaleBatch(models.Model):
    """Meters of one type sold together in a transaction"""
    transaction = models.ForeignKey(SalesTransaction, on_delete=models.CASCADE, related_name='batches')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='sale_batches')
    user_name = models.CharField(max_length=255)
    meter_type = models.CharField(max_length=20, choices=METER_TYPE_CHOICES)
    batch_amount = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=14, decimal_places=2)
    destination = models.CharField(max_length=255)
    recipient = models.CharField(max_length=255)
    customer_type = models.CharField(max_length=20, choices=CUSTOMER_TYPE_CHOICES, default='walk in')
    customer_county = models.CharField(max_length=50, choices=COUNTY_CHOICES, blank=True, null=True)
    customer_contact = models.CharField(max_length=50, blank=True, null=True)
    sale_date = models.DateTimeField()

    def save(self, *args, **kwargs):
        self.total_price = self.unit_price * self.batch_amount
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.transaction.reference_number} {self.batch_amount} x {self.meter_type}"

    class Meta:
        db_table = 'sale_batches'
        ordering = ['-sale_date', '-id']
        indexes = [
            models.Index(fields=['sale_date'], name='idx_salebatch_date'),
            models.Index(fields=['meter_type'], name='idx_salebatch_type'),
        ]


class SoldMeter(models.Model):
    """One meter's sale record; only one may be active ('sold') per meter"""
    STATUS_SOLD = 'sold'
    STATUS_RETURNED = 'returned'
    STATUS_FAULTY = 'faulty'
    STATUS_REPLACED = 'replaced'

    STATUS_CHOICES = [
        (STATUS_SOLD, 'Sold'),
        (STATUS_RETURNED, 'Returned'),
        (STATUS_FAULTY, 'Faulty'),
        (STATUS_REPLACED, 'Replaced'),
    ]

    meter = models.ForeignKey(Meter, on_delete=models.SET_NULL, null=True, related_name='sales')
    batch = models.ForeignKey(SaleBatch, on_delete=models.CASCADE, related_name='sold_meters')
    serial_number = models.CharField(max_length=100, db_index=True)
    sold_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='meters_sold')
    seller_name = models.CharField(max_length=255, blank=True)
    sold_at = models.DateTimeField()
    destination = models.CharField(max_length=255)
    recipient = models.CharField(max_length=255)
    customer_type = models.CharField(max_length=20, choices=CUSTOMER_TYPE_CHOICES, default='walk in')
    customer_county = models.CharField(max_length=50, choices=COUNTY_CHOICES, blank=True, null=True)
    customer_contact = models.CharField(max_length=50, blank=True, null=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SOLD)
    replacement_serial = models.CharField(max_length=100, blank=True, null=True)
    replacement_date = models.DateTimeField(null=True, blank=True)
    replacement_by = models.CharField(max_length=255, blank=True, null=True)

    def __str__(self):
        return f"{self.serial_number} ({self.status})"

    class Meta:
        db_table = 'sold_meters'
        ordering = ['-sold_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['meter'],
                condition=models.Q(status='sold'),
                name='uniq_active_sale_per_meter',
            ),
        ]


class FaultyReturn(models.Model):
    """A sold meter that came back faulty"""
    STATUS_PENDING = 'pending'
    STATUS_REPAIRED = 'repaired'
    STATUS_UNREPAIRABLE = 'unrepairable'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_REPAIRED, 'Repaired'),
        (STATUS_UNREPAIRABLE, 'Unrepairable'),
    ]

    meter = models.ForeignKey(Meter, on_delete=models.SET_NULL, null=True, related_name='faulty_returns')
    sold_meter = models.ForeignKey(SoldMeter, on_delete=models.SET_NULL, null=True, blank=True, related_name='faulty_returns')
    serial_number = models.CharField(max_length=100, db_index=True)
    meter_type = models.CharField(max_length=20, choices=METER_TYPE_CHOICES)
    returned_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='faulty_returns')
    returner_name = models.CharField(max_length=255, blank=True)
    returned_at = models.DateTimeField(auto_now_add=True)
    fault_description = models.TextField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    resolved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    resolved_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.serial_number} ({self.status})"

    class Meta:
        db_table = 'faulty_returns'
        ordering = ['-returned_at', '-id']
