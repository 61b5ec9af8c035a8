from rest_framework import serializers
from .constants import (
    METER_TYPES, STATUS_FAULTY, STATUS_IN_STOCK, STATUS_REPLACED, STATUS_SOLD, STATUS_WITH_AGENT,
    normalize_meter_type,
)
from .models import Meter, PurchaseBatch


class MeterSerializer(serializers.ModelSerializer):
    agent_name = serializers.CharField(source='agent.name', read_only=True, default=None)
    batch_number = serializers.CharField(source='purchase_batch.batch_number', read_only=True, default=None)

    class Meta:
        model = Meter
        fields = ['id', 'serial_number', 'type', 'status', 'agent', 'agent_name', 'assigned_at',
                  'purchase_batch', 'batch_number', 'adder_name', 'added_at', 'updated_at']
        read_only_fields = fields


class MeterInputSerializer(serializers.Serializer):
    serial_number = serializers.CharField(max_length=100)
    type = serializers.CharField(max_length=20)

    def validate_type(self, value):
        meter_type = normalize_meter_type(value)
        if meter_type is None:
            raise serializers.ValidationError(f"Invalid meter type. Choose one of: {', '.join(METER_TYPES)}")
        return meter_type


class AddMetersSerializer(serializers.Serializer):
    meters = MeterInputSerializer(many=True, allow_empty=False)
    purchase_date = serializers.DateField(required=False)
    unit_costs = serializers.DictField(child=serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0), required=False)


class MeterWithStatusSerializer(serializers.ModelSerializer):
    """Meter plus the details that belong to its current status.

    Expects `sales` (newest first, with batch__transaction) and
    `faulty_returns` (newest first) to be prefetched.
    """
    agent_details = serializers.SerializerMethodField()
    sale_details = serializers.SerializerMethodField()
    replacement_details = serializers.SerializerMethodField()
    fault_details = serializers.SerializerMethodField()

    class Meta:
        model = Meter
        fields = ['id', 'serial_number', 'type', 'status', 'adder_name', 'added_at', 'updated_at',
                  'agent_details', 'sale_details', 'replacement_details', 'fault_details']

    def _latest_sale(self, obj):
        sales = list(obj.sales.all())
        return sales[0] if sales else None

    def get_agent_details(self, obj):
        if obj.status != STATUS_WITH_AGENT or obj.agent is None:
            return None
        return {
            'id': obj.agent.id,
            'name': obj.agent.name,
            'phone_number': obj.agent.phone_number,
            'location': obj.agent.location,
            'county': obj.agent.county,
            'assigned_at': obj.assigned_at,
        }

    def get_sale_details(self, obj):
        if obj.status not in (STATUS_SOLD, STATUS_REPLACED, STATUS_FAULTY):
            return None
        sale = self._latest_sale(obj)
        if sale is None:
            return None
        return {
            'sold_at': sale.sold_at,
            'sold_by': sale.seller_name,
            'destination': sale.destination,
            'recipient': sale.recipient,
            'customer_type': sale.customer_type,
            'customer_county': sale.customer_county,
            'customer_contact': sale.customer_contact,
            'unit_price': sale.unit_price,
            'reference_number': sale.batch.transaction.reference_number,
        }

    def get_replacement_details(self, obj):
        if obj.status != STATUS_REPLACED:
            return None
        sale = self._latest_sale(obj)
        if sale is None or not sale.replacement_serial:
            return None
        return {
            'replacement_serial': sale.replacement_serial,
            'replacement_date': sale.replacement_date,
            'replacement_by': sale.replacement_by,
        }

    def get_fault_details(self, obj):
        if obj.status != STATUS_FAULTY:
            return None
        faults = list(obj.faulty_returns.all())
        if not faults:
            return None
        fault = faults[0]
        return {
            'id': fault.id,
            'fault_description': fault.fault_description,
            'returned_at': fault.returned_at,
            'returned_by': fault.returner_name,
            'status': fault.status,
        }


class PurchaseBatchSerializer(serializers.ModelSerializer):
    remaining_meters = serializers.SerializerMethodField()
    added_by_name = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseBatch
        fields = ['id', 'batch_number', 'meter_type', 'quantity', 'unit_cost', 'total_cost',
                  'purchase_date', 'added_by', 'added_by_name', 'remaining_meters', 'created_at']

    def get_remaining_meters(self, obj):
        remaining = getattr(obj, 'remaining_count', None)
        if remaining is None:
            remaining = obj.meters.filter(status=STATUS_IN_STOCK).count()
        return remaining

    def get_added_by_name(self, obj):
        if obj.added_by:
            return obj.added_by.display_name
        return obj.adder_name or None
