from rest_framework import serializers
from .constants import CUSTOMER_TYPES, KENYA_COUNTIES
from .models import SalesTransaction, SaleBatch, SoldMeter, FaultyReturn


class SoldMeterSerializer(serializers.ModelSerializer):
    meter_type = serializers.CharField(source='batch.meter_type', read_only=True)
    reference_number = serializers.CharField(source='batch.transaction.reference_number', read_only=True)

    class Meta:
        model = SoldMeter
        fields = ['id', 'meter', 'serial_number', 'meter_type', 'batch', 'reference_number', 'sold_by',
                  'seller_name', 'sold_at', 'destination', 'recipient', 'customer_type', 'customer_county',
                  'customer_contact', 'unit_price', 'status', 'replacement_serial', 'replacement_date',
                  'replacement_by']


class SaleBatchSerializer(serializers.ModelSerializer):
    transaction_reference = serializers.CharField(source='transaction.reference_number', read_only=True)

    class Meta:
        model = SaleBatch
        fields = ['id', 'transaction', 'transaction_reference', 'user', 'user_name', 'meter_type',
                  'batch_amount', 'unit_price', 'total_price', 'destination', 'recipient', 'customer_type',
                  'customer_county', 'customer_contact', 'sale_date']


class SaleBatchWithMetersSerializer(SaleBatchSerializer):
    meters = serializers.SerializerMethodField()

    class Meta(SaleBatchSerializer.Meta):
        fields = SaleBatchSerializer.Meta.fields + ['meters']

    def get_meters(self, obj):
        return [
            {'serial_number': sold.serial_number, 'status': sold.status}
            for sold in obj.sold_meters.all()
        ]


class SalesTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = SalesTransaction
        fields = ['id', 'reference_number', 'user', 'user_name', 'sale_date', 'destination', 'recipient',
                  'customer_type', 'customer_county', 'customer_contact', 'total_amount', 'created_at']


class SalesTransactionDetailSerializer(SalesTransactionSerializer):
    batches = SaleBatchWithMetersSerializer(many=True, read_only=True)

    class Meta(SalesTransactionSerializer.Meta):
        fields = SalesTransactionSerializer.Meta.fields + ['batches']


class SellMetersSerializer(serializers.Serializer):
    serial_numbers = serializers.ListField(child=serializers.CharField(max_length=100), allow_empty=False)
    destination = serializers.CharField(max_length=255)
    recipient = serializers.CharField(max_length=255)
    customer_type = serializers.ChoiceField(choices=CUSTOMER_TYPES, default='walk in')
    customer_county = serializers.ChoiceField(choices=KENYA_COUNTIES, required=False, allow_blank=True, allow_null=True)
    customer_contact = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    unit_prices = serializers.DictField(child=serializers.DecimalField(max_digits=12, decimal_places=2))
    sale_date = serializers.DateTimeField(required=False)


class ReturnItemSerializer(serializers.Serializer):
    serial_number = serializers.CharField(max_length=100)
    status = serializers.ChoiceField(choices=['healthy', 'faulty'])
    fault_description = serializers.CharField(required=False, allow_blank=True, default='')
    replacement_serial = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)


class ReturnSoldMetersSerializer(serializers.Serializer):
    meters = ReturnItemSerializer(many=True, allow_empty=False)


class FaultyReturnSerializer(serializers.ModelSerializer):
    resolved_by_name = serializers.SerializerMethodField()

    class Meta:
        model = FaultyReturn
        fields = ['id', 'meter', 'sold_meter', 'serial_number', 'meter_type', 'returned_by', 'returner_name',
                  'returned_at', 'fault_description', 'status', 'resolved_by', 'resolved_by_name', 'resolved_at']

    def get_resolved_by_name(self, obj):
        return obj.resolved_by.display_name if obj.resolved_by else None


class FaultyStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=FaultyReturn.STATUS_CHOICES)
