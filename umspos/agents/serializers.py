from rest_framework import serializers
from umspos.sales.constants import KENYA_COUNTIES
from .models import Agent, AgentTransaction


class AgentSerializer(serializers.ModelSerializer):
    total_meters = serializers.IntegerField(read_only=True, default=0)
    phone_number = serializers.CharField(max_length=20)

    class Meta:
        model = Agent
        fields = ['id', 'name', 'phone_number', 'location', 'county', 'is_active',
                  'total_meters', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Name is required")
        return value

    def validate_phone_number(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Phone number is required")
        queryset = Agent.objects.filter(phone_number=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("Phone number already registered")
        return value

    def validate_county(self, value):
        if value and value not in KENYA_COUNTIES:
            raise serializers.ValidationError("Select a valid county")
        return value or None


class AgentTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = AgentTransaction
        fields = ['id', 'agent', 'transaction_type', 'meter_type', 'quantity', 'reference_number',
                  'performed_by', 'performer_name', 'transaction_date']


class SerialListSerializer(serializers.Serializer):
    serial_numbers = serializers.ListField(child=serializers.CharField(max_length=100), allow_empty=False)


class AgentSaleSerializer(SerialListSerializer):
    unit_prices = serializers.DictField(child=serializers.DecimalField(max_digits=12, decimal_places=2))
    sale_date = serializers.DateTimeField(required=False)


class AgentDeleteSerializer(serializers.Serializer):
    scanned_serials = serializers.ListField(child=serializers.CharField(max_length=100), required=False, default=list)
    write_off_unscanned = serializers.BooleanField(required=False, default=False)
