import django_filters
from .constants import METER_STATUSES, normalize_meter_type
from .models import Meter


class MeterFilter(django_filters.FilterSet):
    """Filter for Meter lists and exports"""
    type = django_filters.CharFilter(method='filter_type', label='Meter type')
    status = django_filters.CharFilter(method='filter_status', label='Status')
    search = django_filters.CharFilter(method='filter_search', label='Serial search')
    agent = django_filters.NumberFilter(field_name='agent_id', lookup_expr='exact')

    class Meta:
        model = Meter
        fields = ['type', 'status', 'search', 'agent']

    def filter_type(self, queryset, name, value):
        if not value or value.lower() == 'all':
            return queryset
        meter_type = normalize_meter_type(value)
        # Unknown types match nothing rather than everything
        return queryset.filter(type=meter_type) if meter_type else queryset.none()

    def filter_status(self, queryset, name, value):
        if not value or value == 'all':
            return queryset
        return queryset.filter(status=value) if value in METER_STATUSES else queryset.none()

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(serial_number__icontains=value)
