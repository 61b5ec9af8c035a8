import django_filters
from django.db.models import Q
from umspos.meters.constants import normalize_meter_type
from .models import SaleBatch, SalesTransaction, FaultyReturn


class SaleBatchFilter(django_filters.FilterSet):
    """Filter sale batches by sale date range, meter type and customer type"""
    start_date = django_filters.DateFilter(field_name='sale_date', lookup_expr='date__gte')
    end_date = django_filters.DateFilter(field_name='sale_date', lookup_expr='date__lte')
    meter_type = django_filters.CharFilter(method='filter_meter_type')
    customer_type = django_filters.CharFilter(method='filter_customer_type')

    class Meta:
        model = SaleBatch
        fields = ['start_date', 'end_date', 'meter_type', 'customer_type']

    def filter_meter_type(self, queryset, name, value):
        if not value or value.lower() == 'all':
            return queryset
        meter_type = normalize_meter_type(value)
        return queryset.filter(meter_type=meter_type) if meter_type else queryset.none()

    def filter_customer_type(self, queryset, name, value):
        if not value or value.lower() == 'all':
            return queryset
        return queryset.filter(customer_type=value.strip().lower())


class SalesTransactionFilter(django_filters.FilterSet):
    start_date = django_filters.DateFilter(field_name='sale_date', lookup_expr='date__gte')
    end_date = django_filters.DateFilter(field_name='sale_date', lookup_expr='date__lte')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = SalesTransaction
        fields = ['start_date', 'end_date', 'search']

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(reference_number__icontains=value) |
            Q(recipient__icontains=value) |
            Q(destination__icontains=value)
        )


class FaultyReturnFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=FaultyReturn.STATUS_CHOICES)

    class Meta:
        model = FaultyReturn
        fields = ['status']
