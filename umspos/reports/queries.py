"""
Report queries

Each query returns plain Python data so the result can be stored in the
cache as-is. Sales-derived reports live in the reports namespace; stock
reports live in the inventory namespace, which every meter movement bumps.
"""
from django.db.models import Count, Sum
from decimal import Decimal

from umspos.core.cache_utils import INVENTORY_NAMESPACE, REPORTS_NAMESPACE, cached_query
from umspos.meters.constants import METER_TYPES, STATUS_IN_STOCK, STATUS_WITH_AGENT
from umspos.meters.models import Meter, MinimumStockLevel
from umspos.sales.constants import CUSTOMER_TYPES
from umspos.sales.models import SaleBatch
from umspos.sales.serializers import SaleBatchSerializer

TOP_SELLERS_LIMIT = 5


@cached_query(INVENTORY_NAMESPACE)
def remaining_meters_by_type():
    """[{type, remaining_meters}] for every type that still has stock"""
    rows = Meter.objects.filter(status=STATUS_IN_STOCK).values('type').annotate(
        remaining_meters=Count('id')
    ).order_by('type')
    return [
        {'type': row['type'], 'remaining_meters': row['remaining_meters']}
        for row in rows if row['remaining_meters'] > 0
    ]


@cached_query(INVENTORY_NAMESPACE)
def stock_alerts():
    """Remaining stock against the minimum level for every meter type"""
    counts = dict(
        Meter.objects.filter(status=STATUS_IN_STOCK).values_list('type').annotate(count=Count('id'))
    )
    levels = MinimumStockLevel.levels_by_type()

    stock = []
    for meter_type in METER_TYPES:
        remaining = counts.get(meter_type, 0)
        minimum = levels[meter_type]
        stock.append({
            'meter_type': meter_type,
            'remaining': remaining,
            'minimum_level': minimum,
            'is_low': remaining <= minimum,
        })
    return {
        'stock': stock,
        'low_stock': [item for item in stock if item['is_low']],
    }


@cached_query(INVENTORY_NAMESPACE)
def agent_inventory_summary():
    """Meters held by agents, per type and per agent"""
    rows = Meter.objects.filter(status=STATUS_WITH_AGENT).values(
        'agent_id', 'agent__name', 'agent__location', 'type'
    ).annotate(count=Count('id')).order_by('agent__name', 'type')

    by_type = {meter_type: 0 for meter_type in METER_TYPES}
    agents = {}
    for row in rows:
        by_type[row['type']] += row['count']
        agent = agents.setdefault(row['agent_id'], {
            'agent_id': row['agent_id'],
            'agent_name': row['agent__name'],
            'location': row['agent__location'],
            'total_meters': 0,
            'by_type': {},
        })
        agent['by_type'][row['type']] = row['count']
        agent['total_meters'] += row['count']

    return {
        'total_meters': sum(by_type.values()),
        'by_type': [{'type': meter_type, 'count': count} for meter_type, count in by_type.items()],
        'agents': sorted(agents.values(), key=lambda agent: -agent['total_meters']),
    }


@cached_query(REPORTS_NAMESPACE)
def top_sellers():
    rows = SaleBatch.objects.values('user_name').annotate(
        total_sales=Sum('total_price'),
        meters_sold=Sum('batch_amount'),
    ).order_by('-total_sales', 'user_name')[:TOP_SELLERS_LIMIT]
    return [
        {
            'user_name': row['user_name'],
            'total_sales': float(row['total_sales'] or 0),
            'meters_sold': row['meters_sold'] or 0,
        }
        for row in rows
    ]


@cached_query(REPORTS_NAMESPACE)
def most_selling_product():
    """Meter type with the largest quantity sold; empty string without sales"""
    row = SaleBatch.objects.values('meter_type').annotate(
        total_sold=Sum('batch_amount')
    ).order_by('-total_sold', 'meter_type').first()
    if row is None:
        return {'product': '', 'total_sold': 0}
    return {'product': row['meter_type'], 'total_sold': row['total_sold']}


@cached_query(REPORTS_NAMESPACE)
def earnings_by_meter_type():
    rows = SaleBatch.objects.values('meter_type').annotate(
        total_earnings=Sum('total_price')
    ).order_by('meter_type')
    earnings = [
        {'meter_type': row['meter_type'], 'total_earnings': float(row['total_earnings'] or 0)}
        for row in rows
    ]
    return {
        'earnings': earnings,
        'total_earnings': sum(item['total_earnings'] for item in earnings),
    }


@cached_query(REPORTS_NAMESPACE)
def customer_type_counts():
    """Meters sold per customer type, zero included"""
    counts = {customer_type: 0 for customer_type in CUSTOMER_TYPES}
    rows = SaleBatch.objects.values('customer_type').annotate(total=Sum('batch_amount'))
    for row in rows:
        counts[row['customer_type']] = row['total'] or 0
    return [{'customer_type': key, 'count': value} for key, value in counts.items()]


def calculate_report_metrics(batches, start_date, end_date):
    """Totals for a list of sale batches over an inclusive date range"""
    total_sales = Decimal('0.00')
    total_meters = 0
    meters_by_type = {}
    for batch in batches:
        total_sales += batch.total_price
        total_meters += batch.batch_amount
        meters_by_type[batch.meter_type] = meters_by_type.get(batch.meter_type, 0) + batch.batch_amount

    days = max((end_date - start_date).days + 1, 1)
    return {
        'total_sales': float(total_sales),
        'average_daily_sales': float(total_sales / days),
        'total_meters': total_meters,
        'meters_by_type': meters_by_type,
    }


def batches_between(start_date, end_date):
    return SaleBatch.objects.select_related('transaction').filter(
        sale_date__date__gte=start_date,
        sale_date__date__lte=end_date,
    ).order_by('-sale_date', '-id')


@cached_query(REPORTS_NAMESPACE)
def daily_report(day):
    batches = list(batches_between(day, day))
    total_earnings = sum((batch.total_price for batch in batches), Decimal('0.00'))
    return {
        'date': day.isoformat(),
        'sales': [dict(row) for row in SaleBatchSerializer(batches, many=True).data],
        'total_sales': len(batches),
        'total_earnings': float(total_earnings),
    }


@cached_query(REPORTS_NAMESPACE)
def time_range_report(start_date, end_date):
    batches = list(batches_between(start_date, end_date))
    return {
        'period': {
            'start_date': start_date.isoformat(),
            'end_date': end_date.isoformat(),
        },
        'sales': [dict(row) for row in SaleBatchSerializer(batches, many=True).data],
        'metrics': calculate_report_metrics(batches, start_date, end_date),
    }
