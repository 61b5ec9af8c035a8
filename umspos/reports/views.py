import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.utils import timezone

from umspos.core.permissions import VIEW_INVENTORY, VIEW_REPORTS, HasRolePermission, IsAdminRole
from umspos.core.utils import csv_response, parse_date_param
from . import queries

logger = logging.getLogger('umspos.reports')

EXPORT_HEADERS = [
    'Reference', 'Sale Date', 'Sold By', 'Meter Type', 'Quantity', 'Unit Price', 'Total Price',
    'Destination', 'Recipient', 'Customer Type', 'County', 'Contact',
]


def _date_range(request, default_days=30):
    """(start, end) from ?start_date=&end_date=, defaulting to the last N days"""
    today = timezone.localdate()
    start_date = parse_date_param(request.query_params.get('start_date'), today - timedelta(days=default_days))
    end_date = parse_date_param(request.query_params.get('end_date'), today)
    return start_date, end_date


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_REPORTS)])
def top_sellers(request):
    """Sales totals per seller, best five"""
    return Response(queries.top_sellers())


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_REPORTS)])
def most_selling_product(request):
    return Response(queries.most_selling_product())


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def earnings(request):
    """Earnings per meter type (admin only)"""
    return Response(queries.earnings_by_meter_type())


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_REPORTS)])
def agent_inventory(request):
    return Response(queries.agent_inventory_summary())


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_REPORTS)])
def customer_types(request):
    return Response(queries.customer_type_counts())


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def daily_report(request):
    """Today's sales and the stock left after them"""
    report = dict(queries.daily_report(timezone.localdate()))
    report['remaining_meters_by_type'] = queries.remaining_meters_by_type()
    return Response(report)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_REPORTS)])
def time_range_report(request):
    """Sales and metrics over an inclusive date range (last 30 days by default)"""
    try:
        start_date, end_date = _date_range(request)
    except ValueError:
        return Response({'error': 'Dates must be in YYYY-MM-DD format'}, status=status.HTTP_400_BAD_REQUEST)
    if start_date > end_date:
        return Response({'error': 'start_date must not be after end_date'}, status=status.HTTP_400_BAD_REQUEST)

    logger.info(f"Time range report {start_date} - {end_date} requested by {request.user.display_name}")
    return Response(queries.time_range_report(start_date, end_date))


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def stock_alerts(request):
    return Response(queries.stock_alerts())


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_REPORTS)])
def sales_export(request):
    """Sale batches in the date range as a CSV download"""
    try:
        start_date, end_date = _date_range(request)
    except ValueError:
        return Response({'error': 'Dates must be in YYYY-MM-DD format'}, status=status.HTTP_400_BAD_REQUEST)
    if start_date > end_date:
        return Response({'error': 'start_date must not be after end_date'}, status=status.HTTP_400_BAD_REQUEST)

    batches = queries.batches_between(start_date, end_date)
    rows = (
        [
            batch.transaction.reference_number,
            timezone.localtime(batch.sale_date).strftime('%Y-%m-%d %H:%M'),
            batch.user_name,
            batch.meter_type,
            batch.batch_amount,
            batch.unit_price,
            batch.total_price,
            batch.destination,
            batch.recipient,
            batch.customer_type,
            batch.customer_county,
            batch.customer_contact,
        ]
        for batch in batches
    )
    logger.info(f"Sales export {start_date} - {end_date} by {request.user.display_name}")
    return csv_response(f"sales_{start_date}_{end_date}.csv", EXPORT_HEADERS, rows)
