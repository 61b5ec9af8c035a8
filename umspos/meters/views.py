import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.db import transaction
from django.db.models import Count, Prefetch, Q
from django.shortcuts import get_object_or_404
from django.utils import timezone

from umspos.core.exceptions import InventoryError
from umspos.core.permissions import (
    ADD_METER, VIEW_INVENTORY, VIEW_REPORTS, HasRolePermission, user_has_permission,
)
from umspos.core.utils import create_audit_log, csv_response, inventory_error_response, paginate
from umspos.sales.models import FaultyReturn, SoldMeter
from .constants import METER_STATUSES, METER_TYPES, STATUS_IN_STOCK, STATUS_WITH_AGENT, normalize_meter_type, normalize_serial
from .filters import MeterFilter
from .models import Meter, MinimumStockLevel, PurchaseBatch
from .serializers import AddMetersSerializer, MeterSerializer, MeterWithStatusSerializer, PurchaseBatchSerializer
from .services import add_meters, parse_meter_file

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT_PER_STATUS = 5

EXPORT_COLUMNS = [
    'serial_number', 'type', 'status', 'agent_name', 'agent_location', 'sold_at', 'sold_by',
    'destination', 'recipient', 'customer_contact', 'unit_price', 'replacement_serial',
    'fault_description',
]


def _meters_with_details():
    return Meter.objects.select_related('agent').prefetch_related(
        Prefetch('sales', queryset=SoldMeter.objects.select_related('batch__transaction').order_by('-sold_at', '-id')),
        Prefetch('faulty_returns', queryset=FaultyReturn.objects.order_by('-returned_at', '-id')),
    )


def _filtered(request, queryset):
    filterset = MeterFilter(request.query_params, queryset=queryset)
    return filterset.qs


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(ADD_METER)])
@parser_classes([MultiPartParser, FormParser])
def meter_import_preview(request):
    """Parse an uploaded CSV/XLSX file and return the meters it contains without saving"""
    upload = request.FILES.get('file')
    if upload is None:
        return Response({'error': 'No file uploaded'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        meters, skipped_rows = parse_meter_file(upload.name, upload.read())
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'meters': meters, 'skipped_rows': skipped_rows})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def meter_list_create(request):
    """List in-stock meters or add new meters to stock"""
    if request.method == 'GET':
        queryset = Meter.objects.filter(status=STATUS_IN_STOCK).select_related('purchase_batch')
        filterset = MeterFilter(request.query_params, queryset=queryset)
        meters = filterset.qs.order_by('-added_at', 'serial_number')
        serializer = MeterSerializer(meters, many=True)
        return Response(serializer.data)

    if not user_has_permission(request.user, ADD_METER):
        return Response({'error': 'You do not have permission to add meters'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AddMetersSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        batches = add_meters(
            request.user,
            data['meters'],
            purchase_date=data.get('purchase_date'),
            unit_costs=data.get('unit_costs'),
        )
    except InventoryError as e:
        return inventory_error_response(e)

    return Response({
        'batch_number': batches[0].batch_number,
        'count': sum(batch.quantity for batch in batches),
        'batches': PurchaseBatchSerializer(batches, many=True).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, HasRolePermission.require(ADD_METER)])
def meter_delete(request, pk):
    """Remove a meter that is still in stock; its sale history is kept by serial number"""
    with transaction.atomic():
        meter = get_object_or_404(Meter.objects.select_for_update(), pk=pk)
        if meter.status != STATUS_IN_STOCK:
            return Response({
                'error': f'Only in-stock meters can be removed; {meter.serial_number} is {meter.status}',
                'serial_numbers': [meter.serial_number],
            }, status=status.HTTP_400_BAD_REQUEST)

        serial = meter.serial_number
        meter.delete()

    logger.info(f"Meter {serial} removed from stock by {request.user.display_name}")
    create_audit_log(
        request=request, action='meter_remove', model_name='Meter', object_id=pk,
        object_name=serial, serial_numbers=[serial],
    )
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def meter_check(request):
    """Report whether a serial exists in any status"""
    serial = normalize_serial(request.query_params.get('serial'))
    if not serial:
        return Response({'error': 'serial is required'}, status=status.HTTP_400_BAD_REQUEST)
    meter = Meter.objects.filter(serial_number=serial).only('status').first()
    return Response({
        'serial_number': serial,
        'exists': meter is not None,
        'status': meter.status if meter else None,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def meter_lookup(request):
    """Find an in-stock meter by serial (used when scanning for sale or assignment)"""
    serial = normalize_serial(request.query_params.get('serial'))
    if not serial:
        return Response({'error': 'serial is required'}, status=status.HTTP_400_BAD_REQUEST)
    meter = Meter.objects.filter(serial_number=serial, status=STATUS_IN_STOCK).first()
    if meter is None:
        return Response({'error': f'Meter {serial} is not in stock'}, status=status.HTTP_404_NOT_FOUND)
    return Response(MeterSerializer(meter).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def meter_search(request):
    """Serial search across every status, a few matches per status"""
    query = (request.query_params.get('q') or '').strip()
    if len(query) < SEARCH_MIN_LENGTH:
        return Response([])

    results = []
    for meter_status in METER_STATUSES:
        matches = (
            Meter.objects.filter(status=meter_status, serial_number__icontains=query)
            .select_related('agent')
            .order_by('serial_number')[:SEARCH_LIMIT_PER_STATUS]
        )
        for meter in matches:
            row = {
                'id': meter.id,
                'serial_number': meter.serial_number,
                'type': meter.type,
                'status': meter.status,
            }
            if meter.status == STATUS_WITH_AGENT and meter.agent:
                row['agent'] = {
                    'id': meter.agent.id,
                    'name': meter.agent.name,
                    'location': meter.agent.location,
                }
            results.append(row)
    return Response(results)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def meter_all(request):
    """Every meter with the details of its current status, paginated"""
    queryset = _filtered(request, _meters_with_details()).order_by('-updated_at', 'serial_number')
    page_obj, paginator, page, page_size = paginate(queryset, request)
    serializer = MeterWithStatusSerializer(page_obj, many=True)
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'page': page,
        'page_size': page_size,
        'total_pages': paginator.num_pages,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def meter_export(request):
    """All meters matching the filters as CSV"""
    queryset = _filtered(request, _meters_with_details()).order_by('status', 'serial_number')
    rows = []
    for data in MeterWithStatusSerializer(queryset, many=True).data:
        agent = data['agent_details'] or {}
        sale = data['sale_details'] or {}
        replacement = data['replacement_details'] or {}
        fault = data['fault_details'] or {}
        rows.append([
            data['serial_number'], data['type'], data['status'],
            agent.get('name'), agent.get('location'),
            sale.get('sold_at'), sale.get('sold_by'), sale.get('destination'), sale.get('recipient'),
            sale.get('customer_contact'), sale.get('unit_price'),
            replacement.get('replacement_serial'), fault.get('fault_description'),
        ])
    filename = f"meters_{timezone.localdate().isoformat()}.csv"
    return csv_response(filename, EXPORT_COLUMNS, rows)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_REPORTS)])
def purchase_batch_list(request):
    """Purchase batches with how many of their meters are still in stock"""
    batches = PurchaseBatch.objects.select_related('added_by').annotate(
        remaining_count=Count('meters', filter=Q(meters__status=STATUS_IN_STOCK))
    ).order_by('-purchase_date', '-created_at')
    meter_type = normalize_meter_type(request.query_params.get('type'))
    if meter_type:
        batches = batches.filter(meter_type=meter_type)
    return Response(PurchaseBatchSerializer(batches, many=True).data)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def stock_levels(request):
    """Minimum stock level per meter type"""
    if request.method == 'GET':
        return Response(MinimumStockLevel.levels_by_type())

    if not user_has_permission(request.user, ADD_METER):
        return Response({'error': 'You do not have permission to change stock levels'}, status=status.HTTP_403_FORBIDDEN)
    if not isinstance(request.data, dict) or not request.data:
        return Response({'error': 'Provide a minimum level per meter type'}, status=status.HTTP_400_BAD_REQUEST)

    levels = {}
    errors = {}
    for key, value in request.data.items():
        meter_type = normalize_meter_type(key)
        if meter_type is None:
            errors[key] = f"Unknown meter type. Choose one of: {', '.join(METER_TYPES)}"
            continue
        try:
            level = int(value)
        except (TypeError, ValueError):
            level = -1
        if level < 0:
            errors[key] = 'Minimum level must be a whole number of at least 0'
            continue
        levels[meter_type] = level
    if errors:
        return Response(errors, status=status.HTTP_400_BAD_REQUEST)

    for meter_type, level in levels.items():
        MinimumStockLevel.objects.update_or_create(
            meter_type=meter_type,
            defaults={'minimum_level': level, 'updated_by': request.user},
        )
    create_audit_log(
        request=request, action='update', model_name='MinimumStockLevel',
        object_id=','.join(levels), changes=levels,
    )
    logger.info(f"Stock levels updated by {request.user.display_name}: {levels}")
    return Response(MinimumStockLevel.levels_by_type())
