import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.db.models import Prefetch
from django.shortcuts import get_object_or_404

from umspos.core.exceptions import InventoryError
from umspos.core.permissions import MANAGE_SALES, VIEW_INVENTORY, HasRolePermission
from umspos.core.utils import inventory_error_response, paginate
from umspos.meters.constants import STATUS_IN_STOCK, normalize_meter_type, normalize_serial
from umspos.meters.models import Meter
from umspos.meters.serializers import MeterSerializer
from .filters import SaleBatchFilter, SalesTransactionFilter, FaultyReturnFilter
from .models import SalesTransaction, SaleBatch, SoldMeter, FaultyReturn
from .serializers import (
    SalesTransactionSerializer, SalesTransactionDetailSerializer, SaleBatchSerializer,
    SoldMeterSerializer, SellMetersSerializer, ReturnSoldMetersSerializer,
    FaultyReturnSerializer, FaultyStatusSerializer,
)
from .services import sell_meters, return_sold_meters, update_faulty_status

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def sale_create(request):
    """Sell in-stock meters over the counter"""
    serializer = SellMetersSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    sale_details = {
        'destination': data['destination'],
        'recipient': data['recipient'],
        'customer_type': data['customer_type'],
        'customer_county': data.get('customer_county'),
        'customer_contact': data.get('customer_contact'),
        'sale_date': data.get('sale_date'),
    }
    try:
        sales_transaction = sell_meters(request.user, data['serial_numbers'], sale_details, data['unit_prices'])
    except InventoryError as e:
        return inventory_error_response(e)

    sales_transaction = _transactions_with_batches().get(pk=sales_transaction.pk)
    return Response(SalesTransactionDetailSerializer(sales_transaction).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def sale_batch_list(request):
    """Sale batches, newest first"""
    filterset = SaleBatchFilter(request.query_params, queryset=SaleBatch.objects.select_related('transaction'))
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    batches = filterset.qs.order_by('-sale_date', '-id')
    return Response(SaleBatchSerializer(batches, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def sale_batch_meters(request, pk):
    """Serial numbers sold in a batch"""
    batch = get_object_or_404(SaleBatch, pk=pk)
    sold = batch.sold_meters.select_related('meter', 'batch__transaction').order_by('id')
    return Response(SoldMeterSerializer(sold, many=True).data)


def _transactions_with_batches():
    return SalesTransaction.objects.prefetch_related(
        Prefetch('batches', queryset=SaleBatch.objects.order_by('id').prefetch_related(
            Prefetch('sold_meters', queryset=SoldMeter.objects.order_by('id'))
        ))
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def transaction_list(request):
    """Sales transactions, newest first, paginated"""
    filterset = SalesTransactionFilter(request.query_params, queryset=SalesTransaction.objects.all())
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    queryset = filterset.qs.order_by('-sale_date', '-id')

    page_obj, paginator, page, page_size = paginate(queryset, request, default_page_size=20)
    return Response({
        'data': SalesTransactionSerializer(page_obj, many=True).data,
        'total_count': paginator.count,
        'page': page,
        'page_size': page_size,
        'total_pages': paginator.num_pages,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def transaction_detail(request, pk):
    """A transaction with its batches and their meters"""
    sales_transaction = get_object_or_404(_transactions_with_batches(), pk=pk)
    return Response(SalesTransactionDetailSerializer(sales_transaction).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def transaction_by_reference(request):
    """Receipt data for a reference number"""
    reference = (request.query_params.get('reference') or '').strip().upper()
    if not reference:
        return Response({'error': 'reference is required'}, status=status.HTTP_400_BAD_REQUEST)

    sales_transaction = _transactions_with_batches().filter(reference_number=reference).first()
    if sales_transaction is None:
        return Response({'error': f'No sale found with reference {reference}'}, status=status.HTTP_404_NOT_FOUND)

    meters = []
    unit_prices = {}
    for batch in sales_transaction.batches.all():
        unit_prices[batch.meter_type] = batch.unit_price
        for sold in batch.sold_meters.all():
            meters.append({'serial_number': sold.serial_number, 'type': batch.meter_type})

    return Response({
        'transaction': SalesTransactionSerializer(sales_transaction).data,
        'meters': meters,
        'unit_prices': unit_prices,
        'user_name': sales_transaction.user_name,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def sold_meter_lookup(request):
    """The active sale record of a meter, for returns"""
    serial = normalize_serial(request.query_params.get('serial'))
    if not serial:
        return Response({'error': 'serial is required'}, status=status.HTTP_400_BAD_REQUEST)
    sold = SoldMeter.objects.select_related('meter', 'batch__transaction').filter(
        serial_number=serial, status=SoldMeter.STATUS_SOLD
    ).first()
    if sold is None:
        return Response({'error': f'No active sale found for {serial}'}, status=status.HTTP_404_NOT_FOUND)
    return Response(SoldMeterSerializer(sold).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def replacement_available(request):
    """In-stock meters that can replace a faulty meter of the given type"""
    meter_type = normalize_meter_type(request.query_params.get('type'))
    if meter_type is None:
        return Response({'error': 'A valid meter type is required'}, status=status.HTTP_400_BAD_REQUEST)
    meters = Meter.objects.filter(status=STATUS_IN_STOCK, type=meter_type).order_by('serial_number')
    return Response(MeterSerializer(meters, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def sold_meter_returns(request):
    """Process returned sold meters (healthy, faulty, or faulty with a replacement)"""
    serializer = ReturnSoldMetersSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        summary = return_sold_meters(request.user, serializer.validated_data['meters'])
    except InventoryError as e:
        return inventory_error_response(e)
    return Response(summary)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def faulty_list(request):
    """Faulty returns, newest first"""
    filterset = FaultyReturnFilter(request.query_params, queryset=FaultyReturn.objects.select_related('resolved_by'))
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    faulty = filterset.qs.order_by('-returned_at', '-id')
    return Response(FaultyReturnSerializer(faulty, many=True).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def faulty_update(request, pk):
    """Change the repair status of a faulty return"""
    faulty = get_object_or_404(FaultyReturn, pk=pk)
    serializer = FaultyStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        record = update_faulty_status(faulty, serializer.validated_data['status'], request.user)
    except InventoryError as e:
        return inventory_error_response(e)
    return Response(FaultyReturnSerializer(record).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def replacement_list(request):
    """Sale records whose meter was swapped for a replacement"""
    replaced = SoldMeter.objects.select_related('meter', 'batch__transaction').filter(
        status=SoldMeter.STATUS_REPLACED
    ).order_by('-replacement_date', '-id')
    return Response(SoldMeterSerializer(replaced, many=True).data)
