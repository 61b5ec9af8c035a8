import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.db.models import Count, Q
from django.shortcuts import get_object_or_404

from umspos.core.exceptions import InventoryError
from umspos.core.permissions import (
    CREATE_AGENT, MANAGE_AGENTS, MANAGE_SALES, VIEW_INVENTORY, HasRolePermission, user_has_permission,
)
from umspos.core.utils import create_audit_log, inventory_error_response
from umspos.meters.constants import STATUS_WITH_AGENT, normalize_serial
from umspos.meters.models import Meter
from umspos.meters.serializers import MeterSerializer
from umspos.sales.serializers import SalesTransactionSerializer
from .models import Agent
from .serializers import (
    AgentSerializer, AgentTransactionSerializer, SerialListSerializer,
    AgentSaleSerializer, AgentDeleteSerializer,
)
from .services import assign_meters_to_agent, return_meters_from_agent, record_agent_sale, delete_agent

logger = logging.getLogger(__name__)


def _agents_with_totals():
    return Agent.objects.annotate(
        total_meters=Count('meters', filter=Q(meters__status=STATUS_WITH_AGENT))
    )


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def agent_list_create(request):
    """List agents (newest first) or register a new one"""
    if request.method == 'GET':
        agents = _agents_with_totals().order_by('-created_at')
        active = request.query_params.get('active')
        if active in ('true', 'false'):
            agents = agents.filter(is_active=(active == 'true'))
        serializer = AgentSerializer(agents, many=True)
        return Response(serializer.data)

    if not user_has_permission(request.user, CREATE_AGENT):
        return Response({'error': 'You do not have permission to create agents'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AgentSerializer(data=request.data)
    if serializer.is_valid():
        agent = serializer.save(is_active=True)
        create_audit_log(
            request=request, action='create', model_name='Agent', object_id=agent.id,
            object_name=agent.name, changes={'phone_number': agent.phone_number, 'location': agent.location},
        )
        logger.info(f"Agent {agent.name} created by {request.user.display_name}")
        return Response(AgentSerializer(agent).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def agent_detail(request, pk):
    """Retrieve, update or delete an agent"""
    agent = get_object_or_404(_agents_with_totals(), pk=pk)

    if request.method == 'GET':
        return Response(AgentSerializer(agent).data)

    elif request.method == 'PATCH':
        if not user_has_permission(request.user, MANAGE_AGENTS):
            return Response({'error': 'You do not have permission to edit agents'}, status=status.HTTP_403_FORBIDDEN)
        serializer = AgentSerializer(agent, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request, action='update', model_name='Agent', object_id=agent.id,
                object_name=agent.name, changes=dict(serializer.validated_data),
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    else:  # DELETE
        if not user_has_permission(request.user, CREATE_AGENT):
            return Response({'error': 'You do not have permission to delete agents'}, status=status.HTTP_403_FORBIDDEN)
        serializer = AgentDeleteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            result = delete_agent(
                agent,
                serializer.validated_data['scanned_serials'],
                request.user,
                write_off_unscanned=serializer.validated_data['write_off_unscanned'],
            )
        except InventoryError as e:
            return inventory_error_response(e)
        return Response(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def agent_inventory(request, pk):
    """Meters the agent currently holds, newest assignment first"""
    agent = get_object_or_404(Agent, pk=pk)
    meters = Meter.objects.filter(agent=agent, status=STATUS_WITH_AGENT).select_related('agent').order_by(
        '-assigned_at', 'serial_number'
    )
    return Response(MeterSerializer(meters, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def agent_inventory_lookup(request, pk):
    """Find a meter by serial in this agent's inventory"""
    agent = get_object_or_404(Agent, pk=pk)
    serial = normalize_serial(request.query_params.get('serial'))
    if not serial:
        return Response({'error': 'serial is required'}, status=status.HTTP_400_BAD_REQUEST)
    meter = Meter.objects.filter(agent=agent, status=STATUS_WITH_AGENT, serial_number=serial).first()
    if meter is None:
        return Response({'error': f'Meter {serial} is not held by {agent.name}'}, status=status.HTTP_404_NOT_FOUND)
    return Response(MeterSerializer(meter).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_AGENTS)])
def agent_assign(request, pk):
    """Assign in-stock meters to the agent"""
    agent = get_object_or_404(Agent, pk=pk)
    serializer = SerialListSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        meters = assign_meters_to_agent(agent, serializer.validated_data['serial_numbers'], request.user)
    except InventoryError as e:
        return inventory_error_response(e)
    return Response({
        'agent': AgentSerializer(_agents_with_totals().get(pk=agent.pk)).data,
        'assigned_count': len(meters),
        'meters': MeterSerializer(meters, many=True).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_AGENTS)])
def agent_return(request, pk):
    """Return meters from the agent to stock"""
    agent = get_object_or_404(Agent, pk=pk)
    serializer = SerialListSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        meters = return_meters_from_agent(agent, serializer.validated_data['serial_numbers'], request.user)
    except InventoryError as e:
        return inventory_error_response(e)
    return Response({
        'returned_count': len(meters),
        'meters': MeterSerializer(meters, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(MANAGE_SALES)])
def agent_sale(request, pk):
    """Record meters the agent has sold"""
    agent = get_object_or_404(Agent, pk=pk)
    serializer = AgentSaleSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        sales_transaction = record_agent_sale(
            agent, data['serial_numbers'], data['unit_prices'], request.user,
            sale_date=data.get('sale_date'),
        )
    except InventoryError as e:
        return inventory_error_response(e)
    return Response(SalesTransactionSerializer(sales_transaction).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasRolePermission.require(VIEW_INVENTORY)])
def agent_transactions(request, pk):
    """Assignment, return and sale history for the agent"""
    agent = get_object_or_404(Agent, pk=pk)
    transactions = agent.transactions.all().order_by('-transaction_date', '-id')
    transaction_type = request.query_params.get('type')
    if transaction_type:
        transactions = transactions.filter(transaction_type=transaction_type)
    return Response(AgentTransactionSerializer(transactions, many=True).data)
