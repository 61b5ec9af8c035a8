"""
Moving meters between stock and agents.
"""
import logging

from django.db import transaction
from django.utils import timezone

from umspos.core.cache_signals import suspend_cache_signals
from umspos.core.cache_utils import invalidate_inventory_cache
from umspos.core.exceptions import InventoryError
from umspos.core.utils import create_audit_log
from umspos.meters.constants import STATUS_IN_STOCK, STATUS_WITH_AGENT, normalize_serial
from umspos.meters.models import Meter
from umspos.meters.services import alert_low_stock, find_duplicates, group_by_type, lock_meters
from umspos.notifications.services import notify
from umspos.sales.services import sell_meters
from .models import Agent, AgentTransaction

logger = logging.getLogger(__name__)


def _clean_serials(serial_numbers, empty_message):
    serials = [normalize_serial(s) for s in (serial_numbers or []) if normalize_serial(s)]
    if not serials:
        raise InventoryError(empty_message)
    duplicates = find_duplicates(serials)
    if duplicates:
        raise InventoryError(f"Duplicate serial numbers: {', '.join(duplicates)}", duplicates)
    return serials


def _record_transactions(agent, transaction_type, meters, user, reference_number=None):
    AgentTransaction.objects.bulk_create([
        AgentTransaction(
            agent=agent,
            transaction_type=transaction_type,
            meter_type=meter_type,
            quantity=len(type_meters),
            reference_number=reference_number,
            performed_by=user,
            performer_name=user.display_name if user else '',
        )
        for meter_type, type_meters in group_by_type(meters).items()
    ])


def assign_meters_to_agent(agent, serial_numbers, user):
    """Hand in-stock meters to an active agent; returns the meters"""
    serials = _clean_serials(serial_numbers, 'No meters selected for assignment')
    if not agent.is_active:
        raise InventoryError(f"Agent {agent.name} is inactive")

    now = timezone.now()
    with transaction.atomic(), suspend_cache_signals():
        Agent.objects.select_for_update().get(pk=agent.pk)
        meters = lock_meters(serials, STATUS_IN_STOCK)
        for meter in meters:
            meter.transition_to(STATUS_WITH_AGENT, agent=agent, at=now)
            meter.updated_at = now
        Meter.objects.bulk_update(meters, ['status', 'agent', 'assigned_at', 'updated_at'])
        _record_transactions(agent, AgentTransaction.TYPE_ASSIGNMENT, meters, user)

    transaction.on_commit(invalidate_inventory_cache)

    counts = {t: len(m) for t, m in group_by_type(meters).items()}
    logger.info(f"Assigned {len(serials)} meters to agent {agent.name} by {user.display_name}")
    create_audit_log(
        action='meter_assign', model_name='Agent', object_id=agent.id, user=user,
        object_name=agent.name, serial_numbers=serials, changes={'types': counts},
    )
    notify(
        'assignment',
        f"{user.display_name} assigned {len(serials)} meters to {agent.name}",
        created_by=user, agent_id=agent.id, agent_name=agent.name, types=counts,
    )
    alert_low_stock(list(counts), user=user)
    return meters


def return_meters_from_agent(agent, serial_numbers, user):
    """Take meters back from an agent into stock; returns the meters"""
    serials = _clean_serials(serial_numbers, 'No meters selected for return')

    now = timezone.now()
    with transaction.atomic(), suspend_cache_signals():
        meters = lock_meters(serials, STATUS_WITH_AGENT, agent=agent)
        for meter in meters:
            meter.transition_to(STATUS_IN_STOCK)
            meter.updated_at = now
        Meter.objects.bulk_update(meters, ['status', 'agent', 'assigned_at', 'updated_at'])
        _record_transactions(agent, AgentTransaction.TYPE_RETURN, meters, user)

    transaction.on_commit(invalidate_inventory_cache)

    counts = {t: len(m) for t, m in group_by_type(meters).items()}
    logger.info(f"Returned {len(serials)} meters from agent {agent.name} by {user.display_name}")
    create_audit_log(
        action='agent_return', model_name='Agent', object_id=agent.id, user=user,
        object_name=agent.name, serial_numbers=serials, changes={'types': counts},
    )
    notify(
        'return',
        f"{user.display_name} returned {len(serials)} meters from {agent.name}",
        created_by=user, agent_id=agent.id, agent_name=agent.name, types=counts,
    )
    return meters


def record_agent_sale(agent, serial_numbers, unit_prices, user, sale_date=None):
    """Sell meters out of an agent's inventory; the agent is the customer of record"""
    sale_details = {
        'destination': agent.location,
        'recipient': agent.name,
        'customer_type': 'agent',
        'customer_county': agent.county,
        'customer_contact': agent.phone_number,
        'sale_date': sale_date,
    }
    with transaction.atomic():
        sales_transaction = sell_meters(user, serial_numbers, sale_details, unit_prices, agent=agent)
        sold = Meter.objects.filter(sales__batch__transaction=sales_transaction).distinct()
        _record_transactions(
            agent, AgentTransaction.TYPE_SALE, list(sold), user,
            reference_number=sales_transaction.reference_number,
        )
    return sales_transaction


def delete_agent(agent, scanned_serials, user, write_off_unscanned=False):
    """
    Remove an agent. Scanned meters the agent holds go back to stock; meters
    the agent holds that were not scanned block the delete unless they are
    explicitly written off.
    """
    scanned = {normalize_serial(s) for s in (scanned_serials or []) if normalize_serial(s)}

    with transaction.atomic(), suspend_cache_signals():
        agent = Agent.objects.select_for_update().get(pk=agent.pk)
        held = list(Meter.objects.select_for_update().filter(agent=agent, status=STATUS_WITH_AGENT))
        to_restore = [m for m in held if m.serial_number in scanned]
        unscanned = [m for m in held if m.serial_number not in scanned]

        if unscanned and not write_off_unscanned:
            missing = sorted(m.serial_number for m in unscanned)
            raise InventoryError(
                f"{len(missing)} meters held by {agent.name} were not scanned",
                missing,
            )

        now = timezone.now()
        for meter in to_restore:
            meter.transition_to(STATUS_IN_STOCK)
            meter.updated_at = now
        Meter.objects.bulk_update(to_restore, ['status', 'agent', 'assigned_at', 'updated_at'])
        if to_restore:
            _record_transactions(agent, AgentTransaction.TYPE_RETURN, to_restore, user)

        written_off = sorted(m.serial_number for m in unscanned)
        if unscanned:
            Meter.objects.filter(pk__in=[m.pk for m in unscanned]).delete()

        agent_id, agent_name = agent.id, agent.name
        agent.delete()

    transaction.on_commit(invalidate_inventory_cache)

    restored = sorted(m.serial_number for m in to_restore)
    logger.info(
        f"Deleted agent {agent_name}: {len(restored)} meters restored, {len(written_off)} written off"
    )
    create_audit_log(
        action='delete', model_name='Agent', object_id=agent_id, user=user,
        object_name=agent_name, serial_numbers=restored,
        changes={'restored_count': len(restored), 'deleted_count': len(written_off)},
    )
    if written_off:
        create_audit_log(
            action='meter_write_off', model_name='Meter', object_id=agent_id, user=user,
            object_name=agent_name, serial_numbers=written_off,
            changes={'reason': 'not returned when agent was deleted'},
        )
    return {'restored_count': len(restored), 'deleted_count': len(written_off)}
