"""
Sales, returns and faulty-meter handling.

Every operation locks the meters it touches and runs in one transaction;
when any meter fails validation nothing is written.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.db.models.functions import Length
from django.utils import timezone

from umspos.core.cache_signals import suspend_cache_signals
from umspos.core.cache_utils import invalidate_inventory_cache
from umspos.core.exceptions import InventoryError, MeterStateError
from umspos.core.utils import create_audit_log
from umspos.meters.constants import (
    STATUS_FAULTY, STATUS_IN_STOCK, STATUS_REPLACED, STATUS_SOLD, STATUS_WITH_AGENT,
    normalize_meter_type, normalize_serial,
)
from umspos.meters.models import Meter
from umspos.meters.services import alert_low_stock, find_duplicates, group_by_type, lock_meters
from umspos.notifications.services import notify
from .constants import CUSTOMER_TYPES, KENYA_COUNTIES
from .models import FaultyReturn, SaleBatch, SalesTransaction, SoldMeter

logger = logging.getLogger(__name__)

REFERENCE_ATTEMPTS = 3

RETURN_HEALTHY = 'healthy'
RETURN_FAULTY = 'faulty'


def generate_reference_number(year):
    """Next SR/<year>/NNNNN reference; the sequence restarts every year"""
    prefix = f"SR/{year}/"
    # Zero-padded, so a longer reference is always a later one
    last = (
        SalesTransaction.objects.filter(reference_number__startswith=prefix)
        .order_by(Length('reference_number').desc(), '-reference_number')
        .values_list('reference_number', flat=True)
        .first()
    )
    next_sequence = 1
    if last:
        try:
            next_sequence = int(last.rsplit('/', 1)[-1]) + 1
        except ValueError:
            next_sequence = 1
    return f"{prefix}{next_sequence:05d}"


def _parse_unit_prices(unit_prices, meter_types):
    prices = {}
    for key, value in (unit_prices or {}).items():
        meter_type = normalize_meter_type(key)
        if meter_type is None:
            continue
        try:
            prices[meter_type] = Decimal(str(value))
        except (InvalidOperation, ValueError):
            continue

    missing = [t for t in meter_types if prices.get(t) is None or prices[t] <= 0]
    if missing:
        raise InventoryError(f"Enter a valid unit price for: {', '.join(missing)}")
    return {t: prices[t] for t in meter_types}


def _clean_sale_details(sale_details):
    destination = (sale_details.get('destination') or '').strip()
    recipient = (sale_details.get('recipient') or '').strip()
    if not destination:
        raise InventoryError('Destination is required')
    if not recipient:
        raise InventoryError('Recipient is required')

    customer_type = (sale_details.get('customer_type') or 'walk in').strip().lower()
    if customer_type not in CUSTOMER_TYPES:
        raise InventoryError(f"Invalid customer type: {customer_type}")

    county = (sale_details.get('customer_county') or '').strip() or None
    if county and county not in KENYA_COUNTIES:
        raise InventoryError(f"Invalid county: {county}")

    return {
        'destination': destination,
        'recipient': recipient,
        'customer_type': customer_type,
        'customer_county': county,
        'customer_contact': (sale_details.get('customer_contact') or '').strip() or None,
    }


def _create_transaction(user, user_name, sale_date, customer):
    """Insert the transaction row, retrying when another sale takes the reference first"""
    year = timezone.localtime(sale_date).year if timezone.is_aware(sale_date) else sale_date.year
    for attempt in range(1, REFERENCE_ATTEMPTS + 1):
        reference = generate_reference_number(year)
        try:
            with transaction.atomic():
                return SalesTransaction.objects.create(
                    reference_number=reference,
                    user=user,
                    user_name=user_name,
                    sale_date=sale_date,
                    **customer,
                )
        except IntegrityError:
            logger.warning(f"Reference {reference} already taken (attempt {attempt}/{REFERENCE_ATTEMPTS})")
    raise InventoryError('Could not allocate a sales reference number, please retry')


def sell_meters(user, serial_numbers, sale_details, unit_prices, agent=None):
    """
    Sell meters from stock, or from an agent's inventory when `agent` is given.

    Creates one SalesTransaction, one SaleBatch per meter type and one
    SoldMeter per meter. Returns the transaction.
    """
    serials = [normalize_serial(s) for s in (serial_numbers or []) if normalize_serial(s)]
    if not serials:
        raise InventoryError('No meters selected for sale')
    duplicates = find_duplicates(serials)
    if duplicates:
        raise InventoryError(f"Duplicate serial numbers: {', '.join(duplicates)}", duplicates)

    customer = _clean_sale_details(sale_details)
    sale_date = sale_details.get('sale_date') or timezone.now()
    user_name = user.display_name
    source_status = STATUS_WITH_AGENT if agent is not None else STATUS_IN_STOCK

    with transaction.atomic(), suspend_cache_signals():
        meters = lock_meters(serials, source_status, agent=agent)
        groups = group_by_type(meters)
        prices = _parse_unit_prices(unit_prices, list(groups))

        sales_transaction = _create_transaction(user, user_name, sale_date, customer)

        total_amount = Decimal('0.00')
        sold_rows = []
        for meter_type, type_meters in groups.items():
            batch = SaleBatch.objects.create(
                transaction=sales_transaction,
                user=user,
                user_name=user_name,
                meter_type=meter_type,
                batch_amount=len(type_meters),
                unit_price=prices[meter_type],
                sale_date=sale_date,
                **customer,
            )
            total_amount += batch.total_price
            for meter in type_meters:
                meter.transition_to(STATUS_SOLD)
                sold_rows.append(SoldMeter(
                    meter=meter,
                    batch=batch,
                    serial_number=meter.serial_number,
                    sold_by=user,
                    seller_name=user_name,
                    sold_at=sale_date,
                    unit_price=prices[meter_type],
                    status=SoldMeter.STATUS_SOLD,
                    **customer,
                ))

        now = timezone.now()
        for meter in meters:
            meter.updated_at = now
        Meter.objects.bulk_update(meters, ['status', 'agent', 'assigned_at', 'updated_at'])
        SoldMeter.objects.bulk_create(sold_rows)

        sales_transaction.total_amount = total_amount
        sales_transaction.save(update_fields=['total_amount'])

    transaction.on_commit(invalidate_inventory_cache)

    source = f"agent {agent.name}" if agent is not None else 'stock'
    logger.info(
        f"Sale {sales_transaction.reference_number}: {len(serials)} meters from {source} "
        f"to {customer['recipient']} by {user_name}"
    )
    create_audit_log(
        action='agent_sale' if agent is not None else 'meter_sale',
        model_name='SalesTransaction',
        object_id=sales_transaction.id,
        user=user,
        object_name=customer['recipient'],
        object_reference=sales_transaction.reference_number,
        serial_numbers=serials,
        changes={
            'total_amount': str(total_amount),
            'types': {t: len(m) for t, m in groups.items()},
            'agent_id': agent.id if agent is not None else None,
        },
    )
    notify(
        'sale',
        f"{user_name} sold {len(serials)} meters to {customer['recipient']} ({sales_transaction.reference_number})",
        created_by=user,
        reference_number=sales_transaction.reference_number,
        transaction_id=sales_transaction.id,
        total_amount=total_amount,
    )
    if agent is None:
        alert_low_stock(list(groups), user=user)
    return sales_transaction


def _clean_return_items(items):
    if not items:
        raise InventoryError('No meters selected for return')

    cleaned = []
    for item in items:
        serial = normalize_serial(item.get('serial_number'))
        if not serial:
            raise InventoryError('Serial number cannot be empty')
        condition = (item.get('status') or '').strip().lower()
        if condition not in (RETURN_HEALTHY, RETURN_FAULTY):
            raise InventoryError(f"Return status must be healthy or faulty for {serial}", [serial])
        description = (item.get('fault_description') or '').strip()
        replacement = normalize_serial(item.get('replacement_serial')) or None
        if condition == RETURN_FAULTY and not description:
            raise InventoryError(f"Fault description is required for {serial}", [serial])
        if replacement and condition != RETURN_FAULTY:
            raise InventoryError(f"Only faulty meters can be replaced ({serial})", [serial])
        cleaned.append({
            'serial_number': serial,
            'status': condition,
            'fault_description': description,
            'replacement_serial': replacement,
        })

    serials = [item['serial_number'] for item in cleaned]
    duplicates = find_duplicates(serials)
    if duplicates:
        raise InventoryError(f"Duplicate serial numbers: {', '.join(duplicates)}", duplicates)

    replacements = [item['replacement_serial'] for item in cleaned if item['replacement_serial']]
    duplicates = find_duplicates(replacements) + [s for s in replacements if s in serials]
    if duplicates:
        raise InventoryError(f"Invalid replacement serial numbers: {', '.join(duplicates)}", duplicates)
    return cleaned


def return_sold_meters(user, items):
    """
    Take back sold meters.

    Healthy meters go back into stock. Faulty meters are logged for repair
    and may be swapped for an in-stock meter of the same type, which is sold
    into the original batch at the original price.
    """
    cleaned = _clean_return_items(items)
    serials = [item['serial_number'] for item in cleaned]
    replacement_serials = [item['replacement_serial'] for item in cleaned if item['replacement_serial']]
    user_name = user.display_name
    now = timezone.now()

    summary = {'returned': [], 'faulty': [], 'replaced': []}

    with transaction.atomic(), suspend_cache_signals():
        meters = {m.serial_number: m for m in lock_meters(serials, STATUS_SOLD)}
        sales = {
            sale.meter_id: sale
            for sale in SoldMeter.objects.select_for_update().filter(
                meter__in=meters.values(), status=SoldMeter.STATUS_SOLD
            )
        }
        without_sale = [s for s in serials if meters[s].id not in sales]
        if without_sale:
            raise MeterStateError(f"No active sale found for: {', '.join(without_sale)}", without_sale)

        replacements = {}
        if replacement_serials:
            replacements = {m.serial_number: m for m in lock_meters(replacement_serials, STATUS_IN_STOCK)}

        for item in cleaned:
            if item['replacement_serial']:
                original = meters[item['serial_number']]
                replacement = replacements[item['replacement_serial']]
                if replacement.type != original.type:
                    raise MeterStateError(
                        f"Replacement {replacement.serial_number} is {replacement.type}, "
                        f"expected {original.type}",
                        [replacement.serial_number],
                    )

        for item in cleaned:
            meter = meters[item['serial_number']]
            sale = sales[meter.id]

            if item['status'] == RETURN_HEALTHY:
                sale.status = SoldMeter.STATUS_RETURNED
                sale.save(update_fields=['status'])
                meter.transition_to(STATUS_IN_STOCK)
                meter.save()
                summary['returned'].append(meter.serial_number)
                continue

            if item['replacement_serial']:
                replacement = replacements[item['replacement_serial']]
                sale.status = SoldMeter.STATUS_REPLACED
                sale.replacement_serial = replacement.serial_number
                sale.replacement_date = now
                sale.replacement_by = user_name
                sale.save(update_fields=['status', 'replacement_serial', 'replacement_date', 'replacement_by'])
                meter.transition_to(STATUS_REPLACED)

                replacement.transition_to(STATUS_SOLD)
                replacement.save()
                SoldMeter.objects.create(
                    meter=replacement,
                    batch=sale.batch,
                    serial_number=replacement.serial_number,
                    sold_by=user,
                    seller_name=user_name,
                    sold_at=now,
                    destination=sale.destination,
                    recipient=sale.recipient,
                    customer_type=sale.customer_type,
                    customer_county=sale.customer_county,
                    customer_contact=sale.customer_contact,
                    unit_price=sale.unit_price,
                    status=SoldMeter.STATUS_SOLD,
                )
                summary['replaced'].append({
                    'serial_number': meter.serial_number,
                    'replacement_serial': replacement.serial_number,
                })
            else:
                sale.status = SoldMeter.STATUS_FAULTY
                sale.save(update_fields=['status'])
                meter.transition_to(STATUS_FAULTY)
                summary['faulty'].append(meter.serial_number)

            meter.save()
            FaultyReturn.objects.create(
                meter=meter,
                sold_meter=sale,
                serial_number=meter.serial_number,
                meter_type=meter.type,
                returned_by=user,
                returner_name=user_name,
                fault_description=item['fault_description'],
                status=FaultyReturn.STATUS_PENDING,
            )

    transaction.on_commit(invalidate_inventory_cache)

    logger.info(
        f"Returns by {user_name}: {len(summary['returned'])} healthy, "
        f"{len(summary['faulty'])} faulty, {len(summary['replaced'])} replaced"
    )
    create_audit_log(
        action='sold_return', model_name='SoldMeter', object_id=','.join(serials)[:100],
        user=user, serial_numbers=serials, changes=summary,
    )
    for swap in summary['replaced']:
        create_audit_log(
            action='meter_replace', model_name='SoldMeter', object_id=swap['serial_number'],
            user=user, serial_numbers=[swap['serial_number'], swap['replacement_serial']], changes=swap,
        )
    notify(
        'return',
        f"{user_name} processed {len(serials)} returned meters",
        created_by=user, **summary,
    )
    return summary


def update_faulty_status(faulty_return, new_status, user):
    """
    Resolve a faulty return. A repaired meter goes back into stock, so a
    repaired record cannot be changed afterwards.
    """
    valid = [value for value, _ in FaultyReturn.STATUS_CHOICES]
    if new_status not in valid:
        raise InventoryError(f"Status must be one of: {', '.join(valid)}")

    with transaction.atomic():
        record = FaultyReturn.objects.select_for_update().get(pk=faulty_return.pk)
        if record.status == FaultyReturn.STATUS_REPAIRED:
            raise MeterStateError(
                f"Meter {record.serial_number} was already repaired and returned to stock",
                [record.serial_number],
            )
        previous = record.status

        if new_status == FaultyReturn.STATUS_REPAIRED:
            if record.meter_id is None:
                raise MeterStateError(
                    f"Meter {record.serial_number} no longer exists",
                    [record.serial_number],
                )
            meter = Meter.objects.select_for_update().get(pk=record.meter_id)
            if meter.status not in (STATUS_FAULTY, STATUS_REPLACED):
                raise MeterStateError(
                    f"Meter {meter.serial_number} is {meter.status}, not awaiting repair",
                    [meter.serial_number],
                )
            meter.transition_to(STATUS_IN_STOCK)
            meter.save()

        record.status = new_status
        if new_status == FaultyReturn.STATUS_PENDING:
            record.resolved_by = None
            record.resolved_at = None
        else:
            record.resolved_by = user
            record.resolved_at = timezone.now()
        record.save(update_fields=['status', 'resolved_by', 'resolved_at'])

    logger.info(f"Faulty meter {record.serial_number}: {previous} -> {new_status} by {user.display_name}")
    create_audit_log(
        action='faulty_status', model_name='FaultyReturn', object_id=record.id, user=user,
        serial_numbers=[record.serial_number], changes={'from': previous, 'to': new_status},
    )
    return record
