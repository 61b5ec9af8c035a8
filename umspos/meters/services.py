"""
Stock intake and the row-locking helpers every meter movement goes through.
"""
import csv
import io
import logging
import uuid
from collections import OrderedDict
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone
from openpyxl import load_workbook

from umspos.core.cache_signals import suspend_cache_signals
from umspos.core.cache_utils import invalidate_inventory_cache
from umspos.core.exceptions import DuplicateMeterError, InventoryError, MeterNotFound, MeterStateError
from umspos.core.utils import create_audit_log
from umspos.notifications.services import notify
from .constants import METER_TYPES, STATUS_IN_STOCK, normalize_meter_type, normalize_serial
from .models import Meter, MinimumStockLevel, PurchaseBatch

logger = logging.getLogger(__name__)

SUPPORTED_IMPORT_EXTENSIONS = ('csv', 'xlsx')


def find_duplicates(values):
    seen = set()
    duplicates = []
    for value in values:
        if value in seen and value not in duplicates:
            duplicates.append(value)
        seen.add(value)
    return duplicates


def lock_meters(serials, status, agent=None):
    """
    Lock the meters for update and check they are all in `status`.

    Must run inside transaction.atomic(). Returns meters in the order the
    serials were given. Nothing is changed when any serial fails the check.
    """
    meters = {
        meter.serial_number: meter
        for meter in Meter.objects.select_for_update().filter(serial_number__in=serials)
    }

    missing = [serial for serial in serials if serial not in meters]
    if missing:
        raise MeterNotFound(f"Meters not found: {', '.join(missing)}", missing)

    wrong_state = [
        serial for serial in serials
        if meters[serial].status != status or (agent is not None and meters[serial].agent_id != agent.id)
    ]
    if wrong_state:
        if agent is not None:
            message = f"Meters not held by agent {agent.name}: {', '.join(wrong_state)}"
        else:
            message = f"Meters not {status.replace('_', ' ')}: {', '.join(wrong_state)}"
        raise MeterStateError(message, wrong_state)

    return [meters[serial] for serial in serials]


def group_by_type(meters):
    """Meter type -> list of meters, in first-seen order"""
    groups = OrderedDict()
    for meter in meters:
        groups.setdefault(meter.type, []).append(meter)
    return groups


def generate_batch_number(purchase_date):
    return f"PB-{purchase_date.strftime('%Y%m%d')}-{uuid.uuid4().hex[:6].upper()}"


def _parse_cost(value):
    try:
        cost = Decimal(str(value if value not in (None, '') else '0'))
    except (InvalidOperation, ValueError):
        return None
    return cost if cost >= 0 else None


def add_meters(user, meters, purchase_date=None, unit_costs=None):
    """
    Receive new meters into stock.

    `meters` is a list of {serial_number, type}. One PurchaseBatch is created
    per meter type, all sharing a batch number. Returns the created batches.
    """
    if not meters:
        raise InventoryError('No meters provided')

    purchase_date = purchase_date or timezone.localdate()
    unit_costs = {normalize_meter_type(k): v for k, v in (unit_costs or {}).items()}

    rows = []
    invalid_types = []
    for item in meters:
        serial = normalize_serial(item.get('serial_number'))
        meter_type = normalize_meter_type(item.get('type'))
        if not serial:
            raise InventoryError('Serial number cannot be empty')
        if meter_type is None:
            invalid_types.append(serial)
            continue
        rows.append((serial, meter_type))

    if invalid_types:
        raise InventoryError(f"Invalid meter type for: {', '.join(invalid_types)}", invalid_types)

    serials = [serial for serial, _ in rows]
    duplicates = find_duplicates(serials)
    if duplicates:
        raise InventoryError(f"Duplicate serial numbers in request: {', '.join(duplicates)}", duplicates)

    costs = {}
    for meter_type in {meter_type for _, meter_type in rows}:
        cost = _parse_cost(unit_costs.get(meter_type))
        if cost is None:
            raise InventoryError(f"Invalid unit cost for {meter_type}")
        costs[meter_type] = cost

    adder_name = user.display_name if user else ''
    batch_number = generate_batch_number(purchase_date)

    try:
        with transaction.atomic(), suspend_cache_signals():
            existing = list(
                Meter.objects.filter(serial_number__in=serials).values_list('serial_number', flat=True)
            )
            if existing:
                raise DuplicateMeterError(
                    f"Serial numbers already exist: {', '.join(sorted(existing))}", sorted(existing)
                )

            by_type = OrderedDict()
            for serial, meter_type in rows:
                by_type.setdefault(meter_type, []).append(serial)

            batches = []
            for meter_type, type_serials in by_type.items():
                batch = PurchaseBatch.objects.create(
                    batch_number=batch_number,
                    meter_type=meter_type,
                    quantity=len(type_serials),
                    unit_cost=costs[meter_type],
                    purchase_date=purchase_date,
                    added_by=user,
                    adder_name=adder_name,
                )
                Meter.objects.bulk_create([
                    Meter(
                        serial_number=serial,
                        type=meter_type,
                        status=STATUS_IN_STOCK,
                        purchase_batch=batch,
                        added_by=user,
                        adder_name=adder_name,
                    )
                    for serial in type_serials
                ])
                batches.append(batch)
    except IntegrityError:
        # A concurrent request inserted one of the serials first
        taken = sorted(Meter.objects.filter(serial_number__in=serials).values_list('serial_number', flat=True))
        raise DuplicateMeterError(f"Serial numbers already exist: {', '.join(taken)}", taken)

    transaction.on_commit(invalidate_inventory_cache)

    logger.info(f"Added {len(serials)} meters in batch {batch_number} by {adder_name}")
    create_audit_log(
        action='meter_add', model_name='Meter', object_id=batch_number, user=user,
        object_reference=batch_number, serial_numbers=serials,
        changes={'count': len(serials), 'types': {b.meter_type: b.quantity for b in batches}},
    )
    notify('system', f"{adder_name or 'Someone'} added {len(serials)} meters to stock",
           created_by=user, batch_number=batch_number, count=len(serials))
    return batches


def _read_csv_rows(content):
    text = content.decode('utf-8-sig', errors='ignore') if isinstance(content, bytes) else content
    return list(csv.reader(io.StringIO(text)))


def _read_xlsx_rows(content):
    wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        ws = wb.active
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def parse_meter_file(name, content):
    """
    Parse an uploaded CSV or XLSX meter list.

    The first row is a header. Column 1 holds the serial, column 2 the type.
    Returns (meters, skipped_rows) where skipped_rows are 1-based sheet rows
    with an empty serial or unknown type.
    """
    extension = (name or '').rsplit('.', 1)[-1].lower() if '.' in (name or '') else ''
    if extension not in SUPPORTED_IMPORT_EXTENSIONS:
        raise ValueError('Unsupported file type. Upload a .csv or .xlsx file')

    rows = _read_csv_rows(content) if extension == 'csv' else _read_xlsx_rows(content)

    meters = []
    skipped_rows = []
    for row_number, row in enumerate(rows[1:], start=2):
        serial = normalize_serial(str(row[0]) if len(row) > 0 and row[0] is not None else '')
        meter_type = normalize_meter_type(row[1] if len(row) > 1 else None)
        if not serial or meter_type is None:
            skipped_rows.append(row_number)
            continue
        meters.append({'serial_number': serial, 'type': meter_type})

    logger.info(f"Parsed {len(meters)} meters from {name}, skipped {len(skipped_rows)} rows")
    return meters, skipped_rows


def remaining_by_type():
    """In-stock count for every meter type, zero included"""
    counts = {meter_type: 0 for meter_type in METER_TYPES}
    rows = Meter.objects.filter(status=STATUS_IN_STOCK).values('type').annotate(count=Count('id'))
    for row in rows:
        counts[row['type']] = row['count']
    return counts


def low_stock_types(meter_types=None):
    """[(type, remaining, minimum)] for types at or below their minimum level"""
    remaining = remaining_by_type()
    levels = MinimumStockLevel.levels_by_type()
    checked = meter_types if meter_types is not None else METER_TYPES
    return [
        (meter_type, remaining[meter_type], levels[meter_type])
        for meter_type in checked
        if remaining[meter_type] <= levels[meter_type]
    ]


def alert_low_stock(meter_types, user=None):
    """Post a stock alert for each given type that is running low"""
    for meter_type, remaining, minimum in low_stock_types(meter_types):
        notify(
            'stock_alert',
            f"Low stock: only {remaining} {meter_type} meters left (minimum {minimum})",
            created_by=user, meter_type=meter_type, remaining=remaining, minimum=minimum,
        )
