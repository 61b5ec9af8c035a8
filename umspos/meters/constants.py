"""Meter types and statuses shared across the inventory apps"""

METER_TYPES = ['integrated', 'split', 'gas', 'water', 'smart', '3 phase']

METER_TYPE_CHOICES = [
    ('integrated', 'Integrated'),
    ('split', 'Split'),
    ('gas', 'Gas'),
    ('water', 'Water'),
    ('smart', 'Smart'),
    ('3 phase', '3 Phase'),
]

STATUS_IN_STOCK = 'in_stock'
STATUS_WITH_AGENT = 'with_agent'
STATUS_SOLD = 'sold'
STATUS_FAULTY = 'faulty'
STATUS_REPLACED = 'replaced'

METER_STATUS_CHOICES = [
    (STATUS_IN_STOCK, 'In Stock'),
    (STATUS_WITH_AGENT, 'With Agent'),
    (STATUS_SOLD, 'Sold'),
    (STATUS_FAULTY, 'Faulty'),
    (STATUS_REPLACED, 'Replaced'),
]

METER_STATUSES = [value for value, _ in METER_STATUS_CHOICES]

# Allowed lifecycle moves; anything else is rejected
ALLOWED_TRANSITIONS = {
    STATUS_IN_STOCK: {STATUS_WITH_AGENT, STATUS_SOLD},
    STATUS_WITH_AGENT: {STATUS_IN_STOCK, STATUS_SOLD},
    STATUS_SOLD: {STATUS_IN_STOCK, STATUS_FAULTY, STATUS_REPLACED},
    STATUS_FAULTY: {STATUS_IN_STOCK},
    STATUS_REPLACED: {STATUS_IN_STOCK},
}


def normalize_serial(serial):
    """Strip and uppercase a serial number"""
    return (serial or '').strip().upper()


def normalize_meter_type(value):
    """Return the canonical meter type for case-insensitive input, or None"""
    if value is None:
        return None
    candidate = str(value).strip().lower()
    return candidate if candidate in METER_TYPES else None


def can_transition(current, target):
    return target in ALLOWED_TRANSITIONS.get(current, set())
