"""Utility functions for audit logging, request parsing and responses"""
import csv
import logging
from datetime import datetime

from django.core.paginator import Paginator
from django.db import transaction
from django.http import HttpResponse
from rest_framework.response import Response

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None,
                     serial_numbers=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (meter_add, meter_sale, agent_return, etc.)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., agent name)
        object_reference: Reference identifier (e.g., sales reference number)
        serial_numbers: Iterable of meter serials touched by the action
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        ip_address = get_client_ip(request) if request else None

        if not action or not model_name or object_id is None:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        if serial_numbers and not isinstance(serial_numbers, str):
            serial_numbers = ','.join(serial_numbers)

        with transaction.atomic():
            return AuditLog.objects.create(
                user=audit_user if audit_user and audit_user.is_authenticated else None,
                action=action,
                model_name=model_name,
                object_id=str(object_id),
                object_name=object_name,
                object_reference=object_reference,
                serial_numbers=serial_numbers or None,
                changes=changes or {},
                ip_address=ip_address
            )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def parse_date_param(value, default=None):
    """Parse a YYYY-MM-DD query parameter; raises ValueError on bad input"""
    if not value:
        return default
    return datetime.strptime(value, '%Y-%m-%d').date()


def parse_positive_int(value, default):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def csv_response(filename, headers, rows):
    """Stream rows as a CSV attachment; values are quoted as needed by the csv module"""
    response = HttpResponse(content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    writer = csv.writer(response)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(['' if value is None else value for value in row])
    return response


def inventory_error_response(error):
    """Render an InventoryError the way every endpoint reports it"""
    logger.warning(f"{type(error).__name__}: {error.message}")
    return Response(error.to_response_data(), status=error.status_code)


def paginate(queryset, request, default_page_size=50, max_page_size=200):
    """Page a queryset from ?page= and ?page_size=; returns (page_obj, paginator, page, page_size)"""
    page = parse_positive_int(request.query_params.get('page'), 1)
    page_size = min(parse_positive_int(request.query_params.get('page_size'), default_page_size), max_page_size)
    paginator = Paginator(queryset, page_size)
    page_obj = paginator.get_page(page)
    return page_obj, paginator, page_obj.number, page_size
