import json
import logging

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from .models import Notification

logger = logging.getLogger(__name__)


def notify(type, message, created_by=None, **metadata):
    """Create a notification; failures are logged and never break the caller"""
    try:
        # Decimals and dates need encoding before they fit a JSONField
        metadata = json.loads(json.dumps(metadata, cls=DjangoJSONEncoder))
        with transaction.atomic():
            notification = Notification.objects.create(
                type=type,
                message=message,
                metadata=metadata,
                created_by=created_by if created_by and created_by.is_authenticated else None,
            )
    except Exception as e:
        logger.error(f"Failed to create {type} notification: {str(e)}")
        return None
    logger.info(f"Notification [{type}] {message}")
    return notification
