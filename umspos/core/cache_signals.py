"""
Cache invalidation signals
Automatically invalidate cache when meters, sales or agents change
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_inventory_cache, invalidate_reports_cache

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

INVENTORY_MODELS = {'Meter', 'PurchaseBatch', 'MinimumStockLevel', 'Agent'}
SALES_MODELS = {'SalesTransaction', 'SaleBatch', 'SoldMeter', 'FaultyReturn'}


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    previous = is_suspended()
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver([post_save, post_delete])
def invalidate_inventory_and_reports(sender, instance, **kwargs):
    """Invalidate report caches once inventory or sales changes are committed"""
    if is_suspended():
        return

    model_name = sender.__name__
    if model_name in INVENTORY_MODELS:
        transaction.on_commit(invalidate_inventory_cache)
    elif model_name in SALES_MODELS:
        transaction.on_commit(invalidate_reports_cache)
