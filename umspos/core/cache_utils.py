"""
Caching utilities for report queries.

Keys live under a namespace whose generation number is stored in the cache
itself. Bumping the generation orphans every key of that namespace at once,
which works the same on Redis and on the local-memory backend.
"""
from django.conf import settings
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

REPORTS_NAMESPACE = 'reports'
INVENTORY_NAMESPACE = 'inventory'


def _generation_key(namespace):
    return f"cachegen:{namespace}"


def get_generation(namespace):
    generation = cache.get(_generation_key(namespace))
    if generation is None:
        generation = 1
        cache.add(_generation_key(namespace), generation, None)
    return generation


def make_cache_key(namespace, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{namespace}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{namespace}:{get_generation(namespace)}:{key_hash}"


def cached_query(namespace, cache_ttl=None):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(REPORTS_NAMESPACE)
        def earnings_by_meter_type():
            # expensive query here
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(f"{namespace}", func.__name__, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {func.__name__}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {func.__name__}: {cache_key}")
            result = func(*args, **kwargs)

            ttl = cache_ttl if cache_ttl is not None else settings.REPORTS_CACHE_TTL
            cache.set(cache_key, result, ttl)
            return result
        return wrapper
    return decorator


def invalidate_namespace(namespace):
    """Invalidate every cached entry of a namespace"""
    try:
        cache.incr(_generation_key(namespace))
    except ValueError:
        # Generation key missing or evicted: start a fresh one
        cache.set(_generation_key(namespace), 2, None)
    logger.debug(f"Invalidated cache namespace: {namespace}")


def invalidate_inventory_cache():
    """Invalidate stock and report caches after meters move"""
    invalidate_namespace(INVENTORY_NAMESPACE)
    invalidate_namespace(REPORTS_NAMESPACE)


def invalidate_reports_cache():
    invalidate_namespace(REPORTS_NAMESPACE)
