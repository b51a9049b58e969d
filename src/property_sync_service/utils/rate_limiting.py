"""
Rate limiting configuration for the Property Sync Service.
"""

from typing import Callable

from slowapi import Limiter
from slowapi.util import get_remote_address

from property_sync_service.config import settings
from property_sync_service.utils.logging_config import logger


def get_key_function() -> Callable:
    """
    Return the appropriate key function for rate limiting.

    Production keys on the client IP; development and tests share one bucket.
    """
    if settings.is_development() or settings.is_testing():
        logger.debug("Using development rate limiting key function")
        return lambda _: "development"
    logger.debug("Using production rate limiting key function based on client IP")
    return get_remote_address


def sync_rate_limit() -> str:
    return f"{settings.RATE_LIMIT_SYNC_PER_MINUTE}/minute"


# Initialize the rate limiter with the appropriate key function
limiter = Limiter(key_func=get_key_function(), enabled=not settings.is_testing())
