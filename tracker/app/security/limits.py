"""
Rate limiting (slowapi), keyed by client address.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from tracker.app.core.config import get_settings


def get_limiter() -> Limiter:
    """
    Create the rate limiter, disabled in test mode.

    Set ENV=TEST or DISABLE_RATE_LIMITS=1 to disable rate limiting.
    """
    if get_settings().RATE_LIMITS_DISABLED:
        return Limiter(key_func=get_remote_address, enabled=False)
    return Limiter(key_func=get_remote_address)


limiter = get_limiter()
