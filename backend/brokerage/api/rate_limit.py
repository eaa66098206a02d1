"""
Shared slowapi limiter.

Every route gets ``rate_limit_default`` through the middleware; routes may
tighten it with ``@limiter.limit``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from brokerage.core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_settings().rate_limit_default],
)
