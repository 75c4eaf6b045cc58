"""
Shared slowapi limiter.

Routers decorate endpoints with ``limiter.limit(...)``; the application
registers the same instance on ``app.state``. Counters live in Redis so
limits hold across workers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from quickcart.core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=get_settings().redis_url,
)
