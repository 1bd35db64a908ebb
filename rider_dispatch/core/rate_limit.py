"""
Shared slowapi limiter.

Routers decorate endpoints with ``limiter.limit(...)``; the application
registers the limiter on ``app.state`` and installs the 429 handler.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from rider_dispatch.core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    enabled=not get_settings().is_test,
)
