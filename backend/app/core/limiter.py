"""
Shared slowapi limiter. Routers decorate endpoints with @limiter.limit(...);
main.py registers the same instance on app.state.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from backend.app.core.settings import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_settings().RATE_LIMIT_ENABLED,
)
