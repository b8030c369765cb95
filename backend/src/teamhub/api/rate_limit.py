"""Rate limiting configuration for the TeamHub API."""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Single shared limiter instance; create_app enables it in production
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
    storage_uri="memory://",
    enabled=False,
)
