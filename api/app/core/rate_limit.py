from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Backed by Redis so limits hold across workers; switched off in tests
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.redis_url,
    enabled=settings.rate_limit_enabled,
)
