"""Per-client rate limiting shared by every router."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from ride_service.config import settings

limiter = Limiter(key_func=get_remote_address)

RATE_LIMIT = settings.rate_limit
