"""
api/limiter.py -- The one slowapi Limiter for SensorHub.

api/main.py mounts it (SlowAPIMiddleware reads app.state.limiter) and
api/routes/v1/auth.py decorates login and register with it. Both must see
this same object: a second Limiter would keep its own counters and the
login limit would silently never trip.

Keys are client IPs; counters live in process memory, so limits are per
instance. RATE_LIMIT_ENABLED=false turns every limit off (the test suite
logs in far more often than LOGIN_RATE_LIMIT allows).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)
