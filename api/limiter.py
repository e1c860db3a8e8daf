"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted via SlowAPIMiddleware, exposed on
app.state.limiter) and by the route modules that apply @limiter.limit().
One shared instance means one counter store; per-module instances would
each count separately and the limits would never trigger.

Keyed by client address. Login endpoints are the ones that matter: every
call to them costs a round trip to Google's user-info endpoint.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
