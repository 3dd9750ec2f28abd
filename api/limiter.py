"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and by the route modules that
apply per-route limits with @limiter.limit(): POST /auth/login and the public
POST /submissions.

One shared instance means one counter store; separate instances per module
would each count in isolation and never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
