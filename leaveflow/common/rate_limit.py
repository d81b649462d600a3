"""Rate limiting configuration using slowapi.

A module-level Limiter shared by the routers and wired into the FastAPI app
in main.py. Write endpoints that fan out to the calendar and notification
collaborators carry tighter per-route limits.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)

SUBMIT_LIMIT = "30/minute"
BULK_LIMIT = "10/minute"
