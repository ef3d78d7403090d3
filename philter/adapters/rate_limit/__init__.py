"""Rate limiting adapters.

Two interchangeable backends share ``AbstractRateLimiter``: an in-process
counter map and a remote counter store reached over HTTP. The HTTP layer
never knows which one it is talking to.
"""

from philter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from philter.adapters.rate_limit.factory import create_rate_limiter
from philter.adapters.rate_limit.in_memory import InMemoryRateLimiter
from philter.adapters.rate_limit.remote import RemoteCounterClient, RemoteRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryRateLimiter",
    "RateLimitResult",
    "RemoteCounterClient",
    "RemoteRateLimiter",
    "create_rate_limiter",
]
