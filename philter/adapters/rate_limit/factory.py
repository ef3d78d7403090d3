"""Factory for the rate limiter backend."""

from __future__ import annotations

import logging

from philter.adapters.rate_limit.base import AbstractRateLimiter
from philter.adapters.rate_limit.in_memory import InMemoryRateLimiter
from philter.adapters.rate_limit.remote import RemoteCounterClient, RemoteRateLimiter
from philter.core.config import RateLimitSettings, settings

logger = logging.getLogger(__name__)


def create_rate_limiter(rate_limit_settings: RateLimitSettings | None = None) -> AbstractRateLimiter:
    """Pick the backend from configuration.

    The remote counter store is used only when both its URL and token are
    set; otherwise counters stay in process memory.

    Returns:
        AbstractRateLimiter: Configured backend.
    """
    cfg = rate_limit_settings or settings.rate_limit

    if cfg.remote_url and cfg.remote_token:
        logger.info("rate_limit.backend_selected", extra={"backend": "remote"})
        return RemoteRateLimiter(
            RemoteCounterClient(
                base_url=cfg.remote_url,
                token=cfg.remote_token,
                timeout_seconds=cfg.remote_timeout_seconds,
            )
        )

    logger.info("rate_limit.backend_selected", extra={"backend": "in_memory"})
    return InMemoryRateLimiter()
