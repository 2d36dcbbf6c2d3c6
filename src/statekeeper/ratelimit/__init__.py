"""Rate limiting for request handlers."""

from statekeeper.ratelimit.identity import get_identifier
from statekeeper.ratelimit.limiter import (
    GLOBAL_EXEMPT,
    RATE_LIMITER_CONFIGS,
    RateLimiter,
    RateLimiterConfig,
    RateLimiterType,
    get_rate_limiter_config,
)

__all__ = [
    "GLOBAL_EXEMPT",
    "RATE_LIMITER_CONFIGS",
    "RateLimiter",
    "RateLimiterConfig",
    "RateLimiterType",
    "get_identifier",
    "get_rate_limiter_config",
]
