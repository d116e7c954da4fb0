"""Rate limiting: strategy selection, action budgets, and counting backends.

Backends and the service are imported from their modules directly
(``service``, ``cache_limiter``, ``store_limiter``) because they depend on
application configuration, which itself depends on ``strategy``.
"""

from sparq_ai.services.rate_limiting.policies import (
    ACTION_LIMITS,
    ROUTE_ACTIONS,
    ActionLimit,
    RateLimitAction,
    action_for_path,
    client_identifier,
    composite_key,
    get_action_limit,
    parse_time_string,
    should_rate_limit,
)
from sparq_ai.services.rate_limiting.results import RateLimitResult
from sparq_ai.services.rate_limiting.strategy import (
    RateLimitConfig,
    Strategy,
    select_strategy,
)

__all__ = [
    # Strategy
    "RateLimitConfig",
    "Strategy",
    "select_strategy",
    # Policies
    "ACTION_LIMITS",
    "ROUTE_ACTIONS",
    "ActionLimit",
    "RateLimitAction",
    "action_for_path",
    "client_identifier",
    "composite_key",
    "get_action_limit",
    "parse_time_string",
    "should_rate_limit",
    # Results
    "RateLimitResult",
]
