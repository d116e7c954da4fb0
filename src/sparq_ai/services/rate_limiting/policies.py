"""Rate-limit actions, their limits, and how HTTP requests map onto them."""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from starlette.requests import Request

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_time_string(value: str) -> int:
    """Convert strings like '1 h', '15 m', '30 s' to seconds.

    Raises:
        ValueError: On a malformed value or unknown unit.
    """
    try:
        amount, unit = value.split()
        number = int(amount)
    except ValueError:
        raise ValueError(f"Invalid time string: {value!r}") from None
    if unit not in _UNIT_SECONDS:
        raise ValueError(f"Unknown time unit: {unit}")
    return number * _UNIT_SECONDS[unit]


class RateLimitAction(str, Enum):
    """Named budgets requests are counted against."""

    AUTH_LOGIN = "auth_login"
    AUTH_REGISTER = "auth_register"
    AUTH_RESET_PASSWORD = "auth_reset_password"
    CREATE_INVITE = "create_invite"
    ACCEPT_INVITE = "accept_invite"
    FETCH_INVITES = "fetch_invites"
    DAILY_PROMPT = "daily_prompt"
    AI_CONTENT_GENERATION = "ai_content_generation"
    CRISIS_DETECTION = "crisis_detection"
    EMERGENCY_RESOURCES = "emergency_resources"
    API_GENERAL = "api_general"
    API_HEAVY = "api_heavy"
    FREE_TIER = "free_tier"
    PREMIUM_TIER = "premium_tier"
    PRO_TIER = "pro_tier"


@dataclass(frozen=True)
class ActionLimit:
    """Budget for one action: ``limit`` requests per ``window``."""

    limit: int
    window: str
    block_duration: str | None = None

    @property
    def window_seconds(self) -> int:
        return parse_time_string(self.window)

    @property
    def block_seconds(self) -> int:
        """Lockout after a denial; defaults to the window length."""
        return parse_time_string(self.block_duration or self.window)

    def to_dict(self) -> dict[str, int | str | None]:
        return {"limit": self.limit, "window": self.window, "block_duration": self.block_duration}


ACTION_LIMITS = MappingProxyType({
    # Authentication
    RateLimitAction.AUTH_LOGIN: ActionLimit(5, "1 m", "15 m"),
    RateLimitAction.AUTH_REGISTER: ActionLimit(3, "1 h", "1 h"),
    RateLimitAction.AUTH_RESET_PASSWORD: ActionLimit(3, "1 h", "1 h"),
    # Invites
    RateLimitAction.CREATE_INVITE: ActionLimit(10, "1 h", "1 h"),
    RateLimitAction.ACCEPT_INVITE: ActionLimit(5, "15 m", "15 m"),
    RateLimitAction.FETCH_INVITES: ActionLimit(100, "1 h", "5 m"),
    # Prompts and AI content
    RateLimitAction.DAILY_PROMPT: ActionLimit(50, "1 h", "5 m"),
    RateLimitAction.AI_CONTENT_GENERATION: ActionLimit(20, "1 h", "10 m"),
    # Crisis and safety
    RateLimitAction.CRISIS_DETECTION: ActionLimit(100, "1 h", "1 m"),
    RateLimitAction.EMERGENCY_RESOURCES: ActionLimit(200, "1 h", "1 m"),
    # General API
    RateLimitAction.API_GENERAL: ActionLimit(1000, "1 h", "1 m"),
    RateLimitAction.API_HEAVY: ActionLimit(100, "1 h", "5 m"),
    # Subscription tiers
    RateLimitAction.FREE_TIER: ActionLimit(50, "1 h", "5 m"),
    RateLimitAction.PREMIUM_TIER: ActionLimit(200, "1 h", "2 m"),
    RateLimitAction.PRO_TIER: ActionLimit(500, "1 h", "1 m"),
})

ROUTE_ACTIONS = MappingProxyType({
    "/api/auth": RateLimitAction.AUTH_LOGIN,
    "/api/register": RateLimitAction.AUTH_REGISTER,
    "/api/reset-password": RateLimitAction.AUTH_RESET_PASSWORD,
    "/api/v1/invite": RateLimitAction.CREATE_INVITE,
    "/api/v1/invite/accept": RateLimitAction.ACCEPT_INVITE,
    "/api/prompts/daily": RateLimitAction.DAILY_PROMPT,
    "/api/ai": RateLimitAction.AI_CONTENT_GENERATION,
    "/api/crisis": RateLimitAction.CRISIS_DETECTION,
    "/api/emergency": RateLimitAction.EMERGENCY_RESOURCES,
    "/api": RateLimitAction.API_GENERAL,
})

# Longest prefix first so the most specific route wins
_ROUTES_BY_SPECIFICITY = sorted(ROUTE_ACTIONS, key=len, reverse=True)

_UNLIMITED_PATHS = frozenset({"/api/health", "/api/status", "/api/v1/health"})


def get_action_limit(action: RateLimitAction | str) -> ActionLimit:
    """Look up the limit for an action.

    Raises:
        ValueError: If the action is unknown.
    """
    return ACTION_LIMITS[RateLimitAction(action)]


def should_rate_limit(path: str) -> bool:
    """Only API routes are throttled; static assets and health probes are not."""
    if path.startswith(("/_next", "/favicon")) or "." in path or path in _UNLIMITED_PATHS:
        return False
    return path.startswith("/api")


def action_for_path(path: str) -> RateLimitAction:
    """Most specific configured action for a request path."""
    for prefix in _ROUTES_BY_SPECIFICITY:
        if path.startswith(prefix):
            return ROUTE_ACTIONS[prefix]
    return RateLimitAction.API_GENERAL


def client_identifier(request: Request) -> str:
    """Identify an anonymous caller by client IP plus a User-Agent prefix."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("x-real-ip") or (request.client.host if request.client else None) or "unknown"

    user_agent = request.headers.get("user-agent") or "unknown"
    return f"{ip}:{user_agent[:50]}"


def composite_key(identifier: str, user_id: str | None = None) -> str:
    """Key counters by caller, narrowed to the user when one is known."""
    return f"{identifier}:{user_id}" if user_id else identifier
