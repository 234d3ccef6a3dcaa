"""Rate limit rules and per-actor counters."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class WindowUnit(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    @property
    def seconds(self) -> int:
        return {
            WindowUnit.MINUTE: 60,
            WindowUnit.HOUR: 3_600,
            WindowUnit.DAY: 86_400,
        }[self]


class RateLimitRule(BaseModel):
    """Requests allowed per fixed window for one operation."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(gt=0)
    window: WindowUnit = WindowUnit.MINUTE

    @property
    def window_seconds(self) -> int:
        return self.window.seconds


class RateLimitBucket(BaseModel):
    """Counter for one (actor, operation) pair inside its current window."""

    actor_id: str
    operation: str
    count: int = 0
    window_start: float


class RateLimitDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    remaining: int
    limit: int
    window_seconds: int
    retry_after: int | None = None


DEFAULT_RATE_LIMITS: dict[str, RateLimitRule] = {
    "search": RateLimitRule(limit=100, window=WindowUnit.MINUTE),
    "embed": RateLimitRule(limit=50, window=WindowUnit.HOUR),
    "similarity_check": RateLimitRule(limit=200, window=WindowUnit.MINUTE),
    "rerank": RateLimitRule(limit=50, window=WindowUnit.MINUTE),
}

# Applied to any operation without an explicit rule
FALLBACK_RATE_LIMIT = RateLimitRule(limit=100, window=WindowUnit.MINUTE)
