"""Fixed-window rate limiting per (actor, operation).

Buckets live in one process-wide table. Each key's check-and-increment runs
under one of a fixed set of striped locks, so concurrent requests for the
same key are serialised while unrelated keys rarely contend.
"""

import asyncio
import math
import threading
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from knowledge_search.core.errors import RateLimitError
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import (
    DEFAULT_RATE_LIMITS,
    FALLBACK_RATE_LIMIT,
    RateLimitBucket,
    RateLimitDecision,
    RateLimitRule,
)

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_STRIPES = 16


class RateLimiter:
    """Counts requests per actor and operation inside fixed windows."""

    def __init__(
        self,
        rules: Mapping[str, RateLimitRule] | None = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        lock_stripes: int = DEFAULT_LOCK_STRIPES,
    ):
        self.rules: dict[str, RateLimitRule] = dict(DEFAULT_RATE_LIMITS if rules is None else rules)
        self.enabled = enabled
        self._clock = clock
        self._buckets: dict[tuple[str, str], RateLimitBucket] = {}
        self._locks = [threading.Lock() for _ in range(max(1, lock_stripes))]

    def rule_for(self, operation: str) -> RateLimitRule:
        return self.rules.get(operation, FALLBACK_RATE_LIMIT)

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def _retry_after(self, rule: RateLimitRule, elapsed: float) -> int:
        return max(1, math.ceil(rule.window_seconds - elapsed))

    def check_limit(self, actor_id: str, operation: str) -> RateLimitDecision:
        """Consume one request from the actor's budget if any is left."""
        rule = self.rule_for(operation)
        if not self.enabled:
            return RateLimitDecision(
                allowed=True, remaining=rule.limit, limit=rule.limit, window_seconds=rule.window_seconds
            )

        key = (actor_id, operation)
        with self._lock_for(key):
            now = self._clock()
            bucket = self._buckets.get(key)

            if bucket is None or now - bucket.window_start >= rule.window_seconds:
                self._buckets[key] = RateLimitBucket(
                    actor_id=actor_id, operation=operation, count=1, window_start=now
                )
                return RateLimitDecision(
                    allowed=True,
                    remaining=rule.limit - 1,
                    limit=rule.limit,
                    window_seconds=rule.window_seconds,
                )

            if bucket.count < rule.limit:
                bucket.count += 1
                return RateLimitDecision(
                    allowed=True,
                    remaining=rule.limit - bucket.count,
                    limit=rule.limit,
                    window_seconds=rule.window_seconds,
                )

            retry_after = self._retry_after(rule, now - bucket.window_start)

        logger.warning(
            f"Rate limit exceeded for {operation}",
            extra={"actor_id": actor_id, "operation": operation, "retry_after": retry_after},
        )
        return RateLimitDecision(
            allowed=False,
            remaining=0,
            limit=rule.limit,
            window_seconds=rule.window_seconds,
            retry_after=retry_after,
        )

    def enforce(self, actor_id: str, operation: str) -> int:
        """Consume one request or raise RateLimitError.

        Returns:
            Requests remaining in the current window
        """
        decision = self.check_limit(actor_id, operation)
        if not decision.allowed:
            raise RateLimitError.for_actor(
                actor_id=actor_id,
                operation=operation,
                limit=decision.limit,
                window_seconds=decision.window_seconds,
                retry_after=decision.retry_after or 1,
            )
        return decision.remaining

    def get_remaining(self, actor_id: str, operation: str) -> int:
        """Requests left in the current window, without consuming one."""
        rule = self.rule_for(operation)
        if not self.enabled:
            return rule.limit

        key = (actor_id, operation)
        with self._lock_for(key):
            bucket = self._buckets.get(key)
            if bucket is None or self._clock() - bucket.window_start >= rule.window_seconds:
                return rule.limit
            return max(0, rule.limit - bucket.count)

    def reset_limit(self, actor_id: str, operation: str) -> None:
        key = (actor_id, operation)
        with self._lock_for(key):
            self._buckets.pop(key, None)

    async def with_rate_limit(
        self,
        actor_id: str,
        operation: str,
        func: Callable[..., Awaitable[T] | T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run ``func`` only if the actor has budget left for ``operation``."""
        self.enforce(actor_id, operation)
        result = func(*args, **kwargs)
        if asyncio.iscoroutine(result) or isinstance(result, Awaitable):
            return await result
        return result

    def sweep(self) -> int:
        """Drop buckets older than the longest configured window.

        Returns:
            Number of buckets removed
        """
        longest = max(
            (rule.window_seconds for rule in (*self.rules.values(), FALLBACK_RATE_LIMIT)),
            default=FALLBACK_RATE_LIMIT.window_seconds,
        )
        removed = 0
        for key, bucket in list(self._buckets.items()):
            with self._lock_for(key):
                current = self._buckets.get(key)
                if current is bucket and self._clock() - bucket.window_start >= longest:
                    del self._buckets[key]
                    removed += 1

        if removed:
            logger.debug(f"Swept {removed} expired rate limit buckets", extra={"remaining": len(self._buckets)})
        return removed

    def __len__(self) -> int:
        return len(self._buckets)
