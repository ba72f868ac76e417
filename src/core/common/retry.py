import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffFunction = Callable[[int], float]
RetryablePredicate = Callable[[BaseException], bool]


def exponential_backoff(
    *,
    base_seconds: float = 1.0,
    max_seconds: float = 30.0,
    jitter_ratio: float = 0.1,
    random_fn: Callable[[], float] = random.random,
) -> BackoffFunction:
    """Delay before retry ``attempt`` (1-based): base * 2**(attempt-1), capped, plus jitter."""

    def _delay(attempt: int) -> float:
        delay = min(base_seconds * (2 ** (attempt - 1)), max_seconds)
        return min(delay + delay * jitter_ratio * random_fn(), max_seconds)

    return _delay


def retry_always(_exc: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: BackoffFunction = field(default_factory=exponential_backoff)
    is_retryable: RetryablePredicate = retry_always
    attempt_timeout_seconds: Optional[float] = None
    max_delay_seconds: float = 30.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run(self, operation: Callable[[], Awaitable[T]], *, name: str = "operation") -> T:
        if self.max_attempts < 1:
            raise ValueError("RETRY_MAX_ATTEMPTS_INVALID")
        attempt = 1
        while True:
            try:
                if self.attempt_timeout_seconds is None:
                    return await operation()
                return await asyncio.wait_for(operation(), self.attempt_timeout_seconds)
            except Exception as exc:
                if attempt >= self.max_attempts or not self.is_retryable(exc):
                    raise
                delay = self._next_delay(attempt, exc)
                logger.info(
                    "retry.scheduled",
                    extra={
                        "extra_fields": {
                            "operation": name,
                            "attempt": attempt,
                            "max_attempts": self.max_attempts,
                            "delay_seconds": round(delay, 3),
                            "error": type(exc).__name__,
                        }
                    },
                )
                await self.sleep(delay)
                attempt += 1

    def _next_delay(self, attempt: int, exc: BaseException) -> float:
        retry_after = getattr(exc, "retry_after_seconds", None)
        if isinstance(retry_after, (int, float)) and retry_after >= 0:
            return min(float(retry_after), self.max_delay_seconds)
        return min(self.backoff(attempt), self.max_delay_seconds)
