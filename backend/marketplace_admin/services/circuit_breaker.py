"""Circuit breakers for outbound services.

A breaker counts failures inside a sliding window. Once the threshold is hit
it opens and rejects calls until the timeout passes, then lets calls through
in HALF_OPEN until enough succeed to close again. Any failure while
HALF_OPEN reopens it.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal, TypeVar

from marketplace_admin.exceptions import CircuitOpenError, UnknownServiceError
from marketplace_admin.schemas.operations import CircuitBreakerStatus, CircuitMetrics

logger = logging.getLogger(__name__)

CircuitState = Literal["CLOSED", "OPEN", "HALF_OPEN"]

T = TypeVar("T")


@dataclass(frozen=True)
class BreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: float = 60.0
    window: float = 60.0


@dataclass
class _Metrics:
    failures: int = 0
    successes: int = 0
    last_failure_time: float = 0.0
    last_success_time: float = 0.0
    recent_failures: list[float] = field(default_factory=list)


class CircuitBreaker:
    def __init__(
        self,
        service: str,
        config: BreakerConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.service = service
        self.config = config or BreakerConfig()
        self._clock = clock
        self.state: CircuitState = "CLOSED"
        self.metrics = _Metrics()
        self.next_attempt_time = 0.0

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` under breaker protection."""
        if self.state == "OPEN":
            if self._clock() < self.next_attempt_time:
                raise CircuitOpenError(self.service, self.next_attempt_time)
            self.state = "HALF_OPEN"
            logger.info(f"Circuit breaker {self.service} transitioning to HALF_OPEN")

        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        self.metrics.successes += 1
        self.metrics.last_success_time = self._clock()
        if self.state == "HALF_OPEN":
            if self.metrics.successes >= self.config.success_threshold:
                self._close()
        elif self.state == "CLOSED":
            self.metrics.failures = 0
            self.metrics.recent_failures = []

    def record_failure(self) -> None:
        now = self._clock()
        self.metrics.failures += 1
        self.metrics.last_failure_time = now
        self.metrics.recent_failures = [
            t for t in [*self.metrics.recent_failures, now] if now - t < self.config.window
        ]
        if self.state == "HALF_OPEN":
            self._open()
        elif self.state == "CLOSED" and len(self.metrics.recent_failures) >= self.config.failure_threshold:
            self._open()

    def _open(self) -> None:
        self.state = "OPEN"
        self.next_attempt_time = self._clock() + self.config.timeout
        self.metrics.successes = 0
        logger.warning(
            f"Circuit breaker {self.service} OPENED after "
            f"{len(self.metrics.recent_failures)} failures"
        )

    def _close(self) -> None:
        self.state = "CLOSED"
        self.metrics = _Metrics(last_success_time=self.metrics.last_success_time)
        logger.info(f"Circuit breaker {self.service} CLOSED - service recovered")

    def reset(self) -> None:
        self.state = "CLOSED"
        self.metrics = _Metrics()
        self.next_attempt_time = 0.0
        logger.info(f"Circuit breaker {self.service} manually reset")

    def get_status(self) -> CircuitBreakerStatus:
        return CircuitBreakerStatus(
            state=self.state,
            metrics=CircuitMetrics(
                failures=self.metrics.failures,
                successes=self.metrics.successes,
                last_failure_time=self.metrics.last_failure_time,
                last_success_time=self.metrics.last_success_time,
            ),
            next_attempt_time=self.next_attempt_time,
        )


class CircuitBreakerRegistry:
    """Named breakers, created on first use."""

    def __init__(self, config: BreakerConfig | None = None, clock: Callable[[], float] = time.time):
        self.config = config or BreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get_breaker(self, service: str, config: BreakerConfig | None = None) -> CircuitBreaker:
        if service not in self._breakers:
            self._breakers[service] = CircuitBreaker(service, config or self.config, self._clock)
        return self._breakers[service]

    async def get_all_status(self) -> dict[str, CircuitBreakerStatus]:
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}

    async def reset(self, service: str) -> None:
        breaker = self._breakers.get(service)
        if breaker is None:
            raise UnknownServiceError(service)
        breaker.reset()

    async def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
