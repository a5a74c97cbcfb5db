"""
Circuit Breaker

Guards the fleet, auth, distance and mirror APIs. A breaker never retries;
it only fails fast with CircuitBreakerOpenError while a service keeps
failing, so a broken upstream costs one error per cycle instead of one
timeout per courier.
"""
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from courier_sync.core.exceptions import CircuitBreakerOpenError
from courier_sync.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# 4xx answers that still say something about the service's health
TRANSIENT_CLIENT_STATUS_CODES = {408, 429}


def is_service_failure(error: Exception) -> bool:
    """
    Whether an error should count against the service's breaker.

    A 4xx answer (e.g. 404 for one stale courier or row id) means the
    service is up and rejected that one request.
    """
    details = getattr(error, "details", None) or {}
    status_code = details.get("status_code")
    if isinstance(status_code, int) and 400 <= status_code < 500:
        return status_code in TRANSIENT_CLIENT_STATUS_CODES
    return True


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"        # Normal operation, requests pass through
    OPEN = "open"            # Failing, requests blocked
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 60.0
    half_open_max_calls: int = 1


@dataclass
class CircuitBreakerState:
    """State tracking for circuit breaker"""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float = 0.0
    half_open_calls: int = 0


class CircuitBreaker:
    """
    Circuit breaker for external service protection.

    States:
    - CLOSED: Normal operation, tracking failures
    - OPEN: Service is failing, block all requests
    - HALF_OPEN: Testing if service recovered
    """

    _instances: dict[str, "CircuitBreaker"] = {}
    _instances_lock = threading.Lock()

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitBreakerState()
        # threading.Lock: Celery thread-pool tasks each run their own event loop
        self._lock = threading.Lock()

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        """Get or create circuit breaker instance for a service"""
        if service_name not in cls._instances:
            with cls._instances_lock:
                if service_name not in cls._instances:
                    cls._instances[service_name] = cls(service_name, config)
        return cls._instances[service_name]

    @classmethod
    def reset_all(cls) -> None:
        """Reset all circuit breakers (for testing)"""
        with cls._instances_lock:
            cls._instances.clear()

    @property
    def state(self) -> CircuitState:
        return self._state.state

    @property
    def is_closed(self) -> bool:
        return self._state.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state.state == CircuitState.OPEN

    def _should_attempt_reset(self) -> bool:
        if self._state.state != CircuitState.OPEN:
            return False
        return time.time() - self._state.last_failure_time >= self.config.timeout_seconds

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        self._state.state = new_state

        if new_state == CircuitState.HALF_OPEN:
            self._state.half_open_calls = 0
            self._state.success_count = 0

        if new_state == CircuitState.CLOSED:
            self._state.failure_count = 0
            self._state.success_count = 0

        logger.info(
            f"Circuit breaker '{self.service_name}' transitioned",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value
            }
        )

    def record_success(self) -> None:
        with self._lock:
            if self._state.state == CircuitState.HALF_OPEN:
                self._state.success_count += 1
                if self._state.success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            elif self._state.state == CircuitState.CLOSED:
                self._state.failure_count = 0

    def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self._state.failure_count += 1
            self._state.last_failure_time = time.time()

            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._state.failure_count,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None
                }
            )

            if self._state.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif self._state.failure_count >= self.config.failure_threshold:
                self._transition_to(CircuitState.OPEN)

    def can_execute(self) -> bool:
        with self._lock:
            if self._state.state == CircuitState.CLOSED:
                return True

            if self._state.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._transition_to(CircuitState.HALF_OPEN)
                    self._state.half_open_calls += 1
                    return True
                return False

            if self._state.half_open_calls < self.config.half_open_max_calls:
                self._state.half_open_calls += 1
                return True
            return False

    def get_retry_after(self) -> float:
        """Seconds until the circuit might close"""
        if self._state.state != CircuitState.OPEN:
            return 0.0
        remaining = self.config.timeout_seconds - (time.time() - self._state.last_failure_time)
        return max(0.0, remaining)

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Run an async call with circuit breaker protection.

        Raises:
            CircuitBreakerOpenError: If circuit is open
        """
        if not self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            result = await func()
        except Exception as e:
            if is_service_failure(e):
                self.record_failure(e)
            else:
                self.record_success()
            raise

        self.record_success()
        return result


def get_fleet_circuit_breaker() -> CircuitBreaker:
    """Fleet management, metrics, earnings and tracking APIs"""
    return CircuitBreaker.get_instance(
        "fleet",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=1, timeout_seconds=60.0)
    )


def get_auth_circuit_breaker() -> CircuitBreaker:
    return CircuitBreaker.get_instance(
        "auth",
        CircuitBreakerConfig(failure_threshold=3, success_threshold=1, timeout_seconds=60.0)
    )


def get_distance_circuit_breaker() -> CircuitBreaker:
    return CircuitBreaker.get_instance(
        "distance",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=1, timeout_seconds=60.0)
    )


def get_mirror_circuit_breaker() -> CircuitBreaker:
    """Coda rows API"""
    return CircuitBreaker.get_instance(
        "mirror",
        CircuitBreakerConfig(failure_threshold=10, success_threshold=2, timeout_seconds=120.0)
    )
