"""
Error Recovery

Provides:
- Transient/permanent error taxonomy
- Exponential backoff retry logic
- Health monitoring for external services (database, AI providers)
"""
import logging
import threading
import time
from datetime import datetime, timedelta
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class ServiceStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class TransientError(Exception):
    """Errors that should be retried (connection drops, timeouts, rate limits)"""
    pass


class PermanentError(Exception):
    """Errors that should not be retried (auth, validation, etc.)"""
    pass


DEFAULT_RETRYABLE: Tuple[Type[BaseException], ...] = (TransientError, ConnectionError, TimeoutError)


def backoff_delay(attempt: int, base_delay: float, max_delay: float, exponential_base: float = 2.0) -> float:
    """Delay before retry number `attempt + 1` (attempt is zero based)."""
    return min(base_delay * (exponential_base ** attempt), max_delay)


def call_with_retry(
    func: Callable[[], Any],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Tuple[Type[BaseException], ...] = DEFAULT_RETRYABLE,
    on_retry: Optional[Callable[[BaseException], None]] = None,
    name: Optional[str] = None,
) -> Any:
    """
    Run func with exponential backoff.

    Args:
        func: Zero-argument callable to run
        max_attempts: Maximum attempts, including the first one
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Multiplier for each retry
        retryable_exceptions: Exception types to retry on
        on_retry: Called with the error before sleeping (e.g. session rollback)
        name: Label used in log lines
    """
    label = name or getattr(func, "__name__", "operation")

    for attempt in range(max_attempts):
        try:
            return func()
        except retryable_exceptions as e:
            if attempt == max_attempts - 1:
                logger.error(f'{label} failed after {max_attempts} attempts: {e}')
                raise

            if on_retry is not None:
                on_retry(e)

            delay = backoff_delay(attempt, base_delay, max_delay, exponential_base)
            logger.warning(
                f'{label} attempt {attempt + 1} failed, '
                f'retrying in {delay:.1f}s: {e}'
            )
            time.sleep(delay)

    raise PermanentError(f'{label} was not attempted (max_attempts={max_attempts})')


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Tuple[Type[BaseException], ...] = DEFAULT_RETRYABLE,
):
    """
    Decorator for retry with exponential backoff.

    Usage:
        @with_retry(max_attempts=5, base_delay=2.0)
        def fetch_users():
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return call_with_retry(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                exponential_base=exponential_base,
                retryable_exceptions=retryable_exceptions,
                name=func.__name__,
            )

        return wrapper
    return decorator


class ServiceHealthMonitor:
    """
    Monitor health of external services.
    Tracks consecutive failures and determines service availability.
    State lives in memory and resets with the process.
    """

    def __init__(self, failure_threshold: int = 3, recovery_window: timedelta = timedelta(minutes=5)):
        self.failure_threshold = failure_threshold  # Consecutive failures before marking unavailable
        self.recovery_window = recovery_window  # Time to wait before retry
        self._health: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def record_success(self, service: str):
        """Record successful service call"""
        now = datetime.now().isoformat()
        with self._lock:
            self._health[service] = {
                "status": ServiceStatus.HEALTHY.value,
                "consecutive_failures": 0,
                "last_success": now,
                "last_check": now,
            }

    def record_failure(self, service: str, error: str):
        """Record failed service call"""
        with self._lock:
            current = self._health.get(service, {})
            failures = current.get('consecutive_failures', 0) + 1

            status = ServiceStatus.DEGRADED.value
            if failures >= self.failure_threshold:
                status = ServiceStatus.UNAVAILABLE.value

            self._health[service] = {
                "status": status,
                "consecutive_failures": failures,
                "last_failure": datetime.now().isoformat(),
                "last_error": error,
                "last_check": datetime.now().isoformat(),
            }

        logger.warning(f'Service {service} failure #{failures}: {error}')

    def get_status(self, service: str) -> ServiceStatus:
        """Get current service status"""
        with self._lock:
            status_str = self._health.get(service, {}).get('status', ServiceStatus.UNKNOWN.value)
        return ServiceStatus(status_str)

    def is_available(self, service: str) -> bool:
        """Check if service is available for use"""
        status = self.get_status(service)

        if status != ServiceStatus.UNAVAILABLE:
            # HEALTHY, DEGRADED or UNKNOWN - allow with caution
            return True

        with self._lock:
            last_check = self._health.get(service, {}).get('last_check')
        if last_check:
            # Allow retry after recovery window
            return datetime.now() - datetime.fromisoformat(last_check) > self.recovery_window
        return False

    def get_all_status(self) -> Dict[str, str]:
        """Get status of all services"""
        with self._lock:
            return {
                service: data.get('status', ServiceStatus.UNKNOWN.value)
                for service, data in self._health.items()
            }

    def reset(self):
        with self._lock:
            self._health.clear()


health_monitor = ServiceHealthMonitor()
