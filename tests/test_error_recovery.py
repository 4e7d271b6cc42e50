import pytest

from utils.error_recovery import (
    PermanentError,
    ServiceHealthMonitor,
    ServiceStatus,
    TransientError,
    backoff_delay,
    call_with_retry,
    with_retry,
)


@pytest.fixture
def sleeps(monkeypatch):
    delays = []
    monkeypatch.setattr("utils.error_recovery.time.sleep", delays.append)
    return delays


def test_backoff_doubles_up_to_cap():
    assert [backoff_delay(i, 1.0, 60.0) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]
    assert backoff_delay(10, 1.0, 60.0) == 60.0


def test_retries_transient_errors_then_succeeds(sleeps):
    attempts = []
    rollbacks = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientError("connection reset")
        return "ok"

    assert call_with_retry(flaky, on_retry=rollbacks.append) == "ok"
    assert len(attempts) == 3
    assert sleeps == [1.0, 2.0]
    assert len(rollbacks) == 2


def test_gives_up_after_max_attempts(sleeps):
    def down():
        raise ConnectionError("database unreachable")

    with pytest.raises(ConnectionError):
        call_with_retry(down, max_attempts=3, base_delay=0.5)
    assert sleeps == [0.5, 1.0]


def test_non_retryable_errors_propagate_immediately(sleeps):
    def broken():
        raise PermanentError("bad input")

    with pytest.raises(PermanentError):
        call_with_retry(broken)
    assert sleeps == []


def test_decorator(sleeps):
    calls = []

    @with_retry(max_attempts=2, base_delay=0.1)
    def fetch(value):
        calls.append(value)
        if len(calls) == 1:
            raise TimeoutError("slow")
        return value * 2

    assert fetch(4) == 8
    assert calls == [4, 4]
    assert fetch.__name__ == "fetch"


def test_health_monitor_threshold():
    monitor = ServiceHealthMonitor(failure_threshold=3)

    assert monitor.get_status("db") == ServiceStatus.UNKNOWN
    monitor.record_failure("db", "timeout")
    assert monitor.get_status("db") == ServiceStatus.DEGRADED
    assert monitor.is_available("db")

    monitor.record_failure("db", "timeout")
    monitor.record_failure("db", "timeout")
    assert monitor.get_status("db") == ServiceStatus.UNAVAILABLE
    assert not monitor.is_available("db")

    monitor.record_success("db")
    assert monitor.is_available("db")
    assert monitor.get_all_status() == {"db": "healthy"}

    monitor.reset()
    assert monitor.get_all_status() == {}
