"""
Action execution coordinator tests — single-flight, debounce, failure release.

The redis backend is exercised against a minimal in-process stand-in that
implements the handful of commands the backend issues.
"""

import threading
import time

import pytest

from alms.services.action_coordinator import (
    BLOCKED,
    ActionCoordinator,
    MemoryActionBackend,
    RedisActionBackend,
    is_blocked,
)


class FakeClock:
    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms / 1000


class FakeRedis:
    """Just enough of redis-py for RedisActionBackend."""

    def __init__(self):
        self.data = {}
        self.ttl_ms = {}

    def set(self, key, value, px=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        self.ttl_ms[key] = px
        return True

    def get(self, key):
        return self.data.get(key)

    def exists(self, key):
        return int(key in self.data)

    def delete(self, *keys):
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    def eval(self, script, numkeys, in_flight_key, done_key, token, completed_at, retain_ms):
        if self.data.get(in_flight_key) == token:
            del self.data[in_flight_key]
        if completed_at != "":
            self.set(done_key, completed_at, px=retain_ms)
        return 1

    def ping(self):
        return True


@pytest.fixture(params=["memory", "redis"])
def backend(request):
    if request.param == "memory":
        return MemoryActionBackend()
    return RedisActionBackend(FakeRedis(), lease_ms=5_000, retain_ms=60_000)


# ═════════════════════════════════════════════════════════════════════════
# SINGLE-FLIGHT
# ═════════════════════════════════════════════════════════════════════════


class TestSingleFlight:
    def test_runs_and_returns_result(self, backend):
        coordinator = ActionCoordinator(backend)
        assert coordinator.execute("forward-application-1", lambda: "done") == "done"
        assert coordinator.is_in_flight("forward-application-1") is False

    def test_passes_arguments_through(self, backend):
        coordinator = ActionCoordinator(backend)
        assert coordinator.execute("x", lambda a, b=0: a + b, 2, b=3) == 5

    def test_duplicate_while_in_flight_is_blocked(self, backend):
        coordinator = ActionCoordinator(backend)
        calls = []

        def outer():
            calls.append("outer")
            inner = coordinator.execute("forward-application-42", lambda: calls.append("inner"))
            return inner

        assert coordinator.execute("forward-application-42", outer) is BLOCKED
        assert calls == ["outer"]

    def test_different_identities_run_independently(self, backend):
        coordinator = ActionCoordinator(backend)

        def outer():
            return coordinator.execute("red-flag-application-42", lambda: "inner ran")

        assert coordinator.execute("forward-application-42", outer) == "inner ran"

    def test_concurrent_duplicates_run_once(self):
        coordinator = ActionCoordinator()
        calls = []
        results = []
        release = threading.Event()
        barrier = threading.Barrier(5)

        def fn():
            calls.append(1)
            release.wait(timeout=5)
            return "done"

        def caller():
            barrier.wait()
            results.append(coordinator.execute("process-application-7", fn))

        threads = [threading.Thread(target=caller) for _ in range(5)]
        for t in threads:
            t.start()
        deadline = time.monotonic() + 5
        while sum(1 for r in results if r is BLOCKED) < 4 and time.monotonic() < deadline:
            time.sleep(0.01)
        release.set()
        for t in threads:
            t.join(timeout=5)

        assert len(calls) == 1
        assert results.count("done") == 1
        assert sum(1 for r in results if r is BLOCKED) == 4


# ═════════════════════════════════════════════════════════════════════════
# FAILURE SEMANTICS
# ═════════════════════════════════════════════════════════════════════════


class TestFailure:
    def test_error_is_reraised_and_lock_released(self, backend):
        coordinator = ActionCoordinator(backend)

        def boom():
            raise RuntimeError("directory unreachable")

        with pytest.raises(RuntimeError, match="directory unreachable"):
            coordinator.execute("dispose-application-3", boom)

        assert coordinator.is_in_flight("dispose-application-3") is False
        assert coordinator.execute("dispose-application-3", lambda: "retried") == "retried"

    def test_failed_attempt_is_not_recorded_as_completed(self, backend):
        clock = FakeClock()
        coordinator = ActionCoordinator(backend, clock=clock)

        def bad():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            coordinator.execute("x", bad)

        assert coordinator.was_recently_completed("x", 1000) is False
        assert coordinator.execute("x", lambda: "fixed") == "fixed"
        assert coordinator.was_recently_completed("x", 1000) is True

    def test_failure_keeps_earlier_completion(self, backend):
        clock = FakeClock()
        coordinator = ActionCoordinator(backend, clock=clock)
        coordinator.execute("x", lambda: None)
        first = backend.completed_at("x")

        def bad():
            raise ValueError("bad")

        clock.advance(200)
        with pytest.raises(ValueError):
            coordinator.execute("x", bad)

        assert backend.completed_at("x") == first


# ═════════════════════════════════════════════════════════════════════════
# DEBOUNCE
# ═════════════════════════════════════════════════════════════════════════


class TestDebounce:
    def test_recent_completion_inside_window(self, backend):
        clock = FakeClock()
        coordinator = ActionCoordinator(backend, clock=clock)
        coordinator.execute("X", lambda: None)

        assert coordinator.was_recently_completed("X", 1000) is True
        clock.advance(999)
        assert coordinator.was_recently_completed("X", 1000) is True

    def test_expires_after_window_and_is_evicted(self, backend):
        clock = FakeClock()
        coordinator = ActionCoordinator(backend, clock=clock)
        coordinator.execute("X", lambda: None)

        clock.advance(1001)
        assert coordinator.was_recently_completed("X", 1000) is False
        assert backend.completed_at("X") is None

    def test_never_completed(self, backend):
        assert ActionCoordinator(backend).was_recently_completed("never", 1000) is False

    def test_memory_backend_sweeps_expired_completions(self):
        backend = MemoryActionBackend(retain_ms=60_000)
        backend.release("old", "t", 1_000.0)
        backend.release("recent", "t", 1_050.0)

        backend.release("new", "t", 1_070.0)

        assert backend.completed_at("old") is None
        assert backend.completed_at("recent") == 1_050.0
        assert backend.completed_at("new") == 1_070.0
        assert len(backend._completed) == 2

    def test_release_without_completion_clears_marker_only(self, backend):
        token = backend.try_acquire("a")
        backend.release("a", token)

        assert backend.is_in_flight("a") is False
        assert backend.completed_at("a") is None

    def test_real_clock(self):
        coordinator = ActionCoordinator()
        coordinator.execute("X", lambda: None)
        assert coordinator.was_recently_completed("X", 1000) is True
        time.sleep(0.06)
        assert coordinator.was_recently_completed("X", 50) is False


# ═════════════════════════════════════════════════════════════════════════
# REDIS BACKEND SPECIFICS
# ═════════════════════════════════════════════════════════════════════════


class TestRedisBackend:
    def test_in_flight_marker_carries_lease(self):
        client = FakeRedis()
        backend = RedisActionBackend(client, lease_ms=300_000, prefix="t")

        token = backend.try_acquire("forward-application-1")
        assert token is not None
        assert client.data["t:inflight:forward-application-1"] == token
        assert client.ttl_ms["t:inflight:forward-application-1"] == 300_000
        assert backend.try_acquire("forward-application-1") is None

    def test_release_does_not_drop_foreign_marker(self):
        client = FakeRedis()
        backend = RedisActionBackend(client, prefix="t")
        backend.try_acquire("a")
        # lease expired and another instance took over
        client.data["t:inflight:a"] = "someone-else"

        backend.release("a", "stale-token", 5.0)

        assert client.data["t:inflight:a"] == "someone-else"
        assert backend.completed_at("a") == 5.0


def test_blocked_sentinel():
    assert is_blocked(BLOCKED)
    assert not is_blocked(None)
    assert not BLOCKED
    assert repr(BLOCKED) == "BLOCKED"
