"""
Action Execution Coordinator — single-flight guard for workflow actions.

    coordinator.execute("forward-application-42", fn) → fn() | BLOCKED

At most one execution runs per action identity.  A concurrent duplicate
is rejected immediately and gets the ``BLOCKED`` sentinel back instead of
an exception.  The in-flight marker is always cleared when ``fn`` settles,
success or failure.  Only a successful run records its completion time for
the debounce check ``was_recently_completed(action_id, window_ms)``, so a
refused attempt can be corrected and resubmitted at once.

Backends:
    MemoryActionBackend — mutex-protected dicts, one process only.
    RedisActionBackend  — SET NX PX markers shared by every instance.
                          The PX lease only matters if a process dies
                          while holding a marker; a live holder releases
                          it explicitly.

The coordinator is an ordinary object: the app builds one in
``init_coordinator(app)`` and tests build their own.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid

import redis
from flask import current_app

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "action_coordinator"


class _Blocked:
    """Outcome of a duplicate submission: nothing was run."""

    __slots__ = ()

    def __repr__(self):
        return "BLOCKED"

    def __bool__(self):
        return False


BLOCKED = _Blocked()


def is_blocked(result) -> bool:
    return result is BLOCKED


# ── In-memory backend ────────────────────────────────────────────────────


class MemoryActionBackend:
    """In-flight and recently-completed maps behind one lock.

    Completions older than ``retain_ms`` are swept whenever a new one is
    recorded, so identities that are never checked again do not pile up.
    """

    def __init__(self, retain_ms=60_000):
        self._lock = threading.Lock()
        self._retain_s = int(retain_ms) / 1000
        self._in_flight: dict[str, str] = {}
        self._completed: dict[str, float] = {}

    def try_acquire(self, action_id: str) -> str | None:
        with self._lock:
            if action_id in self._in_flight:
                return None
            token = uuid.uuid4().hex
            self._in_flight[action_id] = token
            return token

    def release(self, action_id: str, token: str, completed_at: float | None = None) -> None:
        with self._lock:
            if self._in_flight.get(action_id) == token:
                del self._in_flight[action_id]
            if completed_at is None:
                return
            cutoff = completed_at - self._retain_s
            for key in [k for k, ts in self._completed.items() if ts < cutoff]:
                del self._completed[key]
            self._completed[action_id] = completed_at

    def is_in_flight(self, action_id: str) -> bool:
        with self._lock:
            return action_id in self._in_flight

    def completed_at(self, action_id: str) -> float | None:
        with self._lock:
            return self._completed.get(action_id)

    def evict(self, action_id: str, completed_at: float) -> None:
        with self._lock:
            # A newer completion may have landed since the caller looked.
            if self._completed.get(action_id) == completed_at:
                del self._completed[action_id]

    def ping(self) -> bool:
        return True


# ── Redis backend ────────────────────────────────────────────────────────

# Drop the in-flight marker only if we still own it, then stamp completion
# unless the attempt failed (empty ARGV[2]).
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    redis.call("del", KEYS[1])
end
if ARGV[2] ~= "" then
    redis.call("set", KEYS[2], ARGV[2], "PX", ARGV[3])
end
return 1
"""


class RedisActionBackend:
    """Markers shared across instances through conditional SET."""

    def __init__(self, client, lease_ms=300_000, retain_ms=60_000, prefix="alms:action"):
        self._r = client
        self._lease_ms = int(lease_ms)
        self._retain_ms = int(retain_ms)
        self._prefix = prefix

    def _in_flight_key(self, action_id):
        return f"{self._prefix}:inflight:{action_id}"

    def _done_key(self, action_id):
        return f"{self._prefix}:done:{action_id}"

    def try_acquire(self, action_id: str) -> str | None:
        token = uuid.uuid4().hex
        if self._r.set(self._in_flight_key(action_id), token, px=self._lease_ms, nx=True):
            return token
        return None

    def release(self, action_id: str, token: str, completed_at: float | None = None) -> None:
        self._r.eval(
            _RELEASE_SCRIPT, 2,
            self._in_flight_key(action_id), self._done_key(action_id),
            token, "" if completed_at is None else repr(completed_at), self._retain_ms,
        )

    def is_in_flight(self, action_id: str) -> bool:
        return bool(self._r.exists(self._in_flight_key(action_id)))

    def completed_at(self, action_id: str) -> float | None:
        raw = self._r.get(self._done_key(action_id))
        return float(raw) if raw is not None else None

    def evict(self, action_id: str, completed_at: float) -> None:
        self._r.delete(self._done_key(action_id))

    def ping(self) -> bool:
        return bool(self._r.ping())


# ── Coordinator ──────────────────────────────────────────────────────────


class ActionCoordinator:
    def __init__(self, backend=None, clock=time.time):
        self._backend = backend or MemoryActionBackend()
        self._clock = clock

    @property
    def backend(self):
        return self._backend

    def execute(self, action_id: str, fn, *args, **kwargs):
        """Run ``fn(*args, **kwargs)`` unless *action_id* is already running.

        Returns fn's result, or ``BLOCKED`` when a duplicate was rejected.
        Exceptions from fn propagate after the marker is released; only a
        call that returns is recorded as completed.
        """
        token = self._backend.try_acquire(action_id)
        if token is None:
            logger.info("Action blocked, already in flight: %s", action_id, extra={"action_id": action_id})
            return BLOCKED
        completed_at = None
        try:
            result = fn(*args, **kwargs)
            completed_at = self._clock()
            return result
        finally:
            self._backend.release(action_id, token, completed_at)

    def was_recently_completed(self, action_id: str, window_ms: int = 1000) -> bool:
        completed_at = self._backend.completed_at(action_id)
        if completed_at is None:
            return False
        if (self._clock() - completed_at) * 1000 > window_ms:
            self._backend.evict(action_id, completed_at)
            return False
        return True

    def is_in_flight(self, action_id: str) -> bool:
        return self._backend.is_in_flight(action_id)

    def ping(self) -> bool:
        return self._backend.ping()


# ── App wiring ───────────────────────────────────────────────────────────


def init_coordinator(app) -> ActionCoordinator:
    """Build the coordinator selected by ACTION_COORDINATOR_BACKEND."""
    kind = app.config.get("ACTION_COORDINATOR_BACKEND", "memory")
    retain_ms = max(int(app.config.get("ACTION_DEBOUNCE_MS", 1000)) * 10, 60_000)
    if kind == "redis":
        client = redis.from_url(app.config["REDIS_URL"])
        backend = RedisActionBackend(
            client,
            lease_ms=app.config.get("ACTION_LOCK_LEASE_MS", 300_000),
            retain_ms=retain_ms,
        )
        logger.info("Action coordinator: redis at %s", app.config["REDIS_URL"].split("@")[-1])
    elif kind == "memory":
        backend = MemoryActionBackend(retain_ms=retain_ms)
        logger.info("Action coordinator: in-process memory (single instance only)")
    else:
        raise ValueError(f"Unknown ACTION_COORDINATOR_BACKEND: {kind!r}")

    coordinator = ActionCoordinator(backend)
    app.extensions[_EXTENSION_KEY] = coordinator
    return coordinator


def get_coordinator() -> ActionCoordinator:
    return current_app.extensions[_EXTENSION_KEY]
