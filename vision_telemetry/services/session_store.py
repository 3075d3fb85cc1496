"""
In-memory session table.

A session lives here from ``session/start`` until a retention delay after
``session/end``.  Every read and write goes through one lock which also
guards the global counters, so a counter update and the per-session update
it depends on are applied together.  Callers only ever receive detached
copies; nothing outside this module touches a live ``Session``.

Lifecycle
─────────
  open ──close()──▶ closed ──evict()──▶ gone

Eviction removes the record from lookups but never touches ``GlobalStats``.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, TypeVar

from vision_telemetry.services.errors import SessionClosed, SessionNotFound
from vision_telemetry.services.session_stats import GlobalStats, round_half_up, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


def new_session_id(now: datetime) -> str:
    """``session_<epoch ms>_<9 random hex chars>``, unique within the process."""
    return f"session_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class Session:
    session_id: str
    start_time: datetime
    last_activity: datetime
    user_agent: str = ""
    ip: str = ""
    face_detections: int = 0
    object_detections: int = 0
    interactions: int = 0
    filters: list[str] = field(default_factory=list)
    end_time: datetime | None = None
    duration: int | None = None     # seconds, set once at close

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def total_detections(self) -> int:
        return self.face_detections + self.object_detections

    def copy(self) -> Session:
        return replace(self, filters=list(self.filters))


@dataclass
class SessionSummary:
    """Final counters of a closed session."""
    session_id: str
    start_time: datetime
    end_time: datetime
    duration: int
    face_detections: int
    object_detections: int
    interactions: int
    filters: list[str]

    @property
    def total_detections(self) -> int:
        return self.face_detections + self.object_detections

    @classmethod
    def from_session(cls, session: Session) -> SessionSummary:
        return cls(
            session_id=session.session_id,
            start_time=session.start_time,
            end_time=session.end_time,
            duration=session.duration,
            face_detections=session.face_detections,
            object_detections=session.object_detections,
            interactions=session.interactions,
            filters=list(session.filters),
        )


class SessionStore:
    """Owns the session table and the global counters derived from it."""

    def __init__(self, stats: GlobalStats | None = None, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._timers: dict[str, threading.Timer] = {}
        if stats is None:
            now = clock()
            stats = GlobalStats(server_start_time=now, last_updated=now)
        self._stats = stats

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ── lookups ─────────────────────────────────────────────────────────

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.copy() if session is not None else None

    def is_valid(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def snapshot(self) -> tuple[list[Session], GlobalStats]:
        """Copies of every stored session and of the counters, taken together."""
        with self._lock:
            sessions = [s.copy() for s in self._sessions.values()]
            return sessions, replace(self._stats)

    @property
    def pending_evictions(self) -> int:
        with self._lock:
            return len(self._timers)

    # ── mutations ───────────────────────────────────────────────────────

    def create(self, user_agent: str = "", ip: str = "") -> Session:
        with self._lock:
            now = self._clock()
            session_id = new_session_id(now)
            while session_id in self._sessions:
                session_id = new_session_id(now)

            session = Session(
                session_id=session_id,
                start_time=now,
                last_activity=now,
                user_agent=user_agent,
                ip=ip,
            )
            self._sessions[session_id] = session
            self._stats.total_sessions += 1
            self._stats.last_updated = now
            return session.copy()

    def mutate(self, session_id: str, fn: Callable[[Session, GlobalStats], T]) -> T:
        """Apply ``fn(session, stats)`` atomically to an open session.

        ``fn`` runs under the store lock: it must only do arithmetic on the
        two objects and return detached values, never perform I/O.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if not session.is_open:
                raise SessionClosed(session_id)

            now = self._clock()
            result = fn(session, self._stats)
            session.last_activity = now
            self._stats.last_updated = now
            return result

    def close(self, session_id: str) -> tuple[SessionSummary, bool]:
        """Close a session.

        Returns the summary and whether this call closed it.  Closing an
        already closed session changes nothing and returns the original
        summary.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if not session.is_open:
                return SessionSummary.from_session(session), False

            now = self._clock()
            session.end_time = now
            session.duration = round_half_up((now - session.start_time).total_seconds())
            session.last_activity = now
            self._stats.total_closed_sessions += 1
            self._stats.total_closed_duration += session.duration
            self._stats.last_updated = now
            return SessionSummary.from_session(session), True

    # ── eviction ────────────────────────────────────────────────────────

    def schedule_eviction(self, session_id: str, delay: float) -> None:
        """Evict ``session_id`` after ``delay`` seconds, replacing any pending timer."""
        timer = threading.Timer(delay, self.evict, args=(session_id,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.get(session_id)
            self._timers[session_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def evict(self, session_id: str) -> bool:
        with self._lock:
            self._timers.pop(session_id, None)
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug("Evicted session %s", session_id)
        return removed

    def shutdown(self) -> int:
        """Cancel pending evictions; returns how many were discarded."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        return len(timers)
