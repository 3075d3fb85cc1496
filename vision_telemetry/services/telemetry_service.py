"""Telemetry orchestration: validates inbound events, applies them to the
session store, and records each accepted mutation in the event log.

Validation fails fast in a fixed order: missing ``sessionId`` → unknown
session → closed session.  Nothing is mutated or logged when an event is
rejected.  Events are logged only after the store lock has been released.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from vision_telemetry.config import APP_VERSION, Settings
from vision_telemetry.services.errors import MissingField
from vision_telemetry.services.event_log import EventLog
from vision_telemetry.services.session_stats import GlobalStats, utc_now
from vision_telemetry.services.session_store import Session, SessionStore, SessionSummary
from vision_telemetry.services.statistics import (
    ActiveSession,
    StatisticsAggregator,
    StatsSnapshot,
)

logger = logging.getLogger(__name__)

FILTER_WIDGET = "filterSelect"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class DetectionResult:
    face_detections: int
    object_detections: int
    total_face_detections: int
    total_detections: int

    @property
    def session_total_detections(self) -> int:
        return self.face_detections + self.object_detections


@dataclass
class InteractionResult:
    interactions: int
    filters: list[str]


@dataclass
class HealthReport:
    status: str
    uptime_seconds: int
    total_sessions: int
    active_sessions: int
    environment: str
    version: str
    checked_at: datetime


def coerce_count(value: Any) -> int:
    """Read a client-supplied count leniently.

    Ints pass through, floats are truncated and strings are read up to the
    first non-digit ("12px" → 12).  Anything else, and any negative result,
    counts as 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        n = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return 0
        n = int(value)
    elif isinstance(value, str):
        match = _LEADING_INT.match(value)
        if not match:
            return 0
        n = int(match.group(1))
    else:
        return 0
    return max(n, 0)


def _filter_value(value: Any) -> str | None:
    if value is None or value is False or value == "":
        return None
    return str(value)


def _require_session_id(session_id: Any) -> str:
    if not session_id or not str(session_id).strip():
        raise MissingField("sessionId")
    return str(session_id)


class TelemetryService:
    """Owns the session store, the aggregator and the event log for one app."""

    def __init__(
        self,
        settings: Settings,
        store: SessionStore | None = None,
        event_log: EventLog | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self.store = store or SessionStore(clock=clock)
        self.event_log = event_log or EventLog(
            settings.logs_dir,
            max_bytes=settings.max_log_file_bytes,
            clock=clock,
        )
        self.aggregator = StatisticsAggregator(self.store, clock=clock)

    # ── session lifecycle ───────────────────────────────────────────────

    def start_session(self, user_agent: str | None = None, ip: str | None = None) -> Session:
        user_agent = (user_agent or "unknown")[: self.settings.user_agent_max_length]
        session = self.store.create(user_agent=user_agent, ip=ip or "0.0.0.0")

        self.event_log.append("SESSION_START", {
            "sessionId": session.session_id,
            "ip": session.ip,
            "userAgent": session.user_agent,
            "timestamp": session.start_time,
        })
        logger.info("Session started: %s", session.session_id)
        return session

    def record_detection(
        self,
        session_id: Any,
        face_count: Any = 0,
        object_count: Any = 0,
        confidence_level: Any = None,
        detection_type: Any = None,
    ) -> DetectionResult:
        session_id = _require_session_id(session_id)
        faces = coerce_count(face_count)
        objects = coerce_count(object_count)

        def apply(session: Session, stats: GlobalStats) -> DetectionResult:
            session.face_detections += faces
            session.object_detections += objects
            stats.total_face_detections += faces
            stats.total_detections += faces + objects
            return DetectionResult(
                face_detections=session.face_detections,
                object_detections=session.object_detections,
                total_face_detections=stats.total_face_detections,
                total_detections=stats.total_detections,
            )

        result = self.store.mutate(session_id, apply)

        self.event_log.append("DETECTION_RECORD", {
            "sessionId": session_id,
            "timestamp": self._clock(),
            "faceCount": faces,
            "objectCount": objects,
            "confidenceLevel": confidence_level,
            "detectionType": detection_type,
        })
        return result

    def record_interaction(
        self,
        session_id: Any,
        widget_name: Any = None,
        action: Any = None,
        value: Any = None,
    ) -> InteractionResult:
        session_id = _require_session_id(session_id)
        filter_value = _filter_value(value) if widget_name == FILTER_WIDGET else None

        def apply(session: Session, stats: GlobalStats) -> InteractionResult:
            session.interactions += 1
            stats.total_interactions += 1
            if filter_value is not None and filter_value not in session.filters:
                session.filters.append(filter_value)
            return InteractionResult(
                interactions=session.interactions,
                filters=list(session.filters),
            )

        result = self.store.mutate(session_id, apply)

        self.event_log.append("INTERACTION_RECORD", {
            "sessionId": session_id,
            "timestamp": self._clock(),
            "widgetName": widget_name,
            "action": action,
            "value": value,
        })
        return result

    def end_session(self, session_id: Any) -> SessionSummary:
        session_id = _require_session_id(session_id)
        summary, newly_closed = self.store.close(session_id)
        if not newly_closed:
            return summary

        self.store.schedule_eviction(session_id, self.settings.session_retention_seconds)
        self.event_log.append("SESSION_END", {
            "sessionId": session_id,
            "timestamp": summary.end_time,
            "duration": summary.duration,
            "stats": {
                "faceDetections": summary.face_detections,
                "objectDetections": summary.object_detections,
                "interactions": summary.interactions,
                "filters": summary.filters,
            },
        })
        logger.info("Session ended: %s (%ds)", session_id, summary.duration)
        return summary

    # ── read-only views ─────────────────────────────────────────────────

    def get_global_stats(self) -> StatsSnapshot:
        return self.aggregator.snapshot()

    def get_active_sessions(self) -> list[ActiveSession]:
        return self.aggregator.active_sessions()

    def health(self) -> HealthReport:
        snap = self.aggregator.snapshot()
        return HealthReport(
            status="healthy",
            uptime_seconds=snap.uptime_seconds,
            total_sessions=snap.stats.total_sessions,
            active_sessions=len(snap.active_sessions),
            environment=self.settings.environment,
            version=APP_VERSION,
            checked_at=snap.taken_at,
        )

    # ── process-level events ────────────────────────────────────────────

    def log_server_error(
        self,
        exc: BaseException,
        path: str,
        method: str,
        ip: str | None = None,
    ) -> None:
        self.event_log.append("SERVER_ERROR", {
            "error": str(exc),
            "type": type(exc).__name__,
            "path": path,
            "method": method,
            "ip": ip,
        })

    def shutdown(self) -> None:
        """Record final totals, drop pending evictions and drain the event log."""
        _, stats = self.store.snapshot()
        discarded = self.store.shutdown()
        self.event_log.append("SERVER_SHUTDOWN", {
            "timestamp": self._clock(),
            "stats": {
                "totalSessions": stats.total_sessions,
                "totalDetections": stats.total_detections,
                "totalInteractions": stats.total_interactions,
            },
        })
        self.event_log.close()
        logger.info("Telemetry service stopped (%d pending eviction(s) discarded)", discarded)
