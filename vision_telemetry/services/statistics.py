"""Derived views over the session store: active sessions and averages.

Holds no state of its own; every call works on a fresh store snapshot.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from vision_telemetry.services.session_stats import GlobalStats, round_half_up, utc_now
from vision_telemetry.services.session_store import Session, SessionStore


@dataclass
class ActiveSession:
    session_id: str
    start_time: datetime
    duration: int               # seconds since start, computed at snapshot time
    face_detections: int
    object_detections: int
    interactions: int
    filters: list[str]
    last_activity: datetime


@dataclass
class StatsSnapshot:
    stats: GlobalStats
    active_sessions: list[ActiveSession]
    avg_detections_per_session: int
    avg_session_duration: int   # mean duration of closed sessions, seconds
    uptime_seconds: int
    taken_at: datetime


def _active(session: Session, now: datetime) -> ActiveSession:
    return ActiveSession(
        session_id=session.session_id,
        start_time=session.start_time,
        duration=round_half_up((now - session.start_time).total_seconds()),
        face_detections=session.face_detections,
        object_detections=session.object_detections,
        interactions=session.interactions,
        filters=session.filters,
        last_activity=session.last_activity,
    )


class StatisticsAggregator:
    def __init__(self, store: SessionStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def snapshot(self) -> StatsSnapshot:
        sessions, stats = self._store.snapshot()
        now = self._clock()

        active = sorted(
            (_active(s, now) for s in sessions if s.is_open),
            key=lambda a: a.start_time,
        )
        avg_detections = (
            round_half_up(stats.total_detections / stats.total_sessions)
            if stats.total_sessions else 0
        )
        avg_duration = (
            round_half_up(stats.total_closed_duration / stats.total_closed_sessions)
            if stats.total_closed_sessions else 0
        )

        return StatsSnapshot(
            stats=stats,
            active_sessions=active,
            avg_detections_per_session=avg_detections,
            avg_session_duration=avg_duration,
            uptime_seconds=stats.uptime_seconds(now),
            taken_at=now,
        )

    def active_sessions(self) -> list[ActiveSession]:
        return self.snapshot().active_sessions
