"""Process-wide telemetry counters.

Incremented by the session store under its lock; reset when the server
restarts. No persistence is needed, the stats endpoint just shows live
activity since startup.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


@dataclass
class GlobalStats:
    server_start_time: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)
    total_sessions: int = 0
    total_detections: int = 0           # face + object, across every session ever seen
    total_face_detections: int = 0
    total_interactions: int = 0
    total_closed_sessions: int = 0
    total_closed_duration: int = 0      # seconds

    def uptime_seconds(self, now: datetime) -> int:
        return round_half_up((now - self.server_start_time).total_seconds())
