"""
Dashboard endpoints: service health and live session statistics.

  GET /api/health
  GET /api/stats
"""
import os
import platform

from fastapi import APIRouter, Depends

from vision_telemetry.dependencies import get_telemetry
from vision_telemetry.schemas.telemetry import (
    ActiveSessionInfo,
    HealthResponse,
    HealthSessions,
    StatisticsSummary,
    StatsResponse,
    SystemInfo,
)
from vision_telemetry.services.telemetry_service import TelemetryService

router = APIRouter(tags=["dashboard"])


@router.get("/api/health", response_model=HealthResponse)
def get_health(telemetry: TelemetryService = Depends(get_telemetry)) -> HealthResponse:
    """Liveness plus total/active session counts."""
    report = telemetry.health()
    return HealthResponse(
        status=report.status,
        timestamp=report.checked_at,
        uptime=report.uptime_seconds,
        sessions=HealthSessions(total=report.total_sessions, active=report.active_sessions),
        environment=report.environment,
        version=report.version,
    )


@router.get("/api/stats", response_model=StatsResponse)
def get_stats(telemetry: TelemetryService = Depends(get_telemetry)) -> StatsResponse:
    """Return global counters, the open sessions and the computed averages."""
    snap = telemetry.get_global_stats()
    stats = snap.stats

    return StatsResponse(
        server_start_time=stats.server_start_time,
        last_updated=stats.last_updated,
        uptime=snap.uptime_seconds,
        statistics=StatisticsSummary(
            total_sessions=stats.total_sessions,
            active_sessions=len(snap.active_sessions),
            total_detections=stats.total_detections,
            total_face_detections=stats.total_face_detections,
            total_interactions=stats.total_interactions,
            avg_detections_per_session=snap.avg_detections_per_session,
            avg_duration=snap.avg_session_duration,
        ),
        active_sessions=[
            ActiveSessionInfo(
                session_id=s.session_id,
                start_time=s.start_time,
                duration=s.duration,
                face_detections=s.face_detections,
                object_detections=s.object_detections,
                interactions=s.interactions,
                filters=s.filters,
                last_activity=s.last_activity,
            )
            for s in snap.active_sessions
        ],
        system=SystemInfo(
            pid=os.getpid(),
            python_version=platform.python_version(),
            environment=telemetry.settings.environment,
        ),
        timestamp=snap.taken_at,
    )
