from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── request bodies ────────────────────────────────────────────────────────────
# Loosely typed so a missing or odd sessionId is reported by the service
# ("sessionId is required" or "Session not found") and counts reach
# coerce_count untouched.
class DetectionRequest(CamelModel):
    session_id: Any = None
    face_count: Any = 0
    object_count: Any = 0
    confidence_level: Any = None
    detection_type: Any = None


class InteractionRequest(CamelModel):
    session_id: Any = None
    widget_name: Any = None
    action: Any = None
    value: Any = None


class SessionEndRequest(CamelModel):
    session_id: Any = None


# ── sessions ──────────────────────────────────────────────────────────────────
class SessionStartResponse(CamelModel):
    success: bool = True
    session_id: str
    message: str = "Session started"
    timestamp: datetime


class SessionDetectionStats(CamelModel):
    face_detections: int
    object_detections: int
    total_detections: int


class GlobalDetectionStats(CamelModel):
    total_face_detections: int
    total_detections: int


class DetectionResponse(CamelModel):
    success: bool = True
    message: str = "Detection recorded"
    session_stats: SessionDetectionStats
    global_stats: GlobalDetectionStats
    timestamp: datetime


class InteractionResponse(CamelModel):
    success: bool = True
    message: str = "Interaction recorded"
    total_interactions_in_session: int
    filters: list[str]
    timestamp: datetime


class SessionEndStats(CamelModel):
    face_detections: int
    object_detections: int
    interactions: int
    duration: int          # seconds
    filters: list[str]


class SessionEndResponse(CamelModel):
    success: bool = True
    message: str = "Session ended"
    session_stats: SessionEndStats
    timestamp: datetime


# ── stats / health ────────────────────────────────────────────────────────────
class StatisticsSummary(CamelModel):
    total_sessions: int
    active_sessions: int
    total_detections: int
    total_face_detections: int
    total_interactions: int
    avg_detections_per_session: int
    avg_duration: int      # seconds, over closed sessions


class ActiveSessionInfo(CamelModel):
    session_id: str
    start_time: datetime
    duration: int
    face_detections: int
    object_detections: int
    interactions: int
    filters: list[str]
    last_activity: datetime


class SystemInfo(CamelModel):
    pid: int
    python_version: str
    environment: str


class StatsResponse(CamelModel):
    success: bool = True
    status: str = "online"
    server_start_time: datetime
    last_updated: datetime
    uptime: int
    statistics: StatisticsSummary
    active_sessions: list[ActiveSessionInfo]
    system: SystemInfo
    timestamp: datetime


class HealthSessions(CamelModel):
    total: int
    active: int


class HealthResponse(CamelModel):
    status: str
    timestamp: datetime
    uptime: int
    sessions: HealthSessions
    environment: str
    version: str


# ── logs ──────────────────────────────────────────────────────────────────────
class LogFileEntry(CamelModel):
    file: str
    size: str
    size_bytes: int
    last_modified: datetime
    created: datetime
    url: str
    download_url: str


class LogListResponse(CamelModel):
    success: bool = True
    total: int
    total_size: str
    logs: list[LogFileEntry]
    directory: str
    timestamp: datetime


class LogContentResponse(CamelModel):
    success: bool = True
    file_name: str
    total_lines: int
    size: int
    last_modified: datetime
    content: list[Any]
    timestamp: datetime


class LogCleanupResponse(CamelModel):
    success: bool = True
    deleted: int
    message: str
    cutoff_date: datetime
    timestamp: datetime


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
