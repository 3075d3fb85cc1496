"""
Session and event ingestion endpoints.

  POST /api/session/start
  POST /api/detection/record
  POST /api/interaction/record
  POST /api/session/end

Handlers are plain ``def`` so FastAPI runs them on its thread pool; the
session store serializes the mutations.
"""
from fastapi import APIRouter, Depends, HTTPException, Request

from vision_telemetry.dependencies import get_telemetry
from vision_telemetry.schemas.telemetry import (
    DetectionRequest,
    DetectionResponse,
    GlobalDetectionStats,
    InteractionRequest,
    InteractionResponse,
    SessionDetectionStats,
    SessionEndRequest,
    SessionEndResponse,
    SessionEndStats,
    SessionStartResponse,
)
from vision_telemetry.services.errors import TelemetryError
from vision_telemetry.services.session_stats import utc_now
from vision_telemetry.services.telemetry_service import TelemetryService

router = APIRouter(tags=["sessions"])


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# ─────────────────────────────────────────────────────────────────────────────
#  POST /api/session/start
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/api/session/start", response_model=SessionStartResponse)
def start_session(
    request: Request,
    telemetry: TelemetryService = Depends(get_telemetry),
) -> SessionStartResponse:
    """Open a new session.  No body is required."""
    session = telemetry.start_session(
        user_agent=request.headers.get("user-agent"),
        ip=_client_ip(request),
    )
    return SessionStartResponse(session_id=session.session_id, timestamp=session.start_time)


# ─────────────────────────────────────────────────────────────────────────────
#  POST /api/detection/record
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/api/detection/record", response_model=DetectionResponse)
def record_detection(
    body: DetectionRequest | None = None,
    telemetry: TelemetryService = Depends(get_telemetry),
) -> DetectionResponse:
    """Add face/object detection counts to a session and the global totals."""
    body = body or DetectionRequest()
    try:
        result = telemetry.record_detection(
            body.session_id,
            face_count=body.face_count,
            object_count=body.object_count,
            confidence_level=body.confidence_level,
            detection_type=body.detection_type,
        )
    except TelemetryError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    return DetectionResponse(
        session_stats=SessionDetectionStats(
            face_detections=result.face_detections,
            object_detections=result.object_detections,
            total_detections=result.session_total_detections,
        ),
        global_stats=GlobalDetectionStats(
            total_face_detections=result.total_face_detections,
            total_detections=result.total_detections,
        ),
        timestamp=utc_now(),
    )


# ─────────────────────────────────────────────────────────────────────────────
#  POST /api/interaction/record
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/api/interaction/record", response_model=InteractionResponse)
def record_interaction(
    body: InteractionRequest | None = None,
    telemetry: TelemetryService = Depends(get_telemetry),
) -> InteractionResponse:
    """Count a widget interaction; ``filterSelect`` values join the session's filters."""
    body = body or InteractionRequest()
    try:
        result = telemetry.record_interaction(
            body.session_id,
            widget_name=body.widget_name,
            action=body.action,
            value=body.value,
        )
    except TelemetryError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    return InteractionResponse(
        total_interactions_in_session=result.interactions,
        filters=result.filters,
        timestamp=utc_now(),
    )


# ─────────────────────────────────────────────────────────────────────────────
#  POST /api/session/end
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/api/session/end", response_model=SessionEndResponse)
def end_session(
    body: SessionEndRequest | None = None,
    telemetry: TelemetryService = Depends(get_telemetry),
) -> SessionEndResponse:
    """Close a session and return its final counters."""
    body = body or SessionEndRequest()
    try:
        summary = telemetry.end_session(body.session_id)
    except TelemetryError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    return SessionEndResponse(
        session_stats=SessionEndStats(
            face_detections=summary.face_detections,
            object_detections=summary.object_detections,
            interactions=summary.interactions,
            duration=summary.duration,
            filters=summary.filters,
        ),
        timestamp=utc_now(),
    )
