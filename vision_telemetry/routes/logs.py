"""
Event log browsing and housekeeping.

  GET    /api/logs                  : list *.log files, newest first
  GET    /api/logs/download/{file}  : raw file download
  GET    /api/logs/{file}           : parsed line-by-line content
  DELETE /api/logs/cleanup?days=N   : delete files older than N days

File names go through ``EventLog.resolve`` which refuses anything outside
the log directory (403) before checking existence (404).
"""
import logging
from datetime import timedelta
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from vision_telemetry.dependencies import get_telemetry
from vision_telemetry.schemas.telemetry import (
    LogCleanupResponse,
    LogContentResponse,
    LogFileEntry,
    LogListResponse,
)
from vision_telemetry.services.errors import TelemetryError
from vision_telemetry.services.session_stats import utc_now
from vision_telemetry.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["logs"])


@router.get("/api/logs", response_model=LogListResponse)
def list_logs(telemetry: TelemetryService = Depends(get_telemetry)) -> LogListResponse:
    event_log = telemetry.event_log
    try:
        files = event_log.list_files()
    except OSError as exc:
        logger.error("Could not list log directory: %s", exc)
        raise HTTPException(status_code=500, detail="Error reading the log directory")

    total_bytes = sum(f.size for f in files)
    return LogListResponse(
        total=len(files),
        total_size=f"{total_bytes / 1024 / 1024:.2f} MB",
        logs=[
            LogFileEntry(
                file=f.name,
                size=f"{f.size / 1024:.2f} KB",
                size_bytes=f.size,
                last_modified=f.modified,
                created=f.created,
                url=f"/api/logs/{quote(f.name)}",
                download_url=f"/api/logs/download/{quote(f.name)}",
            )
            for f in files
        ],
        directory=str(event_log.root),
        timestamp=utc_now(),
    )


@router.delete("/api/logs/cleanup", response_model=LogCleanupResponse)
def cleanup_logs(
    days: int | None = Query(default=None, ge=0),
    telemetry: TelemetryService = Depends(get_telemetry),
) -> LogCleanupResponse:
    """Delete log files (backups included) not modified in the last ``days`` days."""
    if days is None:
        days = telemetry.settings.log_cleanup_default_days
    now = utc_now()
    cutoff = now - timedelta(days=days)

    try:
        deleted = telemetry.event_log.purge_older_than(cutoff)
    except OSError as exc:
        logger.error("Log cleanup failed: %s", exc)
        raise HTTPException(status_code=500, detail="Error cleaning up logs")

    return LogCleanupResponse(
        deleted=deleted,
        message=f"Deleted {deleted} old log file(s)",
        cutoff_date=cutoff,
        timestamp=now,
    )


@router.get("/api/logs/download/{file_name:path}")
def download_log(
    file_name: str,
    telemetry: TelemetryService = Depends(get_telemetry),
) -> FileResponse:
    try:
        path = telemetry.event_log.resolve(file_name)
    except TelemetryError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    return FileResponse(str(path), filename=path.name, media_type="text/plain")


@router.get("/api/logs/{file_name:path}", response_model=LogContentResponse)
def read_log(
    file_name: str,
    telemetry: TelemetryService = Depends(get_telemetry),
) -> LogContentResponse:
    try:
        content = telemetry.event_log.read(file_name)
    except TelemetryError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    except OSError as exc:
        logger.error("Could not read log file %s: %s", file_name, exc)
        raise HTTPException(status_code=500, detail="Error reading the log file")

    return LogContentResponse(
        file_name=content.name,
        total_lines=len(content.lines),
        size=content.size,
        last_modified=content.modified,
        content=content.lines,
        timestamp=utc_now(),
    )
