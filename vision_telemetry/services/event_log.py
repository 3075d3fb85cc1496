"""
Append-only JSON-lines event trail with size-based rotation.

FILE LAYOUT
───────────
One file per event type per UTC day under ``logs_dir``::

    SESSION_START_2025-12-01.log
    DETECTION_RECORD_2025-12-01.log
    DETECTION_RECORD_2025-12-01_1764590400000.log.backup   ← rotated

Each line is ``{"timestamp", "eventType", "payload", "pid"}``.

WRITES
──────
``append()`` only enqueues; a single daemon thread does the disk work, so a
request never waits on the filesystem and the session lock is never held
across a write.  Failures are logged and counted in ``failed_writes``; they
never reach the caller.

ROTATION
────────
Before a write, a file already at or above ``max_bytes`` is renamed to
``<EVENT>_<date>_<epoch ms>.log.backup``.  Check-then-rename is not atomic:
two processes sharing a log directory may both rotate and leave two backups.
"""
from __future__ import annotations

import json
import logging
import os
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from vision_telemetry.services.errors import AccessDenied, LogFileNotFound
from vision_telemetry.services.session_stats import utc_now

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".log"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024

_STOP = object()


@dataclass
class LogFileInfo:
    name: str
    size: int
    modified: datetime
    created: datetime


@dataclass
class LogFileContent:
    name: str
    size: int
    modified: datetime
    lines: list[Any]


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _parse_line(line: str) -> Any:
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        return line


class EventLog:
    """Writes telemetry events to per-type, per-day log files."""

    def __init__(
        self,
        logs_dir: str | Path,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._root = Path(logs_dir).resolve()
        self._max_bytes = max_bytes
        self._clock = clock
        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._worker_lock = threading.Lock()
        self.failed_writes = 0

        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Could not create log directory %s: %s", self._root, exc)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, event_type: str, when: datetime) -> Path:
        date_str = when.astimezone(timezone.utc).strftime("%Y-%m-%d")
        return self._root / f"{event_type}_{date_str}{LOG_SUFFIX}"

    # ── writing ─────────────────────────────────────────────────────────

    def append(self, event_type: str, payload: dict[str, Any]) -> None:
        """Queue an event for the background writer and return immediately."""
        self._ensure_worker()
        self._queue.put(self._entry(event_type, payload))

    def write(self, event_type: str, payload: dict[str, Any]) -> bool:
        """Write an event synchronously.  Returns False if the write failed."""
        return self._write(self._entry(event_type, payload))

    def flush(self) -> None:
        """Block until every queued event has been written (or dropped)."""
        self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        with self._worker_lock:
            worker, self._worker = self._worker, None
        if worker is not None and worker.is_alive():
            self._queue.put(_STOP)
            worker.join(timeout)

    def _entry(self, event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "timestamp": self._clock(),
            "eventType": event_type,
            "payload": payload,
            "pid": os.getpid(),
        }

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(
                    target=self._run, name="event-log-writer", daemon=True,
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is _STOP:
                    return
                self._write(entry)
            finally:
                self._queue.task_done()

    def _write(self, entry: dict[str, Any]) -> bool:
        event_type = entry["eventType"]
        try:
            path = self.path_for(event_type, entry["timestamp"])
            self._rotate_if_needed(path)
            line = json.dumps(entry, default=_json_default, ensure_ascii=False) + "\n"
            with path.open("a", encoding="utf-8") as fh:
                fh.write(line)
            return True
        except Exception as exc:
            # never propagates; the worker thread must survive any bad entry
            self.failed_writes += 1
            logger.error("Failed to write %s event: %s", event_type, exc)
            return False

    def _rotate_if_needed(self, path: Path) -> None:
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return
        if size < self._max_bytes:
            return

        stamp = int(self._clock().timestamp() * 1000)
        backup = path.with_name(f"{path.stem}_{stamp}{LOG_SUFFIX}.backup")
        path.rename(backup)
        logger.info("Log archived: %s (%.1f MB)", backup.name, size / 1e6)

    # ── reading ─────────────────────────────────────────────────────────

    def list_files(self) -> list[LogFileInfo]:
        """``*.log`` files (backups excluded), newest modification first."""
        if not self._root.is_dir():
            return []

        files: list[LogFileInfo] = []
        for path in self._root.iterdir():
            if path.suffix != LOG_SUFFIX or not path.is_file():
                continue
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            created = getattr(st, "st_birthtime", st.st_ctime)
            files.append(LogFileInfo(
                name=path.name,
                size=st.st_size,
                modified=datetime.fromtimestamp(st.st_mtime, timezone.utc),
                created=datetime.fromtimestamp(created, timezone.utc),
            ))

        files.sort(key=lambda f: f.modified, reverse=True)
        return files

    def resolve(self, file_name: str) -> Path:
        """Map a client-supplied name to a log file inside the log root.

        Raises AccessDenied when the resolved path escapes the root
        (``../``, absolute paths, symlinks pointing out) and LogFileNotFound
        when it is not an existing ``.log`` file.
        """
        candidate = (self._root / file_name).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            logger.warning("Rejected log path outside %s: %r", self._root, file_name)
            raise AccessDenied()
        if candidate.suffix != LOG_SUFFIX or not candidate.is_file():
            raise LogFileNotFound(file_name)
        return candidate

    def read(self, file_name: str) -> LogFileContent:
        path = self.resolve(file_name)
        text = path.read_text(encoding="utf-8", errors="replace")
        lines = [_parse_line(line) for line in text.splitlines() if line.strip()]
        st = path.stat()
        return LogFileContent(
            name=file_name,
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, timezone.utc),
            lines=lines,
        )

    # ── housekeeping ────────────────────────────────────────────────────

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete every file (backups included) last modified before ``cutoff``."""
        if not self._root.is_dir():
            return 0

        deleted = 0
        for path in self._root.iterdir():
            if not path.is_file():
                continue
            try:
                if _mtime(path) < cutoff:
                    path.unlink()
                    deleted += 1
                    logger.info("Deleted old log file: %s", path.name)
            except FileNotFoundError:
                continue
        return deleted
