"""
SLA External Service Integrations
==================================

Runtime collaborators of the SLA module:
- YAML preset table with watchdog hot-reload
- APScheduler job for the breach monitor
- In-process change feed that pushes timer/alert changes to WebSocket
  subscribers once the writing transaction commits
"""

import asyncio
import threading
import weakref
from collections import defaultdict
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Set

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from sqlalchemy import event
from sqlalchemy.orm import Session
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.config import settings
from src.shared.infrastructure.logging import get_logger
from src.sla.application.services import ISLAPresetProvider
from src.sla.domain import SLAConfig, SLAPresetTable

logger = get_logger(__name__)


# ========== Preset table ==========

class PresetFileHandler(FileSystemEventHandler):
    """Watchdog event handler for preset file changes."""

    def __init__(self, manager: "SLAPresetManager", path: Path):
        self.manager = manager
        self.path = path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.path.resolve():
            logger.info("SLA preset file changed", extra={"path": str(event.src_path)})
            self.manager.reload()


class SLAPresetManager(ISLAPresetProvider):
    """
    Thread-safe SLA preset table with hot-reload support.

    A missing file leaves the built-in fallback-only table in place, so
    every lookup still resolves.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else settings.sla_presets_path
        self._presets = SLAPresetTable()
        self._lock = threading.Lock()
        self._observer = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SLAPresetTable:
        """Initial table load."""
        table = self._load_from_file(self._path)
        with self._lock:
            self._presets = table
        return table

    def _load_from_file(self, path: Path) -> SLAPresetTable:
        if not path.exists():
            logger.warning("SLA preset file not found, using fallback only", extra={"path": str(path)})
            return SLAPresetTable()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SLAPresetTable(**data)

    def reload(self) -> bool:
        """Reload the table; a broken file keeps the previous table."""
        try:
            table = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.error("Failed to reload SLA presets", extra={"path": str(self._path), "error": str(e)})
            return False

        with self._lock:
            self._presets = table
        logger.info("SLA presets reloaded", extra={"presets": len(table.flattened())})
        return True

    def get_presets(self) -> SLAPresetTable:
        with self._lock:
            return self._presets

    def resolve(self, trade: Optional[str], urgency: Optional[str]) -> SLAConfig:
        presets = self.get_presets()
        return presets.get(trade, urgency) or presets.fallback

    def start_watching(self) -> None:
        """
        Start watching the preset file for changes.

        Skipped when the file does not exist or inotify is unavailable
        (common in containers).
        """
        if not self._path.exists():
            logger.info("SLA preset file missing, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                PresetFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Watching SLA preset file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static presets", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Safe to call even if not watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None


# ========== Background monitor ==========

class SLAScheduler:
    """
    Wrapper for APScheduler running the breach monitor.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_monitor",
            name="SLA Breach Monitor",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running


# ========== Change feed ==========

SLA_CHANGES_KEY = "sla_changes"

_feeds: "weakref.WeakSet[SLAChangeFeed]" = weakref.WeakSet()


def track_change(session, job_id: str, table: str) -> None:
    """
    Remember that a job's SLA rows changed in this session.

    Published to subscribers after commit, discarded on rollback.
    """
    session.info.setdefault(SLA_CHANGES_KEY, set()).add((job_id, table))


@event.listens_for(Session, "after_commit")
def _publish_committed_changes(session):
    changes = session.info.pop(SLA_CHANGES_KEY, None)
    if not changes:
        return
    for feed in list(_feeds):
        for job_id, table in changes:
            feed.publish(job_id, table)


@event.listens_for(Session, "after_rollback")
def _discard_uncommitted_changes(session):
    session.info.pop(SLA_CHANGES_KEY, None)


class SLAChangeFeed:
    """
    In-process pub/sub of SLA row changes keyed by job id.

    Delivery is best-effort: each subscriber has a bounded queue and the
    oldest pending event is dropped when it is full. Subscribers re-read the
    full state on every event, so a dropped event only delays a refresh.
    """

    def __init__(self, max_queue: int = 32):
        self._max_queue = max_queue
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
        _feeds.add(self)

    def subscribe(self, job_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers[job_id].add(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(job_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[job_id]

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))

    def publish(self, job_id: str, table: str) -> None:
        event_data = {"job_id": job_id, "table": table}
        for queue in list(self._subscribers.get(job_id, ())):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(event_data)

    def close(self) -> None:
        self._subscribers.clear()
        _feeds.discard(self)
