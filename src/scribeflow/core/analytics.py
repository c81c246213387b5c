"""
Usage counters.

Counts completed and failed jobs, cloud fallbacks and model downloads, and
keeps the most recent events for diagnostics. Everything is kept in one JSON
file in the data directory and rewritten after every event.
"""

import json
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from PySide6.QtCore import QObject, Signal

from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_RECENT_EVENTS = 50


class AnalyticsEventType(str, Enum):
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    CLOUD_FALLBACK = "cloud_fallback"
    MODEL_DOWNLOADED = "model_downloaded"
    MODEL_DOWNLOAD_FAILED = "model_download_failed"


class AnalyticsEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: AnalyticsEventType
    timestamp: datetime = Field(default_factory=datetime.now)
    model_id: Optional[str] = None
    provider: Optional[str] = None
    duration: Optional[float] = None
    reason: Optional[str] = None

    def describe(self) -> str:
        if self.type == AnalyticsEventType.JOB_COMPLETED:
            text = f"Job completed with {self.model_id or 'unknown model'}"
            if self.duration is not None:
                text += f" in {self.duration:.2f}s"
            return text
        if self.type == AnalyticsEventType.JOB_FAILED:
            return f"Job failed (model: {self.model_id or 'unknown'}): {self.reason}"
        if self.type == AnalyticsEventType.CLOUD_FALLBACK:
            return f"Cloud fallback triggered for provider {self.provider}"
        if self.type == AnalyticsEventType.MODEL_DOWNLOADED:
            return f"Model downloaded: {self.model_id}"
        return f"Model download failed: {self.model_id}: {self.reason}"


class AnalyticsMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jobs_completed: int = 0
    jobs_failed: int = 0
    cloud_fallbacks: int = 0
    model_downloads: int = 0
    model_download_failures: int = 0
    last_updated: Optional[datetime] = None

    def apply(self, event: AnalyticsEvent) -> None:
        if event.type == AnalyticsEventType.JOB_COMPLETED:
            self.jobs_completed += 1
        elif event.type == AnalyticsEventType.JOB_FAILED:
            self.jobs_failed += 1
        elif event.type == AnalyticsEventType.CLOUD_FALLBACK:
            self.cloud_fallbacks += 1
        elif event.type == AnalyticsEventType.MODEL_DOWNLOADED:
            self.model_downloads += 1
        elif event.type == AnalyticsEventType.MODEL_DOWNLOAD_FAILED:
            self.model_download_failures += 1
        self.last_updated = event.timestamp


class AnalyticsTracker(QObject):
    """
    Records usage events and persists the counters.

    ``record`` may be called from any thread. ``metrics_changed`` carries a
    copy of the counters after each event.
    """

    metrics_changed = Signal(object)

    def __init__(self, path: Optional[Path] = None, parent=None):
        super().__init__(parent)
        if path is None:
            from .settings import get_analytics_file

            path = get_analytics_file()
        self._path = Path(path)
        self._lock = threading.Lock()
        self._metrics = AnalyticsMetrics()
        self._recent: List[AnalyticsEvent] = []
        self._load()

    @property
    def metrics(self) -> AnalyticsMetrics:
        with self._lock:
            return self._metrics.model_copy()

    @property
    def recent_events(self) -> List[AnalyticsEvent]:
        with self._lock:
            return list(self._recent)

    def record(self, event_type: AnalyticsEventType, **details) -> AnalyticsEvent:
        event = AnalyticsEvent(type=event_type, **details)
        with self._lock:
            self._metrics.apply(event)
            self._recent.append(event)
            del self._recent[:-MAX_RECENT_EVENTS]
            self._save()
            snapshot = self._metrics.model_copy()

        logger.info(f"[Analytics] {event.describe()}")
        self.metrics_changed.emit(snapshot)
        return event

    def reset(self) -> None:
        with self._lock:
            self._metrics = AnalyticsMetrics()
            self._recent = []
            self._save()
            snapshot = self._metrics.model_copy()
        self.metrics_changed.emit(snapshot)

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            metrics = AnalyticsMetrics.model_validate(data.get("metrics", {}))
            recent = [AnalyticsEvent.model_validate(e) for e in data.get("recent_events", [])]
        except (OSError, json.JSONDecodeError, AttributeError, TypeError, ValidationError) as e:
            logger.warning(f"Could not load analytics from {self._path}: {e}. Starting from zero.")
            return
        self._metrics = metrics
        self._recent = recent[-MAX_RECENT_EVENTS:]

    def _save(self) -> None:
        data = {
            "metrics": self._metrics.model_dump(mode="json"),
            "recent_events": [e.model_dump(mode="json") for e in self._recent],
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save analytics to {self._path}: {e}")
