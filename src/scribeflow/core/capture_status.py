"""
Process-wide "capture in progress" state.

Created once at startup with ``init_capture_status`` and torn down with
``shutdown_capture_status`` when the session ends. Any component may read it
or connect to its signals; only the job orchestrator and the live session
controller write to it.
"""

from typing import Optional

from PySide6.QtCore import QObject, Signal

from ..utils.logger import get_logger

logger = get_logger(__name__)


class CaptureStatus(QObject):
    changed = Signal()
    live_streaming_changed = Signal(bool)
    stop_live_requested = Signal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self._live_streaming = False
        self._active_jobs = 0
        self._recording_jobs = 0

    @property
    def is_live_streaming(self) -> bool:
        return self._live_streaming

    @property
    def active_job_count(self) -> int:
        return self._active_jobs

    @property
    def recording_job_count(self) -> int:
        return self._recording_jobs

    @property
    def is_capturing(self) -> bool:
        return self._live_streaming or self._recording_jobs > 0

    def set_live_streaming(self, streaming: bool) -> None:
        if streaming == self._live_streaming:
            return
        self._live_streaming = streaming
        self.live_streaming_changed.emit(streaming)
        self.changed.emit()

    def set_job_counts(self, active: int, recording: int) -> None:
        if (active, recording) == (self._active_jobs, self._recording_jobs):
            return
        self._active_jobs = active
        self._recording_jobs = recording
        self.changed.emit()

    def request_stop_live(self) -> None:
        if self._live_streaming:
            self.stop_live_requested.emit()

    def reset(self) -> None:
        self.set_live_streaming(False)
        self.set_job_counts(0, 0)


_capture_status: Optional[CaptureStatus] = None


def init_capture_status() -> CaptureStatus:
    global _capture_status
    if _capture_status is not None:
        logger.warning("Capture status already initialized, reusing it")
        return _capture_status
    _capture_status = CaptureStatus()
    return _capture_status


def get_capture_status() -> CaptureStatus:
    if _capture_status is None:
        raise RuntimeError("Capture status used before init_capture_status()")
    return _capture_status


def shutdown_capture_status() -> None:
    global _capture_status
    if _capture_status is None:
        return
    _capture_status.reset()
    _capture_status.deleteLater()
    _capture_status = None
