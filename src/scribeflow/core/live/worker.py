import queue
from typing import List

import numpy as np
from PySide6.QtCore import QThread, Signal

from ...utils.logger import get_logger
from .engines import StreamingEngine, StreamingUpdate

logger = get_logger(__name__)

_STOP = object()


class StreamingWorkerThread(QThread):
    """
    Feeds captured audio into a streaming engine off the UI thread.

    Audio arrives through ``feed`` (safe from the capture callback). Engine
    output is collected in order and announced with ``updates_available``;
    the owner pulls it with ``take_updates``, so nothing is lost when the
    session drains the worker synchronously on stop.

    Signals:
        updates_available: New updates can be taken
        error: The engine failed (error_message)
    """

    updates_available = Signal()
    error = Signal(str)

    def __init__(self, engine: StreamingEngine, sample_rate: int, parent=None):
        super().__init__(parent)
        self._engine = engine
        self._sample_rate = sample_rate
        self._audio: "queue.Queue" = queue.Queue()
        self._updates: "queue.Queue[StreamingUpdate]" = queue.Queue()

    def feed(self, samples: np.ndarray) -> None:
        self._audio.put(samples)

    def request_stop(self) -> None:
        self._audio.put(_STOP)

    def take_updates(self) -> List[StreamingUpdate]:
        updates = []
        while True:
            try:
                updates.append(self._updates.get_nowait())
            except queue.Empty:
                return updates

    def run(self):
        try:
            self._engine.prepare()
            while True:
                item = self._audio.get()
                if item is _STOP:
                    break
                self._publish(self._engine.accept_waveform(item, self._sample_rate))
            self._publish(self._engine.finish())
        except Exception as e:
            logger.exception(f"Streaming engine error: {e}")
            self.error.emit(str(e))
        finally:
            self._engine.release()

    def _publish(self, updates: List[StreamingUpdate]) -> None:
        if not updates:
            return
        for update in updates:
            self._updates.put(update)
        self.updates_available.emit()
