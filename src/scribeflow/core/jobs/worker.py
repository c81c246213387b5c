import threading
import time

from PySide6.QtCore import QThread, Signal

from ...utils.logger import get_logger
from .errors import BackendError, CancellationError, InputError

logger = get_logger(__name__)


class BackendWorkerThread(QThread):
    """
    Runs one backend attempt for one job off the owner thread.

    Every signal carries ``(job_id, generation)`` so the orchestrator can drop
    reports from attempts it has already given up on.

    Signals:
        progressed: (job_id, generation, fraction)
        succeeded: (job_id, generation, TranscriptionResult)
        failed: (job_id, generation, message, fatal). ``fatal`` is set for
                input errors, which must not advance to another candidate.
        cancelled: (job_id, generation)
    """

    progressed = Signal(str, int, float)
    succeeded = Signal(str, int, object)
    failed = Signal(str, int, str, bool)
    cancelled = Signal(str, int)

    def __init__(
        self,
        job_id: str,
        generation: int,
        backend,
        audio_path: str,
        options,
        cancel_event: threading.Event,
        parent=None,
    ):
        super().__init__(parent)
        self.job_id = job_id
        self.generation = generation
        self._backend = backend
        self._audio_path = audio_path
        self._options = options
        self._cancel_event = cancel_event

    @property
    def backend_name(self) -> str:
        return getattr(self._backend, "name", type(self._backend).__name__)

    def run(self):
        start_time = time.time()
        logger.info(f"[{self.backend_name}] attempt started for job {self.job_id}")

        try:
            result = self._backend.execute(
                self._audio_path,
                self._options,
                self._report_progress,
                self._cancel_event.is_set,
            )
        except CancellationError:
            logger.info(f"[{self.backend_name}] job {self.job_id} stopped after cancel")
            self.cancelled.emit(self.job_id, self.generation)
            return
        except InputError as e:
            logger.warning(f"[{self.backend_name}] unusable input for job {self.job_id}: {e}")
            self.failed.emit(self.job_id, self.generation, str(e), True)
            return
        except BackendError as e:
            logger.warning(f"[{self.backend_name}] attempt failed for job {self.job_id}: {e}")
            self.failed.emit(self.job_id, self.generation, str(e), False)
            return
        except Exception as e:
            logger.exception(f"[{self.backend_name}] unexpected error for job {self.job_id}: {e}")
            self.failed.emit(self.job_id, self.generation, str(e) or type(e).__name__, False)
            return

        if self._cancel_event.is_set():
            self.cancelled.emit(self.job_id, self.generation)
            return

        logger.info(
            f"[{self.backend_name}] job {self.job_id} finished in {time.time() - start_time:.2f}s"
        )
        self.succeeded.emit(self.job_id, self.generation, result)

    def _report_progress(self, value: float) -> None:
        self.progressed.emit(self.job_id, self.generation, float(value))
