"""
Job orchestration.

The orchestrator owns every job state change. It lives on one Qt thread,
runs backend attempts on BackendWorkerThread instances and receives their
reports through queued signal connections, so ledger writes for a job are
always issued in order from that one thread.

A job walks its candidate strategies in order. A failed attempt moves on to
the next candidate while the job stays ``transcribing`` and only the stage
label changes; the job fails once the list is exhausted, carrying the last
attempt's error. Each job has a generation counter that is bumped on cancel,
retry and removal, and worker reports tagged with an older generation are
ignored.
"""

import os
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from PySide6.QtCore import QObject, Qt, QTimer, Signal, Slot

from ...utils.logger import get_logger
from ..analytics import AnalyticsEventType
from ..audio.audio_file import read_duration, validate_audio_file
from ..settings.config import (
    CANCEL_GRACE_MS,
    DEFAULT_MAX_CONCURRENT_JOBS,
    PROGRESS_CAP_BEFORE_COMPLETE,
    PROGRESS_WRITE_STEP,
)
from .errors import BackendError, InputError
from .ledger import JobLedger
from .models import (
    ACTIVE_STATUSES,
    CANCELLED_MESSAGE,
    INTERRUPTED_MESSAGE,
    MISSING_RECORDING_MESSAGE,
    NO_BACKEND_MESSAGE,
    STAGE_CANCELLED,
    STAGE_COMPLETED,
    STAGE_ERROR,
    STAGE_INTERRUPTED,
    STAGE_PREPARING,
    STAGE_QUEUED,
    STAGE_RECORDING,
    JobStatus,
    TranscriptionJob,
    TranscriptionResult,
)
from .selector import SelectorConfig, Strategy, StrategyKind, select_strategies
from .worker import BackendWorkerThread

logger = get_logger(__name__)


@dataclass
class _ExecutionContext:
    job_id: str
    generation: int
    candidates: List[Strategy] = field(default_factory=list)
    options: object = None
    index: int = 0
    progress: float = 0.0
    written_progress: float = 0.0
    awaiting_capture: bool = False
    cancel_event: threading.Event = field(default_factory=threading.Event)
    worker: Optional[BackendWorkerThread] = None
    cancel_timer: Optional[QTimer] = None

    @property
    def strategy(self) -> Optional[Strategy]:
        if self.index < len(self.candidates):
            return self.candidates[self.index]
        return None


class JobOrchestrator(QObject):
    job_updated = Signal(object)
    job_progress = Signal(str, float)
    job_finished = Signal(object)
    job_removed = Signal(str)

    _run_requested = Signal()

    def __init__(
        self,
        ledger: JobLedger,
        catalog=None,
        connectivity=None,
        settings_provider: Optional[Callable] = None,
        backend_factory: Optional[Callable] = None,
        capture_status=None,
        analytics=None,
        auto_run: bool = True,
        max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS,
        cancel_grace_ms: int = CANCEL_GRACE_MS,
        parent=None,
    ):
        super().__init__(parent)

        if settings_provider is None:
            from ..settings import get_settings

            settings_provider = get_settings
        if catalog is None:
            from ..asr.catalog import ModelCatalog

            catalog = ModelCatalog()
        if connectivity is None:
            from ...utils.network import HttpConnectivityCheck

            connectivity = HttpConnectivityCheck(settings_provider().connectivity_url)
        if backend_factory is None:
            from ..asr.backends import create_backend

            def backend_factory(strategy):
                return create_backend(strategy, self._settings_provider(), self._catalog)

        self._ledger = ledger
        self._catalog = catalog
        self._connectivity = connectivity
        self._settings_provider = settings_provider
        self._backend_factory = backend_factory
        self._capture_status = capture_status
        self._analytics = analytics
        self._auto_run = auto_run
        self._max_concurrent = max(1, max_concurrent_jobs)
        self._cancel_grace_ms = cancel_grace_ms

        self._contexts: Dict[str, _ExecutionContext] = {}
        self._generations: Dict[str, int] = {}
        self._workers: Set[BackendWorkerThread] = set()
        self._shutting_down = False

        self._run_requested.connect(self._drain, Qt.QueuedConnection)

    @property
    def ledger(self) -> JobLedger:
        return self._ledger

    def generation(self, job_id: str) -> int:
        return self._generations.get(job_id, 0)

    def is_executing(self, job_id: str) -> bool:
        return job_id in self._contexts

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def enqueue(
        self,
        audio_source,
        filename: Optional[str] = None,
        capture_pending: bool = False,
        source_path: Optional[str] = None,
    ) -> str:
        """Create a queued job and return its id. Safe to call from any thread."""
        audio_path = os.fspath(audio_source)
        job = TranscriptionJob(
            id=str(uuid.uuid4()),
            audio_path=audio_path,
            filename=filename or os.path.basename(audio_path),
            source_path=source_path,
            capture_pending=capture_pending,
        )
        self._ledger.add(job)
        logger.info(f"Enqueued job {job.id} for {job.filename}")
        self.job_updated.emit(job.snapshot())

        if self._auto_run:
            self._run_requested.emit()
        return job.id

    def run(self, job_id: str) -> bool:
        job = self._ledger.get(job_id)
        if job is None or job.status != JobStatus.QUEUED or job_id in self._contexts:
            return False

        ctx = _ExecutionContext(
            job_id=job_id,
            generation=self.generation(job_id),
            progress=job.progress,
            written_progress=job.progress,
        )
        self._contexts[job_id] = ctx

        job.stage = STAGE_PREPARING
        if not self._commit(job):
            return False

        if not job.capture_pending:
            try:
                self._inspect_audio(job)
            except InputError as e:
                logger.warning(f"Job {job_id} rejected: {e}")
                self._fail(job, str(e))
                return True

        if not self._plan(ctx, job):
            return True

        if job.capture_pending:
            job.transition_to(JobStatus.RECORDING)
            job.stage = STAGE_RECORDING
            ctx.awaiting_capture = True
            self._commit(job)
            self._publish_capture_state()
            return True

        job.transition_to(JobStatus.TRANSCRIBING)
        self._start_attempt(ctx, job)
        self._publish_capture_state()
        return True

    def mark_capture_complete(self, job_id: str, audio_source=None) -> bool:
        job = self._ledger.get(job_id)
        if job is None or job.status != JobStatus.RECORDING:
            return False

        if audio_source is not None:
            job.audio_path = os.fspath(audio_source)
        job.capture_pending = False

        ctx = self._contexts.get(job_id)
        if ctx is None:
            ctx = _ExecutionContext(
                job_id=job_id, generation=self.generation(job_id), progress=job.progress
            )
            self._contexts[job_id] = ctx
            if not self._plan(ctx, job):
                return True
        ctx.awaiting_capture = False

        try:
            self._inspect_audio(job)
        except InputError as e:
            logger.warning(f"Captured audio for job {job_id} unusable: {e}")
            self._fail(job, str(e))
            return True

        job.transition_to(JobStatus.TRANSCRIBING)
        self._start_attempt(ctx, job)
        self._publish_capture_state()
        return True

    def retry(self, job_id: str) -> bool:
        job = self._ledger.get(job_id)
        if job is None or job.status != JobStatus.FAILED:
            return False

        if not os.path.isfile(job.audio_path):
            logger.warning(f"Retry of job {job_id} refused, audio missing: {job.audio_path}")
            if job.error != MISSING_RECORDING_MESSAGE:
                job.error = MISSING_RECORDING_MESSAGE
                job.stage = STAGE_ERROR
                self._commit(job)
            return False

        self._bump_generation(job_id)
        job.transition_to(JobStatus.QUEUED)
        job.error = None
        job.result = None
        job.progress = 0.0
        job.stage = STAGE_QUEUED
        self._commit(job)
        logger.info(f"Job {job_id} re-queued")

        self._run_requested.emit()
        return True

    def cancel(self, job_id: str) -> bool:
        job = self._ledger.get(job_id)
        if job is None or job.status not in ACTIVE_STATUSES:
            return False

        ctx = self._contexts.get(job_id)
        if ctx is None or ctx.worker is None:
            self._finalize_cancel(job_id)
            return True

        if ctx.cancel_event.is_set():
            return True

        logger.info(f"Cancelling job {job_id}, waiting up to {self._cancel_grace_ms} ms")
        ctx.cancel_event.set()
        generation = ctx.generation
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(lambda: self._on_cancel_timeout(job_id, generation))
        ctx.cancel_timer = timer
        timer.start(self._cancel_grace_ms)
        return True

    def remove_job(self, job_id: str) -> bool:
        ctx = self._discard_context(job_id)
        if ctx is not None:
            logger.info(f"Removing in-flight job {job_id}")
        self._bump_generation(job_id)

        removed = self._ledger.remove(job_id)
        if removed:
            self.job_removed.emit(job_id)
        self._publish_capture_state()
        self._run_requested.emit()
        return removed

    def ensure_processing(self) -> None:
        self._run_requested.emit()

    def recover_interrupted_jobs(self) -> List[str]:
        """Fail jobs a previous process left recording or transcribing."""
        recovered = []
        for job in self._ledger.running():
            if job.id in self._contexts:
                continue
            job.transition_to(JobStatus.FAILED)
            job.error = INTERRUPTED_MESSAGE
            job.result = None
            job.stage = STAGE_INTERRUPTED
            job.capture_pending = False
            if self._ledger.update(job):
                snapshot = job.snapshot()
                self.job_updated.emit(snapshot)
                self.job_finished.emit(snapshot)
            recovered.append(job.id)
        if recovered:
            logger.info(f"Marked {len(recovered)} interrupted job(s) as failed")
        return recovered

    def purge_orphaned_jobs(self) -> List[str]:
        """Drop jobs whose audio file has disappeared."""
        purged = self._ledger.remove_where(
            lambda job: job.id not in self._contexts
            and not job.capture_pending
            and not os.path.exists(job.audio_path)
        )
        for job_id in purged:
            self._generations.pop(job_id, None)
            self.job_removed.emit(job_id)
        if purged:
            logger.info(f"Purged {len(purged)} orphaned job(s)")
        return purged

    def import_live_transcript(
        self,
        audio_source,
        filename: str,
        text: str,
        duration: Optional[float] = None,
    ) -> str:
        """Record a finished live session as a completed job without re-transcribing."""
        from ..asr.text import segments_from_text

        audio_path = os.fspath(audio_source)
        if duration is None and os.path.isfile(audio_path):
            try:
                duration = read_duration(audio_path)
            except InputError as e:
                logger.warning(f"Could not measure live recording {audio_path}: {e}")

        job = TranscriptionJob(
            id=str(uuid.uuid4()), audio_path=audio_path, filename=filename
        )
        self._ledger.add(job)

        job.transition_to(JobStatus.TRANSCRIBING)
        job.transition_to(JobStatus.COMPLETED)
        job.duration = duration
        job.result = TranscriptionResult(
            text=text,
            segments=segments_from_text(text, duration or 0.0),
            duration=duration,
        )
        job.progress = 1.0
        job.stage = STAGE_COMPLETED
        self._commit(job)
        self.job_finished.emit(job.snapshot())
        logger.info(f"Imported live transcript as job {job.id}")
        return job.id

    def shutdown(self, timeout_ms: int = 5000) -> None:
        """Stop scheduling, ask running attempts to stop and wait for their threads."""
        self._shutting_down = True
        for ctx in self._contexts.values():
            ctx.cancel_event.set()
            if ctx.cancel_timer is not None:
                ctx.cancel_timer.stop()
        for worker in list(self._workers):
            if not worker.wait(timeout_ms):
                logger.warning(f"Worker for job {worker.job_id} still running at shutdown")
        self._contexts.clear()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @Slot()
    def _drain(self):
        if self._shutting_down:
            return
        for job in self._ledger.queued():
            if self._running_count() >= self._max_concurrent:
                break
            self.run(job.id)

    def _running_count(self) -> int:
        return sum(1 for ctx in self._contexts.values() if not ctx.awaiting_capture)

    def _inspect_audio(self, job: TranscriptionJob) -> None:
        validate_audio_file(job.audio_path)
        if job.duration is None:
            job.duration = read_duration(job.audio_path)

    def _plan(self, ctx: _ExecutionContext, job: TranscriptionJob) -> bool:
        from ..asr.backends import TranscriptionOptions

        settings = self._settings_provider()
        config = SelectorConfig.from_settings(settings)
        ctx.candidates = select_strategies(job, config, self._connectivity, self._catalog)
        ctx.options = TranscriptionOptions.from_settings(settings)
        ctx.index = 0

        if not ctx.candidates:
            logger.warning(f"Job {job.id}: {NO_BACKEND_MESSAGE}")
            self._fail(job, NO_BACKEND_MESSAGE)
            return False
        return True

    def _start_attempt(self, ctx: _ExecutionContext, job: TranscriptionJob) -> None:
        while True:
            strategy = ctx.strategy
            job.stage = strategy.stage
            if not self._commit(job):
                return

            try:
                backend = self._backend_factory(strategy)
            except BackendError as e:
                logger.warning(f"Job {job.id}: could not prepare {strategy.stage}: {e}")
                message = str(e)
            except Exception as e:
                logger.exception(f"Job {job.id}: unexpected error preparing {strategy.stage}: {e}")
                message = str(e) or type(e).__name__
            else:
                break

            if ctx.index + 1 >= len(ctx.candidates):
                self._fail(job, message)
                return
            self._advance(ctx)

        logger.info(
            f"Job {job.id} attempt {ctx.index + 1}/{len(ctx.candidates)} via {strategy.stage}"
        )
        worker = BackendWorkerThread(
            job.id,
            ctx.generation,
            backend,
            job.audio_path,
            ctx.options,
            ctx.cancel_event,
        )
        worker.progressed.connect(self._on_worker_progress)
        worker.succeeded.connect(self._on_worker_succeeded)
        worker.failed.connect(self._on_worker_failed)
        worker.cancelled.connect(self._on_worker_cancelled)
        worker.finished.connect(self._reap_worker)
        ctx.worker = worker
        self._workers.add(worker)
        worker.start()

    def _current(self, job_id: str, generation: int) -> Optional[_ExecutionContext]:
        ctx = self._contexts.get(job_id)
        if ctx is None or ctx.generation != generation:
            logger.debug(f"Ignoring stale report for job {job_id} (generation {generation})")
            return None
        return ctx

    @Slot(str, int, float)
    def _on_worker_progress(self, job_id: str, generation: int, value: float):
        ctx = self._current(job_id, generation)
        if ctx is None or ctx.cancel_event.is_set():
            return

        capped = min(max(value, 0.0), 1.0, PROGRESS_CAP_BEFORE_COMPLETE)
        if capped <= ctx.progress:
            return
        ctx.progress = capped
        self.job_progress.emit(job_id, capped)

        if capped - ctx.written_progress >= PROGRESS_WRITE_STEP:
            job = self._ledger.get(job_id)
            if job is None or not job.is_running:
                return
            job.progress = capped
            ctx.written_progress = capped
            self._commit(job)

    @Slot(str, int, object)
    def _on_worker_succeeded(self, job_id: str, generation: int, result):
        ctx = self._current(job_id, generation)
        if ctx is None:
            return
        ctx.worker = None
        if ctx.cancel_event.is_set():
            self._finalize_cancel(job_id)
            return

        job = self._ledger.get(job_id)
        if job is None:
            self._discard_context(job_id)
            return

        job.transition_to(JobStatus.COMPLETED)
        job.result = result
        job.error = None
        job.progress = 1.0
        job.stage = STAGE_COMPLETED
        if job.duration is None and result.duration is not None:
            job.duration = result.duration
        self._finish(job)
        logger.info(f"Job {job_id} completed via {ctx.strategy.stage}")
        self._record(
            AnalyticsEventType.JOB_COMPLETED,
            model_id=ctx.strategy.model_id or ctx.strategy.stage,
            duration=result.duration,
        )

    @Slot(str, int, str, bool)
    def _on_worker_failed(self, job_id: str, generation: int, message: str, fatal: bool):
        ctx = self._current(job_id, generation)
        if ctx is None:
            return
        ctx.worker = None
        if ctx.cancel_event.is_set():
            self._finalize_cancel(job_id)
            return

        job = self._ledger.get(job_id)
        if job is None:
            self._discard_context(job_id)
            return

        logger.warning(f"Job {job_id} attempt via {ctx.strategy.stage} failed: {message}")
        if fatal or ctx.index + 1 >= len(ctx.candidates):
            self._fail(job, message)
            return

        self._advance(ctx)
        self._start_attempt(ctx, job)

    def _advance(self, ctx: _ExecutionContext) -> None:
        failed = ctx.strategy
        ctx.index += 1
        if failed.kind == StrategyKind.CLOUD:
            self._record(AnalyticsEventType.CLOUD_FALLBACK, provider=failed.provider)

    @Slot(str, int)
    def _on_worker_cancelled(self, job_id: str, generation: int):
        ctx = self._current(job_id, generation)
        if ctx is None:
            return
        ctx.worker = None
        self._finalize_cancel(job_id)

    def _on_cancel_timeout(self, job_id: str, generation: int):
        if self._current(job_id, generation) is None:
            return
        logger.warning(f"Backend for job {job_id} did not stop in time, abandoning it")
        self._finalize_cancel(job_id)

    @Slot()
    def _reap_worker(self):
        worker = self.sender()
        if worker in self._workers:
            self._workers.discard(worker)
            worker.deleteLater()

    # ------------------------------------------------------------------
    # State changes
    # ------------------------------------------------------------------

    def _commit(self, job: TranscriptionJob) -> bool:
        if not self._ledger.update(job):
            self._discard_context(job.id)
            return False
        self.job_updated.emit(job.snapshot())
        return True

    def _finish(self, job: TranscriptionJob) -> None:
        self._discard_context(job.id)
        self._commit_terminal(job)

    def _fail(self, job: TranscriptionJob, message: str) -> None:
        job.transition_to(JobStatus.FAILED)
        job.error = message
        job.result = None
        job.stage = STAGE_ERROR
        job.capture_pending = False
        self._finish(job)
        self._record(
            AnalyticsEventType.JOB_FAILED,
            model_id=self._settings_provider().selected_model,
            reason=message,
        )

    def _finalize_cancel(self, job_id: str) -> None:
        self._discard_context(job_id)
        self._bump_generation(job_id)

        job = self._ledger.get(job_id)
        if job is None or job.status not in ACTIVE_STATUSES:
            return
        job.transition_to(JobStatus.CANCELLED)
        job.error = CANCELLED_MESSAGE
        job.result = None
        job.stage = STAGE_CANCELLED
        job.capture_pending = False
        self._commit_terminal(job)
        logger.info(f"Job {job_id} cancelled")

    def _commit_terminal(self, job: TranscriptionJob) -> None:
        if self._ledger.update(job):
            snapshot = job.snapshot()
            self.job_updated.emit(snapshot)
            self.job_finished.emit(snapshot)
        self._publish_capture_state()
        self._run_requested.emit()

    def _discard_context(self, job_id: str) -> Optional[_ExecutionContext]:
        ctx = self._contexts.pop(job_id, None)
        if ctx is None:
            return None
        ctx.cancel_event.set()
        if ctx.cancel_timer is not None:
            ctx.cancel_timer.stop()
            ctx.cancel_timer.deleteLater()
            ctx.cancel_timer = None
        return ctx

    def _bump_generation(self, job_id: str) -> int:
        self._generations[job_id] = self.generation(job_id) + 1
        return self._generations[job_id]

    def _record(self, event_type: AnalyticsEventType, **details) -> None:
        if self._analytics is not None:
            self._analytics.record(event_type, **details)

    def _publish_capture_state(self) -> None:
        if self._capture_status is None:
            return
        recording = sum(1 for ctx in self._contexts.values() if ctx.awaiting_capture)
        self._capture_status.set_job_counts(len(self._contexts), recording)
