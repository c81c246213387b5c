"""
Live (continuous) transcription session.

The controller moves ``idle -> streaming -> stopped -> idle``. While
streaming it keeps two buffers: ``final_text`` only ever grows, and
``partial_text`` holds the current hypothesis and is replaced on every
update. The streaming backend can only be changed while idle.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal, Slot

from ...utils.logger import get_logger
from ..asr.text import sanitize_transcript_text
from ..audio.audio_file import write_wav
from ..jobs.errors import BackendError, LiveSessionStateError
from ..jobs.selector import LiveBackend, SelectorConfig, select_live_backends
from ..settings.config import LIVE_SAMPLE_RATE, LIVE_SAVE_DEBOUNCE_SECONDS
from .engines import StreamingUpdate, create_streaming_engine
from .worker import StreamingWorkerThread

logger = get_logger(__name__)

WORKER_STOP_TIMEOUT_MS = 5000


class LiveState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    STOPPED = "stopped"


@dataclass(frozen=True)
class LiveSaveResult:
    text_path: Path
    audio_path: Optional[Path]
    job_id: Optional[str]
    text: str


def _default_tap_factory(on_samples):
    from ..audio.tap import LiveAudioTap

    return LiveAudioTap(sample_rate=LIVE_SAMPLE_RATE, on_samples=on_samples)


class LiveSessionController(QObject):
    state_changed = Signal(str)
    text_changed = Signal(str, str)
    error = Signal(str)
    saved = Signal(object)

    def __init__(
        self,
        catalog=None,
        settings_provider: Optional[Callable] = None,
        capture_status=None,
        orchestrator=None,
        engine_factory: Optional[Callable] = None,
        tap_factory: Optional[Callable] = None,
        recordings_dir: Optional[Path] = None,
        clock: Callable[[], float] = time.monotonic,
        save_debounce: float = LIVE_SAVE_DEBOUNCE_SECONDS,
        parent=None,
    ):
        super().__init__(parent)

        if settings_provider is None:
            from ..settings import get_settings

            settings_provider = get_settings
        if catalog is None:
            from ..asr.catalog import ModelCatalog

            catalog = ModelCatalog()
        if engine_factory is None:

            def engine_factory(backend):
                return create_streaming_engine(backend, self._catalog)

        self._catalog = catalog
        self._settings_provider = settings_provider
        self._capture_status = capture_status
        self._orchestrator = orchestrator
        self._engine_factory = engine_factory
        self._tap_factory = tap_factory or _default_tap_factory
        self._recordings_dir = Path(recordings_dir) if recordings_dir else None
        self._clock = clock
        self._save_debounce = save_debounce

        self._state = LiveState.IDLE
        self._backend: Optional[LiveBackend] = None
        self._active_backend: Optional[LiveBackend] = None
        self._final_text = ""
        self._partial_text = ""
        self._error_message: Optional[str] = None
        self._worker: Optional[StreamingWorkerThread] = None
        self._tap = None
        self._captured_audio = None
        self._last_save: Optional[float] = None

        if capture_status is not None:
            capture_status.stop_live_requested.connect(self.stop)

    @property
    def state(self) -> LiveState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state == LiveState.STREAMING

    @property
    def backend(self) -> Optional[LiveBackend]:
        return self._backend

    @property
    def active_backend(self) -> Optional[LiveBackend]:
        return self._active_backend

    @property
    def final_text(self) -> str:
        return self._final_text

    @property
    def partial_text(self) -> str:
        return self._partial_text

    @property
    def combined_text(self) -> str:
        return " ".join(t for t in (self._final_text, self._partial_text) if t)

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    def set_backend(self, backend) -> None:
        if self._state != LiveState.IDLE:
            raise LiveSessionStateError(
                f"Cannot switch live backend while {self._state.value}"
            )
        self._backend = LiveBackend(backend) if backend is not None else None
        logger.info(f"Live backend set to {self._backend.value if self._backend else 'auto'}")

    def available_backends(self):
        config = SelectorConfig.from_settings(self._settings_provider())
        return select_live_backends(config, self._catalog)

    def start(self) -> bool:
        if self._state != LiveState.IDLE:
            raise LiveSessionStateError(f"Cannot start a live session while {self._state.value}")

        self._error_message = None
        backend = self._resolve_backend()
        if backend is None:
            return False

        try:
            engine = self._engine_factory(backend)
        except BackendError as e:
            self._error_message = str(e)
            logger.error(f"Could not create live engine: {e}")
            return False

        worker = StreamingWorkerThread(engine, LIVE_SAMPLE_RATE)
        worker.updates_available.connect(self._drain_updates)
        worker.error.connect(self._on_worker_error)
        tap = self._tap_factory(worker.feed)

        worker.start()
        if not tap.start():
            self._error_message = tap.last_error or "Could not start audio capture"
            worker.request_stop()
            worker.wait(WORKER_STOP_TIMEOUT_MS)
            worker.deleteLater()
            return False

        self._worker = worker
        self._tap = tap
        self._active_backend = backend
        self._final_text = ""
        self._partial_text = ""
        self._captured_audio = None
        self.text_changed.emit("", "")

        if self._capture_status is not None:
            self._capture_status.set_live_streaming(True)
        self._set_state(LiveState.STREAMING)
        logger.info(f"Live session started with {backend.display_name}")
        return True

    @Slot()
    def stop(self) -> None:
        if self._state != LiveState.STREAMING:
            return

        self._set_state(LiveState.STOPPED)

        self._captured_audio = self._tap.stop()
        self._tap = None

        worker = self._worker
        worker.request_stop()
        if not worker.wait(WORKER_STOP_TIMEOUT_MS):
            logger.warning("Streaming worker did not finish in time")
        self._drain_updates()
        self._worker = None
        worker.deleteLater()

        if self._partial_text.strip():
            self._final_text = self._join(self._final_text, self._partial_text)
        self._partial_text = ""
        self.text_changed.emit(self._final_text, self._partial_text)

        if self._capture_status is not None:
            self._capture_status.set_live_streaming(False)
        self._set_state(LiveState.IDLE)
        logger.info(f"Live session stopped ({len(self._final_text)} chars)")

    def clear(self) -> None:
        if self._state != LiveState.IDLE:
            raise LiveSessionStateError("Cannot clear a running live session")
        self._final_text = ""
        self._partial_text = ""
        self._captured_audio = None
        self.text_changed.emit("", "")

    def can_save_now(self) -> bool:
        return self._last_save is None or (
            self._clock() - self._last_save >= self._save_debounce
        )

    def save(self, force: bool = False) -> Optional[LiveSaveResult]:
        if not force and not self.can_save_now():
            logger.debug("Live save skipped, too soon after the previous one")
            return None

        text = self.combined_text.strip()
        audio = self._tap.captured_audio() if self._tap is not None else self._captured_audio
        if not text and audio is None:
            return None

        self._last_save = self._clock()
        directory = self._recordings_dir or self._default_recordings_dir()
        directory.mkdir(parents=True, exist_ok=True)
        base = self._unique_base(directory)

        text_path = directory / f"{base}.txt"
        text_path.write_text(text, encoding="utf-8")

        audio_path = None
        if audio is not None:
            audio_path = write_wav(directory / f"{base}.wav", audio, LIVE_SAMPLE_RATE)

        job_id = None
        if (
            self._orchestrator is not None
            and audio_path is not None
            and text
            and self._state == LiveState.IDLE
        ):
            job_id = self._orchestrator.import_live_transcript(
                audio_path, audio_path.name, text, len(audio) / float(LIVE_SAMPLE_RATE)
            )

        result = LiveSaveResult(text_path=text_path, audio_path=audio_path, job_id=job_id, text=text)
        logger.info(f"Saved live transcript to {text_path}")
        self.saved.emit(result)
        return result

    def _resolve_backend(self) -> Optional[LiveBackend]:
        candidates = self.available_backends()
        if self._backend is not None:
            if self._backend in candidates:
                return self._backend
            self._error_message = (
                f"{self._backend.display_name} is not available: "
                f"model {self._backend.required_model_id} is not installed"
            )
            return None
        if not candidates:
            self._error_message = "No streaming-capable model is installed"
            return None
        return candidates[0]

    @Slot()
    def _drain_updates(self) -> None:
        if self._worker is None:
            return
        updates = self._worker.take_updates()
        if not updates:
            return
        for update in updates:
            self._apply(update)
        self.text_changed.emit(self._final_text, self._partial_text)

    def _apply(self, update: StreamingUpdate) -> None:
        preserve = self._settings_provider().show_timestamps
        text = sanitize_transcript_text(update.text, preserve)
        if update.is_final:
            if text:
                self._final_text = self._join(self._final_text, text)
            self._partial_text = ""
        else:
            self._partial_text = text

    @Slot(str)
    def _on_worker_error(self, message: str) -> None:
        if self.sender() is not self._worker:
            return
        self._error_message = message
        self.error.emit(message)
        self.stop()

    def _set_state(self, state: LiveState) -> None:
        self._state = state
        self.state_changed.emit(state.value)

    @staticmethod
    def _join(first: str, second: str) -> str:
        return f"{first} {second}".strip() if first else second.strip()

    @staticmethod
    def _default_recordings_dir() -> Path:
        from ..settings import get_recordings_dir

        return get_recordings_dir()

    @staticmethod
    def _unique_base(directory: Path) -> str:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        base = f"live-{stamp}"
        suffix = 1
        while (directory / f"{base}.txt").exists():
            suffix += 1
            base = f"live-{stamp}-{suffix}"
        return base
