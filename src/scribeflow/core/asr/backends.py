import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Optional, Tuple

from ...utils.logger import get_logger
from ..audio.audio_file import is_wav, load_audio
from ..jobs.errors import BackendError, BackendUnavailableError, CancellationError
from ..jobs.models import TranscriptionResult, TranscriptionSegment
from ..jobs.selector import Strategy, StrategyKind
from .file_utils import find_file_by_suffix, find_file_exact
from .model_registry import get_model_type
from .text import sanitize_transcript_text

if TYPE_CHECKING:
    from ..settings import Settings
    from .catalog import ModelCatalog

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]
CancelCheck = Callable[[], bool]

MAX_CHUNK_SECONDS = 30.0


@dataclass(frozen=True)
class TranscriptionOptions:
    language: Optional[str] = None
    task: str = "transcribe"
    temperature: float = 0.0
    initial_prompt: Optional[str] = None
    preserve_timestamps: bool = False

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TranscriptionOptions":
        task = "translate" if settings.translate else settings.preferred_task
        return cls(
            language=None if settings.auto_language_detect else settings.language,
            task=task,
            temperature=settings.temperature,
            initial_prompt=settings.initial_prompt or None,
            preserve_timestamps=settings.show_timestamps,
        )


class TranscriptionBackend(ABC):
    """
    One way of turning an audio file into a TranscriptionResult.

    ``execute`` runs on a worker thread. It reports progress in [0, 1]
    through ``on_progress``, polls ``is_cancelled`` between units of work and
    either returns a result or raises InputError, BackendError or
    CancellationError.
    """

    name = "backend"

    @abstractmethod
    def execute(
        self,
        audio_path: str,
        options: TranscriptionOptions,
        on_progress: ProgressCallback,
        is_cancelled: CancelCheck,
    ) -> TranscriptionResult:
        ...


_recognizer_cache: Dict[Tuple[str, str, str], object] = {}
_recognizer_lock = threading.Lock()


def load_offline_recognizer(model_path: str, model_id: str, language: str = "", task: str = "transcribe"):
    """Build (or reuse) a sherpa-onnx OfflineRecognizer for an installed model."""
    key = (model_path, language, task)
    with _recognizer_lock:
        if key in _recognizer_cache:
            return _recognizer_cache[key]

        import sherpa_onnx

        model_type = get_model_type(model_id)
        logger.info(f"Loading model '{model_id}' as type '{model_type}'")

        if model_type == "whisper":
            encoder = find_file_by_suffix(model_path, "-encoder.int8.onnx", "-encoder.onnx")
            decoder = find_file_by_suffix(model_path, "-decoder.int8.onnx", "-decoder.onnx")
            tokens = find_file_by_suffix(model_path, "-tokens.txt", "tokens.txt")
            if not encoder or not decoder or not tokens:
                raise BackendUnavailableError(f"Missing Whisper model files in {model_path}")
            recognizer = sherpa_onnx.OfflineRecognizer.from_whisper(
                encoder=encoder,
                decoder=decoder,
                tokens=tokens,
                language=language,
                task=task,
                num_threads=4,
                provider="cpu",
                decoding_method="greedy_search",
            )
        elif model_type == "transducer":
            encoder = find_file_exact(model_path, ["encoder.int8.onnx", "encoder.onnx", "encoder.fp16.onnx"])
            decoder = find_file_exact(model_path, ["decoder.int8.onnx", "decoder.onnx", "decoder.fp16.onnx"])
            joiner = find_file_exact(model_path, ["joiner.int8.onnx", "joiner.onnx", "joiner.fp16.onnx"])
            tokens = find_file_exact(model_path, ["tokens.txt"])
            if not all([encoder, decoder, joiner, tokens]):
                raise BackendUnavailableError(f"Missing Transducer model files in {model_path}")
            recognizer = sherpa_onnx.OfflineRecognizer.from_transducer(
                encoder=encoder,
                decoder=decoder,
                joiner=joiner,
                tokens=tokens,
                num_threads=4,
                provider="cpu",
                decoding_method="greedy_search",
                model_type="nemo_transducer",
            )
        else:
            raise BackendUnavailableError(f"Model '{model_id}' cannot transcribe files offline")

        _recognizer_cache[key] = recognizer
        return recognizer


def clear_recognizer_cache() -> None:
    with _recognizer_lock:
        _recognizer_cache.clear()


class LocalModelBackend(TranscriptionBackend):
    """Chunked transcription with an installed sherpa-onnx model."""

    def __init__(self, model_id: str, catalog: "ModelCatalog", name: str = "local"):
        self.model_id = model_id
        self.name = name
        self._catalog = catalog

    def execute(self, audio_path, options, on_progress, is_cancelled):
        if not self._catalog.is_available(self.model_id):
            raise BackendUnavailableError(f"Model {self.model_id} is not installed")
        if not is_wav(audio_path):
            raise BackendError("On-device transcription needs WAV audio")

        samples, sample_rate = load_audio(audio_path)
        duration = len(samples) / float(sample_rate) if sample_rate else 0.0

        try:
            recognizer = load_offline_recognizer(
                str(self._catalog.model_path(self.model_id)),
                self.model_id,
                language=options.language or "",
                task=options.task,
            )
        except BackendError:
            raise
        except Exception as e:
            raise BackendUnavailableError(f"Failed to load model {self.model_id}: {e}") from e

        chunk_size = max(1, int(MAX_CHUNK_SECONDS * sample_rate))
        total_chunks = max(1, math.ceil(len(samples) / chunk_size))
        segments = []
        language = options.language

        logger.info(
            f"[{self.name}] Transcribing {duration:.1f}s of audio in {total_chunks} chunk(s) with {self.model_id}"
        )

        for index in range(total_chunks):
            if is_cancelled():
                raise CancellationError("Cancelled during local transcription")

            start = index * chunk_size
            chunk = samples[start : start + chunk_size]
            try:
                stream = recognizer.create_stream()
                stream.accept_waveform(sample_rate, chunk)
                recognizer.decode_stream(stream)
                result = stream.result
            except Exception as e:
                raise BackendError(f"Local model failed on chunk {index + 1}: {e}") from e

            language = language or getattr(result, "lang", None) or None
            text = sanitize_transcript_text(result.text, options.preserve_timestamps)
            if text:
                segments.append(
                    TranscriptionSegment(
                        start=start / sample_rate,
                        end=min((start + len(chunk)) / sample_rate, duration),
                        text=text,
                    )
                )
            on_progress((index + 1) / total_chunks)

        full_text = " ".join(s.text for s in segments).strip()
        if not full_text:
            raise BackendError("Transcription returned empty result")

        return TranscriptionResult(
            text=full_text, segments=segments, language=language, duration=duration
        )


def create_backend(
    strategy: Strategy, settings: "Settings", catalog: "ModelCatalog"
) -> TranscriptionBackend:
    if strategy.kind == StrategyKind.CLOUD:
        from .cloud import CloudBackend

        return CloudBackend(
            provider=strategy.provider, api_key=settings.get_api_key(strategy.provider)
        )
    return LocalModelBackend(strategy.model_id, catalog, name=strategy.stage)
