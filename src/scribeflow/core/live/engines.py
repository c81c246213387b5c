"""
Streaming recognizers used by live sessions.

An engine turns a continuous stream of samples into ``StreamingUpdate``
values: partial hypotheses that replace each other, and final text that is
committed once. Engines are driven from a single worker thread and are not
thread-safe.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

import numpy as np

from ...utils.logger import get_logger
from ..asr.backends import load_offline_recognizer
from ..jobs.errors import BackendUnavailableError
from ..jobs.selector import LiveBackend
from ..settings.config import LIVE_HOP_SECONDS, LIVE_SAMPLE_RATE, LIVE_WINDOW_SECONDS

if TYPE_CHECKING:
    from ..asr.catalog import ModelCatalog

logger = get_logger(__name__)

MIN_TAIL_SECONDS = 0.2


@dataclass(frozen=True)
class StreamingUpdate:
    text: str
    is_final: bool


class StreamingEngine(ABC):
    sample_rate = LIVE_SAMPLE_RATE

    def prepare(self) -> None:
        """Load model resources. Called on the worker thread before any audio."""

    @abstractmethod
    def accept_waveform(self, samples: np.ndarray, sample_rate: int) -> List[StreamingUpdate]:
        ...

    @abstractmethod
    def finish(self) -> List[StreamingUpdate]:
        ...

    def release(self) -> None:
        pass


def _find_onnx(model_path: str, stem: str) -> Optional[str]:
    try:
        names = sorted(os.listdir(model_path))
    except OSError:
        return None
    matches = [n for n in names if n.startswith(stem) and n.endswith(".onnx")]
    for name in matches:
        if name.endswith(".int8.onnx"):
            return os.path.join(model_path, name)
    return os.path.join(model_path, matches[0]) if matches else None


class OnlineStreamingEngine(StreamingEngine):
    """sherpa-onnx streaming transducer with endpoint detection."""

    TAIL_PADDING_SECONDS = 0.5

    def __init__(self, model_path: str):
        self._model_path = model_path
        self._recognizer = None
        self._stream = None
        self._last_partial = ""

    def prepare(self) -> None:
        import sherpa_onnx

        encoder = _find_onnx(self._model_path, "encoder")
        decoder = _find_onnx(self._model_path, "decoder")
        joiner = _find_onnx(self._model_path, "joiner")
        tokens = os.path.join(self._model_path, "tokens.txt")
        if not all([encoder, decoder, joiner]) or not os.path.exists(tokens):
            raise BackendUnavailableError(
                f"Missing streaming model files in {self._model_path}"
            )

        logger.info(f"Loading streaming transducer from {self._model_path}")
        self._recognizer = sherpa_onnx.OnlineRecognizer.from_transducer(
            tokens=tokens,
            encoder=encoder,
            decoder=decoder,
            joiner=joiner,
            num_threads=2,
            sample_rate=self.sample_rate,
            feature_dim=80,
            enable_endpoint_detection=True,
            rule1_min_trailing_silence=2.4,
            rule2_min_trailing_silence=1.2,
            rule3_min_utterance_length=20,
            decoding_method="greedy_search",
            provider="cpu",
        )
        self._stream = self._recognizer.create_stream()

    def accept_waveform(self, samples, sample_rate):
        self._stream.accept_waveform(sample_rate, samples)
        return self._decode_available()

    def _decode_available(self) -> List[StreamingUpdate]:
        while self._recognizer.is_ready(self._stream):
            self._recognizer.decode_stream(self._stream)

        text = self._recognizer.get_result(self._stream).strip()
        updates = []
        if self._recognizer.is_endpoint(self._stream):
            if text:
                updates.append(StreamingUpdate(text, is_final=True))
            self._recognizer.reset(self._stream)
            self._last_partial = ""
        elif text != self._last_partial:
            updates.append(StreamingUpdate(text, is_final=False))
            self._last_partial = text
        return updates

    def finish(self):
        if self._stream is None:
            return []
        padding = np.zeros(int(self.TAIL_PADDING_SECONDS * self.sample_rate), dtype=np.float32)
        self._stream.accept_waveform(self.sample_rate, padding)
        self._stream.input_finished()
        while self._recognizer.is_ready(self._stream):
            self._recognizer.decode_stream(self._stream)
        text = self._recognizer.get_result(self._stream).strip()
        self._last_partial = ""
        return [StreamingUpdate(text, is_final=True)] if text else []

    def release(self) -> None:
        self._stream = None
        self._recognizer = None


class WindowedStreamingEngine(StreamingEngine):
    """
    Offline model run over a rolling buffer.

    Every ``hop_seconds`` of new audio the whole buffer is decoded and reported
    as a partial. Once the buffer spans ``window_seconds`` it is decoded one
    last time, committed as final and dropped.
    """

    def __init__(
        self,
        model_path: str,
        model_id: str,
        window_seconds: float = LIVE_WINDOW_SECONDS,
        hop_seconds: float = LIVE_HOP_SECONDS,
    ):
        self._model_path = model_path
        self._model_id = model_id
        self._window_seconds = window_seconds
        self._hop_seconds = hop_seconds
        self._recognizer = None
        self._buffer: List[np.ndarray] = []
        self._buffered = 0
        self._since_decode = 0
        self._rate = self.sample_rate

    def prepare(self) -> None:
        self._recognizer = load_offline_recognizer(self._model_path, self._model_id)

    def _decode(self, samples: np.ndarray, sample_rate: int) -> str:
        stream = self._recognizer.create_stream()
        stream.accept_waveform(sample_rate, samples)
        self._recognizer.decode_stream(stream)
        return stream.result.text.strip()

    def accept_waveform(self, samples, sample_rate):
        self._rate = sample_rate
        self._buffer.append(np.asarray(samples, dtype=np.float32))
        self._buffered += len(samples)
        self._since_decode += len(samples)

        if self._buffered >= self._window_seconds * sample_rate:
            return self._commit_window()

        if self._since_decode >= self._hop_seconds * sample_rate:
            self._since_decode = 0
            text = self._decode(np.concatenate(self._buffer), sample_rate)
            return [StreamingUpdate(text, is_final=False)]
        return []

    def _commit_window(self) -> List[StreamingUpdate]:
        audio = np.concatenate(self._buffer)
        self._buffer = []
        self._buffered = 0
        self._since_decode = 0
        text = self._decode(audio, self._rate)
        return [StreamingUpdate(text, is_final=True)] if text else [StreamingUpdate("", is_final=False)]

    def finish(self):
        if self._buffered < MIN_TAIL_SECONDS * self._rate:
            self._buffer = []
            self._buffered = 0
            return []
        return self._commit_window()

    def release(self) -> None:
        self._buffer = []
        self._recognizer = None


def create_streaming_engine(backend: LiveBackend, catalog: "ModelCatalog") -> StreamingEngine:
    model_id = backend.required_model_id
    if not catalog.is_available(model_id):
        raise BackendUnavailableError(
            f"{backend.display_name} needs model {model_id}, which is not installed"
        )
    model_path = str(catalog.model_path(model_id))
    if backend.is_windowed:
        return WindowedStreamingEngine(model_path, model_id)
    return OnlineStreamingEngine(model_path)
