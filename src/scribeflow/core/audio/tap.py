from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np
import sounddevice as sd

from ...utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AudioDevice:
    name: str
    index: int
    channels: int
    default_sample_rate: float


class LiveAudioTap:
    """
    Microphone tap feeding a streaming consumer.

    Every captured block is handed to ``on_samples`` as mono float32 from the
    PortAudio thread, and kept so the session can be saved afterwards.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[str] = None,
        on_samples: Optional[Callable[[np.ndarray], None]] = None,
        on_audio_level: Optional[Callable[[float], None]] = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self.on_samples = on_samples
        self.on_audio_level = on_audio_level

        self._stream: Optional[sd.InputStream] = None
        self._audio_buffer: List[np.ndarray] = []
        self._is_running = False
        self._last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def start(self) -> bool:
        if self._is_running:
            return True

        self._audio_buffer = []
        self._last_error = None

        try:
            self._stream = sd.InputStream(
                samplerate=float(self.sample_rate),
                channels=self.channels,
                dtype="float32",
                device=self._get_device_index(),
                callback=self._audio_callback,
            )
            self._stream.start()
            self._is_running = True
            logger.info(f"Audio tap started at {self.sample_rate} Hz")
            return True

        except sd.PortAudioError as e:
            self._last_error = f"Audio device error: {e}"
        except Exception as e:
            self._last_error = f"Failed to start audio capture: {e}"

        logger.error(self._last_error)
        self._stream = None
        self._is_running = False
        return False

    def stop(self) -> Optional[np.ndarray]:
        if not self._is_running:
            return None

        self._is_running = False

        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None

        logger.info("Audio tap released")
        return self.captured_audio()

    def captured_audio(self) -> Optional[np.ndarray]:
        if not self._audio_buffer:
            return None
        return np.concatenate(self._audio_buffer, axis=0)

    def _audio_callback(self, indata: np.ndarray, frames: int, time, status) -> None:
        if not self._is_running:
            return

        mono = indata.mean(axis=1) if indata.ndim > 1 else indata.flatten()
        mono = mono.astype(np.float32, copy=True)
        self._audio_buffer.append(mono)

        if self.on_samples is not None:
            self.on_samples(mono)

        if self.on_audio_level is not None:
            level = float(np.abs(mono).mean()) if mono.size else 0.0
            self.on_audio_level(min(1.0, level * 10))

    def _get_device_index(self) -> Optional[int]:
        if self.device is None:
            return None
        matches = [d.index for d in self.list_devices() if d.name == self.device]
        if not matches:
            logger.warning(f"Input device {self.device!r} not found, using the default")
            return None
        return matches[0]

    @staticmethod
    def list_devices() -> List[AudioDevice]:
        return [
            AudioDevice(
                name=info["name"],
                index=index,
                channels=info["max_input_channels"],
                default_sample_rate=info["default_samplerate"],
            )
            for index, info in enumerate(sd.query_devices())
            if info["max_input_channels"] > 0
        ]
