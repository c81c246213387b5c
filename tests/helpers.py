"""Fakes and small builders shared by the engine tests."""

import os
import threading
import wave

import numpy as np
import scipy.io.wavfile as wav

from src.scribeflow.core.jobs.errors import CancellationError
from src.scribeflow.core.jobs.models import TranscriptionResult, TranscriptionSegment


class FakeCatalog:
    def __init__(self, available=(), checksums=None, expected=None, root="/models"):
        self.available = set(available)
        self.checksums = dict(checksums or {})
        self.expected = dict(expected or {})
        self.root = root

    def is_available(self, model_id):
        return model_id in self.available

    def checksum(self, model_id):
        return self.checksums.get(model_id)

    def expected_checksum(self, model_id):
        return self.expected.get(model_id)

    def model_path(self, model_id):
        return os.path.join(self.root, model_id)


class FakeConnectivity:
    def __init__(self, online=True):
        self.online = online
        self.calls = 0

    def has_active_connection(self):
        self.calls += 1
        return self.online


class ScriptedBackend:
    """
    Backend whose outcome is fixed up front.

    ``outcome`` is a TranscriptionResult to return or an exception to raise.
    With ``block`` set the backend waits until cancelled (or ``release`` is
    set), and ``ignore_cancel`` makes it keep waiting past a cancel request.
    ``late_progress`` is reported after the wait ends.
    """

    def __init__(
        self,
        name,
        outcome=None,
        progress=(0.25, 0.5, 0.75),
        block=False,
        ignore_cancel=False,
        late_progress=(),
    ):
        self.name = name
        self.outcome = outcome if outcome is not None else make_result(f"text from {name}")
        self.progress = progress
        self.block = block
        self.ignore_cancel = ignore_cancel
        self.late_progress = late_progress
        self.release = threading.Event()
        self.started = threading.Event()
        self.done = threading.Event()
        self.calls = 0

    def execute(self, audio_path, options, on_progress, is_cancelled):
        self.calls += 1
        self.started.set()
        try:
            for value in self.progress:
                on_progress(value)
            if self.block:
                while not self.release.wait(0.01):
                    if is_cancelled() and not self.ignore_cancel:
                        raise CancellationError("stopped")
            for value in self.late_progress:
                on_progress(value)
            if isinstance(self.outcome, BaseException):
                raise self.outcome
            return self.outcome
        finally:
            self.done.set()


def make_result(text="hello world", duration=1.0):
    return TranscriptionResult(
        text=text,
        segments=[TranscriptionSegment(start=0.0, end=duration, text=text)],
        language="en",
        duration=duration,
    )


def write_test_wav(path, seconds=0.5, sample_rate=16000):
    t = np.linspace(0, seconds, int(sample_rate * seconds), endpoint=False)
    samples = (np.sin(2 * np.pi * 440 * t) * 8000).astype(np.int16)
    wav.write(str(path), sample_rate, samples)
    return path


def write_24bit_wav(path, seconds=0.5, sample_rate=16000):
    """Mono 24-bit PCM, a container scipy can read but not memory-map."""
    t = np.linspace(0, seconds, int(sample_rate * seconds), endpoint=False)
    samples = (np.sin(2 * np.pi * 440 * t) * 2 ** 22).astype("<i4")
    frames = samples.view(np.uint8).reshape(-1, 4)[:, :3].tobytes()
    with wave.open(str(path), "wb") as out:
        out.setnchannels(1)
        out.setsampwidth(3)
        out.setframerate(sample_rate)
        out.writeframes(frames)
    return path
