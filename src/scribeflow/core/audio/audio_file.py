import os
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import scipy.io.wavfile as wav

from ..jobs.errors import InputError

WAV_SUFFIXES = (".wav", ".wave")


def is_wav(path) -> bool:
    return str(path).lower().endswith(WAV_SUFFIXES)


def validate_audio_file(path) -> None:
    """Raise InputError when ``path`` cannot be used as transcription input."""
    if not path or not os.path.isfile(path):
        raise InputError(f"Audio file not found: {path}")
    if os.path.getsize(path) == 0:
        raise InputError(f"Audio file is empty: {path}")
    if is_wav(path):
        read_duration(path)


def read_duration(path) -> Optional[float]:
    """Length in seconds for WAV input, None for formats we cannot inspect."""
    if not is_wav(path):
        return None
    try:
        sample_rate, data = _read(path, mmap=True)
    except InputError:
        # 24-bit PCM cannot be memory-mapped
        sample_rate, data = _read(path)
    if sample_rate <= 0:
        raise InputError(f"Invalid sample rate in {path}")
    return data.shape[0] / float(sample_rate)


def load_audio(path) -> Tuple[np.ndarray, int]:
    """Read a WAV file as mono float32 in [-1, 1]."""
    sample_rate, data = _read(path)
    return to_float32_mono(data), int(sample_rate)


def to_float32_mono(data: np.ndarray) -> np.ndarray:
    if data.dtype == np.int16:
        audio = data.astype(np.float32) / 32768.0
    elif data.dtype == np.int32:
        audio = data.astype(np.float32) / 2147483648.0
    elif data.dtype == np.uint8:
        audio = (data.astype(np.float32) - 128.0) / 128.0
    else:
        audio = data.astype(np.float32)

    if audio.ndim > 1:
        audio = audio.mean(axis=1)
    return audio


def write_wav(path, samples: np.ndarray, sample_rate: int) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    clipped = np.clip(to_float32_mono(samples), -1.0, 1.0)
    wav.write(str(path), sample_rate, (clipped * 32767).astype(np.int16))
    return path


def _read(path, mmap: bool = False):
    if not os.path.isfile(path):
        raise InputError(f"Audio file not found: {path}")
    try:
        return wav.read(str(path), mmap=mmap)
    except (ValueError, OSError, EOFError) as e:
        raise InputError(f"Could not decode audio {path}: {e}") from e
