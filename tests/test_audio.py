"""Tests for audio file helpers and the live microphone tap."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import sounddevice as sd

from src.scribeflow.core.audio.audio_file import (
    load_audio,
    read_duration,
    to_float32_mono,
    validate_audio_file,
    write_wav,
)
from src.scribeflow.core.audio.tap import LiveAudioTap
from src.scribeflow.core.jobs.errors import InputError

from helpers import write_24bit_wav


class TestAudioFile:
    def test_read_duration(self, wav_path):
        assert read_duration(wav_path) == pytest.approx(0.5)

    def test_read_duration_non_wav(self, tmp_path):
        path = tmp_path / "clip.m4a"
        path.write_bytes(b"....")
        assert read_duration(path) is None

    def test_validate_missing(self, tmp_path):
        with pytest.raises(InputError, match="not found"):
            validate_audio_file(tmp_path / "nothing.wav")

    def test_validate_empty(self, tmp_path):
        path = tmp_path / "empty.wav"
        path.write_bytes(b"")
        with pytest.raises(InputError, match="empty"):
            validate_audio_file(path)

    def test_validate_undecodable_wav(self, tmp_path):
        path = tmp_path / "broken.wav"
        path.write_bytes(b"RIFF-not-really")
        with pytest.raises(InputError, match="Could not decode"):
            validate_audio_file(path)

    def test_24bit_wav_is_accepted(self, tmp_path):
        path = write_24bit_wav(tmp_path / "studio.wav")

        validate_audio_file(path)
        assert read_duration(path) == pytest.approx(0.5)

        samples, rate = load_audio(path)
        assert rate == 16000
        assert samples.shape == (8000,)

    def test_load_audio_is_float_mono(self, wav_path):
        samples, rate = load_audio(wav_path)

        assert rate == 16000
        assert samples.dtype == np.float32
        assert samples.ndim == 1
        assert np.abs(samples).max() <= 1.0

    def test_to_float32_mono_downmixes(self):
        stereo = np.array([[16384, 0], [0, -16384]], dtype=np.int16)

        mono = to_float32_mono(stereo)

        assert mono.tolist() == pytest.approx([0.25, -0.25])

    def test_write_wav_round_trip(self, tmp_path):
        path = write_wav(tmp_path / "nested" / "out.wav", np.full(1600, 2.0, dtype=np.float32), 16000)

        samples, rate = load_audio(path)
        assert rate == 16000
        assert samples.max() == pytest.approx(32767 / 32768.0)


class TestLiveAudioTap:
    def test_start_opens_stream(self):
        with patch("src.scribeflow.core.audio.tap.sd.InputStream") as stream_class:
            tap = LiveAudioTap(sample_rate=16000)

            assert tap.start()
            assert tap.is_running

        kwargs = stream_class.call_args.kwargs
        assert kwargs["samplerate"] == 16000.0
        assert kwargs["dtype"] == "float32"
        stream_class.return_value.start.assert_called_once()

    def test_callback_forwards_mono_samples(self):
        received = []
        levels = []
        with patch("src.scribeflow.core.audio.tap.sd.InputStream"):
            tap = LiveAudioTap(channels=2, on_samples=received.append, on_audio_level=levels.append)
            tap.start()

            tap._audio_callback(np.array([[0.5, 0.1], [0.2, 0.0]], dtype=np.float32), 2, None, None)
            captured = tap.stop()

        assert received[0].tolist() == pytest.approx([0.3, 0.1])
        assert captured.tolist() == pytest.approx([0.3, 0.1])
        assert 0.0 < levels[0] <= 1.0

    def test_device_error(self):
        with patch(
            "src.scribeflow.core.audio.tap.sd.InputStream",
            side_effect=sd.PortAudioError("no default input"),
        ):
            tap = LiveAudioTap()

            assert tap.start() is False

        assert "Audio device error" in tap.last_error
        assert not tap.is_running

    def test_stop_when_not_running(self):
        assert LiveAudioTap().stop() is None

    def test_list_devices_filters_inputs(self):
        devices = [
            {"name": "Speakers", "max_input_channels": 0, "default_samplerate": 48000.0},
            {"name": "USB Mic", "max_input_channels": 1, "default_samplerate": 44100.0},
        ]
        with patch("src.scribeflow.core.audio.tap.sd.query_devices", return_value=devices):
            found = LiveAudioTap.list_devices()

        assert [(d.name, d.index) for d in found] == [("USB Mic", 1)]

    def test_named_device_is_resolved(self):
        devices = [{"name": "USB Mic", "max_input_channels": 1, "default_samplerate": 44100.0}]
        with patch("src.scribeflow.core.audio.tap.sd.query_devices", return_value=devices), patch(
            "src.scribeflow.core.audio.tap.sd.InputStream"
        ) as stream_class:
            LiveAudioTap(device="USB Mic").start()

        assert stream_class.call_args.kwargs["device"] == 0
