"""Tests for Settings persistence."""

import json
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.scribeflow.core.settings import (
    Settings,
    get_config_dir,
    get_analytics_file,
    get_data_dir,
    get_jobs_file,
)

CONFIG_DIR = "src.scribeflow.core.settings.settings.get_config_dir"


class TestSettings:
    def test_default_values(self):
        settings = Settings()
        assert settings.selected_model == "sherpa-onnx-whisper-base.en"
        assert settings.offline_mode is False
        assert settings.enable_cloud_transcription is False
        assert settings.enable_cloud_fallback is True
        assert settings.cloud_provider == "openai"
        assert settings.live_backend == "online"
        assert settings.max_concurrent_jobs == 1

    def test_save_load_cycle(self, tmp_path):
        with patch(CONFIG_DIR, return_value=tmp_path):
            original = Settings(
                selected_model="sherpa-onnx-whisper-small.en",
                enable_cloud_transcription=True,
                cloud_provider="groq",
                cloud_api_keys={"groq": "gsk"},
                language="fr",
                live_backend="whisper_tiny",
            )
            original.save()

            assert (tmp_path / "settings.json").exists()
            loaded = Settings.load()

        assert loaded == original

    def test_load_nonexistent_returns_defaults(self, tmp_path):
        with patch(CONFIG_DIR, return_value=tmp_path):
            assert Settings.load() == Settings()

    def test_load_corrupted_json_returns_defaults(self, tmp_path):
        (tmp_path / "settings.json").write_text("{ invalid json }")

        with patch(CONFIG_DIR, return_value=tmp_path):
            assert Settings.load() == Settings()

    def test_invalid_field_resets_only_that_field(self, tmp_path):
        (tmp_path / "settings.json").write_text(
            json.dumps(
                {
                    "selected_model": "",
                    "cloud_provider": "gemini",
                    "temperature": 3,
                    "offline_mode": True,
                    "unknown_key": 1,
                }
            )
        )

        with patch(CONFIG_DIR, return_value=tmp_path):
            settings = Settings.load()

        assert settings.selected_model == "sherpa-onnx-whisper-base.en"
        assert settings.cloud_provider == "openai"
        assert settings.temperature == 0.0
        assert settings.offline_mode is True

    def test_validation_logs_warnings(self, tmp_path, propagate_logs, caplog):
        (tmp_path / "settings.json").write_text(json.dumps({"live_backend": "tape"}))

        with patch(CONFIG_DIR, return_value=tmp_path):
            Settings.load()

        assert "Invalid live_backend" in caplog.text

    @pytest.mark.parametrize(
        "field,value",
        [
            ("cloud_provider", "azure"),
            ("live_backend", "vosk"),
            ("preferred_task", "summarize"),
            ("max_concurrent_jobs", 0),
        ],
    )
    def test_constructor_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})

    def test_reset_to_defaults(self):
        settings = Settings(offline_mode=True, cloud_api_keys={"openai": "sk"})
        settings.reset_to_defaults()
        assert settings == Settings()

    def test_api_keys_are_per_provider(self):
        settings = Settings(cloud_provider="groq")
        settings.set_api_key("openai", "sk-1")
        settings.set_api_key("groq", "  gsk-2 ")

        assert settings.get_api_key() == "gsk-2"
        assert settings.get_api_key("openai") == "sk-1"
        assert Settings().get_api_key() == ""


class TestDirectories:
    def test_config_and_data_dirs_exist(self):
        assert get_config_dir().is_dir()
        assert get_data_dir().is_dir()

    def test_jobs_file_lives_in_data_dir(self):
        assert get_jobs_file() == get_data_dir() / "jobs.json"

    def test_analytics_file_lives_in_data_dir(self):
        assert get_analytics_file() == get_data_dir() / "analytics.json"
