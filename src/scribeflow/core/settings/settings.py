"""
Settings management with JSON persistence.

Handles loading, saving, and validating user configuration.
Uses platformdirs for cross-platform directory resolution.
"""

import json
from pathlib import Path
from typing import Dict, Optional

from platformdirs import user_config_path, user_data_path
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...utils.logger import get_logger
from .config import DEFAULT_MAX_CONCURRENT_JOBS

logger = get_logger(__name__)

APP_NAME = "scribeflow"

CLOUD_PROVIDERS = ("openai", "groq")
LIVE_BACKENDS = ("online", "whisper_tiny", "whisper_base")
TASKS = ("transcribe", "translate")

DEFAULT_MODEL_ID = "sherpa-onnx-whisper-base.en"


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, ensure_exists=True)


def get_data_dir() -> Path:
    return user_data_path(APP_NAME, ensure_exists=True)


def get_recordings_dir() -> Path:
    path = get_data_dir() / "recordings"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_analytics_file() -> Path:
    return get_data_dir() / "analytics.json"


def get_jobs_file() -> Path:
    return get_data_dir() / "jobs.json"


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=False)

    selected_model: str = DEFAULT_MODEL_ID
    offline_mode: bool = False

    enable_cloud_transcription: bool = False
    cloud_provider: str = "openai"
    cloud_api_keys: Dict[str, str] = Field(default_factory=dict)
    enable_cloud_fallback: bool = True

    preferred_task: str = "transcribe"
    auto_language_detect: bool = True
    language: Optional[str] = None
    translate: bool = False
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    initial_prompt: Optional[str] = None
    show_timestamps: bool = False

    live_backend: str = "online"
    max_concurrent_jobs: int = Field(default=DEFAULT_MAX_CONCURRENT_JOBS, ge=1, le=8)
    connectivity_url: str = "https://api.openai.com"

    @field_validator("selected_model")
    @classmethod
    def selected_model_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("selected_model must be a non-empty string")
        return v

    @field_validator("cloud_provider")
    @classmethod
    def cloud_provider_known(cls, v):
        if v not in CLOUD_PROVIDERS:
            raise ValueError(f"cloud_provider must be one of {CLOUD_PROVIDERS}")
        return v

    @field_validator("live_backend")
    @classmethod
    def live_backend_known(cls, v):
        if v not in LIVE_BACKENDS:
            raise ValueError(f"live_backend must be one of {LIVE_BACKENDS}")
        return v

    @field_validator("preferred_task")
    @classmethod
    def task_known(cls, v):
        if v not in TASKS:
            raise ValueError(f"preferred_task must be one of {TASKS}")
        return v

    @classmethod
    def load(cls) -> "Settings":
        config_file = get_config_dir() / "settings.json"

        if not config_file.exists():
            return cls()

        try:
            with open(config_file, "r") as f:
                data = json.load(f)

            if not isinstance(data, dict):
                raise TypeError("settings file must contain a JSON object")

            # Filter to valid keys only
            valid_keys = cls.model_fields.keys()
            filtered_data = {k: v for k, v in data.items() if k in valid_keys}

            return cls._load_with_fallbacks(filtered_data)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(
                f"Could not load settings: {e}. Using defaults.", exc_info=True
            )
            return cls()

    @classmethod
    def _load_with_fallbacks(cls, data: dict) -> "Settings":
        """Load settings with field-level fallback to defaults on validation errors."""
        defaults = cls()
        result_data = {}

        for field_name in cls.model_fields:
            if field_name in data:
                try:
                    validated = cls.model_validate(
                        {**defaults.model_dump(), field_name: data[field_name]}
                    )
                    result_data[field_name] = getattr(validated, field_name)
                except Exception:
                    default_val = getattr(defaults, field_name)
                    logger.warning(
                        f"Invalid {field_name} {data[field_name]!r}, resetting to {default_val}"
                    )
                    result_data[field_name] = default_val
            else:
                result_data[field_name] = getattr(defaults, field_name)

        return cls.model_construct(**result_data)

    def save(self) -> None:
        config_file = get_config_dir() / "settings.json"

        with open(config_file, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

    def reset_to_defaults(self) -> None:
        default = Settings()
        for key, value in default.model_dump().items():
            setattr(self, key, value)

    def get_api_key(self, provider: Optional[str] = None) -> str:
        return (self.cloud_api_keys.get(provider or self.cloud_provider) or "").strip()

    def set_api_key(self, provider: str, api_key: str) -> None:
        self.cloud_api_keys[provider] = api_key


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.load()
    return _settings_instance


def reload_settings() -> Settings:
    global _settings_instance
    _settings_instance = Settings.load()
    return _settings_instance
