import os
import time
from typing import Any, Dict, Optional

import litellm

from ...utils.logger import get_logger
from ..jobs.errors import BackendError, BackendUnavailableError, CancellationError
from ..jobs.models import TranscriptionResult, TranscriptionSegment
from ..settings.config import CLOUD_NUM_RETRIES, CLOUD_TIMEOUT_SECONDS
from .backends import TranscriptionBackend
from .text import sanitize_transcript_text

logger = get_logger(__name__)

PROVIDER_MODELS: Dict[str, str] = {
    "openai": "whisper-1",
    "groq": "groq/whisper-large-v3",
}

INITIAL_BACKOFF_SECONDS = 0.2

_NON_RETRYABLE = (
    litellm.exceptions.AuthenticationError,
    litellm.exceptions.BadRequestError,
    litellm.exceptions.NotFoundError,
)


def _field(obj: Any, name: str):
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class CloudBackend(TranscriptionBackend):
    """Upload the file to a hosted Whisper endpoint through litellm."""

    def __init__(
        self,
        provider: str,
        api_key: Optional[str],
        num_retries: int = CLOUD_NUM_RETRIES,
        backoff: float = INITIAL_BACKOFF_SECONDS,
        timeout: float = CLOUD_TIMEOUT_SECONDS,
    ):
        if provider not in PROVIDER_MODELS:
            raise BackendUnavailableError(f"Unknown cloud provider: {provider}")
        self.provider = provider
        self.name = f"cloud-{provider}"
        self.model = PROVIDER_MODELS[provider]
        self._api_key = api_key
        self._num_retries = num_retries
        self._backoff = backoff
        self._timeout = timeout

    def execute(self, audio_path, options, on_progress, is_cancelled):
        if not self._api_key:
            raise BackendUnavailableError(f"No API key configured for {self.provider}")

        kwargs = {
            "model": self.model,
            "api_key": self._api_key,
            "response_format": "verbose_json",
            "temperature": options.temperature,
            "timeout": self._timeout,
        }
        if options.language:
            kwargs["language"] = options.language
        if options.initial_prompt:
            kwargs["prompt"] = options.initial_prompt

        on_progress(0.05)
        delay = self._backoff
        last_error: Optional[Exception] = None

        for attempt in range(1, self._num_retries + 1):
            if is_cancelled():
                raise CancellationError("Cancelled before upload")
            try:
                audio_file = open(audio_path, "rb")
            except OSError as e:
                raise BackendError(f"Could not read audio for upload: {e}") from e

            logger.info(
                f"[{self.name}] Uploading {os.path.basename(audio_path)} (attempt {attempt}/{self._num_retries})"
            )
            try:
                with audio_file:
                    response = litellm.transcription(file=audio_file, **kwargs)
            except _NON_RETRYABLE as e:
                raise BackendError(f"{self.provider} rejected the request: {e}") from e
            except Exception as e:
                last_error = e
                logger.warning(f"[{self.name}] attempt {attempt} failed: {e}")
                if attempt < self._num_retries:
                    time.sleep(delay)
                    delay *= 2
                continue

            on_progress(0.9)
            return self._to_result(response, options.preserve_timestamps)

        raise BackendError(f"{self.provider} transcription failed: {last_error}")

    def _to_result(self, response, preserve: bool) -> TranscriptionResult:
        text = sanitize_transcript_text(_field(response, "text") or "", preserve)
        if not text:
            raise BackendError(f"{self.provider} returned an empty transcript")

        segments = []
        for raw in _field(response, "segments") or []:
            segment_text = sanitize_transcript_text(_field(raw, "text") or "", preserve)
            if segment_text:
                segments.append(
                    TranscriptionSegment(
                        start=float(_field(raw, "start") or 0.0),
                        end=float(_field(raw, "end") or 0.0),
                        text=segment_text,
                    )
                )

        duration = _field(response, "duration")
        return TranscriptionResult(
            text=text,
            segments=segments,
            language=_field(response, "language"),
            duration=float(duration) if duration is not None else None,
        )
