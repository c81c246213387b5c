"""
Backend selection policy.

Given a configuration snapshot, one connectivity answer and the model
catalog, decide which execution strategies a job should try and in which
order. Nothing here touches the job ledger or starts any work, so the
policy can be tested without an orchestrator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from ...utils.logger import get_logger
from ..asr.model_registry import FALLBACK_MODEL_ID, STREAMING_MODEL_ID
from .models import STAGE_FALLBACK, STAGE_LOCAL, cloud_stage

if TYPE_CHECKING:
    from ..settings import Settings
    from .models import TranscriptionJob

logger = get_logger(__name__)


class StrategyKind(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Strategy:
    kind: StrategyKind
    model_id: Optional[str] = None
    provider: Optional[str] = None

    @property
    def stage(self) -> str:
        if self.kind == StrategyKind.CLOUD:
            return cloud_stage(self.provider)
        if self.kind == StrategyKind.FALLBACK:
            return STAGE_FALLBACK
        return STAGE_LOCAL

    @property
    def is_on_device(self) -> bool:
        return self.kind != StrategyKind.CLOUD


@dataclass(frozen=True)
class SelectorConfig:
    selected_model: str
    offline_mode: bool = False
    enable_cloud_transcription: bool = False
    cloud_provider: str = "openai"
    cloud_api_key: str = ""
    enable_cloud_fallback: bool = False
    live_backend: str = "online"
    fallback_model: str = FALLBACK_MODEL_ID

    @classmethod
    def from_settings(cls, settings: "Settings") -> "SelectorConfig":
        return cls(
            selected_model=settings.selected_model,
            offline_mode=settings.offline_mode,
            enable_cloud_transcription=settings.enable_cloud_transcription,
            cloud_provider=settings.cloud_provider,
            cloud_api_key=settings.get_api_key(),
            enable_cloud_fallback=settings.enable_cloud_fallback,
            live_backend=settings.live_backend,
        )


def is_model_healthy(catalog, model_id: str) -> bool:
    if not catalog.is_available(model_id):
        return False
    expected = catalog.expected_checksum(model_id)
    return expected is None or catalog.checksum(model_id) == expected


def select_strategies(
    job: Optional["TranscriptionJob"],
    config: SelectorConfig,
    connectivity,
    catalog,
) -> List[Strategy]:
    local = Strategy(StrategyKind.LOCAL, model_id=config.selected_model)
    local_usable = is_model_healthy(catalog, config.selected_model)
    candidates: List[Strategy] = []

    if config.offline_mode:
        if local_usable:
            candidates.append(local)
    else:
        cloud = Strategy(StrategyKind.CLOUD, provider=config.cloud_provider)
        cloud_eligible = (
            config.enable_cloud_transcription
            and bool(config.cloud_api_key.strip())
            and connectivity.has_active_connection()
        )

        if cloud_eligible and not local_usable:
            primary, secondary = cloud, local
        else:
            primary, secondary = local, cloud

        usable = {local: local_usable, cloud: cloud_eligible}
        if usable[primary]:
            candidates.append(primary)
        if config.enable_cloud_fallback and usable[secondary]:
            candidates.append(secondary)

    already_local = any(
        c.kind == StrategyKind.LOCAL and c.model_id == config.fallback_model
        for c in candidates
    )
    if not already_local and catalog.is_available(config.fallback_model):
        candidates.append(
            Strategy(StrategyKind.FALLBACK, model_id=config.fallback_model)
        )

    if job is not None:
        logger.debug(
            f"Candidates for job {job.id}: {[c.stage for c in candidates] or 'none'}"
        )
    return candidates


class LiveBackend(str, Enum):
    ONLINE = "online"
    WHISPER_TINY = "whisper_tiny"
    WHISPER_BASE = "whisper_base"

    @property
    def required_model_id(self) -> str:
        return _LIVE_MODELS[self]

    @property
    def display_name(self) -> str:
        return _LIVE_NAMES[self]

    @property
    def is_windowed(self) -> bool:
        return self != LiveBackend.ONLINE


_LIVE_MODELS = {
    LiveBackend.ONLINE: STREAMING_MODEL_ID,
    LiveBackend.WHISPER_TINY: "sherpa-onnx-whisper-tiny.en",
    LiveBackend.WHISPER_BASE: "sherpa-onnx-whisper-base.en",
}

_LIVE_NAMES = {
    LiveBackend.ONLINE: "Streaming Zipformer",
    LiveBackend.WHISPER_TINY: "Whisper Tiny (windowed)",
    LiveBackend.WHISPER_BASE: "Whisper Base (windowed)",
}


def select_live_backends(config: SelectorConfig, catalog) -> List[LiveBackend]:
    try:
        preferred = LiveBackend(config.live_backend)
    except ValueError:
        preferred = LiveBackend.ONLINE

    ordered = [preferred] + [b for b in LiveBackend if b != preferred]
    return [b for b in ordered if catalog.is_available(b.required_model_id)]
