import json
import os
from dataclasses import dataclass
from typing import List, Literal, Optional

from ...utils.logger import get_logger

logger = get_logger(__name__)

GITHUB_RELEASE_BASE = (
    "https://github.com/k2-fsa/sherpa-onnx/releases/download/asr-models"
)

# Smallest bundled engine, used as the last-resort strategy.
FALLBACK_MODEL_ID = "sherpa-onnx-whisper-tiny.en"
STREAMING_MODEL_ID = "sherpa-onnx-streaming-zipformer-en-2023-06-26"

ModelType = Literal["whisper", "transducer", "online_transducer"]


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    type: str
    checksum: Optional[str] = None
    size_mb: Optional[int] = None

    @property
    def url(self) -> str:
        return f"{GITHUB_RELEASE_BASE}/{self.id}.tar.bz2"

    @property
    def is_streaming(self) -> bool:
        return self.type == "online_transducer"


def load_models() -> List[ModelInfo]:
    try:
        current_dir = os.path.dirname(os.path.abspath(__file__))
        json_path = os.path.join(current_dir, "models.json")

        with open(json_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return [ModelInfo(**item) for item in data]
    except (OSError, json.JSONDecodeError, TypeError) as e:
        logger.error(f"Error loading models.json: {e}")
        return []


AVAILABLE_MODELS: List[ModelInfo] = load_models()


def get_model_by_id(model_id: str) -> Optional[ModelInfo]:
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    return None


def get_model_type(model_id: str) -> str:
    model = get_model_by_id(model_id)
    if model is None:
        raise ValueError(
            f"Model '{model_id}' not found in models.json. "
            f"Please add an entry for this model with 'id', 'name', and 'type' fields."
        )
    return model.type
