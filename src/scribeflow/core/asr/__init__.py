from .catalog import ModelCatalog
from .model_registry import (
    AVAILABLE_MODELS,
    FALLBACK_MODEL_ID,
    STREAMING_MODEL_ID,
    ModelInfo,
    get_model_by_id,
)

__all__ = [
    "AVAILABLE_MODELS",
    "FALLBACK_MODEL_ID",
    "STREAMING_MODEL_ID",
    "ModelCatalog",
    "ModelInfo",
    "get_model_by_id",
]
