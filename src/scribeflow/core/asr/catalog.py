from pathlib import Path
from typing import List, Optional

from ...utils.logger import get_logger
from .file_utils import get_models_dir, is_valid_model_dir
from .manifest import ModelManifestStore
from .model_registry import AVAILABLE_MODELS, ModelInfo, get_model_by_id

logger = get_logger(__name__)


class ModelCatalog:
    """Read-only view of which models are installed and whether they are intact."""

    def __init__(
        self,
        models_dir: Optional[Path] = None,
        manifest: Optional[ModelManifestStore] = None,
        models: Optional[List[ModelInfo]] = None,
    ):
        self._models_dir = Path(models_dir) if models_dir else get_models_dir()
        self._manifest = manifest or ModelManifestStore(self._models_dir)
        self._models = list(models) if models is not None else list(AVAILABLE_MODELS)

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    @property
    def manifest(self) -> ModelManifestStore:
        return self._manifest

    @property
    def models(self) -> List[ModelInfo]:
        return list(self._models)

    def get(self, model_id: str) -> Optional[ModelInfo]:
        for model in self._models:
            if model.id == model_id:
                return model
        return get_model_by_id(model_id)

    def model_path(self, model_id: str) -> Path:
        return self._models_dir / model_id

    def is_available(self, model_id: str) -> bool:
        return self.get(model_id) is not None and is_valid_model_dir(
            self.model_path(model_id)
        )

    def checksum(self, model_id: str) -> Optional[str]:
        entry = self._manifest.entry(model_id)
        return entry.checksum if entry else None

    def expected_checksum(self, model_id: str) -> Optional[str]:
        model = self.get(model_id)
        return model.checksum if model else None

    def installed_models(self) -> List[ModelInfo]:
        return [m for m in self._models if self.is_available(m.id)]

    def reconcile(self) -> None:
        """Drop manifest entries for unknown or uninstalled models."""
        self._manifest.purge_obsolete_entries(self.installed_models())
        for entry in self._manifest.entries_with_mismatched_checksums(self._models):
            logger.warning(
                f"Model {entry.model_id} checksum {entry.checksum} does not match the registry"
            )
