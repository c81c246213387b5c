"""
Record of installed model bundles and the checksum each was installed with.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ...utils.logger import get_logger
from .model_registry import ModelInfo

logger = get_logger(__name__)

MANIFEST_VERSION = 1


class ModelManifestEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model_id: str
    checksum: Optional[str] = None
    type: Optional[str] = None
    last_updated: datetime = Field(default_factory=datetime.now)


class ModelManifest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int = MANIFEST_VERSION
    entries: List[ModelManifestEntry] = Field(default_factory=list)


class ModelManifestStore:
    def __init__(self, directory):
        self._path = Path(directory) / "manifest.json"
        self._manifest = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> ModelManifest:
        if not self._path.exists():
            return ModelManifest()
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                return ModelManifest.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to decode model manifest: {e}")
            return ModelManifest()

    def entries(self) -> List[ModelManifestEntry]:
        return [entry.model_copy() for entry in self._manifest.entries]

    def entry(self, model_id: str) -> Optional[ModelManifestEntry]:
        for entry in self._manifest.entries:
            if entry.model_id == model_id:
                return entry.model_copy()
        return None

    def upsert_entry(
        self, model: ModelInfo, checksum_override: Optional[str] = None
    ) -> ModelManifestEntry:
        entry = ModelManifestEntry(
            model_id=model.id,
            checksum=checksum_override or model.checksum,
            type=model.type,
        )
        entries = self._manifest.entries
        for index, existing in enumerate(entries):
            if existing.model_id == model.id:
                entries[index] = entry
                break
        else:
            entries.append(entry)
        self._persist()
        return entry

    def remove_entry(self, model_id: str) -> None:
        before = len(self._manifest.entries)
        self._manifest.entries = [
            e for e in self._manifest.entries if e.model_id != model_id
        ]
        if len(self._manifest.entries) != before:
            self._persist()

    def purge_obsolete_entries(
        self, available_models: Iterable[ModelInfo]
    ) -> List[ModelManifestEntry]:
        available_ids = {m.id for m in available_models}
        obsolete = [
            e for e in self._manifest.entries if e.model_id not in available_ids
        ]
        if obsolete:
            self._manifest.entries = [
                e for e in self._manifest.entries if e.model_id in available_ids
            ]
            self._persist()
            logger.info(
                f"Purged obsolete manifest entries: {[e.model_id for e in obsolete]}"
            )
        return obsolete

    def entries_with_mismatched_checksums(
        self, available_models: Iterable[ModelInfo]
    ) -> List[ModelManifestEntry]:
        lookup = {m.id: m for m in available_models}
        mismatched = []
        for entry in self._manifest.entries:
            model = lookup.get(entry.model_id)
            if model is None or model.checksum is None:
                continue
            if entry.checksum != model.checksum:
                mismatched.append(entry.model_copy())
        return mismatched

    def _persist(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".manifest-", suffix=".tmp", dir=self._path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self._manifest.model_dump_json(indent=2))
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.error(f"Model manifest persist failure: {e}")
