import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Callable, Optional

import requests

from ...utils.logger import get_logger
from ..analytics import AnalyticsEventType
from .file_utils import compute_directory_checksum, get_models_dir, is_valid_model_dir
from .manifest import ModelManifestStore
from .model_registry import ModelInfo, get_model_by_id

ProgressCallback = Callable[[int, int], None]
StatusCallback = Callable[[str], None]

DOWNLOAD_CHUNK_SIZE = 8192
DOWNLOAD_TIMEOUT_SECONDS = 30

logger = get_logger(__name__)


class ModelDownloader:
    """
    Fetches a bundled model archive, unpacks it into the models directory
    and records the unpacked files' checksum in the manifest.
    """

    def __init__(
        self,
        models_dir: Optional[Path] = None,
        manifest: Optional[ModelManifestStore] = None,
        analytics=None,
    ):
        self._cancelled = False
        self._models_dir = Path(models_dir) if models_dir else get_models_dir()
        self._manifest = manifest or ModelManifestStore(self._models_dir)
        self._analytics = analytics

    def download(
        self,
        model_id: str,
        on_progress: Optional[ProgressCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> bool:
        """Returns False when cancelled. Network errors propagate."""
        self._cancelled = False
        status = on_status or (lambda message: None)

        model_info = get_model_by_id(model_id)
        if not model_info:
            raise ValueError(f"Unknown model: {model_id}")

        self._models_dir.mkdir(parents=True, exist_ok=True)
        fd, archive_path = tempfile.mkstemp(suffix=".tar.bz2", dir=self._models_dir)
        os.close(fd)

        try:
            status("Downloading...")
            if not self._fetch(model_info.url, archive_path, on_progress):
                logger.info(f"Download of {model_id} cancelled")
                return False

            status("Extracting files...")
            model_path = self._unpack(archive_path, model_id)

            status("Verifying...")
            self._register(model_info, model_path)
            logger.info(f"Model {model_id} installed at {model_path}")
        except (requests.RequestException, tarfile.TarError, RuntimeError, OSError) as e:
            self._track(AnalyticsEventType.MODEL_DOWNLOAD_FAILED, model_id=model_id, reason=str(e))
            raise
        finally:
            if os.path.exists(archive_path):
                os.unlink(archive_path)

        self._track(AnalyticsEventType.MODEL_DOWNLOADED, model_id=model_id)
        return True

    def _fetch(
        self, url: str, archive_path: str, on_progress: Optional[ProgressCallback]
    ) -> bool:
        logger.info(f"Downloading model from {url}")
        try:
            response = requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Download failed: {e}")
            raise

        total = int(response.headers.get("content-length", 0))
        received = 0
        with open(archive_path, "wb") as out:
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if self._cancelled:
                    return False
                out.write(chunk)
                received += len(chunk)
                if on_progress and total > 0:
                    on_progress(received, total)
        return not self._cancelled

    def _unpack(self, archive_path: str, model_id: str) -> Path:
        logger.info(f"Extracting {model_id} to {self._models_dir}")
        with tarfile.open(archive_path, "r:bz2") as tar:
            tar.extractall(path=self._models_dir, filter="data")

        model_path = self._models_dir / model_id
        if not is_valid_model_dir(model_path):
            shutil.rmtree(model_path, ignore_errors=True)
            raise RuntimeError(f"Archive for {model_id} is missing model files")
        return model_path

    def _register(self, model_info: ModelInfo, model_path: Path) -> None:
        checksum = compute_directory_checksum(model_path)
        if model_info.checksum and checksum != model_info.checksum:
            logger.warning(
                f"Checksum mismatch for {model_info.id}: expected {model_info.checksum}, got {checksum}"
            )
        self._manifest.upsert_entry(model_info, checksum_override=checksum)

    def delete(self, model_id: str) -> bool:
        model_path = self._models_dir / model_id
        self._manifest.remove_entry(model_id)
        if not model_path.is_dir():
            return False
        shutil.rmtree(model_path)
        logger.info(f"Deleted model {model_id}")
        return True

    def cancel(self) -> None:
        self._cancelled = True

    def _track(self, event_type: AnalyticsEventType, **details) -> None:
        if self._analytics is not None:
            self._analytics.record(event_type, **details)
