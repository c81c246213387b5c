"""
Durable, ordered store of transcription jobs.

The whole ledger is rewritten on every mutation through a temporary file
that is atomically renamed over ``jobs.json``. A ledger that cannot be read
is logged and replaced by an empty one; a ledger that cannot be written is
logged and the in-memory state stays authoritative.
"""

import json
import os
import tempfile
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError
from PySide6.QtCore import QObject, Signal

from ...utils.logger import get_logger
from ..settings.config import LEDGER_SCHEMA_VERSION
from .errors import DuplicateJobError, PersistenceError
from .models import JobStatus, RUNNING_STATUSES, TranscriptionJob

logger = get_logger(__name__)


class JobLedger(QObject):
    jobs_changed = Signal()

    def __init__(self, path: Optional[Path] = None, parent=None):
        super().__init__(parent)
        if path is None:
            from ..settings import get_jobs_file

            path = get_jobs_file()
        self._path = Path(path)
        self._lock = threading.RLock()
        self._jobs: "OrderedDict[str, TranscriptionJob]" = OrderedDict()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def add(self, job: TranscriptionJob) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateJobError(f"Job {job.id} already exists")
            self._jobs[job.id] = job.snapshot()
            self._persist()
        logger.debug(f"Ledger add {job.id} ({job.status.value})")
        self.jobs_changed.emit()

    def update(self, job: TranscriptionJob) -> bool:
        with self._lock:
            if job.id not in self._jobs:
                logger.warning(f"Ledger update for unknown job {job.id} ignored")
                return False
            self._jobs[job.id] = job.snapshot()
            self._persist()
        self.jobs_changed.emit()
        return True

    def remove(self, job_id: str) -> bool:
        with self._lock:
            if self._jobs.pop(job_id, None) is None:
                return False
            self._persist()
        logger.debug(f"Ledger remove {job_id}")
        self.jobs_changed.emit()
        return True

    def remove_where(self, predicate: Callable[[TranscriptionJob], bool]) -> List[str]:
        with self._lock:
            doomed = [job_id for job_id, job in self._jobs.items() if predicate(job)]
            if not doomed:
                return []
            for job_id in doomed:
                del self._jobs[job_id]
            self._persist()
        self.jobs_changed.emit()
        return doomed

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()
            self._persist()
        self.jobs_changed.emit()

    def get(self, job_id: str) -> Optional[TranscriptionJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job is not None else None

    def list(self) -> List[TranscriptionJob]:
        with self._lock:
            return [job.snapshot() for job in self._jobs.values()]

    def _with_status(self, *statuses: JobStatus) -> List[TranscriptionJob]:
        with self._lock:
            return [
                job.snapshot() for job in self._jobs.values() if job.status in statuses
            ]

    def queued(self) -> List[TranscriptionJob]:
        return self._with_status(JobStatus.QUEUED)

    def running(self) -> List[TranscriptionJob]:
        return self._with_status(*RUNNING_STATUSES)

    def completed(self) -> List[TranscriptionJob]:
        return self._with_status(JobStatus.COMPLETED)

    def failed(self) -> List[TranscriptionJob]:
        return self._with_status(JobStatus.FAILED)

    def cancelled(self) -> List[TranscriptionJob]:
        return self._with_status(JobStatus.CANCELLED)

    def _load(self) -> None:
        if not self._path.exists():
            return

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)

            version = data.get("version") if isinstance(data, dict) else None
            if version is not None and version > LEDGER_SCHEMA_VERSION:
                logger.warning(
                    f"Ledger version {version} is newer than {LEDGER_SCHEMA_VERSION}, reading known fields only"
                )

            items = data["jobs"] if isinstance(data, dict) else data
            jobs = [TranscriptionJob.from_dict(item) for item in items]
        except (OSError, json.JSONDecodeError, TypeError, KeyError, ValidationError) as e:
            logger.warning(
                f"Could not load job ledger from {self._path}: {e}. Starting with an empty ledger."
            )
            return

        for job in jobs:
            self._jobs[job.id] = job
        logger.info(f"Loaded {len(self._jobs)} jobs from {self._path}")

    def _persist(self) -> None:
        payload = {
            "version": LEDGER_SCHEMA_VERSION,
            "jobs": [job.to_dict() for job in self._jobs.values()],
        }
        try:
            self._write_atomic(payload)
        except PersistenceError as e:
            logger.error(f"{e}. Keeping in-memory ledger state.")

    def _write_atomic(self, payload: Dict) -> None:
        tmp_path = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".jobs-", suffix=".tmp", dir=self._path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not write job ledger {self._path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
