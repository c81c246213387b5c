"""
Job records and the status state machine.

A TranscriptionJob is created once per transcription request. Its id and
creation time never change; everything else is advanced by the orchestrator
through ``transition_to`` so that an illegal move fails loudly.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidTransitionError


class JobStatus(str, Enum):
    QUEUED = "queued"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.QUEUED, JobStatus.RECORDING, JobStatus.TRANSCRIBING}
)
RUNNING_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.RECORDING, JobStatus.TRANSCRIBING}
)
TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.QUEUED: frozenset(
        {
            JobStatus.RECORDING,
            JobStatus.TRANSCRIBING,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.RECORDING: frozenset(
        {JobStatus.TRANSCRIBING, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.TRANSCRIBING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    # Retry is the only way back.
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

STAGE_QUEUED = "queued"
STAGE_PREPARING = "preparing"
STAGE_RECORDING = "recording"
STAGE_LOCAL = "local"
STAGE_FALLBACK = "fallback"
STAGE_COMPLETED = "completed"
STAGE_ERROR = "error"
STAGE_CANCELLED = "cancelled"
STAGE_INTERRUPTED = "interrupted"

CANCELLED_MESSAGE = "Cancelled by user"
NO_BACKEND_MESSAGE = "No transcription backend available"
MISSING_RECORDING_MESSAGE = "Original recording missing"
INTERRUPTED_MESSAGE = "Interrupted before completion"


def cloud_stage(provider: str) -> str:
    return f"cloud-{provider}"


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


class TranscriptionSegment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start: float = 0.0
    end: float = 0.0
    text: str = ""


class TranscriptionResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str
    segments: List[TranscriptionSegment] = Field(default_factory=list)
    language: Optional[str] = None
    duration: Optional[float] = None


class TranscriptionJob(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    id: str
    created_at: datetime = Field(default_factory=datetime.now)
    audio_path: str
    filename: str
    source_path: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    stage: str = STAGE_QUEUED
    progress: float = 0.0
    error: Optional[str] = None
    result: Optional[TranscriptionResult] = None
    duration: Optional[float] = None
    capture_pending: bool = False

    @field_validator("progress")
    @classmethod
    def clamp_progress(cls, v):
        return min(1.0, max(0.0, float(v)))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_running(self) -> bool:
        return self.status in RUNNING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, target: JobStatus) -> None:
        target = JobStatus(target)
        if not can_transition(self.status, target):
            raise InvalidTransitionError(self.id, self.status, target)
        self.status = target

    def snapshot(self) -> "TranscriptionJob":
        return self.model_copy(deep=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptionJob":
        return cls.model_validate(data)
