from .errors import (
    BackendError,
    CancellationError,
    InputError,
    InvalidTransitionError,
    PersistenceError,
    ScribeFlowError,
)
from .models import JobStatus, TranscriptionJob, TranscriptionResult, TranscriptionSegment

__all__ = [
    "BackendError",
    "CancellationError",
    "InputError",
    "InvalidTransitionError",
    "JobStatus",
    "PersistenceError",
    "ScribeFlowError",
    "TranscriptionJob",
    "TranscriptionResult",
    "TranscriptionSegment",
]
