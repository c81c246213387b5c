class ScribeFlowError(Exception):
    """Base class for errors raised by the transcription engine."""


class InputError(ScribeFlowError):
    """The input audio is missing or cannot be decoded. Fatal to the job."""


class BackendError(ScribeFlowError):
    """A transcription attempt failed. The next candidate may still succeed."""


class BackendUnavailableError(BackendError):
    pass


class PersistenceError(ScribeFlowError):
    """Reading or writing the job ledger failed."""


class CancellationError(ScribeFlowError):
    """Raised inside a backend to stop work after a cancel request."""


class InvalidTransitionError(ScribeFlowError):
    def __init__(self, job_id: str, current, target):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid status transition for job {job_id}: "
            f"{getattr(current, 'value', current)} -> {getattr(target, 'value', target)}"
        )


class DuplicateJobError(ScribeFlowError):
    pass


class LiveSessionError(ScribeFlowError):
    pass


class LiveSessionStateError(LiveSessionError):
    """An operation is not allowed in the current live session state."""
