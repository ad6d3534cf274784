from typing import Any, Optional


class ImageryClientError(Exception):
    """Base exception for imagery API failures.

    Attributes:
        message: Human-readable error description
        details: Upstream payload or diagnostic text, if any
        upstream_status: HTTP status code from the remote API (if applicable)
        task_id: Remote task identifier, once one has been assigned
    """

    def __init__(
        self,
        message: str,
        details: Any = None,
        upstream_status: Optional[int] = None,
        task_id: Optional[str] = None,
    ):
        self.message = message
        self.details = details
        self.upstream_status = upstream_status
        self.task_id = task_id
        super().__init__(message)


class CreationFailure(ImageryClientError):
    """The creation call did not return an accepted response with a task id"""


class TaskFailed(ImageryClientError):
    """The remote task reached a terminal failure status"""


class TransportFailure(ImageryClientError):
    """A non-retryable network or decoding fault while polling"""


class PollTimeout(ImageryClientError):
    """Raised when the task is still running after every poll attempt is used.

    Attributes:
        attempts: Number of status polls issued
    """

    def __init__(self, task_id: str, attempts: int, details: Any = None):
        self.attempts = attempts
        super().__init__(
            f"Task {task_id} polling timed out after {attempts} attempts",
            details=details,
            task_id=task_id,
        )


class TaskCancelled(ImageryClientError):
    """The caller cancelled polling before the task reached a terminal state"""


class UpstreamError(ImageryClientError):
    """A synchronous call to the imagery API failed"""
