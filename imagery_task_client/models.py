from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, Literal, Optional, Union

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt


class TaskStatus(str, Enum):
    pending = "pending"
    running = "running"
    finished = "finished"
    done = "done"
    failed = "failed"
    error = "error"


TERMINAL_SUCCESS = frozenset({TaskStatus.finished.value, TaskStatus.done.value})
TERMINAL_FAILURE = frozenset({TaskStatus.failed.value, TaskStatus.error.value})


class JobRequest(BaseModel):
    """Payload of a remote job creation call"""

    type: str
    params: Dict[str, Any] = Field(default_factory=dict)


class TaskStatusSnapshot(BaseModel):
    status: str = ""
    result_url: Optional[str] = None
    result: Any = None
    raw_response: Dict[str, Any]

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "TaskStatusSnapshot":
        status = body.get("status")
        result_url = body.get("result_url")
        return cls(
            status=str(status).strip().lower() if status is not None else "",
            result_url=str(result_url) if result_url else None,
            result=body.get("result"),
            raw_response=body,
        )

    @property
    def is_success(self) -> bool:
        # A result_url short-circuits polling even on a non-terminal status
        return self.status in TERMINAL_SUCCESS or self.result_url is not None

    @property
    def is_failure(self) -> bool:
        return self.status in TERMINAL_FAILURE


class ResultLocator(BaseModel):
    kind: Literal["locator"] = "locator"
    url: str


class InlineResult(BaseModel):
    kind: Literal["inline"] = "inline"
    data: Any


class RawResult(BaseModel):
    kind: Literal["raw"] = "raw"
    data: Dict[str, Any]


TaskResult = Annotated[
    Union[ResultLocator, InlineResult, RawResult], Field(discriminator="kind")
]


def select_result(snapshot: TaskStatusSnapshot) -> TaskResult:
    """Pick the result of a finished task: locator, then inline result, then the raw body"""
    if snapshot.result_url is not None:
        return ResultLocator(url=snapshot.result_url)
    if snapshot.result:
        return InlineResult(data=snapshot.result)
    return RawResult(data=snapshot.raw_response)


class TaskOutcome(BaseModel):
    task_id: str
    result: TaskResult
    attempts: int
    elapsed_time: float
    snapshot: TaskStatusSnapshot


class TaskClientConfig(BaseModel):
    creation_endpoint: str = "https://api-connect.eos.com/api/gdw/api"
    status_endpoint_template: str = "https://api-connect.eos.com/api/gdw/api/{task_id}"
    headers: Dict[str, str] = Field(default_factory=dict)
    max_attempts: PositiveInt = 30
    poll_interval: PositiveFloat = 10.0
    request_timeout: PositiveFloat = 60.0
    accepted_status: int = 202
    # Off by default: every 4xx during polling is retried until attempts run out
    fail_fast_client_errors: bool = False
    permanent_client_errors: FrozenSet[int] = frozenset({401, 403, 404})

    def status_url(self, task_id: str) -> str:
        return self.status_endpoint_template.format(task_id=task_id)
