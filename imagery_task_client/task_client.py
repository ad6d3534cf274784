import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import aiohttp
from loguru import logger
from imagery_task_client.errors import (
    CreationFailure,
    PollTimeout,
    TaskCancelled,
    TaskFailed,
    TransportFailure,
)
from imagery_task_client.models import (
    JobRequest,
    TaskClientConfig,
    TaskOutcome,
    TaskStatusSnapshot,
    select_result,
)


class AsyncTaskClient:
    """Drives one remote asynchronous task from creation to a terminal outcome"""

    def __init__(
        self,
        config: Optional[TaskClientConfig] = None,
        on_status_change: Optional[Callable[[TaskStatusSnapshot], Awaitable[Any]]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.config = config or TaskClientConfig()
        self.logger = logger
        self.on_status_change = on_status_change
        self._session = session
        self._sleep = sleep or asyncio.sleep

    @staticmethod
    def _timeout(config: TaskClientConfig) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=config.request_timeout)

    async def _create_task(
        self,
        session: aiohttp.ClientSession,
        job_request: JobRequest,
        config: TaskClientConfig,
    ) -> str:
        """Submits the job and returns the task id assigned by the server"""
        payload = job_request.model_dump()
        self.logger.info(f"Creating task with payload: {json.dumps(payload)}")

        try:
            async with session.post(
                config.creation_endpoint,
                json=payload,
                headers=config.headers,
                timeout=self._timeout(config),
            ) as response:
                status = response.status
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Connection error creating task: {e!r}")
            raise CreationFailure(f"Failed to create task: {e!r}") from e

        try:
            body = json.loads(text)
        except ValueError:
            body = text

        self.logger.debug(f"Creation response {status}: {body}")

        task_id = body.get("task_id") if isinstance(body, dict) else None
        if status != config.accepted_status or not task_id:
            self.logger.error(f"Failed to create task ({status}): {body}")
            raise CreationFailure(
                f"Failed to create task: {body}",
                details=body,
                upstream_status=status,
            )
        return str(task_id)

    async def _get_status_once(
        self,
        session: aiohttp.ClientSession,
        task_id: str,
        config: TaskClientConfig,
    ) -> TaskStatusSnapshot:
        """Fetches and decodes one status snapshot of a task"""
        url = config.status_url(task_id)

        async with session.get(
            url, headers=config.headers, timeout=self._timeout(config)
        ) as response:
            text = await response.text()
            self.logger.debug(f"Task {task_id} status response {response.status}: {text}")
            response.raise_for_status()

        try:
            body = json.loads(text)
        except ValueError as e:
            raise TransportFailure(
                f"Malformed status response for task {task_id}",
                details=text[:500],
                task_id=task_id,
            ) from e

        if not isinstance(body, dict):
            raise TransportFailure(
                f"Unexpected status response for task {task_id}",
                details=body,
                task_id=task_id,
            )
        return TaskStatusSnapshot.from_body(body)

    async def _handle_status_change(
        self, snapshot: TaskStatusSnapshot, last_status: Optional[str]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if last_status != snapshot.status and self.on_status_change is not None:
            self.logger.debug(f"Task status changed to {snapshot.status!r}")
            await self.on_status_change(snapshot)

    async def _wait_before_retry(
        self,
        config: TaskClientConfig,
        task_id: str,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        """Waits one poll interval, returning early with TaskCancelled if the event is set"""
        self.logger.debug(
            f"Task {task_id} not finished, waiting {config.poll_interval:.2f}s before next attempt"
        )
        if cancel_event is None:
            await self._sleep(config.poll_interval)
            return

        sleeper = asyncio.ensure_future(self._sleep(config.poll_interval))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waiter):
                if not pending.done():
                    pending.cancel()
        self._check_cancelled(task_id, cancel_event)

    @staticmethod
    def _check_cancelled(task_id: str, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise TaskCancelled(f"Polling of task {task_id} was cancelled", task_id=task_id)

    async def _poll_until_complete(
        self,
        session: aiohttp.ClientSession,
        task_id: str,
        config: TaskClientConfig,
        cancel_event: Optional[asyncio.Event],
        start_time: float,
    ) -> TaskOutcome:
        attempt = 0
        last_status = None
        snapshot = None

        while attempt < config.max_attempts:
            self._check_cancelled(task_id, cancel_event)
            attempt += 1
            self.logger.info(f"Polling task {task_id}, attempt {attempt}...")

            try:
                snapshot = await self._get_status_once(session, task_id, config)
            except aiohttp.ClientResponseError as polling_error:
                if (
                    config.fail_fast_client_errors
                    and polling_error.status in config.permanent_client_errors
                ):
                    self.logger.error(
                        f"Permanent HTTP error {polling_error.status} polling task {task_id}"
                    )
                    raise TransportFailure(
                        f"HTTP error {polling_error.status} polling task {task_id}",
                        details=polling_error.message,
                        upstream_status=polling_error.status,
                        task_id=task_id,
                    ) from polling_error
                self.logger.warning(
                    f"HTTP error {polling_error.status} polling task {task_id}, retrying"
                )
                await self._wait_before_retry(config, task_id, cancel_event)
                continue
            except (aiohttp.ClientError, asyncio.TimeoutError) as polling_error:
                self.logger.error(f"Error polling task {task_id}: {polling_error!r}")
                raise TransportFailure(
                    f"Error polling task {task_id}: {polling_error!r}",
                    task_id=task_id,
                ) from polling_error

            self.logger.debug(f"Task {task_id} status: {snapshot.status!r}")
            await self._handle_status_change(snapshot, last_status)
            last_status = snapshot.status

            if snapshot.is_success:
                self.logger.info(f"Task {task_id} completed successfully")
                return TaskOutcome(
                    task_id=task_id,
                    result=select_result(snapshot),
                    attempts=attempt,
                    elapsed_time=asyncio.get_event_loop().time() - start_time,
                    snapshot=snapshot,
                )
            if snapshot.is_failure:
                self.logger.error(f"Task {task_id} failed: {snapshot.raw_response}")
                raise TaskFailed(
                    f"Task failed: {json.dumps(snapshot.raw_response)}",
                    details=snapshot.raw_response,
                    task_id=task_id,
                )

            await self._wait_before_retry(config, task_id, cancel_event)

        raise PollTimeout(
            task_id,
            attempt,
            details=snapshot.raw_response if snapshot is not None else None,
        )

    async def submit_and_await(
        self,
        job_request: Union[JobRequest, Dict[str, Any]],
        config: Optional[TaskClientConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TaskOutcome:
        """Create a remote task and poll it until it finishes, fails or runs out of attempts"""
        config = config or self.config
        if not isinstance(job_request, JobRequest):
            job_request = JobRequest.model_validate(job_request)
        start_time = asyncio.get_event_loop().time()

        if self._session is not None:
            task_id = await self._create_task(self._session, job_request, config)
            self.logger.info(f"Task created successfully with ID: {task_id}")
            return await self._poll_until_complete(
                self._session, task_id, config, cancel_event, start_time
            )

        async with aiohttp.ClientSession() as session:
            task_id = await self._create_task(session, job_request, config)
            self.logger.info(f"Task created successfully with ID: {task_id}")
            return await self._poll_until_complete(
                session, task_id, config, cancel_event, start_time
            )
