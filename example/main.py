import asyncio

from fake_task_server import FakeTaskServer
from imagery_task_client.errors import ImageryClientError, PollTimeout
from imagery_task_client.jobs import ndvi_image_request
from imagery_task_client.models import TaskClientConfig
from imagery_task_client.task_client import AsyncTaskClient


async def status_changed(snapshot):
    print(f"Status changed to: {snapshot.status}")


async def main():
    PORT = 8000
    server = FakeTaskServer(completion_time=20.0, error_rate=0.05)
    await server.start(port=PORT)
    base = server.base_url(PORT)
    print(f"Server started on {base}")

    config = TaskClientConfig(
        creation_endpoint=base,
        status_endpoint_template=base + "/{task_id}",
        max_attempts=15,
        poll_interval=2.0,
    )

    client = AsyncTaskClient(config, on_status_change=status_changed)

    try:
        outcome = await client.submit_and_await(ndvi_image_request("S2A_tile_20240101"))
        print(f"Result: {outcome.result}")
        print(f"Polls: {outcome.attempts}, total time: {outcome.elapsed_time:.2f}s")
    except PollTimeout as e:
        print(f"Polling timed out: {e}")
    except ImageryClientError as e:
        print(f"Task error: {e} ({e.details})")

    await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
