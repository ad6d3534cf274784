import random
import uuid
from datetime import datetime

from aiohttp import web
from loguru import logger


class FakeTaskServer:
    """Stand-in for the imagery task API: tasks finish after completion_time seconds"""

    def __init__(
        self,
        completion_time: float = 10.0,
        error_rate: float = 0.1,
        result_url: str = "https://example.test/results/ndvi.png",
    ):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.result_url = result_url
        self.tasks = {}
        self.runner = None
        self.app = web.Application()
        self.app.router.add_post("/api/gdw/api", self.handle_create)
        self.app.router.add_get("/api/gdw/api/{task_id}", self.handle_status)
        self.logger = logger

    async def handle_create(self, request):
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"error": "body must be valid JSON"}, status=400)
        if not isinstance(payload, dict):
            return web.json_response({"error": "body must be a JSON object"}, status=400)
        if not payload.get("type"):
            return web.json_response({"error": "type is required"}, status=400)

        task_id = uuid.uuid4().hex
        self.tasks[task_id] = datetime.now()
        self.logger.info(f"Created {payload['type']} task {task_id}")
        return web.json_response({"task_id": task_id, "status": "created"}, status=202)

    async def handle_status(self, request):
        task_id = request.match_info["task_id"]
        start_time = self.tasks.get(task_id)
        if start_time is None:
            return web.json_response({"error": "task not found"}, status=404)

        if random.random() < self.error_rate:
            self.logger.info(f"Returning failed status for {task_id}")
            return web.json_response({"task_id": task_id, "status": "failed"})

        elapsed = (datetime.now() - start_time).total_seconds()

        if elapsed >= self.completion_time:
            self.logger.info(f"Returning finished status for {task_id}")
            return web.json_response(
                {"task_id": task_id, "status": "finished", "result_url": self.result_url}
            )
        else:
            self.logger.info(f"Returning running status (elapsed: {elapsed:.1f}s)")
            return web.json_response({"task_id": task_id, "status": "running"})

    def base_url(self, port: int) -> str:
        return f"http://localhost:{port}/api/gdw/api"

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
