import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import aiohttp
from aiohttp import web
from loguru import logger
from imagery_task_client.errors import ImageryClientError, UpstreamError
from imagery_task_client.jobs import (
    YANDINA_FARM_GEOMETRY,
    ndvi_image_request,
    scene_search_payload,
    soil_moisture_request,
    vegetation_indices_request,
)
from imagery_task_client.models import JobRequest, ResultLocator
from imagery_task_client.settings import ProxySettings
from imagery_task_client.task_client import AsyncTaskClient
from imagery_task_client.weather import transform_weather_history


def cors_middleware(origins: Iterable[str]):
    allowed = set(origins)

    def cors_headers(request: web.Request) -> Dict[str, str]:
        headers = {
            "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }
        origin = request.headers.get("Origin")
        if "*" in allowed:
            headers["Access-Control-Allow-Origin"] = "*"
        elif origin in allowed:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"
        return headers

    @web.middleware
    async def middleware(request: web.Request, handler):
        if request.method == "OPTIONS":
            return web.Response(headers=cors_headers(request))
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(cors_headers(request))
            raise
        response.headers.update(cors_headers(request))
        return response

    return middleware


def _error_status(error: ImageryClientError) -> int:
    if error.upstream_status is not None and error.upstream_status >= 400:
        return error.upstream_status
    return 500


class ImageryProxy:
    """HTTP front for the imagery API used by the dashboard"""

    def __init__(
        self,
        settings: Optional[ProxySettings] = None,
        task_client: Optional[AsyncTaskClient] = None,
    ):
        self.settings = settings or ProxySettings()
        self.client_config = self.settings.to_client_config()
        self.task_client = task_client or AsyncTaskClient(self.client_config)
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None

        self.app = web.Application(
            middlewares=[cors_middleware(self.settings.PROXY_CORS_ORIGINS)]
        )
        self.app.router.add_get("/test", self.handle_test)
        self.app.router.add_post("/fetch-ndvi-image", self.handle_ndvi_image)
        self.app.router.add_post("/fetch-vegetation-indices", self.handle_vegetation_indices)
        self.app.router.add_post("/fetch-soil-moisture", self.handle_soil_moisture)
        self.app.router.add_post("/fetch-scenes", self.handle_scenes)
        self.app.router.add_post("/fetch-historical-weather", self.handle_historical_weather)
        self.app.router.add_post("/fetch-14-day-forecast", self.handle_forecast)
        self.app.on_cleanup.append(self._close_session)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.client_config.request_timeout)
            )
        return self._session

    async def _close_session(self, app: web.Application) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    async def _read_payload(request: web.Request) -> Dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(
                text=json.dumps({"success": False, "error": "Request body must be valid JSON"}),
                content_type="application/json",
            )
        if not isinstance(payload, dict):
            raise web.HTTPBadRequest(
                text=json.dumps({"success": False, "error": "Request body must be a JSON object"}),
                content_type="application/json",
            )
        return payload

    @staticmethod
    def _bad_request(message: str) -> web.Response:
        return web.json_response({"success": False, "error": message}, status=400)

    @staticmethod
    def _date_range_error(payload: Dict[str, Any]) -> Optional[str]:
        date_start, date_end = payload.get("date_start"), payload.get("date_end")
        if not date_start or not date_end:
            return "date_start and date_end are required"
        if not isinstance(date_start, str) or not isinstance(date_end, str):
            return "date_start and date_end must be strings"
        return None

    async def _post_upstream(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Single synchronous POST to the imagery API"""
        self.logger.info(f"POST {url}: {json.dumps(payload)}")
        session = await self._get_session()
        try:
            async with session.post(url, json=payload, headers=headers, params=params) as response:
                status = response.status
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Request to {url} failed: {e!r}")
            raise UpstreamError(f"Request to {url} failed: {e!r}") from e

        try:
            body = json.loads(text)
        except ValueError:
            body = text

        if status >= 400:
            self.logger.error(f"Upstream error {status} from {url}: {body}")
            raise UpstreamError(
                f"Upstream returned HTTP {status}", details=body, upstream_status=status
            )
        return body

    async def _run_task(self, job_request: JobRequest) -> web.Response:
        try:
            outcome = await self.task_client.submit_and_await(job_request, self.client_config)
        except ImageryClientError as e:
            self.logger.error(f"Error during async task processing: {e.message}")
            return web.json_response(
                {
                    "success": False,
                    "error": "Failed during async task processing",
                    "details": e.details if e.details is not None else e.message,
                },
                status=_error_status(e),
            )

        self.logger.info(f"Task {outcome.task_id} finished after {outcome.attempts} polls")
        if isinstance(outcome.result, ResultLocator):
            return web.json_response({"success": True, "imageUrl": outcome.result.url})
        return web.json_response({"success": True, "data": outcome.result.data})

    async def handle_test(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "message": "Imagery proxy is running!",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    async def handle_ndvi_image(self, request: web.Request) -> web.Response:
        payload = await self._read_payload(request)
        view_id = payload.get("view_id")
        if not view_id:
            return self._bad_request("view_id is required")
        return await self._run_task(ndvi_image_request(view_id, payload.get("geometry")))

    async def handle_vegetation_indices(self, request: web.Request) -> web.Response:
        payload = await self._read_payload(request)
        error = self._date_range_error(payload)
        if error:
            return self._bad_request(error)
        return await self._run_task(
            vegetation_indices_request(
                payload["date_start"], payload["date_end"], payload.get("geometry")
            )
        )

    async def handle_soil_moisture(self, request: web.Request) -> web.Response:
        payload = await self._read_payload(request)
        error = self._date_range_error(payload)
        if error:
            return self._bad_request(error)
        return await self._run_task(
            soil_moisture_request(
                payload["date_start"], payload["date_end"], payload.get("geometry")
            )
        )

    async def handle_scenes(self, request: web.Request) -> web.Response:
        payload = await self._read_payload(request)
        url = f"{self.settings.base_url}/api/lms/search/v2/sentinel2"
        try:
            data = await self._post_upstream(
                url,
                scene_search_payload(
                    payload.get("date_start"), payload.get("date_end"), payload.get("geometry")
                ),
                headers=self.settings.api_headers(),
            )
        except UpstreamError as e:
            return web.json_response(
                {"success": False, "error": "Scene Search API error", "details": e.details},
                status=_error_status(e),
            )
        return web.json_response({"success": True, "data": data})

    async def handle_historical_weather(self, request: web.Request) -> web.Response:
        payload = await self._read_payload(request)
        url = f"{self.settings.base_url}/api/cz/backend/forecast-history/"
        body = {
            "geometry": payload.get("geometry") or YANDINA_FARM_GEOMETRY,
            "start_date": payload.get("date_start"),
            "end_date": payload.get("date_end"),
        }
        try:
            days = await self._post_upstream(
                url, body, params={"api_key": self.settings.EOSDA_API_KEY.get_secret_value()}
            )
            if not isinstance(days, list):
                raise UpstreamError("Unexpected weather history response", details=days)
        except UpstreamError as e:
            return web.json_response(
                {
                    "success": False,
                    "error": "Failed to fetch historical weather",
                    "details": e.details if e.details is not None else e.message,
                },
                status=_error_status(e),
            )
        return web.json_response({"success": True, "data": transform_weather_history(days)})

    async def handle_forecast(self, request: web.Request) -> web.Response:
        payload = await self._read_payload(request)
        url = f"{self.settings.base_url}/api/forecast/weather/forecast/"
        body = {"geometry": payload.get("geometry") or YANDINA_FARM_GEOMETRY}
        try:
            data = await self._post_upstream(
                url, body, params={"api_key": self.settings.EOSDA_API_KEY.get_secret_value()}
            )
        except UpstreamError as e:
            return web.json_response(
                {
                    "success": False,
                    "error": "Failed to fetch 14-day forecast",
                    "details": e.details if e.details is not None else e.message,
                },
                status=_error_status(e),
            )
        return web.json_response({"success": True, "data": data})


def main() -> None:
    settings = ProxySettings()
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())
    if not settings.EOSDA_API_KEY.get_secret_value():
        logger.warning("EOSDA_API_KEY is not set, upstream calls will be rejected")

    proxy = ImageryProxy(settings)
    logger.info(f"Imagery proxy starting on http://{settings.PROXY_HOST}:{settings.PROXY_PORT}")
    web.run_app(proxy.app, host=settings.PROXY_HOST, port=settings.PROXY_PORT, print=None)


if __name__ == "__main__":
    main()
