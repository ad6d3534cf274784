"""Builders for the job descriptions accepted by the imagery task API.

Each builder wraps a domain payload (an NDVI render, index statistics over a
date range) into the ``{type, params}`` shape of the creation endpoint.
"""

import time
from typing import Any, Dict, Optional

from imagery_task_client.models import JobRequest

# Field boundary of the Yandina farm, the default area of interest
YANDINA_FARM_GEOMETRY: Dict[str, Any] = {
    "type": "Polygon",
    "coordinates": [[
        [152.9148355104133, -26.49630785386763], [152.9149951437186, -26.49644491790693],
        [152.9150826047683, -26.49643498282219], [152.915136003929, -26.49647654096426],
        [152.9151679717066, -26.49641027369633], [152.9151522879532, -26.4963066956674],
        [152.9151405649811, -26.49617943071427], [152.9151330645278, -26.49603918146022],
        [152.9150405267262, -26.49598117140157], [152.9149028386955, -26.49619458038391],
        [152.9148355104133, -26.49630785386763],
    ]],
}

NDVI_COLORMAP = "a9bc6eceeef2a13bb88a7f641dca3aa0"


def _reference(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}"


def _date_only(value: str) -> str:
    return value.split("T")[0]


def ndvi_image_request(
    view_id: str,
    geometry: Optional[Dict[str, Any]] = None,
    reference: Optional[str] = None,
) -> JobRequest:
    return JobRequest(
        type="jpeg",
        params={
            "view_id": view_id,
            "bm_type": "NDVI",
            "geometry": geometry or YANDINA_FARM_GEOMETRY,
            "px_size": 10,
            "format": "png",
            "colormap": NDVI_COLORMAP,
            "levels": "-1.0,1.0",
            "reference": reference or _reference("ndvi_image"),
            "calibrate": 1,
        },
    )


def vegetation_indices_request(
    date_start: str,
    date_end: str,
    geometry: Optional[Dict[str, Any]] = None,
) -> JobRequest:
    return JobRequest(
        type="mt_stats",
        params={
            "bm_type": ["NDVI", "EVI", "SAVI"],
            "date_start": _date_only(date_start),
            "date_end": _date_only(date_end),
            "geometry": geometry or YANDINA_FARM_GEOMETRY,
            "reference": _reference("vegetation_indices"),
            "sensors": ["sentinel2"],
        },
    )


def soil_moisture_request(
    date_start: str,
    date_end: str,
    geometry: Optional[Dict[str, Any]] = None,
) -> JobRequest:
    return JobRequest(
        type="mt_stats",
        params={
            "bm_type": "soilmoisture",
            "date_start": _date_only(date_start),
            "date_end": _date_only(date_end),
            "geometry": geometry or YANDINA_FARM_GEOMETRY,
            "reference": _reference("soil_moisture"),
            "sensors": ["soilmoisture"],
        },
    )


def scene_search_payload(
    date_start: Optional[str],
    date_end: Optional[str],
    geometry: Optional[Dict[str, Any]] = None,
    limit: int = 50,
) -> Dict[str, Any]:
    """Sentinel-2 scene search, least cloudy first"""
    return {
        "search": {
            "date": {"from": date_start, "to": date_end},
            "shape": geometry or YANDINA_FARM_GEOMETRY,
        },
        "sort": {"cloudCoverage": "asc"},
        "fields": ["sceneID", "cloudCoverage", "date", "view_id"],
        "limit": limit,
    }
