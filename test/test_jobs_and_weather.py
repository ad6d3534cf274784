import pytest
from imagery_task_client.jobs import (
    YANDINA_FARM_GEOMETRY,
    ndvi_image_request,
    scene_search_payload,
    soil_moisture_request,
    vegetation_indices_request,
)
from imagery_task_client.models import TaskStatusSnapshot, select_result
from imagery_task_client.weather import relative_humidity, transform_weather_history


def test_ndvi_image_request():
    job = ndvi_image_request("view-1", reference="ref-1")

    assert job.type == "jpeg"
    assert job.params["bm_type"] == "NDVI"
    assert job.params["reference"] == "ref-1"
    assert job.params["levels"] == "-1.0,1.0"
    assert job.params["geometry"] == YANDINA_FARM_GEOMETRY


def test_geometry_override():
    field = {"type": "Polygon", "coordinates": [[[0, 0], [0, 1], [1, 1], [0, 0]]]}

    job = soil_moisture_request("2024-03-01", "2024-03-31", geometry=field)

    assert job.params["geometry"] == field
    assert job.params["bm_type"] == "soilmoisture"
    assert job.params["sensors"] == ["soilmoisture"]
    assert job.params["reference"].startswith("soil_moisture_")


def test_vegetation_indices_truncates_datetimes():
    job = vegetation_indices_request("2024-03-01T10:00:00.000Z", "2024-03-31")

    assert job.type == "mt_stats"
    assert job.params["date_start"] == "2024-03-01"
    assert job.params["date_end"] == "2024-03-31"


def test_scene_search_payload():
    payload = scene_search_payload("2024-03-01", "2024-03-31", limit=10)

    assert payload["search"]["shape"] == YANDINA_FARM_GEOMETRY
    assert payload["sort"] == {"cloudCoverage": "asc"}
    assert payload["limit"] == 10


def test_snapshot_normalizes_status():
    snapshot = TaskStatusSnapshot.from_body({"status": " Running "})

    assert snapshot.status == "running"
    assert not snapshot.is_success
    assert not snapshot.is_failure


def test_snapshot_without_status_is_not_terminal():
    snapshot = TaskStatusSnapshot.from_body({"progress": 40})

    assert snapshot.status == ""
    assert not snapshot.is_success
    assert select_result(snapshot).kind == "raw"


def test_empty_result_url_is_not_a_locator():
    snapshot = TaskStatusSnapshot.from_body({"status": "done", "result_url": "", "result": {"a": 1}})

    assert select_result(snapshot).kind == "inline"


def test_relative_humidity_is_clamped():
    assert relative_humidity(100, 10, 10) == 100.0
    assert relative_humidity(0, 10, 10) == 0.0


def test_transform_weather_history():
    days = [
        {
            "date": "2024-01-01",
            "temperature_min": "18",
            "temperature_max": "30",
            "vapour_pressure": "20",
            "rainfall": "0",
            "wind_speed": "2.5",
        },
        {
            "date": "2024-01-02",
            "temperature_min": 15.5,
            "temperature_max": 22,
            "rainfall": 4,
            "wind_speed": None,
        },
    ]

    first, second = transform_weather_history(days)

    assert first["humidity"] == "67.2"
    assert first["rainfall"] == 0.0
    assert first["wind_speed"] == pytest.approx(2.5)
    assert second["humidity"] == "0.0"
    assert second["temperature_min"] == 15.5
    assert second["wind_speed"] is None


@pytest.mark.parametrize("empty", [{}, [], 0, ""])
def test_falsy_result_is_not_inline(empty):
    snapshot = TaskStatusSnapshot.from_body({"status": "finished", "result": empty})

    assert select_result(snapshot).kind == "raw"


def test_transform_weather_history_tolerates_bad_fields():
    days = [
        {
            "date": "2024-01-03",
            "temperature_min": None,
            "temperature_max": "25",
            "vapour_pressure": "20",
            "rainfall": "n/a",
            "wind_speed": {"value": 3},
        }
    ]

    (day,) = transform_weather_history(days)

    assert day["humidity"] == "0.0"
    assert day["temperature_min"] is None
    assert day["temperature_max"] == 25.0
    assert day["rainfall"] is None
    assert day["wind_speed"] is None
