import math
from typing import Any, Dict, Iterable, List, Optional


def relative_humidity(vapour_pressure: float, temperature_min: float, temperature_max: float) -> float:
    """Relative humidity (%) from vapour pressure (hPa) and the day's mean temperature"""
    avg_temp = (temperature_min + temperature_max) / 2
    saturation = 6.1094 * math.exp((17.625 * avg_temp) / (avg_temp + 243.04))
    return min(100.0, max(0.0, vapour_pressure / saturation * 100))


def _to_float(value: Any) -> Optional[float]:
    """Numeric field of an upstream day, None when missing or not a number"""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def transform_weather_history(days: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    transformed = []
    for day in days:
        temperature_min = _to_float(day.get("temperature_min"))
        temperature_max = _to_float(day.get("temperature_max"))
        vapour_pressure = _to_float(day.get("vapour_pressure"))

        humidity = 0.0
        if vapour_pressure and temperature_min is not None and temperature_max is not None:
            humidity = relative_humidity(vapour_pressure, temperature_min, temperature_max)
        transformed.append(
            {
                "date": day.get("date"),
                "temperature_min": temperature_min,
                "temperature_max": temperature_max,
                "humidity": f"{humidity:.1f}",
                "rainfall": _to_float(day.get("rainfall")),
                "wind_speed": _to_float(day.get("wind_speed")),
            }
        )
    return transformed
