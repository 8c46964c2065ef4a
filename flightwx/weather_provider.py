"""
External weather provider (Open-Meteo)

Fetches current conditions for a coordinate and returns raw fields in the
units the observation store uses: wind in km/h, visibility in km,
precipitation in mm/h. Wind shear and stability are not reported directly
and are derived from gust spread and the Pasquill-Gifford table.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

import httpx

from .errors import UpstreamError

logger = logging.getLogger(__name__)

CURRENT_FIELDS = (
    "temperature_2m,relative_humidity_2m,precipitation,wind_speed_10m,"
    "wind_direction_10m,wind_gusts_10m,cloud_cover,visibility,pressure_msl,is_day"
)


class WeatherProvider(Protocol):
    """A data source capable of returning current raw weather fields"""

    name: str

    def fetch(self, longitude: float, latitude: float) -> Dict[str, Any]:
        """Fetch current conditions, raising UpstreamError on failure"""
        ...


def classify_wind_shear(wind_kmh: Optional[float], gust_kmh: Optional[float]) -> str:
    """Shear level from the gust spread in m/s"""
    if wind_kmh is None or gust_kmh is None:
        return "low"
    spread_ms = max(0.0, gust_kmh - wind_kmh) / 3.6
    if spread_ms >= 5.0:
        return "high"
    if spread_ms >= 2.5:
        return "medium"
    return "low"


def classify_stability(wind_kmh: Optional[float], cloud_cover: Optional[float], is_day: bool) -> str:
    """
    Pasquill-Gifford stability class from 10 m wind, cloud cover and daylight.

    Daytime insolation is approximated from cloud cover:
    strong < 40%, moderate < 70%, slight otherwise.
    """
    wind = (wind_kmh or 0.0) / 3.6
    cloud = cloud_cover if cloud_cover is not None else 50.0

    if is_day:
        column = 0 if cloud < 40 else (1 if cloud < 70 else 2)
        if wind < 2:
            row = ("A", "A", "B")
        elif wind < 3:
            row = ("A", "B", "C")
        elif wind < 5:
            row = ("B", "B", "C")
        elif wind < 6:
            row = ("C", "C", "D")
        else:
            row = ("C", "D", "D")
        return row[column]

    if cloud >= 50:
        return "E" if wind < 3 else "D"
    if wind < 3:
        return "F"
    if wind < 5:
        return "E"
    return "D"


class OpenMeteoProvider:
    """Open-Meteo current-conditions client with a bounded timeout"""

    name = "open-meteo"

    def __init__(
        self,
        base_url: str = "https://api.open-meteo.com/v1",
        timeout: float = 10.0,
        on_call: Optional[Callable[[str, bool, float], None]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.on_call = on_call
        self.transport = transport

    def fetch(self, longitude: float, latitude: float) -> Dict[str, Any]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": CURRENT_FIELDS,
            "wind_speed_unit": "kmh",
            "precipitation_unit": "mm",
            "timezone": "auto",
        }
        start_time = datetime.now()

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(f"{self.base_url}/forecast", params=params)
                response.raise_for_status()
                data = response.json()
            raw = self._parse(data)
        except httpx.HTTPError as e:
            self._record(False, start_time)
            raise UpstreamError(f"Failed to fetch weather from {self.name}: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            self._record(False, start_time)
            raise UpstreamError(f"Malformed response from {self.name}: {e}") from e

        self._record(True, start_time)
        logger.debug(f"Fetched weather at ({longitude}, {latitude}) from {self.name}")
        return raw

    def _parse(self, data: Dict[str, Any]) -> Dict[str, Any]:
        current = data["current"]
        wind = current.get("wind_speed_10m")
        if wind is None:
            raise ValueError("current.wind_speed_10m missing")
        gust = current.get("wind_gusts_10m")
        cloud = current.get("cloud_cover")
        visibility_m = current.get("visibility")

        return {
            "temperature": current.get("temperature_2m"),
            "wind_speed": wind,
            "wind_direction": current.get("wind_direction_10m"),
            "humidity": current.get("relative_humidity_2m"),
            "precipitation": current.get("precipitation"),
            "pressure": current.get("pressure_msl"),
            "visibility": visibility_m / 1000 if visibility_m is not None else None,
            "cloud_cover": cloud,
            "wind_shear_level": classify_wind_shear(wind, gust),
            "stability_index": classify_stability(wind, cloud, bool(current.get("is_day", 1))),
        }

    def _record(self, success: bool, start_time: datetime):
        if self.on_call is None:
            return
        elapsed_ms = (datetime.now() - start_time).total_seconds() * 1000
        self.on_call(self.name, success, elapsed_ms)
