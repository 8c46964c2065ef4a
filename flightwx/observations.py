"""
Weather observations

Observations are immutable snapshots for one monitoring point. Wind speed is
converted from the provider's km/h to m/s once, when the observation is built,
and every consumer reads the m/s value.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from .fallback import FallbackChain

logger = logging.getLogger(__name__)

SOURCE_EXTERNAL = "external-provider"
SOURCE_SYNTHETIC = "synthetic"
QUALITY_EXTERNAL = 85
QUALITY_SYNTHETIC = 70


class WindShearLevel(Enum):
    """Categorical proxy for localized wind-speed gradients"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StabilityIndex(Enum):
    """Pasquill-Gifford class, A very unstable through F stable"""
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"


def kmh_to_ms(speed_kmh: Optional[float]) -> Optional[float]:
    """Convert km/h to m/s (36 km/h -> 10.0 m/s)"""
    if speed_kmh is None:
        return None
    return float(speed_kmh) * 1000.0 / 3600.0


def parse_wind_shear(value: Any) -> Optional[WindShearLevel]:
    if value is None or value == "":
        return None
    if isinstance(value, WindShearLevel):
        return value
    try:
        return WindShearLevel(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown wind shear level '{value}', treating as unset")
        return None


def parse_stability(value: Any) -> Optional[StabilityIndex]:
    if value is None or value == "":
        return None
    if isinstance(value, StabilityIndex):
        return value
    try:
        return StabilityIndex(str(value).strip().upper())
    except ValueError:
        logger.warning(f"Unknown stability index '{value}', treating as unset")
        return None


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class Observation:
    """One weather snapshot for a monitoring point"""
    point_id: str
    observed_at: datetime
    temperature_c: Optional[float] = None
    wind_speed_kmh: Optional[float] = None
    wind_speed_ms: Optional[float] = None
    wind_direction: Optional[int] = None
    visibility_km: Optional[float] = None
    precipitation_mm: Optional[float] = None
    humidity_pct: Optional[float] = None
    pressure_hpa: Optional[float] = None
    cloud_cover_pct: Optional[int] = None
    wind_shear_level: Optional[WindShearLevel] = None
    stability_index: Optional[StabilityIndex] = None
    source: str = SOURCE_EXTERNAL
    quality: int = QUALITY_EXTERNAL
    record_id: Optional[int] = None

    @classmethod
    def from_raw(cls, point_id: str, observed_at: datetime, raw: Dict[str, Any],
                 source: str = SOURCE_EXTERNAL, quality: int = QUALITY_EXTERNAL,
                 record_id: Optional[int] = None) -> "Observation":
        """Build an observation from provider/storage fields (wind in km/h)"""
        wind_kmh = _optional_float(raw.get("wind_speed"))
        wind_dir = raw.get("wind_direction")
        cloud = raw.get("cloud_cover")
        return cls(
            point_id=point_id,
            observed_at=observed_at,
            temperature_c=_optional_float(raw.get("temperature")),
            wind_speed_kmh=wind_kmh,
            wind_speed_ms=kmh_to_ms(wind_kmh),
            wind_direction=int(wind_dir) if wind_dir is not None else None,
            visibility_km=_optional_float(raw.get("visibility")),
            precipitation_mm=_optional_float(raw.get("precipitation")),
            humidity_pct=_optional_float(raw.get("humidity")),
            pressure_hpa=_optional_float(raw.get("pressure")),
            cloud_cover_pct=int(cloud) if cloud is not None else None,
            wind_shear_level=parse_wind_shear(raw.get("wind_shear_level")),
            stability_index=parse_stability(raw.get("stability_index")),
            source=source,
            quality=quality,
            record_id=record_id,
        )

    def to_raw(self) -> Dict[str, Any]:
        """Fields in provider/storage units (wind in km/h)"""
        return {
            "temperature": self.temperature_c,
            "wind_speed": self.wind_speed_kmh,
            "wind_direction": self.wind_direction,
            "visibility": self.visibility_km,
            "precipitation": self.precipitation_mm,
            "humidity": self.humidity_pct,
            "pressure": self.pressure_hpa,
            "cloud_cover": self.cloud_cover_pct,
            "wind_shear_level": self.wind_shear_level.value if self.wind_shear_level else None,
            "stability_index": self.stability_index.value if self.stability_index else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_raw()
        data.update({
            "id": self.record_id,
            "pointId": self.point_id,
            "obsTime": self.observed_at.isoformat(),
            "windSpeedMs": round(self.wind_speed_ms, 2) if self.wind_speed_ms is not None else None,
            "dataSource": self.source,
            "dataQuality": self.quality,
        })
        return data


def synthetic_observation(point_id: str, now: Optional[datetime] = None) -> Observation:
    """Fair-weather placeholder used when neither provider nor store has data"""
    return Observation.from_raw(
        point_id,
        now or datetime.now(),
        {
            "temperature": 25.0,
            "wind_speed": 12.0,
            "wind_direction": 45,
            "visibility": 10.0,
            "precipitation": 0.0,
            "humidity": 68,
            "pressure": 1013.0,
            "cloud_cover": 25,
            "wind_shear_level": "low",
            "stability_index": "C",
        },
        source=SOURCE_SYNTHETIC,
        quality=QUALITY_SYNTHETIC,
    )


# ==================== COLLABORATORS ====================

class ObservationStore(Protocol):
    def get_latest(self, point_id: str) -> Optional[Observation]:
        ...

    def insert(self, observation: Observation) -> int:
        ...


class PointLocator(Protocol):
    def get_by_id(self, point_id: str) -> Any:
        """Return an object with longitude/latitude; raise NotFoundError if absent"""
        ...


class WeatherFetcher(Protocol):
    def fetch(self, longitude: float, latitude: float) -> Dict[str, Any]:
        ...


# ==================== RESOLVER ====================

class ObservationResolver:
    """
    Returns the freshest usable observation for a point.

    Order: fresh stored record, new provider observation (persisted),
    stale stored record, synthetic default (not persisted). Never raises.
    """

    def __init__(
        self,
        store: ObservationStore,
        points: PointLocator,
        provider: Optional[WeatherFetcher],
        freshness: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.points = points
        self.provider = provider
        self.freshness = freshness
        self.clock = clock

    def get_latest(self, point_id: str) -> Observation:
        now = self.clock()
        latest = self._read_stored(point_id)

        def fresh_stored():
            if latest is not None and latest.observed_at > now - self.freshness:
                return latest
            return None

        def from_provider():
            if self.provider is None:
                return None
            point = self.points.get_by_id(point_id)
            raw = self.provider.fetch(point.longitude, point.latitude)
            observation = Observation.from_raw(point_id, now, raw)
            try:
                record_id = self.store.insert(observation)
            except Exception as e:
                logger.error(f"Failed to persist observation for {point_id}: {e}")
                return observation
            logger.info(f"Refreshed observation for {point_id} from external provider")
            return replace(observation, record_id=record_id)

        def stale_stored():
            if latest is not None:
                logger.warning(f"Serving stale observation for {point_id} from {latest.observed_at}")
            return latest

        def synthetic():
            logger.warning(f"No observation available for {point_id}, using synthetic default")
            return synthetic_observation(point_id, now)

        chain = FallbackChain(
            "observation",
            [
                ("fresh-store", fresh_stored),
                ("external-provider", from_provider),
                ("stale-store", stale_stored),
                ("synthetic", synthetic),
            ],
            passthrough=(),
        )
        return chain.run()

    def _read_stored(self, point_id: str) -> Optional[Observation]:
        try:
            return self.store.get_latest(point_id)
        except Exception as e:
            logger.error(f"Failed to read stored observation for {point_id}: {e}")
            return None
