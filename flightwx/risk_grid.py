"""
Risk grids for the dashboard heatmaps

Two families of grid are produced from the current observation of a point:

- chart grid: height layer x time step, for the ECharts time/altitude view
- geo/area grid: longitude x latitude cells over a bounding box, for the map

Every cell is base risk (mean factor risk weight) scaled by height, time,
weather-variability and spatial factors, then clamped so no cell reads as
certain. Each public operation runs through a FallbackChain whose last
strategy is a weather-independent sinusoidal grid of the same shape.
"""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import ValidationError
from .factors import UNSTABLE_CLASSES, FactorEvaluator
from .fallback import FallbackChain
from .observations import Observation, WindShearLevel, synthetic_observation
from .thresholds import ThresholdProfile, ThresholdProvider

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]

DEFAULT_BOUNDS: Bounds = (120.0, 36.0, 121.0, 37.0)

# time range -> (time steps, minutes per step)
TIME_RANGES = {
    "1h": (7, 10),
    "3h": (7, 30),
    "6h": (13, 30),
    "12h": (25, 30),
}
DEFAULT_TIME_RANGE = "3h"

# resolution -> (height layers, metres per layer)
RESOLUTIONS = {
    "low": (5, 100),
    "medium": (8, 50),
    "high": (16, 25),
}
DEFAULT_RESOLUTION = "medium"

GRID_SIZES = {"low": 8, "medium": 12, "high": 16}

CHART_RISK_RANGE = (10, 95)
AREA_RISK_RANGE = (20, 95)
BASIC_RISK_RANGE = (20, 80)

RISK_UNIT = "风险指数(0-100)"


# ==================== HELPERS ====================

def clamp(value, low, high):
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def time_steps(time_range: Optional[str]) -> Tuple[int, int]:
    return TIME_RANGES.get(time_range or DEFAULT_TIME_RANGE, TIME_RANGES[DEFAULT_TIME_RANGE])


def height_layers(resolution: Optional[str]) -> Tuple[int, int]:
    return RESOLUTIONS.get(resolution or DEFAULT_RESOLUTION, RESOLUTIONS[DEFAULT_RESOLUTION])


def grid_size(resolution: Optional[str]) -> int:
    return GRID_SIZES.get(resolution or DEFAULT_RESOLUTION, GRID_SIZES[DEFAULT_RESOLUTION])


def parse_bounds(bounds: Optional[str]) -> Bounds:
    """Parse '[minLng,minLat,maxLng,maxLat]' (brackets and spaces optional)"""
    if not bounds or not bounds.strip():
        raise ValidationError("bounds must not be empty")
    cleaned = bounds.replace("[", "").replace("]", "").replace(" ", "")
    parts = cleaned.split(",")
    if len(parts) < 4:
        raise ValidationError(f"bounds needs 4 comma-separated numbers, got '{bounds}'")
    try:
        min_lng, min_lat, max_lng, max_lat = (float(p) for p in parts[:4])
    except ValueError:
        raise ValidationError(f"bounds contains a non-numeric value: '{bounds}'")
    return min_lng, min_lat, max_lng, max_lat


def axis(low: float, high: float, count: int) -> List[float]:
    """Evenly spaced coordinates including both edges"""
    if count == 1:
        return [low]
    values = [low + (high - low) * (i / (count - 1)) for i in range(count)]
    values[-1] = high
    return values


def risk_level(value: int) -> str:
    if value >= 80:
        return "high"
    if value >= 60:
        return "medium"
    if value >= 40:
        return "low"
    return "very_low"


def is_night(moment: datetime) -> bool:
    return moment.hour < 6 or moment.hour > 18


def height_factor(layer: int, layers: int, obs: Observation) -> float:
    factor = 1.0 - (layer / layers) * 0.4
    if obs.stability_index in UNSTABLE_CLASSES:
        factor *= 0.8
    return clamp(factor, 0.3, 1.2)


def time_factor(step: int, moment: datetime) -> float:
    factor = 0.8 + math.sin(step * 0.5) * 0.2
    if is_night(moment):
        factor *= 1.1
    return factor


def weather_factor(obs: Observation, rng: random.Random) -> float:
    factor = 0.9 + rng.random() * 0.2
    if obs.wind_shear_level == WindShearLevel.HIGH:
        factor *= 1.3
    if obs.stability_index in UNSTABLE_CLASSES:
        factor *= 1.2
    return clamp(factor, 0.7, 1.5)


def spatial_factor(lng: float, lat: float) -> float:
    return clamp(0.9 + math.sin(lng * 10) * 0.1 + math.cos(lat * 10) * 0.1, 0.7, 1.3)


def chart_cell_risk(base_risk: float, h_factor: float, t_factor: float, w_factor: float,
                    for_route_analysis: bool = False) -> int:
    risk = base_risk * h_factor * t_factor * w_factor
    if for_route_analysis:
        risk *= 0.8
        risk *= math.sin(h_factor * 0.8 + t_factor * 0.4) * 0.3 + 0.7
    return clamp(round_half_up(risk * 100), *CHART_RISK_RANGE)


def basic_cell_risk(*phase: float) -> int:
    return clamp(50 + int(math.sin(sum(phase)) * 20), *BASIC_RISK_RANGE)


# ==================== GENERATOR ====================

class RiskGridGenerator:
    """
    Builds chart, geo and area risk grids for a monitoring point.

    The observation comes from an ObservationResolver-like object and the
    limits from a ThresholdProvider. Without a point, the fair-weather
    synthetic observation is used.
    """

    def __init__(
        self,
        resolver=None,
        thresholds: Optional[ThresholdProvider] = None,
        points=None,
        evaluator: Optional[FactorEvaluator] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.now,
        default_bounds: Sequence[float] = DEFAULT_BOUNDS,
        aircraft_id: Optional[str] = None,
    ):
        self.resolver = resolver
        self.thresholds = thresholds or ThresholdProvider()
        self.points = points
        self.evaluator = evaluator or FactorEvaluator()
        self.rng = rng or random.Random()
        self.clock = clock
        self.default_bounds: Bounds = tuple(default_bounds)
        self.aircraft_id = aircraft_id

    # ---------- inputs ----------

    def conditions(self, point_id: Optional[str]) -> Tuple[Observation, ThresholdProfile]:
        if point_id and self.resolver is not None:
            obs = self.resolver.get_latest(point_id)
        else:
            obs = synthetic_observation(point_id or "area", self.clock())
        return obs, self.thresholds.get_profile(self.aircraft_id)

    def resolve_bounds(self, bounds: Optional[str], point_id: Optional[str]) -> Tuple[Bounds, str]:
        """Requested bounds, else the point's bounding box, else the default box"""
        if bounds:
            try:
                return parse_bounds(bounds), "request"
            except ValidationError as e:
                logger.warning(f"Ignoring unusable bounds for {point_id}: {e}")

        if point_id and self.points is not None:
            try:
                bbox = self.points.get_by_id(point_id).bbox
            except Exception as e:
                logger.warning(f"Could not read bounding box of {point_id}: {e}")
                bbox = None
            if bbox is not None:
                return tuple(bbox), "monitoring-point"

        return self.default_bounds, "default"

    def _time_axis(self, time_range: Optional[str]) -> Tuple[datetime, List[datetime]]:
        count, interval = time_steps(time_range)
        base = self.clock()
        return base, [base + timedelta(minutes=i * interval) for i in range(count)]

    @staticmethod
    def _weather_summary(obs: Observation) -> Dict[str, Any]:
        return {
            "windSpeed": obs.wind_speed_ms,
            "visibility": obs.visibility_km,
            "precipitation": obs.precipitation_mm,
            "humidity": obs.humidity_pct,
            "windShearLevel": obs.wind_shear_level.value if obs.wind_shear_level else None,
            "stabilityIndex": obs.stability_index.value if obs.stability_index else None,
            "dataSource": obs.source,
        }

    # ---------- chart grid ----------

    def chart_heatmap(self, point_id: Optional[str], time_range: Optional[str] = None,
                      resolution: Optional[str] = None, for_route_analysis: bool = False) -> Dict[str, Any]:
        """Height x time risk matrix, data[height][time]"""
        chain = FallbackChain("chart-heatmap", [
            ("weather-based", lambda: self._chart(point_id, time_range, resolution, for_route_analysis)),
            ("basic", lambda: self._basic_chart(point_id, time_range, resolution, for_route_analysis)),
        ])
        return chain.run()

    def _chart(self, point_id, time_range, resolution, for_route_analysis) -> Dict[str, Any]:
        obs, profile = self.conditions(point_id)
        base_risk = self.evaluator.base_risk(obs, profile)
        _, moments = self._time_axis(time_range)
        layers, layer_interval = height_layers(resolution)

        data = []
        for h in range(layers):
            h_factor = height_factor(h, layers, obs)
            row = []
            for t, moment in enumerate(moments):
                t_factor = time_factor(t, moment)
                w_factor = weather_factor(obs, self.rng)
                row.append(chart_cell_risk(base_risk, h_factor, t_factor, w_factor, for_route_analysis))
            data.append(row)

        return {
            "times": [m.strftime("%H:%M") for m in moments],
            "heights": [h * layer_interval for h in range(layers)],
            "data": data,
            "metadata": {
                "pointId": point_id,
                "timeRange": time_range or DEFAULT_TIME_RANGE,
                "resolution": resolution or DEFAULT_RESOLUTION,
                "forRouteAnalysis": for_route_analysis,
                "dataType": "flight_risk_heatmap",
                "unit": RISK_UNIT,
                "calculationMethod": "weather_based_risk_assessment",
                "baseRisk": round(base_risk, 4),
                "weatherData": self._weather_summary(obs),
                "thresholds": {
                    "aircraftId": profile.aircraft_id,
                    "maxWindSpeed": profile.max_wind_speed,
                    "minVisibility": profile.min_visibility,
                    "maxPrecipitation": profile.max_precipitation,
                    "maxHumidity": profile.max_humidity,
                },
                "generatedAt": self.clock().isoformat(),
            },
        }

    def _basic_chart(self, point_id, time_range, resolution, for_route_analysis) -> Dict[str, Any]:
        _, moments = self._time_axis(time_range)
        layers, layer_interval = height_layers(resolution)
        data = [[basic_cell_risk(h * 0.5, t * 0.3) for t in range(len(moments))] for h in range(layers)]
        return {
            "times": [m.strftime("%H:%M") for m in moments],
            "heights": [h * layer_interval for h in range(layers)],
            "data": data,
            "metadata": {
                "pointId": point_id,
                "timeRange": time_range or DEFAULT_TIME_RANGE,
                "resolution": resolution or DEFAULT_RESOLUTION,
                "forRouteAnalysis": for_route_analysis,
                "dataType": "basic_flight_risk_heatmap",
                "unit": RISK_UNIT,
                "calculationMethod": "basic_simulation",
                "generatedAt": self.clock().isoformat(),
            },
        }

    # ---------- geo grid ----------

    def geo_heatmap(self, bounds: Optional[str], time: Optional[str] = None,
                    resolution: Optional[str] = None, point_id: Optional[str] = None) -> Dict[str, Any]:
        """Longitude x latitude risk points over a bounding box"""
        chain = FallbackChain("geo-heatmap", [
            ("weather-based", lambda: self._geo(bounds, resolution, point_id)),
            ("basic", lambda: self._basic_geo(bounds, resolution, point_id)),
        ])
        return chain.run()

    def _geo(self, bounds, resolution, point_id) -> Dict[str, Any]:
        bbox, bounds_source = self.resolve_bounds(bounds, point_id)
        obs, profile = self.conditions(point_id)
        base_risk = self.evaluator.base_risk(obs, profile)
        size = grid_size(resolution)

        points = []
        for i, lng in enumerate(axis(bbox[0], bbox[2], size)):
            for j, lat in enumerate(axis(bbox[1], bbox[3], size)):
                value = clamp(round_half_up(base_risk * spatial_factor(lng, lat) * 100), *AREA_RISK_RANGE)
                points.append({
                    "lon": lng,
                    "lat": lat,
                    "value": value,
                    "x": i,
                    "y": j,
                    "riskLevel": risk_level(value),
                })

        return {
            "points": points,
            "bounds": list(bbox),
            "boundsSource": bounds_source,
            "gridSize": size,
            "pointCount": len(points),
            "metadata": {
                "dataType": "geo_heatmap",
                "unit": RISK_UNIT,
                "calculationMethod": "geo_weather_based_risk",
                "resolution": resolution or DEFAULT_RESOLUTION,
                "baseRisk": round(base_risk, 4),
                "weatherData": self._weather_summary(obs),
                "generatedAt": self.clock().isoformat(),
            },
        }

    def _basic_geo(self, bounds, resolution, point_id) -> Dict[str, Any]:
        bbox, bounds_source = self.resolve_bounds(bounds, point_id)
        size = grid_size(resolution)
        points = []
        for i, lng in enumerate(axis(bbox[0], bbox[2], size)):
            for j, lat in enumerate(axis(bbox[1], bbox[3], size)):
                value = basic_cell_risk(i * 0.5, j * 0.3)
                points.append({"lon": lng, "lat": lat, "value": value, "x": i, "y": j,
                               "riskLevel": risk_level(value)})
        return {
            "points": points,
            "bounds": list(bbox),
            "boundsSource": bounds_source,
            "gridSize": size,
            "pointCount": len(points),
            "metadata": {
                "dataType": "basic_geo_heatmap",
                "unit": RISK_UNIT,
                "calculationMethod": "basic_simulation",
                "resolution": resolution or DEFAULT_RESOLUTION,
                "generatedAt": self.clock().isoformat(),
            },
        }

    # ---------- area grid ----------

    def area_heatmap(self, point_id: Optional[str], time_range: Optional[str] = None,
                     resolution: Optional[str] = None, bounds: Optional[str] = None,
                     for_route_analysis: bool = False) -> Dict[str, Any]:
        """Geo grid where every cell also carries a risk time series"""
        chain = FallbackChain("area-heatmap", [
            ("weather-based", lambda: self._area(point_id, time_range, resolution, bounds, for_route_analysis)),
            ("basic", lambda: self._basic_area(point_id, time_range, resolution, bounds, for_route_analysis)),
        ])
        return chain.run()

    def _area(self, point_id, time_range, resolution, bounds, for_route_analysis) -> Dict[str, Any]:
        bbox, bounds_source = self.resolve_bounds(bounds, point_id)
        obs, profile = self.conditions(point_id)
        base_risk = self.evaluator.base_risk(obs, profile)
        size = grid_size(resolution)
        _, moments = self._time_axis(time_range)

        grid = []
        for i, lng in enumerate(axis(bbox[0], bbox[2], size)):
            for j, lat in enumerate(axis(bbox[1], bbox[3], size)):
                s_factor = spatial_factor(lng, lat)
                series = []
                for t, moment in enumerate(moments):
                    risk = base_risk * s_factor * time_factor(t, moment) * weather_factor(obs, self.rng)
                    series.append(clamp(round_half_up(risk * 100), *AREA_RISK_RANGE))
                grid.append({
                    "lng": lng,
                    "lat": lat,
                    "x": i,
                    "y": j,
                    "riskData": {
                        "baseRisk": round(base_risk, 4),
                        "spatialFactor": round(s_factor, 4),
                        "timeSeries": series,
                        "currentRisk": series[0],
                    },
                })

        return self._area_result(bbox, bounds_source, size, moments, grid, {
            "pointId": point_id,
            "timeRange": time_range or DEFAULT_TIME_RANGE,
            "resolution": resolution or DEFAULT_RESOLUTION,
            "forRouteAnalysis": for_route_analysis,
            "dataType": "area_risk_heatmap",
            "unit": RISK_UNIT,
            "calculationMethod": "area_weather_based_risk_assessment",
            "gridType": "regular_grid",
            "gridCount": size * size,
            "weatherData": self._weather_summary(obs),
            "generatedAt": self.clock().isoformat(),
        })

    def _basic_area(self, point_id, time_range, resolution, bounds, for_route_analysis) -> Dict[str, Any]:
        bbox, bounds_source = self.resolve_bounds(bounds, point_id)
        size = grid_size(resolution)
        _, moments = self._time_axis(time_range)

        grid = []
        for i, lng in enumerate(axis(bbox[0], bbox[2], size)):
            for j, lat in enumerate(axis(bbox[1], bbox[3], size)):
                series = [basic_cell_risk(i * 0.5, j * 0.3, t * 0.2) for t in range(len(moments))]
                grid.append({
                    "lng": lng,
                    "lat": lat,
                    "x": i,
                    "y": j,
                    "riskData": {"timeSeries": series, "currentRisk": series[0]},
                })

        return self._area_result(bbox, bounds_source, size, moments, grid, {
            "pointId": point_id,
            "timeRange": time_range or DEFAULT_TIME_RANGE,
            "resolution": resolution or DEFAULT_RESOLUTION,
            "forRouteAnalysis": for_route_analysis,
            "dataType": "basic_area_heatmap",
            "unit": RISK_UNIT,
            "calculationMethod": "basic_simulation",
            "generatedAt": self.clock().isoformat(),
        })

    @staticmethod
    def _area_result(bbox, bounds_source, size, moments, grid, metadata) -> Dict[str, Any]:
        return {
            "bounds": list(bbox),
            "boundsSource": bounds_source,
            "gridSize": size,
            "times": [m.strftime("%H:%M") for m in moments],
            "gridData": grid,
            "metadata": metadata,
        }
