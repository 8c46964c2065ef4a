"""
Suitability engine

Ties the pipeline together for the API layer:
observation -> limits -> factor evaluation -> composite score ->
projection or risk grid -> history write-back -> response payload.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .errors import ValidationError
from .factors import CompositeScorer, Factor, FactorEvaluator, FactorResult, Recommendation
from .observations import ObservationResolver
from .projection import INTERVAL_MINUTES, TimePointProjection, TimeProjector
from .risk_grid import RiskGridGenerator
from .storage import HistoryRow, PointInfo
from .thresholds import ThresholdProvider

logger = logging.getLogger(__name__)

OVERALL_FACTOR_NAMES = ("综合", "overall")

PROFILE_WINDOWS = {
    "current": timedelta(minutes=30),
    "1h": timedelta(hours=1),
    "3h": timedelta(hours=3),
    "6h": timedelta(hours=6),
}

SAFETY_THRESHOLDS = {
    "maxWindSpeed": 15.0,
    "minVisibility": 1.0,
    "maxHumidity": 95,
}

HEATMAP_TOLERANCE = timedelta(minutes=5)

WIND_TREND_WINDOW = timedelta(hours=24)
WIND_FIELD_LIMIT = 500
MICROSCALE_LIMIT = 1000


class PointDirectory(Protocol):
    def get_by_id(self, point_id: str) -> PointInfo:
        ...

    def get_selected(self) -> Optional[PointInfo]:
        ...

    def list_active(self) -> List[PointInfo]:
        ...


class HistoryStore(Protocol):
    def replace_window(self, point_id: str, rows: List[HistoryRow]) -> int:
        ...

    def recent(self, factor: Optional[str] = None, around: Optional[datetime] = None,
               tolerance: timedelta = HEATMAP_TOLERANCE, limit: int = 200) -> List[Dict[str, Any]]:
        ...


class IndicatorStore(Protocol):
    def recent_indicators(self, point_id: Optional[str], limit: int = 50) -> List[Dict[str, Any]]:
        ...

    def vertical_profile(self, point_id: str, since: datetime) -> List[Dict[str, Any]]:
        ...

    def wind_trend(self, point_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        ...

    def wind_field(self, height: Optional[int] = None, start: Optional[datetime] = None,
                   end: Optional[datetime] = None, limit: int = 500) -> List[Dict[str, Any]]:
        ...

    def microscale(self, region: Optional[str] = None, start: Optional[datetime] = None,
                   end: Optional[datetime] = None, limit: int = 1000) -> List[Dict[str, Any]]:
        ...


@dataclass
class SuitabilitySnapshot:
    """Current evaluation of one point against one aircraft"""
    calculated_at: datetime
    factors: List[FactorResult] = field(default_factory=list)
    overall_suitability: float = 0.0
    recommendation: Recommendation = Recommendation.UNSUITABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calculationTime": self.calculated_at.isoformat(),
            "factors": [f.to_dict() for f in self.factors],
            "overallSuitability": round(self.overall_suitability, 2),
            "recommendation": self.recommendation.value,
            "recommendationLabel": self.recommendation.label,
        }


def select_factors(factor: Optional[str]) -> List[Factor]:
    """Factors to list for a request; all of them for the overall view"""
    if factor is None or not factor.strip() or factor.strip().lower() in OVERALL_FACTOR_NAMES:
        return list(Factor)
    match = Factor.lookup(factor)
    if match is None:
        raise ValidationError(f"Unknown factor '{factor}'")
    return [match]


def parse_time_point(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into naive local time, as history is stored"""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"timePoint must be an ISO 8601 timestamp, got '{value}'")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_time_range(value: Optional[str]) -> Optional[Tuple[datetime, datetime]]:
    """Explicit "start,end" window; anything without a comma means no window"""
    if not value or "," not in value:
        return None
    start_text, end_text = value.split(",", 1)
    try:
        start, end = parse_time_point(start_text), parse_time_point(end_text)
    except ValidationError:
        raise ValidationError(f"timeRange must be two ISO 8601 timestamps separated by a comma, got '{value}'")
    if end < start:
        raise ValidationError(f"timeRange ends before it starts: '{value}'")
    return start, end


class SuitabilityEngine:
    def __init__(
        self,
        resolver: ObservationResolver,
        thresholds: ThresholdProvider,
        points: PointDirectory,
        history: HistoryStore,
        indicators: IndicatorStore,
        projector: TimeProjector,
        grids: RiskGridGenerator,
        evaluator: Optional[FactorEvaluator] = None,
        scorer: Optional[CompositeScorer] = None,
        default_aircraft_id: str = "aircraft-1",
        default_point_id: str = "point-1",
        history_limit: int = 200,
        indicator_limit: int = 50,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.resolver = resolver
        self.thresholds = thresholds
        self.points = points
        self.history = history
        self.indicators = indicators
        self.projector = projector
        self.grids = grids
        self.evaluator = evaluator or FactorEvaluator()
        self.scorer = scorer or CompositeScorer()
        self.default_aircraft_id = default_aircraft_id
        self.default_point_id = default_point_id
        self.history_limit = history_limit
        self.indicator_limit = indicator_limit
        self.clock = clock

    # ==================== POINTS ====================

    def resolve_point_id(self, point_id: Optional[str]) -> str:
        """Given point, else the selected point, else the first active one"""
        if point_id and point_id.strip():
            return point_id.strip()
        selected = self.points.get_selected()
        if selected is not None:
            return selected.id
        active = self.points.list_active()
        if active:
            return active[0].id
        logger.warning(f"No monitoring point selected or active, using {self.default_point_id}")
        return self.default_point_id

    def require_point(self, point_id: Optional[str]) -> PointInfo:
        if not point_id or not point_id.strip():
            raise ValidationError("pointId is required")
        return self.points.get_by_id(point_id.strip())

    # ==================== REALTIME / SNAPSHOT ====================

    def get_realtime_weather(self, point_id: str) -> Dict[str, Any]:
        point = self.require_point(point_id)
        observation = self.resolver.get_latest(point.id)
        return {
            "updateTime": self.clock().isoformat(),
            "pointId": point.id,
            "data": observation.to_dict(),
        }

    def evaluate(self, point_id: str, aircraft_id: Optional[str] = None):
        """Current observation, limits and snapshot for a point"""
        observation = self.resolver.get_latest(point_id)
        profile = self.thresholds.get_profile(aircraft_id or self.default_aircraft_id)
        factors = self.evaluator.evaluate(observation, profile)
        percentage, recommendation = self.scorer.score(factors)
        snapshot = SuitabilitySnapshot(self.clock(), factors, percentage, recommendation)
        return observation, profile, snapshot

    # ==================== STATUS ====================

    def get_suitability_status(self, point_id: Optional[str], factor: Optional[str] = None,
                               total_hours: Optional[int] = 24,
                               aircraft_id: Optional[str] = None) -> Dict[str, Any]:
        """Current snapshot plus the projected series, persisted as history"""
        point = self.require_point(point_id)
        selected = select_factors(factor)
        if total_hours is None:
            total_hours = 24
        if total_hours < 0:
            raise ValidationError(f"totalHours must be a non-negative integer, got {total_hours}")
        aircraft_id = aircraft_id or self.default_aircraft_id

        observation, profile, snapshot = self.evaluate(point.id, aircraft_id)
        series = self.projector.project(snapshot.factors, total_hours, point.id, start=snapshot.calculated_at)
        persisted = self._write_history(point.id, series, total_hours)

        return {
            "updateTime": self.clock().isoformat(),
            "pointId": point.id,
            "aircraftId": aircraft_id,
            "totalHours": total_hours,
            "timeInterval": self.projector.interval_minutes,
            "current": snapshot.to_dict(),
            "suitabilityList": [self._factor_series(f, series) for f in selected],
            "overallScores": [round(p.overall_suitability, 2) for p in series],
            "metadata": {
                "calculationMethod": "real_time_analysis",
                "thresholdSource": "aircraft_limits",
                "thresholds": profile.model_dump(),
                "weatherDataSource": observation.source,
                "weatherDataQuality": observation.quality,
                "observedAt": observation.observed_at.isoformat(),
                "pointCount": len(series),
                "persisted": persisted,
                "generatedAt": self.clock().isoformat(),
            },
        }

    @staticmethod
    def _factor_series(factor: Factor, series: List[TimePointProjection]) -> Dict[str, Any]:
        detail = []
        for projection in series:
            result = projection.factor(factor)
            if result is None:
                continue
            detail.append({
                "timePoint": projection.time_point.isoformat(),
                "statusData": result.suitable,
                "valueData": f"{result.value:.1f}",
            })
        return {"factor": factor.label, "factorKey": factor.value, "detail": detail}

    def _write_history(self, point_id: str, series: List[TimePointProjection], total_hours: int) -> bool:
        rows = [
            HistoryRow(
                point_id=point_id,
                factor=result.factor.label,
                time_point=projection.time_point,
                is_suitable=result.suitable,
                value=round(result.value, 2),
                time_interval=INTERVAL_MINUTES,
                total_hours=total_hours,
            )
            for projection in series
            for result in projection.factors
        ]
        try:
            self.history.replace_window(point_id, rows)
        except Exception as e:
            logger.error(f"Failed to persist suitability history for {point_id}: {e}")
            return False
        return True

    # ==================== HISTORY HEATMAP ====================

    def get_suitability_heatmap(self, time_point: Optional[str] = None,
                                factor: Optional[str] = None) -> Dict[str, Any]:
        around = parse_time_point(time_point) if time_point else None
        label = None
        if factor and factor.strip() and factor.strip().lower() not in OVERALL_FACTOR_NAMES:
            label = select_factors(factor)[0].label

        rows = self.history.recent(factor=label, around=around, tolerance=HEATMAP_TOLERANCE,
                                   limit=self.history_limit)
        return {
            "updateTime": self.clock().isoformat(),
            "timePoint": time_point,
            "factor": label,
            "count": len(rows),
            "data": rows,
        }

    # ==================== METEOROLOGY ====================

    def get_core_indicators(self, point_id: Optional[str] = None) -> Dict[str, Any]:
        latest = {}
        for row in self.indicators.recent_indicators(point_id, limit=self.indicator_limit):
            latest.setdefault(row["indicatorId"], row)
        return {
            "updateTime": self.clock().isoformat(),
            "pointId": point_id,
            "indicators": list(latest.values()),
        }

    def get_vertical_profile(self, point_id: str, time_type: Optional[str] = "current") -> Dict[str, Any]:
        point = self.require_point(point_id)
        if time_type not in PROFILE_WINDOWS:
            time_type = "current"
        since = self.clock() - PROFILE_WINDOWS[time_type]
        return {
            "updateTime": self.clock().isoformat(),
            "pointId": point.id,
            "timeType": time_type,
            "heightLayers": self.indicators.vertical_profile(point.id, since),
            "safetyThresholds": dict(SAFETY_THRESHOLDS),
        }

    # ==================== WIND / MICROSCALE ====================

    def get_wind_trend(self, point_id: str, time_range: Optional[str] = None) -> Dict[str, Any]:
        """Wind speed and direction line for a point, oldest first; the last 24h by default"""
        point = self.require_point(point_id)
        window = parse_time_range(time_range)
        if window is None:
            now = self.clock()
            window = (now - WIND_TREND_WINDOW, now)
        start, end = window
        return {
            "updateTime": self.clock().isoformat(),
            "pointId": point.id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "data": self.indicators.wind_trend(point.id, start, end),
        }

    def get_wind_field(self, time_range: Optional[str] = None, height: Optional[int] = None) -> Dict[str, Any]:
        start, end = parse_time_range(time_range) or (None, None)
        data = self.indicators.wind_field(height, start, end, limit=WIND_FIELD_LIMIT)
        return {
            "updateTime": self.clock().isoformat(),
            "height": height,
            "count": len(data),
            "data": data,
        }

    def get_microscale_weather(self, region: Optional[str] = None,
                               time_range: Optional[str] = None) -> Dict[str, Any]:
        start, end = parse_time_range(time_range) or (None, None)
        data = self.indicators.microscale(region, start, end, limit=MICROSCALE_LIMIT)
        return {
            "updateTime": self.clock().isoformat(),
            "region": region,
            "count": len(data),
            "data": data,
        }

    # ==================== RISK GRIDS ====================

    def chart_heatmap(self, point_id: Optional[str], time_range: str = "3h", resolution: str = "medium",
                      for_route_analysis: bool = False) -> Dict[str, Any]:
        if point_id:
            point_id = self.require_point(point_id).id
        else:
            point_id = self.resolve_point_id(None)
        return {
            "updateTime": self.clock().isoformat(),
            "pointId": point_id,
            "timeRange": time_range,
            "resolution": resolution,
            "forRouteAnalysis": for_route_analysis,
            "data": self.grids.chart_heatmap(point_id, time_range, resolution, for_route_analysis),
            "dataType": "chart_heatmap",
        }

    def geo_heatmap(self, bounds: Optional[str] = None, time: Optional[str] = None,
                    resolution: str = "medium", point_id: Optional[str] = None) -> Dict[str, Any]:
        """Map grid over the requested bounds, else the point's bbox, else the default box"""
        if point_id:
            point_id = self.require_point(point_id).id
        return {
            "updateTime": self.clock().isoformat(),
            "bounds": bounds,
            "time": time or self.clock().isoformat(),
            "resolution": resolution,
            "pointId": point_id,
            "data": self.grids.geo_heatmap(bounds, time, resolution, point_id),
            "dataType": "geo_heatmap",
        }

    def area_heatmap(self, point_id: Optional[str], time_range: str = "3h", resolution: str = "medium",
                     bounds: Optional[str] = None, for_route_analysis: bool = False) -> Dict[str, Any]:
        if point_id:
            point_id = self.require_point(point_id).id
        else:
            point_id = self.resolve_point_id(None)
        return {
            "updateTime": self.clock().isoformat(),
            "pointId": point_id,
            "timeRange": time_range,
            "resolution": resolution,
            "bounds": bounds,
            "forRouteAnalysis": for_route_analysis,
            "data": self.grids.area_heatmap(point_id, time_range, resolution, bounds, for_route_analysis),
            "dataType": "area_heatmap",
        }

    def weather_heatmap(self, point_id: Optional[str] = None, time_range: str = "3h",
                        resolution: str = "medium", bounds: Optional[str] = None,
                        for_route_analysis: bool = False) -> Dict[str, Any]:
        """Area grid when bounds are given, otherwise the point's chart grid"""
        if bounds:
            return self.area_heatmap(point_id, time_range, resolution, bounds, for_route_analysis)
        result = self.chart_heatmap(point_id, time_range, resolution, for_route_analysis)
        result["dataType"] = "point_heatmap"
        return result

    def batch_heatmap(self, area_ids: str, time_range: str = "3h", resolution: str = "medium") -> Dict[str, Any]:
        ids = [a.strip() for a in (area_ids or "").split(",") if a.strip()]
        if not ids:
            raise ValidationError("areaIds must name at least one monitoring point")
        for area_id in ids:
            self.require_point(area_id)

        data = {
            area_id: self.grids.chart_heatmap(area_id, time_range, resolution, for_route_analysis=True)
            for area_id in ids
        }
        return {
            "updateTime": self.clock().isoformat(),
            "areaIds": ids,
            "timeRange": time_range,
            "resolution": resolution,
            "data": data,
        }
