"""
SQLAlchemy-backed stores

Implements the collaborator contracts consumed by the engine: observations,
aircraft limits, the monitoring point directory, suitability history, and the
read-only dashboard tables (indicators, vertical profile, wind and microscale
feeds).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .models import (
    AircraftLimit,
    CoreIndicator,
    MicroscaleWeather,
    MonitoringPoint,
    SuitabilityAnalysis,
    VerticalProfile,
    WeatherObservation,
    WindField,
    WindTrend,
)
from .observations import Observation

logger = logging.getLogger(__name__)

TIME_POINT_FORMAT = "%Y-%m-%d %H:%M:%S"


# ==================== MONITORING POINTS ====================

@dataclass(frozen=True)
class PointInfo:
    """Location data the engine needs from a monitoring point"""
    id: str
    name: str
    longitude: float
    latitude: float
    bbox_min_lng: Optional[float] = None
    bbox_min_lat: Optional[float] = None
    bbox_max_lng: Optional[float] = None
    bbox_max_lat: Optional[float] = None
    is_active: bool = True
    is_selected: bool = False

    @property
    def bbox(self) -> Optional[Tuple[float, float, float, float]]:
        corners = (self.bbox_min_lng, self.bbox_min_lat, self.bbox_max_lng, self.bbox_max_lat)
        if any(c is None for c in corners):
            return None
        return corners

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "longitude": self.longitude,
            "latitude": self.latitude,
            "bbox": list(self.bbox) if self.bbox else None,
            "isActive": self.is_active,
            "isSelected": self.is_selected,
        }

    @classmethod
    def from_row(cls, row: MonitoringPoint) -> "PointInfo":
        return cls(
            id=row.id,
            name=row.name,
            longitude=row.longitude,
            latitude=row.latitude,
            bbox_min_lng=row.bbox_min_lng,
            bbox_min_lat=row.bbox_min_lat,
            bbox_max_lng=row.bbox_max_lng,
            bbox_max_lat=row.bbox_max_lat,
            is_active=bool(row.is_active),
            is_selected=bool(row.is_selected),
        )


class SqlMonitoringPointDirectory:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, point_id: str) -> PointInfo:
        row = self.session.get(MonitoringPoint, point_id)
        if row is None:
            raise NotFoundError(f"Monitoring point {point_id} not found")
        return PointInfo.from_row(row)

    def list_active(self) -> List[PointInfo]:
        rows = self.session.scalars(
            select(MonitoringPoint)
            .where(MonitoringPoint.is_active.is_(True))
            .order_by(MonitoringPoint.id)
        ).all()
        return [PointInfo.from_row(r) for r in rows]

    def get_selected(self) -> Optional[PointInfo]:
        row = self.session.scalars(
            select(MonitoringPoint)
            .where(MonitoringPoint.is_selected.is_(True), MonitoringPoint.is_active.is_(True))
            .limit(1)
        ).first()
        return PointInfo.from_row(row) if row else None


# ==================== OBSERVATIONS ====================

class SqlObservationStore:
    def __init__(self, session: Session):
        self.session = session

    def get_latest(self, point_id: str) -> Optional[Observation]:
        row = self.session.scalars(
            select(WeatherObservation)
            .where(WeatherObservation.point_id == point_id)
            .order_by(WeatherObservation.obs_time.desc())
            .limit(1)
        ).first()
        if row is None:
            return None
        return Observation.from_raw(
            row.point_id,
            row.obs_time,
            {
                "temperature": row.temperature,
                "wind_speed": row.wind_speed,
                "wind_direction": row.wind_direction,
                "visibility": row.visibility,
                "precipitation": row.precipitation,
                "humidity": row.humidity,
                "pressure": row.pressure,
                "cloud_cover": row.cloud_cover,
                "wind_shear_level": row.wind_shear_level,
                "stability_index": row.stability_index,
            },
            source=row.data_source or "unknown",
            quality=row.data_quality if row.data_quality is not None else 0,
            record_id=row.id,
        )

    def insert(self, observation: Observation) -> int:
        raw = observation.to_raw()
        row = WeatherObservation(
            point_id=observation.point_id,
            obs_time=observation.observed_at,
            temperature=raw["temperature"],
            wind_speed=raw["wind_speed"],
            wind_direction=raw["wind_direction"],
            humidity=int(round(raw["humidity"])) if raw["humidity"] is not None else None,
            precipitation=raw["precipitation"],
            pressure=raw["pressure"],
            visibility=raw["visibility"],
            cloud_cover=raw["cloud_cover"],
            wind_shear_level=raw["wind_shear_level"],
            stability_index=raw["stability_index"],
            data_source=observation.source,
            data_quality=observation.quality,
        )
        try:
            self.session.add(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return row.id


# ==================== AIRCRAFT LIMITS ====================

class SqlThresholdStore:
    def __init__(self, session: Session):
        self.session = session

    def get_by_aircraft(self, aircraft_id: str) -> Optional[Dict[str, Any]]:
        row = self.session.scalars(
            select(AircraftLimit).where(AircraftLimit.aircraft_id == aircraft_id).limit(1)
        ).first()
        if row is None:
            return None
        return {
            "max_wind_speed": row.max_wind_speed,
            "max_wind_shear": row.max_wind_shear,
            "min_visibility": row.min_visibility,
            "max_precipitation": row.max_precipitation,
            "min_cloud_base": row.min_cloud_base,
            "temp_min": row.temp_min,
            "temp_max": row.temp_max,
            "max_humidity": row.max_humidity,
            "max_turbulence_level": row.max_turbulence_level,
        }


# ==================== SUITABILITY HISTORY ====================

def history_row_to_dict(row: SuitabilityAnalysis) -> Dict[str, Any]:
    return {
        "id": row.id,
        "pointId": row.point_id,
        "analysisTime": row.analysis_time.isoformat() if row.analysis_time else None,
        "timeInterval": row.time_interval,
        "totalHours": row.total_hours,
        "factor": row.factor,
        "timePoint": row.time_point,
        "isSuitable": row.is_suitable,
        "abnormalValue": row.abnormal_value,
    }


@dataclass(frozen=True)
class HistoryRow:
    """One factor verdict at one projected time point"""
    point_id: str
    factor: str
    time_point: datetime
    is_suitable: bool
    value: float
    time_interval: int = 10
    total_hours: int = 0


class SqlSuitabilityHistoryStore:
    def __init__(self, session: Session):
        self.session = session

    def delete_since(self, point_id: str, since: datetime) -> int:
        try:
            result = self.session.execute(
                delete(SuitabilityAnalysis).where(
                    SuitabilityAnalysis.point_id == point_id,
                    SuitabilityAnalysis.analysis_time >= since,
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result.rowcount

    def insert(self, factor: str, time_point: datetime, point_id: str, is_suitable: bool,
               value: float, time_interval: int = 10, total_hours: int = 0) -> int:
        row = self._build(HistoryRow(point_id, factor, time_point, is_suitable, value,
                                     time_interval, total_hours))
        try:
            self.session.add(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return row.id

    def replace_window(self, point_id: str, rows: Iterable[HistoryRow]) -> int:
        """
        Replace the point's history inside the new rows' time window.

        Rows outside [first, last] analysis time are untouched. Delete and
        insert share one transaction.
        """
        rows = list(rows)
        if not rows:
            return 0
        window_start = min(r.time_point for r in rows)
        window_end = max(r.time_point for r in rows)

        try:
            self.session.execute(
                delete(SuitabilityAnalysis).where(
                    SuitabilityAnalysis.point_id == point_id,
                    SuitabilityAnalysis.analysis_time >= window_start,
                    SuitabilityAnalysis.analysis_time <= window_end,
                )
            )
            self.session.add_all([self._build(r) for r in rows])
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.debug(f"Replaced {len(rows)} history rows for {point_id} "
                     f"between {window_start} and {window_end}")
        return len(rows)

    def recent(self, factor: Optional[str] = None, around: Optional[datetime] = None,
               tolerance: timedelta = timedelta(minutes=5), limit: int = 200) -> List[Dict[str, Any]]:
        query = select(SuitabilityAnalysis)
        if factor:
            query = query.where(SuitabilityAnalysis.factor == factor)
        if around is not None:
            query = query.where(
                SuitabilityAnalysis.analysis_time >= around - tolerance,
                SuitabilityAnalysis.analysis_time <= around + tolerance,
            )
        query = query.order_by(SuitabilityAnalysis.analysis_time.desc()).limit(limit)
        return [history_row_to_dict(r) for r in self.session.scalars(query).all()]

    @staticmethod
    def _build(row: HistoryRow) -> SuitabilityAnalysis:
        return SuitabilityAnalysis(
            point_id=row.point_id,
            analysis_time=row.time_point,
            time_interval=row.time_interval,
            total_hours=row.total_hours,
            factor=row.factor[:50],
            time_point=row.time_point.strftime(TIME_POINT_FORMAT),
            is_suitable=row.is_suitable,
            abnormal_value=row.value,
        )


# ==================== INDICATORS / VERTICAL PROFILE ====================

class SqlIndicatorStore:
    def __init__(self, session: Session):
        self.session = session

    def recent_indicators(self, point_id: Optional[str], limit: int = 50) -> List[Dict[str, Any]]:
        query = select(CoreIndicator)
        if point_id is not None:
            query = query.where(CoreIndicator.point_id == point_id)
        query = query.order_by(CoreIndicator.data_time.desc()).limit(limit)
        return [
            {
                "id": r.id,
                "pointId": r.point_id,
                "dataTime": r.data_time.isoformat(),
                "indicatorId": r.indicator_id,
                "indicatorName": r.indicator_name,
                "value": r.value,
                "unit": r.unit,
                "precision": r.precision,
                "status": r.status,
                "thresholdWarning": r.threshold_warning,
                "thresholdDanger": r.threshold_danger,
            }
            for r in self.session.scalars(query).all()
        ]

    def vertical_profile(self, point_id: str, since: datetime) -> List[Dict[str, Any]]:
        query = (
            select(VerticalProfile)
            .where(VerticalProfile.point_id == point_id, VerticalProfile.data_time >= since)
            .order_by(VerticalProfile.height.asc())
        )
        return [
            {
                "id": r.id,
                "pointId": r.point_id,
                "dataTime": r.data_time.isoformat(),
                "height": r.height,
                "windSpeed": r.wind_speed,
                "temperature": r.temperature,
                "humidity": r.humidity,
                "visibility": r.visibility,
                "pressure": r.pressure,
                "turbulenceLevel": r.turbulence_level,
            }
            for r in self.session.scalars(query).all()
        ]

    # ==================== WIND / MICROSCALE FEEDS ====================

    def wind_trend(self, point_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        query = (
            select(WindTrend)
            .where(WindTrend.point_id == point_id, WindTrend.data_time.between(start, end))
            .order_by(WindTrend.data_time.asc())
        )
        return [
            {
                "id": r.id,
                "pointId": r.point_id,
                "dataTime": r.data_time.isoformat(),
                "timeLabel": r.time_label or r.data_time.strftime("%H:%M"),
                "windSpeed": r.wind_speed,
                "windDir": r.wind_dir,
                "upperLimit": r.upper_limit,
                "lowerLimit": r.lower_limit,
                "deviation": r.deviation,
            }
            for r in self.session.scalars(query).all()
        ]

    def wind_field(self, height: Optional[int] = None, start: Optional[datetime] = None,
                   end: Optional[datetime] = None, limit: int = 500) -> List[Dict[str, Any]]:
        query = select(WindField)
        if height is not None:
            query = query.where(WindField.height == height)
        if start is not None and end is not None:
            query = query.where(WindField.data_time.between(start, end))
        query = query.order_by(WindField.data_time.desc(), WindField.id).limit(limit)
        return [
            {
                "id": r.id,
                "dataTime": r.data_time.isoformat(),
                "height": r.height,
                "longitude": r.longitude,
                "latitude": r.latitude,
                "uComponent": r.u_component,
                "vComponent": r.v_component,
                "speed": r.speed,
                "direction": r.direction,
            }
            for r in self.session.scalars(query).all()
        ]

    def microscale(self, region: Optional[str] = None, start: Optional[datetime] = None,
                   end: Optional[datetime] = None, limit: int = 1000) -> List[Dict[str, Any]]:
        query = select(MicroscaleWeather)
        if region:
            query = query.where(MicroscaleWeather.region == region)
        if start is not None and end is not None:
            query = query.where(MicroscaleWeather.data_time.between(start, end))
        query = query.order_by(MicroscaleWeather.data_time.desc(), MicroscaleWeather.id).limit(limit)
        return [
            {
                "id": r.id,
                "region": r.region,
                "dataTime": r.data_time.isoformat(),
                "gridSize": r.grid_size,
                "gridX": r.grid_x,
                "gridY": r.grid_y,
                "riskLevel": r.risk_level,
                "windSpeed": r.wind_speed,
                "windShear": r.wind_shear,
                "turbulence": r.turbulence,
            }
            for r in self.session.scalars(query).all()
        ]
