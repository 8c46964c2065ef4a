"""
Flight Weather Suitability API
FastAPI backend for the flight suitability dashboard
Serves suitability status, risk heatmaps and meteorology panels per monitoring point
"""

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
from datetime import datetime, timedelta, timezone
from contextlib import asynccontextmanager
from sqlalchemy.orm import Session
import logging
import random

from .config import Settings, get_settings, setup_logging
from .errors import FlightWxError
from .models import DatabaseManager
from .observations import ObservationResolver
from .projection import TimeProjector
from .risk_grid import RiskGridGenerator
from .storage import (
    SqlIndicatorStore,
    SqlMonitoringPointDirectory,
    SqlObservationStore,
    SqlSuitabilityHistoryStore,
    SqlThresholdStore,
)
from .suitability import SuitabilityEngine
from .thresholds import ThresholdProvider
from .weather_provider import OpenMeteoProvider

logger = logging.getLogger(__name__)


# ==================== DATA HEALTH TRACKING ====================

class DataHealthTracker:
    """Tracks weather provider call statistics"""
    def __init__(self):
        self.api_calls = {}  # endpoint -> {count, last_call, last_success, errors}
        self.start_time = datetime.now(timezone.utc)

    def record_call(self, endpoint: str, success: bool, response_time_ms: float = 0):
        if endpoint not in self.api_calls:
            self.api_calls[endpoint] = {
                "total_calls": 0,
                "successful_calls": 0,
                "failed_calls": 0,
                "last_call": None,
                "last_success": None,
                "last_error": None,
                "avg_response_time_ms": 0,
                "total_response_time_ms": 0
            }

        stats = self.api_calls[endpoint]
        stats["total_calls"] += 1
        stats["last_call"] = datetime.now(timezone.utc).isoformat()
        stats["total_response_time_ms"] += response_time_ms
        stats["avg_response_time_ms"] = stats["total_response_time_ms"] / stats["total_calls"]

        if success:
            stats["successful_calls"] += 1
            stats["last_success"] = stats["last_call"]
        else:
            stats["failed_calls"] += 1
            stats["last_error"] = stats["last_call"]

    def get_stats(self):
        uptime = datetime.now(timezone.utc) - self.start_time
        return {
            "uptime_seconds": int(uptime.total_seconds()),
            "uptime_formatted": str(uptime).split('.')[0],
            "start_time": self.start_time.isoformat(),
            "endpoints": self.api_calls
        }

health_tracker = DataHealthTracker()

db_manager = DatabaseManager(get_settings().DATABASE_URL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events"""
    settings = get_settings()
    setup_logging(settings)
    db_manager.create_tables()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting up")
    logger.info(f"External provider: {'enabled' if settings.USE_EXTERNAL_PROVIDER else 'disabled'}")

    yield

    logger.info(f"{settings.APP_NAME} shutting down")


app = FastAPI(
    title="Flight Weather Suitability API",
    description="Suitability analysis and risk heatmaps for monitored flight areas",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FlightWxError)
async def flightwx_error_handler(request: Request, exc: FlightWxError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


# ==================== DEPENDENCIES ====================

def get_db():
    yield from db_manager.get_session()


def get_provider(settings: Settings = Depends(get_settings)) -> Optional[OpenMeteoProvider]:
    if not settings.USE_EXTERNAL_PROVIDER:
        return None
    return OpenMeteoProvider(
        base_url=settings.OPENMETEO_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        on_call=health_tracker.record_call,
    )


def get_rng() -> random.Random:
    return random.Random()


def build_engine(db: Session, provider, rng: random.Random, settings: Settings,
                 clock=datetime.now) -> SuitabilityEngine:
    """Wire the engine and its SQLAlchemy-backed collaborators for one request"""
    points = SqlMonitoringPointDirectory(db)
    resolver = ObservationResolver(
        store=SqlObservationStore(db),
        points=points,
        provider=provider,
        freshness=timedelta(minutes=settings.OBSERVATION_FRESHNESS_MINUTES),
        clock=clock,
    )
    thresholds = ThresholdProvider(SqlThresholdStore(db))
    grids = RiskGridGenerator(
        resolver=resolver,
        thresholds=thresholds,
        points=points,
        rng=rng,
        default_bounds=settings.DEFAULT_BOUNDS,
        clock=clock,
        aircraft_id=settings.DEFAULT_AIRCRAFT_ID,
    )
    return SuitabilityEngine(
        resolver=resolver,
        thresholds=thresholds,
        points=points,
        history=SqlSuitabilityHistoryStore(db),
        indicators=SqlIndicatorStore(db),
        projector=TimeProjector(rng=rng, clock=clock),
        grids=grids,
        default_aircraft_id=settings.DEFAULT_AIRCRAFT_ID,
        default_point_id=settings.DEFAULT_POINT_ID,
        history_limit=settings.HISTORY_QUERY_LIMIT,
        indicator_limit=settings.INDICATOR_QUERY_LIMIT,
        clock=clock,
    )


def get_engine(
    db: Session = Depends(get_db),
    provider: Optional[OpenMeteoProvider] = Depends(get_provider),
    rng: random.Random = Depends(get_rng),
    settings: Settings = Depends(get_settings),
) -> SuitabilityEngine:
    return build_engine(db, provider, rng, settings)


# ==================== HEALTH ====================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.APP_VERSION,
        "services": {
            "open_meteo": "enabled" if settings.USE_EXTERNAL_PROVIDER else "disabled"
        }
    }

@app.get("/api/data-health")
async def get_data_health():
    """Weather provider call statistics since startup"""
    settings = get_settings()
    return {
        **health_tracker.get_stats(),
        "provider": {
            "name": OpenMeteoProvider.name,
            "enabled": settings.USE_EXTERNAL_PROVIDER,
            "base_url": settings.OPENMETEO_BASE_URL,
            "timeout_seconds": settings.PROVIDER_TIMEOUT_SECONDS,
        },
        "current_time": datetime.now(timezone.utc).isoformat()
    }

# ==================== MONITORING POINTS ====================

@app.get("/api/monitoring-points")
def list_monitoring_points(db: Session = Depends(get_db)):
    """Active monitoring points"""
    points = SqlMonitoringPointDirectory(db).list_active()
    return {"count": len(points), "data": [p.to_dict() for p in points]}

@app.get("/api/monitoring-points/selected")
def get_selected_point(engine: SuitabilityEngine = Depends(get_engine)):
    """The selected point, falling back to the first active one"""
    return engine.require_point(engine.resolve_point_id(None)).to_dict()

@app.get("/api/monitoring-points/{point_id}")
def get_monitoring_point(point_id: str, db: Session = Depends(get_db)):
    return SqlMonitoringPointDirectory(db).get_by_id(point_id).to_dict()

# ==================== WEATHER ====================

@app.get("/api/weather/realtime")
def get_realtime_weather(
    point_id: str = Query(..., alias="pointId"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    """Latest observation for a point, refreshed from the provider when stale"""
    return engine.get_realtime_weather(point_id)

@app.get("/api/weather/wind-trend")
def get_wind_trend(
    point_id: str = Query(..., alias="pointId"),
    time_range: Optional[str] = Query(None, alias="timeRange", description="start,end (ISO 8601)"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    """Wind speed/direction line chart for a point"""
    return engine.get_wind_trend(point_id, time_range)

@app.get("/api/weather/wind-field")
def get_wind_field(
    time_range: Optional[str] = Query(None, alias="timeRange", description="start,end (ISO 8601)"),
    height: Optional[int] = Query(None, description="height layer in metres, all layers if omitted"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    """3D wind vectors for the map's particle layer"""
    return engine.get_wind_field(time_range, height)

@app.get("/api/weather/wind")
def get_latest_wind_field(engine: SuitabilityEngine = Depends(get_engine)):
    return engine.get_wind_field()

@app.get("/api/weather/microscale")
def get_microscale_weather(
    region: Optional[str] = Query(None),
    time_range: Optional[str] = Query(None, alias="timeRange", description="start,end (ISO 8601)"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    """Gridded microscale risk cells for a region"""
    return engine.get_microscale_weather(region, time_range)

# ==================== SUITABILITY ====================

@app.get("/api/suitability/status")
def get_suitability_status(
    point_id: str = Query(..., alias="pointId"),
    factor: Optional[str] = Query(None, description="综合/overall or one of the six factors"),
    total_hours: int = Query(24, alias="totalHours", ge=0, le=168),
    aircraft_id: Optional[str] = Query(None, alias="aircraftId"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    """Current suitability and its projection in 10-minute steps"""
    return engine.get_suitability_status(point_id, factor, total_hours, aircraft_id)

@app.get("/api/suitability/heatmap")
def get_suitability_heatmap(
    time_point: Optional[str] = Query(None, alias="timePoint", description="ISO 8601"),
    factor: Optional[str] = Query(None),
    engine: SuitabilityEngine = Depends(get_engine),
):
    return engine.get_suitability_heatmap(time_point, factor)

# ==================== METEOROLOGY ====================

@app.get("/api/meteorology/core-indicators")
def get_core_indicators(
    point_id: Optional[str] = Query(None, alias="pointId"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    return engine.get_core_indicators(point_id)

@app.get("/api/meteorology/vertical-profile")
def get_vertical_profile(
    point_id: str = Query(..., alias="pointId"),
    time_type: str = Query("current", alias="timeType", description="current/1h/3h/6h"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    return engine.get_vertical_profile(point_id, time_type)

# ==================== RISK HEATMAPS ====================

@app.get("/api/weather/heatmap")
def get_weather_heatmap(
    point_id: Optional[str] = Query(None, alias="pointId"),
    time_range: str = Query("3h", alias="timeRange"),
    resolution: str = Query("medium"),
    bounds: Optional[str] = Query(None, description="[minLng,minLat,maxLng,maxLat]"),
    for_route_analysis: bool = Query(False, alias="forRouteAnalysis"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    """Area grid when bounds are given, otherwise the point's chart grid"""
    return engine.weather_heatmap(point_id, time_range, resolution, bounds, for_route_analysis)

@app.get("/api/weather/heatmap/chart")
def get_weather_heatmap_chart(
    point_id: Optional[str] = Query(None, alias="pointId"),
    time_range: str = Query("3h", alias="timeRange"),
    resolution: str = Query("medium"),
    for_route_analysis: bool = Query(False, alias="forRouteAnalysis"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    return engine.chart_heatmap(point_id, time_range, resolution, for_route_analysis)

@app.get("/api/weather/heatmap/geo")
def get_weather_heatmap_geo(
    point_id: Optional[str] = Query(None, alias="pointId"),
    bounds: Optional[str] = Query(None),
    time: Optional[str] = Query(None, description="ISO 8601"),
    resolution: str = Query("medium"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    return engine.geo_heatmap(bounds, time, resolution, point_id)

@app.get("/api/weather/heatmap/batch")
def get_weather_heatmap_batch(
    area_ids: str = Query(..., alias="areaIds", description="comma-separated point ids"),
    time_range: str = Query("3h", alias="timeRange"),
    resolution: str = Query("medium"),
    engine: SuitabilityEngine = Depends(get_engine),
):
    """Chart grids for several points, tuned for route analysis"""
    return engine.batch_heatmap(area_ids, time_range, resolution)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
