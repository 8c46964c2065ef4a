"""
Pytest configuration and fixtures for the Flight Weather Suitability API tests.
Every test runs against a fresh in-memory SQLite database and stub providers;
no test reaches the network.
"""

import random
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from flightwx.config import Settings
from flightwx.errors import UpstreamError
from flightwx.main import app, build_engine, get_db, get_engine, get_provider, get_rng
from flightwx.models import (
    AircraftLimit,
    CoreIndicator,
    DatabaseManager,
    MicroscaleWeather,
    MonitoringPoint,
    VerticalProfile,
    WindField,
    WindTrend,
)

FIXED_NOW = datetime(2026, 5, 1, 12, 0, 0)


class StubProvider:
    """Always returns the same fair-weather fields (wind in km/h)"""
    name = "stub"

    def __init__(self, raw=None):
        self.raw = raw or {
            "temperature": 20.0,
            "wind_speed": 18.0,
            "wind_direction": 90,
            "humidity": 60,
            "precipitation": 0.0,
            "pressure": 1012.0,
            "visibility": 12.0,
            "cloud_cover": 20,
            "wind_shear_level": "low",
            "stability_index": "B",
        }
        self.calls = []

    def fetch(self, longitude, latitude):
        self.calls.append((longitude, latitude))
        return dict(self.raw)


class FailingProvider:
    """Always raises, like an unreachable upstream"""
    name = "failing"

    def __init__(self):
        self.calls = 0

    def fetch(self, longitude, latitude):
        self.calls += 1
        raise UpstreamError("provider offline")


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def fair_raw():
    """Provider fields for calm, clear weather"""
    return dict(StubProvider().raw)


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def failing_provider():
    return FailingProvider()


@pytest.fixture
def rng():
    """Seeded random source for reproducible jitter."""
    return random.Random(42)


@pytest.fixture
def db_manager():
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    yield manager
    manager.drop_all_tables()


@pytest.fixture
def session(db_manager):
    db = db_manager.SessionLocal()
    yield db
    db.close()


@pytest.fixture
def seeded_session(session):
    """Two active points (only point-1 has a bounding box) and limits for aircraft-1."""
    session.add_all([
        MonitoringPoint(
            id="point-1", name="Harbor Approach", code="HBR", type="airport",
            longitude=120.5, latitude=36.5,
            bbox_min_lng=120.0, bbox_min_lat=36.0, bbox_max_lng=121.0, bbox_max_lat=37.0,
            is_active=True, is_selected=True,
        ),
        MonitoringPoint(
            id="point-2", name="Ridge Corridor", code="RDG", type="route",
            longitude=120.2, latitude=36.1,
            is_active=True, is_selected=False,
        ),
        MonitoringPoint(
            id="point-9", name="Retired Field", longitude=119.0, latitude=35.0,
            is_active=False, is_selected=False,
        ),
        AircraftLimit(
            aircraft_id="aircraft-1", max_wind_speed=10.0, min_visibility=2.0,
            max_precipitation=3.0, max_humidity=85,
        ),
    ])
    session.commit()
    return session


@pytest.fixture
def meteorology_rows(seeded_session):
    """Indicator, vertical profile, wind and microscale rows around FIXED_NOW."""
    seeded_session.add_all([
        CoreIndicator(point_id="point-1", data_time=FIXED_NOW - timedelta(minutes=20),
                      indicator_id="wind", indicator_name="风速", value=6.5, unit="m/s"),
        CoreIndicator(point_id="point-1", data_time=FIXED_NOW - timedelta(minutes=5),
                      indicator_id="wind", indicator_name="风速", value=7.1, unit="m/s"),
        CoreIndicator(point_id="point-1", data_time=FIXED_NOW - timedelta(minutes=10),
                      indicator_id="temp", indicator_name="温度", value=18.0, unit="°C"),
        VerticalProfile(point_id="point-1", data_time=FIXED_NOW - timedelta(minutes=10),
                        height=300, wind_speed=9.0, temperature=16.0, humidity=70),
        VerticalProfile(point_id="point-1", data_time=FIXED_NOW - timedelta(minutes=10),
                        height=100, wind_speed=6.0, temperature=18.0, humidity=65),
        VerticalProfile(point_id="point-1", data_time=FIXED_NOW - timedelta(minutes=10),
                        height=200, wind_speed=7.5, temperature=17.0, humidity=68),
        VerticalProfile(point_id="point-1", data_time=FIXED_NOW - timedelta(hours=2),
                        height=50, wind_speed=4.0, temperature=19.0, humidity=60),
        WindTrend(point_id="point-1", data_time=FIXED_NOW - timedelta(hours=30), wind_speed=3.0, wind_dir=180),
        WindTrend(point_id="point-1", data_time=FIXED_NOW - timedelta(hours=1), time_label="11:00",
                  wind_speed=5.5, wind_dir=90, upper_limit=7.0, lower_limit=4.0, deviation=0.8),
        WindTrend(point_id="point-1", data_time=FIXED_NOW - timedelta(hours=2), wind_speed=5.0, wind_dir=85),
        WindTrend(point_id="point-2", data_time=FIXED_NOW - timedelta(hours=1), wind_speed=8.0, wind_dir=270),
        WindField(data_time=FIXED_NOW - timedelta(minutes=10), height=100, longitude=120.4, latitude=36.4,
                  u_component=3.0, v_component=4.0, speed=5.0, direction=217),
        WindField(data_time=FIXED_NOW - timedelta(minutes=10), height=100, longitude=120.6, latitude=36.6,
                  u_component=0.0, v_component=2.0, speed=2.0, direction=180),
        WindField(data_time=FIXED_NOW - timedelta(minutes=10), height=300, longitude=120.5, latitude=36.5,
                  u_component=6.0, v_component=8.0, speed=10.0, direction=217),
        WindField(data_time=FIXED_NOW - timedelta(hours=3), height=100, longitude=120.5, latitude=36.5,
                  u_component=1.0, v_component=1.0, speed=1.4, direction=225),
        MicroscaleWeather(region="青岛中心区", data_time=FIXED_NOW - timedelta(minutes=10), grid_size=100,
                          grid_x=0.0, grid_y=0.0, risk_level=1, wind_speed=6.0, wind_shear=0.8, turbulence=0.2),
        MicroscaleWeather(region="青岛中心区", data_time=FIXED_NOW - timedelta(minutes=10), grid_size=100,
                          grid_x=1.0, grid_y=0.0, risk_level=3, wind_speed=12.0, wind_shear=2.5, turbulence=0.7),
        MicroscaleWeather(region="港区", data_time=FIXED_NOW - timedelta(hours=5), grid_size=100,
                          grid_x=0.0, grid_y=0.0, risk_level=0, wind_speed=3.0, wind_shear=0.1, turbulence=0.1),
    ])
    seeded_session.commit()
    return seeded_session


@pytest.fixture
def engine(seeded_session, stub_provider, rng, clock):
    """SuitabilityEngine over the seeded database with a frozen clock."""
    return build_engine(seeded_session, stub_provider, rng, Settings(), clock=clock)


@pytest.fixture
def client(db_manager, meteorology_rows, stub_provider):
    """Create a test client wired to the in-memory database and stub provider."""
    def override_db():
        db = db_manager.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_provider] = lambda: stub_provider
    app.dependency_overrides[get_rng] = lambda: random.Random(7)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def frozen_client(client, db_manager, stub_provider):
    """Test client whose engine runs on FIXED_NOW."""
    def override_engine():
        db = db_manager.SessionLocal()
        try:
            yield build_engine(db, stub_provider, random.Random(7), Settings(), clock=lambda: FIXED_NOW)
        finally:
            db.close()

    app.dependency_overrides[get_engine] = override_engine
    return client
