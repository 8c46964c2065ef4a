"""
Database models for monitoring points, observations, suitability history and dashboard feeds
SQLAlchemy models for SQLite/PostgreSQL
"""

from sqlalchemy import create_engine, Column, Integer, String, Float, DateTime, Boolean, BigInteger
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime

Base = declarative_base()

# ==================== MONITORING POINT MODEL ====================

class MonitoringPoint(Base):
    __tablename__ = "monitoring_points"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    code = Column(String(64))
    type = Column(String(32))
    location = Column(String(200))
    longitude = Column(Float, nullable=False)
    latitude = Column(Float, nullable=False)

    # Bounding box used by the geo heatmaps
    bbox_min_lng = Column(Float)
    bbox_min_lat = Column(Float)
    bbox_max_lng = Column(Float)
    bbox_max_lat = Column(Float)

    altitude = Column(Float)
    status = Column(String(32), default="normal")
    warning_reason = Column(String(200))
    last_update = Column(BigInteger)
    is_active = Column(Boolean, default=True)
    is_selected = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<MonitoringPoint {self.id} {self.name}>"

# ==================== WEATHER OBSERVATION MODEL ====================

class WeatherObservation(Base):
    __tablename__ = "weather_observations"

    id = Column(Integer, primary_key=True)
    point_id = Column(String(64), index=True, nullable=False)
    obs_time = Column(DateTime, nullable=False, index=True)

    temperature = Column(Float)
    wind_speed = Column(Float)  # km/h, as reported by the provider
    wind_direction = Column(Integer)
    humidity = Column(Integer)
    precipitation = Column(Float)  # mm/h
    pressure = Column(Float)
    visibility = Column(Float)  # km
    cloud_cover = Column(Integer)
    wind_shear_level = Column(String(10))
    stability_index = Column(String(1))

    # Metadata
    data_source = Column(String(50))
    data_quality = Column(Integer)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<Observation {self.point_id} {self.obs_time}>"

# ==================== AIRCRAFT LIMIT MODEL ====================

class AircraftLimit(Base):
    __tablename__ = "aircraft_limits"

    id = Column(Integer, primary_key=True)
    aircraft_id = Column(String(64), unique=True, index=True, nullable=False)
    max_wind_speed = Column(Float)  # m/s
    max_wind_shear = Column(Float)  # m/s
    min_visibility = Column(Float)  # km
    max_precipitation = Column(Float)  # mm/h
    min_cloud_base = Column(Integer)  # m
    temp_min = Column(Float)
    temp_max = Column(Float)
    max_humidity = Column(Integer)  # %
    max_turbulence_level = Column(String(20))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<AircraftLimit {self.aircraft_id}>"

# ==================== SUITABILITY HISTORY MODEL ====================

class SuitabilityAnalysis(Base):
    __tablename__ = "suitability_analysis"

    id = Column(Integer, primary_key=True)
    point_id = Column(String(64), index=True, nullable=False)
    analysis_time = Column(DateTime, nullable=False, index=True)
    time_interval = Column(Integer)  # minutes
    total_hours = Column(Integer)
    factor = Column(String(50), index=True)
    time_point = Column(String(19))  # YYYY-MM-DD HH:MM:SS
    is_suitable = Column(Boolean)
    abnormal_value = Column(Float)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<Suitability {self.point_id} {self.factor} {self.time_point}>"

# ==================== CORE INDICATOR MODEL ====================

class CoreIndicator(Base):
    __tablename__ = "core_indicators"

    id = Column(Integer, primary_key=True)
    point_id = Column(String(64), index=True)
    data_time = Column(DateTime, nullable=False, index=True)
    indicator_id = Column(String(50), nullable=False)
    indicator_name = Column(String(100))
    value = Column(Float)
    unit = Column(String(20))
    precision = Column(String(10))
    status = Column(String(20))
    threshold_warning = Column(Float)
    threshold_danger = Column(Float)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<CoreIndicator {self.indicator_id} {self.data_time}>"

# ==================== VERTICAL PROFILE MODEL ====================

class VerticalProfile(Base):
    __tablename__ = "vertical_profiles"

    id = Column(Integer, primary_key=True)
    point_id = Column(String(64), index=True, nullable=False)
    data_time = Column(DateTime, nullable=False, index=True)
    height = Column(Integer, nullable=False)  # m
    wind_speed = Column(Float)
    temperature = Column(Float)
    humidity = Column(Integer)
    visibility = Column(Float)
    pressure = Column(Float)
    turbulence_level = Column(String(20))
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<VerticalProfile {self.point_id} {self.height}m {self.data_time}>"

# ==================== WIND TREND MODEL ====================

class WindTrend(Base):
    __tablename__ = "wind_trends"

    id = Column(Integer, primary_key=True)
    point_id = Column(String(64), index=True, nullable=False)
    data_time = Column(DateTime, nullable=False, index=True)
    time_label = Column(String(5))  # HH:MM
    wind_speed = Column(Float)  # m/s
    wind_dir = Column(Integer)  # degrees
    upper_limit = Column(Float)
    lower_limit = Column(Float)
    deviation = Column(Float)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<WindTrend {self.point_id} {self.data_time}>"

# ==================== WIND FIELD MODEL ====================

class WindField(Base):
    __tablename__ = "wind_fields"

    id = Column(Integer, primary_key=True)
    data_time = Column(DateTime, nullable=False, index=True)
    height = Column(Integer, index=True)  # m
    longitude = Column(Float)
    latitude = Column(Float)
    u_component = Column(Float)  # east-west, m/s
    v_component = Column(Float)  # north-south, m/s
    speed = Column(Float)
    direction = Column(Integer)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<WindField {self.height}m {self.data_time}>"

# ==================== MICROSCALE WEATHER MODEL ====================

class MicroscaleWeather(Base):
    __tablename__ = "microscale_weather"

    id = Column(Integer, primary_key=True)
    region = Column(String(100), index=True)
    data_time = Column(DateTime, nullable=False, index=True)
    grid_size = Column(Integer)  # m
    grid_x = Column(Float)
    grid_y = Column(Float)
    risk_level = Column(Integer)  # 0-3
    wind_speed = Column(Float)
    wind_shear = Column(Float)
    turbulence = Column(Float)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<MicroscaleWeather {self.region} ({self.grid_x}, {self.grid_y})>"

# ==================== DATABASE INITIALIZATION ====================

class DatabaseManager:
    """Database manager for handling connections and sessions"""

    def __init__(self, database_url: str = "sqlite:///./flightwx.db"):
        engine_kwargs = {}
        if "sqlite" in database_url:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            # An in-memory database only exists on its one connection
            if ":memory:" in database_url or database_url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(
            database_url,
            echo=False,  # Set to True for SQL debugging
            **engine_kwargs
        )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        """Create all tables in the database"""
        Base.metadata.create_all(bind=self.engine)

    def get_session(self):
        """Get a database session"""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def drop_all_tables(self):
        """Drop all tables (use with caution!)"""
        Base.metadata.drop_all(bind=self.engine)


if __name__ == "__main__":
    db_manager = DatabaseManager("sqlite:///./flightwx.db")
    db_manager.create_tables()

    print("Database tables created successfully!")
    print("\nTables created:")
    for table in Base.metadata.sorted_tables:
        print(f"- {table.name}")
