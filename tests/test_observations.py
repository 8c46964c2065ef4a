"""
Tests for observation ingestion and the fresh/provider/stale/synthetic resolver.
"""

from datetime import timedelta

import pytest

from flightwx.observations import (
    SOURCE_EXTERNAL,
    SOURCE_SYNTHETIC,
    Observation,
    ObservationResolver,
    StabilityIndex,
    WindShearLevel,
    kmh_to_ms,
    parse_stability,
    parse_wind_shear,
    synthetic_observation,
)
from flightwx.storage import SqlMonitoringPointDirectory, SqlObservationStore


class ReadOnlyStore:
    """Wraps a store whose inserts always fail"""

    def __init__(self, inner):
        self.inner = inner

    def get_latest(self, point_id):
        return self.inner.get_latest(point_id)

    def insert(self, observation):
        raise RuntimeError("disk full")


@pytest.fixture
def store(seeded_session):
    return SqlObservationStore(seeded_session)


@pytest.fixture
def points(seeded_session):
    return SqlMonitoringPointDirectory(seeded_session)


def stored_at(store, fair_raw, when, point_id="point-1"):
    store.insert(Observation.from_raw(point_id, when, fair_raw, source="station", quality=90))


class TestIngestion:
    """Unit conversion and categorical parsing."""

    def test_36_kmh_is_exactly_10_ms(self):
        assert kmh_to_ms(36) == 10.0

    def test_conversion_applied_once(self, fixed_now):
        obs = Observation.from_raw("point-1", fixed_now, {"wind_speed": 36})
        assert obs.wind_speed_kmh == 36.0
        assert obs.wind_speed_ms == 10.0

    def test_missing_wind_stays_missing(self, fixed_now):
        obs = Observation.from_raw("point-1", fixed_now, {})
        assert obs.wind_speed_ms is None
        assert kmh_to_ms(None) is None

    def test_categorical_parsing(self):
        assert parse_wind_shear("HIGH") == WindShearLevel.HIGH
        assert parse_wind_shear("") is None
        assert parse_wind_shear("extreme") is None
        assert parse_stability("c") == StabilityIndex.C
        assert parse_stability("Z") is None

    def test_raw_roundtrip_keeps_storage_units(self, fixed_now, fair_raw):
        obs = Observation.from_raw("point-1", fixed_now, fair_raw)
        assert obs.to_raw()["wind_speed"] == 18.0
        assert obs.to_dict()["windSpeedMs"] == 5.0

    def test_synthetic_observation(self, fixed_now):
        obs = synthetic_observation("point-1", fixed_now)
        assert obs.source == SOURCE_SYNTHETIC
        assert obs.quality == 70
        assert obs.record_id is None
        assert obs.wind_shear_level == WindShearLevel.LOW
        assert obs.stability_index == StabilityIndex.C


class TestObservationResolver:
    """Resolution order: fresh store, provider, stale store, synthetic."""

    def test_fresh_record_skips_provider(self, store, points, stub_provider, fair_raw, fixed_now, clock):
        stored_at(store, fair_raw, fixed_now - timedelta(minutes=10))
        resolver = ObservationResolver(store, points, stub_provider, clock=clock)

        obs = resolver.get_latest("point-1")

        assert obs.source == "station"
        assert stub_provider.calls == []

    def test_stale_record_refreshed_from_provider(self, store, points, stub_provider, fair_raw, fixed_now, clock):
        stored_at(store, fair_raw, fixed_now - timedelta(hours=3))
        resolver = ObservationResolver(store, points, stub_provider, clock=clock)

        obs = resolver.get_latest("point-1")

        assert obs.source == SOURCE_EXTERNAL
        assert obs.quality == 85
        assert obs.record_id is not None
        assert stub_provider.calls == [(120.5, 36.5)]
        assert store.get_latest("point-1").source == SOURCE_EXTERNAL

    def test_missing_record_fetched_and_persisted(self, store, points, stub_provider, clock):
        obs = ObservationResolver(store, points, stub_provider, clock=clock).get_latest("point-1")

        assert obs.source == SOURCE_EXTERNAL
        assert store.get_latest("point-1").record_id == obs.record_id

    def test_provider_failure_serves_stale(self, store, points, failing_provider, fair_raw, fixed_now, clock):
        stored_at(store, fair_raw, fixed_now - timedelta(hours=5))
        obs = ObservationResolver(store, points, failing_provider, clock=clock).get_latest("point-1")

        assert obs.source == "station"
        assert failing_provider.calls == 1

    def test_provider_failure_without_data_is_synthetic_and_not_persisted(
            self, store, points, failing_provider, clock):
        obs = ObservationResolver(store, points, failing_provider, clock=clock).get_latest("point-1")

        assert obs.source == SOURCE_SYNTHETIC
        assert obs.record_id is None
        assert store.get_latest("point-1") is None

    def test_unknown_point_is_absorbed(self, store, points, stub_provider, clock):
        obs = ObservationResolver(store, points, stub_provider, clock=clock).get_latest("nowhere")

        assert obs.source == SOURCE_SYNTHETIC
        assert stub_provider.calls == []

    def test_disabled_provider(self, store, points, fair_raw, fixed_now, clock):
        stored_at(store, fair_raw, fixed_now - timedelta(days=2))
        obs = ObservationResolver(store, points, None, clock=clock).get_latest("point-1")
        assert obs.source == "station"

    def test_persist_failure_still_returns_fresh_observation(self, store, points, stub_provider, clock):
        resolver = ObservationResolver(ReadOnlyStore(store), points, stub_provider, clock=clock)

        obs = resolver.get_latest("point-1")

        assert obs.source == SOURCE_EXTERNAL
        assert obs.record_id is None

    def test_freshness_window_is_configurable(self, store, points, stub_provider, fair_raw, fixed_now, clock):
        stored_at(store, fair_raw, fixed_now - timedelta(minutes=20))
        resolver = ObservationResolver(store, points, stub_provider, freshness=timedelta(minutes=15), clock=clock)

        assert resolver.get_latest("point-1").source == SOURCE_EXTERNAL
