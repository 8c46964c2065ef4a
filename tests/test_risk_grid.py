"""
Tests for chart, geo and area risk grids and their degraded fallbacks.
"""

import random
from datetime import datetime

import pytest

from flightwx.errors import NotFoundError, ValidationError
from flightwx.observations import Observation
from flightwx.risk_grid import (
    RiskGridGenerator,
    axis,
    chart_cell_risk,
    height_factor,
    parse_bounds,
    risk_level,
    spatial_factor,
    time_factor,
)
from flightwx.storage import PointInfo


class FixedResolver:
    def __init__(self, observation):
        self.observation = observation

    def get_latest(self, point_id):
        return self.observation


class BrokenResolver:
    def get_latest(self, point_id):
        raise RuntimeError("resolver exploded")


class InMemoryPoints:
    def __init__(self, *points):
        self.points = {p.id: p for p in points}

    def get_by_id(self, point_id):
        if point_id not in self.points:
            raise NotFoundError(f"Monitoring point {point_id} not found")
        return self.points[point_id]


HARBOR = PointInfo("point-1", "Harbor", 120.5, 36.5, 120.0, 36.0, 121.0, 37.0)
RIDGE = PointInfo("point-2", "Ridge", 120.2, 36.1)


@pytest.fixture
def fair_observation(fixed_now, fair_raw):
    return Observation.from_raw("point-1", fixed_now, fair_raw)


@pytest.fixture
def generator(fair_observation, rng, clock):
    return RiskGridGenerator(
        resolver=FixedResolver(fair_observation),
        points=InMemoryPoints(HARBOR, RIDGE),
        rng=rng,
        clock=clock,
    )


@pytest.fixture
def broken_generator(rng, clock):
    return RiskGridGenerator(resolver=BrokenResolver(), points=InMemoryPoints(HARBOR), rng=rng, clock=clock)


class TestBoundsParsing:

    @pytest.mark.parametrize("text", ["[120.0,36.0,121.0,37.0]", "120.0, 36.0, 121.0, 37.0", "[120,36,121,37]"])
    def test_parse(self, text):
        assert parse_bounds(text) == (120.0, 36.0, 121.0, 37.0)

    @pytest.mark.parametrize("text", ["", "   ", "[120,36,121]", "[a,b,c,d]", None])
    def test_invalid(self, text):
        with pytest.raises(ValidationError):
            parse_bounds(text)

    def test_axis_hits_both_edges(self):
        values = axis(120.0, 121.0, 12)
        assert values[0] == 120.0
        assert values[-1] == 121.0
        assert len(values) == 12


class TestFactorHelpers:

    @pytest.mark.parametrize("value,level", [(20, "very_low"), (39, "very_low"), (40, "low"),
                                             (59, "low"), (60, "medium"), (80, "high"), (95, "high")])
    def test_risk_level(self, value, level):
        assert risk_level(value) == level

    def test_height_factor_decreases_with_height(self, fair_observation):
        assert height_factor(0, 8, fair_observation) == 1.0
        assert height_factor(4, 8, fair_observation) == pytest.approx(0.8)

    def test_unstable_air_lowers_height_factor(self, fixed_now):
        obs = Observation.from_raw("point-1", fixed_now, {"stability_index": "D"})
        assert height_factor(0, 8, obs) == pytest.approx(0.8)

    def test_night_raises_time_factor(self):
        assert time_factor(0, datetime(2026, 5, 1, 12, 0)) == pytest.approx(0.8)
        assert time_factor(0, datetime(2026, 5, 1, 23, 0)) == pytest.approx(0.88)
        assert time_factor(0, datetime(2026, 5, 1, 18, 30)) == pytest.approx(0.8)

    def test_spatial_factor_bounds(self):
        for lng in axis(100.0, 130.0, 40):
            for lat in axis(20.0, 50.0, 40):
                assert 0.7 <= spatial_factor(lng, lat) <= 1.3

    def test_chart_cell_is_clamped(self):
        assert chart_cell_risk(0.0, 1.0, 1.0, 1.0) == 10
        assert chart_cell_risk(5.0, 1.0, 1.0, 1.0) == 95
        assert chart_cell_risk(0.5, 1.0, 1.0, 1.0) == 50


class TestChartHeatmap:

    @pytest.mark.parametrize("time_range,times", [("1h", 7), ("3h", 7), ("6h", 13), ("12h", 25), ("2d", 7), (None, 7)])
    @pytest.mark.parametrize("resolution,heights", [("low", 5), ("medium", 8), ("high", 16), ("ultra", 8)])
    def test_shape(self, generator, time_range, times, resolution, heights):
        grid = generator.chart_heatmap("point-1", time_range, resolution)

        assert len(grid["times"]) == times
        assert len(grid["heights"]) == heights
        assert len(grid["data"]) == heights
        assert all(len(row) == times for row in grid["data"])

    @pytest.mark.parametrize("route", [False, True])
    def test_values_are_integers_in_range(self, generator, route):
        grid = generator.chart_heatmap("point-1", "12h", "high", for_route_analysis=route)
        for row in grid["data"]:
            for value in row:
                assert isinstance(value, int)
                assert 10 <= value <= 95

    def test_labels(self, generator):
        grid = generator.chart_heatmap("point-1", "1h", "low")
        assert grid["heights"] == [0, 100, 200, 300, 400]
        assert grid["times"][:3] == ["12:00", "12:10", "12:20"]
        assert grid["metadata"]["dataType"] == "flight_risk_heatmap"

    def test_seeded_grids_repeat(self, fair_observation, clock):
        def build():
            return RiskGridGenerator(resolver=FixedResolver(fair_observation), rng=random.Random(5),
                                     clock=clock).chart_heatmap("point-1", "3h", "medium")["data"]
        assert build() == build()

    def test_degrades_to_basic_grid_of_same_shape(self, broken_generator):
        grid = broken_generator.chart_heatmap("point-1", "6h", "high")

        assert grid["metadata"]["dataType"] == "basic_flight_risk_heatmap"
        assert len(grid["data"]) == 16
        assert all(len(row) == 13 for row in grid["data"])
        assert all(20 <= v <= 80 for row in grid["data"] for v in row)


class TestGeoHeatmap:

    def test_medium_grid_has_144_points_with_exact_corners(self, generator):
        grid = generator.geo_heatmap("[120.0,36.0,121.0,37.0]", resolution="medium")

        assert grid["gridSize"] == 12
        assert grid["pointCount"] == 144
        coords = {(p["lon"], p["lat"]) for p in grid["points"]}
        for corner in [(120.0, 36.0), (121.0, 36.0), (120.0, 37.0), (121.0, 37.0)]:
            assert corner in coords

    def test_values_and_levels(self, generator):
        grid = generator.geo_heatmap("[120.0,36.0,121.0,37.0]", resolution="high")

        assert grid["pointCount"] == 256
        for point in grid["points"]:
            assert 20 <= point["value"] <= 95
            assert point["riskLevel"] == risk_level(point["value"])

    def test_grid_indices(self, generator):
        points = generator.geo_heatmap("[120.0,36.0,121.0,37.0]", resolution="low")["points"]
        assert len(points) == 64
        assert (points[0]["x"], points[0]["y"]) == (0, 0)
        assert (points[1]["x"], points[1]["y"]) == (0, 1)
        assert points[1]["lon"] == 120.0

    def test_unparseable_bounds_use_point_bbox(self, generator):
        grid = generator.geo_heatmap("not-a-box", point_id="point-1")
        assert grid["bounds"] == [120.0, 36.0, 121.0, 37.0]
        assert grid["boundsSource"] == "monitoring-point"

    def test_point_without_bbox_uses_default_box(self, generator):
        grid = generator.geo_heatmap(None, point_id="point-2")
        assert grid["bounds"] == [120.0, 36.0, 121.0, 37.0]
        assert grid["boundsSource"] == "default"

    def test_unknown_point_uses_default_box(self, generator):
        grid = generator.geo_heatmap("[1,2]", point_id="missing")
        assert grid["boundsSource"] == "default"

    def test_degrades_to_basic_grid(self, broken_generator):
        grid = broken_generator.geo_heatmap("[120.0,36.0,121.0,37.0]", point_id="point-1")

        assert grid["metadata"]["dataType"] == "basic_geo_heatmap"
        assert grid["pointCount"] == 144
        assert all(20 <= p["value"] <= 80 for p in grid["points"])


class TestAreaHeatmap:

    def test_cells_carry_time_series(self, generator):
        grid = generator.area_heatmap("point-1", "6h", "low", "[120.0,36.0,121.0,37.0]")

        assert grid["gridSize"] == 8
        assert len(grid["gridData"]) == 64
        assert len(grid["times"]) == 13
        for cell in grid["gridData"]:
            series = cell["riskData"]["timeSeries"]
            assert len(series) == 13
            assert all(20 <= v <= 95 for v in series)
            assert cell["riskData"]["currentRisk"] == series[0]

    def test_degrades_to_basic_grid(self, broken_generator):
        grid = broken_generator.area_heatmap("point-1", "3h", "medium", "[120.0,36.0,121.0,37.0]")

        assert grid["metadata"]["dataType"] == "basic_area_heatmap"
        assert len(grid["gridData"]) == 144
        assert all(len(c["riskData"]["timeSeries"]) == 7 for c in grid["gridData"])

    def test_without_point_uses_synthetic_conditions(self, rng, clock):
        grid = RiskGridGenerator(rng=rng, clock=clock).area_heatmap(None, bounds="[0,0,1,1]")
        assert grid["metadata"]["weatherData"]["dataSource"] == "synthetic"
