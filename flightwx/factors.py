"""
Weather factor evaluation

The six weather factors are defined once in FACTOR_TABLE. Each entry knows
how to read its value from an observation, how to judge it against an
aircraft's limits, and which risk weight it contributes to the heatmaps.
Factor order is fixed: wind, visibility, precipitation, humidity,
wind shear, turbulence.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .observations import Observation, StabilityIndex, WindShearLevel
from .thresholds import ThresholdProfile

UNSTABLE_CLASSES = (StabilityIndex.C, StabilityIndex.D)


class Factor(Enum):
    """Weather factors judged for flight suitability"""
    WIND = "wind"
    VISIBILITY = "visibility"
    PRECIPITATION = "precipitation"
    HUMIDITY = "humidity"
    WIND_SHEAR = "wind_shear"
    TURBULENCE = "turbulence"

    @property
    def label(self) -> str:
        return FACTOR_LABELS[self]

    @classmethod
    def lookup(cls, name: str) -> Optional["Factor"]:
        """Match an English name, the dashboard's Chinese label or an alias"""
        key = name.strip()
        if key in FACTOR_ALIASES:
            return FACTOR_ALIASES[key]
        # wind-shear and wind_shear name the same factor
        normalized = key.lower().replace("-", "_")
        for factor in cls:
            if normalized == factor.value or key == factor.label:
                return factor
        return None


FACTOR_LABELS = {
    Factor.WIND: "风",
    Factor.VISIBILITY: "能见度",
    Factor.PRECIPITATION: "降水",
    Factor.HUMIDITY: "湿度",
    Factor.WIND_SHEAR: "风切变",
    Factor.TURBULENCE: "湍流",
}

FACTOR_ALIASES = {
    "颠簸指数": Factor.TURBULENCE,
}


class Recommendation(Enum):
    """Qualitative advice derived from the composite percentage"""
    SUITABLE = "suitable"
    MARGINAL = "marginal"
    CAUTION = "caution"
    UNSUITABLE = "unsuitable"

    @property
    def label(self) -> str:
        return {
            Recommendation.SUITABLE: "适飞",
            Recommendation.MARGINAL: "较适",
            Recommendation.CAUTION: "谨慎",
            Recommendation.UNSUITABLE: "不适",
        }[self]


@dataclass(frozen=True)
class FactorResult:
    """Suitability of a single factor"""
    factor: Factor
    suitable: bool
    value: float

    def to_dict(self) -> Dict:
        return {
            "factor": self.factor.value,
            "label": self.factor.label,
            "suitable": self.suitable,
            "value": round(self.value, 2),
        }


# ==================== FACTOR TABLE ====================

def _wind_shear_value(obs: Observation) -> float:
    return {WindShearLevel.HIGH: 8.0, WindShearLevel.MEDIUM: 5.0}.get(obs.wind_shear_level, 2.0)


def _turbulence_value(obs: Observation) -> float:
    if obs.stability_index is None:
        return 0.5
    if obs.stability_index in (StabilityIndex.A, StabilityIndex.B):
        return 0.3
    if obs.stability_index == StabilityIndex.C:
        return 0.6
    return 0.8


def _at_most(reading: Optional[float], limit: float) -> bool:
    return reading is not None and reading <= limit


def _at_least(reading: Optional[float], limit: float) -> bool:
    return reading is not None and reading >= limit


@dataclass(frozen=True)
class FactorSpec:
    """How one factor is measured, judged and weighted"""
    factor: Factor
    value: Callable[[Observation], float]
    check: Callable[[Observation, ThresholdProfile], bool]
    bad_risk: float
    good_risk: float
    graded_risk: Optional[Callable[[Observation], float]] = None

    def evaluate(self, obs: Observation, profile: ThresholdProfile) -> FactorResult:
        return FactorResult(self.factor, self.check(obs, profile), self.value(obs))

    def risk(self, obs: Observation, profile: ThresholdProfile) -> float:
        if self.graded_risk is not None:
            return self.graded_risk(obs)
        return self.good_risk if self.check(obs, profile) else self.bad_risk


FACTOR_TABLE: Tuple[FactorSpec, ...] = (
    FactorSpec(
        Factor.WIND,
        value=lambda o: o.wind_speed_ms or 0.0,
        check=lambda o, p: _at_most(o.wind_speed_ms, p.max_wind_speed),
        bad_risk=0.8, good_risk=0.3,
    ),
    FactorSpec(
        Factor.VISIBILITY,
        value=lambda o: o.visibility_km or 0.0,
        check=lambda o, p: _at_least(o.visibility_km, p.min_visibility),
        bad_risk=0.7, good_risk=0.2,
    ),
    FactorSpec(
        Factor.PRECIPITATION,
        value=lambda o: o.precipitation_mm or 0.0,
        check=lambda o, p: _at_most(o.precipitation_mm, p.max_precipitation),
        bad_risk=0.6, good_risk=0.1,
    ),
    FactorSpec(
        Factor.HUMIDITY,
        value=lambda o: o.humidity_pct or 0.0,
        check=lambda o, p: _at_most(o.humidity_pct, p.max_humidity),
        bad_risk=0.5, good_risk=0.1,
    ),
    FactorSpec(
        Factor.WIND_SHEAR,
        value=_wind_shear_value,
        check=lambda o, p: o.wind_shear_level != WindShearLevel.HIGH,
        bad_risk=0.9, good_risk=0.1,
        graded_risk=lambda o: {WindShearLevel.HIGH: 0.9, WindShearLevel.MEDIUM: 0.5}.get(o.wind_shear_level, 0.1),
    ),
    FactorSpec(
        Factor.TURBULENCE,
        value=_turbulence_value,
        check=lambda o, p: o.stability_index not in UNSTABLE_CLASSES,
        bad_risk=0.7, good_risk=0.2,
    ),
)


# ==================== EVALUATION ====================

class FactorEvaluator:
    """Judges an observation against a threshold profile, factor by factor"""

    def __init__(self, table: Sequence[FactorSpec] = FACTOR_TABLE):
        self.table = tuple(table)

    def evaluate(self, obs: Observation, profile: ThresholdProfile) -> List[FactorResult]:
        return [spec.evaluate(obs, profile) for spec in self.table]

    def base_risk(self, obs: Observation, profile: ThresholdProfile) -> float:
        """Mean of the per-factor risk weights, in [0, 1]"""
        return sum(spec.risk(obs, profile) for spec in self.table) / len(self.table)


class CompositeScorer:
    """Aggregates factor results into a percentage and a recommendation"""

    @staticmethod
    def percentage(results: Sequence[FactorResult]) -> float:
        if not results:
            return 0.0
        suitable = sum(1 for r in results if r.suitable)
        return suitable * 100.0 / len(results)

    @staticmethod
    def recommend(percentage: float) -> Recommendation:
        if percentage >= 80:
            return Recommendation.SUITABLE
        if percentage >= 60:
            return Recommendation.MARGINAL
        if percentage >= 40:
            return Recommendation.CAUTION
        return Recommendation.UNSUITABLE

    def score(self, results: Sequence[FactorResult]) -> Tuple[float, Recommendation]:
        percentage = self.percentage(results)
        return percentage, self.recommend(percentage)
