"""
Short-range suitability projection

Extrapolates the current factor evaluation forward in fixed 10-minute steps.
Values decay slightly with lead time and carry bounded jitter; each factor's
verdict flips with a probability that grows linearly with lead time. This is
a heuristic drift model, not a forecast.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from .errors import ValidationError
from .factors import CompositeScorer, FactorResult

INTERVAL_MINUTES = 10
DECAY_PER_SERIES = 0.02
MAX_FLIP_PROBABILITY = 0.1


@dataclass
class TimePointProjection:
    """Projected factor state at one future time point"""
    time_point: datetime
    point_id: str
    factors: List[FactorResult] = field(default_factory=list)
    overall_suitability: float = 0.0

    def factor(self, name) -> Optional[FactorResult]:
        for result in self.factors:
            if result.factor == name:
                return result
        return None

    def to_dict(self) -> Dict:
        return {
            "timePoint": self.time_point.isoformat(),
            "pointId": self.point_id,
            "factors": [f.to_dict() for f in self.factors],
            "overallSuitability": round(self.overall_suitability, 2),
        }


def projection_length(total_hours: int, interval_minutes: int = INTERVAL_MINUTES) -> int:
    return total_hours * 60 // interval_minutes + 1


class TimeProjector:
    """Projects factor results forward using an injectable random source"""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        scorer: Optional[CompositeScorer] = None,
        clock: Callable[[], datetime] = datetime.now,
        interval_minutes: int = INTERVAL_MINUTES,
    ):
        self.rng = rng or random.Random()
        self.scorer = scorer or CompositeScorer()
        self.clock = clock
        self.interval_minutes = interval_minutes

    def project(
        self,
        current: Sequence[FactorResult],
        total_hours: int,
        point_id: str,
        start: Optional[datetime] = None,
    ) -> List[TimePointProjection]:
        if total_hours is None or total_hours < 0:
            raise ValidationError(f"totalHours must be a non-negative integer, got {total_hours}")

        start = start or self.clock()
        total_points = projection_length(total_hours, self.interval_minutes)
        series = []

        for i in range(total_points):
            time_decay = 1.0 - (i * DECAY_PER_SERIES / total_points)
            flip_probability = MAX_FLIP_PROBABILITY * (i / total_points)

            factors = []
            for result in current:
                jitter = 0.9 + self.rng.random() * 0.2
                suitable = result.suitable
                if self.rng.random() < flip_probability:
                    suitable = not suitable
                factors.append(FactorResult(result.factor, suitable, result.value * time_decay * jitter))

            series.append(TimePointProjection(
                time_point=start + timedelta(minutes=i * self.interval_minutes),
                point_id=point_id,
                factors=factors,
                overall_suitability=self.scorer.percentage(factors),
            ))

        return series
