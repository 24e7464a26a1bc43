from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class MetricFamily:
    name: str
    source: str
    minimum: float = math.nan
    maximum: float = math.nan
    kind: str = "gauge"

    def contains(self, value: float) -> bool:
        if math.isnan(value):
            return True
        if not math.isnan(self.minimum) and value < self.minimum:
            return False
        if not math.isnan(self.maximum) and value > self.maximum:
            return False
        return True

    def describe_range(self) -> str:
        low = "-inf" if math.isnan(self.minimum) else f"{self.minimum:g}"
        high = "+inf" if math.isnan(self.maximum) else f"{self.maximum:g}"
        return f"[{low}, {high}]"


# NaN bounds are unbounded.
METRIC_FAMILIES: tuple[MetricFamily, ...] = (
    MetricFamily("current", "value"),
    MetricFamily("humidity", "value", 0.0, 100.0),
    MetricFamily("power", "value", 0.0),
    MetricFamily("voltage", "value"),
    MetricFamily("percent", "percent", 0.0, 100.1),
    MetricFamily("timeleft", "timeleft", 0.0, 100.0),
    MetricFamily("temperature", "value", -273.15),
    MetricFamily("frequency", "frequency", 0.0),
)

_FAMILIES_BY_NAME: dict[str, MetricFamily] = {family.name: family for family in METRIC_FAMILIES}


def get_family(name: str) -> MetricFamily:
    return _FAMILIES_BY_NAME[name]
