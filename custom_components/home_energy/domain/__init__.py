"""Domain-layer primitives for the Home Energy integration."""

from .features import (
    ConsumptionFeature,
    ConsumptionStat,
    CurveFeature,
    DatePeriodFeature,
    DimensionalValue,
    Feature,
    MultiValueFeature,
    NumericSensorFeature,
    StatusSensorFeature,
    TextFeature,
    parse_feature,
    parse_features,
    project_feature,
)
from .history import (
    BACKFILL_PERIOD,
    AggregationFunction,
    AggregationPeriod,
    Coverage,
    Gap,
    ProviderBounds,
    Sample,
    SeriesId,
    Window,
    max_span,
)

__all__ = [
    "BACKFILL_PERIOD",
    "AggregationFunction",
    "AggregationPeriod",
    "ConsumptionFeature",
    "ConsumptionStat",
    "Coverage",
    "CurveFeature",
    "DatePeriodFeature",
    "DimensionalValue",
    "Feature",
    "Gap",
    "MultiValueFeature",
    "NumericSensorFeature",
    "ProviderBounds",
    "Sample",
    "SeriesId",
    "StatusSensorFeature",
    "TextFeature",
    "Window",
    "max_span",
    "parse_feature",
    "parse_features",
    "project_feature",
]
