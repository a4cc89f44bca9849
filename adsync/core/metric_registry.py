"""ADSYNC - Unified Metric Registry.

Defines the canonical metric columns of a daily metric row and how each is
classified. The upsert sink overwrites only the registered value columns;
everything else on a row is a dimension and is immutable after insert.
Derived metrics declare their ratio inputs here and are recomputed from them.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple


class MetricType(str, Enum):
    """How a metric is categorised."""

    VOLUME = "volume"  # Raw counts: impressions, clicks
    COST = "cost"  # Monetary: spend
    OUTCOME = "outcome"  # Conversions, leads
    REVENUE = "revenue"  # Conversion value
    DERIVED = "derived"  # Rates recomputed on ingest: cpa, ctr


class MetricDefinition:
    """Describes a single metric column.

    A derived metric names its (numerator, denominator) columns; a "%" unit
    scales the ratio by 100.
    """

    def __init__(
        self,
        name: str,
        metric_type: MetricType,
        unit: str = "",
        ratio: Optional[Tuple[str, str]] = None,
    ):
        self.name = name
        self.metric_type = metric_type
        self.unit = unit
        self.ratio = ratio

    @property
    def scale(self) -> float:
        return 100.0 if self.unit == "%" else 1.0

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.metric_type.value})>"


# Fixed precision for every derived rate
RATE_PRECISION = 4

# Cost fields arrive in micro-units
MICROS_PER_UNIT = 1_000_000


# ─────────────────────────────────────────────
# GOOGLE ADS METRICS - Canonical Registry
# ─────────────────────────────────────────────

METRICS: Tuple[MetricDefinition, ...] = (
    MetricDefinition("impressions", MetricType.VOLUME, "count"),
    MetricDefinition("clicks", MetricType.VOLUME, "count"),
    MetricDefinition("spend", MetricType.COST, "currency"),
    MetricDefinition("conversions", MetricType.OUTCOME, "count"),
    MetricDefinition("leads", MetricType.OUTCOME, "count"),  # mirrors conversions
    MetricDefinition("revenue", MetricType.REVENUE, "currency"),
    MetricDefinition("cpa", MetricType.DERIVED, "currency", ratio=("spend", "leads")),
    MetricDefinition("ctr", MetricType.DERIVED, "%", ratio=("clicks", "impressions")),
    MetricDefinition("conv_rate", MetricType.DERIVED, "%", ratio=("leads", "clicks")),
    MetricDefinition("roas", MetricType.DERIVED, "ratio", ratio=("revenue", "spend")),
)


def metrics_by_type(metric_type: MetricType) -> List[MetricDefinition]:
    """Return all metrics of a given type."""
    return [m for m in METRICS if m.metric_type == metric_type]


DERIVED_METRICS: Dict[str, MetricDefinition] = {
    m.name: m for m in metrics_by_type(MetricType.DERIVED)
}

# Columns an upsert is allowed to overwrite
VALUE_COLUMNS = tuple(m.name for m in METRICS)


def _ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * scale, RATE_PRECISION)


def compute_derived_rates(
    impressions: float,
    clicks: float,
    spend: float,
    leads: float,
    revenue: float,
    supplied: Optional[Dict[str, Optional[float]]] = None,
) -> Dict[str, float]:
    """Return every derived rate at fixed precision.

    A supplied non-zero rate is kept (rounded); missing or zero rates are
    recomputed from the base metrics.
    """
    supplied = supplied or {}
    base = {
        "impressions": impressions,
        "clicks": clicks,
        "spend": spend,
        "leads": leads,
        "revenue": revenue,
    }
    rates: Dict[str, float] = {}
    for name, metric in DERIVED_METRICS.items():
        given = supplied.get(name)
        if given:
            rates[name] = round(float(given), RATE_PRECISION)
            continue
        numerator, denominator = metric.ratio
        rates[name] = _ratio(base[numerator], base[denominator], metric.scale)
    return rates
