from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import petl as etl

from dataweave.config import Settings
from dataweave.errors import DataWeaveUserError, unknown_column
from dataweave.models.transforms import AGGREGATIONS, aggregate_numbers
from dataweave.schema import CATEGORICAL, DATE, NUMERIC, ColumnDescriptor, columns_of_type
from dataweave.util import format_cell, header_of, is_missing, numeric_values, parse_number, round_half_away, \
    round_half_up

CHART_KINDS = ("bar", "line", "area", "pie", "scatter", "histogram", "treemap", "dual-axis")

CHART_COLORS = (
    "#6366f1",
    "#8b5cf6",
    "#ec4899",
    "#f43f5e",
    "#f97316",
    "#eab308",
    "#22c55e",
    "#14b8a6",
    "#06b6d4",
    "#3b82f6",
)


def new_chart_id(kind: str = "chart") -> str:
    return f"{kind}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class ChartConfig:
    """Declarative description of one chart. Axes refer to columns by name."""

    id: str
    kind: str
    title: str
    x: str
    y: Optional[str] = None
    y2: Optional[str] = None
    aggregation: Optional[str] = "sum"
    colors: Optional[List[str]] = field(default=None)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise DataWeaveUserError(
                "E_CHART_ID",
                "Chart id must be a non-empty string.",
                hint="Use new_chart_id() to generate one.",
            )
        if self.kind not in CHART_KINDS:
            raise DataWeaveUserError(
                "E_CHART_KIND",
                f"Unsupported chart kind {self.kind!r}.",
                hint="Supported kinds: " + ", ".join(CHART_KINDS),
            )
        if not isinstance(self.x, str) or not self.x:
            raise DataWeaveUserError(
                "E_CHART_AXIS",
                "Chart x axis must name a column.",
                hint="Example: ChartConfig(id='c1', kind='bar', title='Sales', x='region', y='sales')",
            )
        if self.aggregation is not None and self.aggregation not in AGGREGATIONS:
            raise DataWeaveUserError(
                "E_CHART_AGGREGATION",
                f"Unsupported aggregation {self.aggregation!r}.",
                hint="Supported aggregations: " + ", ".join(AGGREGATIONS),
            )
        if self.y2 is not None and self.kind != "dual-axis":
            raise DataWeaveUserError(
                "E_CHART_AXIS",
                "A secondary y axis is only allowed on dual-axis charts.",
                hint="Set kind='dual-axis' or drop y2.",
            )
        if self.colors is not None:
            object.__setattr__(self, "colors", list(self.colors))

    @property
    def columns(self) -> List[str]:
        return [c for c in (self.x, self.y, self.y2) if c]

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChartConfig":
        if not isinstance(data, dict):
            raise DataWeaveUserError(
                "E_CHART_CONFIG",
                "A chart configuration must be a mapping.",
                hint="Example: {id: c1, kind: bar, title: Sales, x: region, y: sales}",
            )
        known = {"id", "kind", "title", "x", "y", "y2", "aggregation", "colors"}
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            raise DataWeaveUserError(
                "E_CHART_CONFIG",
                f"Unknown chart key(s): {unknown}.",
                hint="Supported keys: " + ", ".join(sorted(known)),
            )
        values = dict(data)
        values.setdefault("aggregation", None)
        try:
            return cls(**values)
        except TypeError as e:
            raise DataWeaveUserError(
                "E_CHART_CONFIG",
                f"Incomplete chart configuration: {e}",
                hint="Every chart needs id, kind, title and x.",
            ) from e


def suggest_charts(descriptors: Sequence[ColumnDescriptor], settings: Optional[Settings] = None) -> List[ChartConfig]:
    """Starter charts picked from column types."""
    settings = settings or Settings()
    numeric = columns_of_type(descriptors, NUMERIC)
    categorical = columns_of_type(descriptors, CATEGORICAL)
    dates = columns_of_type(descriptors, DATE)
    charts: List[ChartConfig] = []

    for d in dates:
        for n in numeric[:2]:
            charts.append(ChartConfig(f"line-{d}-{n}", "line", f"{n} over Time", d, n, aggregation="sum"))
    for c in categorical[:2]:
        for n in numeric[:2]:
            charts.append(ChartConfig(f"bar-{c}-{n}", "bar", f"{n} by {c}", c, n, aggregation="sum"))
    for c in categorical[:1]:
        charts.append(ChartConfig(f"pie-{c}", "pie", f"{c} Distribution", c, aggregation="count"))
    if len(numeric) >= 2:
        a, b = numeric[0], numeric[1]
        charts.append(ChartConfig(f"scatter-{a}-{b}", "scatter", f"{a} vs {b}", a, b, aggregation=None))
    for n in numeric[:1]:
        charts.append(ChartConfig(f"histogram-{n}", "histogram", f"{n} Distribution", n, aggregation=None))

    return charts[: settings.max_suggested_charts]


def _require(table, columns: Sequence[str]) -> List[str]:
    header = header_of(table)
    for c in columns:
        if c not in header:
            raise unknown_column(c, header)
    return header


def aggregate_series(table, x: str, y: Optional[str] = None, aggregation: str = "sum") -> List[Dict[str, Any]]:
    """[{name, value}] per distinct x ("Unknown" for missing), largest value first.

    Without y every row counts as 1; with y only numeric values take part.
    """
    header = _require(table, [x] + ([y] if y else []))
    if aggregation not in AGGREGATIONS:
        raise DataWeaveUserError(
            "E_CHART_AGGREGATION",
            f"Unsupported aggregation {aggregation!r}.",
            hint="Supported aggregations: " + ", ".join(AGGREGATIONS),
        )
    xi = header.index(x)
    yi = header.index(y) if y else None

    groups: Dict[str, List[float]] = {}
    for row in etl.data(table):
        key = "Unknown" if is_missing(row[xi]) else format_cell(row[xi])
        bucket = groups.setdefault(key, [])
        if yi is None:
            bucket.append(1.0)
        else:
            n = parse_number(row[yi])
            if n is not None:
                bucket.append(n)

    series = [{"name": k, "value": round_half_up(aggregate_numbers(v, aggregation), 2)} for k, v in groups.items()]
    series.sort(key=lambda p: p["value"], reverse=True)
    return series


def histogram_series(table, column: str, bins: Optional[int] = None,
                     settings: Optional[Settings] = None) -> List[Dict[str, Any]]:
    """Equal-width bins as [{name: "<start>-<end>", value: count}], in first-hit order.

    The bin count defaults to settings.histogram_bins.
    """
    bins = bins or (settings or Settings()).histogram_bins
    header = _require(table, [column])
    values = numeric_values(r[header.index(column)] for r in etl.data(table))
    if not values:
        return []
    lo, hi = min(values), max(values)
    size = (hi - lo) / bins or 1

    counts: Dict[str, int] = {}
    for v in values:
        idx = min(int(math.floor((v - lo) / size)), bins - 1)
        start = round_half_away(lo + idx * size)
        end = round_half_away(start + size)
        name = f"{start}-{end}"
        counts[name] = counts.get(name, 0) + 1
    return [{"name": k, "value": c} for k, c in counts.items()]


def scatter_points(table, x: str, y: str) -> List[Dict[str, float]]:
    header = _require(table, [x, y])
    xi, yi = header.index(x), header.index(y)
    points = []
    for row in etl.data(table):
        px, py = parse_number(row[xi]), parse_number(row[yi])
        if px is not None and py is not None:
            points.append({"x": px, "y": py})
    return points
