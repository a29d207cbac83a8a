from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import petl as etl

from dataweave.schema import CATEGORICAL, NUMERIC, ColumnDescriptor, columns_of_type, total_missing, validate_table
from dataweave.util import format_cell, header_of, iqr_bounds, is_missing, numeric_values

logger = logging.getLogger(__name__)

SEVERITIES = ("info", "warning", "critical")


@dataclass(frozen=True)
class Insight:
    kind: str
    title: str
    description: str
    value: Optional[str] = None
    severity: str = "info"

    def __str__(self) -> str:
        return f"{self.title}: {self.description}"


def _percent_change(values: Sequence[float]) -> Optional[float]:
    if len(values) < 2 or values[0] == 0:
        return None
    return (values[-1] - values[0]) / abs(values[0]) * 100


def skewness(values: Sequence[float]) -> float:
    """Population skewness; 0 for fewer than 3 values or no spread."""
    n = len(values)
    if n < 3:
        return 0.0
    mean = sum(values) / n
    std = math.sqrt(sum((v - mean) ** 2 for v in values) / n)
    if std == 0:
        return 0.0
    return sum(((v - mean) / std) ** 3 for v in values) / n


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" + ("" if n == 1 else "s")


def generate_insights(table, descriptors: Sequence[ColumnDescriptor]) -> List[Insight]:
    """Plain-language observations about the table: outliers, trends, skew, cardinality, gaps."""
    header = header_of(table)
    rows = [tuple(r) for r in etl.data(table)]
    n_rows = len(rows)
    out = [Insight(
        "summary",
        "Dataset Overview",
        f"Your dataset contains {n_rows:,} rows and {len(descriptors)} columns.",
        f"{n_rows:,} records",
    )]

    numeric = [d for d in descriptors if d.type == NUMERIC]
    for d in numeric:
        i = header.index(d.name)
        values = numeric_values(r[i] for r in rows)
        if not values:
            continue

        if len(values) >= 4:
            lo, hi = iqr_bounds(values)
            outliers = sum(1 for v in values if v < lo or v > hi)
            if outliers:
                pct = outliers / len(values) * 100
                out.append(Insight(
                    "anomaly",
                    f"Outliers in {d.name}",
                    f"Found {_plural(outliers, 'potential outlier')} ({pct:.1f}% of data) using IQR method.",
                    f"{outliers} outliers",
                    "critical" if outliers > len(values) * 0.1 else "warning",
                ))

        if len(values) >= 10:
            change = _percent_change(values)
            if change is not None and abs(change) > 5:
                direction = "increase" if change > 0 else "decrease"
                out.append(Insight(
                    "trend",
                    f"{d.name} Trend",
                    f"{d.name} shows an overall {direction} of {abs(change):.1f}% from start to end.",
                    f"{'+' if change > 0 else ''}{change:.1f}%",
                ))

        skew = skewness(values)
        if abs(skew) > 1:
            if skew > 0:
                text = f"{d.name} has a right-skewed distribution. Most values are lower than the mean."
            else:
                text = f"{d.name} has a left-skewed distribution. Most values are higher than the mean."
            out.append(Insight("distribution", f"{d.name} Distribution", text,
                               "Right-skewed" if skew > 0 else "Left-skewed"))

        if d.stats and d.stats.std_dev and d.stats.mean:
            cv = d.stats.std_dev / abs(d.stats.mean) * 100
            if cv > 100:
                out.append(Insight(
                    "distribution",
                    f"High Variability in {d.name}",
                    f"{d.name} has a coefficient of variation of {cv:.0f}%, indicating high variability in the data.",
                    f"CV: {cv:.0f}%",
                    "warning",
                ))

    for d in descriptors:
        if d.type != CATEGORICAL:
            continue
        if d.unique == 2:
            out.append(Insight(
                "summary",
                f"Binary Column: {d.name}",
                f"{d.name} has only 2 unique values - this could be a good target for binary classification.",
                "2 values",
            ))
        if n_rows and d.unique > n_rows * 0.9:
            out.append(Insight(
                "anomaly",
                f"High Cardinality: {d.name}",
                f"{d.name} has {d.unique} unique values ({d.unique / n_rows * 100:.0f}% of rows). "
                "This might be an ID column.",
                f"{d.unique} unique",
                "warning",
            ))

    with_missing = [d for d in descriptors if d.missing > 0]
    if with_missing:
        missing = total_missing(descriptors)
        verb = "columns have" if len(with_missing) > 1 else "column has"
        out.append(Insight(
            "anomaly",
            "Missing Values Detected",
            f"{len(with_missing)} {verb} missing values. Total: {missing:,} missing cells.",
            f"{missing:,} missing",
            "critical" if missing > n_rows * 0.1 else "warning",
        ))

    if len(numeric) >= 2:
        out.append(Insight(
            "correlation",
            "Correlation Analysis Available",
            f"With {len(numeric)} numeric columns, you can explore correlations using the correlation matrix.",
            f"{len(numeric)} numeric columns",
        ))

    logger.debug("Generated %d insight(s)", len(out))
    return out


def _truncate(text: str, width: int, keep: int) -> str:
    return text[:keep] + "..." if len(text) > width else text


def build_report(table, descriptors: Sequence[ColumnDescriptor], file_name: Optional[str] = None, *,
                 sample_rows: int = 10, sample_columns: int = 6, max_insights: int = 8) -> Dict[str, Any]:
    """Structured content of the data profiling report; page layout belongs to the renderer."""
    header = header_of(table)
    rows = [tuple(r) for r in etl.data(table)]
    n_rows, n_cols = len(rows), len(descriptors)
    missing = total_missing(descriptors)
    cells = n_rows * n_cols
    completeness = (1 - missing / cells) * 100 if cells else 100.0

    quality = [
        ("Data Completeness", f"{completeness:.1f}%"),
        ("Numeric Columns", str(len(columns_of_type(descriptors, NUMERIC)))),
        ("Categorical Columns", str(len(columns_of_type(descriptors, CATEGORICAL)))),
        ("Columns with Missing Values", str(sum(1 for d in descriptors if d.missing > 0))),
        ("Total Missing Values", f"{missing:,}"),
    ]

    conformance = validate_table(table, list(descriptors))
    quality.append((
        "Schema Conformance",
        "valid" if conformance["valid"] else f"{conformance['errors']} error(s)",
    ))

    column_stats = []
    for d in descriptors:
        i = header.index(d.name)
        present = [r[i] for r in rows if not is_missing(r[i])]
        unique = len({format_cell(v) for v in present})
        if d.type == NUMERIC:
            nums = numeric_values(present)
            mean = sum(nums) / len(nums) if nums else 0
            lo = min(nums) if nums else 0
            hi = max(nums) if nums else 0
            stats = [f"{mean:.2f}", f"{lo:.2f}", f"{hi:.2f}"]
        else:
            stats = ["-", "-", "-"]
        column_stats.append([d.name, d.type, str(d.missing), str(unique)] + stats)

    shown = [d.name for d in descriptors][:sample_columns]
    idx = [header.index(c) for c in shown]
    sample = [[_truncate(format_cell(r[i]), 20, 17) for i in idx] for r in rows[:sample_rows]]

    insights = [str(i) for i in generate_insights(table, descriptors)[:max_insights]]

    return {
        "title": "Data Profiling Report",
        "generated": datetime.now().isoformat(timespec="seconds"),
        "file": {"name": file_name or "untitled", "rows": n_rows, "columns": n_cols},
        "quality": {"head": ["Metric", "Value"], "rows": quality},
        "conformance": conformance,
        "column_stats": {
            "head": ["Column", "Type", "Missing", "Unique", "Mean", "Min", "Max"],
            "rows": column_stats,
        },
        "sample": {"head": [_truncate(c, 12, 10) for c in shown], "rows": sample},
        "insights": insights,
    }
