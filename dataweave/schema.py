from __future__ import annotations

import logging
import math
import re
import statistics
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import petl as etl
from frictionless import Resource, Schema

from dataweave.config import Settings
from dataweave.errors import DataWeaveUserError
from dataweave.util import (
    FrictionlessSchema,
    format_cell,
    header_of,
    is_missing,
    parse_date,
    parse_number,
    round_half_up,
    value_key,
)

logger = logging.getLogger(__name__)

NUMERIC = "numeric"
CATEGORICAL = "categorical"
DATE = "date"
TEXT = "text"
COLUMN_TYPES = (NUMERIC, CATEGORICAL, DATE, TEXT)

DATE_PATTERN = re.compile(r"^\d{4}[-/]\d{1,2}[-/]\d{1,2}|^\d{1,2}[-/]\d{1,2}[-/]\d{2,4}")


@dataclass(frozen=True)
class ColumnStats:
    min: float
    max: float
    mean: float
    median: float
    std_dev: float


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    type: str
    missing: int
    unique: int
    stats: Optional[ColumnStats] = None


def _looks_like_date(v: Any) -> bool:
    if not isinstance(v, str):
        return False
    return bool(DATE_PATTERN.match(v)) or parse_date(v) is not None


def _numeric_stats(nums: List[float]) -> ColumnStats:
    ordered = sorted(nums)
    n = len(nums)
    # past 1e150 squares overflow; work in units of the largest magnitude there
    top = max(abs(ordered[0]), abs(ordered[-1]))
    scale = top if top > 1e150 else 1.0
    scaled_mean = sum(v / scale for v in nums) / n
    mean = scaled_mean * scale
    # population standard deviation (divide by n)
    std_dev = math.sqrt(sum((v / scale - scaled_mean) ** 2 for v in nums) / n) * scale
    return ColumnStats(
        min=round_half_up(ordered[0]),
        max=round_half_up(ordered[-1]),
        mean=round_half_up(mean),
        median=round_half_up(statistics.median(ordered)),
        std_dev=round_half_up(std_dev),
    )


def describe_column(name: str, values: List[Any], settings: Optional[Settings] = None) -> ColumnDescriptor:
    """Infer the semantic type and statistics of one column from its raw values."""
    settings = settings or Settings()
    present = [v for v in values if not is_missing(v)]
    missing = len(values) - len(present)
    unique = len({value_key(v) for v in present})

    if not present:
        return ColumnDescriptor(name=name, type=TEXT, missing=missing, unique=0)

    parsed = [parse_number(v) for v in present]
    if all(p is not None for p in parsed):
        return ColumnDescriptor(
            name=name, type=NUMERIC, missing=missing, unique=unique, stats=_numeric_stats(parsed)
        )

    date_hits = sum(1 for v in present if _looks_like_date(v))
    if date_hits >= settings.date_match_ratio * len(present):
        col_type = DATE
    elif unique <= min(settings.categorical_max_unique, settings.categorical_max_ratio * len(present)):
        col_type = CATEGORICAL
    else:
        col_type = TEXT
    return ColumnDescriptor(name=name, type=col_type, missing=missing, unique=unique)


def analyze(table, settings: Optional[Settings] = None) -> List[ColumnDescriptor]:
    """Produce one ColumnDescriptor per column, in header order."""
    header = header_of(table)
    columns: Dict[str, List[Any]] = {h: [] for h in header}
    for row in etl.data(table):
        for h, v in zip(header, row):
            columns[h].append(v)
    out = [describe_column(h, columns[h], settings) for h in header]
    logger.debug("Analyzed %d column(s): %s", len(out), ", ".join(f"{d.name}:{d.type}" for d in out))
    return out


def descriptor_map(descriptors: List[ColumnDescriptor]) -> Dict[str, ColumnDescriptor]:
    return {d.name: d for d in descriptors}


def columns_of_type(descriptors: List[ColumnDescriptor], col_type: str) -> List[str]:
    return [d.name for d in descriptors if d.type == col_type]


def total_missing(descriptors: List[ColumnDescriptor]) -> int:
    return sum(d.missing for d in descriptors)


# ---------------- Frictionless bridge ----------------

def to_frictionless_schema(descriptors: List[ColumnDescriptor]) -> FrictionlessSchema:
    """Express the inferred descriptors as a Frictionless table schema descriptor."""
    fields: List[Dict[str, Any]] = []
    for d in descriptors:
        if d.type == NUMERIC:
            fields.append({"name": d.name, "type": "number"})
        elif d.type == DATE:
            fields.append({"name": d.name, "type": "date", "format": "any"})
        else:
            fields.append({"name": d.name, "type": "string"})
    return {"fields": fields}


def validate_table(table, descriptors: List[ColumnDescriptor], *, sample_rows: int = 5000) -> Dict[str, Any]:
    """Check a bounded sample of the table against its own inferred schema with Frictionless.

    Returns a small summary: {valid, rows_checked, errors, error_preview}.
    """
    if not isinstance(sample_rows, int) or sample_rows <= 0:
        raise DataWeaveUserError(
            "E_VALIDATE_PARAMS",
            "sample_rows must be a positive integer.",
            hint="Example: validate_table(table, descriptors, sample_rows=1000)",
        )

    header = header_of(table)
    data_rows = list(etl.data(etl.head(table, sample_rows)))
    if not data_rows:
        return {"valid": True, "rows_checked": 0, "errors": 0, "error_preview": []}

    schema_desc = to_frictionless_schema(descriptors)
    # string fields take the cell's text, so booleans and mixed cells stay valid
    as_text = {f["name"] for f in schema_desc["fields"] if f["type"] == "string"}
    records = [
        {h: (format_cell(v) if h in as_text and v is not None else v) for h, v in zip(header, r)}
        for r in data_rows
    ]
    try:
        schema = Schema.from_descriptor(schema_desc)
        report = Resource(data=records, schema=schema).validate()
        report_desc = report.to_descriptor()
    except Exception as e:
        raise DataWeaveUserError(
            "E_VALIDATE_FAILED_TO_RUN",
            f"Schema validation could not run: {type(e).__name__}: {e}",
            hint="Check that column names are unique and the table is rectangular.",
        ) from e

    err_list: List[Dict[str, Any]] = []
    for task in report_desc.get("tasks") or []:
        if isinstance(task, dict):
            err_list.extend(er for er in task.get("errors") or [] if isinstance(er, dict))

    preview: List[str] = []
    for er in err_list[:5]:
        note = er.get("note") or er.get("message") or "Validation error"
        loc = []
        if er.get("rowNumber") is not None:
            loc.append(f"row {er['rowNumber']}")
        if er.get("fieldName"):
            loc.append(f"field {er['fieldName']!r}")
        preview.append(note + ((", " + ", ".join(loc)) if loc else ""))

    return {
        "valid": bool(getattr(report, "valid", False)),
        "rows_checked": len(data_rows),
        "errors": len(err_list),
        "error_preview": preview,
    }
