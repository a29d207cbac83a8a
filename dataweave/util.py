from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, localcontext
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import petl as etl

FrictionlessSchema = Dict[str, Any]
Record = Dict[str, Any]

_INT_RE = re.compile(r"^\s*[+-]?\d+\s*$")
_FLOAT_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\s*$")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%m-%d-%y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%Y-%m",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)


def _is_probably_url(s: str) -> bool:
    return s.startswith("http://") or s.startswith("https://") or s.startswith("s3://")


def _norm_path(p: str, *, base_dir: Optional[Path]) -> str:
    """Normalize a path relative to a base directory (when provided).

    - Leaves absolute paths and URLs unchanged.
    - If base_dir is provided and p is relative, returns an absolute resolved path.
    """
    if not isinstance(p, str) or not p:
        return p
    if _is_probably_url(p):
        return p
    pp = Path(p).expanduser()
    if pp.is_absolute():
        return str(pp)
    if base_dir is None:
        return p
    return str((base_dir / pp).resolve())


def _infer_type_from_uri(uri: str) -> Optional[str]:
    ext = Path(str(uri)).suffix.lower()
    if ext == ".csv":
        return "csv"
    if ext in (".tsv", ".tab"):
        return "tsv"
    if ext == ".xlsx":
        return "xlsx"
    return None


# ---------------- Cells ----------------

def is_missing(v: Any) -> bool:
    """Null and the empty string both count as missing."""
    return v is None or (isinstance(v, str) and v == "")


def is_number(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, (int, float)):
        return math.isfinite(v)
    return False


def parse_number(v: Any) -> Optional[float]:
    """Return v as a finite float when it is a number or a numeric-looking string, else None."""
    if is_number(v):
        return float(v)
    if isinstance(v, str) and _FLOAT_RE.match(v):
        f = float(v)
        return f if math.isfinite(f) else None
    return None


def parse_cell(v: Any) -> Any:
    """Type a raw CSV field: numbers, booleans, empty -> None, anything else stays a string."""
    if not isinstance(v, str):
        return v
    if v == "":
        return None
    s = v.strip()
    low = s.lower()
    if low == "true":
        return True
    if low == "false":
        return False
    if _INT_RE.match(s):
        return int(s)
    if _FLOAT_RE.match(s):
        f = float(s)
        if math.isfinite(f):
            return f
    return v


def format_cell(v: Any) -> str:
    """Stringify a cell the way keys, text matching and exports see it."""
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float):
        if v.is_integer():
            return str(int(v))
        return repr(v)
    return str(v)


def same_value(a: Any, b: Any) -> bool:
    """Raw-value equality: booleans never equal numbers, numbers never equal strings."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def value_key(v: Any) -> Any:
    """Hashable key with the same equality as same_value()."""
    if isinstance(v, bool):
        return ("bool", v)
    if isinstance(v, (int, float)):
        return ("num", v)
    return (type(v).__name__, v)


def round_half_up(value: float, places: int = 2) -> Any:
    value = float(value)
    if not math.isfinite(value):
        return value
    q = Decimal(1).scaleb(-places)
    exact = Decimal(repr(value))
    # quantize needs room for every integer digit plus the kept places
    with localcontext() as ctx:
        ctx.prec = max(28, exact.adjusted() + places + 2)
        d = exact.quantize(q, rounding=ROUND_HALF_UP)
    if places == 0:
        return int(d)
    return float(d)


def parse_date(v: Any) -> Optional[datetime]:
    if isinstance(v, datetime):
        return v
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day)
    if not isinstance(v, str):
        return None
    s = v.strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def numeric_values(values: Iterable[Any]) -> List[float]:
    """Finite numbers among values (numeric-looking strings included), in input order."""
    out: List[float] = []
    for v in values:
        n = parse_number(v)
        if n is not None:
            out.append(n)
    return out


def round_half_away(value: float) -> int:
    """Integer rounding with .5 going up, as spreadsheet users expect for bin labels."""
    return int(math.floor(value + 0.5))


def iqr_bounds(values: Sequence[float], factor: float = 1.5) -> Tuple[float, float]:
    """Outlier fences from quartiles taken at floor(n*0.25) and floor(n*0.75) of the sorted values."""
    ordered = sorted(values)
    n = len(ordered)
    q1 = ordered[int(n * 0.25)]
    q3 = ordered[int(n * 0.75)]
    iqr = q3 - q1
    return q1 - factor * iqr, q3 + factor * iqr


# ---------------- Tables ----------------

def materialize(table) -> Any:
    """Fully read a (possibly lazy) PETL table into an in-memory one."""
    return etl.wrap([tuple(row) for row in table])


def header_of(table) -> List[str]:
    return list(etl.header(table))


def from_records(records: Iterable[Record], header: Optional[Sequence[str]] = None):
    """Build a materialized PETL table from dict rows; header defaults to the union of keys in order."""
    records = list(records)
    if header is None:
        cols: List[str] = []
        seen = set()
        for r in records:
            for k in r:
                if k not in seen:
                    seen.add(k)
                    cols.append(k)
        header = cols
    rows = [tuple(header)]
    rows.extend(tuple(r.get(h) for h in header) for r in records)
    return etl.wrap(rows)


def to_records(table) -> List[Record]:
    hdr = header_of(table)
    return [dict(zip(hdr, row)) for row in etl.data(table)]


def column_values(table, column: str) -> List[Any]:
    return list(etl.values(table, column))
