from __future__ import annotations

import logging
import math
import re
import statistics
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type

import petl as etl

from dataweave.config import Settings
from dataweave.errors import DataWeaveUserError, unknown_column
from dataweave.models.formula import apply_formula
from dataweave.models.join import JOIN_TYPES, join_tables
from dataweave.schema import DATE, NUMERIC, ColumnDescriptor, analyze
from dataweave.util import (
    column_values,
    format_cell,
    header_of,
    iqr_bounds,
    is_missing,
    is_number,
    materialize,
    numeric_values,
    parse_cell,
    parse_date,
    parse_number,
    round_half_away,
    round_half_up,
    same_value,
    value_key,
)

logger = logging.getLogger(__name__)

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass(frozen=True)
class TransformContext:
    """What a transform may look at besides its input table."""

    descriptors: Sequence[ColumnDescriptor] = ()
    settings: Settings = field(default_factory=Settings)
    files: Mapping[str, Any] = field(default_factory=dict)


# ---------------- Transform implementation registry ----------------

class TransformImpl:
    """Internal implementation for a Transform op.

    Users interact with `Transform(op, params)`.
    Implementations are registered by op name and invoked by `Transform.apply`.
    """

    op: str = ""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        # default: no validation
        return

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        raise DataWeaveUserError(
            "E_OP_NOT_IMPL",
            f"Transform op '{cls.op}' is not implemented.",
            hint="Implement it as a TransformImpl and register it.",
        )


TRANSFORM_REGISTRY: Dict[str, Type[TransformImpl]] = {}


def register_transform(op: str) -> Callable[[Type[TransformImpl]], Type[TransformImpl]]:
    """Decorator to register a TransformImpl under an op string."""

    def deco(cls: Type[TransformImpl]) -> Type[TransformImpl]:
        cls.op = op
        TRANSFORM_REGISTRY[op] = cls
        return cls

    return deco


# ---------------- Shared helpers ----------------

def _params_error(op: str, message: str, example: str) -> DataWeaveUserError:
    return DataWeaveUserError(f"E_{op.upper()}_PARAMS", message, hint=example)


def _require_name(params: Dict[str, Any], key: str, op: str, example: str) -> str:
    v = params.get(key)
    if not isinstance(v, str) or not v:
        raise _params_error(op, f"{op} requires params.{key} as a column name.", example)
    return v


def _require_choice(params: Dict[str, Any], key: str, choices: Sequence[str], op: str, example: str) -> str:
    v = params.get(key)
    if v not in choices:
        raise _params_error(op, f"{op} params.{key} must be one of: {', '.join(choices)}.", example)
    return v


def _optional_columns(params: Dict[str, Any], op: str, example: str) -> Optional[List[str]]:
    cols = params.get("columns")
    if cols is None:
        return None
    if not isinstance(cols, list) or not all(isinstance(c, str) and c for c in cols):
        raise _params_error(op, f"{op} params.columns must be a list of column names.", example)
    return list(cols)


def _check_columns(table, columns: Sequence[str]) -> List[str]:
    header = header_of(table)
    for c in columns:
        if c not in header:
            raise unknown_column(c, header)
    return header


def _derive(table, name: str, fn: Callable[[Any], Any]):
    """Set column `name` to fn(record): replaced in place when it exists, appended otherwise."""
    if name in header_of(table):
        return etl.convert(table, name, lambda v, rec: fn(rec), pass_row=True)
    return etl.addfield(table, name, fn)


def _rebuild(header: Sequence[str], rows: List[Tuple[Any, ...]]):
    return etl.wrap([tuple(header)] + rows)


# ---------------- Value coercion & cleaning ----------------

def _to_number(v: Any) -> Any:
    if is_missing(v):
        return None
    if isinstance(v, bool):
        return int(v)
    if is_number(v):
        return v
    if isinstance(v, str):
        typed = parse_cell(v.strip())
        return typed if is_number(typed) else None
    return None


def _to_string(v: Any) -> Any:
    if v is None:
        return None
    return format_cell(v)


def _to_date(v: Any) -> Any:
    d = parse_date(v)
    return d.strftime("%Y-%m-%d") if d is not None else None


_CONVERTERS: Dict[str, Callable[[Any], Any]] = {"number": _to_number, "string": _to_string, "date": _to_date}


@register_transform("convert")
class ConvertTransform(TransformImpl):
    """Change a column's value type. Values that do not convert become None; no row is dropped."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('convert', params={'column': 'price', 'to': 'number'})"
        _require_name(params, "column", "convert", example)
        _require_choice(params, "to", tuple(_CONVERTERS), "convert", example)

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        _check_columns(table, [column])
        return etl.convert(table, column, _CONVERTERS[params["to"]])


FILL_STRATEGIES = ("mean", "median", "mode", "custom", "drop")


def mode_value(values: Sequence[Any]) -> Any:
    """Most frequent value; on a tie the one that reached the top count first wins."""
    counts: Dict[Any, int] = {}
    best, best_count = None, 0
    for v in values:
        k = value_key(v)
        counts[k] = counts.get(k, 0) + 1
        if counts[k] > best_count:
            best, best_count = v, counts[k]
    return best


@register_transform("fill_missing")
class FillMissingTransform(TransformImpl):
    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('fill_missing', params={'column': 'age', 'strategy': 'median'})"
        _require_name(params, "column", "fill_missing", example)
        strategy = _require_choice(params, "strategy", FILL_STRATEGIES, "fill_missing", example)
        if strategy == "custom" and is_missing(params.get("value")):
            raise _params_error(
                "fill_missing",
                "fill_missing with strategy 'custom' requires params.value.",
                "Example: Transform('fill_missing', params={'column': 'city', 'strategy': 'custom', 'value': 'Unknown'})",
            )

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        strategy = params["strategy"]
        _check_columns(table, [column])

        if strategy == "drop":
            return etl.select(table, lambda rec: not is_missing(rec[column]))

        present = [v for v in column_values(table, column) if not is_missing(v)]
        if strategy in ("mean", "median"):
            nums = numeric_values(present)
            if not nums:
                logger.warning("fill_missing(%s): column %r has no numeric values; nothing filled", strategy, column)
                return table
            fill = statistics.fmean(nums) if strategy == "mean" else statistics.median(nums)
        elif strategy == "mode":
            if not present:
                logger.warning("fill_missing(mode): column %r has no values; nothing filled", column)
                return table
            fill = mode_value(present)
        else:
            value = params["value"]
            fill = parse_cell(value) if isinstance(value, str) else value

        logger.debug("fill_missing(%s) %r with %r", strategy, column, fill)
        return etl.convert(table, column, lambda v: fill if is_missing(v) else v)


@register_transform("drop_missing")
class DropMissingTransform(TransformImpl):
    """Drop rows missing a value in any of params.columns (any column when omitted)."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        _optional_columns(params, "drop_missing", "Example: Transform('drop_missing', params={'columns': ['age']})")

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        columns = params.get("columns")
        header = _check_columns(table, columns or [])
        cols = columns or header
        return etl.select(table, lambda rec: not any(is_missing(rec[c]) for c in cols))


@register_transform("dedupe")
class DedupeTransform(TransformImpl):
    """Keep the first row per key; the key is the whole row unless params.columns is given."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        _optional_columns(params, "dedupe", "Example: Transform('dedupe', params={'columns': ['email']})")

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        columns = params.get("columns") or []
        header = _check_columns(table, columns)
        idx = [header.index(c) for c in columns]

        seen = set()
        kept: List[Tuple[Any, ...]] = []
        for row in etl.data(table):
            row = tuple(row)
            if idx:
                key: Any = "|".join(format_cell(row[i]) for i in idx)
            else:
                key = tuple(value_key(v) for v in row)
            if key in seen:
                continue
            seen.add(key)
            kept.append(row)
        return _rebuild(header, kept)


@register_transform("remove_outliers")
class RemoveOutliersTransform(TransformImpl):
    """Drop rows whose value lies outside the IQR fences; non-numeric cells are kept."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        _require_name(params, "column", "remove_outliers",
                      "Example: Transform('remove_outliers', params={'column': 'price'})")

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        _check_columns(table, [column])
        settings = context.settings

        nums = numeric_values(column_values(table, column))
        if len(nums) < settings.outlier_min_values:
            logger.info("remove_outliers: %r has %d numeric value(s), need %d; unchanged",
                        column, len(nums), settings.outlier_min_values)
            return table

        lo, hi = iqr_bounds(nums, settings.iqr_factor)
        logger.debug("remove_outliers %r: keeping [%s, %s]", column, lo, hi)

        def keep(rec) -> bool:
            n = parse_number(rec[column])
            return n is None or lo <= n <= hi

        return etl.select(table, keep)


@register_transform("replace")
class ReplaceTransform(TransformImpl):
    """Literal, case-sensitive find & replace inside one column's cells."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('replace', params={'column': 'city', 'find': 'NYC', 'replace': 'New York'})"
        _require_name(params, "column", "replace", example)
        find = params.get("find")
        if not isinstance(find, str) or not find:
            raise _params_error("replace", "replace requires params.find as a non-empty string.", example)
        if not isinstance(params.get("replace", ""), str):
            raise _params_error("replace", "replace params.replace must be a string.", example)

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        find = params["find"]
        replacement = params.get("replace", "")
        _check_columns(table, [column])

        def swap(v: Any) -> Any:
            if is_missing(v):
                return v
            s = format_cell(v)
            return s.replace(find, replacement) if find in s else v

        return etl.convert(table, column, swap)


# ---------------- Transform library ----------------

def _math_log(v: float) -> Optional[float]:
    return math.log(v) if v > 0 else None


def _math_log10(v: float) -> Optional[float]:
    return math.log10(v) if v > 0 else None


def _math_sqrt(v: float) -> Optional[float]:
    return math.sqrt(v) if v >= 0 else None


MATH_OPERATIONS: Dict[str, Callable[[float], Any]] = {
    "log": _math_log,
    "log10": _math_log10,
    "sqrt": _math_sqrt,
    "square": lambda v: v * v,
    "abs": abs,
    "round": round_half_away,
    "floor": math.floor,
    "ceil": math.ceil,
}


@register_transform("math")
class MathTransform(TransformImpl):
    """Append <column>_<operation>; non-numeric cells and domain errors give None."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('math', params={'column': 'price', 'operation': 'log'})"
        _require_name(params, "column", "math", example)
        _require_choice(params, "operation", tuple(MATH_OPERATIONS), "math", example)

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        operation = params["operation"]
        _check_columns(table, [column])
        fn = MATH_OPERATIONS[operation]

        def compute(rec) -> Any:
            n = parse_number(rec[column])
            if n is None:
                return None
            try:
                out = fn(n)
            except OverflowError:
                return None
            if out is None:
                return None
            if isinstance(out, int):
                return out
            return round_half_up(out, 3) if math.isfinite(out) else None

        return _derive(table, f"{column}_{operation}", compute)


NORMALIZE_METHODS = {"minmax": "normalized", "zscore": "standardized"}


@register_transform("normalize")
class NormalizeTransform(TransformImpl):
    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('normalize', params={'column': 'price', 'method': 'zscore'})"
        _require_name(params, "column", "normalize", example)
        _require_choice(params, "method", tuple(NORMALIZE_METHODS), "normalize", example)

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        method = params["method"]
        _check_columns(table, [column])

        nums = numeric_values(column_values(table, column))
        if not nums:
            logger.warning("normalize: column %r has no numeric values; unchanged", column)
            return table

        if method == "minmax":
            lo, hi = min(nums), max(nums)
            span = hi - lo

            def scale(n: float) -> float:
                return 0 if span == 0 else round_half_up((n - lo) / span, 3)
        else:
            mean = sum(nums) / len(nums)
            std = math.sqrt(sum((n - mean) ** 2 for n in nums) / len(nums))

            def scale(n: float) -> float:
                return 0 if std == 0 else round_half_up((n - mean) / std, 3)

        def compute(rec) -> Any:
            n = parse_number(rec[column])
            return None if n is None else scale(n)

        return _derive(table, f"{column}_{NORMALIZE_METHODS[method]}", compute)


STRING_OPERATIONS = ("lowercase", "uppercase", "trim", "length", "first_word", "word_count", "extract",
                     "strip_digits")


@register_transform("string")
class StringTransform(TransformImpl):
    """Append <column>_<operation> computed from each cell's text."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('string', params={'column': 'name', 'operation': 'uppercase'})"
        _require_name(params, "column", "string", example)
        operation = _require_choice(params, "operation", STRING_OPERATIONS, "string", example)
        if operation == "extract":
            pattern = params.get("pattern")
            if not isinstance(pattern, str) or not pattern:
                raise _params_error(
                    "string",
                    "string operation 'extract' requires params.pattern as a regular expression.",
                    "Example: Transform('string', params={'column': 'code', 'operation': 'extract', 'pattern': '[0-9]+'})",
                )

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        operation = params["operation"]
        _check_columns(table, [column])

        regex = None
        if operation == "extract":
            try:
                regex = re.compile(params["pattern"])
            except re.error as e:
                logger.warning("string extract: invalid pattern %r (%s); column will be empty", params["pattern"], e)

        def compute(rec) -> Any:
            v = rec[column]
            if is_missing(v):
                return None
            s = format_cell(v)
            if operation == "lowercase":
                return s.lower()
            if operation == "uppercase":
                return s.upper()
            if operation == "trim":
                return s.strip()
            if operation == "length":
                return len(s)
            if operation == "first_word":
                return re.split(r"\s+", s)[0] or None
            if operation == "word_count":
                return len(s.split())
            if operation == "strip_digits":
                return re.sub(r"\d+", "", s)
            if regex is None:
                return None
            m = regex.search(s)
            return m.group(0) if m else None

        return _derive(table, f"{column}_{operation}", compute)


_WS = re.compile(r"\s+")


def one_hot_name(column: str, value: Any) -> str:
    return f"{column}_{_WS.sub('_', format_cell(value))}"


@register_transform("one_hot")
class OneHotTransform(TransformImpl):
    """One 0/1 indicator column per distinct non-missing value, in first-seen order.

    Distinct values that format to the same name (1 and "1", "a b" and "a_b") get
    numbered suffixes; a name that is already a column is rejected.
    """

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        _require_name(params, "column", "one_hot", "Example: Transform('one_hot', params={'column': 'color'})")

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        _check_columns(table, [column])

        distinct: Dict[Any, Any] = {}
        for v in column_values(table, column):
            if not is_missing(v):
                distinct.setdefault(value_key(v), v)

        existing = set(header_of(table))
        names: List[str] = []
        for value in distinct.values():
            base = name = one_hot_name(column, value)
            n = 2
            while name in names:
                name = f"{base}_{n}"
                n += 1
            if name in existing:
                raise DataWeaveUserError(
                    "E_ONE_HOT_EXISTS",
                    f"One-hot column '{name}' already exists.",
                    hint="Rename or delete that column before encoding again.",
                )
            names.append(name)

        out = table
        for name, value in zip(names, distinct.values()):
            out = _derive(out, name, lambda rec, value=value: 1 if same_value(rec[column], value) else 0)
        logger.debug("one_hot %r: %d indicator column(s)", column, len(distinct))
        return out


AGGREGATIONS = ("sum", "mean", "count", "min", "max")


def aggregate_numbers(values: Sequence[float], operation: str) -> float:
    if operation == "count":
        return len(values)
    if not values:
        return 0
    if operation == "sum":
        return sum(values)
    if operation == "mean":
        return sum(values) / len(values)
    if operation == "min":
        return min(values)
    return max(values)


@register_transform("aggregate")
class AggregateTransform(TransformImpl):
    """Replace the table with one row per group: (group_by, <value>_<operation>)."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('aggregate', params={'group_by': 'region', 'value': 'sales', 'operation': 'sum'})"
        _require_name(params, "group_by", "aggregate", example)
        _require_name(params, "value", "aggregate", example)
        _require_choice(params, "operation", AGGREGATIONS, "aggregate", example)

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        group_by = params["group_by"]
        value = params["value"]
        operation = params["operation"]
        header = _check_columns(table, [group_by, value])
        gi, vi = header.index(group_by), header.index(value)

        groups: Dict[str, List[float]] = {}
        for row in etl.data(table):
            key = "null" if is_missing(row[gi]) else format_cell(row[gi])
            bucket = groups.setdefault(key, [])
            n = parse_number(row[vi])
            if n is not None:
                bucket.append(n)

        rows = [(k, round_half_up(aggregate_numbers(vals, operation), 2)) for k, vals in groups.items()]
        logger.debug("aggregate %s(%s) by %r: %d group(s)", operation, value, group_by, len(rows))
        return _rebuild([group_by, f"{value}_{operation}"], rows)


# ---------------- Smart auto-transformations ----------------

def _date_part(v: Any, fmt: Callable[[Any], Any]) -> Any:
    dt = parse_date(v)
    return None if dt is None else fmt(dt)


def apply_smart_transforms(table, descriptors: Optional[Sequence[ColumnDescriptor]] = None,
                           settings: Optional[Settings] = None):
    """Decompose date columns and bin numeric columns.

    Returns (table, new_column_names). Dates add <col>_Year, <col>_Month and <col>_DayOfWeek;
    numeric columns with a non-zero range add <col>_Bin labelled "<start>-<end>".
    """
    settings = settings or Settings()
    if not descriptors:
        descriptors = analyze(table, settings)
    _check_columns(table, [d.name for d in descriptors])

    out = table
    new_columns: List[str] = []
    for d in descriptors:
        col = d.name
        if d.type == DATE:
            parts = (
                (f"{col}_Year", lambda dt: dt.year),
                (f"{col}_Month", lambda dt: MONTH_NAMES[dt.month - 1]),
                (f"{col}_DayOfWeek", lambda dt: WEEKDAY_NAMES[dt.weekday()]),
            )
            for name, fmt in parts:
                out = _derive(out, name, lambda rec, col=col, fmt=fmt: _date_part(rec[col], fmt))
                new_columns.append(name)

        elif d.type == NUMERIC:
            nums = numeric_values(column_values(table, col))
            if not nums:
                continue
            lo = min(nums)
            size = (max(nums) - lo) / settings.bin_count
            if size <= 0:
                continue
            top = settings.bin_count - 1

            def _bin(rec, col=col, lo=lo, size=size, top=top):
                n = parse_number(rec[col])
                if n is None:
                    return None
                idx = min(int(math.floor((n - lo) / size)), top)
                start = round_half_away(lo + idx * size)
                end = round_half_away(start + size)
                return f"{start}-{end}"

            name = f"{col}_Bin"
            out = _derive(out, name, _bin)
            new_columns.append(name)

    logger.info("Smart transforms added %d column(s)", len(new_columns))
    return materialize(out), new_columns


@register_transform("smart")
class SmartTransform(TransformImpl):
    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        out, _ = apply_smart_transforms(table, context.descriptors, context.settings)
        return out


# ---------------- Formula, join and column layout ----------------

@register_transform("formula")
class FormulaTransform(TransformImpl):
    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        return apply_formula(table, params.get("name"), params.get("formula"))


@register_transform("join")
class JoinTransform(TransformImpl):
    """Join the input (left) with params.right: a table, or the name of a loaded file."""

    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('join', params={'right': 'orders.csv', 'on': 'customer_id', 'how': 'left'})"
        if params.get("right") is None:
            raise _params_error("join", "join requires params.right as a table or a loaded file name.", example)
        _require_name(params, "on", "join", example)
        if params.get("how", "inner") not in JOIN_TYPES:
            raise _params_error("join", f"join params.how must be one of: {', '.join(JOIN_TYPES)}.", example)

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        right = params["right"]
        if isinstance(right, str):
            if right not in context.files:
                raise DataWeaveUserError(
                    "E_JOIN_UNKNOWN_FILE",
                    f"No loaded file named {right!r}.",
                    hint="Loaded files: " + (", ".join(context.files) or "(none)"),
                )
            right = context.files[right]
        return join_tables(table, right, params["on"], params.get("how", "inner"))


@register_transform("reorder")
class ReorderTransform(TransformImpl):
    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        cols = params.get("columns")
        if not isinstance(cols, list) or not cols:
            raise _params_error("reorder", "reorder requires params.columns as the full list of columns.",
                                "Example: Transform('reorder', params={'columns': ['id', 'name', 'age']})")

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        columns = params["columns"]
        header = _check_columns(table, columns)
        if len(columns) != len(header) or set(columns) != set(header):
            raise DataWeaveUserError(
                "E_REORDER_PARAMS",
                "reorder params.columns must name every column exactly once.",
                hint="Current columns: " + ", ".join(header),
            )
        return etl.cut(table, *columns)


@register_transform("rename")
class RenameTransform(TransformImpl):
    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        example = "Example: Transform('rename', params={'column': 'amt', 'new_name': 'amount'})"
        _require_name(params, "column", "rename", example)
        new_name = params.get("new_name")
        if not isinstance(new_name, str) or not new_name.strip():
            raise _params_error("rename", "rename requires params.new_name as a non-empty string.", example)

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        column = params["column"]
        new_name = params["new_name"].strip()
        header = _check_columns(table, [column])
        if new_name == column:
            return table
        if new_name in header:
            raise DataWeaveUserError(
                "E_RENAME_EXISTS",
                f"Cannot rename {column!r} to {new_name!r}: that column already exists.",
                hint="Pick a name that is not in use, or delete the other column first.",
            )
        return etl.rename(table, column, new_name)


@register_transform("drop")
class DropTransform(TransformImpl):
    @classmethod
    def validate_params(cls, params: Dict[str, Any]) -> None:
        cols = params.get("columns")
        if not isinstance(cols, list) or not cols:
            raise _params_error("drop", "drop requires params.columns as a non-empty list of column names.",
                                "Example: Transform('drop', params={'columns': ['debug_col']})")

    @classmethod
    def apply(cls, table, *, params: Dict[str, Any], context: TransformContext):
        cols = params["columns"]
        _check_columns(table, cols)
        return etl.cutout(table, *cols)


def _short(v: Any) -> str:
    if isinstance(v, (str, int, float, bool)) or v is None:
        return repr(v)
    if isinstance(v, (list, tuple)) and all(isinstance(x, (str, int, float)) for x in v):
        return repr(list(v))
    return type(v).__name__


@dataclass(frozen=True)
class Transform:
    op: str
    params: Dict[str, Any] = field(default_factory=dict)

    def apply(self, table, *, context: Optional[TransformContext] = None):
        """Validate params, run the op and return a fully materialized table."""
        impl = TRANSFORM_REGISTRY.get(self.op)
        if impl is None:
            raise DataWeaveUserError(
                "E_OP_NOT_IMPL",
                f"Transform op '{self.op}' is not implemented.",
                hint="Supported ops: " + ", ".join(sorted(TRANSFORM_REGISTRY.keys())),
            )
        impl.validate_params(self.params)
        out = materialize(impl.apply(table, params=self.params, context=context or TransformContext()))
        logger.debug("%s -> %d row(s)", self, etl.nrows(out))
        return out

    def describe(self) -> str:
        args = ", ".join(f"{k}={_short(v)}" for k, v in self.params.items())
        return f"{self.op}({args})"

    def __str__(self) -> str:
        return f"Transform(op={self.op}, params={{{', '.join(f'{k}: {_short(v)}' for k, v in self.params.items())}}})"
