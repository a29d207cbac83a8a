from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

import petl as etl

from dataweave.config import Settings
from dataweave.errors import DataWeaveUserError, unknown_column
from dataweave.models.charts import ChartConfig, histogram_series, new_chart_id, suggest_charts
from dataweave.models.correlation import CorrelationMatrix, correlation_matrix, top_correlations
from dataweave.models.insights import Insight, build_report, generate_insights
from dataweave.models.query import QueryResult, interpret_query
from dataweave.models.sinks import Sink, export_csv_text
from dataweave.models.sources import Source
from dataweave.models.transforms import Transform, TransformContext, apply_smart_transforms
from dataweave.schema import NUMERIC, ColumnDescriptor, analyze, columns_of_type
from dataweave.util import format_cell, header_of, materialize, parse_number

logger = logging.getLogger(__name__)

FILTER_KINDS = ("categorical", "numeric", "text")
STARTER_CHARTS = 3


@dataclass(frozen=True)
class Snapshot:
    table: Any
    descriptors: Tuple[ColumnDescriptor, ...]
    derived_columns: Tuple[str, ...]


@dataclass(frozen=True)
class HistoryEntry:
    """One undoable mutation.

    Both sides are kept: undo restores `before`, redo restores `after`. `renamed` carries
    (old, new) when the mutation was a column rename, so chart and filter references can be
    moved back and forth with the table.
    """

    description: str
    timestamp: float
    before: Snapshot
    after: Snapshot
    renamed: Optional[Tuple[str, str]] = None

    @property
    def table(self):
        return self.before.table


@dataclass(frozen=True)
class FileEntry:
    name: str
    table: Any
    descriptors: Tuple[ColumnDescriptor, ...]
    row_count: int


@dataclass(frozen=True)
class Filter:
    """A view-level row predicate on one column."""

    kind: str
    values: FrozenSet[str] = field(default_factory=frozenset)
    min: Optional[float] = None
    max: Optional[float] = None
    text: str = ""

    def __post_init__(self) -> None:
        if self.kind not in FILTER_KINDS:
            raise DataWeaveUserError(
                "E_FILTER_PARAMS",
                f"Unknown filter kind {self.kind!r}.",
                hint="Use Filter.categorical(...), Filter.numeric(...) or Filter.contains(...).",
            )
        object.__setattr__(self, "values", frozenset(self.values))
        if self.kind == "numeric" and self.min is not None and self.max is not None and self.min > self.max:
            raise DataWeaveUserError(
                "E_FILTER_PARAMS",
                f"Numeric filter min ({self.min}) is greater than max ({self.max}).",
                hint="Example: Filter.numeric(min=0, max=100)",
            )

    @classmethod
    def categorical(cls, values: Iterable[Any]) -> "Filter":
        return cls("categorical", values=frozenset(format_cell(v) for v in values))

    @classmethod
    def numeric(cls, min: Optional[float] = None, max: Optional[float] = None) -> "Filter":
        return cls("numeric", min=min, max=max)

    @classmethod
    def contains(cls, text: str) -> "Filter":
        return cls("text", text=text)

    def matches(self, value: Any) -> bool:
        if self.kind == "categorical":
            return format_cell(value) in self.values
        if self.kind == "numeric":
            n = parse_number(value)
            if n is None:
                return False
            return (self.min is None or n >= self.min) and (self.max is None or n <= self.max)
        return self.text.lower() in format_cell(value).lower()


class TableState:
    """Owner of the working table and everything that hangs off it.

    Every change to rows or columns goes through one choke point that records a history entry
    before swapping the new state in. Filters and charts are view state and are not recorded.
    Not safe for concurrent use: callers serialize operations, and while an asynchronous file
    load is in flight every other state change is refused.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self._busy = False
        self._files: Dict[str, FileEntry] = {}
        self._clear()

    def _clear(self) -> None:
        self._table = None
        self._descriptors: Tuple[ColumnDescriptor, ...] = ()
        self._derived: Tuple[str, ...] = ()
        self._file_name: Optional[str] = None
        self._filters: Dict[str, Filter] = {}
        self._charts: List[ChartConfig] = []
        self._history: List[HistoryEntry] = []
        self._index = -1

    # ---------- read model ----------
    @property
    def is_loaded(self) -> bool:
        return self._table is not None

    @property
    def table(self):
        return self._table

    @property
    def descriptors(self) -> List[ColumnDescriptor]:
        return list(self._descriptors)

    @property
    def columns(self) -> List[str]:
        return [d.name for d in self._descriptors]

    @property
    def derived_columns(self) -> List[str]:
        return list(self._derived)

    @property
    def file_name(self) -> Optional[str]:
        return self._file_name

    @property
    def row_count(self) -> int:
        return etl.nrows(self._table) if self._table is not None else 0

    @property
    def filters(self) -> Dict[str, Filter]:
        return dict(self._filters)

    @property
    def charts(self) -> List[ChartConfig]:
        return list(self._charts)

    @property
    def files(self) -> Dict[str, FileEntry]:
        return dict(self._files)

    @property
    def history(self) -> List[HistoryEntry]:
        return list(self._history)

    @property
    def history_index(self) -> int:
        return self._index

    # ---------- guards ----------
    def _require_idle(self) -> None:
        if self._busy:
            raise DataWeaveUserError(
                "E_STATE_BUSY",
                "A file is still being loaded.",
                hint="Wait for load_file_async() to finish before changing the table.",
            )

    def _require_loaded(self) -> None:
        self._require_idle()
        if self._table is None:
            raise DataWeaveUserError(
                "E_STATE_EMPTY",
                "No table is loaded.",
                hint="Load a CSV first, e.g. state.load_file('data.csv').",
            )

    def _require_column(self, column: str) -> None:
        if column not in self.columns:
            raise unknown_column(column, self.columns)

    # ---------- loading ----------
    def load(self, table, name: str = "data.csv", *, smart: bool = True):
        """Replace everything with a freshly parsed table.

        Runs the smart transforms once (unless smart=False), resets history, filters and charts,
        adds a few starter charts and registers the table as a file.
        """
        self._require_idle()
        raw = materialize(table)
        if not header_of(raw):
            raise DataWeaveUserError(
                "E_SOURCE_PARSE",
                f"'{name}' has no columns.",
                hint="The first line must name the columns, e.g. 'id,name,price'.",
            )
        raw_descriptors = tuple(analyze(raw, self.settings))
        working, derived = raw, []
        if smart:
            working, derived = apply_smart_transforms(raw, raw_descriptors, self.settings)
        descriptors = tuple(analyze(working, self.settings)) if derived else raw_descriptors

        self._clear()
        self._table = working
        self._descriptors = descriptors
        self._derived = tuple(derived)
        self._file_name = name
        self._files[name] = FileEntry(name, raw, raw_descriptors, etl.nrows(raw))
        self._charts = suggest_charts(descriptors, self.settings)[:STARTER_CHARTS]
        logger.info("Loaded %s: %d row(s), %d column(s), %d derived", name, self.row_count,
                    len(descriptors), len(derived))
        return self._table

    def _source(self, source: Union[str, Path, Source], options: Dict[str, Any]) -> Source:
        """Build a Source; the configured csv_encoding applies unless an encoding is given."""
        if isinstance(source, Source):
            if "encoding" in source.options:
                return source
            return replace(source, options={"encoding": self.settings.csv_encoding, **source.options})
        return Source(str(source), options={"encoding": self.settings.csv_encoding, **options})

    def load_file(self, source: Union[str, Path, Source], *, smart: bool = True, **options: Any):
        src = self._source(source, options)
        table = src.table()
        return self.load(table, src.name, smart=smart)

    async def load_file_async(self, source: Union[str, Path, Source], *, smart: bool = True, **options: Any):
        """Parse in a worker thread; other state changes raise E_STATE_BUSY until it finishes."""
        self._require_idle()
        src = self._source(source, options)
        self._busy = True
        try:
            table = await asyncio.to_thread(src.table)
        finally:
            self._busy = False
        return self.load(table, src.name, smart=smart)

    def reset(self) -> None:
        self._require_idle()
        self._clear()
        self._files = {}
        logger.info("Workbench reset")

    # ---------- history ----------
    def _snapshot(self) -> Snapshot:
        return Snapshot(self._table, self._descriptors, self._derived)

    def _restore(self, snap: Snapshot) -> None:
        self._table = snap.table
        self._descriptors = snap.descriptors
        self._derived = snap.derived_columns

    def _push(self, entry: HistoryEntry) -> None:
        del self._history[self._index + 1:]
        self._history.append(entry)
        if len(self._history) > self.settings.history_limit:
            evicted = self._history.pop(0)
            logger.warning("History full (%d); dropped oldest entry %r", self.settings.history_limit,
                           evicted.description)
        self._index = len(self._history) - 1

    def _commit(self, table, description: str, *, derived: Optional[Sequence[str]] = None,
                renamed: Optional[Tuple[str, str]] = None):
        """The single path by which the table changes."""
        table = materialize(table)
        header = header_of(table)
        descriptors = tuple(analyze(table, self.settings))
        if derived is None:
            old = set(self.columns)
            derived = [c for c in self._derived if c in header]
            derived += [c for c in header if c not in old and c not in derived]

        after = Snapshot(table, descriptors, tuple(derived))
        self._push(HistoryEntry(description, time.time(), self._snapshot(), after, renamed))
        self._restore(after)
        if renamed:
            self._rename_references(*renamed)
        self._prune_references()
        logger.info("%s: %d row(s), %d column(s)", description, self.row_count, len(descriptors))
        return self._table

    def can_undo(self) -> bool:
        return self._index >= 0

    def can_redo(self) -> bool:
        return self._index < len(self._history) - 1

    def undo(self):
        self._require_idle()
        if not self.can_undo():
            return None
        entry = self._history[self._index]
        self._index -= 1
        self._restore(entry.before)
        if entry.renamed:
            self._rename_references(entry.renamed[1], entry.renamed[0])
        self._prune_references()
        logger.info("Undo: %s", entry.description)
        return self._table

    def redo(self):
        self._require_idle()
        if not self.can_redo():
            return None
        self._index += 1
        entry = self._history[self._index]
        self._restore(entry.after)
        if entry.renamed:
            self._rename_references(*entry.renamed)
        self._prune_references()
        logger.info("Redo: %s", entry.description)
        return self._table

    # ---------- references held by charts and filters ----------
    def _rename_references(self, old: str, new: str) -> None:
        charts = []
        for c in self._charts:
            changes = {axis: new for axis in ("x", "y", "y2") if getattr(c, axis) == old}
            charts.append(replace(c, **changes) if changes else c)
        self._charts = charts
        self._filters = {(new if k == old else k): f for k, f in self._filters.items()}

    def _prune_references(self) -> None:
        present = set(self.columns)
        charts = []
        for c in self._charts:
            if c.x not in present or (c.y and c.y not in present):
                logger.info("Removed chart %r: it referenced a column that no longer exists", c.title)
                continue
            if c.y2 and c.y2 not in present:
                c = replace(c, y2=None)
            charts.append(c)
        self._charts = charts
        self._filters = {k: f for k, f in self._filters.items() if k in present}

    # ---------- mutations ----------
    def _context(self) -> TransformContext:
        return TransformContext(self._descriptors, self.settings, {n: f.table for n, f in self._files.items()})

    def apply(self, transform: Transform, description: Optional[str] = None):
        """Run a registered transform on the table and record it."""
        self._require_loaded()
        out = transform.apply(self._table, context=self._context())
        return self._commit(out, description or transform.describe())

    def convert_column(self, column: str, to: str):
        return self.apply(Transform("convert", {"column": column, "to": to}), f"Convert {column} to {to}")

    def fill_missing(self, column: str, strategy: str, value: Any = None):
        params = {"column": column, "strategy": strategy}
        if value is not None:
            params["value"] = value
        return self.apply(Transform("fill_missing", params), f"Fill missing values in {column} ({strategy})")

    def drop_missing(self, columns: Optional[Sequence[str]] = None):
        params = {"columns": list(columns)} if columns else {}
        where = ", ".join(columns) if columns else "any column"
        return self.apply(Transform("drop_missing", params), f"Drop rows with missing values in {where}")

    def remove_duplicates(self, columns: Optional[Sequence[str]] = None):
        params = {"columns": list(columns)} if columns else {}
        return self.apply(Transform("dedupe", params), "Remove duplicate rows")

    def remove_outliers(self, column: str):
        return self.apply(Transform("remove_outliers", {"column": column}), f"Remove outliers in {column}")

    def find_replace(self, column: str, find: str, replacement: str = ""):
        return self.apply(Transform("replace", {"column": column, "find": find, "replace": replacement}),
                          f"Replace {find!r} with {replacement!r} in {column}")

    def math_transform(self, column: str, operation: str):
        return self.apply(Transform("math", {"column": column, "operation": operation}),
                          f"Apply {operation} to {column}")

    def normalize(self, column: str, method: str = "minmax"):
        return self.apply(Transform("normalize", {"column": column, "method": method}),
                          f"Normalize {column} ({method})")

    def string_transform(self, column: str, operation: str, pattern: Optional[str] = None):
        params = {"column": column, "operation": operation}
        if pattern is not None:
            params["pattern"] = pattern
        return self.apply(Transform("string", params), f"Apply {operation} to {column}")

    def one_hot_encode(self, column: str):
        return self.apply(Transform("one_hot", {"column": column}), f"One-hot encode {column}")

    def aggregate(self, group_by: str, value: str, operation: str = "sum"):
        return self.apply(Transform("aggregate", {"group_by": group_by, "value": value, "operation": operation}),
                          f"Aggregate {value} ({operation}) by {group_by}")

    def add_formula_column(self, name: str, formula: str):
        return self.apply(Transform("formula", {"name": name, "formula": formula}), f"Add column {name} = {formula}")

    def apply_smart_transforms(self):
        return self.apply(Transform("smart"), "Smart transformations")

    def reorder_columns(self, columns: Sequence[str]):
        return self.apply(Transform("reorder", {"columns": list(columns)}), "Reorder columns")

    def rename_column(self, column: str, new_name: str):
        """Rename in rows, descriptors, derived columns, charts and filters as one step."""
        self._require_loaded()
        self._require_column(column)
        new_name = (new_name or "").strip()
        out = Transform("rename", {"column": column, "new_name": new_name}).apply(self._table,
                                                                                 context=self._context())
        if new_name == column:
            return self._table
        derived = [new_name if c == column else c for c in self._derived]
        return self._commit(out, f"Rename {column} to {new_name}", derived=derived, renamed=(column, new_name))

    def delete_column(self, column: str):
        """Drop a column; charts using it on x or y are removed, filters on it are cleared."""
        self._require_loaded()
        self._require_column(column)
        return self.apply(Transform("drop", {"columns": [column]}), f"Delete column {column}")

    def apply_query(self, query: str):
        """Commit the rows a filtering query selects as the new table."""
        self._require_loaded()
        result = self.run_query(query)
        if not result.is_filter:
            raise DataWeaveUserError(
                "E_QUERY_NOT_FILTER",
                "This query does not select rows, so there is nothing to apply.",
                hint=result.message,
            )
        return self._commit(result.table, f"Query: {query.strip()}")

    def commit_filters(self):
        """Make the filtered view the table and clear the filters."""
        self._require_loaded()
        if not self._filters:
            return self._table
        described = ", ".join(self._filters)
        out = self.filtered_table()
        self._filters = {}
        return self._commit(out, f"Apply filters on {described}")

    # ---------- multi-file ----------
    def add_file(self, name: str, table) -> FileEntry:
        self._require_idle()
        t = materialize(table)
        entry = FileEntry(name, t, tuple(analyze(t, self.settings)), etl.nrows(t))
        self._files[name] = entry
        logger.info("Registered file %s (%d row(s))", name, entry.row_count)
        return entry

    def add_file_from(self, source: Union[str, Path, Source], **options: Any) -> FileEntry:
        src = self._source(source, options)
        return self.add_file(src.name, src.table())

    def remove_file(self, name: str) -> bool:
        self._require_idle()
        return self._files.pop(name, None) is not None

    def _file(self, name: str) -> FileEntry:
        if name not in self._files:
            raise DataWeaveUserError(
                "E_STATE_UNKNOWN_FILE",
                f"No loaded file named {name!r}.",
                hint="Loaded files: " + (", ".join(self._files) or "(none)"),
            )
        return self._files[name]

    def common_columns(self, left: str, right: str) -> List[str]:
        lcols = {d.name for d in self._file(left).descriptors}
        return [d.name for d in self._file(right).descriptors if d.name in lcols]

    def merge_files(self, left: str, right: str, key: str, how: str = "inner"):
        """Join two registered files into the working table (recorded when a table is loaded)."""
        self._require_idle()
        a, b = self._file(left), self._file(right)
        merged = Transform("join", {"right": b.table, "on": key, "how": how}).apply(a.table, context=self._context())
        if self._table is None:
            return self.load(merged, f"{a.name} + {b.name}", smart=False)
        return self._commit(merged, f"Merge {a.name} with {b.name} on {key} ({how})", derived=[])

    # ---------- filters (view state) ----------
    def set_filter(self, column: str, flt: Filter) -> None:
        self._require_loaded()
        self._require_column(column)
        self._filters[column] = flt

    def clear_filter(self, column: str) -> None:
        self._require_idle()
        self._filters.pop(column, None)

    def clear_filters(self) -> None:
        self._require_idle()
        self._filters = {}

    def filtered_table(self):
        self._require_loaded()
        if not self._filters:
            return self._table
        active = list(self._filters.items())
        return materialize(etl.select(self._table, lambda rec: all(f.matches(rec[c]) for c, f in active)))

    # ---------- charts (view state) ----------
    def _check_chart(self, chart: ChartConfig) -> None:
        for c in chart.columns:
            if c not in self.columns:
                raise unknown_column(c, self.columns, code="E_CHART_UNKNOWN_COL")

    def add_chart(self, chart: ChartConfig) -> ChartConfig:
        self._require_loaded()
        if any(c.id == chart.id for c in self._charts):
            chart = replace(chart, id=new_chart_id(chart.kind))
        self._check_chart(chart)
        self._charts.append(chart)
        return chart

    def update_chart(self, chart_id: str, **changes: Any) -> ChartConfig:
        self._require_loaded()
        for i, c in enumerate(self._charts):
            if c.id == chart_id:
                updated = replace(c, **changes)
                self._check_chart(updated)
                self._charts[i] = updated
                return updated
        raise DataWeaveUserError(
            "E_CHART_NOT_FOUND",
            f"No chart with id {chart_id!r}.",
            hint="Chart ids: " + (", ".join(c.id for c in self._charts) or "(none)"),
        )

    def remove_chart(self, chart_id: str) -> bool:
        self._require_idle()
        before = len(self._charts)
        self._charts = [c for c in self._charts if c.id != chart_id]
        return len(self._charts) != before

    def load_charts(self, charts: Sequence[ChartConfig]) -> List[ChartConfig]:
        """Show a saved dashboard; charts naming columns this table lacks are skipped."""
        self._require_loaded()
        present = set(self.columns)
        usable = [c for c in charts if all(col in present for col in c.columns)]
        if len(usable) != len(charts):
            logger.warning("Skipped %d chart(s) that reference missing columns", len(charts) - len(usable))
        self._charts = list(usable)
        return self.charts

    def suggested_charts(self) -> List[ChartConfig]:
        self._require_loaded()
        return suggest_charts(self._descriptors, self.settings)

    def histogram(self, column: str, bins: Optional[int] = None) -> List[Dict[str, Any]]:
        """Histogram of a numeric column over the filtered view."""
        self._require_loaded()
        return histogram_series(self.filtered_table(), column, bins, self.settings)

    # ---------- analysis ----------
    def run_query(self, query: str) -> QueryResult:
        self._require_loaded()
        return interpret_query(self._table, query, self._descriptors)

    def numeric_columns(self) -> List[str]:
        return columns_of_type(self._descriptors, NUMERIC)

    def correlations(self) -> CorrelationMatrix:
        self._require_loaded()
        return correlation_matrix(self._table, self.numeric_columns())

    def top_correlations(self, n: int = 5) -> List[Tuple[str, str, float]]:
        return top_correlations(self.correlations(), n)

    def missing_summary(self) -> List[Tuple[str, int]]:
        """(column, missing count) for columns with gaps, most missing first."""
        self._require_loaded()
        counts = [(d.name, d.missing) for d in self._descriptors if d.missing > 0]
        return sorted(counts, key=lambda p: p[1], reverse=True)

    def insights(self) -> List[Insight]:
        self._require_loaded()
        return generate_insights(self._table, self._descriptors)

    def report(self) -> Dict[str, Any]:
        self._require_loaded()
        return build_report(self._table, self._descriptors, self._file_name)

    # ---------- export ----------
    def export(self, uri: Union[str, Path], type: Optional[str] = None, **options: Any) -> Sink:
        self._require_loaded()
        sink = Sink(str(uri), type=type, options=options)
        sink.write(self._table)
        return sink

    def export_csv(self) -> str:
        self._require_loaded()
        return export_csv_text(self._table)
