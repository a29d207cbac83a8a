from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

import petl as etl

from dataweave.schema import NUMERIC, ColumnDescriptor, analyze
from dataweave.util import format_cell, header_of, is_missing, is_number, parse_number

logger = logging.getLogger(__name__)

GUIDANCE = (
    "Could not understand the query. Try patterns like:\n"
    '- Show rows where [column] is "[value]"\n'
    "- Show top 10 by [column]\n"
    '- Find rows containing "[text]"'
)

_NUM = r"(-?\d+(?:\.\d+)?)"
_WHERE = re.compile(r"where\s+(\w+)\s+(?:is|=|equals?)\s+['\"]?([^'\"]+)['\"]?", re.IGNORECASE)
_COMPARE = re.compile(r"(\w+)\s+(greater|less|more|above|below|over|under)\s+(?:than\s+)?" + _NUM, re.IGNORECASE)
_TOP = re.compile(r"(top|bottom|first|last)\s+(\d+)\s+(?:rows?\s+)?by\s+(\w+)", re.IGNORECASE)
_BETWEEN = re.compile(r"(\w+)\s+between\s+" + _NUM + r"\s+and\s+" + _NUM, re.IGNORECASE)
_MISSING = re.compile(r"\b(?:missing|empty|null|blank)(?:\s+values?)?(?:\s+in)?(?:\s+(\w+))?", re.IGNORECASE)
_UNIQUE = re.compile(r"unique\s+(?:values?\s+)?(?:in\s+|of\s+)?(\w+)", re.IGNORECASE)
_CONTAINS = re.compile(r"(?:containing|with|having)\s+['\"]?([^'\"]+)['\"]?", re.IGNORECASE)


@dataclass(frozen=True)
class QueryResult:
    """Outcome of a natural-language query.

    `table` is set when the query selects rows; summary answers only carry a message.
    """

    success: bool
    message: str
    match_count: Optional[int] = None
    table: Any = None

    @property
    def is_filter(self) -> bool:
        return self.table is not None


def _find_column(name: str, descriptors: Sequence[ColumnDescriptor], *, numeric: bool = False) -> Optional[str]:
    low = name.lower()
    for d in descriptors:
        if d.name.lower() == low and (not numeric or d.type == NUMERIC):
            return d.name
    return None


def _filtered(table, predicate: Callable[[Any], bool], message: str) -> QueryResult:
    out = etl.wrap([tuple(r) for r in etl.select(table, predicate)])
    count = etl.nrows(out)
    logger.debug("Query matched %d row(s): %s", count, message)
    return QueryResult(True, message, count, out)


def _compare(a: Any, b: Any) -> int:
    if is_number(a) and is_number(b):
        return (a > b) - (a < b)
    sa, sb = format_cell(a), format_cell(b)
    ka, kb = (sa.casefold(), sa), (sb.casefold(), sb)
    return (ka > kb) - (ka < kb)


def _distinct_strings(table, column: str) -> List[str]:
    seen: dict = {}
    for v in etl.values(table, column):
        seen.setdefault(format_cell(v), None)
    return list(seen)


def interpret_query(table, query: str, descriptors: Optional[Sequence[ColumnDescriptor]] = None) -> QueryResult:
    """Answer a constrained natural-language query.

    Patterns are tried in a fixed order and the first one that resolves wins. Matching is
    case-insensitive. Nothing here raises: a query that cannot be answered returns
    success=False with guidance.
    """
    q = (query or "").strip()
    if not q:
        return QueryResult(False, "Please enter a query")
    if descriptors is None:
        descriptors = analyze(table)

    m = _WHERE.search(q)
    if m:
        col = _find_column(m.group(1), descriptors)
        if col:
            target = m.group(2).strip().lower()
            return _filtered(
                table,
                lambda rec: target in format_cell(rec[col]).lower(),
                f'Filtered to rows where {col} contains "{m.group(2).strip()}"',
            )

    m = _COMPARE.search(q)
    if m:
        col = _find_column(m.group(1), descriptors, numeric=True)
        if col:
            threshold = float(m.group(3))
            greater = m.group(2).lower() in ("greater", "more", "above", "over")

            def cmp(rec) -> bool:
                n = parse_number(rec[col])
                if n is None:
                    return False
                return n > threshold if greater else n < threshold

            return _filtered(table, cmp, f"Filtered to rows where {col} is {'>' if greater else '<'} {m.group(3)}")

    m = _TOP.search(q)
    if m:
        col = _find_column(m.group(3), descriptors)
        n = int(m.group(2))
        if col and n > 0:
            top = m.group(1).lower() in ("top", "first")
            header = header_of(table)
            i = header.index(col)
            key = functools.cmp_to_key(lambda a, b: _compare(a[i], b[i]))
            ordered = sorted((tuple(r) for r in etl.data(table)), key=key, reverse=top)
            out = etl.wrap([tuple(header)] + ordered[:n])
            count = etl.nrows(out)
            return QueryResult(True, f"Showing {'top' if top else 'bottom'} {n} rows by {col}", count, out)

    m = _BETWEEN.search(q)
    if m:
        col = _find_column(m.group(1), descriptors, numeric=True)
        if col:
            lo, hi = float(m.group(2)), float(m.group(3))

            def within(rec) -> bool:
                n = parse_number(rec[col])
                return n is not None and lo <= n <= hi

            return _filtered(table, within, f"Filtered to rows where {col} is between {m.group(2)} and {m.group(3)}")

    m = _MISSING.search(q)
    if m:
        if m.group(1):
            col = _find_column(m.group(1), descriptors)
            if col:
                return _filtered(table, lambda rec: is_missing(rec[col]), f"Showing rows with missing values in {col}")
        else:
            return _filtered(table, lambda rec: any(is_missing(v) for v in rec),
                             "Showing rows with any missing values")

    m = _UNIQUE.search(q)
    if m:
        col = _find_column(m.group(1), descriptors)
        if col:
            values = _distinct_strings(table, col)
            more = "..." if len(values) > 5 else ""
            return QueryResult(
                True,
                f'Column "{col}" has {len(values)} unique values: {", ".join(values[:5])}{more}',
                len(values),
            )

    m = _CONTAINS.search(q)
    if m:
        needle = m.group(1).strip().lower()
        return _filtered(
            table,
            lambda rec: any(needle in format_cell(v).lower() for v in rec),
            f'Showing rows containing "{needle}"',
        )

    words = [w for w in q.lower().split() if w]
    for d in descriptors:
        if any(w in d.name.lower() for w in words):
            values = _distinct_strings(table, d.name)
            return QueryResult(
                True,
                f'Column "{d.name}" ({d.type}): {len(values)} unique values, {d.missing} missing',
                len(values),
            )

    logger.debug("Query not understood: %r", q)
    return QueryResult(False, GUIDANCE)
