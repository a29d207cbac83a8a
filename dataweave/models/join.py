from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

import petl as etl

from dataweave.errors import DataWeaveUserError
from dataweave.util import header_of, is_missing, value_key

logger = logging.getLogger(__name__)

JOIN_TYPES = ("inner", "left", "outer")


def join_tables(left, right, key: str, how: str = "inner"):
    """Merge two tables on one key column.

    Keys compare by raw value: 1 and "1" never match, and missing keys match nothing.
    Output columns are the left header followed by the right columns the left does not have.
    On a shared non-key column the right value wins for matched rows; cells a side does not
    provide are None, so every output row has the same shape.
    """
    if how not in JOIN_TYPES:
        raise DataWeaveUserError(
            "E_JOIN_PARAMS",
            f"join type must be one of: {', '.join(JOIN_TYPES)}; got {how!r}.",
            hint="Example: join_tables(a, b, 'id', how='left')",
        )

    left_header = header_of(left)
    right_header = header_of(right)
    left_missing = key not in left_header
    right_missing = key not in right_header
    if left_missing or right_missing:
        sides = [side for side, bad in (("left", left_missing), ("right", right_missing)) if bad]
        raise DataWeaveUserError(
            "E_JOIN_UNKNOWN_COL",
            f"join key {key!r} not found on the {' and '.join(sides)} table.",
            hint="Pick a column both files share (see TableState.common_columns).",
        )

    out_header = left_header + [c for c in right_header if c not in left_header]
    right_rows = [dict(zip(right_header, r)) for r in etl.data(right)]

    # hash join: key -> every right row carrying it (many-to-many)
    index: Dict[Any, List[int]] = {}
    for i, r in enumerate(right_rows):
        if is_missing(r[key]):
            continue
        index.setdefault(value_key(r[key]), []).append(i)

    matched: set = set()
    rows: List[Tuple[Any, ...]] = [tuple(out_header)]
    for lrow in etl.data(left):
        merged_left = dict(zip(left_header, lrow))
        k = merged_left[key]
        hits = [] if is_missing(k) else index.get(value_key(k), [])
        for i in hits:
            matched.add(i)
            merged = dict(merged_left)
            merged.update(right_rows[i])
            rows.append(tuple(merged.get(c) for c in out_header))
        if not hits and how in ("left", "outer"):
            rows.append(tuple(merged_left.get(c) for c in out_header))

    if how == "outer":
        for i, r in enumerate(right_rows):
            if i not in matched:
                rows.append(tuple(r.get(c) for c in out_header))

    logger.info("Joined on %r (%s): %d row(s), %d column(s)", key, how, len(rows) - 1, len(out_header))
    return etl.wrap(rows)
