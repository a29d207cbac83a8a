from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Tuple

import petl as etl

from dataweave.errors import unknown_column
from dataweave.util import header_of, parse_number, round_half_up

CorrelationMatrix = Dict[str, Dict[str, float]]


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson r of two equally long series; 0 when either side has no variance."""
    n = len(xs)
    if n == 0:
        return 0.0
    mx = sum(xs) / n
    my = sum(ys) / n
    sxy = sxx = syy = 0.0
    for x, y in zip(xs, ys):
        dx = x - mx
        dy = y - my
        sxy += dx * dy
        sxx += dx * dx
        syy += dy * dy
    if sxx == 0 or syy == 0:
        return 0.0
    return sxy / (math.sqrt(sxx) * math.sqrt(syy))


def correlation_matrix(table, columns: Sequence[str]) -> CorrelationMatrix:
    """Symmetric matrix of pairwise-complete Pearson coefficients, rounded to 2 decimals.

    A pair only uses rows where both columns hold numbers; the diagonal is 1.
    """
    header = header_of(table)
    for c in columns:
        if c not in header:
            raise unknown_column(c, header)

    series: Dict[str, List[Optional[float]]] = {c: [] for c in columns}
    for row in etl.data(table):
        rec = dict(zip(header, row))
        for c in columns:
            series[c].append(parse_number(rec[c]))

    matrix: CorrelationMatrix = {c: {} for c in columns}
    for i, a in enumerate(columns):
        matrix[a][a] = 1.0
        for b in columns[i + 1:]:
            pairs = [(x, y) for x, y in zip(series[a], series[b]) if x is not None and y is not None]
            r = round_half_up(pearson([p[0] for p in pairs], [p[1] for p in pairs]), 2)
            matrix[a][b] = r
            matrix[b][a] = r
    return matrix


def top_correlations(matrix: CorrelationMatrix, n: int = 5) -> List[Tuple[str, str, float]]:
    """Strongest off-diagonal pairs, each pair once, by absolute coefficient."""
    cols = list(matrix)
    pairs = [(a, b, matrix[a][b]) for i, a in enumerate(cols) for b in cols[i + 1:]]
    pairs.sort(key=lambda p: abs(p[2]), reverse=True)
    return pairs[:n]
