from __future__ import annotations

import logging
import math
import re
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence

import petl as etl

from dataweave.errors import DataWeaveUserError
from dataweave.util import header_of, parse_number, round_half_up

logger = logging.getLogger(__name__)

COLUMN_REF = re.compile(r"\[([^\[\]]+)\]")
SAFE_EXPRESSION = re.compile(r"^[0-9\s+\-*/().]*$")


class FormulaError(Exception):
    """Raised inside the evaluator; never escapes evaluate_formula()."""


# =========================
# Arithmetic expression language (tokenizer + parser)
# Numbers, + - * /, unary minus/plus and parentheses; nothing else.
# =========================

class _Tok:
    __slots__ = ("typ", "val", "pos")

    def __init__(self, typ: str, val: Any, pos: int):
        self.typ = typ
        self.val = val
        self.pos = pos


_re_ws = re.compile(r"\s+")
_re_number = re.compile(r"(?:\d+\.\d*|\d*\.\d+|\d+)")


def _tokenize(src: str) -> List[_Tok]:
    out: List[_Tok] = []
    i = 0
    n = len(src)
    while i < n:
        m = _re_ws.match(src, i)
        if m:
            i = m.end()
            continue
        if src[i] in "+-*/()":
            out.append(_Tok("OP", src[i], i))
            i += 1
            continue
        m = _re_number.match(src, i)
        if m:
            out.append(_Tok("NUM", float(m.group(0)), i))
            i = m.end()
            continue
        raise FormulaError(f"Unexpected character {src[i]!r} at position {i}.")
    out.append(_Tok("EOF", None, n))
    return out


def evaluate_arithmetic(src: str) -> float:
    """Evaluate a validated arithmetic string with a recursive-descent parser.

    Grammar: expr := term (('+'|'-') term)* ; term := unary (('*'|'/') unary)* ;
    unary := ('-'|'+') unary | atom ; atom := NUM | '(' expr ')'.
    """
    toks = _tokenize(src)
    k = 0

    def _peek() -> _Tok:
        return toks[k]

    def _eat(typ: str, val: Optional[str] = None) -> _Tok:
        nonlocal k
        t = toks[k]
        if t.typ != typ or (val is not None and t.val != val):
            raise FormulaError(f"Unexpected token {t.val!r} at position {t.pos}.")
        k += 1
        return t

    def parse_expr() -> float:
        value = parse_term()
        while _peek().typ == "OP" and _peek().val in ("+", "-"):
            op = _eat("OP").val
            rhs = parse_term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def parse_term() -> float:
        value = parse_unary()
        while _peek().typ == "OP" and _peek().val in ("*", "/"):
            op = _eat("OP").val
            rhs = parse_unary()
            if op == "*":
                value = value * rhs
            elif rhs == 0:
                # x/0 is not a finite number
                value = math.nan if value == 0 else math.copysign(math.inf, value)
            else:
                value = value / rhs
        return value

    def parse_unary() -> float:
        t = _peek()
        if t.typ == "OP" and t.val in ("-", "+"):
            _eat("OP")
            inner = parse_unary()
            return -inner if t.val == "-" else inner
        return parse_atom()

    def parse_atom() -> float:
        t = _peek()
        if t.typ == "OP" and t.val == "(":
            _eat("OP", "(")
            value = parse_expr()
            _eat("OP", ")")
            return value
        if t.typ == "NUM":
            _eat("NUM")
            return t.val
        raise FormulaError(f"Unexpected token {t.val!r} at position {t.pos}.")

    result = parse_expr()
    _eat("EOF")
    return result


# ---------------- Column substitution ----------------

def referenced_columns(formula: str) -> List[str]:
    """Names written as [Name] in a formula, in order of first appearance."""
    seen: List[str] = []
    for m in COLUMN_REF.finditer(formula or ""):
        if m.group(1) not in seen:
            seen.append(m.group(1))
    return seen


def _operand(value: Any) -> str:
    n = parse_number(value)
    if n is None:
        return "0"
    text = str(int(n)) if n.is_integer() else format(Decimal(repr(n)), "f")
    return f"({text})" if n < 0 else text


def substitute_columns(formula: str, row: Mapping[str, Any], columns: Sequence[str]) -> str:
    """Replace every [Column] token with the row's numeric value (0 when not numeric).

    Longer names go first so that [Price] never rewrites part of [Price Total].
    """
    text = formula
    for name in sorted(columns, key=len, reverse=True):
        token = f"[{name}]"
        if token in text:
            text = text.replace(token, _operand(row.get(name)))
    return text


def evaluate_formula(formula: str, row: Mapping[str, Any], columns: Sequence[str]) -> Optional[float]:
    """Evaluate a formula for one row. Returns None for anything that is not a finite number."""
    expr = substitute_columns(formula, row, columns)
    if not expr.strip() or not SAFE_EXPRESSION.match(expr):
        return None
    try:
        result = evaluate_arithmetic(expr)
        if not math.isfinite(result):
            return None
        return round_half_up(result, 2)
    except (FormulaError, ArithmeticError):
        return None


def apply_formula(table, name: str, formula: str):
    """Append column `name` computed from `formula` for every row.

    Rejected when the name is taken or when no row produces a number.
    """
    if not isinstance(name, str) or not name.strip():
        raise DataWeaveUserError(
            "E_FORMULA_PARAMS",
            "formula requires params.name as a non-empty column name.",
            hint="Example: Transform('formula', params={'name': 'total', 'formula': '[price] * [qty]'})",
        )
    if not isinstance(formula, str) or not formula.strip():
        raise DataWeaveUserError(
            "E_FORMULA_PARAMS",
            "formula requires params.formula as a non-empty expression string.",
            hint="Reference columns in square brackets, e.g. '[price] * [qty]'.",
        )

    name = name.strip()
    header = header_of(table)
    if name in header:
        raise DataWeaveUserError(
            "E_FORMULA_EXISTS",
            f"Column {name!r} already exists.",
            hint="Choose a new name for the calculated column.",
        )

    values = [evaluate_formula(formula, dict(zip(header, row)), header) for row in etl.data(table)]
    if not any(v is not None for v in values):
        unknown = [c for c in referenced_columns(formula) if c not in header]
        hint = "Use only numbers, column references and + - * / ( )."
        if unknown:
            hint = f"Unknown column reference(s): {unknown}. " + hint
        raise DataWeaveUserError(
            "E_FORMULA_NO_RESULTS",
            f"Formula {formula!r} did not produce a number for any row.",
            hint=hint,
        )

    logger.debug("Formula %r -> %s: %d/%d row(s) evaluated", formula, name,
                 sum(1 for v in values if v is not None), len(values))
    rows = [tuple(header) + (name,)]
    rows.extend(tuple(r) + (v,) for r, v in zip(etl.data(table), values))
    return etl.wrap(rows)
