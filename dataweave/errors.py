from __future__ import annotations

import difflib
from typing import Optional, Sequence


class DataWeaveUserError(Exception):
    """A user-facing error raised by the workbench core.

    Covers unreadable files, invalid operation params, unknown or colliding column names and
    similar mistakes. Each error carries a stable short code (``E_...``) that callers can branch on,
    and an optional hint phrased for the person driving the workbench.
    """

    def __init__(self, code: str, message: str, *, hint: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.hint:
            return base + f"\nHint: {self.hint}"
        return base


def suggest_column(name: str, columns: Sequence[str]) -> str:
    matches = difflib.get_close_matches(name, list(columns), n=3, cutoff=0.6)
    if matches:
        return f"Did you mean {matches[0]!r}?"
    if not columns:
        return "The table has no columns."
    return "Available columns: " + ", ".join(columns)


def unknown_column(name: str, columns: Sequence[str], *, code: str = "E_UNKNOWN_COL") -> DataWeaveUserError:
    return DataWeaveUserError(
        code,
        f"Unknown column {name!r}.",
        hint=suggest_column(name, columns),
    )
