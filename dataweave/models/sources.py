from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import petl as etl

from dataweave.errors import DataWeaveUserError
from dataweave.util import _infer_type_from_uri, parse_cell

logger = logging.getLogger(__name__)

SUPPORTED_SOURCE_TYPES = ("csv", "tsv")


@dataclass(frozen=True)
class Source:
    """A delimited text file (or in-memory upload) that can be parsed into a typed table.

    ``uri`` names the file; for uploads it is only the display name and ``data`` holds the bytes.
    """

    uri: str
    type: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    data: Optional[bytes] = field(default=None, repr=False)

    # --- preview bounds ---
    preview_rows: int = 5
    preview_max_chars: int = 6_000

    def __post_init__(self) -> None:
        object.__setattr__(self, "uri", str(self.uri))
        inferred = self.type or _infer_type_from_uri(self.uri)
        object.__setattr__(self, "type", inferred)

        if self.type is None:
            raise DataWeaveUserError(
                "E_SOURCE_TYPE_INFER",
                f"Could not infer Source type from uri='{self.uri}'.",
                hint="Provide type explicitly, e.g. Source('export.txt', type='csv').",
            )
        if self.type not in SUPPORTED_SOURCE_TYPES:
            raise DataWeaveUserError(
                "E_SOURCE_TYPE_UNSUPPORTED",
                f"Source type '{self.type}' is not supported.",
                hint="Supported source types: " + ", ".join(SUPPORTED_SOURCE_TYPES) + ".",
            )

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "upload.csv", **options: Any) -> "Source":
        return cls(name, options=options, data=bytes(data))

    @classmethod
    def from_text(cls, text: str, name: str = "upload.csv", **options: Any) -> "Source":
        return cls(name, options=options, data=text.encode("utf-8"))

    @property
    def name(self) -> str:
        return os.path.basename(self.uri) or self.uri

    def preflight(self) -> None:
        if self.data is None and not os.path.isfile(self.uri):
            raise DataWeaveUserError(
                "E_SOURCE_NOT_FOUND",
                f"Input file does not exist: '{self.uri}'.",
                hint="Check the path, or pass the uploaded bytes with Source.from_bytes(...).",
            )

    # ---------- PETL table ----------
    def _raw_table(self):
        opts = dict(self.options)
        opts.setdefault("encoding", "utf-8-sig")
        src = etl.MemorySource(self.data) if self.data is not None else self.uri
        if self.type == "tsv":
            return etl.fromtsv(src, **opts)
        return etl.fromcsv(src, **opts)

    def table(self):
        """Read and type the whole file. Returns a materialized PETL table.

        Header row required; blank lines are skipped; numeric-looking fields become numbers,
        true/false become booleans and empty fields become None.
        """
        self.preflight()
        try:
            rows: List[List[str]] = [list(r) for r in self._raw_table()]
        except UnicodeDecodeError as e:
            raise DataWeaveUserError(
                "E_SOURCE_READ",
                f"'{self.name}' is not valid text in the expected encoding: {e.reason}.",
                hint="Export the file as UTF-8 CSV, or pass options={'encoding': '...'}.",
            ) from e
        except (csv.Error, OSError) as e:
            raise DataWeaveUserError(
                "E_SOURCE_READ",
                f"Could not read '{self.name}': {type(e).__name__}: {e}",
                hint="Check that the file is a comma-delimited CSV with a header row.",
            ) from e

        if not rows or not any(cell.strip() for cell in rows[0]):
            raise DataWeaveUserError(
                "E_SOURCE_PARSE",
                f"'{self.name}' has no header row.",
                hint="The first line must name the columns, e.g. 'id,name,price'.",
            )

        header = [h.strip() for h in rows[0]]
        if any(not h for h in header):
            raise DataWeaveUserError(
                "E_SOURCE_PARSE",
                f"'{self.name}' has a blank column name in its header.",
                hint="Give every column a name in the first line of the file.",
            )
        dupes = sorted({h for h in header if header.count(h) > 1})
        if dupes:
            raise DataWeaveUserError(
                "E_SOURCE_PARSE",
                f"'{self.name}' repeats column name(s) {dupes} in its header.",
                hint="Column names must be unique.",
            )

        width = len(header)
        ragged = 0
        out = [tuple(header)]
        for r in rows[1:]:
            if not any(cell != "" for cell in r):
                continue
            if len(r) != width:
                ragged += 1
                r = (r + [""] * width)[:width]
            out.append(tuple(parse_cell(v) for v in r))

        if ragged:
            logger.warning("%s: %d row(s) did not match the header width and were padded/truncated", self.name, ragged)
        logger.info("Parsed %s: %d row(s), %d column(s)", self.name, len(out) - 1, width)
        return etl.wrap(out)

    # ---------- Peepholes / inspection ----------
    def head(self, n: Optional[int] = None):
        n = n or self.preview_rows
        return etl.head(self.table(), n)

    def _preview_str(self) -> str:
        s = str(etl.look(self.head(self.preview_rows)))
        if len(s) > self.preview_max_chars:
            s = s[: self.preview_max_chars] + "\n… (truncated)"
        return s

    def __str__(self) -> str:
        origin = "memory" if self.data is not None else "file"
        return f'Source("{self.uri}")  kind={self.type}  origin={origin}\nPreview:\n' + self._preview_str()
