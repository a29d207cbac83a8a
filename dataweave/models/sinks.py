from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import petl as etl

from dataweave.errors import DataWeaveUserError
from dataweave.util import _infer_type_from_uri, format_cell

logger = logging.getLogger(__name__)

SUPPORTED_SINK_TYPES = ("csv", "tsv", "xlsx")


def _stringified(table):
    """Every data cell passed through format_cell; header untouched."""
    return etl.convertall(table, format_cell)


def export_csv_text(table, **options: Any) -> str:
    """Render a table as CSV text (header row + standard quoting)."""
    # petl writes bytes to its sources; go through MemorySource and decode.
    src = etl.MemorySource()
    opts = dict(options)
    opts.setdefault("encoding", "utf-8")
    etl.tocsv(_stringified(table), src, **opts)
    return src.getvalue().decode(opts["encoding"])


@dataclass(frozen=True)
class Sink:
    uri: str
    type: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "uri", str(self.uri))
        inferred = self.type or _infer_type_from_uri(self.uri)
        object.__setattr__(self, "type", inferred)
        if self.type is None:
            raise DataWeaveUserError(
                "E_SINK_TYPE_INFER",
                f"Could not infer Sink type from uri='{self.uri}'.",
                hint="Provide type explicitly, e.g. Sink('out.data', type='csv').",
            )
        if self.type not in SUPPORTED_SINK_TYPES:
            raise DataWeaveUserError(
                "E_SINK_TYPE_UNSUPPORTED",
                f"Sink type '{self.type}' is not supported.",
                hint="Supported sink types: " + ", ".join(SUPPORTED_SINK_TYPES) + ".",
            )

        # Fail before any work: the output directory must exist and be writable.
        parent = os.path.dirname(self.uri) or "."
        if not os.path.isdir(parent):
            raise DataWeaveUserError(
                "E_SINK_DIR_NOT_FOUND",
                f"Output directory does not exist: '{parent}'.",
                hint="Create the directory or choose a different output path.",
            )
        if not os.access(parent, os.W_OK):
            raise DataWeaveUserError(
                "E_SINK_NOT_WRITABLE",
                f"Output directory is not writable: '{parent}'.",
                hint="Check permissions or choose a different output location.",
            )

    def _write(self, table) -> None:
        opts = dict(self.options)
        if self.type == "csv":
            etl.tocsv(_stringified(table), self.uri, **opts)
        elif self.type == "tsv":
            # Spreadsheet-friendly text export: BOM so Excel detects UTF-8.
            opts.setdefault("encoding", "utf-8-sig")
            etl.totsv(_stringified(table), self.uri, **opts)
        else:
            opts.setdefault("write_header", True)
            etl.toxlsx(_stringified(table), self.uri, **opts)

    def write(self, table) -> None:
        try:
            self._write(table)
        except FileNotFoundError as e:
            parent = os.path.dirname(self.uri) or "."
            raise DataWeaveUserError(
                "E_SINK_DIR_NOT_FOUND",
                f"Output directory does not exist: '{parent}'.",
                hint="Create the directory or choose a different output path.",
            ) from e
        except PermissionError as e:
            parent = os.path.dirname(self.uri) or "."
            raise DataWeaveUserError(
                "E_SINK_NOT_WRITABLE",
                f"Cannot write to output directory: '{parent}'.",
                hint="Check permissions or choose a different output location.",
            ) from e
        except Exception as e:
            raise DataWeaveUserError(
                "E_SINK_WRITE",
                f"Could not write sink '{self.uri}': {type(e).__name__}: {e}",
                hint="Check file permissions and Sink options (delimiter/encoding).",
            ) from e
        logger.info("Exported %s (%s)", self.uri, self.type)

    def __str__(self) -> str:
        return f'Sink("{self.uri}")  kind={self.type}'
