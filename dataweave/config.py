from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from dataweave.errors import DataWeaveUserError
from dataweave.util import _norm_path

CONFIG_ENV_VAR = "DATAWEAVE_CONFIG"


def _default_data_dir() -> str:
    return str(Path.home() / ".dataweave")


@dataclass(frozen=True)
class Settings:
    """Tunable thresholds of the workbench core.

    The defaults reproduce the documented behaviour; a YAML file can override any of them.
    """

    history_limit: int = 20
    categorical_max_unique: int = 20
    categorical_max_ratio: float = 0.5
    date_match_ratio: float = 0.8
    bin_count: int = 5
    iqr_factor: float = 1.5
    outlier_min_values: int = 4
    histogram_bins: int = 10
    max_suggested_charts: int = 6
    csv_encoding: str = "utf-8-sig"
    data_dir: str = ""

    def __post_init__(self) -> None:
        if not self.data_dir:
            object.__setattr__(self, "data_dir", _default_data_dir())
        for name in ("history_limit", "categorical_max_unique", "bin_count", "outlier_min_values", "histogram_bins",
                     "max_suggested_charts"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
                raise DataWeaveUserError(
                    "E_CONFIG_VALUE",
                    f"Setting '{name}' must be a positive integer, got {v!r}.",
                    hint=f"Example: {name}: {getattr(Settings, name)}",
                )
        for name in ("categorical_max_ratio", "date_match_ratio"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, (int, float)) or not (0 < v <= 1):
                raise DataWeaveUserError(
                    "E_CONFIG_VALUE",
                    f"Setting '{name}' must be a number in (0, 1], got {v!r}.",
                    hint=f"Example: {name}: {getattr(Settings, name)}",
                )
        if isinstance(self.iqr_factor, bool) or not isinstance(self.iqr_factor, (int, float)) or self.iqr_factor < 0:
            raise DataWeaveUserError(
                "E_CONFIG_VALUE",
                f"Setting 'iqr_factor' must be a non-negative number, got {self.iqr_factor!r}.",
                hint="Example: iqr_factor: 1.5",
            )

    @property
    def dashboards_path(self) -> Path:
        return Path(self.data_dir) / "dashboards.yaml"

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], *, base_dir: Optional[Path] = None) -> "Settings":
        if not isinstance(data, dict):
            raise DataWeaveUserError(
                "E_CONFIG_ROOT",
                "Configuration must be a mapping at the root.",
                hint="Example: {history_limit: 20, bin_count: 5}",
            )
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            raise DataWeaveUserError(
                "E_CONFIG_UNKNOWN_KEY",
                f"Unknown configuration key(s): {unknown}.",
                hint="Supported keys: " + ", ".join(sorted(known)),
            )
        values = dict(data)
        if isinstance(values.get("data_dir"), str):
            values["data_dir"] = _norm_path(values["data_dir"], base_dir=base_dir)
        return cls(**values)

    def to_yaml(self) -> str:
        return yaml.safe_dump(asdict(self), sort_keys=False)


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from a YAML file.

    Falls back to $DATAWEAVE_CONFIG, then to the defaults when neither is given.
    Relative ``data_dir`` values are resolved against the config file's directory.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return Settings()

    p = Path(path)
    if not p.exists():
        raise DataWeaveUserError(
            "E_CONFIG_NOT_FOUND",
            f"Configuration file does not exist: '{p}'.",
            hint=f"Create it, or unset {CONFIG_ENV_VAR}.",
        )
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise DataWeaveUserError(
            "E_YAML_PARSE",
            f"Failed to parse YAML: {e}",
            hint="Check indentation and quoting.",
        ) from e
    if data is None:
        data = {}
    return Settings.from_mapping(data, base_dir=p.parent)
