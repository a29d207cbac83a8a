from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from dataweave.config import Settings
from dataweave.errors import DataWeaveUserError
from dataweave.models.charts import ChartConfig

logger = logging.getLogger(__name__)

THEMES = ("light", "dark")


@dataclass(frozen=True)
class SavedDashboard:
    id: str
    name: str
    charts: List[ChartConfig] = field(default_factory=list)
    created: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created": self.created,
            "charts": [c.to_dict() for c in self.charts],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedDashboard":
        if not isinstance(data, dict) or not data.get("id") or not data.get("name"):
            raise DataWeaveUserError(
                "E_DASHBOARD_FORMAT",
                "A saved dashboard needs an id and a name.",
                hint=str(data),
            )
        charts = data.get("charts") or []
        if not isinstance(charts, list):
            raise DataWeaveUserError(
                "E_DASHBOARD_FORMAT",
                f"Dashboard {data['name']!r}: charts must be a list.",
                hint="Example: charts: [{id: c1, kind: bar, title: Sales, x: region, y: sales}]",
            )
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            charts=[ChartConfig.from_dict(c) for c in charts],
            created=str(data.get("created") or ""),
        )


class DashboardStore:
    """Saved dashboards and the theme preference, kept in one YAML file.

    Lives outside any table: resetting or replacing the table leaves it untouched. Every change
    is written straight through to disk.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._dashboards: List[SavedDashboard] = []
        self._theme = "light"
        self._read()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DashboardStore":
        """The store at settings.dashboards_path (inside data_dir)."""
        return cls((settings or Settings()).dashboards_path)

    # ---------- file I/O ----------
    def _read(self) -> None:
        if not self.path.exists():
            return
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise DataWeaveUserError(
                "E_YAML_PARSE",
                f"Failed to parse YAML: {e}",
                hint=f"Fix or delete '{self.path}'.",
            ) from e
        if data is None:
            return
        if not isinstance(data, dict):
            raise DataWeaveUserError(
                "E_DASHBOARD_FORMAT",
                f"'{self.path}' must hold a mapping with 'dashboards' and 'theme'.",
                hint="Example: {theme: light, dashboards: []}",
            )
        theme = data.get("theme", "light")
        if theme not in THEMES:
            raise DataWeaveUserError(
                "E_DASHBOARD_THEME",
                f"Unknown theme {theme!r}.",
                hint="Supported themes: " + ", ".join(THEMES),
            )
        self._theme = theme
        self._dashboards = [SavedDashboard.from_dict(d) for d in data.get("dashboards") or []]
        logger.debug("Loaded %d dashboard(s) from %s", len(self._dashboards), self.path)

    def _write(self, dashboards: List[SavedDashboard], theme: str) -> None:
        """Persist the given state, then adopt it; a failed write leaves memory unchanged."""
        payload = {"theme": theme, "dashboards": [d.to_dict() for d in dashboards]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        except OSError as e:
            raise DataWeaveUserError(
                "E_DASHBOARD_WRITE",
                f"Could not save dashboards to '{self.path}': {e}",
                hint="Check that the data directory is writable.",
            ) from e
        self._dashboards = list(dashboards)
        self._theme = theme

    # ---------- dashboards ----------
    def dashboards(self) -> List[SavedDashboard]:
        return list(self._dashboards)

    def save_dashboard(self, name: str, charts: Sequence[ChartConfig]) -> SavedDashboard:
        if not isinstance(name, str) or not name.strip():
            raise DataWeaveUserError(
                "E_DASHBOARD_NAME",
                "A dashboard needs a name.",
                hint="Example: store.save_dashboard('Monthly sales', state.charts)",
            )
        if not charts:
            raise DataWeaveUserError(
                "E_DASHBOARD_EMPTY",
                "There are no charts to save.",
                hint="Add at least one chart before saving a dashboard.",
            )
        dashboard = SavedDashboard(
            id=uuid.uuid4().hex,
            name=name.strip(),
            charts=list(charts),
            created=datetime.now().isoformat(timespec="seconds"),
        )
        self._write(self._dashboards + [dashboard], self._theme)
        logger.info("Saved dashboard %r with %d chart(s)", dashboard.name, len(dashboard.charts))
        return dashboard

    def load_dashboard(self, dashboard_id: str) -> Optional[List[ChartConfig]]:
        for d in self._dashboards:
            if d.id == dashboard_id:
                return list(d.charts)
        return None

    def delete_dashboard(self, dashboard_id: str) -> bool:
        kept = [d for d in self._dashboards if d.id != dashboard_id]
        if len(kept) == len(self._dashboards):
            return False
        self._write(kept, self._theme)
        logger.info("Deleted dashboard %s", dashboard_id)
        return True

    # ---------- theme ----------
    @property
    def theme(self) -> str:
        return self._theme

    @theme.setter
    def theme(self, value: str) -> None:
        if value not in THEMES:
            raise DataWeaveUserError(
                "E_DASHBOARD_THEME",
                f"Unknown theme {value!r}.",
                hint="Supported themes: " + ", ".join(THEMES),
            )
        self._write(self._dashboards, value)
