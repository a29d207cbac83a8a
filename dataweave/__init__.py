from dataweave.config import Settings, load_settings
from dataweave.errors import DataWeaveUserError
from dataweave.models.charts import ChartConfig
from dataweave.models.dashboards import DashboardStore
from dataweave.models.sinks import Sink
from dataweave.models.sources import Source
from dataweave.models.state import Filter, TableState
from dataweave.models.transforms import Transform

__all__ = [
    "ChartConfig",
    "DashboardStore",
    "DataWeaveUserError",
    "Filter",
    "Settings",
    "Sink",
    "Source",
    "TableState",
    "Transform",
    "load_settings",
]
