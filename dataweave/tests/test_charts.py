import petl as etl
import pytest

from dataweave import ChartConfig, DataWeaveUserError, Settings
from dataweave.models.charts import aggregate_series, histogram_series, new_chart_id, scatter_points, suggest_charts
from dataweave.schema import analyze


def _tbl(data):
    return etl.wrap(data)


SALES = _tbl([
    ("day", "region", "units", "price"),
    ("2024-01-01", "North", 5, 2.5),
    ("2024-01-02", "South", 3, 4.0),
    ("2024-01-03", "North", 7, 1.0),
    ("2024-01-04", None, 1, 3.0),
    ("2024-01-05", "South", 4, 2.0),
    ("2024-01-06", "North", 2, 5.5),
])


# ---------- ChartConfig ----------
def test_chart_config_validation():
    """Kind, aggregation and the dual-axis rule are enforced."""
    with pytest.raises(DataWeaveUserError) as ex:
        ChartConfig("c1", "radar", "t", "x")
    assert getattr(ex.value, "code", None) == "E_CHART_KIND"

    with pytest.raises(DataWeaveUserError) as ex:
        ChartConfig("c1", "bar", "t", "x", "y", aggregation="median")
    assert getattr(ex.value, "code", None) == "E_CHART_AGGREGATION"

    with pytest.raises(DataWeaveUserError) as ex:
        ChartConfig("c1", "line", "t", "x", "y", y2="z")
    assert getattr(ex.value, "code", None) == "E_CHART_AXIS"

    chart = ChartConfig("c1", "dual-axis", "t", "x", "y", y2="z")
    assert chart.columns == ["x", "y", "z"]


def test_chart_config_dict_round_trip():
    """to_dict drops unset fields; from_dict rebuilds the same chart."""
    chart = ChartConfig("c1", "bar", "Units by region", "region", "units", colors=["#fff"])
    data = chart.to_dict()
    assert "y2" not in data
    assert ChartConfig.from_dict(data) == chart


def test_chart_config_from_dict_errors():
    """Unknown keys and incomplete mappings are E_CHART_CONFIG."""
    with pytest.raises(DataWeaveUserError) as ex:
        ChartConfig.from_dict({"id": "c", "kind": "bar", "title": "t", "x": "a", "size": 3})
    assert getattr(ex.value, "code", None) == "E_CHART_CONFIG"

    with pytest.raises(DataWeaveUserError) as ex:
        ChartConfig.from_dict({"id": "c", "kind": "bar"})
    assert getattr(ex.value, "code", None) == "E_CHART_CONFIG"


def test_new_chart_id_is_prefixed_and_unique():
    """Generated ids start with the kind."""
    a, b = new_chart_id("bar"), new_chart_id("bar")
    assert a.startswith("bar-")
    assert a != b


# ---------- suggestions ----------
def test_suggest_charts_from_types():
    """Line charts for dates, bars for categories, then pie, scatter and histogram, capped."""
    charts = suggest_charts(analyze(SALES), Settings(max_suggested_charts=20))
    kinds = [c.kind for c in charts]
    assert kinds == ["line", "line", "bar", "bar", "pie", "scatter", "histogram"]
    assert charts[0].x == "day" and charts[0].y == "units"
    assert charts[4].aggregation == "count"

    capped = suggest_charts(analyze(SALES), Settings(max_suggested_charts=3))
    assert len(capped) == 3


# ---------- series ----------
def test_aggregate_series_sums_and_sorts():
    """Grouped by x; missing x is 'Unknown'; largest first."""
    series = aggregate_series(SALES, "region", "units", "sum")
    assert series == [
        {"name": "North", "value": 14},
        {"name": "South", "value": 7},
        {"name": "Unknown", "value": 1},
    ]


def test_aggregate_series_counts_rows_without_y():
    """Without y every row counts once."""
    series = aggregate_series(SALES, "region", aggregation="count")
    assert series[0] == {"name": "North", "value": 3}


def test_aggregate_series_rejects_unknown_column():
    """Axis columns must exist."""
    with pytest.raises(DataWeaveUserError) as ex:
        aggregate_series(SALES, "regoin", "units")
    assert getattr(ex.value, "code", None) == "E_UNKNOWN_COL"


def test_histogram_series_bins():
    """Equal-width bins; the max value lands in the top bin."""
    tbl = _tbl([("v",), (0,), (1,), (9,), (10,)])
    assert histogram_series(tbl, "v", bins=2) == [{"name": "0-5", "value": 2}, {"name": "5-10", "value": 2}]


def test_histogram_series_takes_bin_count_from_settings():
    """Without an explicit bins argument the injected settings decide."""
    tbl = _tbl([("v",), (0,), (1,), (9,), (10,)])
    expected = [{"name": "0-5", "value": 2}, {"name": "5-10", "value": 2}]
    assert histogram_series(tbl, "v", settings=Settings(histogram_bins=2)) == expected
    assert len(histogram_series(tbl, "v")) == 3


def test_scatter_points_skip_non_numeric():
    """Only rows numeric on both axes become points."""
    tbl = _tbl([("x", "y"), (1, 2), (None, 3), (4, "n/a"), (5, 6)])
    assert scatter_points(tbl, "x", "y") == [{"x": 1.0, "y": 2.0}, {"x": 5.0, "y": 6.0}]
