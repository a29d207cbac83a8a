import petl as etl
import pytest

from dataweave import DataWeaveUserError
from dataweave.models.correlation import correlation_matrix, pearson, top_correlations


def _tbl(data):
    return etl.wrap(data)


def test_perfect_linear_dependence_is_one():
    """X=[1,2,3,4] vs Y=[2,4,6,8] correlates at 1.00; X with itself is 1.00."""
    tbl = _tbl([("x", "y"), (1, 2), (2, 4), (3, 6), (4, 8)])
    m = correlation_matrix(tbl, ["x", "y"])
    assert m["x"]["y"] == 1.0
    assert m["y"]["x"] == 1.0
    assert m["x"]["x"] == 1.0


def test_negative_and_constant_columns():
    """Inverse series give -1; a column without variance gives 0."""
    tbl = _tbl([("a", "b", "c"), (1, 4, 5), (2, 3, 5), (3, 2, 5), (4, 1, 5)])
    m = correlation_matrix(tbl, ["a", "b", "c"])
    assert m["a"]["b"] == -1.0
    assert m["a"]["c"] == 0


def test_pairwise_complete_rows_only():
    """Rows with a missing or non-numeric value on either side are left out of that pair."""
    tbl = _tbl([("x", "y"), (1, 10), (2, None), (3, 30), ("n/a", 5), (4, 40)])
    assert correlation_matrix(tbl, ["x", "y"])["x"]["y"] == 1.0


def test_pearson_rounding_in_matrix():
    """Coefficients are rounded to 2 decimals."""
    tbl = _tbl([("x", "y"), (1, 1), (2, 3), (3, 2), (4, 5)])
    assert pearson([1, 2, 3, 4], [1, 3, 2, 5]) == pytest.approx(0.8315, abs=1e-4)
    assert correlation_matrix(tbl, ["x", "y"])["x"]["y"] == 0.83


def test_top_correlations_orders_by_strength():
    """Each pair once, strongest absolute coefficient first."""
    matrix = {
        "a": {"a": 1.0, "b": 0.2, "c": -0.9},
        "b": {"a": 0.2, "b": 1.0, "c": 0.5},
        "c": {"a": -0.9, "b": 0.5, "c": 1.0},
    }
    assert top_correlations(matrix, 2) == [("a", "c", -0.9), ("b", "c", 0.5)]


def test_unknown_column():
    """Asking for a column that is not there raises E_UNKNOWN_COL."""
    with pytest.raises(DataWeaveUserError) as ex:
        correlation_matrix(_tbl([("x",), (1,)]), ["x", "z"])
    assert getattr(ex.value, "code", None) == "E_UNKNOWN_COL"
