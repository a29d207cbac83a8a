import petl as etl
import pytest

from dataweave import DataWeaveUserError
from dataweave.models.join import join_tables


def _tbl(data):
    return etl.wrap(data)


A = [("id", "x"), (1, "a"), (2, "b")]
B = [("id", "y"), (1, "p"), (3, "q")]


def test_inner_join_one_row():
    """Only id 1 exists on both sides."""
    out = join_tables(_tbl(A), _tbl(B), "id", "inner")
    assert list(out) == [("id", "x", "y"), (1, "a", "p")]


def test_left_join_two_rows():
    """id 2 is kept with no B fields (None-filled)."""
    out = join_tables(_tbl(A), _tbl(B), "id", "left")
    assert list(etl.data(out)) == [(1, "a", "p"), (2, "b", None)]


def test_outer_join_three_rows():
    """Unmatched B rows follow with only B fields."""
    out = join_tables(_tbl(A), _tbl(B), "id", "outer")
    assert list(etl.data(out)) == [(1, "a", "p"), (2, "b", None), (3, None, "q")]


def test_join_many_to_many():
    """Every matching pair yields a row."""
    left = _tbl([("k", "l"), (1, "a"), (1, "b")])
    right = _tbl([("k", "r"), (1, "x"), (1, "y")])
    assert etl.nrows(join_tables(left, right, "k")) == 4


def test_join_right_wins_on_collision():
    """A shared non-key column takes the right table's value for matched rows."""
    left = _tbl([("id", "name"), (1, "left"), (2, "only-left")])
    right = _tbl([("id", "name"), (1, "right")])
    out = join_tables(left, right, "id", "left")
    assert list(out) == [("id", "name"), (1, "right"), (2, "only-left")]


def test_join_key_type_mismatch_yields_no_match():
    """1 and "1" are different keys; missing keys never match."""
    left = _tbl([("id", "x"), (1, "a"), (None, "b")])
    right = _tbl([("id", "y"), ("1", "p"), (None, "q")])
    assert etl.nrows(join_tables(left, right, "id", "inner")) == 0


def test_join_validation():
    """Unknown join type or key raise user errors."""
    with pytest.raises(DataWeaveUserError) as ex:
        join_tables(_tbl(A), _tbl(B), "id", "cross")
    assert getattr(ex.value, "code", None) == "E_JOIN_PARAMS"

    with pytest.raises(DataWeaveUserError) as ex:
        join_tables(_tbl(A), _tbl([("key", "y"), (1, "p")]), "id")
    assert getattr(ex.value, "code", None) == "E_JOIN_UNKNOWN_COL"
    assert "right" in str(ex.value)
