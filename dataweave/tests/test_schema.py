import petl as etl
import pytest

from dataweave import DataWeaveUserError, Settings
from dataweave.schema import (
    CATEGORICAL,
    DATE,
    NUMERIC,
    TEXT,
    analyze,
    describe_column,
    to_frictionless_schema,
    total_missing,
    validate_table,
)


def _tbl(data):
    return etl.wrap(data)


SALES = [
    ("date", "region", "amount", "note"),
    ("2024-01-05", "North", 10, "first order"),
    ("2024-01-06", "South", 20.5, None),
    ("2024-01-07", "North", None, "third"),
    ("2024-01-08", "", 40, "fourth one"),
    ("2024-01-09", "South", 15, "fifth"),
    ("2024-01-10", "North", 25, "sixth"),
]


def test_analyze_infers_types():
    """Dates, categories and numbers are told apart; a column of free text stays text."""
    by_name = {d.name: d for d in analyze(_tbl(SALES))}
    assert by_name["date"].type == DATE
    assert by_name["region"].type == CATEGORICAL
    assert by_name["amount"].type == NUMERIC
    assert by_name["note"].type == TEXT


def test_missing_counts_match_empty_cells():
    """Sum of missing counts equals the number of None/'' cells."""
    descriptors = analyze(_tbl(SALES))
    empty = sum(1 for row in SALES[1:] for v in row if v is None or v == "")
    assert total_missing(descriptors) == empty == 3


def test_analyze_is_idempotent():
    """Re-analyzing an unchanged table gives identical descriptors."""
    tbl = _tbl(SALES)
    assert analyze(tbl) == analyze(tbl)


def test_numeric_stats():
    """Population std dev; everything rounded to 2 decimals."""
    d = describe_column("v", [1, 2, 3, 4, None])
    assert d.type == NUMERIC
    assert d.missing == 1
    assert d.unique == 4
    assert (d.stats.min, d.stats.max, d.stats.mean, d.stats.median, d.stats.std_dev) == (1, 4, 2.5, 2.5, 1.12)


def test_numeric_strings_count_as_numeric():
    """Numeric-looking strings make a numeric column."""
    assert describe_column("v", ["1", "2.5", 3]).type == NUMERIC


def test_all_missing_column_is_text():
    """No values at all: text, zero unique."""
    d = describe_column("v", [None, ""])
    assert (d.type, d.missing, d.unique, d.stats) == (TEXT, 2, 0, None)


def test_categorical_threshold_follows_settings():
    """Distinct count above the configured limit turns categories into text."""
    values = [f"v{i % 5}" for i in range(20)]
    assert describe_column("c", values).type == CATEGORICAL
    assert describe_column("c", values, Settings(categorical_max_unique=4)).type == TEXT


# ---------- frictionless bridge ----------
def test_to_frictionless_schema_maps_types():
    """Numeric -> number, date -> date(any), everything else string."""
    schema = to_frictionless_schema(analyze(_tbl(SALES)))
    assert schema["fields"] == [
        {"name": "date", "type": "date", "format": "any"},
        {"name": "region", "type": "string"},
        {"name": "amount", "type": "number"},
        {"name": "note", "type": "string"},
    ]


def test_validate_table_clean_table():
    """A table checked against its own inferred schema is valid."""
    tbl = _tbl([("id", "name"), (1, "a"), (2, "b")])
    result = validate_table(tbl, analyze(tbl))
    assert result["valid"] is True
    assert result["rows_checked"] == 2
    assert result["errors"] == 0


def test_validate_table_empty_and_bad_params():
    """No rows is trivially valid; sample_rows must be positive."""
    tbl = _tbl([("id",)])
    assert validate_table(tbl, analyze(tbl))["valid"] is True

    with pytest.raises(DataWeaveUserError) as ex:
        validate_table(tbl, analyze(tbl), sample_rows=0)
    assert getattr(ex.value, "code", None) == "E_VALIDATE_PARAMS"


def test_validate_table_accepts_boolean_and_mixed_cells():
    """true/false cells and mixed text columns conform to their string fields."""
    tbl = _tbl([("id", "active", "code"), (1, True, "A1"), (2, False, 7), (3, True, "B2")])
    result = validate_table(tbl, analyze(tbl))
    assert result["valid"] is True
    assert result["errors"] == 0


def test_analyze_very_large_numbers():
    """Values beyond decimal's default precision still get rounded stats."""
    d = describe_column("id", [123456789012345678901234567890, 1e300, 2])
    assert d.type == NUMERIC
    assert d.stats.max == 1e300
    assert d.stats.min == 2
