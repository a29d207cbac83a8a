import petl as etl
import pytest

from dataweave import DataWeaveUserError, Source


def _write_csv(path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


def test_source_missing_file_fails_on_read(tmp_path):
    """Reading an absent CSV raises E_SOURCE_NOT_FOUND."""
    missing = tmp_path / "missing.csv"
    with pytest.raises(DataWeaveUserError) as ex:
        Source(str(missing)).table()
    err = ex.value
    assert getattr(err, "code", None) == "E_SOURCE_NOT_FOUND"
    assert "does not exist" in str(err)


def test_source_reads_and_types_cells(tmp_path):
    """Header comes through as-is; numbers, booleans and blanks are typed."""
    p = tmp_path / "people.csv"
    _write_csv(
        p,
        "person_id,age,country,member\n"
        "1,30.5,KE,true\n"
        "2,,UG,FALSE\n",
    )

    tbl = Source(str(p)).table()

    assert list(etl.header(tbl)) == ["person_id", "age", "country", "member"]
    assert list(etl.data(tbl)) == [(1, 30.5, "KE", True), (2, None, "UG", False)]


def test_source_accepts_pathlib_paths(tmp_path):
    """Pathlib.Path URIs are coerced to strings and type inferred."""
    p = tmp_path / "data.csv"
    _write_csv(p, "a\n1\n")

    s = Source(p)  # type: ignore[arg-type]

    assert isinstance(s.uri, str)
    assert s.uri == str(p)
    assert s.type == "csv"
    assert s.name == "data.csv"


def test_source_infer_type_failure_raises(tmp_path):
    """URIs without an inferable type raise E_SOURCE_TYPE_INFER."""
    with pytest.raises(DataWeaveUserError) as ex:
        Source(str(tmp_path / "data"))
    assert getattr(ex.value, "code", None) == "E_SOURCE_TYPE_INFER"


def test_source_rejects_unsupported_explicit_type(tmp_path):
    """Explicit unsupported types raise E_SOURCE_TYPE_UNSUPPORTED."""
    with pytest.raises(DataWeaveUserError) as ex:
        Source(str(tmp_path / "data.csv"), type="json")
    assert getattr(ex.value, "code", None) == "E_SOURCE_TYPE_UNSUPPORTED"


def test_source_from_text_skips_blank_lines():
    """In-memory uploads parse the same way; blank lines are ignored."""
    tbl = Source.from_text("a,b\n1,x\n\n2,y\n").table()
    assert list(tbl) == [("a", "b"), (1, "x"), (2, "y")]


def test_source_strips_bom():
    """A UTF-8 BOM does not leak into the first column name."""
    tbl = Source.from_bytes("\ufeffid,v\n1,2\n".encode("utf-8")).table()
    assert list(etl.header(tbl)) == ["id", "v"]


def test_source_pads_and_truncates_ragged_rows(caplog):
    """Short rows are padded with None, long rows truncated, and a warning is logged."""
    with caplog.at_level("WARNING", logger="dataweave.models.sources"):
        tbl = Source.from_text("a,b\n1\n2,3,4\n").table()

    assert list(etl.data(tbl)) == [(1, None), (2, 3)]
    assert "2 row(s)" in caplog.text


def test_source_requires_header():
    """An empty upload has no header row."""
    with pytest.raises(DataWeaveUserError) as ex:
        Source.from_text("").table()
    assert getattr(ex.value, "code", None) == "E_SOURCE_PARSE"


def test_source_rejects_duplicate_and_blank_column_names():
    """Column names must be present and unique."""
    with pytest.raises(DataWeaveUserError) as ex:
        Source.from_text("a,a\n1,2\n").table()
    assert getattr(ex.value, "code", None) == "E_SOURCE_PARSE"
    assert "'a'" in str(ex.value)

    with pytest.raises(DataWeaveUserError) as ex:
        Source.from_text("a,,c\n1,2,3\n").table()
    assert getattr(ex.value, "code", None) == "E_SOURCE_PARSE"


def test_source_wraps_decode_errors():
    """Bytes that are not UTF-8 raise E_SOURCE_READ."""
    with pytest.raises(DataWeaveUserError) as ex:
        Source.from_bytes(b"name\n\xff\xfe\xfa\n").table()
    assert getattr(ex.value, "code", None) == "E_SOURCE_READ"


def test_table_wraps_os_errors(monkeypatch, tmp_path):
    """OS errors from petl are wrapped as E_SOURCE_READ."""
    p = tmp_path / "data.csv"
    _write_csv(p, "a\n1\n")
    s = Source(str(p))

    def raise_other(*args, **kwargs):
        raise PermissionError("nope")

    monkeypatch.setattr("dataweave.models.sources.etl.fromcsv", raise_other)

    with pytest.raises(DataWeaveUserError) as ex:
        s.table()
    assert getattr(ex.value, "code", None) == "E_SOURCE_READ"
    assert "PermissionError" in str(ex.value)


def test_tsv_source_reads_tabs(tmp_path):
    """.tsv files are split on tabs."""
    p = tmp_path / "data.tsv"
    _write_csv(p, "a\tb\n1\thello world\n")
    assert list(Source(str(p)).table()) == [("a", "b"), (1, "hello world")]


def test_head_returns_preview_rows(tmp_path):
    """head() returns a bounded table with header and data rows."""
    p = tmp_path / "data.csv"
    _write_csv(p, "a\n" + "".join(f"{i}\n" for i in range(10)))
    s = Source(str(p))

    rows = list(s.head())  # default preview_rows=5
    assert len(rows) == 6
    assert rows[0] == ("a",)


def test_preview_str_truncates(tmp_path):
    """_preview_str enforces preview_max_chars and marks truncation."""
    p = tmp_path / "data.csv"
    _write_csv(p, "col\n" + "".join(f"{i}\n" for i in range(1000)))
    s = Source(str(p))
    object.__setattr__(s, "preview_max_chars", 40)

    preview = s._preview_str()
    assert "truncated" in preview
    assert len(preview) <= 60
