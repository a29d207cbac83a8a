import petl as etl
import pytest

from dataweave import DataWeaveUserError, Sink, Source
from dataweave.models.sinks import export_csv_text


def _tbl(data):
    return etl.wrap(data)


def test_sink_infers_csv_type(tmp_path):
    """CSV extension is inferred as sink type."""
    p = tmp_path / "out.csv"
    s = Sink(str(p))

    assert s.type == "csv"


def test_sink_infers_xlsx_type(tmp_path):
    """Workbook extension is inferred as xlsx."""
    assert Sink(str(tmp_path / "out.xlsx")).type == "xlsx"


def test_sink_infer_type_failure():
    """Missing/unknown extension raises E_SINK_TYPE_INFER."""
    with pytest.raises(DataWeaveUserError) as ex:
        Sink("out")  # no extension
    assert getattr(ex.value, "code", None) == "E_SINK_TYPE_INFER"


def test_sink_rejects_unsupported_type(tmp_path):
    """Explicit unsupported type raises E_SINK_TYPE_UNSUPPORTED."""
    p = tmp_path / "out.csv"
    with pytest.raises(DataWeaveUserError) as ex:
        Sink(str(p), type="json")
    assert getattr(ex.value, "code", None) == "E_SINK_TYPE_UNSUPPORTED"


def test_sink_requires_existing_directory(tmp_path):
    """Nonexistent output directory raises E_SINK_DIR_NOT_FOUND."""
    p = tmp_path / "missing" / "out.csv"
    with pytest.raises(DataWeaveUserError) as ex:
        Sink(str(p))
    assert getattr(ex.value, "code", None) == "E_SINK_DIR_NOT_FOUND"


def test_sink_requires_writable_directory(monkeypatch, tmp_path):
    """Unwritable directory raises E_SINK_NOT_WRITABLE."""
    d = tmp_path / "dir"
    d.mkdir()
    monkeypatch.setattr("dataweave.models.sinks.os.access", lambda path, mode: False)

    with pytest.raises(DataWeaveUserError) as ex:
        Sink(str(d / "out.csv"))
    assert getattr(ex.value, "code", None) == "E_SINK_NOT_WRITABLE"


def test_sink_write_passes_options(monkeypatch, tmp_path):
    """write() delegates to petl.tocsv with provided options."""
    p = tmp_path / "out.csv"
    s = Sink(str(p), options={"delimiter": ";"})

    calls = []

    def fake_tocsv(table, uri, **opts):
        calls.append((table, uri, opts))

    monkeypatch.setattr("dataweave.models.sinks.etl.tocsv", fake_tocsv)

    s.write(_tbl([("a",), (1,)]))
    assert calls and calls[0][1] == str(p)
    assert calls[0][2]["delimiter"] == ";"


def test_sink_write_csv_file(tmp_path):
    """Cells are written through the display formatting: None empty, floats without .0, booleans lowercase."""
    p = tmp_path / "out.csv"
    Sink(str(p)).write(_tbl([("id", "price", "ok", "note"), (1, 2.0, True, None), (2, 2.5, False, "x")]))

    lines = p.read_text(encoding="utf-8").splitlines()
    assert lines == ["id,price,ok,note", "1,2,true,", "2,2.5,false,x"]


def test_sink_write_tsv_has_bom(tmp_path):
    """The spreadsheet text export is tab separated and starts with a UTF-8 BOM."""
    p = tmp_path / "out.tsv"
    Sink(str(p)).write(_tbl([("a", "b"), (1, "x")]))

    raw = p.read_bytes()
    assert raw.startswith(b"\xef\xbb\xbf")
    assert raw.decode("utf-8-sig").splitlines() == ["a\tb", "1\tx"]


def test_sink_write_xlsx_workbook(tmp_path):
    """xlsx export produces a workbook petl can read back."""
    p = tmp_path / "out.xlsx"
    Sink(str(p)).write(_tbl([("a", "b"), (1, "x")]))

    back = etl.fromxlsx(str(p))
    assert list(etl.header(back)) == ["a", "b"]
    assert etl.nrows(back) == 1


def test_sink_write_wraps_filenotfound(monkeypatch, tmp_path):
    """FileNotFoundError is wrapped as E_SINK_DIR_NOT_FOUND."""
    s = Sink.__new__(Sink)
    object.__setattr__(s, "uri", str(tmp_path / "missing" / "out.csv"))
    object.__setattr__(s, "type", "csv")
    object.__setattr__(s, "options", {})

    def raise_fnf(*args, **kwargs):
        raise FileNotFoundError("missing dir")

    monkeypatch.setattr("dataweave.models.sinks.etl.tocsv", raise_fnf)

    with pytest.raises(DataWeaveUserError) as ex:
        s.write(_tbl([("a",)]))
    assert getattr(ex.value, "code", None) == "E_SINK_DIR_NOT_FOUND"


def test_sink_write_wraps_permissionerror(monkeypatch, tmp_path):
    """PermissionError is wrapped as E_SINK_NOT_WRITABLE."""
    s = Sink(str(tmp_path / "out.csv"))

    def raise_perm(*args, **kwargs):
        raise PermissionError("nope")

    monkeypatch.setattr("dataweave.models.sinks.etl.tocsv", raise_perm)

    with pytest.raises(DataWeaveUserError) as ex:
        s.write(_tbl([("a",)]))
    assert getattr(ex.value, "code", None) == "E_SINK_NOT_WRITABLE"


def test_sink_write_wraps_other_errors(monkeypatch, tmp_path):
    """Other errors are wrapped as E_SINK_WRITE."""
    s = Sink(str(tmp_path / "out.csv"))

    def raise_other(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("dataweave.models.sinks.etl.tocsv", raise_other)

    with pytest.raises(DataWeaveUserError) as ex:
        s.write(_tbl([("a",)]))
    assert getattr(ex.value, "code", None) == "E_SINK_WRITE"


def test_sink_str_formats_kind():
    """__str__ includes uri and kind."""
    s = Sink.__new__(Sink)
    object.__setattr__(s, "uri", "out.csv")
    object.__setattr__(s, "type", "csv")
    object.__setattr__(s, "options", {})

    msg = str(s)
    assert 'Sink("out.csv")' in msg
    assert "kind=csv" in msg


# ---------- CSV text round trip ----------
def test_export_csv_text_quotes_commas():
    """Cells holding the delimiter are quoted."""
    text = export_csv_text(_tbl([("name", "city"), ("Ann", "Paris, FR")]))
    assert text.splitlines() == ["name,city", 'Ann,"Paris, FR"']


def test_csv_round_trip_preserves_table():
    """Parsing the exported text gives back the same typed table."""
    original = _tbl([
        ("id", "name", "score", "active", "joined"),
        (1, "Ann", 9.5, True, "2024-01-05"),
        (2, "Bob", None, False, "2024-02-11"),
        (3, "Cy", 7, True, None),
    ])
    back = Source.from_text(export_csv_text(original)).table()

    assert list(back) == list(original)
