import io

import pytest

from wall_app.reconcile.adapters import CSVAdapterError, CSVDecodeError, CSVHeaderError, LegacyCSVAdapter


def _make_csv(contents: str) -> io.StringIO:
    stream = io.StringIO(contents)
    stream.seek(0)
    return stream


def test_adapter_maps_alias_headers_to_contract_fields():
    adapter = LegacyCSVAdapter(_make_csv("Full Name,Branch of Service,Grad Year,Bio\nJohn  Doe,ARMY,1998,Quiet guy\n"))

    records = adapter.read_all()

    assert adapter.header.canonical_headers == ("name", "branch", "graduationYear", "description")
    assert len(records) == 1
    assert records[0].fields == {
        "name": "John  Doe",
        "branch": "ARMY",
        "graduationYear": "1998",
        "description": "Quiet guy",
    }
    assert records[0].row_number == 1
    assert records[0].match_key == "john doe"


def test_unknown_headers_pass_through():
    records = LegacyCSVAdapter(_make_csv("name,Hometown\nAnn Lee,Kansas City\n")).read_all()

    assert records[0].fields == {"name": "Ann Lee", "Hometown": "Kansas City"}


def test_missing_name_column_is_fatal():
    adapter = LegacyCSVAdapter(_make_csv("rank,branch\nE-4,Navy\n"))

    with pytest.raises(CSVHeaderError) as excinfo:
        adapter.read_all()

    assert excinfo.value.missing == ("name",)


def test_two_headers_for_one_field_are_rejected():
    adapter = LegacyCSVAdapter(_make_csv("name,Full Name\nAnn Lee,Ann Lee\n"))

    with pytest.raises(CSVHeaderError) as excinfo:
        adapter.read_all()

    assert excinfo.value.duplicates == ("name",)


def test_rows_without_usable_name_are_skipped_and_counted():
    adapter = LegacyCSVAdapter(
        _make_csv("name,rank\nAnn Lee,E-1\n,E-2\n???,E-3\n,\nBo Diaz,E-4,extra\nCy Young,E-5\n")
    )

    records = adapter.read_all()

    assert [record.fields["name"] for record in records] == ["Ann Lee", "Cy Young"]
    assert adapter.statistics.rows_processed == 2
    assert adapter.statistics.rows_skipped_blank == 1
    assert adapter.statistics.rows_malformed == 3
    assert [error.row_number for error in adapter.statistics.errors] == [2, 3, 5]
    assert adapter.statistics.to_dict()["malformedRows"][0]["rowNumber"] == 2


def test_byte_order_mark_is_ignored_in_header():
    records = LegacyCSVAdapter(_make_csv("\ufeffName,Rank\nAnn Lee,E-1\n")).read_all()

    assert records[0].fields["name"] == "Ann Lee"


def test_latin1_bytes_raise_adapter_error():
    stream = io.TextIOWrapper(io.BytesIO(b"name,branch\nJos\xe9 Diaz,Army\n"), encoding="utf-8-sig", newline="")

    with pytest.raises(CSVDecodeError) as excinfo:
        LegacyCSVAdapter(stream).read_all()

    assert isinstance(excinfo.value, CSVAdapterError)
    assert "Unable to read legacy CSV" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, UnicodeDecodeError)


def test_oversized_field_raises_adapter_error():
    oversized = "x" * 200_000
    adapter = LegacyCSVAdapter(_make_csv(f"name,description\nAnn Lee,{oversized}\n"))

    with pytest.raises(CSVDecodeError) as excinfo:
        adapter.read_all()

    assert excinfo.value.line_number == 2
