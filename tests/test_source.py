"""CsvRecordSource: 문자열 값, 헤더 처리, limit, 구조 오류"""

import logging

import pytest

from es_csv_indexer import CsvRecordSource, RecordSourceError


def _write(tmp_path, text: str, name: str = "data.csv"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def _all(source: CsvRecordSource) -> list[dict]:
    return [record for group in source.iter_groups() for record in group]


def test_header_line_defines_columns_and_values_stay_strings(tmp_path):
    path = _write(tmp_path, "siret,name,employees\n007,ACME,12\n008,,3\n")

    records = _all(CsvRecordSource(path))

    assert records == [
        {"siret": "007", "name": "ACME", "employees": "12"},
        {"siret": "008", "name": "", "employees": "3"},
    ]


def test_explicit_headers_read_header_line_as_data(tmp_path):
    path = _write(tmp_path, "siret,name\n1,A\n2,B\n")

    records = _all(CsvRecordSource(path, headers=["siret", "name"]))

    assert records[0] == {"siret": "siret", "name": "name"}
    assert len(records) == 3


def test_semicolon_delimiter_and_empty_lines(tmp_path):
    path = _write(tmp_path, "id;city\n1;Paris\n\n2;Lyon\n")
    records = _all(CsvRecordSource(path, delimiter=";"))
    assert [r["city"] for r in records] == ["Paris", "Lyon"]


def test_limit_caps_rows_across_groups(tmp_path):
    rows = "".join(f"{i},name-{i}\n" for i in range(500))
    path = _write(tmp_path, "id,name\n" + rows)

    source = CsvRecordSource(path, block_size=1024, limit=123)
    groups = list(source.iter_groups())

    assert len(groups) > 1
    assert sum(len(g) for g in groups) == 123
    assert source.rows_read == 123
    assert groups[-1][-1]["id"] == "122"


def test_small_blocks_yield_multiple_groups_in_order(tmp_path):
    rows = "".join(f"{i},x\n" for i in range(300))
    path = _write(tmp_path, "id,v\n" + rows)

    groups = list(CsvRecordSource(path, block_size=512).iter_groups())

    assert len(groups) > 1
    assert [r["id"] for g in groups for r in g] == [str(i) for i in range(300)]


def test_column_count_mismatch_row_is_logged_and_skipped(tmp_path, caplog):
    path = _write(tmp_path, "id,name\n1,A\n2,B,extra\n3,C\n")
    source = CsvRecordSource(path)

    with caplog.at_level(logging.ERROR, logger="es_csv_indexer"):
        records = _all(source)

    assert [r["id"] for r in records] == ["1", "3"]
    assert source.rows_skipped == 1
    assert any("2,B,extra" in r.getMessage() for r in caplog.records)


def test_invalid_utf8_is_fatal(tmp_path):
    path = tmp_path / "broken.csv"
    path.write_bytes(b"id,name\n1,\xff\xfe\n")
    with pytest.raises(RecordSourceError):
        _all(CsvRecordSource(path))


def test_missing_file_is_fatal(tmp_path):
    with pytest.raises(RecordSourceError):
        _all(CsvRecordSource(tmp_path / "nope.csv"))


def test_empty_file_yields_nothing(tmp_path):
    path = _write(tmp_path, "")
    assert _all(CsvRecordSource(path)) == []
