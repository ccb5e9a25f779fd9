from __future__ import annotations

from datetime import date

from helpers import make_idx
from insider_monitor.ingest.parse_index import filing_id_from_path, parse_master_idx


def test_parse_master_idx_skips_header_and_reads_fields() -> None:
    text = make_idx([
        "1214156|COOK TIMOTHY D|4|20240102|edgar/data/1214156/0001214156-24-000001.txt",
        "320193|Apple Inc.|8-K|20240102|edgar/data/320193/0000320193-24-000002.txt",
    ])
    refs = parse_master_idx(text)

    assert [r.filing_id for r in refs] == ["0001214156-24-000001", "0000320193-24-000002"]
    first = refs[0]
    assert first.cik == "1214156"
    assert first.company_name == "COOK TIMOTHY D"
    assert first.form_type == "4"
    assert first.date_filed == date(2024, 1, 2)
    assert first.file_name == "edgar/data/1214156/0001214156-24-000001.txt"
    assert first.action is None


def test_parse_master_idx_ignores_lines_before_dashes() -> None:
    # looks like a data line but sits in the header block
    text = "1|X|4|20240102|edgar/data/1/a.txt\n----\n2|Y|4|20240102|edgar/data/2/b.txt\n"
    refs = parse_master_idx(text)
    assert [r.cik for r in refs] == ["2"]


def test_parse_master_idx_skips_malformed_lines() -> None:
    text = make_idx([
        "1|too|few|fields",
        "1|A|4|20240102|edgar/data/1/x.txt|extra",
        "2|B|4|notadate|edgar/data/2/y.txt",
        "",
        "3|C|5|20240103|edgar/data/3/0000000003-24-000003.txt",
    ])
    refs = parse_master_idx(text)
    assert len(refs) == 1
    assert refs[0].filing_id == "0000000003-24-000003"


def test_parse_master_idx_accepts_quarterly_dates_and_crlf() -> None:
    text = "----\r\n4|D|4|2024-02-05|edgar/data/4/0000000004-24-000004.txt\r\n"
    refs = parse_master_idx(text)
    assert refs[0].date_filed == date(2024, 2, 5)


def test_filing_id_is_last_segment_without_extension() -> None:
    for path, expected in [
        ("edgar/data/1/0001-24-000001.txt", "0001-24-000001"),
        ("edgar/data/99/abc.txt", "abc"),
        ("noslash.txt", "noslash"),
    ]:
        assert filing_id_from_path(path) == expected
