import datetime
import decimal
import io

import pytest

from conftest import FakeDriver, Sink

from services.export.csv_formatter import CsvFormatter, TabFormatter
from services.export.output_formatter import to_text
from services.export.sql_formatter import (
    ESCAPE_BYTEA,
    ESCAPE_NONE,
    ESCAPE_STRING,
    SqlFormatter,
    bytea_to_octal,
    determine_escape_modes,
)


FIELDS = [
    {"name": "id",   "type": "int4"},
    {"name": "ok",   "type": "bool"},
    {"name": "name", "type": "text"},
    {"name": "raw",  "type": "bytea"},
]

ROWS = [
    [1, True, "it's", b"\x00\xff"],
    [2, None, "tab\there\nnew \\ line", None],
    [3, False, None, b"A"],
]


def render(insert_format, rows=ROWS, **metadata):
    sink = Sink()
    formatter = SqlFormatter(sink, FakeDriver())
    meta = {"table": '"public"."t"', "insert_format": insert_format}
    meta.update(metadata)
    count = formatter.format(rows, FIELDS, meta)
    return sink.text, count


def test_escape_modes_computed_from_type_names():
    assert determine_escape_modes(FIELDS) == [ESCAPE_NONE, ESCAPE_NONE, ESCAPE_STRING, ESCAPE_BYTEA]
    assert determine_escape_modes([{"name": "x", "type": "NUMERIC"}]) == [ESCAPE_NONE]


def test_copy_format():
    text, count = render("copy")
    assert count == 3
    assert text == (
        'COPY "public"."t" ("id", "ok", "name", "raw") FROM stdin;\n'
        "1\ttrue\tit's\t\\\\000\\\\377\n"
        "2\t\\N\ttab\\there\\nnew \\\\ line\t\\N\n"
        "3\tfalse\t\\N\t\\\\101\n"
        "\\.\n"
    )


def test_copy_format_with_no_rows_still_terminated():
    text, count = render("copy", rows=[])
    assert count == 0
    assert text == 'COPY "public"."t" ("id", "ok", "name", "raw") FROM stdin;\n\\.\n'


def test_single_insert_format():
    text, _ = render("single")
    assert text.splitlines() == [
        "INSERT INTO \"public\".\"t\" (\"id\", \"ok\", \"name\", \"raw\") VALUES (1,true,'it''s','\\x00ff');",
        "INSERT INTO \"public\".\"t\" (\"id\", \"ok\", \"name\", \"raw\") VALUES (2,NULL,'tab\there",
        "new \\ line',NULL);",
        "INSERT INTO \"public\".\"t\" (\"id\", \"ok\", \"name\", \"raw\") VALUES (3,false,NULL,'\\x41');",
    ]


def test_multi_insert_closes_statement_at_batch_boundary():
    rows = [[i, True, f"r{i}", None] for i in range(1, 6)]
    text, count = render("multi", rows=rows, batch_size=2)
    head = 'INSERT INTO "public"."t" ("id", "ok", "name", "raw") VALUES\n'

    assert count == 5
    assert text == (
        head + "(1,true,'r1',NULL),\n(2,true,'r2',NULL);\n\n"
        + head + "(3,true,'r3',NULL),\n(4,true,'r4',NULL);\n\n"
        + head + "(5,true,'r5',NULL);\n"
    )


def test_multi_insert_without_rows_writes_nothing():
    text, _ = render("multi", rows=[])
    assert text == ""


def test_overriding_system_value_and_special_numbers():
    sink = Sink()
    formatter = SqlFormatter(sink, FakeDriver())
    formatter.format(
        [[float("nan")], [decimal.Decimal("1.50")]],
        [{"name": "v", "type": "float8"}],
        {"table": "t", "insert_format": "single", "overriding_system_value": True},
    )
    assert sink.text == (
        "INSERT INTO t (\"v\") OVERRIDING SYSTEM VALUE VALUES ('NaN');\n"
        "INSERT INTO t (\"v\") OVERRIDING SYSTEM VALUE VALUES (1.50);\n"
    )


def test_bytea_to_octal():
    assert bytea_to_octal(b"\x01\x08") == "\\\\001\\\\010"


def test_to_text_conversions():
    assert to_text(None) is None
    assert to_text(True) == "true"
    assert to_text(float("-inf")) == "-Infinity"
    assert to_text(memoryview(b"ab")) == b"ab"
    assert to_text(datetime.datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02 03:04:05"
    assert to_text(datetime.date(2024, 1, 2)) == "2024-01-02"
    assert to_text([1, None, "a b", ["x"]]) == '{1,NULL,"a b",{x}}'
    assert to_text({"k": "é"}) == '{"k": "é"}'


def test_csv_formatter():
    out = io.StringIO()
    count = CsvFormatter(out).format(ROWS, FIELDS)
    assert count == 3
    assert out.getvalue() == (
        "id,ok,name,raw\r\n"
        "1,true,it's,\\x00ff\r\n"
        '2,,"tab\there\nnew \\ line",\r\n'
        "3,false,,\\x41\r\n"
    )


def test_tab_formatter():
    out = io.StringIO()
    formatter = TabFormatter(out)
    formatter.format([[1, "a,b", None]], [{"name": "id"}, {"name": "v"}, {"name": "n"}])
    assert formatter.file_extension == "tsv"
    assert out.getvalue() == "id\tv\tn\n1\ta,b\t\n"


@pytest.mark.parametrize("value", ['a"b', "x\ty"])
def test_tab_formatter_quotes_special_cells(value):
    out = io.StringIO()
    TabFormatter(out).format([[value]], [{"name": "v"}])
    assert out.getvalue().splitlines()[1].startswith('"')
