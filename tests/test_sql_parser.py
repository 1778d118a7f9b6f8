import pytest

from services.importer.sql_parser import (
    SqlParser,
    is_copy_from_stdin,
    split_leading_comments,
    strip_leading_comments,
)


SAMPLE = (
    "-- header comment; not a statement\n"
    "SET search_path = public, pg_catalog;\n"
    "CREATE TABLE t (id int, note text DEFAULT 'a;b');\n"
    "CREATE FUNCTION f() RETURNS int AS $body$ SELECT 1; $body$ LANGUAGE sql;\n"
    "/* block /* nested; */ still comment; */\n"
    "INSERT INTO \"we;ird\" VALUES (E'it\\'s;', 'it''s;');\n"
    "COPY t (id, note) FROM stdin;\n"
    "1\thello; world\n"
    "2\t\\N\n"
    "\\.\n"
    "SELECT $$ $ ; $$;   \n"
    "SELECT 2"
)


def collect(chunks):
    parser = SqlParser()
    items = []
    for chunk in chunks:
        items.extend(parser.parse(chunk).items)
    tail = parser.finish()
    items.extend(tail.items)
    return items, tail.remainder


def test_copy_block_is_single_item():
    text = "COPY t (id) FROM stdin;\n1\n\\.\n"
    result = SqlParser.parse_from_string(text)

    assert len(result.items) == 1
    assert result.items[0].content == text
    assert result.items[0].type == "statement"
    assert result.items[0].is_copy
    assert result.remainder == ""


def test_copy_block_without_terminator_is_held():
    text = "COPY t (id) FROM stdin;\n1\n"
    parser = SqlParser()
    result = parser.parse(text)
    assert result.items == []
    assert result.remainder == text

    tail = parser.finish()
    assert tail.items == []
    assert tail.remainder == text


def test_statement_then_copy_block():
    text = "CREATE TABLE t(id int);\nCOPY t (id) FROM stdin;\n1\n\\.\n"
    result = SqlParser.parse_from_string(text)

    assert [item.content for item in result.items] == [
        "CREATE TABLE t(id int);\n",
        "COPY t (id) FROM stdin;\n1\n\\.\n",
    ]
    assert [item.is_copy for item in result.items] == [False, True]


def test_several_statements_from_one_chunk():
    parser = SqlParser()
    result = parser.parse("SELECT 1;\nSELECT 2;\nSELECT 3")
    assert [item.content for item in result.items] == ["SELECT 1;\n", "SELECT 2;\n"]
    assert result.remainder == "SELECT 3"


def test_semicolon_at_chunk_end_waits_for_newline():
    parser = SqlParser()
    first = parser.parse("SELECT 1;")
    assert first.items == []
    second = parser.parse("\nSELECT 2;")
    assert [item.content for item in second.items] == ["SELECT 1;\n"]
    tail = parser.finish()
    assert [item.content for item in tail.items] == ["SELECT 2;"]


def test_statement_followed_by_text_on_same_line():
    result = SqlParser.parse_from_string("SELECT 1; SELECT 2;\n")
    assert [item.content for item in result.items] == ["SELECT 1;", " SELECT 2;\n"]


def test_delimiters_inside_literals_and_comments_ignored():
    items, remainder = collect([SAMPLE])
    contents = [item.content for item in items]

    assert contents[0].startswith("-- header comment; not a statement\nSET search_path")
    assert contents[1] == "CREATE TABLE t (id int, note text DEFAULT 'a;b');\n"
    assert "$body$ SELECT 1; $body$" in contents[2]
    assert contents[3].startswith("/* block /* nested; */ still comment; */\nINSERT INTO")
    assert contents[3].endswith("'it''s;');\n")
    assert contents[4].startswith("COPY t (id, note) FROM stdin;\n") and items[4].is_copy
    assert contents[5] == "SELECT $$ $ ; $$;   \n"
    assert contents[6] == "SELECT 2"
    assert len(items) == 7
    assert remainder == ""


@pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 11, 64])
def test_round_trip_for_any_chunk_size(size):
    chunks = [SAMPLE[i:i + size] for i in range(0, len(SAMPLE), size)]
    items, remainder = collect(chunks)

    assert "".join(item.content for item in items) + remainder == SAMPLE
    assert [item.content for item in items] == [item.content for item in collect([SAMPLE])[0]]


def test_round_trip_keeps_unterminated_tail():
    text = "SELECT 1;\nCOPY t FROM stdin;\n1\n2\n"
    parser = SqlParser()
    emitted = []
    for i in range(0, len(text), 4):
        emitted.extend(parser.parse(text[i:i + 4]).items)
    tail = parser.finish()

    assert "".join(item.content for item in emitted + tail.items) + tail.remainder == text
    assert [item.content for item in emitted] == ["SELECT 1;\n"]


def test_copy_terminator_with_crlf_and_at_end_of_input():
    text = "COPY t FROM stdin;\r\n1\r\n\\.\r\nSELECT 1;\r\n"
    result = SqlParser.parse_from_string(text)
    assert [item.content for item in result.items] == [
        "COPY t FROM stdin;\r\n1\r\n\\.\r\n",
        "SELECT 1;\r\n",
    ]

    result = SqlParser.parse_from_string("COPY t FROM stdin;\n1\n\\.")
    assert len(result.items) == 1
    assert result.items[0].is_copy


def test_copy_data_line_looking_like_terminator_prefix():
    text = "COPY t FROM stdin;\n\\.x\n\\.\n"
    result = SqlParser.parse_from_string(text)
    assert [item.content for item in result.items] == [text]


def test_dollar_after_identifier_is_not_a_tag():
    result = SqlParser.parse_from_string("SELECT a$b; SELECT 2;\n")
    assert [item.content for item in result.items] == ["SELECT a$b;", " SELECT 2;\n"]


def test_finish_leaves_comment_only_tail_as_remainder():
    parser = SqlParser()
    parser.parse("SELECT 1;\n-- trailing note\n")
    tail = parser.finish()
    assert tail.items == []
    assert tail.remainder == "-- trailing note\n"


def test_finish_resets_state():
    parser = SqlParser()
    parser.parse("SELECT 'open")
    parser.finish()
    result = parser.parse("SELECT 1;\n")
    assert [item.content for item in result.items] == ["SELECT 1;\n"]


def test_leading_comment_helpers():
    prefix, body = split_leading_comments("  -- a\n/* b /* c */ */\nDROP TABLE t;")
    assert prefix == "  -- a\n/* b /* c */ */\n"
    assert body == "DROP TABLE t;"
    assert strip_leading_comments("-- only") == ""
    assert is_copy_from_stdin("-- data\nCOPY public.t (a) FROM stdin;\n")
    assert not is_copy_from_stdin("COPY t TO stdout;")
    assert not is_copy_from_stdin("COPY (SELECT 'x FROM stdin') TO STDOUT;")
    assert not is_copy_from_stdin("COPY t (id) TO STDOUT; -- FROM stdin")
    assert is_copy_from_stdin('COPY "my table" ("a b", c) FROM STDIN WITH (FORMAT csv);')


def test_copy_query_export_is_an_ordinary_statement():
    text = "COPY (SELECT 'x FROM stdin') TO STDOUT;\nCREATE TABLE t (id int);\n"
    result = SqlParser.parse_from_string(text)

    assert [item.content for item in result.items] == [
        "COPY (SELECT 'x FROM stdin') TO STDOUT;\n",
        "CREATE TABLE t (id int);\n",
    ]
    assert not any(item.is_copy for item in result.items)
    assert result.remainder == ""
