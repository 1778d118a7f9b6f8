import json

from conftest import FakeDriver

from models.import_options import ErrorMode, ImportOptions, ImportScope
from services.importer.data_importer import JsonDataImporter


COLUMNS = [
    {"name": "id",     "type": "int4"},
    {"name": "tags",   "type": "jsonb"},
    {"name": "labels", "type": "_text"},
    {"name": "active", "type": "bool"},
    {"name": "note",   "type": "text"},
]


def document(rows):
    return json.dumps({"columns": COLUMNS, "data": rows}, ensure_ascii=False)


def test_rows_inserted_in_batches():
    driver   = FakeDriver()
    importer = JsonDataImporter(driver, ImportOptions(), "public", "items", batch_size=2)
    text     = document([{"id": i, "note": f"n{i}"} for i in range(1, 6)])

    for i in range(0, len(text), 9):
        importer.feed(text[i:i + 9])
    result = importer.finish()

    inserts = [sql for sql in driver.executed if sql.startswith("INSERT")]
    assert len(inserts) == 3
    assert inserts[0] == (
        'INSERT INTO "public"."items" ("id", "tags", "labels", "active", "note") VALUES\n'
        "(1, DEFAULT, DEFAULT, DEFAULT, 'n1'),\n"
        "(2, DEFAULT, DEFAULT, DEFAULT, 'n2');"
    )
    assert inserts[2].endswith("(5, DEFAULT, DEFAULT, DEFAULT, 'n5');")
    assert result.ok
    assert result.executed == 3
    assert importer.session.scope == ImportScope.TABLE
    assert importer.session.scope_ident == "public.items"


def test_value_conversion():
    driver   = FakeDriver()
    importer = JsonDataImporter(driver, ImportOptions(), "s", "t")
    importer.feed(document([
        {"id": 1, "tags": {"k": "it's"}, "labels": ["x", "y z"], "active": True, "note": None},
        {"id": 2.5, "tags": [1, 2], "labels": [], "active": False, "note": "plain"},
    ]))
    importer.finish()

    assert driver.executed == [
        'INSERT INTO "s"."t" ("id", "tags", "labels", "active", "note") VALUES\n'
        "(1, '{\"k\": \"it''s\"}', '{x,\"y z\"}', TRUE, NULL),\n"
        "(2.5, '[1, 2]', '{}', FALSE, 'plain');"
    ]


def test_truncate_once_before_first_batch():
    driver   = FakeDriver()
    importer = JsonDataImporter(driver, ImportOptions(truncate=True), "public", "items", batch_size=1)
    importer.feed(document([{"id": 1}, {"id": 2}]))
    importer.finish()

    assert driver.executed[0] == 'TRUNCATE TABLE "public"."items"'
    assert sum(1 for sql in driver.executed if sql.startswith("TRUNCATE")) == 1
    assert len(driver.executed) == 3


def test_data_disabled_inserts_nothing():
    driver   = FakeDriver()
    importer = JsonDataImporter(driver, ImportOptions(data=False), "public", "items")
    importer.feed(document([{"id": 1}]))
    result = importer.finish()

    assert driver.executed == []
    assert result.executed == 0
    assert importer.log.count("skipped") == 1


def test_insert_failure_in_abort_mode_stops_feeding():
    driver   = FakeDriver().fail_on("INSERT", "duplicate key")
    importer = JsonDataImporter(driver, ImportOptions(error_mode=ErrorMode.ABORT), "public", "items", batch_size=1)

    assert not importer.feed(document([{"id": 1}, {"id": 2}]))
    result = importer.finish()
    assert result.aborted
    assert len(driver.executed) == 1


def test_malformed_document_aborts():
    driver   = FakeDriver()
    importer = JsonDataImporter(driver, ImportOptions(), "public", "items")

    assert not importer.feed('{"data": [1}')
    result = importer.finish()
    assert result.aborted
    assert driver.executed == []
    assert importer.log.count("error") == 1


def test_unclosed_document_warns_after_inserting_rows():
    driver   = FakeDriver()
    importer = JsonDataImporter(driver, ImportOptions(), "public", "items")
    importer.feed('{"columns": [{"name": "id", "type": "int4"}], "data": [{"id": 7}')
    importer.finish()

    assert driver.executed == ['INSERT INTO "public"."items" ("id") VALUES\n(7);']
    assert importer.log.count("warning") == 1


def test_rows_without_header_use_key_order():
    driver   = FakeDriver()
    importer = JsonDataImporter(driver, ImportOptions(), "public", "items")
    importer.feed('{"data": [{"b": 1}, {"a": "x", "b": 2}]}')
    importer.finish()

    assert driver.executed == [
        'INSERT INTO "public"."items" ("b", "a") VALUES\n(1, DEFAULT),\n(2, \'x\');'
    ]
