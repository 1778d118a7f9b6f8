import gzip

import pytest

from conftest import FakeDriver

from models.import_options import ErrorMode, ImportOptions
from services.importer.sql_importer import ImportAbortedError, SqlImporter, detect_encoding


SCRIPT = (
    "SET search_path TO app;\n"
    "SET enable_seqscan = off;\n"
    "SET ROLE alice;\n"
    "GRANT SELECT ON t TO bob;\n"
    "ALTER TABLE t OWNER TO alice;\n"
    "CREATE TABLE t (id int);\n"
    "COPY t (id) FROM stdin;\n"
    "1\n"
    "\\.\n"
)


def run_chunks(importer, text, size):
    for i in range(0, len(text), size):
        if not importer.feed(text[i:i + size]):
            break
    return importer.finish()


@pytest.mark.parametrize("size", [5, 1024])
def test_queues_flushed_after_input_in_order(size, log):
    driver   = FakeDriver()
    options  = ImportOptions(ownership=True, rights=True)
    importer = SqlImporter(driver, options, log)

    result = run_chunks(importer, SCRIPT, size)

    assert driver.executed == [
        "SET search_path TO app;",
        "CREATE TABLE t (id int);",
        "COPY t (id) FROM stdin;\n1\n\\.",
        "ALTER TABLE t OWNER TO alice;",
        "GRANT SELECT ON t TO bob;",
        "SET ROLE alice;",
    ]
    assert result.ok
    assert result.statements == 10
    assert result.executed == 6
    assert importer.session.current_schema == "app"
    assert importer.session.deferred == []
    assert any("임포트 완료" in message for message in log.tags("INFO"))


def test_abort_mode_stops_at_first_failure():
    driver   = FakeDriver().fail_on("CREATE TABLE bad", "syntax error")
    importer = SqlImporter(driver, ImportOptions(error_mode=ErrorMode.ABORT, ownership=True))

    assert not importer.feed(
        "ALTER TABLE t OWNER TO alice;\nCREATE TABLE bad (;\nCREATE TABLE good (id int);\n"
    )
    result = importer.finish()

    assert result.aborted
    assert not result.ok
    assert result.failed == 1
    assert result.errors == ["syntax error"]
    assert driver.executed == ["CREATE TABLE bad (;"]
    assert importer.session.ownership_queue == ["ALTER TABLE t OWNER TO alice;"]
    assert not importer.feed("CREATE TABLE later ();\n")
    assert result.summary.startswith("[중단] ")


def test_continue_mode_records_failure_and_proceeds():
    driver   = FakeDriver().fail_on("CREATE TABLE bad", "syntax error")
    importer = SqlImporter(driver, ImportOptions(error_mode=ErrorMode.CONTINUE))

    importer.feed("CREATE TABLE bad (;\nCREATE TABLE good (id int);\n")
    result = importer.finish()

    assert not result.aborted
    assert result.failed == 1
    assert result.executed == 1
    assert driver.executed[-1] == "CREATE TABLE good (id int);"


def test_failure_in_queue_flush_honours_abort():
    driver   = FakeDriver().fail_on("OWNER TO", "must be owner")
    importer = SqlImporter(driver, ImportOptions(ownership=True, rights=True))

    importer.feed("GRANT SELECT ON t TO bob;\nALTER TABLE t OWNER TO alice;\n")
    result = importer.finish()

    assert result.aborted
    assert driver.executed == ["ALTER TABLE t OWNER TO alice;"]


def test_trailing_statement_without_semicolon_runs_at_finish():
    driver   = FakeDriver()
    importer = SqlImporter(driver, ImportOptions())
    importer.feed("CREATE TABLE a ();\nCREATE TABLE b ()")
    assert driver.executed == ["CREATE TABLE a ();"]
    importer.finish()
    assert driver.executed == ["CREATE TABLE a ();", "CREATE TABLE b ()"]


def test_unterminated_copy_block_warned_and_dropped():
    driver   = FakeDriver()
    importer = SqlImporter(driver, ImportOptions())
    importer.feed("COPY t (id) FROM stdin;\n1\n2\n")
    importer.finish()

    assert driver.executed == []
    assert importer.log.count("warning") == 1


def test_reconnect_replays_cached_settings():
    first    = FakeDriver()
    importer = SqlImporter(first, ImportOptions())
    importer.feed("SET search_path TO app;\nSET client_encoding = 'UTF8';\nSET search_path TO app;\n")

    second = FakeDriver()
    assert importer.reconnect(second) == 0
    assert second.executed == ["SET search_path TO app;", "SET client_encoding = 'UTF8';"]

    importer.feed("CREATE TABLE x ();\n")
    assert second.executed[-1] == "CREATE TABLE x ();"
    assert "CREATE TABLE x ();" not in first.executed


def test_run_file_detects_cp949(tmp_path):
    path = tmp_path / "dump.sql"
    path.write_bytes("INSERT INTO t VALUES ('한글');\n".encode("cp949"))

    assert detect_encoding(str(path)) == "cp949"

    driver = FakeDriver()
    result = SqlImporter(driver, ImportOptions()).run_file(str(path))
    assert result.ok
    assert driver.executed == ["INSERT INTO t VALUES ('한글');"]


def test_run_file_reads_gzip_and_strips_bom(tmp_path):
    path = tmp_path / "dump.sql.gz"
    with gzip.open(path, "wb") as f:
        f.write("\ufeffCREATE TABLE t ();\n".encode("utf-8"))

    driver = FakeDriver()
    SqlImporter(driver, ImportOptions()).run_file(str(path))
    assert driver.executed == ["CREATE TABLE t ();"]


def test_run_file_missing_file(tmp_path):
    importer = SqlImporter(FakeDriver(), ImportOptions())
    result   = importer.run_file(str(tmp_path / "missing.sql"))
    assert result.aborted
    assert importer.log.count("error") == 1

    with pytest.raises(ImportAbortedError) as info:
        SqlImporter(FakeDriver(), ImportOptions()).run_file(str(tmp_path / "missing.sql"), raise_on_abort=True)
    assert info.value.result.aborted
