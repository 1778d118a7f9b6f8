import re

from services.importer.import_log import ImportLog, preview


def test_entries_forwarded_with_tags(log):
    import_log = ImportLog(log)
    import_log.executed("실행", "CREATE TABLE t ();")
    import_log.blocked("DROP 문은 허용되지 않습니다.", "DROP TABLE t;", "drops_not_allowed")
    import_log.deferred("지연", "SET ROLE alice;")
    import_log.error("실패", "BAD;")

    assert log.records == [
        ("OK", "실행: CREATE TABLE t ();"),
        ("WARN", "DROP 문은 허용되지 않습니다.: DROP TABLE t;"),
        ("INFO", "지연: SET ROLE alice;"),
        ("ERROR", "실패: BAD;"),
    ]
    assert import_log.entries[1].reason == "drops_not_allowed"
    assert import_log.summary() == {"executed": 1, "blocked": 1, "deferred": 1, "error": 1}


def test_preview_folds_whitespace_and_truncates():
    assert preview("SELECT\n   1,\t2") == "SELECT 1, 2"
    assert preview("x" * 10, limit=4) == "xxxx..."
    assert preview(None) == ""


def test_render_and_export(tmp_path):
    import_log = ImportLog()
    import_log.info("시작")
    import_log.warning("주의")

    rendered = import_log.render().splitlines()
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \[INFO \] 시작", rendered[0])
    assert rendered[1].endswith("[WARN ] 주의")

    path = tmp_path / "log.txt"
    import_log.export(str(path))
    assert path.read_text(encoding="utf-8") == import_log.render()

    import_log.clear()
    assert import_log.count("info") == 0
    assert ImportLog.default_export_name().startswith("import_log_")
