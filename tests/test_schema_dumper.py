import gzip
import io

import pytest

from conftest import FakeDriver, Sink

from config import APP_NAME, APP_VERSION
from models.dump_options import DumpOptions
from services.dump.dump_factory import DumpFactory, ObjectKind, UnsupportedObjectKindError
from services.dump.schema_dumper import DatabaseDumper, SchemaDumper, write_preamble
from services.dump.view_dumper import ViewDumper
from services.dump.writer import DumpWriter


SCHEMA_INFO = [{"nspacl": None, "owner": "postgres", "comment": None}]


def schema_driver():
    driver = FakeDriver()
    driver.on("current_schemas", [{"search_path": "app, public"}])
    driver.on("n.nspacl", SCHEMA_INFO)
    driver.on("SELECT c.relname AS name", [{"name": "ids"}])
    driver.on("AS is_identity", [{"oid": 50, "relacl": None, "owner": "postgres", "comment": None, "is_identity": False}])
    driver.on("pg_catalog.pg_sequence", [{
        "start_value": 1, "increment_by": 1, "min_value": 1, "max_value": 100,
        "cache_value": 1, "is_cycled": False,
    }])
    driver.on("SELECT last_value, is_called FROM", [{"last_value": 1, "is_called": False}])
    driver.on("node_kind", [
        {"oid": "1", "name": "mood", "node_kind": "type"},
        {"oid": "2", "name": "f",    "node_kind": "function"},
        {"oid": "3", "name": "t",    "node_kind": "table"},
        {"oid": "4", "name": "v",    "node_kind": "view"},
    ])
    # 함수가 테이블 행 타입을 반환하므로 테이블 뒤로 밀린다
    driver.on("dependent_oid", [
        {"dependent_oid": "2", "referenced_oid": "3"},
        {"dependent_oid": "3", "referenced_oid": "1"},
        {"dependent_oid": "4", "referenced_oid": "3"},
        {"dependent_oid": "4", "referenced_oid": "99999"},
    ])
    driver.on("t.typinput", [{
        "oid": 1, "typname": "mood", "typtype": "e", "typrelid": 0, "typin": "enum_in",
        "typout": "enum_out", "typlen": 4, "typalign": "i", "typstorage": "p",
        "typacl": None, "owner": "postgres", "comment": None,
    }])
    driver.on("pg_catalog.pg_enum", [{"enumlabel": "ok"}])
    driver.on("pg_get_functiondef", [{
        "funcdef": "CREATE OR REPLACE FUNCTION app.f()\n RETURNS SETOF app.t\n LANGUAGE sql\nAS $$select * from app.t$$",
        "funcid": "", "proname": "f", "nspname": "app", "proacl": None, "prokind": "f",
        "owner": "postgres", "comment": None,
    }])
    driver.on("c.relkind = 'r'", [{
        "oid": 3, "relname": "t", "reloptions": None, "relacl": None, "relowner": "postgres", "relcomment": None,
    }])
    driver.on("pg_catalog.pg_attribute a", [{
        "attnum": 1, "attname": "id", "type": "integer", "attnotnull": True, "adsrc": None,
        "attidentity": "", "attgenerated": "", "attstattarget": -1, "attstorage": "p",
        "typstorage": "p", "comment": None, "serial_sequence": None,
    }])
    driver.on("pg_get_constraintdef", [
        {"conname": "t_fk", "contype": "f", "condef": "FOREIGN KEY (id) REFERENCES other.x(id)"},
    ])
    driver.on("pg_catalog.pg_trigger", [
        {"tgname": "trg", "tgdef": "CREATE TRIGGER trg AFTER INSERT ON app.t FOR EACH ROW EXECUTE FUNCTION app.f()"},
    ], times=1)
    driver.on("c.relkind IN ('v', 'm')", [{
        "oid": 4, "relkind": "v", "relacl": None, "definition": "SELECT id FROM app.t;",
        "owner": "postgres", "comment": None,
    }])
    driver.on("SELECT p.oid::text AS name", [{"name": "9"}])
    driver.on("pg_catalog.pg_aggregate a", [{
        "proname": "agg", "nspname": "app", "proacl": None, "args": "integer",
        "aggtransfn": "int4pl", "aggstype": "integer", "aggfinalfn": "-",
        "agginitval": None, "aggsortop": "0", "owner": "postgres", "comment": None,
    }])
    return driver


def positions(text, *markers):
    found = [text.index(marker) for marker in markers]
    assert found == sorted(found), list(zip(markers, found))
    return found


def test_schema_dump_follows_dependency_order(log):
    sink = Sink()
    SchemaDumper(schema_driver(), sink, log).dump({"schema": "app"}, DumpOptions(structure_only=True))
    text = sink.text

    positions(
        text,
        "SET search_path = app, public, pg_catalog;\n",
        'CREATE SCHEMA "app";\n',
        "-- SCHEMA: app\n",
        '-- Sequence: "app"."ids"',
        '-- Type: "app"."mood"',
        '-- Table: "app"."t"',
        '-- Function: "app"."f"()',
        '-- View: "app"."v"',
        '-- Aggregate: "app"."agg"(integer)',
        "\n-- Foreign keys\n\n",
        "\n-- Triggers\n\n",
    )
    assert text.endswith(
        "CREATE TRIGGER trg AFTER INSERT ON app.t FOR EACH ROW EXECUTE FUNCTION app.f();\n"
    )
    assert "-- Dump completed" not in text
    assert any("테이블 1개" in message for message in log.tags("OK"))


def test_data_only_dumps_tables_without_definitions():
    sink = Sink()
    SchemaDumper(schema_driver(), sink).dump({"schema": "app"}, DumpOptions(data_only=True))
    text = sink.text

    assert "CREATE SCHEMA" not in text
    assert '-- Table: "app"."t"' in text
    assert '-- Data for table "app"."t"' in text
    assert "-- Type:" not in text
    assert "-- Function:" not in text
    assert "-- Aggregate:" not in text
    assert "-- Foreign keys" not in text


def test_missing_schema_stops_after_preamble(log):
    driver = FakeDriver()
    sink = Sink()
    SchemaDumper(driver, sink, log).dump({"schema": "ghost"}, DumpOptions())

    assert sink.text.startswith("-- PostgreSQL schema dump: ghost\n")
    assert "-- SCHEMA:" not in sink.text
    assert len(log.tags("WARN")) == 1


def test_build_graph_ignores_objects_outside_schema():
    dumper = SchemaDumper(schema_driver(), Sink())
    graph = dumper.build_graph("app")

    assert len(graph) == 4
    assert "99999" not in graph
    assert [node.name for node in graph.topological_sort()] == ["mood", "t", "f", "v"]


def test_cycles_are_reported_and_still_dumped(log):
    driver = FakeDriver()
    driver.on("n.nspacl", SCHEMA_INFO)
    driver.on("node_kind", [
        {"oid": "1", "name": "a", "node_kind": "view"},
        {"oid": "2", "name": "b", "node_kind": "view"},
    ])
    driver.on("dependent_oid", [
        {"dependent_oid": "1", "referenced_oid": "2"},
        {"dependent_oid": "2", "referenced_oid": "1"},
    ])
    driver.on("c.relkind IN ('v', 'm')", [{
        "oid": 1, "relkind": "v", "relacl": None, "definition": "SELECT 1",
        "owner": "postgres", "comment": None,
    }])
    sink = Sink()

    SchemaDumper(driver, sink, log).dump({"schema": "public"}, DumpOptions())

    assert sink.text.count("CREATE OR REPLACE VIEW") == 2
    assert any("순환 의존성: " in message for message in log.tags("WARN"))


def test_preamble_settings():
    sink = Sink()
    write_preamble(sink, FakeDriver(), "title")
    lines = sink.text.splitlines()

    assert lines[0] == "-- title"
    assert lines[1] == f"-- Generated by {APP_NAME} {APP_VERSION}"
    assert "SET client_encoding = 'UTF8';" in lines
    assert "SET standard_conforming_strings = on;" in lines
    assert lines[-1] == "SET search_path = pg_catalog;"


# ======================================================================
# DatabaseDumper
# ======================================================================

def database_driver():
    driver = FakeDriver()
    driver.on("nspname NOT LIKE", [{"nspname": "public"}, {"nspname": "app"}])
    driver.on("rolcreaterole", [{
        "oid": 10, "rolname": "alice", "rolsuper": False, "rolinherit": True, "rolcreaterole": False,
        "rolcreatedb": False, "rolcanlogin": True, "rolconnlimit": -1, "rolvaliduntil": None,
        "rolreplication": False, "rolbypassrls": False, "comment": None,
    }])
    driver.on("n.nspacl", SCHEMA_INFO)
    driver.on("pg_catalog.pg_extension", [{"extname": "hstore", "nspname": "public"}])
    return driver


def test_database_dump_order(log):
    sink = Sink()
    DatabaseDumper(database_driver(), sink, log).dump({"roles": True}, DumpOptions())
    text = sink.text

    positions(
        text,
        "-- PostgreSQL database dump\n",
        "\n-- Roles\n\n",
        '-- Schema: "public"',
        'CREATE SCHEMA "app";\n',
        'CREATE EXTENSION IF NOT EXISTS "hstore" WITH SCHEMA "public";\n',
        "-- SCHEMA: public\n",
        "-- SCHEMA: app\n",
        "\n-- Dump completed\n",
    )
    assert 'CREATE SCHEMA "public"' not in text
    assert any("public, app" in message for message in log.tags("INFO"))


def test_database_data_only_skips_definitions():
    sink = Sink()
    DatabaseDumper(database_driver(), sink).dump({"roles": True, "schemas": ["app"]}, DumpOptions(data_only=True))
    text = sink.text

    assert "-- Roles" not in text
    assert "-- Extensions" not in text
    assert "CREATE SCHEMA" not in text
    assert "-- SCHEMA: app\n" in text
    assert "-- SCHEMA: public\n" not in text
    assert text.endswith("\n-- Dump completed\n")


def test_database_dump_stops_when_schema_list_fails(log):
    driver = FakeDriver().fail_on("nspname NOT LIKE", "connection lost")
    sink = Sink()
    DatabaseDumper(driver, sink, log).dump({}, DumpOptions())

    assert sink.text == ""
    assert any("connection lost" in message for message in log.tags("ERROR"))


# ======================================================================
# DumpFactory / DumpWriter
# ======================================================================

def test_factory_resolves_kinds():
    assert DumpFactory.resolve("TABLE") is ObjectKind.TABLE
    assert DumpFactory.resolve(ObjectKind.VIEW) is ObjectKind.VIEW
    assert isinstance(DumpFactory.create("view", FakeDriver(), Sink()), ViewDumper)


def test_factory_rejects_unknown_kind():
    with pytest.raises(UnsupportedObjectKindError):
        DumpFactory.create("index", FakeDriver(), Sink())


def test_writer_counts_characters_and_skips_empty():
    stream = io.StringIO()
    writer = DumpWriter(stream)
    writer.write("abc")
    writer.write("")
    writer.write("\n")

    assert stream.getvalue() == "abc\n"
    assert writer.chars_written == 4
    writer.close()
    assert not stream.closed


def test_writer_opens_gzip_file(tmp_path):
    path = tmp_path / "dump.sql.gz"
    with DumpWriter.open_file(str(path), compress=True) as writer:
        writer.write("SELECT 1;\n")

    with gzip.open(path, "rt", encoding="utf-8") as f:
        assert f.read() == "SELECT 1;\n"
