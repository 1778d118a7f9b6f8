"""
스키마 / 데이터베이스 덤프 오케스트레이터.

pg_dump 바이너리 없이 카탈로그 조회만으로 의존성 순서가 맞는 SQL 스크립트를 만든다.

스키마 하나의 출력 순서:
    1. CREATE SCHEMA (public 제외), 주석, 권한
    2. 시퀀스 (테이블 기본값이 참조하므로 먼저)
    3. 타입 / 도메인 / 함수 / 테이블 / 뷰 : 의존성 그래프 위상 정렬 순서
    4. 집계 함수
    5. 지연 큐 : 외래키, 지연 기본값, 트리거, 룰, 구체화 뷰 REFRESH

데이터베이스 덤프 출력 순서:
    1. 머리말 (SET client_encoding / standard_conforming_strings /
       check_function_bodies / search_path)
    2. 롤 (요청 시)
    3. 사용자 스키마 CREATE SCHEMA
    4. 확장 (plpgsql 제외)
    5. 스키마별 객체 (3번 목록 순서)
    6. 지연 큐 (모든 스키마 공통, 마지막에 한 번)

사용처:
    - 외부 호출자 : DatabaseDumper(driver, writer, log).dump({}, DumpOptions())
"""

import datetime
from typing import Any, Dict, List, Optional

from config import APP_NAME, APP_VERSION
from models.dump_options import DumpOptions
from models.object_node  import ObjectNode
from services.connection_service import list_user_schemas
from services.dependency_graph   import DependencyGraph
from services.dump.base_dumper   import BaseDumper, DumpQueues
from services.dump.dump_factory  import DumpFactory, ObjectKind


_OBJECTS_SQL = """
    SELECT oid, name, node_kind
    FROM (
        SELECT t.oid::text AS oid, t.typname AS name,
               CASE t.typtype WHEN 'd' THEN 'domain' ELSE 'type' END AS node_kind,
               CASE t.typtype WHEN 'd' THEN 1 ELSE 0 END             AS rank
        FROM   pg_catalog.pg_type t
        JOIN   pg_catalog.pg_namespace n ON n.oid = t.typnamespace
        WHERE  n.nspname = %(schema)s
        AND    t.typtype IN ('e', 'c', 'b', 'd')
        AND    (t.typrelid = 0 OR (SELECT c.relkind FROM pg_catalog.pg_class c
                                   WHERE c.oid = t.typrelid) = 'c')
        AND    NOT EXISTS (SELECT 1 FROM pg_catalog.pg_type el
                           WHERE el.oid = t.typelem AND el.typarray = t.oid)
        AND    NOT EXISTS (SELECT 1 FROM pg_catalog.pg_depend d
                           WHERE d.objid = t.oid AND d.deptype = 'e')
        UNION ALL
        SELECT p.oid::text, p.proname, 'function', 2
        FROM   pg_catalog.pg_proc p
        JOIN   pg_catalog.pg_namespace n ON n.oid = p.pronamespace
        WHERE  n.nspname = %(schema)s
        AND    {not_aggregate}
        AND    NOT EXISTS (SELECT 1 FROM pg_catalog.pg_depend d
                           WHERE d.objid = p.oid AND d.deptype = 'e')
        UNION ALL
        SELECT c.oid::text, c.relname,
               CASE c.relkind WHEN 'r' THEN 'table' ELSE 'view' END,
               CASE c.relkind WHEN 'r' THEN 3 ELSE 4 END
        FROM   pg_catalog.pg_class c
        JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
        WHERE  n.nspname = %(schema)s
        AND    c.relkind IN ('r', 'v', 'm')
        AND    {not_partition}
        AND    NOT EXISTS (SELECT 1 FROM pg_catalog.pg_depend d
                           WHERE d.objid = c.oid AND d.deptype = 'e')
    ) objects
    ORDER  BY rank, name, oid
"""

# pg_depend 항목을 소유 객체 단위로 접는다.
#   컬럼 기본값(pg_attrdef), 뷰 룰(pg_rewrite), 제약조건(pg_constraint) -> 소속 테이블 / 도메인
#   복합 타입의 pg_class 행 -> 해당 pg_type
#   테이블 행 타입 -> 테이블, 배열 타입 -> 원소 타입
_DEPENDENCIES_SQL = """
    SELECT DISTINCT dependent_oid::text AS dependent_oid,
                    referenced_oid::text AS referenced_oid
    FROM (
        SELECT CASE d.classid
                   WHEN 'pg_catalog.pg_attrdef'::pg_catalog.regclass THEN
                       (SELECT ad.adrelid FROM pg_catalog.pg_attrdef ad WHERE ad.oid = d.objid)
                   WHEN 'pg_catalog.pg_rewrite'::pg_catalog.regclass THEN
                       (SELECT r.ev_class FROM pg_catalog.pg_rewrite r WHERE r.oid = d.objid)
                   WHEN 'pg_catalog.pg_constraint'::pg_catalog.regclass THEN
                       (SELECT CASE WHEN con.conrelid <> 0 THEN con.conrelid ELSE con.contypid END
                        FROM pg_catalog.pg_constraint con WHERE con.oid = d.objid)
                   WHEN 'pg_catalog.pg_class'::pg_catalog.regclass THEN
                       COALESCE((SELECT c.reltype FROM pg_catalog.pg_class c
                                 WHERE c.oid = d.objid AND c.relkind = 'c'), d.objid)
                   ELSE d.objid
               END AS dependent_oid,
               CASE WHEN d.refclassid = 'pg_catalog.pg_type'::pg_catalog.regclass THEN
                       COALESCE(
                           (SELECT c.oid FROM pg_catalog.pg_type t
                            JOIN pg_catalog.pg_class c ON c.oid = t.typrelid
                            WHERE t.oid = d.refobjid AND c.relkind IN ('r', 'v', 'm')),
                           (SELECT el.oid FROM pg_catalog.pg_type el
                            WHERE el.typarray = d.refobjid),
                           d.refobjid)
                    ELSE d.refobjid
               END AS referenced_oid
        FROM   pg_catalog.pg_depend d
        WHERE  d.deptype = 'n'
        AND    d.classid IN ('pg_catalog.pg_class'::pg_catalog.regclass,
                             'pg_catalog.pg_type'::pg_catalog.regclass,
                             'pg_catalog.pg_proc'::pg_catalog.regclass,
                             'pg_catalog.pg_attrdef'::pg_catalog.regclass,
                             'pg_catalog.pg_rewrite'::pg_catalog.regclass,
                             'pg_catalog.pg_constraint'::pg_catalog.regclass)
        AND    d.refclassid IN ('pg_catalog.pg_class'::pg_catalog.regclass,
                                'pg_catalog.pg_type'::pg_catalog.regclass,
                                'pg_catalog.pg_proc'::pg_catalog.regclass)
    ) deps
    WHERE  dependent_oid IS NOT NULL
    AND    dependent_oid <> referenced_oid
"""


def session_search_path(driver) -> str:
    """
    덤프 세션의 search_path를 SET 구문용 문자열로 반환한다.

    pg_get_expr / pg_get_viewdef 는 이 경로에 보이는 객체를 스키마 없이 출력하므로,
    복원 시에도 같은 경로를 설정해야 이름이 같은 객체로 해석된다.

    @returns 예: "public, pg_catalog"
    """
    rs = driver.select_set(
        """
        SELECT pg_catalog.array_to_string(
                   ARRAY(SELECT pg_catalog.quote_ident(s)
                         FROM   pg_catalog.unnest(pg_catalog.current_schemas(false)) s),
                   ', ') AS search_path
        """
    )
    row = rs.first() if rs is not None else None
    path = row["search_path"] if row else ""
    return f"{path}, pg_catalog" if path else "pg_catalog"


def write_preamble(writer, driver, title: str) -> None:
    """덤프 머리 주석과 세션 설정 구문을 출력한다."""
    writer.write(f"-- {title}\n")
    writer.write(f"-- Generated by {APP_NAME} {APP_VERSION}\n")
    writer.write(f"-- Generated: {datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
    writer.write(f"-- Server version: {driver.server_version}\n\n")
    writer.write("SET client_encoding = 'UTF8';\n")
    writer.write("SET standard_conforming_strings = on;\n")
    writer.write("SET check_function_bodies = false;\n")
    writer.write("SET client_min_messages = warning;\n")
    writer.write(f"SET search_path = {session_search_path(driver)};\n")


class SchemaDumper(BaseDumper):
    """
    스키마 하나의 모든 객체를 의존성 순서대로 덤프한다.

    하위 Dumper는 parent=self 로 생성되어 queues / graph 를 공유한다.

    내부 상태:
        _queues : 지연 구문 큐 (DatabaseDumper가 넘겨주면 여러 스키마가 공유)
        _graph  : 현재 스키마의 의존성 그래프 (스키마마다 새로 생성)

    @example
        SchemaDumper(driver, writer, log).dump({"schema": "sales"}, DumpOptions(clean=True))
    """

    def __init__(self, driver, writer, log=None, parent=None, queues: Optional[DumpQueues] = None):
        super().__init__(driver, writer, log, parent)
        self._queues = queues if queues is not None else DumpQueues()
        self._graph: Optional[DependencyGraph] = None

    @property
    def queues(self) -> DumpQueues:
        return self._queues

    @property
    def graph(self) -> Optional[DependencyGraph]:
        return self._graph

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        """
        스키마를 단독으로 덤프한다 (머리말 + 객체 + 지연 큐).

        @param params   {"schema": 스키마명}
        @param options  덤프 옵션
        """
        schema = params.get("schema")
        if not schema:
            return
        write_preamble(self._writer, self._driver, f"PostgreSQL schema dump: {schema}")
        if options.include_structure:
            if not self.write_schema_definition(schema, options):
                return
        self.dump_objects(schema, options)
        self.flush_queues()

    # ==================================================================
    # 스키마 정의
    # ==================================================================

    def write_schema_definition(self, schema: str, options: DumpOptions) -> bool:
        """
        CREATE SCHEMA, 주석, 권한을 출력한다.

        @returns 스키마가 존재하면 True
        """
        info = self.fetch_row(
            """
            SELECT n.nspacl,
                   pg_catalog.pg_get_userbyid(n.nspowner)             AS owner,
                   pg_catalog.obj_description(n.oid, 'pg_namespace')  AS comment
            FROM   pg_catalog.pg_namespace n
            WHERE  n.nspname = %s
            """,
            (schema,),
            f"스키마 {schema}",
        )
        if info is None:
            return False

        quoted = self.quote(schema)
        self.write(f"\n-- Schema: {quoted}\n\n")
        # public 스키마는 기본 존재하므로 CREATE SCHEMA 생략
        if schema != "public":
            self.write_drop("SCHEMA", quoted, options)
            self.write(f"CREATE SCHEMA {self.if_not_exists(options, since=9.3)}{quoted};\n")
        self.write_comment("SCHEMA", quoted, info["comment"], options)
        self.write_privileges("SCHEMA", quoted, info["nspacl"], info["owner"])
        return True

    # ==================================================================
    # 객체 덤프
    # ==================================================================

    def dump_objects(self, schema: str, options: DumpOptions) -> None:
        """
        스키마의 시퀀스, 그래프 정렬 객체, 집계 함수를 출력한다.

        지연 큐는 비우지 않는다. 호출자가 flush_queues()를 호출해야 한다.
        """
        self.write(f"\n-- ###########################################################\n")
        self.write(f"-- SCHEMA: {schema}\n")
        self.write(f"-- ###########################################################\n")

        for name in self._list_names(
            """
            SELECT c.relname AS name
            FROM   pg_catalog.pg_class c
            JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE  n.nspname = %s
            AND    c.relkind = 'S'
            AND    NOT EXISTS (SELECT 1 FROM pg_catalog.pg_depend d
                               WHERE d.objid = c.oid AND d.deptype = 'e')
            ORDER  BY c.relname
            """,
            schema,
            "시퀀스 목록",
        ):
            self._create(ObjectKind.SEQUENCE).dump({"schema": schema, "sequence": name}, options)

        self._graph = self.build_graph(schema)
        if self._graph is None:
            return

        circular = {node.oid for node in self._graph.get_circular_nodes()}
        if circular:
            for cycle in self._graph.find_cycles():
                self._log("WARN", "순환 의존성: " + " -> ".join(n.qualified_name for n in cycle))

        table_count = 0
        for node in self._graph.topological_sort():
            kind = DumpFactory.resolve(node.type)
            if kind is not ObjectKind.TABLE and not options.include_structure:
                continue
            if node.oid in circular:
                self._log("WARN", f"순환 의존성 노드를 등록 순서대로 출력합니다: {node}")
            self._create(kind).dump(self._node_params(kind, node), options)
            if kind is ObjectKind.TABLE:
                table_count += 1

        if options.include_structure:
            for oid in self._list_names(
                f"""
                SELECT p.oid::text AS name
                FROM   pg_catalog.pg_proc p
                JOIN   pg_catalog.pg_namespace n ON n.oid = p.pronamespace
                WHERE  n.nspname = %s
                AND    {self._aggregate_filter(True)}
                AND    NOT EXISTS (SELECT 1 FROM pg_catalog.pg_depend d
                                   WHERE d.objid = p.oid AND d.deptype = 'e')
                ORDER  BY p.proname, p.oid
                """,
                schema,
                "집계 함수 목록",
            ):
                self._create(ObjectKind.AGGREGATE).dump({"aggregate_oid": oid}, options)

        self._log("OK", f"스키마 {schema} 덤프 완료 (객체 {len(self._graph)}개, 테이블 {table_count}개)")

    def build_graph(self, schema: str) -> Optional[DependencyGraph]:
        """
        스키마의 타입 / 도메인 / 함수 / 테이블 / 뷰로 의존성 그래프를 만든다.

        노드 등록 순서는 (종류 순위, 이름) 이므로 의존 관계가 없는 객체끼리는
        타입 -> 도메인 -> 함수 -> 테이블 -> 뷰 순서로 출력된다.

        @param schema  스키마명
        @returns       DependencyGraph, 조회 실패 시 None
        """
        sql = _OBJECTS_SQL.format(
            not_aggregate = self._aggregate_filter(False),
            not_partition = "NOT c.relispartition" if self.server_version >= 10 else "true",
        )
        rows = self.fetch_rows(sql, {"schema": schema}, f"스키마 {schema} 객체 목록")
        if rows is None:
            return None

        graph = DependencyGraph()
        for row in rows:
            graph.add_node(ObjectNode(str(row["oid"]), row["node_kind"], row["name"], schema))

        if len(graph) == 0:
            return graph

        deps = self.fetch_rows(_DEPENDENCIES_SQL, None, "객체 의존성")
        if deps is None:
            return None
        for dep in deps:
            dependent, referenced = str(dep["dependent_oid"]), str(dep["referenced_oid"])
            # 다른 스키마의 객체나 그래프 밖 객체에 대한 의존은 무시한다
            if dependent in graph and referenced in graph:
                graph.add_edge(dependent, referenced)
        return graph

    def flush_queues(self) -> None:
        """지연 큐의 구문을 섹션별로 출력하고 비운다."""
        for title, statements in self._queues.sections():
            if not statements:
                continue
            self.write(f"\n-- {title}\n\n")
            for statement in statements:
                self.write(statement)
        self._queues.clear()

    # ==================================================================
    # 내부 헬퍼
    # ==================================================================

    def _create(self, kind: ObjectKind) -> BaseDumper:
        return DumpFactory.create(kind, self._driver, self._writer, self._log, parent=self)

    def _list_names(self, sql: str, schema: str, what: str) -> List[str]:
        rows = self.fetch_rows(sql, (schema,), what)
        return [row["name"] for row in rows or []]

    def _aggregate_filter(self, aggregate: bool) -> str:
        if self.server_version >= 11:
            return "p.prokind = 'a'" if aggregate else "p.prokind <> 'a'"
        return "p.proisagg" if aggregate else "NOT p.proisagg"

    @staticmethod
    def _node_params(kind: ObjectKind, node: ObjectNode) -> Dict[str, Any]:
        if kind is ObjectKind.FUNCTION:
            return {"function_oid": node.oid}
        return {"schema": node.schema, kind.value: node.name}


class DatabaseDumper(BaseDumper):
    """
    데이터베이스 전체를 덤프한다.

    지연 큐는 모든 스키마가 공유하고 마지막에 한 번 출력한다.
    다른 스키마의 테이블을 참조하는 외래키나 함수를 호출하는 트리거가
    참조 대상보다 먼저 생성되지 않도록 하기 위함이다.

    @example
        with DumpWriter.open_file("full_dump.sql") as writer:
            DatabaseDumper(driver, writer, log).dump({"roles": True}, DumpOptions())
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        """
        @param params   schemas (선택, 스키마명 리스트), roles (롤 포함 여부)
        @param options  덤프 옵션
        """
        schemas = params.get("schemas")
        if schemas is None:
            try:
                schemas = list_user_schemas(self._driver)
            except RuntimeError as e:
                self._log("ERROR", str(e))
                return
        self._log("INFO", f"대상 스키마 {len(schemas)}개: {', '.join(schemas)}")

        write_preamble(self._writer, self._driver, "PostgreSQL database dump")

        if params.get("roles") and options.include_structure:
            DumpFactory.create(ObjectKind.ROLE, self._driver, self._writer, self._log).dump({}, options)

        schema_dumper = SchemaDumper(self._driver, self._writer, self._log, queues=DumpQueues())

        dumped = []
        for schema in schemas:
            if options.include_structure and not schema_dumper.write_schema_definition(schema, options):
                continue
            dumped.append(schema)

        if options.include_structure:
            self._write_extensions()

        for schema in dumped:
            schema_dumper.dump_objects(schema, options)

        schema_dumper.flush_queues()
        self.write("\n-- Dump completed\n")
        self._log("OK", f"전체 DB 덤프 완료 (스키마 {len(dumped)}개)")

    def _write_extensions(self) -> None:
        rows = self.fetch_rows(
            """
            SELECT e.extname, n.nspname
            FROM   pg_catalog.pg_extension e
            JOIN   pg_catalog.pg_namespace n ON n.oid = e.extnamespace
            WHERE  e.extname <> 'plpgsql'
            ORDER  BY e.extname
            """,
            None,
            "확장 목록",
        )
        if not rows:
            return
        self.write("\n-- Extensions\n\n")
        for row in rows:
            self.write(
                f"CREATE EXTENSION IF NOT EXISTS {self.quote(row['extname'])} "
                f"WITH SCHEMA {self.quote(row['nspname'])};\n"
            )
