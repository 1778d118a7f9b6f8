"""
테이블 구조 및 데이터 덤프.

출력 순서:
    1. 머리 주석, DROP (clean), CREATE TABLE (컬럼 + NOT NULL + 기본값)
    2. ALTER SEQUENCE ... OWNED BY, 저장 옵션(reloptions), 컬럼별 STATISTICS / STORAGE
    3. COMMENT ON, 권한
    4. 데이터 블록 (COPY 또는 INSERT), IDENTITY 시퀀스 위치 복원
    5. 지연 제약조건 (PK / UNIQUE / CHECK / EXCLUDE), 외래키
    6. 인덱스, 트리거, 룰

NOT NULL 외의 제약조건과 인덱스는 데이터 적재 후에 생성한다.
대량 COPY 중 제약조건 검사를 피하고, 상호 참조하는 외래키의 순서 문제를 없애기 위함이다.
외래키 / 트리거 / 룰은 부모 오케스트레이터가 있으면 스키마 끝으로 미룬다.

시퀀스 기본값 처리:
    pg_get_expr()는 덤프 세션의 search_path에 보이는 시퀀스를 스키마 없이 출력한다.
    복원 시 search_path가 다를 수 있으므로 nextval('seq') 는 항상 스키마를 붙여 다시 쓴다.
    소유 시퀀스는 pg_get_serial_sequence()로, 소유되지 않은 시퀀스는 카탈로그 조회로 찾는다
    (테이블과 같은 스키마를 우선).
"""

import re
from typing import Any, Dict, List, Optional

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper
from services.export.cursor_reader import CursorReader, CursorReaderError, estimate_chunk_size
from services.export.sql_formatter import SqlFormatter


_NEXTVAL_RE = re.compile(r"nextval\('((?:[^']|'')+)'::regclass\)")
_CREATE_INDEX_RE = re.compile(r"^CREATE (UNIQUE )?INDEX ")

STORAGE_NAMES = {
    "p": "PLAIN",
    "e": "EXTERNAL",
    "m": "MAIN",
    "x": "EXTENDED",
}

DEFERRED_CONSTRAINT_TYPES = ("p", "u", "c", "x")


def _is_qualified(name: str) -> bool:
    """따옴표 밖에 '.' 이 있으면 스키마가 붙은 이름이다."""
    in_quotes = False
    for ch in name:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "." and not in_quotes:
            return True
    return False


def _unquote(name: str) -> str:
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        return name[1:-1].replace('""', '"')
    return name


class TableDumper(BaseDumper):
    """
    테이블 하나를 덤프한다.

    params:
        schema : 스키마명
        table  : 테이블명

    @example
        TableDumper(driver, writer, log).dump({"schema": "public", "table": "users"}, options)
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        schema = params.get("schema")
        table  = params.get("table")
        if not schema or not table:
            return

        qualified = self.qualified(schema, table)
        info = self.fetch_row(
            """
            SELECT c.oid, c.relname, c.reloptions, c.relacl,
                   pg_catalog.pg_get_userbyid(c.relowner)       AS relowner,
                   pg_catalog.obj_description(c.oid, 'pg_class') AS relcomment
            FROM   pg_catalog.pg_class c
            JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE  n.nspname = %s
            AND    c.relname = %s
            AND    c.relkind = 'r'
            """,
            (schema, table),
            f"테이블 {qualified}",
        )
        if info is None:
            return
        oid = str(info["oid"])

        columns = self._fetch_columns(oid, qualified)
        if columns is None:
            return

        # 구조 출력에 필요한 카탈로그는 출력 전에 모두 조회한다
        constraints = indexes = triggers = rules = None
        if options.include_structure:
            constraints = self.fetch_rows(
                """
                SELECT conname, contype,
                       pg_catalog.pg_get_constraintdef(oid, true) AS condef
                FROM   pg_catalog.pg_constraint
                WHERE  conrelid = %s
                AND    contype IN ('p', 'u', 'c', 'f', 'x')
                AND    conislocal
                ORDER  BY CASE contype
                              WHEN 'p' THEN 0 WHEN 'u' THEN 1 WHEN 'c' THEN 2
                              WHEN 'x' THEN 3 ELSE 4
                          END, conname
                """,
                (oid,),
                f"{qualified} 제약조건",
            )
            indexes  = self._fetch_indexes(oid, qualified)
            triggers = self.collect_triggers(oid, options)
            rules    = self.collect_rules(oid)
            if None in (constraints, indexes, triggers, rules):
                return

        self.write(f"\n-- Table: {qualified}\n\n")

        if options.include_structure:
            self._write_structure(schema, qualified, oid, info, columns, options)

        if options.include_data:
            self._write_data(oid, qualified, columns, options)
            self._write_identity_positions(qualified, columns)

        if options.include_structure:
            self._write_constraints(qualified, constraints)
            if indexes:
                self.write("\n-- Indexes\n\n")
                for row in indexes:
                    self.write(self._index_statement(row["inddef"], options))
            self.emit_or_queue("triggers", "Triggers", triggers)
            self.emit_or_queue("rules", "Rules", rules)

    # ==================================================================
    # 카탈로그 조회
    # ==================================================================

    def _fetch_columns(self, oid: str, qualified: str) -> Optional[List[Dict[str, Any]]]:
        identity  = "a.attidentity"  if self.server_version >= 10 else "''"
        generated = "a.attgenerated" if self.server_version >= 12 else "''"
        return self.fetch_rows(
            f"""
            SELECT a.attnum, a.attname,
                   pg_catalog.format_type(a.atttypid, a.atttypmod)   AS type,
                   a.attnotnull,
                   pg_catalog.pg_get_expr(d.adbin, d.adrelid)        AS adsrc,
                   {identity}                                        AS attidentity,
                   {generated}                                       AS attgenerated,
                   a.attstattarget, a.attstorage, t.typstorage,
                   pg_catalog.col_description(a.attrelid, a.attnum)  AS comment,
                   pg_catalog.pg_get_serial_sequence(%s, a.attname)  AS serial_sequence
            FROM   pg_catalog.pg_attribute a
            JOIN   pg_catalog.pg_type t ON t.oid = a.atttypid
            LEFT   JOIN pg_catalog.pg_attrdef d
                   ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE  a.attrelid = %s
            AND    a.attnum > 0
            AND    NOT a.attisdropped
            ORDER  BY a.attnum
            """,
            (qualified, oid),
            f"{qualified} 컬럼",
        )

    def _fetch_indexes(self, oid: str, qualified: str) -> Optional[List[Dict[str, Any]]]:
        # 제약조건이 소유한 인덱스(PK / UNIQUE / EXCLUDE)는 제약조건과 함께 생성된다
        return self.fetch_rows(
            """
            SELECT ic.relname AS indname,
                   pg_catalog.pg_get_indexdef(i.indexrelid) AS inddef
            FROM   pg_catalog.pg_index i
            JOIN   pg_catalog.pg_class ic ON ic.oid = i.indexrelid
            WHERE  i.indrelid = %s
            AND    NOT EXISTS (
                       SELECT 1 FROM pg_catalog.pg_constraint con
                       WHERE  con.conindid = i.indexrelid
                       AND    con.contype IN ('p', 'u', 'x')
                   )
            ORDER  BY ic.relname
            """,
            (oid,),
            f"{qualified} 인덱스",
        )

    def _deferred_default_columns(self, oid: str) -> set:
        """
        뒤에 출력될 함수를 기본값에서 호출하는 컬럼 번호 집합.

        부모 오케스트레이터의 의존성 그래프가 있을 때만 판단한다.
        """
        graph = self.graph
        if graph is None or oid not in graph:
            return set()
        rows = self.fetch_rows(
            """
            SELECT ad.adnum, d.refobjid::text AS function_oid
            FROM   pg_catalog.pg_attrdef ad
            JOIN   pg_catalog.pg_depend d
                   ON  d.classid    = 'pg_catalog.pg_attrdef'::pg_catalog.regclass
                   AND d.objid      = ad.oid
                   AND d.refclassid = 'pg_catalog.pg_proc'::pg_catalog.regclass
            WHERE  ad.adrelid = %s
            """,
            (oid,),
            "컬럼 기본값 의존 함수",
        ) or []
        return {
            int(row["adnum"])
            for row in rows
            if graph.should_defer(oid, str(row["function_oid"]))
        }

    def _lookup_sequence(self, name: str, schema: str) -> Optional[str]:
        row = self.fetch_row(
            """
            SELECT n.nspname
            FROM   pg_catalog.pg_class c
            JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE  c.relkind = 'S'
            AND    c.relname = %s
            ORDER  BY n.nspname = %s DESC, n.nspname
            LIMIT  1
            """,
            (name, schema),
            f"시퀀스 {name}",
        )
        if row is None:
            return None
        return self.qualified(row["nspname"], name)

    # ==================================================================
    # 구조
    # ==================================================================

    def _write_structure(
        self,
        schema:    str,
        qualified: str,
        oid:       str,
        info:      Dict[str, Any],
        columns:   List[Dict[str, Any]],
        options:   DumpOptions,
    ) -> None:
        deferred_columns = self._deferred_default_columns(oid)

        self.write("-- Definition\n\n")
        self.write_drop("TABLE", qualified, options)
        self.write(f"CREATE TABLE {self.if_not_exists(options)}{qualified} (\n")

        definitions = []
        owned_by    = []
        for col in columns:
            name    = self.quote(col["attname"])
            default = col["adsrc"]
            parts   = [name, col["type"]]

            generated = col.get("attgenerated") or ""
            identity  = col.get("attidentity") or ""
            if generated:
                kind = "STORED" if generated == "s" else "VIRTUAL"
                parts.append(f"GENERATED ALWAYS AS ({default}) {kind}")
                default = None
            elif identity:
                parts.append(
                    "GENERATED ALWAYS AS IDENTITY" if identity == "a"
                    else "GENERATED BY DEFAULT AS IDENTITY"
                )
                default = None
            elif col.get("serial_sequence"):
                owned_by.append(
                    f"ALTER SEQUENCE {col['serial_sequence']} OWNED BY {qualified}.{name};\n"
                )

            if col["attnotnull"]:
                parts.append("NOT NULL")

            if default is not None:
                default = self._qualify_nextval(default, col, schema)
                if int(col["attnum"]) in deferred_columns:
                    self.queues.defaults.append(
                        f"ALTER TABLE ONLY {qualified} ALTER COLUMN {name} SET DEFAULT {default};\n"
                    )
                else:
                    parts.append(f"DEFAULT {default}")

            definitions.append("    " + " ".join(parts))

        self.write(",\n".join(definitions))
        self.write("\n);\n")

        for statement in owned_by:
            self.write(statement)

        if info.get("reloptions"):
            self.write(f"ALTER TABLE ONLY {qualified} SET ({', '.join(info['reloptions'])});\n")

        self._write_column_settings(qualified, columns)
        self._write_comments(qualified, info, columns, options)
        self.write_privileges("TABLE", qualified, info["relacl"], info["relowner"])
        self.write("\n")

    def _qualify_nextval(self, expression: str, col: Dict[str, Any], schema: str) -> str:
        """nextval('seq') 의 시퀀스 이름에 스키마를 붙인다."""
        def replace(match):
            name = match.group(1).replace("''", "'")
            if _is_qualified(name):
                return match.group(0)
            target = col.get("serial_sequence") or self._lookup_sequence(_unquote(name), schema)
            if target is None:
                self._log("WARN", f"시퀀스 {name} 의 스키마를 확인할 수 없어 그대로 출력합니다.")
                return match.group(0)
            return f"nextval({self.literal(target)}::regclass)"

        return _NEXTVAL_RE.sub(replace, expression)

    def _write_column_settings(self, qualified: str, columns: List[Dict[str, Any]]) -> None:
        first = True
        for col in columns:
            name = self.quote(col["attname"])
            statements = []

            target = col.get("attstattarget")
            if target is not None and str(target) != "" and int(target) >= 0:
                statements.append(
                    f"ALTER TABLE ONLY {qualified} ALTER COLUMN {name} SET STATISTICS {int(target)};\n"
                )

            storage = col.get("attstorage")
            if storage and storage != col.get("typstorage"):
                storage_name = STORAGE_NAMES.get(storage)
                if storage_name is None:
                    self._log("WARN", f"알 수 없는 저장 방식 {storage!r}: {qualified}.{name}")
                else:
                    statements.append(
                        f"ALTER TABLE ONLY {qualified} ALTER COLUMN {name} SET STORAGE {storage_name};\n"
                    )

            if statements and first:
                self.write("\n")
                first = False
            for statement in statements:
                self.write(statement)

    def _write_comments(
        self,
        qualified: str,
        info:      Dict[str, Any],
        columns:   List[Dict[str, Any]],
        options:   DumpOptions,
    ) -> None:
        if not options.include_comments:
            return
        has_comment = info.get("relcomment") is not None or any(
            col.get("comment") is not None for col in columns
        )
        if not has_comment:
            return
        self.write("\n-- Comment\n\n")
        self.write_comment("TABLE", qualified, info.get("relcomment"), options)
        for col in columns:
            self.write_comment(
                "COLUMN", f"{qualified}.{self.quote(col['attname'])}", col.get("comment"), options
            )

    def _write_constraints(self, qualified: str, constraints: List[Dict[str, Any]]) -> None:
        deferred = [c for c in constraints if c["contype"] in DEFERRED_CONSTRAINT_TYPES]
        foreign  = [c for c in constraints if c["contype"] == "f"]

        if deferred:
            self.write("\n-- Constraints\n\n")
            for con in deferred:
                self.write(self._constraint_statement(qualified, con))

        self.emit_or_queue(
            "foreign_keys",
            "Foreign keys",
            [self._constraint_statement(qualified, con) for con in foreign],
        )

    def _constraint_statement(self, qualified: str, con: Dict[str, Any]) -> str:
        return (
            f"ALTER TABLE ONLY {qualified} "
            f"ADD CONSTRAINT {self.quote(con['conname'])} {con['condef']};\n"
        )

    def _index_statement(self, definition: str, options: DumpOptions) -> str:
        if options.if_not_exists and self.server_version >= 9.5:
            definition = _CREATE_INDEX_RE.sub(
                lambda m: f"CREATE {m.group(1) or ''}INDEX IF NOT EXISTS ", definition, count=1
            )
        return f"{definition};\n"

    # ==================================================================
    # 데이터
    # ==================================================================

    def _write_data(
        self,
        oid:       str,
        qualified: str,
        columns:   List[Dict[str, Any]],
        options:   DumpOptions,
    ) -> None:
        # 생성 컬럼은 입력할 수 없으므로 제외한다
        names = [self.quote(col["attname"]) for col in columns if not col.get("attgenerated")]
        if not names:
            return

        self.write(f"\n-- Data for table {qualified}\n\n")
        metadata = {
            "table":                   qualified,
            "insert_format":           options.insert_format,
            "batch_size":              options.batch_size,
            "overriding_system_value": any(col.get("attidentity") == "a" for col in columns),
        }
        sql = f"SELECT {', '.join(names)} FROM ONLY {qualified}"
        try:
            with CursorReader(
                self._driver,
                sql,
                chunk_size = estimate_chunk_size(self._driver, oid),
                log        = self._log,
            ) as reader:
                count = reader.read(SqlFormatter(self._writer, self._driver), metadata)
            self._log("OK", f"{qualified}: {count}건 데이터 덤프")
        except CursorReaderError as e:
            self.write(f"-- Error dumping data: {e}\n")
            self._log("ERROR", f"{qualified} 데이터 덤프 실패: {e}")

    def _write_identity_positions(self, qualified: str, columns: List[Dict[str, Any]]) -> None:
        """IDENTITY 컬럼 시퀀스의 현재 위치를 복원하는 setval을 출력한다."""
        for col in columns:
            if not col.get("attidentity") or not col.get("serial_sequence"):
                continue
            row = self.fetch_row(
                f"SELECT last_value, is_called FROM {col['serial_sequence']}",
                None,
                f"IDENTITY 시퀀스 {col['serial_sequence']}",
            )
            if row is None:
                continue
            self.write(
                f"SELECT pg_catalog.setval(pg_catalog.pg_get_serial_sequence("
                f"{self.literal(qualified)}, {self.literal(col['attname'])}), "
                f"{row['last_value']}, {'true' if row['is_called'] else 'false'});\n"
            )
