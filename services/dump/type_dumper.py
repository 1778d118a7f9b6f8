"""
사용자 정의 타입 덤프.

typtype 별로 CREATE TYPE 문법이 다르다:
    e (enum)      : CREATE TYPE ... AS ENUM ('a', 'b')
    c (composite) : CREATE TYPE ... AS (col type, ...)
    b (base)      : CREATE TYPE ... (INPUT = ..., OUTPUT = ..., ...)
그 밖의 종류(pseudo, range, domain 등)는 출력 없이 건너뛴다. 도메인은 DomainDumper가 담당한다.
"""

from typing import Any, Dict, List, Optional

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper


ALIGNMENT_NAMES = {
    "c": "char",
    "s": "int2",
    "i": "int4",
    "d": "double",
}

STORAGE_NAMES = {
    "p": "plain",
    "e": "external",
    "m": "main",
    "x": "extended",
}

SUPPORTED_TYPTYPES = ("e", "c", "b")


class TypeDumper(BaseDumper):
    """
    타입 하나를 덤프한다.

    params:
        schema : 스키마명
        type   : 타입명
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        schema    = params.get("schema")
        type_name = params.get("type")
        if not schema or not type_name:
            return

        qualified = self.qualified(schema, type_name)
        typacl = "t.typacl" if self.server_version >= 9.2 else "NULL"
        info = self.fetch_row(
            f"""
            SELECT t.oid, t.typname, t.typtype, t.typrelid,
                   t.typinput::pg_catalog.regproc  AS typin,
                   t.typoutput::pg_catalog.regproc AS typout,
                   t.typlen, t.typalign, t.typstorage,
                   {typacl}                                      AS typacl,
                   pg_catalog.pg_get_userbyid(t.typowner)       AS owner,
                   pg_catalog.obj_description(t.oid, 'pg_type') AS comment
            FROM   pg_catalog.pg_type t
            JOIN   pg_catalog.pg_namespace n ON n.oid = t.typnamespace
            WHERE  n.nspname = %s
            AND    t.typname = %s
            """,
            (schema, type_name),
            f"타입 {qualified}",
        )
        if info is None or info["typtype"] not in SUPPORTED_TYPTYPES:
            return

        if info["typtype"] == "e":
            body = self._enum_body(info)
        elif info["typtype"] == "c":
            body = self._composite_body(info)
        else:
            body = self._base_body(info)
        if body is None:
            return

        self.write(f"\n-- Type: {qualified}\n\n")
        self.write_drop("TYPE", qualified, options)
        self.write(f"CREATE TYPE {qualified} {body};\n")
        self.write_comment("TYPE", qualified, info["comment"], options)
        self.write_privileges("TYPE", qualified, info["typacl"], info["owner"])

    def _enum_body(self, info: Dict[str, Any]) -> Optional[str]:
        order = "enumsortorder" if self.server_version >= 9.1 else "oid"
        rows = self.fetch_rows(
            f"SELECT enumlabel FROM pg_catalog.pg_enum WHERE enumtypid = %s ORDER BY {order}",
            (info["oid"],),
            f"열거형 {info['typname']} 값",
        )
        if rows is None:
            return None
        labels = ", ".join(self.literal(row["enumlabel"]) for row in rows)
        return f"AS ENUM ({labels})"

    def _composite_body(self, info: Dict[str, Any]) -> Optional[str]:
        rows = self.fetch_rows(
            """
            SELECT a.attname,
                   pg_catalog.format_type(a.atttypid, a.atttypmod) AS type
            FROM   pg_catalog.pg_attribute a
            WHERE  a.attrelid = %s
            AND    a.attnum > 0
            AND    NOT a.attisdropped
            ORDER  BY a.attnum
            """,
            (info["typrelid"],),
            f"복합 타입 {info['typname']} 속성",
        )
        if rows is None:
            return None
        fields: List[str] = [f"{self.quote(row['attname'])} {row['type']}" for row in rows]
        return f"AS ({', '.join(fields)})"

    def _base_body(self, info: Dict[str, Any]) -> str:
        parts = [
            f"INPUT = {info['typin']}",
            f"OUTPUT = {info['typout']}",
        ]
        if int(info["typlen"]) != -1:
            parts.append(f"INTERNALLENGTH = {info['typlen']}")
        if info.get("typalign"):
            parts.append(f"ALIGNMENT = {ALIGNMENT_NAMES.get(info['typalign'], info['typalign'])}")
        if info.get("typstorage"):
            parts.append(f"STORAGE = {STORAGE_NAMES.get(info['typstorage'], info['typstorage'])}")
        return "(\n    " + ",\n    ".join(parts) + "\n)"
