"""
도메인 덤프.

CREATE DOMAIN ... AS <기본 타입> [DEFAULT ...] [NOT NULL] [CONSTRAINT ... CHECK (...)]
"""

from typing import Any, Dict

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper


class DomainDumper(BaseDumper):
    """
    도메인 하나를 덤프한다.

    params:
        schema : 스키마명
        domain : 도메인명
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        schema = params.get("schema")
        domain = params.get("domain")
        if not schema or not domain:
            return

        qualified = self.qualified(schema, domain)
        typacl = "t.typacl" if self.server_version >= 9.2 else "NULL"
        info = self.fetch_row(
            f"""
            SELECT t.oid, t.typname, t.typdefault, t.typnotnull,
                   pg_catalog.format_type(t.typbasetype, t.typtypmod) AS basetype,
                   {typacl}                                           AS typacl,
                   pg_catalog.pg_get_userbyid(t.typowner)            AS owner,
                   pg_catalog.obj_description(t.oid, 'pg_type')      AS comment
            FROM   pg_catalog.pg_type t
            JOIN   pg_catalog.pg_namespace n ON n.oid = t.typnamespace
            WHERE  n.nspname = %s
            AND    t.typname = %s
            AND    t.typtype = 'd'
            """,
            (schema, domain),
            f"도메인 {qualified}",
        )
        if info is None:
            return

        constraints = self.fetch_rows(
            """
            SELECT conname,
                   pg_catalog.pg_get_constraintdef(oid, true) AS consrc
            FROM   pg_catalog.pg_constraint
            WHERE  contypid = %s
            AND    contype = 'c'
            ORDER  BY conname
            """,
            (info["oid"],),
            f"도메인 {qualified} 제약조건",
        )
        if constraints is None:
            return

        self.write(f"\n-- Domain: {qualified}\n\n")
        self.write_drop("DOMAIN", qualified, options)
        self.write(f"CREATE DOMAIN {qualified} AS {info['basetype']}")
        if info["typdefault"] is not None:
            self.write(f"\n    DEFAULT {info['typdefault']}")
        if info["typnotnull"]:
            self.write("\n    NOT NULL")
        for con in constraints:
            self.write(f"\n    CONSTRAINT {self.quote(con['conname'])} {con['consrc']}")
        self.write(";\n")

        self.write_comment("DOMAIN", qualified, info["comment"], options)
        self.write_privileges("DOMAIN", qualified, info["typacl"], info["owner"])
