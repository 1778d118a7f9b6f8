"""
뷰 / 구체화 뷰 덤프.

    일반 뷰   : CREATE OR REPLACE VIEW ... AS <정의>;
    구체화 뷰 : CREATE MATERIALIZED VIEW [IF NOT EXISTS] ... AS <정의> WITH NO DATA;

구체화 뷰는 데이터 없이 생성하고, 데이터 포함 덤프이면 스키마 끝에서
REFRESH MATERIALIZED VIEW를 실행한다 (참조 테이블 데이터가 모두 적재된 뒤).
"""

from typing import Any, Dict

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper


class ViewDumper(BaseDumper):
    """
    뷰 하나를 덤프한다.

    params:
        schema : 스키마명
        view   : 뷰명
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        schema = params.get("schema")
        view   = params.get("view")
        if not schema or not view:
            return

        qualified = self.qualified(schema, view)
        info = self.fetch_row(
            """
            SELECT c.oid, c.relkind, c.relacl,
                   pg_catalog.pg_get_viewdef(c.oid, true)        AS definition,
                   pg_catalog.pg_get_userbyid(c.relowner)       AS owner,
                   pg_catalog.obj_description(c.oid, 'pg_class') AS comment
            FROM   pg_catalog.pg_class c
            JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE  n.nspname = %s
            AND    c.relname = %s
            AND    c.relkind IN ('v', 'm')
            """,
            (schema, view),
            f"뷰 {qualified}",
        )
        if info is None:
            return

        oid      = str(info["oid"])
        triggers = self.collect_triggers(oid, options)
        rules    = self.collect_rules(oid)
        if triggers is None or rules is None:
            return

        definition = info["definition"].strip().rstrip(";")
        materialized = info["relkind"] == "m"
        kind = "MATERIALIZED VIEW" if materialized else "VIEW"

        self.write(f"\n-- {'Materialized view' if materialized else 'View'}: {qualified}\n\n")
        self.write_drop(kind, qualified, options)
        if materialized:
            self.write(
                f"CREATE MATERIALIZED VIEW {self.if_not_exists(options, since=9.4)}{qualified} AS\n"
                f"{definition}\nWITH NO DATA;\n"
            )
        else:
            self.write(f"CREATE OR REPLACE VIEW {qualified} AS\n{definition};\n")

        self.write_comment(kind, qualified, info["comment"], options)
        self.write_privileges("TABLE", qualified, info["relacl"], info["owner"])

        self.emit_or_queue("triggers", "Triggers", triggers)
        self.emit_or_queue("rules", "Rules", rules)
        if materialized and options.include_data:
            self.emit_or_queue(
                "refreshes", "Materialized view data", [f"REFRESH MATERIALIZED VIEW {qualified};\n"]
            )
