"""
룰 단독 덤프.

정의는 CREATE OR REPLACE RULE 로 바꿔 출력한다.
"""

from typing import Any, Dict

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper, rule_statement


class RuleDumper(BaseDumper):
    """
    params:
        schema : 스키마명
        table  : 룰이 걸린 테이블명 (또는 view)
        rule   : 룰 이름
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        schema = params.get("schema")
        table  = params.get("table") or params.get("view")
        rule   = params.get("rule")
        if not schema or not table or not rule:
            return

        relation = self.qualified(schema, table)
        row = self.fetch_row(
            """
            SELECT pg_catalog.pg_get_ruledef(r.oid) AS definition
            FROM   pg_catalog.pg_rewrite r
            JOIN   pg_catalog.pg_class c     ON c.oid = r.ev_class
            JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE  n.nspname  = %s
            AND    c.relname  = %s
            AND    r.rulename = %s
            """,
            (schema, table, rule),
            f"룰 {rule} ON {relation}",
        )
        if row is None:
            return

        name = self.quote(rule)
        self.write(f"\n-- Rule: {name} ON {relation}\n\n")
        if options.clean:
            self.write(f"DROP RULE IF EXISTS {name} ON {relation} CASCADE;\n")
        self.write(rule_statement(row["definition"]))
