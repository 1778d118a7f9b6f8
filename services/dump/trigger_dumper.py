"""
트리거 단독 덤프.

테이블 덤프 중에는 TableDumper가 트리거를 부모 큐에 적재하므로,
이 Dumper는 트리거 하나만 골라 덤프할 때 사용한다.
"""

from typing import Any, Dict

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper, trigger_statement


class TriggerDumper(BaseDumper):
    """
    params:
        schema  : 스키마명
        table   : 트리거가 걸린 테이블명
        trigger : 트리거명
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        schema  = params.get("schema")
        table   = params.get("table")
        trigger = params.get("trigger")
        if not schema or not table or not trigger:
            return

        relation = self.qualified(schema, table)
        row = self.fetch_row(
            """
            SELECT pg_catalog.pg_get_triggerdef(t.oid) AS definition
            FROM   pg_catalog.pg_trigger t
            JOIN   pg_catalog.pg_class c     ON c.oid = t.tgrelid
            JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE  n.nspname = %s
            AND    c.relname = %s
            AND    t.tgname  = %s
            """,
            (schema, table, trigger),
            f"트리거 {trigger} ON {relation}",
        )
        if row is None:
            return

        name = self.quote(trigger)
        self.write(f"\n-- Trigger: {name} ON {relation}\n\n")
        if options.clean:
            self.write(f"DROP TRIGGER IF EXISTS {name} ON {relation} CASCADE;\n")
        self.write(trigger_statement(row["definition"], options, self.server_version))
