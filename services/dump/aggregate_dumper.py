"""
집계 함수 덤프.

    CREATE AGGREGATE "schema"."name"(인자 타입) (
        SFUNC = ..., STYPE = ... [, FINALFUNC = ...] [, INITCOND = '...'] [, SORTOP = ...]
    );

인자가 없는 집계(count(*) 형태)는 인자 목록에 * 를 쓴다.
"""

from typing import Any, Dict

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper


class AggregateDumper(BaseDumper):
    """
    집계 함수 하나를 OID로 덤프한다.

    params:
        aggregate_oid : pg_proc OID
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        aggregate_oid = params.get("aggregate_oid")
        if not aggregate_oid:
            return

        info = self.fetch_row(
            """
            SELECT p.proname, n.nspname, p.proacl,
                   pg_catalog.pg_get_function_identity_arguments(p.oid) AS args,
                   a.aggtransfn::pg_catalog.regproc                   AS aggtransfn,
                   pg_catalog.format_type(a.aggtranstype, NULL)       AS aggstype,
                   a.aggfinalfn::pg_catalog.regproc                   AS aggfinalfn,
                   a.agginitval,
                   a.aggsortop::pg_catalog.oid::text                  AS aggsortop,
                   pg_catalog.pg_get_userbyid(p.proowner)             AS owner,
                   pg_catalog.obj_description(p.oid, 'pg_proc')       AS comment
            FROM   pg_catalog.pg_aggregate a
            JOIN   pg_catalog.pg_proc p      ON p.oid = a.aggfnoid
            JOIN   pg_catalog.pg_namespace n ON n.oid = p.pronamespace
            WHERE  p.oid = %s
            """,
            (aggregate_oid,),
            f"집계 함수 OID {aggregate_oid}",
        )
        if info is None:
            return

        sort_operator = None
        if info["aggsortop"] not in (None, "0"):
            row = self.fetch_row(
                "SELECT oprname FROM pg_catalog.pg_operator WHERE oid = %s",
                (info["aggsortop"],),
                f"정렬 연산자 OID {info['aggsortop']}",
            )
            if row is None:
                return
            sort_operator = row["oprname"]

        signature = f"{self.qualified(info['nspname'], info['proname'])}({info['args'] or '*'})"

        parts = [
            f"SFUNC = {info['aggtransfn']}",
            f"STYPE = {info['aggstype']}",
        ]
        if info["aggfinalfn"] not in (None, "-"):
            parts.append(f"FINALFUNC = {info['aggfinalfn']}")
        if info["agginitval"] is not None:
            parts.append(f"INITCOND = {self.literal(info['agginitval'])}")
        if sort_operator is not None:
            parts.append(f"SORTOP = {sort_operator}")

        self.write(f"\n-- Aggregate: {signature}\n\n")
        self.write_drop("AGGREGATE", signature, options)
        self.write(f"CREATE AGGREGATE {signature} (\n    " + ",\n    ".join(parts) + "\n);\n")
        self.write_comment("AGGREGATE", signature, info["comment"], options)
        self.write_privileges("FUNCTION", signature, info["proacl"], info["owner"])
