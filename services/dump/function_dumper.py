"""
함수 / 프로시저 덤프.

정의는 pg_get_functiondef()가 만든 CREATE OR REPLACE 구문을 그대로 사용하고,
DROP / COMMENT / GRANT 에는 pg_get_function_identity_arguments()의 인자 목록을 붙인다.
"""

from typing import Any, Dict

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper


class FunctionDumper(BaseDumper):
    """
    함수 하나를 OID로 덤프한다.

    params:
        function_oid : pg_proc OID
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        function_oid = params.get("function_oid")
        if not function_oid:
            return

        prokind = "p.prokind" if self.server_version >= 11 else "'f'"
        info = self.fetch_row(
            f"""
            SELECT pg_catalog.pg_get_functiondef(p.oid)                AS funcdef,
                   pg_catalog.pg_get_function_identity_arguments(p.oid) AS funcid,
                   p.proname, n.nspname, p.proacl,
                   {prokind}                                            AS prokind,
                   pg_catalog.pg_get_userbyid(p.proowner)              AS owner,
                   pg_catalog.obj_description(p.oid, 'pg_proc')        AS comment
            FROM   pg_catalog.pg_proc p
            JOIN   pg_catalog.pg_namespace n ON n.oid = p.pronamespace
            WHERE  p.oid = %s
            """,
            (function_oid,),
            f"함수 OID {function_oid}",
        )
        if info is None:
            return

        kind      = "PROCEDURE" if info["prokind"] == "p" else "FUNCTION"
        signature = f"{self.qualified(info['nspname'], info['proname'])}({info['funcid']})"

        self.write(f"\n-- {kind.capitalize()}: {signature}\n\n")
        self.write_drop(kind, signature, options)
        self.write(info["funcdef"].rstrip().rstrip(";") + ";\n")
        self.write_comment(kind, signature, info["comment"], options)
        self.write_privileges(kind, signature, info["proacl"], info["owner"])
