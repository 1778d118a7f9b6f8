"""
롤 덤프.

CREATE ROLE ... WITH <속성>; 과 롤 멤버십(GRANT role TO member [WITH ADMIN OPTION])을 출력한다.
all_roles 옵션이 없으면 시스템 롤(postgres, pg_*)은 건너뛴다.
"""

from typing import Any, Dict, List

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper


def is_system_role(name: str) -> bool:
    return name == "postgres" or name.startswith("pg_")


class RoleDumper(BaseDumper):
    """
    클러스터의 롤을 덤프한다.

    params:
        role : 특정 롤 이름 (선택, 없으면 전체)
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        replication = "rolreplication" if self.server_version >= 9.1 else "false"
        bypassrls   = "rolbypassrls"   if self.server_version >= 9.5 else "false"
        role_filter = "WHERE rolname = %s" if params.get("role") else ""
        roles = self.fetch_rows(
            f"""
            SELECT oid, rolname, rolsuper, rolinherit, rolcreaterole, rolcreatedb,
                   rolcanlogin, rolconnlimit, rolvaliduntil,
                   {replication} AS rolreplication,
                   {bypassrls}   AS rolbypassrls,
                   pg_catalog.shobj_description(oid, 'pg_authid') AS comment
            FROM   pg_catalog.pg_roles
            {role_filter}
            ORDER  BY rolname
            """,
            (params["role"],) if params.get("role") else None,
            "롤 목록",
        )
        if roles is None:
            return

        roles = [r for r in roles if options.all_roles or not is_system_role(r["rolname"])]
        if not roles:
            return

        self.write("\n-- Roles\n\n")
        memberships: List[str] = []
        for role in roles:
            name = self.quote(role["rolname"])
            self.write(f"-- Role: {role['rolname']}\n")
            self.write_drop("ROLE", name, options)
            self.write(f"CREATE ROLE {name} WITH {' '.join(self._attributes(role))};\n")
            self.write_comment("ROLE", name, role["comment"], options)

            members = self.fetch_rows(
                """
                SELECT m.rolname, am.admin_option
                FROM   pg_catalog.pg_auth_members am
                JOIN   pg_catalog.pg_roles m ON m.oid = am.member
                WHERE  am.roleid = %s
                ORDER  BY m.rolname
                """,
                (role["oid"],),
                f"롤 {role['rolname']} 멤버",
            ) or []
            for member in members:
                admin = " WITH ADMIN OPTION" if member["admin_option"] else ""
                memberships.append(f"GRANT {name} TO {self.quote(member['rolname'])}{admin};\n")

        # 멤버 롤이 모두 생성된 뒤에 멤버십을 부여한다
        if memberships:
            self.write("\n-- Role memberships\n\n")
            for statement in memberships:
                self.write(statement)

    def _attributes(self, role: Dict[str, Any]) -> List[str]:
        attrs = [
            "SUPERUSER"  if role["rolsuper"]      else "NOSUPERUSER",
            "INHERIT"    if role["rolinherit"]    else "NOINHERIT",
            "CREATEROLE" if role["rolcreaterole"] else "NOCREATEROLE",
            "CREATEDB"   if role["rolcreatedb"]   else "NOCREATEDB",
            "LOGIN"      if role["rolcanlogin"]   else "NOLOGIN",
        ]
        if role.get("rolreplication"):
            attrs.append("REPLICATION")
        if role.get("rolbypassrls"):
            attrs.append("BYPASSRLS")
        if role["rolconnlimit"] is not None and int(role["rolconnlimit"]) != -1:
            attrs.append(f"CONNECTION LIMIT {role['rolconnlimit']}")
        if role.get("rolvaliduntil") is not None:
            attrs.append(f"VALID UNTIL {self.literal(role['rolvaliduntil'])}")
        return attrs
