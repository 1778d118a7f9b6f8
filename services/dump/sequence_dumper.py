"""
시퀀스 덤프.

CREATE SEQUENCE 뒤에 덤프 시점의 last_value / is_called 쌍을 그대로 setval로 출력한다.
복원 후 시퀀스 위치가 함께 복원된 데이터와 어긋나지 않게 하기 위함이다.

IDENTITY 컬럼이 소유한 시퀀스는 테이블 정의가 생성하므로 단독으로 덤프하지 않는다.
"""

from typing import Any, Dict

from models.dump_options import DumpOptions
from services.dump.base_dumper import BaseDumper


class SequenceDumper(BaseDumper):
    """
    시퀀스 하나를 덤프한다.

    params:
        schema   : 스키마명
        sequence : 시퀀스명
    """

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        schema   = params.get("schema")
        sequence = params.get("sequence")
        if not schema or not sequence:
            return

        qualified = self.qualified(schema, sequence)
        info = self.fetch_row(
            """
            SELECT c.oid, c.relacl,
                   pg_catalog.pg_get_userbyid(c.relowner)       AS owner,
                   pg_catalog.obj_description(c.oid, 'pg_class') AS comment,
                   EXISTS (
                       SELECT 1 FROM pg_catalog.pg_depend d
                       WHERE  d.classid = 'pg_catalog.pg_class'::pg_catalog.regclass
                       AND    d.objid   = c.oid
                       AND    d.deptype = 'i'
                   ) AS is_identity
            FROM   pg_catalog.pg_class c
            JOIN   pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE  n.nspname = %s
            AND    c.relname = %s
            AND    c.relkind = 'S'
            """,
            (schema, sequence),
            f"시퀀스 {qualified}",
        )
        if info is None or info["is_identity"]:
            return

        settings = self._fetch_settings(info["oid"], qualified)
        if settings is None:
            return

        self.write(f"\n-- Sequence: {qualified}\n\n")

        if options.include_structure:
            self.write_drop("SEQUENCE", qualified, options)
            self.write(f"CREATE SEQUENCE {self.if_not_exists(options)}{qualified}\n")
            self.write(f"    START WITH {settings['start_value']}\n")
            self.write(f"    INCREMENT BY {settings['increment_by']}\n")
            self.write(f"    MINVALUE {settings['min_value']}\n")
            self.write(f"    MAXVALUE {settings['max_value']}\n")
            self.write(f"    CACHE {settings['cache_value']}")
            if settings["is_cycled"]:
                self.write("\n    CYCLE")
            self.write(";\n")

        if options.include_data and settings["last_value"] is not None:
            self.write(
                f"SELECT pg_catalog.setval({self.literal(qualified)}, "
                f"{settings['last_value']}, {'true' if settings['is_called'] else 'false'});\n"
            )

        if options.include_structure:
            self.write_comment("SEQUENCE", qualified, info["comment"], options)
            self.write_privileges("SEQUENCE", qualified, info["relacl"], info["owner"])

    def _fetch_settings(self, oid, qualified: str):
        """
        시퀀스 설정값과 현재 위치를 조회한다.

        10 이상은 설정값이 pg_sequence 카탈로그에, 그 이전은 시퀀스 릴레이션 자체에 있다.
        """
        if self.server_version < 10:
            return self.fetch_row(
                f"""
                SELECT start_value, increment_by, min_value, max_value,
                       cache_value, is_cycled, last_value, is_called
                FROM   {qualified}
                """,
                None,
                f"시퀀스 {qualified} 설정",
            )

        settings = self.fetch_row(
            """
            SELECT seqstart     AS start_value,
                   seqincrement AS increment_by,
                   seqmin       AS min_value,
                   seqmax       AS max_value,
                   seqcache     AS cache_value,
                   seqcycle     AS is_cycled
            FROM   pg_catalog.pg_sequence
            WHERE  seqrelid = %s
            """,
            (oid,),
            f"시퀀스 {qualified} 설정",
        )
        if settings is None:
            return None
        position = self.fetch_row(
            f"SELECT last_value, is_called FROM {qualified}",
            None,
            f"시퀀스 {qualified} 위치",
        )
        if position is None:
            return None
        return {**settings, **position}
