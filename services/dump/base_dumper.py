"""
Dumper 공통 기반.

모든 객체 종류별 Dumper는 BaseDumper를 상속하고 dump(params, options) 하나만 구현한다.
BaseDumper는 다음 공통 출력을 제공한다:

    - write_drop()        : clean 옵션 시 DROP ... IF EXISTS ... CASCADE
    - if_not_exists()     : if_not_exists 옵션 + 서버 버전 지원 시 "IF NOT EXISTS "
    - write_comment()     : include_comments 옵션 + 주석 존재 시 COMMENT ON
    - write_privileges()  : ACL로부터 REVOKE / GRANT 재구성 (소유자 본인 권한 제외)
    - fetch_row()         : 카탈로그 단건 조회 (실패 시 WARN 로그 후 None)

카탈로그 조회에 실패한 Dumper는 아무것도 출력하지 않고 반환한다.
문법적으로 불완전한 조각을 남기는 것보다 출력하지 않는 편이 낫기 때문이다.

트리거 / 룰 / 외래키 / 지연 기본값은 부모 오케스트레이터(SchemaDumper)가 있으면
부모의 DumpQueues에 적재하고, 단독 실행이면 그 자리에서 바로 출력한다.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from models.dump_options import DumpOptions
from services.dump.acl import parse_acl


LogCallback = Callable[[str, str], None]


@dataclass
class DumpQueues:
    """
    스키마 끝에서 한꺼번에 출력할 지연 구문 모음.

    @param foreign_keys  ALTER TABLE ... ADD CONSTRAINT ... FOREIGN KEY
    @param defaults      뒤에 출력되는 함수를 호출하는 컬럼 기본값 (ALTER ... SET DEFAULT)
    @param triggers      CREATE TRIGGER
    @param rules         CREATE OR REPLACE RULE
    @param refreshes     REFRESH MATERIALIZED VIEW
    """
    foreign_keys: List[str] = field(default_factory=list)
    defaults:     List[str] = field(default_factory=list)
    triggers:     List[str] = field(default_factory=list)
    rules:        List[str] = field(default_factory=list)
    refreshes:    List[str] = field(default_factory=list)

    def sections(self):
        """(머리 주석, 구문 리스트) 를 출력 순서대로 반환한다."""
        return [
            ("Foreign keys",       self.foreign_keys),
            ("Deferred defaults",  self.defaults),
            ("Triggers",           self.triggers),
            ("Rules",              self.rules),
            ("Materialized views", self.refreshes),
        ]

    def clear(self) -> None:
        for _, items in self.sections():
            items.clear()

    def __len__(self) -> int:
        return sum(len(items) for _, items in self.sections())


class BaseDumper:
    """
    객체 종류별 Dumper의 공통 기반.

    내부 상태:
        _driver : 드라이버 경계 객체
        _writer : 텍스트 싱크 (write(text))
        _log    : 로그 콜백
        _parent : 부모 오케스트레이터 (queues, graph 속성 제공) 또는 None
    """

    def __init__(self, driver, writer, log: Optional[LogCallback] = None, parent=None):
        self._driver = driver
        self._writer = writer
        self._log    = log or (lambda tag, msg: None)
        self._parent = parent

    def dump(self, params: Dict[str, Any], options: DumpOptions) -> None:
        raise NotImplementedError

    # ==================================================================
    # 출력 헬퍼
    # ==================================================================

    def write(self, text: str) -> None:
        self._writer.write(text)

    def quote(self, name: str) -> str:
        return self._driver.escape_identifier(name)

    def qualified(self, schema: str, name: str) -> str:
        return f"{self.quote(schema)}.{self.quote(name)}"

    def literal(self, value: Any) -> str:
        return self._driver.escape_literal(value)

    @property
    def server_version(self) -> float:
        return self._driver.server_version

    @property
    def queues(self) -> Optional[DumpQueues]:
        return getattr(self._parent, "queues", None)

    @property
    def graph(self):
        return getattr(self._parent, "graph", None)

    def write_drop(self, kind: str, target: str, options: DumpOptions) -> None:
        """
        clean 옵션이 켜져 있으면 DROP 구문을 출력한다.

        @param kind     객체 종류 키워드 (TABLE, SEQUENCE, TYPE ...)
        @param target   인용 완료된 대상 이름
        @param options  덤프 옵션

        @example
            self.write_drop("TABLE", '"public"."users"', options)
            # -> DROP TABLE IF EXISTS "public"."users" CASCADE;
        """
        if options.clean:
            self.write(f"DROP {kind} IF EXISTS {target} CASCADE;\n")

    def if_not_exists(self, options: DumpOptions, since: float = 9.5) -> str:
        """
        IF NOT EXISTS 절을 반환한다.

        @param options  덤프 옵션
        @param since    해당 객체 종류가 IF NOT EXISTS를 지원하기 시작한 서버 버전
        @returns        "IF NOT EXISTS " 또는 ""
        """
        if options.if_not_exists and self.server_version >= since:
            return "IF NOT EXISTS "
        return ""

    def write_comment(self, kind: str, target: str, comment: Optional[str], options: DumpOptions) -> None:
        if not options.include_comments or comment is None:
            return
        self.write(f"COMMENT ON {kind} {target} IS {self.literal(comment)};\n")

    def write_privileges(self, kind: str, target: str, acl, owner: Optional[str]) -> None:
        """
        ACL로부터 권한 구문을 재구성한다.

        ACL이 NULL(기본 권한)이면 아무것도 출력하지 않는다.
        소유자 본인에게 부여된 항목은 암묵적 권한이므로 건너뛴다.
        부여자가 소유자가 아니면 SET SESSION AUTHORIZATION으로 부여자 권한에서 실행한다.

        @param kind    GRANT 대상 종류 키워드 (TABLE, SEQUENCE, FUNCTION, TYPE ...)
        @param target  인용 완료된 대상 이름
        @param acl     aclitem[] 값 (문자열 / 리스트 / None)
        @param owner   객체 소유자 롤 이름
        """
        try:
            entries = parse_acl(acl)
        except ValueError as e:
            self._log("WARN", f"권한 정보 해석 실패 ({target}): {e}")
            return
        if acl is None:
            return

        self.write("\n-- Privileges\n\n")
        self.write(f"REVOKE ALL ON {kind} {target} FROM PUBLIC;\n")
        for entry in entries:
            if not entry.privileges or (not entry.is_public and entry.grantee == owner):
                continue
            grantee = "PUBLIC" if entry.is_public else self.quote(entry.grantee)
            as_grantor = bool(entry.grantor) and entry.grantor != owner

            if as_grantor:
                self.write(f"SET SESSION AUTHORIZATION {self.literal(entry.grantor)};\n")
            if entry.plain_privileges:
                self.write(f"GRANT {', '.join(entry.plain_privileges)} ON {kind} {target} TO {grantee};\n")
            if entry.grantable:
                self.write(
                    f"GRANT {', '.join(entry.grantable)} ON {kind} {target} "
                    f"TO {grantee} WITH GRANT OPTION;\n"
                )
            if as_grantor:
                self.write("RESET SESSION AUTHORIZATION;\n")

    # ==================================================================
    # 카탈로그 조회
    # ==================================================================

    def fetch_row(self, sql: str, params: Any, what: str) -> Optional[Dict[str, Any]]:
        """
        카탈로그에서 정확히 한 행을 조회한다.

        @param sql     조회 SQL
        @param params  바인드 파라미터
        @param what    로그 표시용 대상 이름
        @returns       행 딕셔너리, 조회 실패 또는 결과 없음이면 None (WARN 로그)
        """
        rs = self._driver.select_set(sql, params)
        if rs is None:
            self._log("WARN", f"{what} 조회 실패: {self._driver.last_error}")
            return None
        row = rs.first()
        if row is None:
            self._log("WARN", f"{what} 을(를) 찾을 수 없습니다.")
        return row

    def fetch_rows(self, sql: str, params: Any, what: str) -> Optional[List[Dict[str, Any]]]:
        rs = self._driver.select_set(sql, params)
        if rs is None:
            self._log("WARN", f"{what} 조회 실패: {self._driver.last_error}")
            return None
        return list(rs)

    # ==================================================================
    # 트리거 / 룰 (테이블, 뷰 공용)
    # ==================================================================

    def collect_triggers(self, relation_oid: str, options: DumpOptions) -> Optional[List[str]]:
        """
        릴레이션의 사용자 트리거 정의를 구문 리스트로 반환한다.

        if_not_exists 옵션이고 서버가 14 이상이면 CREATE OR REPLACE로 바꾼다.
        """
        rows = self.fetch_rows(
            """
            SELECT tgname, pg_catalog.pg_get_triggerdef(oid) AS tgdef
            FROM   pg_catalog.pg_trigger
            WHERE  tgrelid = %s
            AND    NOT tgisinternal
            ORDER  BY tgname
            """,
            (relation_oid,),
            "트리거 목록",
        )
        if rows is None:
            return None
        return [trigger_statement(row["tgdef"], options, self.server_version) for row in rows]

    def collect_rules(self, relation_oid: str) -> Optional[List[str]]:
        rows = self.fetch_rows(
            """
            SELECT rulename, pg_catalog.pg_get_ruledef(oid) AS definition
            FROM   pg_catalog.pg_rewrite
            WHERE  ev_class = %s
            AND    rulename <> '_RETURN'
            ORDER  BY rulename
            """,
            (relation_oid,),
            "룰 목록",
        )
        if rows is None:
            return None
        return [rule_statement(row["definition"]) for row in rows]

    def emit_or_queue(self, queue_name: str, title: str, statements: List[str]) -> None:
        """
        부모 큐가 있으면 적재하고, 없으면 머리 주석과 함께 바로 출력한다.

        @param queue_name  DumpQueues 필드명 (triggers, rules, foreign_keys ...)
        @param title       단독 출력 시 머리 주석
        @param statements  구문 리스트
        """
        if not statements:
            return
        queues = self.queues
        if queues is not None:
            getattr(queues, queue_name).extend(statements)
            return
        self.write(f"\n-- {title}\n\n")
        for statement in statements:
            self.write(statement)


def trigger_statement(definition: str, options: DumpOptions, server_version: float) -> str:
    definition = definition.rstrip().rstrip(";")
    if options.if_not_exists and server_version >= 14:
        definition = definition.replace(
            "CREATE CONSTRAINT TRIGGER", "CREATE OR REPLACE CONSTRAINT TRIGGER", 1
        ).replace("CREATE TRIGGER", "CREATE OR REPLACE TRIGGER", 1)
    return f"{definition};\n"


def rule_statement(definition: str) -> str:
    definition = definition.rstrip().rstrip(";")
    definition = definition.replace("CREATE RULE", "CREATE OR REPLACE RULE", 1)
    return f"{definition};\n"
