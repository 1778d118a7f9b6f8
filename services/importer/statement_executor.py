"""
임포트 정책 실행기.

문장 하나를 분류하고, 분류별 정책을 적용한 뒤 실행 여부를 결정한다.

    self_affecting   : 기본적으로 deferred 큐에 적재한다. defer_self=False이고
                       슈퍼유저이거나 server 범위 임포트이면 즉시 실행한다.
    data             : data 옵션이 켜져 있을 때만 실행한다. truncate 옵션이면
                       대상 테이블을 세션당 한 번만 TRUNCATE 한 뒤 실행한다.
    drop             : allow_drops일 때만 실행, 아니면 차단(blocked) 로그만 남긴다.
    ownership_change : ownership 옵션이면 ownership 큐에 적재, 아니면 건너뜀.
    rights           : rights 옵션이면 rights 큐에 적재, 아니면 건너뜀.
    ddl_other        : 스키마 생성 / 롤 / 테이블스페이스 토글 검사 후 실행한다.

실행 전 문장은 대상 서버 버전에 맞게 고친다 (adapt_to_server).
실행 결과는 예외 대신 ExecutionOutcome으로 돌려주고, 중단/계속 판단은
호출자(SqlImporter)가 error_mode에 따라 내린다.
"""

import re
from dataclasses import dataclass
from typing      import Callable, List, Optional, Tuple

from config import VERBOSE_PREVIEW_CHARS
from models.import_options import ImportOptions, ImportScope, ImportSession
from services.importer.import_log import ImportLog, preview
from services.importer.sql_parser import is_copy_from_stdin, split_leading_comments
from services.importer.statement_classifier import StatementCategory, classify, normalize_role


_FLAGS = re.IGNORECASE

# CREATE <kind> IF NOT EXISTS 를 지원하기 시작한 서버 major 버전
IF_NOT_EXISTS_SINCE: Tuple[Tuple[float, str], ...] = (
    (9.1, r"EXTENSION"),
    (9.3, r"SCHEMA"),
    (9.4, r"MATERIALIZED\s+VIEW"),
    (9.5, r"SEQUENCE"),
    (9.5, r"TABLE"),
    (9.5, r"(?:UNIQUE\s+)?INDEX"),
    (9.6, r"OPERATOR"),
)

# CREATE OR REPLACE <kind> 를 지원하기 시작한 서버 major 버전
OR_REPLACE_SINCE: Tuple[Tuple[float, str], ...] = (
    (12.0, r"AGGREGATE"),
    (14.0, r"(?:CONSTRAINT\s+)?TRIGGER"),
)

# 트리거 정의의 EXECUTE PROCEDURE -> EXECUTE FUNCTION 전환 버전
EXECUTE_FUNCTION_SINCE = 11.0

_TRIGGER_DEFINITION = re.compile(r"\ACREATE\s+(?:OR\s+REPLACE\s+)?(?:CONSTRAINT\s+)?TRIGGER\b", _FLAGS)
_EXECUTE_FUNCTION   = re.compile(r"\bEXECUTE\s+FUNCTION\b", _FLAGS)
_EXECUTE_PROCEDURE  = re.compile(r"\bEXECUTE\s+PROCEDURE\b", _FLAGS)

_CREATE_SCHEMA  = re.compile(r"\ACREATE\s+SCHEMA\b", _FLAGS)
_ROLE_DDL       = re.compile(r"\A(?:CREATE|ALTER|DROP)\s+(?:ROLE|USER)\b", _FLAGS)
_TABLESPACE_DDL = re.compile(r"\A(?:CREATE|ALTER|DROP)\s+TABLESPACE\b", _FLAGS)

_IDENT       = r'(?:"(?:[^"]|"")*"|[^\s(."]+)'
_DATA_TARGET = re.compile(rf"\A(?:INSERT\s+INTO|COPY)\s+({_IDENT}(?:\s*\.\s*{_IDENT})?)", _FLAGS)


def adapt_to_server(statement: str, server_version: float) -> str:
    """
    문장을 대상 서버 버전이 받아들이는 형태로 고친다.

        - 지원하지 않는 CREATE <kind> IF NOT EXISTS -> CREATE <kind>
        - 지원하지 않는 CREATE OR REPLACE <kind>    -> CREATE <kind>
        - 트리거 정의: 11 미만은 EXECUTE PROCEDURE, 11 이상은 EXECUTE FUNCTION

    COPY 데이터 블록은 고치지 않는다. 앞쪽 주석은 보존한다.

    @param statement       SQL 문장
    @param server_version  대상 서버 major 버전
    @returns               고쳐진 문장

    @example
        adapt_to_server("CREATE SEQUENCE IF NOT EXISTS s;", 9.4)   # -> "CREATE SEQUENCE s;"
    """
    if is_copy_from_stdin(statement):
        return statement
    prefix, body = split_leading_comments(statement)

    kinds = [kind for since, kind in IF_NOT_EXISTS_SINCE if server_version < since]
    if kinds:
        pattern = re.compile(rf"\ACREATE\s+({'|'.join(kinds)})\s+IF\s+NOT\s+EXISTS\b", _FLAGS)
        body = pattern.sub(lambda m: f"CREATE {m.group(1)}", body, count=1)

    kinds = [kind for since, kind in OR_REPLACE_SINCE if server_version < since]
    if kinds:
        pattern = re.compile(rf"\ACREATE\s+OR\s+REPLACE\s+({'|'.join(kinds)})\b", _FLAGS)
        body = pattern.sub(lambda m: f"CREATE {m.group(1)}", body, count=1)

    if _TRIGGER_DEFINITION.match(body):
        if server_version < EXECUTE_FUNCTION_SINCE:
            body = _EXECUTE_FUNCTION.sub("EXECUTE PROCEDURE", body)
        else:
            body = _EXECUTE_PROCEDURE.sub("EXECUTE FUNCTION", body)

    return prefix + body


def data_target(statement: str) -> Optional[Tuple[Optional[str], str]]:
    """
    INSERT INTO / COPY 문장의 대상 테이블을 (스키마, 테이블)로 반환한다.

    @returns  (schema 또는 None, table), 대상을 찾지 못하면 None
    """
    body = split_leading_comments(statement)[1]
    m = _DATA_TARGET.match(body)
    if m is None:
        return None
    parts = re.findall(_IDENT, m.group(1))
    names = [normalize_role(p) for p in parts]
    if len(names) == 1:
        return None, names[0]
    return names[-2], names[-1]


@dataclass(frozen=True)
class ExecutionOutcome:
    """
    문장 하나의 처리 결과.

    @param executed  서버에서 실제로 실행되었는지
    @param error     실행 실패 시 드라이버 오류 메시지 (성공 또는 미실행이면 None)
    """
    executed: bool
    error:    Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


NOT_EXECUTED = ExecutionOutcome(False)


class StatementExecutor:
    """
    분류 + 정책 + 버전 보정 + 실행.

    ImportSession의 deferred / ownership_queue / rights_queue / truncated_tables는
    이 클래스만 기록한다.

    내부 상태:
        _driver          : 드라이버 경계 객체
        _session         : 임포트 세션 상태
        _options         : 임포트 정책 옵션
        _log             : ImportLog
        _current_user    : 접속 롤 이름
        _is_superuser    : 슈퍼유저 여부
        _category_filter : 추가 허용 판단 (ddl_other 분류에 적용)
    """

    def __init__(
        self,
        driver,
        session:         ImportSession,
        options:         ImportOptions,
        log:             ImportLog,
        current_user:    Optional[str]  = None,
        is_superuser:    Optional[bool] = None,
        category_filter: Optional[Callable[[StatementCategory], bool]] = None,
    ):
        self._driver          = driver
        self._session         = session
        self._options         = options
        self._log             = log
        self._current_user    = current_user if current_user is not None else driver.current_user
        self._is_superuser    = is_superuser if is_superuser is not None else driver.is_superuser
        self._category_filter = category_filter or (lambda category: True)

    @property
    def driver(self):
        return self._driver

    @driver.setter
    def driver(self, driver) -> None:
        self._driver = driver

    def execute(self, statement: str) -> ExecutionOutcome:
        """
        문장을 분류하고 정책에 따라 실행 / 지연 / 큐 적재 / 건너뜀을 결정한다.

        @param statement  SQL 문장 (COPY 블록 포함)
        @returns          ExecutionOutcome
        """
        stmt = statement.strip()
        if not split_leading_comments(stmt)[1]:
            return NOT_EXECUTED

        category = classify(stmt, self._current_user)
        if category == StatementCategory.SELF_AFFECTING:
            return self._handle_self_affecting(stmt)
        if category == StatementCategory.DATA:
            return self._handle_data(stmt)
        if category == StatementCategory.DROP:
            return self._handle_drop(stmt)
        if category == StatementCategory.OWNERSHIP_CHANGE:
            return self._enqueue(
                stmt, category, self._options.ownership, self._session.ownership_queue,
                "소유자 변경", "ownership_disabled",
            )
        if category == StatementCategory.RIGHTS:
            return self._enqueue(
                stmt, category, self._options.rights, self._session.rights_queue,
                "권한 부여/회수", "rights_disabled",
            )
        return self._handle_other(stmt, category)

    def execute_now(self, statement: str) -> ExecutionOutcome:
        """정책 검사 없이 버전 보정 후 바로 실행한다. 큐에 적재했던 문장 처리에 사용한다."""
        return self._run(statement.strip())

    def drain_queues(self) -> List[Tuple[str, List[str]]]:
        """
        적재된 문장을 꺼내고 큐를 비운다.

        @returns  [(제목, 문장 목록)] ownership -> rights -> deferred 순서, 빈 큐는 제외
        """
        session = self._session
        drained = [
            ("소유자 변경", list(session.ownership_queue)),
            ("권한 부여/회수", list(session.rights_queue)),
            ("지연된 문장", list(session.deferred)),
        ]
        session.ownership_queue.clear()
        session.rights_queue.clear()
        session.deferred.clear()
        return [(title, statements) for title, statements in drained if statements]

    # ------------------------------------------------------------------
    # 분류별 정책
    # ------------------------------------------------------------------

    def _handle_self_affecting(self, stmt: str) -> ExecutionOutcome:
        if not self._options.defer_self:
            if self._is_superuser or self._session.scope == ImportScope.SERVER:
                return self._run(stmt)
            self._session.deferred.append(stmt)
            self._log.deferred("세션 자신에게 영향을 주는 문장을 지연합니다 (슈퍼유저 아님)", stmt)
            return NOT_EXECUTED

        self._session.deferred.append(stmt)
        self._log.deferred("세션 자신에게 영향을 주는 문장을 지연합니다", stmt)
        return NOT_EXECUTED

    def _handle_data(self, stmt: str) -> ExecutionOutcome:
        if not self._options.data:
            self._log.skipped("데이터 임포트가 꺼져 있습니다", stmt, "data_disabled", StatementCategory.DATA.value)
            return NOT_EXECUTED
        if self._options.truncate:
            self._truncate_target(stmt)
        return self._run(stmt)

    def _handle_drop(self, stmt: str) -> ExecutionOutcome:
        if not self._options.allow_drops:
            self._log.blocked("DROP 문은 허용되지 않습니다", stmt, "drops_not_allowed")
            return NOT_EXECUTED
        return self._run(stmt)

    def _enqueue(
        self,
        stmt:     str,
        category: StatementCategory,
        enabled:  bool,
        queue:    List[str],
        what:     str,
        reason:   str,
    ) -> ExecutionOutcome:
        if not enabled:
            self._log.skipped(f"{what} 문이 꺼져 있습니다", stmt, reason, category.value)
            return NOT_EXECUTED
        queue.append(stmt)
        self._log.queued(f"{what} 문을 큐에 적재했습니다", stmt, category.value)
        return NOT_EXECUTED

    def _handle_other(self, stmt: str, category: StatementCategory) -> ExecutionOutcome:
        body = split_leading_comments(stmt)[1]
        if _CREATE_SCHEMA.match(body) and not self._options.schema_create:
            self._log.skipped("스키마 생성이 꺼져 있습니다", stmt, "schema_create_disabled")
            return NOT_EXECUTED
        if _ROLE_DDL.match(body) and not self._options.roles:
            self._log.skipped("롤 작업이 꺼져 있습니다", stmt, "roles_disabled")
            return NOT_EXECUTED
        if _TABLESPACE_DDL.match(body) and not self._options.tablespaces:
            self._log.skipped("테이블스페이스 작업이 꺼져 있습니다", stmt, "tablespaces_disabled")
            return NOT_EXECUTED
        if not self._category_filter(category):
            self._log.skipped("허용되지 않은 문장 분류입니다", stmt, category=category.value)
            return NOT_EXECUTED
        return self._run(stmt)

    # ------------------------------------------------------------------
    # 실행
    # ------------------------------------------------------------------

    def _run(self, stmt: str) -> ExecutionOutcome:
        if is_copy_from_stdin(stmt):
            # 드라이버는 COPY 헤더가 맨 앞에 있어야 본문을 스트리밍한다
            stmt = split_leading_comments(stmt)[1]
        else:
            stmt = adapt_to_server(stmt, self._driver.server_version)

        if self._options.verbose:
            self._log.info(f"실행: {preview(stmt, VERBOSE_PREVIEW_CHARS)}")

        if self._driver.execute(stmt) != 0:
            error = self._driver.last_error or "알 수 없는 오류"
            self._log.error(f"문장 실행 실패: {error}", stmt)
            return ExecutionOutcome(False, error)

        self._log.executed("문장 실행 완료", stmt)
        return ExecutionOutcome(True)

    def _truncate_target(self, stmt: str) -> None:
        """
        데이터 문장의 대상 테이블을 세션당 한 번만 TRUNCATE 한다.

        스키마가 없는 이름은 search_path의 첫 스키마, 그것도 없으면 schema 범위
        임포트의 대상 스키마로 해석한다. TRUNCATE 실패는 기록만 하고 적재는 계속한다.
        """
        target = data_target(stmt)
        if target is None:
            return
        schema, table = target
        if schema is None:
            schema = self._session.current_schema
        if schema is None and self._session.scope == ImportScope.SCHEMA:
            schema = self._session.scope_ident or None

        full_name = f"{schema}.{table}" if schema else table
        if full_name in self._session.truncated_tables:
            return

        quote = self._driver.escape_identifier
        ident = f"{quote(schema)}.{quote(table)}" if schema else quote(table)
        if self._driver.execute(f"TRUNCATE TABLE {ident}") != 0:
            self._log.error(f"TRUNCATE 실패: {self._driver.last_error}", f"TRUNCATE TABLE {ident}")
            return

        self._session.truncated_tables.add(full_name)
        self._log.truncated("데이터 적재 전 테이블을 비웠습니다", full_name)
