"""
psycopg2 기반 드라이버 경계(Driver Boundary).

덤프/임포트 엔진은 DB에 직접 접근하지 않고, 이 모듈의 PgDriver가 제공하는
최소 인터페이스만 사용한다:

    execute(sql)            -> int  (0 = 성공, 그 외 = 실패)
    select_set(sql)         -> RecordSet 또는 None (실패 시)
    escape_identifier(name) -> "quoted"
    escape_literal(value)   -> 'quoted'
    escape_bytea(data)      -> \\x...
    server_version          -> float (예: 9.6, 14.0)

예외 대신 상태값을 반환하고, 마지막 오류 메시지는 last_error에 보관한다.
PgDriver는 autocommit=True 커넥션을 전제로 한다 (ConnectionService.connect() 참조).
트랜잭션이 필요한 호출자(CursorReader)는 BEGIN / COMMIT / ROLLBACK을 직접 실행한다.

COPY ... FROM stdin 문장은 본문 데이터와 함께 execute()에 전달되면
cursor.copy_expert()로 데이터를 스트리밍한다.

사용처:
    - 모든 Dumper / CursorReader : select_set(), escape_*()
    - StatementExecutor          : execute()
    - SessionSettingsApplier     : execute() (재접속 후 설정 재적용)
"""

import io
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import psycopg2
import psycopg2.extensions
import psycopg2.extras


LogCallback = Callable[[str, str], None]

_IDENT = r'(?:"(?:[^"]|"")*"|[^\W\d][\w$]*)'

# COPY <table>[.<table>] [(<cols>)] FROM ...
# 괄호 쿼리(COPY (SELECT ...) TO ...)나 대상과 FROM 사이의 다른 토큰은 허용하지 않는다.
COPY_FROM_PATTERN = (
    rf"COPY\s+{_IDENT}(?:\s*\.\s*{_IDENT})?"
    rf"(?:\s*\(\s*{_IDENT}(?:\s*,\s*{_IDENT})*\s*\)\s*|\s+)FROM\b"
)
COPY_FROM_STDIN_PATTERN = COPY_FROM_PATTERN + r"\s+STDIN\b"

# COPY 헤더 (첫 줄) 와 데이터 본문을 분리한다.
_COPY_STDIN_RE = re.compile(
    rf"^\s*({COPY_FROM_STDIN_PATTERN}[^;]*;)[ \t]*\r?\n",
    re.IGNORECASE,
)


def _copy_payload(data: str) -> str:
    """COPY 본문에서 마지막 \\. 종료 줄을 제거한다."""
    lines = data.splitlines(keepends=True)
    if lines and lines[-1].rstrip("\r\n") == "\\.":
        lines.pop()
    return "".join(lines)


def version_from_number(server_version: int) -> float:
    """
    libpq 정수 버전을 major 버전 실수로 변환한다.

    10 이상은 major 한 자리, 9.x 이하는 major.minor 두 자리로 구성된다.

    @param server_version  libpq 정수 버전 (예: 90605, 140005)
    @returns               major 버전 (예: 9.6, 14.0)

    @example
        version_from_number(90605)    # -> 9.6
        version_from_number(140005)   # -> 14.0
    """
    if server_version >= 100000:
        return float(server_version // 10000)
    major = server_version // 10000
    minor = (server_version // 100) % 100
    return float(f"{major}.{minor}")


class RecordSet:
    """
    select_set() 결과 집합.

    모든 행을 딕셔너리로 보관하며, 커서 스타일(eof / fields / move_next)과
    파이썬 이터레이션을 모두 지원한다.

    내부 상태:
        _rows    : 행 딕셔너리 리스트
        _columns : (컬럼명, 타입 OID) 튜플 리스트
        _index   : 현재 커서 위치
    """

    def __init__(
        self,
        rows:    List[Dict[str, Any]],
        columns: Optional[List[Tuple[str, Optional[int]]]] = None,
    ):
        self._rows    = rows
        self._columns = columns if columns is not None else (
            [(name, None) for name in rows[0].keys()] if rows else []
        )
        self._index = 0

    @property
    def eof(self) -> bool:
        return self._index >= len(self._rows)

    @property
    def fields(self) -> Optional[Dict[str, Any]]:
        """현재 위치의 행. EOF이면 None."""
        if self.eof:
            return None
        return self._rows[self._index]

    @property
    def columns(self) -> List[Tuple[str, Optional[int]]]:
        return self._columns

    @property
    def record_count(self) -> int:
        return len(self._rows)

    def move_next(self) -> None:
        if not self.eof:
            self._index += 1

    def move_first(self) -> None:
        self._index = 0

    def first(self) -> Optional[Dict[str, Any]]:
        return self._rows[0] if self._rows else None

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __bool__(self) -> bool:
        # 빈 결과도 "조회 성공"이므로 참으로 취급한다. 실패는 None으로 구분한다.
        return True


class PgDriver:
    """
    psycopg2 커넥션을 감싼 드라이버 경계 구현.

    내부 상태:
        _conn           : autocommit=True 상태의 psycopg2 커넥션
        _log            : 로그 콜백
        _server_version : 캐시된 major 버전
        _current_user   : 캐시된 current_user
        _is_superuser   : 캐시된 슈퍼유저 여부
        last_error      : 마지막 실패 메시지 (성공 시 빈 문자열로 초기화되지 않음)
    """

    def __init__(
        self,
        conn: psycopg2.extensions.connection,
        log:  Optional[LogCallback] = None,
    ):
        """
        PgDriver를 초기화한다.

        @param conn  활성 psycopg2 커넥션 (autocommit=True 권장)
        @param log   로그 콜백 (tag, message)
        """
        self._conn           = conn
        self._log            = log or (lambda tag, msg: None)
        self._server_version: Optional[float] = None
        self._current_user:   Optional[str]   = None
        self._is_superuser:   Optional[bool]  = None
        self.last_error = ""

    @property
    def connection(self) -> psycopg2.extensions.connection:
        return self._conn

    # ==================================================================
    # 서버 정보
    # ==================================================================

    @property
    def server_version(self) -> float:
        """
        접속 서버의 major 버전.

        @returns 예: 9.6, 12.0, 16.0
        """
        if self._server_version is None:
            self._server_version = version_from_number(self._conn.server_version)
        return self._server_version

    @property
    def current_user(self) -> str:
        if self._current_user is None:
            rs = self.select_set("SELECT current_user AS usename")
            self._current_user = rs.first()["usename"] if rs and rs.first() else ""
        return self._current_user

    @property
    def is_superuser(self) -> bool:
        if self._is_superuser is None:
            rs = self.select_set(
                "SELECT rolsuper FROM pg_catalog.pg_roles WHERE rolname = current_user"
            )
            self._is_superuser = bool(rs and rs.first() and rs.first()["rolsuper"])
        return self._is_superuser

    # ==================================================================
    # 실행
    # ==================================================================

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        결과 집합이 필요 없는 SQL을 실행한다.

        COPY ... FROM stdin 헤더 뒤에 데이터 본문이 이어지는 문장은
        copy_expert()로 본문을 전송한다. 본문 끝의 \\. 종료 줄은 전송하지 않는다.

        @param sql     실행할 SQL
        @param params  바인드 파라미터 (선택)
        @returns       0 (성공) / -1 (실패, last_error에 메시지 보관)
        """
        try:
            with self._conn.cursor() as cur:
                match = _COPY_STDIN_RE.match(sql)
                if match and params is None:
                    payload = _copy_payload(sql[match.end():])
                    cur.copy_expert(match.group(1), io.StringIO(payload))
                else:
                    cur.execute(sql, params)
            return 0
        except psycopg2.Error as e:
            self.last_error = (e.pgerror or str(e)).strip()
            return -1

    def select_set(
        self,
        sql:    str,
        params: Optional[Sequence[Any]] = None,
    ) -> Optional[RecordSet]:
        """
        조회 SQL을 실행하고 전체 결과를 RecordSet으로 반환한다.

        @param sql     조회 SQL
        @param params  바인드 파라미터 (선택)
        @returns       RecordSet, 실패 시 None (last_error에 메시지 보관)

        @example
            rs = driver.select_set("SELECT relname FROM pg_class WHERE oid = %s", (oid,))
            if rs is None:
                log("WARN", driver.last_error)
        """
        try:
            with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(sql, params)
                if cur.description is None:
                    return RecordSet([], [])
                columns = [(col.name, col.type_code) for col in cur.description]
                rows    = [dict(row) for row in cur.fetchall()]
                return RecordSet(rows, columns)
        except psycopg2.Error as e:
            self.last_error = (e.pgerror or str(e)).strip()
            return None

    # ==================================================================
    # 이스케이프
    # ==================================================================

    def escape_identifier(self, name: str) -> str:
        return psycopg2.extensions.quote_ident(name, self._conn)

    def escape_literal(self, value: Any) -> str:
        """
        값을 SQL 문자열 리터럴로 변환한다.

        커넥션의 인코딩과 standard_conforming_strings 설정을 반영하기 위해
        adapt() 결과를 커넥션에 prepare한 뒤 인용한다.

        @param value  리터럴로 변환할 값 (str()로 변환 후 인용)
        @returns      'quoted' 형식 문자열
        """
        adapted = psycopg2.extensions.adapt(str(value))
        adapted.prepare(self._conn)
        encoding = psycopg2.extensions.encodings.get(self._conn.encoding, "utf-8")
        return adapted.getquoted().decode(encoding)

    @staticmethod
    def escape_bytea(data: bytes) -> str:
        """bytea 값을 hex 출력 형식(\\x...)으로 변환한다."""
        return "\\x" + bytes(data).hex()
