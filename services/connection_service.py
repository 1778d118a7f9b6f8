"""
PostgreSQL 접속 관리 서비스.

psycopg2를 통한 연결 생성, 테스트, 스키마 목록 조회 기능을 제공하고,
연결된 커넥션을 드라이버 경계(PgDriver)로 감싸 덤프/임포트 엔진에 전달한다.

단일 활성 커넥션(Single Active Connection) 패턴을 사용하며,
한 시점에 하나의 DB 접속만 유지한다. 새 접속 시 기존 커넥션은 자동으로 닫힌다.

사용처:
    - DatabaseDumper : list_user_schemas() 로 덤프 대상 스키마 결정
    - SqlImporter    : reconnect() 로 얻은 드라이버에 세션 설정 재적용
"""

from typing import Callable, List, Optional

import psycopg2
import psycopg2.extensions

from models.connection_info import ConnectionInfo
from services.pg_driver     import PgDriver


LogCallback = Callable[[str, str], None]


class ConnectionService:
    """
    PostgreSQL 서버 접속을 관리한다.

    내부 상태:
        _conn   : 현재 활성 psycopg2 커넥션 또는 None
        _driver : _conn을 감싼 PgDriver 또는 None
        _info   : 마지막 접속에 사용한 ConnectionInfo (reconnect용)
    """

    def __init__(self, log: Optional[LogCallback] = None):
        self._conn:   Optional[psycopg2.extensions.connection] = None
        self._driver: Optional[PgDriver]       = None
        self._info:   Optional[ConnectionInfo] = None
        self._log = log or (lambda tag, msg: None)

    @property
    def driver(self) -> Optional[PgDriver]:
        """
        현재 활성 드라이버를 반환한다.

        @returns PgDriver 또는 None (미접속)
        """
        return self._driver

    @property
    def is_connected(self) -> bool:
        """
        커넥션 활성 여부를 반환한다.

        psycopg2 connection.closed == 0 이면 열린 상태이다.

        @returns True이면 접속 중, False이면 미접속
        """
        if self._conn is None:
            return False
        return self._conn.closed == 0

    def connect(self, info: ConnectionInfo) -> PgDriver:
        """
        주어진 접속 정보로 PostgreSQL에 연결하고 PgDriver를 반환한다.

        기존 커넥션이 있으면 먼저 close()를 호출하여 정리한다.
        생성된 커넥션은 autocommit=True로 설정된다. 트랜잭션이 필요한 경우
        (CursorReader) 호출자가 BEGIN / COMMIT을 직접 실행한다.

        @param info  접속 정보
        @returns     PgDriver
        @throws      psycopg2.OperationalError 접속 실패 시

        @example
            service = ConnectionService()
            driver  = service.connect(ConnectionInfo(dbname="mydb"))
            driver.server_version   # -> 16.0
        """
        self.close()
        self._conn = psycopg2.connect(**info.dsn)
        self._conn.set_session(autocommit=True)
        self._driver = PgDriver(self._conn, self._log)
        self._info   = info
        self._log("OK", f"접속 완료: {info.display_name} (PostgreSQL {self._driver.server_version})")
        return self._driver

    def reconnect(self) -> PgDriver:
        """
        마지막 접속 정보로 다시 연결한다.

        @returns  새 PgDriver
        @throws   RuntimeError 이전 접속 정보가 없을 때
        """
        if self._info is None:
            raise RuntimeError("재접속할 접속 정보가 없습니다.")
        self._log("WARN", f"재접속 시도: {self._info.display_name}")
        return self.connect(self._info)

    def test_connection(self, info: ConnectionInfo) -> bool:
        """
        접속 정보의 유효성을 테스트한다.

        테스트 전용 일회성 커넥션을 생성하고 즉시 닫는다.
        현재 활성 커넥션에는 영향을 주지 않는다.

        @param info  테스트할 접속 정보
        @returns     True (접속 성공 시)
        @throws      psycopg2.OperationalError 접속 실패 시 (호출자가 처리해야 함)
        """
        test_conn = psycopg2.connect(**info.dsn)
        test_conn.close()
        return True

    def get_schemas(self) -> List[str]:
        """
        현재 접속된 DB의 사용자 정의 스키마 목록을 조회한다.

        시스템 스키마(pg_* 접두어, information_schema)를 제외하고
        public 스키마가 최상단에 오도록 정렬한다.

        @returns  스키마명 리스트 (public 우선, 나머지 알파벳순)
        @throws   RuntimeError 미접속 상태 또는 조회 실패 시
        """
        if not self.is_connected:
            raise RuntimeError("DB에 접속되어 있지 않습니다.")
        return list_user_schemas(self._driver)

    def close(self):
        """
        활성 커넥션을 닫고 내부 참조를 None으로 초기화한다.

        이미 닫힌 커넥션이거나 None인 경우에도 안전하게 처리한다.
        """
        if self._conn is not None:
            if self._conn.closed == 0:
                self._conn.close()
            self._conn   = None
            self._driver = None


def list_user_schemas(driver) -> List[str]:
    """
    시스템 스키마를 제외한 사용자 스키마 목록을 조회한다.

    @param driver  드라이버 경계 객체
    @returns       스키마명 리스트 (public 우선, 나머지 알파벳순)
    @throws        RuntimeError 조회 실패 시
    """
    rs = driver.select_set("""
        SELECT nspname
        FROM   pg_catalog.pg_namespace
        WHERE  nspname NOT LIKE 'pg\\_%'
        AND    nspname != 'information_schema'
        ORDER  BY nspname = 'public' DESC, nspname
    """)
    if rs is None:
        raise RuntimeError(f"스키마 목록 조회 실패: {driver.last_error}")
    return [row["nspname"] for row in rs]
