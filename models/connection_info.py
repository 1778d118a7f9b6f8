"""
PostgreSQL 접속 정보 데이터 모델.

덤프 원본 서버 또는 임포트 대상 서버 하나에 접속하는 데 필요한 파라미터를 캡슐화한다.

사용처:
    - ConnectionService : connect() / test_connection() 시 DSN 파라미터 제공
    - ConnectionService : 접속 및 재접속 로그의 표시용 이름
"""

from dataclasses import dataclass, asdict
from typing      import Optional

from config import APP_NAME, DEFAULT_DB, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_USER


@dataclass
class ConnectionInfo:
    """
    PostgreSQL 서버 접속에 필요한 정보를 캡슐화한다.

    @param host              서버 IP 주소 또는 도메인명
    @param port              서버 포트 번호
    @param user              접속 사용자명
    @param password          접속 비밀번호
    @param dbname            접속 대상 데이터베이스명
    @param sslmode           libpq sslmode (None이면 libpq 기본값)
    @param connect_timeout   접속 타임아웃 (초, None이면 무제한)
    @param application_name  pg_stat_activity에 표시될 애플리케이션 이름

    @example
        info = ConnectionInfo(host="10.0.0.1", user="admin", password="pw", dbname="mydb")
        conn = psycopg2.connect(**info.dsn)
    """
    host:             str           = DEFAULT_HOST
    port:             int           = DEFAULT_PORT
    user:             str           = DEFAULT_USER
    password:         str           = ""
    dbname:           str           = DEFAULT_DB
    sslmode:          Optional[str] = None
    connect_timeout:  Optional[int] = None
    application_name: str           = APP_NAME

    @property
    def display_name(self) -> str:
        """
        로그 표시용 이름을 반환한다. 비밀번호는 포함하지 않는다.

        @returns "user@host:port/dbname" 형식 문자열
        """
        return f"{self.user}@{self.host}:{self.port}/{self.dbname}"

    @property
    def dsn(self) -> dict:
        """
        psycopg2.connect()에 키워드 인자로 전달할 파라미터 딕셔너리를 반환한다.

        값이 None인 선택 항목은 libpq 기본값을 따르도록 제외한다.

        @returns psycopg2 connect() 호환 딕셔너리
        """
        params = {
            "host":             self.host,
            "port":             self.port,
            "user":             self.user,
            "password":         self.password,
            "dbname":           self.dbname,
            "application_name": self.application_name,
        }
        if self.sslmode:
            params["sslmode"] = self.sslmode
        if self.connect_timeout is not None:
            params["connect_timeout"] = self.connect_timeout
        return params

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ConnectionInfo":
        """
        딕셔너리로부터 ConnectionInfo 인스턴스를 생성한다.

        누락된 키에 대해 기본값을 적용하므로, 불완전한 딕셔너리도 안전하게 처리한다.

        @param data  접속 정보가 담긴 딕셔너리
        @returns     ConnectionInfo 인스턴스
        """
        timeout = data.get("connect_timeout")
        return cls(
            host             = data.get("host", DEFAULT_HOST),
            port             = int(data.get("port", DEFAULT_PORT)),
            user             = data.get("user", DEFAULT_USER),
            password         = data.get("password", ""),
            dbname           = data.get("dbname", DEFAULT_DB),
            sslmode          = data.get("sslmode"),
            connect_timeout  = int(timeout) if timeout is not None else None,
            application_name = data.get("application_name", APP_NAME),
        )
