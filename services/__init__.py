"""
services 패키지.

PostgreSQL 접속, 의존성 정렬, 덤프, 내보내기, 임포트를 담당한다.
    - connection_service : 접속 / 접속 테스트 / 스키마 목록
    - pg_driver          : psycopg2 기반 드라이버 경계 (execute, select_set, escape_*)
    - dependency_graph   : 객체 의존성 그래프와 결정적 위상 정렬
    - dump               : 카탈로그 -> SQL 스크립트
    - export             : 조회 결과 -> SQL / CSV / TSV
    - importer           : SQL / JSON -> 대상 DB

DB 접근이 필요한 서비스는 생성자에서 PgDriver(또는 같은 인터페이스의 객체)를 주입받는다.

외부 모듈에서는 패키지 레벨 임포트를 사용한다:
    from services import ConnectionService, DependencyGraph
"""

from services.connection_service import ConnectionService
from services.dependency_graph   import DependencyGraph, DuplicateNodeError, UnknownNodeError
from services.pg_driver          import PgDriver, RecordSet

__all__ = [
    "ConnectionService",
    "DependencyGraph",
    "DuplicateNodeError",
    "PgDriver",
    "RecordSet",
    "UnknownNodeError",
]
