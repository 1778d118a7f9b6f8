"""
임포트 실행 옵션 및 세션 상태 모델.

ImportOptions는 한 번의 임포트 실행 동안 변경되지 않는 정책 설정이고,
ImportSession은 임포트 진행 중 누적되는 가변 상태이다.

ImportSession 필드별 단일 기록자(Single Writer):
    - scope, scope_ident                     : SqlImporter (생성 시 1회)
    - deferred, ownership_queue,
      rights_queue, truncated_tables         : StatementExecutor
    - cached_settings, current_schema,
      encoding                               : SessionSettingsApplier
그 밖의 컴포넌트는 읽기만 한다.
"""

from dataclasses import dataclass, field
from enum        import Enum
from typing      import List, Optional, Set


class ErrorMode(str, Enum):
    """문장 실행 실패 시 처리 방식."""
    ABORT    = "abort"       # 즉시 임포트 중단
    CONTINUE = "continue"    # 실패 기록 후 다음 문장 진행


class ImportScope(str, Enum):
    """임포트 대상 범위."""
    SERVER   = "server"
    DATABASE = "database"
    SCHEMA   = "schema"
    TABLE    = "table"


@dataclass(frozen=True)
class ImportOptions:
    """
    임포트 정책 옵션 (불변).

    @param data           INSERT / COPY 실행 여부
    @param truncate       데이터 적재 전 대상 테이블을 1회 TRUNCATE
    @param allow_drops    DROP 문 실행 허용
    @param ownership      ALTER ... OWNER TO 문을 큐에 적재 후 마지막에 실행
    @param rights         GRANT / REVOKE 문을 큐에 적재 후 마지막에 실행
    @param roles          CREATE/ALTER/DROP ROLE|USER 허용
    @param tablespaces    CREATE/ALTER/DROP TABLESPACE 허용
    @param schema_create  CREATE SCHEMA 허용
    @param error_mode     실패 시 abort / continue
    @param defer_self     자기 자신에게 영향을 주는 문장을 항상 지연
    @param verbose        실행 직전 SQL을 로그에 출력
    """
    data:          bool      = True
    truncate:      bool      = False
    allow_drops:   bool      = False
    ownership:     bool      = False
    rights:        bool      = False
    roles:         bool      = False
    tablespaces:   bool      = False
    schema_create: bool      = True
    error_mode:    ErrorMode = ErrorMode.ABORT
    defer_self:    bool      = True
    verbose:       bool      = False

    @classmethod
    def from_dict(cls, data: dict) -> "ImportOptions":
        """
        딕셔너리로부터 ImportOptions를 생성한다. 누락된 키는 기본값을 적용한다.

        @param data  옵션 딕셔너리
        @returns     ImportOptions 인스턴스
        @throws      ValueError 잘못된 error_mode 값

        @example
            opts = ImportOptions.from_dict({"allow_drops": True, "error_mode": "continue"})
        """
        return cls(
            data          = bool(data.get("data", True)),
            truncate      = bool(data.get("truncate", False)),
            allow_drops   = bool(data.get("allow_drops", False)),
            ownership     = bool(data.get("ownership", False)),
            rights        = bool(data.get("rights", False)),
            roles         = bool(data.get("roles", False)),
            tablespaces   = bool(data.get("tablespaces", False)),
            schema_create = bool(data.get("schema_create", True)),
            error_mode    = ErrorMode(data.get("error_mode", ErrorMode.ABORT.value)),
            defer_self    = bool(data.get("defer_self", True)),
            verbose       = bool(data.get("verbose", False)),
        )


@dataclass
class ImportSession:
    """
    임포트 진행 상태.

    하나의 임포트 실행에만 소속되며, 동시에 여러 실행이 공유하지 않는다.
    """
    scope:            ImportScope   = ImportScope.DATABASE
    scope_ident:      str           = ""
    deferred:         List[str]     = field(default_factory=list)
    ownership_queue:  List[str]     = field(default_factory=list)
    rights_queue:     List[str]     = field(default_factory=list)
    truncated_tables: Set[str]      = field(default_factory=set)
    cached_settings:  List[str]     = field(default_factory=list)
    current_schema:   Optional[str] = None
    encoding:         Optional[str] = None
