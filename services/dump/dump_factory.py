"""
객체 종류 -> Dumper 클래스 등록부.

객체 종류는 닫힌 열거형(ObjectKind)으로 관리하고, 종류별 Dumper 클래스는
모듈 로드 시점에 확정된 딕셔너리로 조회한다. 등록되지 않은 종류는
UnsupportedObjectKindError로 즉시 거부한다.

사용처:
    - SchemaDumper   : 의존성 그래프 순서대로 객체별 Dumper 생성
    - DatabaseDumper : 롤 덤프
"""

from enum import Enum
from typing import Callable, Dict, Optional, Type, Union

from services.dump.aggregate_dumper import AggregateDumper
from services.dump.base_dumper      import BaseDumper
from services.dump.domain_dumper    import DomainDumper
from services.dump.function_dumper  import FunctionDumper
from services.dump.role_dumper      import RoleDumper
from services.dump.rule_dumper      import RuleDumper
from services.dump.sequence_dumper  import SequenceDumper
from services.dump.table_dumper     import TableDumper
from services.dump.trigger_dumper   import TriggerDumper
from services.dump.type_dumper      import TypeDumper
from services.dump.view_dumper      import ViewDumper


LogCallback = Callable[[str, str], None]


class ObjectKind(str, Enum):
    """덤프 가능한 객체 종류. 값은 ObjectNode.type 과 같다."""
    TABLE     = "table"
    VIEW      = "view"
    FUNCTION  = "function"
    SEQUENCE  = "sequence"
    TYPE      = "type"
    DOMAIN    = "domain"
    AGGREGATE = "aggregate"
    ROLE      = "role"
    TRIGGER   = "trigger"
    RULE      = "rule"


class UnsupportedObjectKindError(ValueError):
    """등록되지 않은 객체 종류로 Dumper를 요청했을 때 발생한다."""


DUMPERS: Dict[ObjectKind, Type[BaseDumper]] = {
    ObjectKind.TABLE:     TableDumper,
    ObjectKind.VIEW:      ViewDumper,
    ObjectKind.FUNCTION:  FunctionDumper,
    ObjectKind.SEQUENCE:  SequenceDumper,
    ObjectKind.TYPE:      TypeDumper,
    ObjectKind.DOMAIN:    DomainDumper,
    ObjectKind.AGGREGATE: AggregateDumper,
    ObjectKind.ROLE:      RoleDumper,
    ObjectKind.TRIGGER:   TriggerDumper,
    ObjectKind.RULE:      RuleDumper,
}


class DumpFactory:
    """
    ObjectKind로 Dumper 인스턴스를 만든다.

    @example
        dumper = DumpFactory.create("table", driver, writer, log)
        dumper.dump({"schema": "public", "table": "users"}, options)
    """

    @staticmethod
    def resolve(kind: Union[ObjectKind, str]) -> ObjectKind:
        """
        문자열 또는 ObjectKind를 ObjectKind로 변환한다.

        @throws UnsupportedObjectKindError 알 수 없는 종류
        """
        try:
            return ObjectKind(kind.lower() if isinstance(kind, str) else kind)
        except ValueError:
            raise UnsupportedObjectKindError(f"지원하지 않는 덤프 대상입니다: {kind}") from None

    @staticmethod
    def create(
        kind:   Union[ObjectKind, str],
        driver,
        writer,
        log:    Optional[LogCallback] = None,
        parent  = None,
    ) -> BaseDumper:
        """
        Dumper를 생성한다.

        @param kind    객체 종류
        @param driver  드라이버 경계 객체
        @param writer  텍스트 싱크
        @param log     로그 콜백
        @param parent  부모 오케스트레이터 (queues / graph 제공, 단독 실행이면 None)
        @returns       Dumper 인스턴스
        @throws        UnsupportedObjectKindError 등록되지 않은 종류
        """
        dumper_class = DUMPERS[DumpFactory.resolve(kind)]
        return dumper_class(driver, writer, log, parent)
