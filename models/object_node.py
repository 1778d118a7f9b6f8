"""
의존성 그래프 노드 모델.

덤프 순서 계산에 참여하는 데이터베이스 객체 하나(함수, 테이블, 도메인, 타입 등)를
표현한다. DependencyGraph에 등록된 뒤에는 그래프가 단독으로 소유하며,
position 값은 정렬 알고리즘만 변경한다.

사용처:
    - DependencyGraph : add_node() / topological_sort()
    - SchemaDumper    : 카탈로그 조회 결과를 노드로 변환하여 덤프 순서 결정
"""

from dataclasses import dataclass, field
from typing      import Any, Dict, List


@dataclass
class ObjectNode:
    """
    의존성 그래프에 참여하는 DB 객체.

    식별자는 카탈로그 oid이며, 하나의 그래프 안에서 oid는 유일해야 한다.

    @param oid           pg_catalog 상의 객체 OID (문자열)
    @param type          객체 종류 ("function", "table", "domain", "type", "view" ...)
    @param name          객체명 (따옴표 없음)
    @param schema        스키마명 (따옴표 없음)
    @param metadata      객체 종류별 부가 정보 (예: {"relkind": "m"})
    @param dependencies  이 노드가 의존하는 OID 목록 (삽입 순서 유지)
    @param position      정렬 후 출력 위치 (정렬 전 -1)

    @example
        node = ObjectNode("16384", "table", "users", "public")
        node.add_dependency("16390")
        str(node)   # -> "Table public.users (OID: 16384, Position: -1)"
    """
    oid:          str
    type:         str
    name:         str
    schema:       str
    metadata:     Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str]      = field(default_factory=list)
    position:     int            = -1

    def add_dependency(self, depends_on_oid: str) -> None:
        """의존 대상 OID를 중복 없이 추가한다."""
        if depends_on_oid not in self.dependencies:
            self.dependencies.append(depends_on_oid)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    def __str__(self) -> str:
        return (
            f"{self.type.capitalize()} {self.qualified_name} "
            f"(OID: {self.oid}, Position: {self.position})"
        )
