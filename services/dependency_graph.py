"""
DB 객체 의존성 그래프.

함수, 테이블, 도메인, 타입 등 서로를 참조하는 객체들의 출력 순서를 계산한다.
저장소로 networkx.DiGraph를 사용하며, 간선 방향은 "from이 to에 의존한다"이다.

정렬 규칙:
    - Kahn 알고리즘으로 의존 대상이 먼저 오도록 정렬한다.
    - 동시에 출력 가능한 노드가 여러 개이면 등록(삽입) 순서가 빠른 노드가 먼저 온다.
      같은 스키마를 두 번 덤프하면 바이트 단위로 동일한 결과가 나와야 하기 때문이다.
    - 순환에 걸려 해소되지 않은 노드는 마지막에 등록 순서대로 붙인다.
      순환 노드도 position을 부여받아 should_defer() 판단에 참여한다.

간선의 양 끝 OID는 반드시 먼저 add_node()로 등록되어 있어야 한다.
등록되지 않은 OID를 참조하는 간선은 UnknownNodeError로 거부한다.

사용처:
    - SchemaDumper : 타입/도메인/함수/테이블/뷰의 출력 순서 결정
    - TableDumper  : 컬럼 기본값이 뒤에 출력될 함수를 호출하는지 판단 (should_defer)
"""

import heapq
from typing import Dict, List, Optional

import networkx as nx

from models.object_node import ObjectNode


class DuplicateNodeError(ValueError):
    """이미 등록된 OID로 노드를 다시 등록하려 할 때 발생한다."""


class UnknownNodeError(KeyError):
    """등록되지 않은 OID를 간선 끝점으로 사용할 때 발생한다."""


class DependencyGraph:
    """
    ObjectNode 간 의존 관계를 보관하고 위상 정렬한다.

    내부 상태:
        _graph    : networkx.DiGraph (노드 속성 "node"에 ObjectNode 보관)
        _order    : OID -> 등록 순번
        _sorted   : 마지막 정렬 결과 (그래프 변경 시 None으로 무효화)
        _circular : 마지막 정렬에서 해소되지 않은 노드 목록

    @example
        graph = DependencyGraph()
        graph.add_node(ObjectNode("1", "function", "gen_id", "public"))
        graph.add_node(ObjectNode("2", "table", "items", "public"))
        graph.add_edge("2", "1")          # items -> gen_id 의존
        [n.oid for n in graph.topological_sort()]   # -> ["1", "2"]
    """

    def __init__(self):
        self._graph:    nx.DiGraph                   = nx.DiGraph()
        self._order:    Dict[str, int]               = {}
        self._sorted:   Optional[List[ObjectNode]]   = None
        self._circular: List[ObjectNode]             = []

    # ==================================================================
    # 구성
    # ==================================================================

    def add_node(self, node: ObjectNode) -> None:
        """
        노드를 등록한다.

        @param node  등록할 노드
        @throws      DuplicateNodeError 같은 OID가 이미 등록된 경우
        """
        if node.oid in self._order:
            raise DuplicateNodeError(f"이미 등록된 노드입니다: {node}")
        self._order[node.oid] = len(self._order)
        self._graph.add_node(node.oid, node=node)
        self._sorted = None

    def add_edge(self, from_oid: str, to_oid: str) -> None:
        """
        from_oid가 to_oid에 의존함을 기록한다 (to_oid가 먼저 출력되어야 함).

        자기 자신을 가리키는 간선도 기록하며, 해당 노드는 순환 노드로 취급된다.

        @param from_oid  의존하는 객체 OID
        @param to_oid    의존 대상 객체 OID
        @throws          UnknownNodeError 끝점 중 하나라도 등록되지 않은 경우
        """
        for oid in (from_oid, to_oid):
            if oid not in self._order:
                raise UnknownNodeError(oid)
        self._graph.add_edge(from_oid, to_oid)
        self._graph.nodes[from_oid]["node"].add_dependency(to_oid)
        self._sorted = None

    # ==================================================================
    # 정렬
    # ==================================================================

    def topological_sort(self) -> List[ObjectNode]:
        """
        의존 대상이 먼저 오도록 노드를 정렬하고 각 노드의 position을 갱신한다.

        @returns  정렬된 노드 리스트 (순환 노드는 마지막에 등록 순서대로)
        """
        remaining = {oid: self._graph.out_degree(oid) for oid in self._order}
        ready = [(self._order[oid], oid) for oid, count in remaining.items() if count == 0]
        heapq.heapify(ready)

        result: List[ObjectNode] = []
        while ready:
            _, oid = heapq.heappop(ready)
            result.append(self._graph.nodes[oid]["node"])
            for dependent in self._graph.predecessors(oid):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (self._order[dependent], dependent))

        resolved = {node.oid for node in result}
        self._circular = [
            self._graph.nodes[oid]["node"]
            for oid in sorted(self._order, key=self._order.get)
            if oid not in resolved
        ]
        result.extend(self._circular)

        for position, node in enumerate(result):
            node.position = position
        self._sorted = result
        return list(result)

    def _ensure_sorted(self) -> None:
        if self._sorted is None:
            self.topological_sort()

    # ==================================================================
    # 순환 탐지
    # ==================================================================

    def has_circular_dependencies(self) -> bool:
        self._ensure_sorted()
        return bool(self._circular)

    def get_circular_nodes(self) -> List[ObjectNode]:
        """
        순수 위상 제거로 해소되지 않은 노드 목록을 반환한다.

        순환 자체에 속한 노드뿐 아니라 순환 노드에 의존하는 노드도 포함된다.

        @returns  순환 노드 리스트 (등록 순서)
        """
        self._ensure_sorted()
        return list(self._circular)

    def find_cycles(self) -> List[List[ObjectNode]]:
        """
        실제 순환 경로를 나열한다. 경고 메시지 작성용이다.

        @returns  순환 하나당 노드 리스트
        """
        return [
            [self._graph.nodes[oid]["node"] for oid in cycle]
            for cycle in nx.simple_cycles(self._graph)
        ]

    # ==================================================================
    # 조회
    # ==================================================================

    def get_position(self, oid: str) -> int:
        """
        노드의 출력 위치를 반환한다.

        @param oid  조회할 OID
        @returns    position, 등록되지 않은 OID이면 -1
        """
        if oid not in self._order:
            return -1
        self._ensure_sorted()
        return self._graph.nodes[oid]["node"].position

    def should_defer(self, from_oid: str, to_oid: str) -> bool:
        """
        from이 참조하는 to가 from보다 뒤에 출력되는지 판단한다.

        True이면 참조 구문(컬럼 기본값 등)을 지연 구문으로 분리해야 한다.
        바로 앞에 출력되는 노드를 참조하는 것은 지연 대상이 아니다.

        @param from_oid  참조하는 객체 OID
        @param to_oid    참조되는 객체 OID
        @returns         position(to) > position(from)

        @example
            graph.should_defer("table_oid", "func_oid")   # 함수가 테이블 뒤에 오면 True
        """
        return self.get_position(to_oid) > self.get_position(from_oid)

    def get_node(self, oid: str) -> Optional[ObjectNode]:
        if oid not in self._order:
            return None
        return self._graph.nodes[oid]["node"]

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, oid: str) -> bool:
        return oid in self._order
