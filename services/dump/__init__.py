"""
services.dump 패키지.

카탈로그 메타데이터로부터 의존성 순서가 보장된 SQL 스크립트를 재구성한다.
    - DumpFactory     : ObjectKind -> Dumper 등록부
    - SchemaDumper    : 스키마 단위 오케스트레이터 (의존성 그래프 순서)
    - DatabaseDumper  : 데이터베이스 단위 오케스트레이터 (롤, 확장, 전체 스키마)
    - DumpWriter      : 텍스트 / gzip 출력 싱크

외부 모듈에서는 패키지 레벨 임포트를 사용한다:
    from services.dump import DatabaseDumper, DumpWriter
"""

from services.dump.base_dumper   import BaseDumper, DumpQueues
from services.dump.dump_factory  import DumpFactory, ObjectKind, UnsupportedObjectKindError
from services.dump.schema_dumper import DatabaseDumper, SchemaDumper
from services.dump.writer        import DumpWriter

__all__ = [
    "BaseDumper",
    "DatabaseDumper",
    "DumpFactory",
    "DumpQueues",
    "DumpWriter",
    "ObjectKind",
    "SchemaDumper",
    "UnsupportedObjectKindError",
]
