"""
models 패키지.

데이터 전송 객체(Data Transfer Object) 및 도메인 모델을 정의한다.
    - ConnectionInfo : 접속 정보
    - ObjectNode     : 의존성 그래프 노드
    - DumpOptions    : 덤프 실행 옵션
    - ImportOptions  : 임포트 정책 옵션
    - ImportSession  : 임포트 진행 상태

외부 모듈에서는 패키지 레벨 임포트를 사용한다:
    from models import DumpOptions, ObjectNode
"""

from models.connection_info import ConnectionInfo
from models.dump_options    import DumpOptions, InsertFormat
from models.import_options  import ErrorMode, ImportOptions, ImportScope, ImportSession
from models.object_node     import ObjectNode

__all__ = [
    "ConnectionInfo",
    "DumpOptions",
    "ErrorMode",
    "ImportOptions",
    "ImportScope",
    "ImportSession",
    "InsertFormat",
    "ObjectNode",
]
