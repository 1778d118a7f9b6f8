"""
덤프 실행 옵션 모델.

한 번의 덤프 실행 동안 변경되지 않는 설정값을 캡슐화한다.
UI/CLI 등 외부 계층에서 넘어오는 딕셔너리를 from_dict()로 변환하여 사용한다.

사용처:
    - SchemaDumper / DatabaseDumper : 덤프 전체 흐름 제어
    - 각 Dumper                     : DROP / IF NOT EXISTS / COMMENT 출력 여부 판단
    - SqlFormatter                  : insert_format, batch_size
"""

from dataclasses import asdict, dataclass
from enum        import Enum

from config import SCHEMA_DUMP_BATCH_SIZE


class InsertFormat(str, Enum):
    """데이터 출력 형식."""
    COPY   = "copy"      # COPY ... FROM stdin 블록
    MULTI  = "multi"     # batch_size 단위 다중 행 INSERT
    SINGLE = "single"    # 행마다 INSERT 한 문장


@dataclass(frozen=True)
class DumpOptions:
    """
    덤프 실행 옵션 (불변).

    @param clean             True이면 CREATE 앞에 DROP ... IF EXISTS ... CASCADE 출력
    @param if_not_exists     True이면 지원되는 객체에 IF NOT EXISTS 부여
    @param all_roles         True이면 시스템 롤(postgres, pg_*)까지 덤프
    @param include_comments  True이면 COMMENT ON 구문 출력
    @param data_only         True이면 데이터만 출력 (구조 생략)
    @param structure_only    True이면 구조만 출력 (데이터 생략)
    @param batch_size        multi INSERT 한 문장당 최대 행 수
    @param insert_format     데이터 출력 형식 (copy / multi / single)

    @example
        options = DumpOptions.from_dict({"clean": True, "insert_format": "multi"})
        options.insert_format   # -> InsertFormat.MULTI
    """
    clean:            bool         = False
    if_not_exists:    bool         = False
    all_roles:        bool         = False
    include_comments: bool         = True
    data_only:        bool         = False
    structure_only:   bool         = False
    batch_size:       int          = SCHEMA_DUMP_BATCH_SIZE
    insert_format:    InsertFormat = InsertFormat.COPY

    def __post_init__(self):
        if self.data_only and self.structure_only:
            raise ValueError("data_only와 structure_only는 동시에 지정할 수 없습니다.")
        if self.batch_size < 1:
            raise ValueError(f"batch_size는 1 이상이어야 합니다: {self.batch_size}")

    @property
    def include_structure(self) -> bool:
        return not self.data_only

    @property
    def include_data(self) -> bool:
        return not self.structure_only

    def to_dict(self) -> dict:
        data = asdict(self)
        data["insert_format"] = self.insert_format.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DumpOptions":
        """
        딕셔너리로부터 DumpOptions를 생성한다.

        누락된 키는 기본값을 적용한다. 알 수 없는 insert_format 값은 ValueError를 발생시킨다.

        @param data  옵션 딕셔너리
        @returns     DumpOptions 인스턴스
        @throws      ValueError 잘못된 insert_format / 상호 배타 옵션 동시 지정 시
        """
        return cls(
            clean            = bool(data.get("clean", False)),
            if_not_exists    = bool(data.get("if_not_exists", False)),
            all_roles        = bool(data.get("all_roles", False)),
            include_comments = bool(data.get("include_comments", True)),
            data_only        = bool(data.get("data_only", False)),
            structure_only   = bool(data.get("structure_only", False)),
            batch_size       = int(data.get("batch_size", SCHEMA_DUMP_BATCH_SIZE)),
            insert_format    = InsertFormat(data.get("insert_format", InsertFormat.COPY.value)),
        )
