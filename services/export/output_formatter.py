"""
행 스트림 출력 포맷터 기반 클래스.

대용량 테이블을 메모리에 올리지 않고 행 단위로 흘려보내기 위해
모든 포맷터는 다음 3단계 프로토콜을 따른다:

    write_header(fields, metadata)  : 컬럼 정보 확정, 머리말 출력
    write_row(row)                  : 행마다 1회 호출
    write_footer()                  : 마무리 구문 출력

fields는 {"name": 컬럼명, "type": 타입명} 딕셔너리 리스트이고,
row는 fields 순서와 같은 순서의 값 리스트이다.

사용처:
    - CursorReader.read() : 서버 측 커서에서 페치한 청크를 포맷터로 전달
    - TableDumper         : 테이블 데이터 블록 출력
"""

import datetime
import decimal
import json
import math
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence


Field = Dict[str, str]


def to_text(value: Any) -> Optional[Any]:
    """
    psycopg2가 반환한 Python 값을 PostgreSQL 텍스트 입력 형식으로 변환한다.

    bytes / memoryview는 포맷터가 bytea 전용 인코딩을 적용하도록 bytes로 돌려준다.

    지원 타입:
        - None                  -> None
        - bool                  -> "true" / "false"
        - int, Decimal          -> 숫자 문자열
        - float                 -> 숫자 문자열 (inf/nan은 Infinity / NaN)
        - bytes, memoryview     -> bytes
        - datetime / date / time -> ISO 8601 (날짜와 시각 사이 공백)
        - timedelta             -> "N days N seconds N microseconds"
        - list, tuple           -> 배열 리터럴 {a,b,...}
        - dict                  -> JSON 문자열
        - 기타                  -> str(value)

    @param value  변환할 값
    @returns      텍스트 또는 bytes, NULL이면 None

    @example
        to_text(True)                            # -> "true"
        to_text([1, None, "a b"])                # -> '{1,NULL,"a b"}'
        to_text(datetime.datetime(2024, 1, 2))   # -> "2024-01-02 00:00:00"
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return repr(value)
    if isinstance(value, (int, decimal.Decimal)):
        return str(value)
    if isinstance(value, memoryview):
        return value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return f"{value.days} days {value.seconds} seconds {value.microseconds} microseconds"
    if isinstance(value, (list, tuple)):
        return _array_literal(value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(value)


def _array_literal(items: Sequence[Any]) -> str:
    parts = []
    for item in items:
        if item is None:
            parts.append("NULL")
            continue
        if isinstance(item, (list, tuple)):
            parts.append(_array_literal(item))
            continue
        text = to_text(item)
        if isinstance(text, bytes):
            text = "\\x" + text.hex()
        if text == "" or any(ch in text for ch in ' ,{}"\\') or text.upper() == "NULL":
            text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
        parts.append(text)
    return "{" + ",".join(parts) + "}"


class OutputFormatter:
    """
    포맷터 공통 기반.

    writer는 write(text) 메서드를 가진 임의의 텍스트 싱크이다
    (DumpWriter, io.StringIO, 열린 텍스트 파일 등).

    내부 상태:
        _writer : 텍스트 싱크
        _fields : write_header()로 확정된 컬럼 정보
    """

    file_extension = "txt"

    def __init__(self, writer):
        self._writer = writer
        self._fields: List[Field] = []

    def write(self, text: str) -> None:
        self._writer.write(text)

    def write_header(self, fields: List[Field], metadata: Optional[Dict[str, Any]] = None) -> None:
        self._fields = list(fields)

    def write_row(self, row: Sequence[Any]) -> None:
        raise NotImplementedError

    def write_footer(self) -> None:
        pass

    def format(
        self,
        rows:     Iterable[Sequence[Any]],
        fields:   List[Field],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        이미 메모리에 있는 행 집합을 한 번에 출력한다.

        @param rows      행 이터러블
        @param fields    컬럼 정보
        @param metadata  포맷터별 부가 정보
        @returns         출력한 행 수
        """
        self.write_header(fields, metadata or {})
        count = 0
        for row in rows:
            self.write_row(row)
            count += 1
        self.write_footer()
        return count
