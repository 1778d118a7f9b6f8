"""
SQL 데이터 출력 포맷터.

행 스트림을 다음 세 가지 형식 중 하나로 출력한다:

    copy   : COPY <table> (<cols>) FROM stdin; + 탭 구분 행 + \\.
    multi  : batch_size 행마다 INSERT ... VALUES (...),(...); 한 문장
    single : 행마다 INSERT ... VALUES (...); 한 문장

컬럼별 이스케이프 방식은 write_header()에서 타입명으로 한 번만 결정한다:
    - 숫자 / 불리언 : 따옴표 없이 그대로
    - bytea         : INSERT는 '\\x<hex>', COPY는 바이트별 8진수 이스케이프
    - 그 외         : 드라이버 escape_literal()로 문자열 리터럴

사용처:
    - TableDumper : 테이블 데이터 블록 출력
"""

from typing import Any, Dict, List, Optional, Sequence

from config import SCHEMA_DUMP_BATCH_SIZE
from models.dump_options import InsertFormat
from services.export.output_formatter import Field, OutputFormatter, to_text


ESCAPE_NONE   = 0
ESCAPE_STRING = 1
ESCAPE_BYTEA  = 2

NUMERIC_TYPES = frozenset({
    "int2", "int4", "int8", "integer", "bigint", "smallint",
    "float4", "float8", "real", "double precision", "numeric", "decimal",
    "oid",
})
BOOLEAN_TYPES = frozenset({"bool", "boolean"})

# COPY 텍스트 형식에서 백슬래시 이스케이프가 필요한 문자
_COPY_ESCAPES = str.maketrans({
    "\\": "\\\\",
    "\0": "\\000",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
})

# 숫자 컬럼이라도 따옴표 없이는 입력할 수 없는 값
_QUOTED_SPECIAL_NUMBERS = frozenset({"NaN", "Infinity", "-Infinity"})


def determine_escape_modes(fields: List[Field]) -> List[int]:
    """
    컬럼 타입명으로 이스케이프 방식을 결정한다.

    @param fields  {"name", "type"} 딕셔너리 리스트
    @returns       컬럼 순서와 같은 ESCAPE_* 리스트

    @example
        determine_escape_modes([{"name": "id", "type": "int4"},
                                {"name": "raw", "type": "bytea"}])   # -> [0, 2]
    """
    modes = []
    for field in fields:
        type_name = (field.get("type") or "").lower()
        if type_name in NUMERIC_TYPES or type_name in BOOLEAN_TYPES:
            modes.append(ESCAPE_NONE)
        elif type_name == "bytea":
            modes.append(ESCAPE_BYTEA)
        else:
            modes.append(ESCAPE_STRING)
    return modes


def bytea_to_octal(data: bytes) -> str:
    """
    bytea 값을 COPY 텍스트 형식용 8진수 이스케이프로 변환한다.

    COPY가 백슬래시를 한 단계 해제하므로 바이트마다 \\\\ooo 를 출력한다.
    """
    return "".join(f"\\\\{byte:03o}" for byte in data)


class SqlFormatter(OutputFormatter):
    """
    COPY / INSERT 형식 데이터 포맷터.

    내부 상태:
        _driver        : escape_identifier / escape_literal 제공
        _insert_format : InsertFormat
        _batch_size    : multi 형식 한 문장당 최대 행 수
        _escape_modes  : 컬럼별 ESCAPE_* (write_header에서 1회 계산)
        _insert_begin  : "INSERT INTO <table> (<cols>) VALUES"
        _rows_in_batch : 현재 multi 문장에 포함된 행 수

    @example
        formatter = SqlFormatter(writer, driver)
        formatter.write_header(
            [{"name": "id", "type": "int4"}],
            {"table": '"public"."users"', "insert_format": "multi", "batch_size": 2},
        )
        for row in ([1], [2], [3]):
            formatter.write_row(row)
        formatter.write_footer()
    """

    file_extension = "sql"

    def __init__(self, writer, driver):
        super().__init__(writer)
        self._driver        = driver
        self._insert_format = InsertFormat.COPY
        self._batch_size    = SCHEMA_DUMP_BATCH_SIZE
        self._escape_modes: List[int] = []
        self._insert_begin  = ""
        self._rows_in_batch = 0

    def write_header(self, fields: List[Field], metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        출력 형식을 확정하고 COPY 머리줄을 출력한다.

        @param fields    컬럼 정보
        @param metadata  table (인용 완료된 테이블명), insert_format, batch_size,
                         overriding_system_value (선택)
        """
        super().write_header(fields, metadata)
        metadata = metadata or {}
        self._insert_format = InsertFormat(metadata.get("insert_format", InsertFormat.COPY))
        self._batch_size    = int(metadata.get("batch_size", SCHEMA_DUMP_BATCH_SIZE))
        self._escape_modes  = determine_escape_modes(self._fields)
        self._rows_in_batch = 0

        table   = metadata.get("table", "data")
        columns = ", ".join(self._driver.escape_identifier(f["name"]) for f in self._fields)

        if self._insert_format is InsertFormat.COPY:
            self.write(f"COPY {table} ({columns}) FROM stdin;\n")
        else:
            # GENERATED ALWAYS AS IDENTITY 컬럼에 값을 넣으려면 OVERRIDING 절이 필요하다
            overriding = " OVERRIDING SYSTEM VALUE" if metadata.get("overriding_system_value") else ""
            self._insert_begin = f"INSERT INTO {table} ({columns}){overriding} VALUES"

    def write_row(self, row: Sequence[Any]) -> None:
        if self._insert_format is InsertFormat.COPY:
            self._write_copy_row(row)
        elif self._insert_format is InsertFormat.MULTI:
            if self._rows_in_batch == 0:
                self.write(f"{self._insert_begin}\n")
            elif self._rows_in_batch >= self._batch_size:
                # 배치가 가득 차면 이전 문장을 닫고 새 INSERT를 연다
                self.write(f";\n\n{self._insert_begin}\n")
                self._rows_in_batch = 0
            else:
                self.write(",\n")
            self.write(self._insert_values(row))
            self._rows_in_batch += 1
        else:
            self.write(f"{self._insert_begin} {self._insert_values(row)};\n")

    def write_footer(self) -> None:
        if self._insert_format is InsertFormat.COPY:
            self.write("\\.\n")
        elif self._insert_format is InsertFormat.MULTI and self._rows_in_batch > 0:
            self.write(";\n")
        self._rows_in_batch = 0

    # ==================================================================
    # 행 변환
    # ==================================================================

    def _write_copy_row(self, row: Sequence[Any]) -> None:
        values = []
        for mode, value in zip(self._escape_modes, row):
            text = to_text(value)
            if text is None:
                values.append("\\N")
            elif mode == ESCAPE_BYTEA:
                values.append(bytea_to_octal(_as_bytes(text)))
            else:
                values.append(_as_str(text).translate(_COPY_ESCAPES))
        self.write("\t".join(values) + "\n")

    def _insert_values(self, row: Sequence[Any]) -> str:
        values = []
        for mode, value in zip(self._escape_modes, row):
            text = to_text(value)
            if text is None:
                values.append("NULL")
            elif mode == ESCAPE_BYTEA:
                values.append(f"'{self._driver.escape_bytea(_as_bytes(text))}'")
            elif mode == ESCAPE_NONE and text not in _QUOTED_SPECIAL_NUMBERS:
                values.append(_as_str(text))
            else:
                values.append(self._driver.escape_literal(_as_str(text)))
        return "(" + ",".join(values) + ")"


def _as_bytes(value) -> bytes:
    if isinstance(value, bytes):
        return value
    text = str(value)
    # 텍스트로 전달된 hex 형식 bytea
    if text.startswith("\\x"):
        return bytes.fromhex(text[2:])
    return text.encode("utf-8")


def _as_str(value) -> str:
    if isinstance(value, bytes):
        return "\\x" + value.hex()
    return value
