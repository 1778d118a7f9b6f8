"""
CSV / TSV 데이터 출력 포맷터.

첫 줄에 컬럼명 헤더를 출력하고, 이후 행마다 한 줄씩 출력한다.
NULL은 빈 칸, bytea는 \\x<hex> 텍스트로 출력한다.

사용처:
    - CursorReader.read() : 테이블/쿼리 결과를 CSV 파일로 내보내기
"""

import csv
from typing import Any, Dict, List, Optional, Sequence

from services.export.output_formatter import Field, OutputFormatter, to_text


class CsvFormatter(OutputFormatter):
    """
    쉼표 구분 포맷터.

    필드 안에 구분자, 따옴표, 줄바꿈이 있으면 큰따옴표로 감싼다 (csv.QUOTE_MINIMAL).

    @param writer          텍스트 싱크
    @param delimiter       필드 구분자
    @param line_end        줄 끝 문자열
    @param file_extension  저장 시 사용할 확장자
    """

    def __init__(
        self,
        writer,
        delimiter:      str = ",",
        line_end:       str = "\r\n",
        file_extension: str = "csv",
    ):
        super().__init__(writer)
        self.file_extension = file_extension
        self._csv = csv.writer(
            writer,
            delimiter      = delimiter,
            lineterminator = line_end,
            quoting        = csv.QUOTE_MINIMAL,
        )

    def write_header(self, fields: List[Field], metadata: Optional[Dict[str, Any]] = None) -> None:
        super().write_header(fields, metadata)
        self._csv.writerow([field["name"] for field in self._fields])

    def write_row(self, row: Sequence[Any]) -> None:
        self._csv.writerow([_cell(value) for value in row])


class TabFormatter(CsvFormatter):
    """탭 구분 포맷터."""

    def __init__(self, writer):
        super().__init__(writer, delimiter="\t", line_end="\n", file_extension="tsv")


def _cell(value: Any) -> str:
    text = to_text(value)
    if text is None:
        return ""
    if isinstance(text, bytes):
        return "\\x" + text.hex()
    return text
