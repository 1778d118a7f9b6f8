"""
services.export 패키지.

조회 결과를 출력 형식으로 변환한다. 모든 포매터는
write_header(fields, metadata) / write_row(row) / write_footer() 규약을 따른다.
    - SqlFormatter : COPY / multi INSERT / single INSERT
    - CsvFormatter : CSV (헤더 행 포함)
    - TabFormatter : TSV (헤더 행 포함)
    - CursorReader : 서버 측 커서로 행을 청크 단위로 읽어 포매터에 전달
"""

from services.export.csv_formatter    import CsvFormatter, TabFormatter
from services.export.cursor_reader    import CursorReader, CursorReaderError
from services.export.output_formatter import OutputFormatter
from services.export.sql_formatter    import SqlFormatter

__all__ = [
    "CsvFormatter",
    "CursorReader",
    "CursorReaderError",
    "OutputFormatter",
    "SqlFormatter",
    "TabFormatter",
]
