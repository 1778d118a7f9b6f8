"""
services.importer 패키지.

SQL / JSON 입력을 정책에 따라 대상 DB에 적재한다.
    - SqlParser              : 청크 단위 문장 분할 (COPY 블록 포함)
    - classify               : 문장 분류 (self_affecting, data, drop, ...)
    - StatementExecutor      : 분류별 정책 + 서버 버전 보정 + 실행
    - SessionSettingsApplier : SET 허용 목록, 캐시, 재접속 후 재적용
    - JsonRowParser          : 청크 단위 JSON 행 파서
    - SqlImporter            : SQL 임포트 오케스트레이터
    - JsonDataImporter       : JSON 행 -> INSERT 임포트
    - ImportLog              : 구조화된 임포트 로그

외부 모듈에서는 패키지 레벨 임포트를 사용한다:
    from services.importer import SqlImporter, ImportResult
"""

from services.importer.data_importer        import JsonDataImporter
from services.importer.import_log           import ImportLog, LogEntry
from services.importer.json_row_parser      import JsonParseResult, JsonParseState, JsonRowParser, JsonRowParserError
from services.importer.session_settings     import SessionSettingsApplier
from services.importer.sql_importer         import ImportAbortedError, ImportResult, SqlImporter
from services.importer.sql_parser           import ParseItem, ParseResult, SqlParser, SqlParserState
from services.importer.statement_classifier import StatementCategory, classify
from services.importer.statement_executor   import ExecutionOutcome, StatementExecutor, adapt_to_server

__all__ = [
    "ExecutionOutcome",
    "ImportAbortedError",
    "ImportLog",
    "ImportResult",
    "JsonDataImporter",
    "JsonParseResult",
    "JsonParseState",
    "JsonRowParser",
    "JsonRowParserError",
    "LogEntry",
    "ParseItem",
    "ParseResult",
    "SessionSettingsApplier",
    "SqlImporter",
    "SqlParser",
    "SqlParserState",
    "StatementCategory",
    "StatementExecutor",
    "adapt_to_server",
    "classify",
]
