"""
JSON 데이터 임포트.

JsonRowParser로 읽은 행을 대상 테이블의 multi-row INSERT 문으로 바꾸고,
SqlImporter와 같은 경로(설정 검사 -> StatementExecutor)로 실행한다.
따라서 data / truncate / error_mode 정책이 SQL 임포트와 동일하게 적용된다.

값 변환:
    - None              -> NULL
    - 행에 없는 컬럼    -> DEFAULT
    - bool              -> TRUE / FALSE
    - int / float       -> 그대로
    - dict, json 컬럼   -> JSON 텍스트 리터럴
    - list (json 외)    -> 배열 리터럴 '{...}'
    - 그 밖             -> 문자열 리터럴
"""

import json
from typing import Any, Dict, List, Optional

from config import JSON_IMPORT_BATCH_ROWS
from models.import_options import ImportOptions, ImportScope
from services.export.output_formatter   import to_text
from services.importer.import_log       import ImportLog
from services.importer.json_row_parser  import MODE_DONE, JsonParseResult, JsonParseState, JsonRowParser, JsonRowParserError
from services.importer.sql_importer     import ImportResult, LogCallback, SqlImporter


JSON_TYPES = {"json", "jsonb"}


class JsonDataImporter(SqlImporter):
    """
    JSON 문서를 한 테이블로 적재한다.

    내부 상태:
        _target     : 인용된 "schema"."table"
        _json       : JsonRowParser
        _json_state : JsonParseState
        _columns    : 헤더의 컬럼명 목록 (헤더를 읽기 전에는 None)
        _types      : 컬럼명 -> 타입명
        _rows       : INSERT 대기 중인 행

    @example
        importer = JsonDataImporter(driver, ImportOptions(truncate=True), "public", "users", log)
        result   = importer.run_file("users.json")
    """

    def __init__(
        self,
        driver,
        options:    ImportOptions,
        schema:     str,
        table:      str,
        log:        Optional[LogCallback] = None,
        batch_size: int = JSON_IMPORT_BATCH_ROWS,
        import_log: Optional[ImportLog] = None,
    ):
        super().__init__(driver, options, log, ImportScope.TABLE, f"{schema}.{table}", import_log)
        self._target     = f"{driver.escape_identifier(schema)}.{driver.escape_identifier(table)}"
        self._batch_size = max(1, batch_size)
        self._json       = JsonRowParser()
        self._json_state = JsonParseState()
        self._columns: Optional[List[str]] = None
        self._types:   Dict[str, str]      = {}
        self._rows:    List[Dict[str, Any]] = []

    def feed(self, chunk: str) -> bool:
        if self.aborted:
            return False
        try:
            parsed = self._json.parse(chunk, self._json_state)
        except JsonRowParserError as e:
            return self._fail_document(str(e))
        return self._accept(parsed)

    def finish(self) -> ImportResult:
        if not self.aborted:
            try:
                parsed = self._json.parse("", self._json_state, final=True)
            except JsonRowParserError as e:
                self._fail_document(str(e))
            else:
                if self._accept(parsed) and self._flush_rows():
                    if self._json_state.mode != MODE_DONE or self._json_state.pending.strip():
                        self.log.warning("JSON 문서가 완전히 닫히지 않았습니다")
        return super().finish()

    def build_insert(self, rows: List[Dict[str, Any]]) -> str:
        """
        행 목록을 하나의 INSERT 문으로 만든다.

        @param rows  {컬럼명: 값} 딕셔너리 목록
        @returns     INSERT INTO "s"."t" ("a", "b") VALUES (...), (...);
        """
        columns = self._columns or _key_order(rows)
        quote   = self._driver.escape_identifier
        values  = []
        for row in rows:
            cells = [
                self._sql_value(row[name], self._types.get(name, "")) if name in row else "DEFAULT"
                for name in columns
            ]
            values.append(f"({', '.join(cells)})")
        column_list = ", ".join(quote(name) for name in columns)
        return f"INSERT INTO {self._target} ({column_list}) VALUES\n" + ",\n".join(values) + ";"

    # ------------------------------------------------------------------

    def _accept(self, parsed: JsonParseResult) -> bool:
        if parsed.header is not None and self._columns is None:
            self._columns = [column["name"] for column in parsed.header]
            self._types   = {column["name"]: str(column.get("type") or "") for column in parsed.header}
        for row in parsed.rows:
            self._rows.append(row)
            if len(self._rows) >= self._batch_size and not self._flush_rows():
                return False
        return True

    def _flush_rows(self) -> bool:
        if not self._rows:
            return True
        statement  = self.build_insert(self._rows)
        self._rows = []
        return self.process(statement)

    def _fail_document(self, message: str) -> bool:
        self.result.aborted = True
        self.result.errors.append(message)
        self.log.error(f"JSON 문서를 읽을 수 없습니다: {message}")
        return False

    def _sql_value(self, value: Any, type_name: str) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return to_text(value)
        if isinstance(value, dict) or (isinstance(value, list) and type_name.lower() in JSON_TYPES):
            return self._driver.escape_literal(json.dumps(value, ensure_ascii=False))
        return self._driver.escape_literal(to_text(value))


def _key_order(rows: List[Dict[str, Any]]) -> List[str]:
    """헤더가 없을 때 행들의 키를 처음 등장한 순서대로 모은다."""
    seen: Dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)
