"""
서버 측 커서 기반 대용량 행 읽기.

SELECT 결과 전체를 한 번에 가져오지 않고, 트랜잭션 안에서 커서를 선언한 뒤
FETCH FORWARD n 으로 청크 단위로 읽어 포맷터에 전달한다.
메모리에 동시에 올라가는 행 수는 chunk_size로 제한된다.

트랜잭션 종료 보장:
    with 블록을 벗어날 때 성공이면 CLOSE + COMMIT, 예외이면 ROLLBACK을 실행한다.
    어떤 경로로 끝나더라도 서버 측 커서나 idle-in-transaction 세션이 남지 않는다.

청크 크기 자동 계산:
    chunk_size를 지정하지 않으면 pg_class의 relpages / reltuples로 평균 행 크기를 추정하여
    CURSOR_TARGET_CHUNK_BYTES / 평균 행 크기를 MIN~MAX 범위로 잘라 사용한다.

사용처:
    - TableDumper : 테이블 데이터 출력
"""

from typing import Any, Callable, Dict, Iterator, List, Optional

from config import (
    CURSOR_DEFAULT_CHUNK_ROWS,
    CURSOR_MAX_CHUNK_ROWS,
    CURSOR_MIN_CHUNK_ROWS,
    CURSOR_TARGET_CHUNK_BYTES,
)
from services.export.output_formatter import Field, OutputFormatter


LogCallback = Callable[[str, str], None]

PAGE_SIZE = 8192


class CursorReaderError(RuntimeError):
    """커서 선언 또는 페치 실패."""


def estimate_chunk_size(driver, relation_oid: Optional[str]) -> int:
    """
    테이블 통계로 한 번에 페치할 행 수를 추정한다.

    @param driver        드라이버 경계 객체
    @param relation_oid  pg_class OID (None이면 기본값)
    @returns             CURSOR_MIN_CHUNK_ROWS ~ CURSOR_MAX_CHUNK_ROWS 범위의 행 수

    @example
        estimate_chunk_size(driver, "16384")   # 평균 행 100바이트 -> 41943
    """
    if relation_oid is None:
        return CURSOR_DEFAULT_CHUNK_ROWS

    rs = driver.select_set(
        "SELECT relpages, reltuples FROM pg_catalog.pg_class WHERE oid = %s",
        (relation_oid,),
    )
    row = rs.first() if rs is not None else None
    if not row or not row["reltuples"] or float(row["reltuples"]) <= 0 or not row["relpages"]:
        return CURSOR_DEFAULT_CHUNK_ROWS

    avg_row_bytes = max(1.0, int(row["relpages"]) * PAGE_SIZE / float(row["reltuples"]))
    rows = int(CURSOR_TARGET_CHUNK_BYTES / avg_row_bytes)
    return max(CURSOR_MIN_CHUNK_ROWS, min(CURSOR_MAX_CHUNK_ROWS, rows))


class CursorReader:
    """
    트랜잭션 + 서버 측 커서를 감싼 컨텍스트 매니저.

    내부 상태:
        _driver      : 드라이버 경계 객체
        _sql         : 커서로 읽을 SELECT 문
        _chunk_size  : FETCH 한 번에 읽을 행 수
        _name        : 커서 이름
        _fields      : 첫 페치에서 확정된 컬럼 정보 ({"name", "type"})
        _active      : BEGIN 성공 후 트랜잭션이 열려 있는지 여부

    @example
        with CursorReader(driver, 'SELECT * FROM "public"."users"') as reader:
            count = reader.read(formatter, {"table": '"public"."users"'})
    """

    def __init__(
        self,
        driver,
        sql:         str,
        chunk_size:  Optional[int]         = None,
        cursor_name: str                   = "dump_cursor",
        log:         Optional[LogCallback] = None,
    ):
        self._driver     = driver
        self._sql        = sql
        self._chunk_size = chunk_size or CURSOR_DEFAULT_CHUNK_ROWS
        self._name       = cursor_name
        self._log        = log or (lambda tag, msg: None)
        self._fields: Optional[List[Field]] = None
        self._active     = False

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    # ==================================================================
    # 트랜잭션 수명
    # ==================================================================

    def __enter__(self) -> "CursorReader":
        self._run("BEGIN")
        self._active = True
        cursor = self._driver.escape_identifier(self._name)
        try:
            self._run(f"DECLARE {cursor} NO SCROLL CURSOR FOR {self._sql}")
        except CursorReaderError:
            self._end(success=False)
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._end(success=exc_type is None)
        return False

    def _end(self, success: bool) -> None:
        if not self._active:
            return
        self._active = False
        if success:
            cursor = self._driver.escape_identifier(self._name)
            if self._driver.execute(f"CLOSE {cursor}") == 0 and self._driver.execute("COMMIT") == 0:
                return
            self._log("WARN", f"커서 종료 실패, 롤백합니다: {self._driver.last_error}")
        # 롤백하면 커서도 함께 닫힌다
        if self._driver.execute("ROLLBACK") != 0:
            self._log("ERROR", f"롤백 실패: {self._driver.last_error}")

    def _run(self, sql: str) -> None:
        if self._driver.execute(sql) != 0:
            raise CursorReaderError(self._driver.last_error or f"실행 실패: {sql}")

    # ==================================================================
    # 읽기
    # ==================================================================

    def chunks(self) -> Iterator[List[List[Any]]]:
        """
        FETCH FORWARD를 반복하여 행 청크를 생성한다.

        빈 청크를 받으면 종료한다. 첫 청크에서 컬럼 정보가 확정된다.

        @returns  행 리스트(값은 컬럼 순서) 이터레이터
        @throws   CursorReaderError 페치 실패 시
        """
        if not self._active:
            raise CursorReaderError("커서가 열려 있지 않습니다.")
        cursor = self._driver.escape_identifier(self._name)
        while True:
            rs = self._driver.select_set(f"FETCH FORWARD {int(self._chunk_size)} FROM {cursor}")
            if rs is None:
                raise CursorReaderError(self._driver.last_error or "FETCH 실패")
            if self._fields is None:
                self._fields = self._resolve_fields(rs.columns)
            names = [field["name"] for field in self._fields]
            rows  = [[row.get(name) for name in names] for row in rs]
            if not rows:
                return
            yield rows

    @property
    def fields(self) -> List[Field]:
        return list(self._fields or [])

    def read(self, formatter: OutputFormatter, metadata: Optional[Dict[str, Any]] = None) -> int:
        """
        커서의 모든 행을 포맷터로 흘려보낸다.

        행이 없어도 header / footer는 출력된다.
        header 출력 후 페치가 실패하면 footer로 블록을 닫은 뒤 예외를 다시 던진다.

        @param formatter  출력 포맷터
        @param metadata   포맷터 metadata (table, insert_format, batch_size ...)
        @returns          출력한 행 수
        @throws           CursorReaderError 페치 실패 시
        """
        count  = 0
        header = False
        try:
            for rows in self.chunks():
                if not header:
                    formatter.write_header(self.fields, metadata or {})
                    header = True
                for row in rows:
                    formatter.write_row(row)
                    count += 1
        except CursorReaderError:
            # 열린 COPY 블록 / INSERT 문을 닫는다
            if header:
                formatter.write_footer()
            raise
        if not header:
            formatter.write_header(self.fields, metadata or {})
        formatter.write_footer()
        return count

    def _resolve_fields(self, columns) -> List[Field]:
        """
        (컬럼명, 타입 OID) 목록을 (컬럼명, 타입명)으로 변환한다.

        타입 OID별 pg_type 조회는 커서당 한 번만 실행한다.
        """
        oids = sorted({type_oid for _, type_oid in columns if type_oid is not None})
        names: Dict[int, str] = {}
        if oids:
            rs = self._driver.select_set(
                "SELECT oid, typname FROM pg_catalog.pg_type WHERE oid = ANY(%s)",
                (list(oids),),
            )
            if rs is None:
                self._log("WARN", f"컬럼 타입 조회 실패: {self._driver.last_error}")
            else:
                names = {int(row["oid"]): row["typname"] for row in rs}
        return [
            {"name": name, "type": names.get(type_oid, "") if type_oid is not None else ""}
            for name, type_oid in columns
        ]
