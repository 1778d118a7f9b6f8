"""
SQL 임포트 오케스트레이터.

입력 텍스트를 청크 단위로 받아
    SqlParser -> SessionSettingsApplier -> StatementExecutor
순서로 흘려보내고, 입력이 끝나면 큐에 적재된 문장을
    ownership 큐 -> rights 큐 -> deferred 큐
순서로 실행한다.

실행 실패 처리 (error_mode):
    - abort    : 첫 실패에서 중단한다. 이후 입력과 큐는 실행하지 않는다.
    - continue : 실패를 기록하고 다음 문장으로 진행한다.

인코딩:
    run_file()은 UTF-8 -> CP949 -> Latin-1 순서로 파일 전체를 검사해 인코딩을 정한 뒤
    IMPORT_READ_CHUNK_SIZE 단위로 읽는다. .gz 파일은 gzip으로 연다.

사용처:
    - JsonDataImporter : 상속하여 JSON 행을 INSERT 문으로 바꿔 같은 경로로 실행
"""

import codecs
import gzip
import os
import time
from dataclasses import dataclass, field
from typing      import Callable, List, Optional, TextIO

from config import IMPORT_READ_CHUNK_SIZE
from models.import_options import ErrorMode, ImportOptions, ImportScope, ImportSession
from services.importer.import_log         import ImportLog
from services.importer.session_settings   import SessionSettingsApplier
from services.importer.sql_parser         import SqlParser, is_copy_from_stdin
from services.importer.statement_executor import ExecutionOutcome, StatementExecutor


LogCallback = Callable[[str, str], None]

FILE_ENCODINGS = ("utf-8-sig", "cp949", "latin-1")


class ImportAbortedError(RuntimeError):
    """error_mode=abort 임포트가 실패로 중단되었을 때 run_file(raise_on_abort=True)이 발생시킨다."""

    def __init__(self, message: str, result: "ImportResult"):
        super().__init__(message)
        self.result = result


@dataclass
class ImportResult:
    """
    임포트 결과 요약.

    @param statements   처리한 문장 수 (큐에서 실행한 문장 포함)
    @param executed     서버에서 성공적으로 실행된 문장 수
    @param failed       실행 실패 문장 수
    @param aborted      error_mode=abort로 중단되었는지
    @param errors       실패 메시지 목록
    @param elapsed_sec  소요 시간 (초)
    """
    statements:  int       = 0
    executed:    int       = 0
    failed:      int       = 0
    aborted:     bool      = False
    errors:      List[str] = field(default_factory=list)
    elapsed_sec: float     = 0.0

    @property
    def ok(self) -> bool:
        return not self.aborted and self.failed == 0

    @property
    def summary(self) -> str:
        """
        @returns "문장 N건 (실행 N / 실패 N) | 소요시간 N.Ns" 형식 (중단 시 앞에 [중단])
        """
        head = "[중단] " if self.aborted else ""
        return (
            f"{head}문장 {self.statements}건 "
            f"(실행 {self.executed} / 실패 {self.failed}) | "
            f"소요시간 {self.elapsed_sec:.1f}s"
        )


def detect_encoding(file_path: str) -> str:
    """
    파일을 끝까지 디코딩해 보고 처음으로 성공한 인코딩을 반환한다.

    @param file_path  파일 경로 (.gz 허용)
    @returns          인코딩 이름
    @throws           IOError 모든 인코딩 시도 실패 시
    """
    for encoding in FILE_ENCODINGS:
        decoder = codecs.getincrementaldecoder(encoding)()
        try:
            with _open_binary(file_path) as f:
                for block in iter(lambda: f.read(IMPORT_READ_CHUNK_SIZE), b""):
                    decoder.decode(block)
                decoder.decode(b"", final=True)
            return encoding
        except UnicodeDecodeError:
            continue
    raise IOError(f"파일 인코딩을 판별할 수 없습니다: {file_path}")


def _open_binary(file_path: str):
    if file_path.endswith(".gz"):
        return gzip.open(file_path, "rb")
    return open(file_path, "rb")


def _open_text(file_path: str, encoding: str) -> TextIO:
    if file_path.endswith(".gz"):
        return gzip.open(file_path, "rt", encoding=encoding, newline="")
    return open(file_path, "r", encoding=encoding, newline="")


class SqlImporter:
    """
    SQL 스크립트 임포트.

    내부 상태:
        session    : ImportSession (임포트 1회 전용)
        log        : ImportLog
        result     : ImportResult (누적)
        _parser    : SqlParser
        _settings  : SessionSettingsApplier
        _executor  : StatementExecutor

    @example
        importer = SqlImporter(driver, ImportOptions(error_mode=ErrorMode.CONTINUE), log)
        result   = importer.run_file("dump.sql")
        print(result.summary)
    """

    def __init__(
        self,
        driver,
        options:     ImportOptions,
        log:         Optional[LogCallback] = None,
        scope:       ImportScope = ImportScope.DATABASE,
        scope_ident: str = "",
        import_log:  Optional[ImportLog] = None,
    ):
        self._driver  = driver
        self._options = options
        self.session  = ImportSession(scope=scope, scope_ident=scope_ident)
        self.log      = import_log or ImportLog(log)
        self.result   = ImportResult()

        self._parser   = SqlParser()
        self._settings = SessionSettingsApplier(self.session, self.log, driver.server_version)
        self._executor = StatementExecutor(driver, self.session, options, self.log)
        self._started  = time.time()

    @property
    def settings(self) -> SessionSettingsApplier:
        return self._settings

    @property
    def executor(self) -> StatementExecutor:
        return self._executor

    @property
    def aborted(self) -> bool:
        return self.result.aborted

    # ------------------------------------------------------------------
    # 입력
    # ------------------------------------------------------------------

    def feed(self, chunk: str) -> bool:
        """
        입력 조각을 처리한다.

        @param chunk  SQL 텍스트 조각 (임의 위치에서 잘려 있어도 된다)
        @returns      계속 입력을 받을 수 있으면 True, 중단되었으면 False
        """
        if self.aborted:
            return False
        for item in self._parser.parse(chunk).items:
            if not self.process(item.content, item.is_copy):
                return False
        return True

    def process(self, statement: str, is_copy: bool = False) -> bool:
        """
        완성된 문장 하나를 설정 검사 후 실행기로 보낸다.

        @param statement  SQL 문장
        @param is_copy    COPY 데이터 블록 여부 (설정 검사 생략)
        @returns          계속 진행 가능 여부
        """
        if self.aborted:
            return False
        if not statement.strip():
            return True
        self.result.statements += 1
        if not is_copy and not self._settings.collect(statement):
            return True
        return self._apply(self._executor.execute(statement))

    def finish(self) -> ImportResult:
        """
        입력 끝을 처리하고 큐를 실행한 뒤 결과를 반환한다.

        @returns ImportResult
        """
        if not self.aborted:
            tail = self._parser.finish()
            for item in tail.items:
                if not self.process(item.content, item.is_copy):
                    break
            if is_copy_from_stdin(tail.remainder):
                self.log.warning(f"끝나지 않은 COPY 블록을 버립니다 ({len(tail.remainder)}자)")

        if not self.aborted:
            self._flush_queues()

        self.result.elapsed_sec = time.time() - self._started
        self.log.info(f"임포트 완료: {self.result.summary}")
        return self.result

    def run(self, stream: TextIO) -> ImportResult:
        """스트림을 끝까지 읽어 임포트한다."""
        for chunk in iter(lambda: stream.read(IMPORT_READ_CHUNK_SIZE), ""):
            if not self.feed(chunk):
                break
        return self.finish()

    def run_file(self, file_path: str, raise_on_abort: bool = False) -> ImportResult:
        """
        파일을 임포트한다.

        @param file_path       SQL 파일 경로 (.gz 허용)
        @param raise_on_abort  True이면 중단 시 ImportAbortedError 발생
        @returns               ImportResult
        @throws                ImportAbortedError raise_on_abort=True이고 중단되었을 때
        """
        filename = os.path.basename(file_path)
        try:
            encoding = detect_encoding(file_path)
            self.log.info(f"파일 임포트 시작: {filename} ({encoding})")
            with _open_text(file_path, encoding) as f:
                self.run(f)
        except IOError as e:
            self.result.aborted = True
            self.result.errors.append(str(e))
            self.log.error(f"파일 읽기 실패: {filename} - {e}")
            self.result.elapsed_sec = time.time() - self._started

        if raise_on_abort and self.result.aborted:
            message = self.result.errors[-1] if self.result.errors else "임포트 중단"
            raise ImportAbortedError(message, self.result)
        return self.result

    # ------------------------------------------------------------------
    # 재접속
    # ------------------------------------------------------------------

    def reconnect(self, driver) -> int:
        """
        새 드라이버로 교체하고 캐시된 세션 설정을 다시 적용한다.

        @param driver  재접속한 드라이버
        @returns       재적용에 실패한 설정 수
        """
        self._driver = driver
        self._executor.driver = driver
        errors = self._settings.apply_settings(driver)
        self.log.info(f"재접속 후 세션 설정 {len(self.session.cached_settings)}건 재적용 (실패 {errors})")
        return errors

    # ------------------------------------------------------------------

    def _apply(self, outcome: ExecutionOutcome) -> bool:
        if outcome.executed:
            self.result.executed += 1
        if not outcome.failed:
            return True

        self.result.failed += 1
        self.result.errors.append(outcome.error)
        if self._options.error_mode == ErrorMode.ABORT:
            self.result.aborted = True
            self.log.error("error_mode=abort: 임포트를 중단합니다")
            return False
        return True

    def _flush_queues(self) -> None:
        for title, statements in self._executor.drain_queues():
            self.log.info(f"{title} {len(statements)}건 실행")
            for statement in statements:
                self.result.statements += 1
                if not self._apply(self._executor.execute_now(statement)):
                    return
