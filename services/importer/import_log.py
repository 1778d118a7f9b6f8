"""
임포트 로그 수집기.

임포트 중 발생하는 모든 판단(실행, 지연, 건너뜀, 차단, 큐 적재, TRUNCATE, 오류)을
구조화된 엔트리로 보관하고, 동시에 로그 콜백(tag, message)으로 전달한다.

출력 형식은 로그 패널과 동일하다:
    "YYYY-MM-DD HH:MM:SS [TAG  ] message"
"""

import datetime
from dataclasses import dataclass
from typing      import Callable, Dict, List, Optional

from config import LOG_TAG_ERROR, LOG_TAG_INFO, LOG_TAG_OK, LOG_TAG_WARNING, VERBOSE_PREVIEW_CHARS


LogCallback = Callable[[str, str], None]

# 엔트리 종류
KIND_EXECUTED  = "executed"
KIND_DEFERRED  = "deferred"
KIND_SKIPPED   = "skipped"
KIND_BLOCKED   = "blocked"
KIND_QUEUED    = "queued"
KIND_TRUNCATED = "truncated"
KIND_INFO      = "info"
KIND_WARNING   = "warning"
KIND_ERROR     = "error"

_KIND_TAGS = {
    KIND_EXECUTED:  LOG_TAG_OK,
    KIND_TRUNCATED: LOG_TAG_OK,
    KIND_BLOCKED:   LOG_TAG_WARNING,
    KIND_WARNING:   LOG_TAG_WARNING,
    KIND_ERROR:     LOG_TAG_ERROR,
}


def preview(statement: Optional[str], limit: int = VERBOSE_PREVIEW_CHARS) -> str:
    """문장을 한 줄로 접고 limit 글자를 넘으면 '...'을 붙인다."""
    if not statement:
        return ""
    text = " ".join(statement.split())
    return text if len(text) <= limit else text[:limit] + "..."


@dataclass
class LogEntry:
    timestamp: str
    tag:       str
    kind:      str
    message:   str
    statement: Optional[str] = None
    reason:    Optional[str] = None
    category:  Optional[str] = None

    def render(self) -> str:
        return f"{self.timestamp} [{self.tag:<5}] {self.message}"


class ImportLog:
    """
    임포트 로그 엔트리 보관 및 콜백 전달.

    내부 상태:
        _entries : LogEntry 리스트 (추가 순서)
        _log     : 로그 콜백 (tag, message)

    @example
        log = ImportLog(lambda tag, msg: print(f"[{tag}] {msg}"))
        log.blocked("DROP 문은 허용되지 않습니다.", "DROP TABLE t;", "drops_not_allowed")
        log.count("blocked")   # -> 1
    """

    def __init__(self, log: Optional[LogCallback] = None):
        self._entries: List[LogEntry] = []
        self._log = log or (lambda tag, msg: None)

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def add(
        self,
        kind:      str,
        message:   str,
        statement: Optional[str] = None,
        reason:    Optional[str] = None,
        category:  Optional[str] = None,
    ) -> LogEntry:
        """
        엔트리를 추가하고 콜백으로 전달한다.

        콜백 메시지에는 문장 미리보기가 함께 붙는다.

        @param kind       엔트리 종류 (executed, deferred, skipped, ...)
        @param message    로그 메시지
        @param statement  관련 SQL 문장 (선택)
        @param reason     건너뜀 / 차단 사유 코드 (선택)
        @param category   문장 분류 (선택)
        @returns          추가된 LogEntry
        """
        entry = LogEntry(
            timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            tag       = _KIND_TAGS.get(kind, LOG_TAG_INFO),
            kind      = kind,
            message   = message,
            statement = statement,
            reason    = reason,
            category  = category,
        )
        self._entries.append(entry)
        text = f"{message}: {preview(statement)}" if statement else message
        self._log(entry.tag, text)
        return entry

    def executed(self, message: str, statement: Optional[str] = None, category: Optional[str] = None) -> LogEntry:
        return self.add(KIND_EXECUTED, message, statement, category=category)

    def deferred(self, message: str, statement: str) -> LogEntry:
        return self.add(KIND_DEFERRED, message, statement)

    def skipped(
        self,
        message:   str,
        statement: Optional[str] = None,
        reason:    Optional[str] = None,
        category:  Optional[str] = None,
    ) -> LogEntry:
        return self.add(KIND_SKIPPED, message, statement, reason, category)

    def blocked(self, message: str, statement: str, reason: Optional[str] = None) -> LogEntry:
        return self.add(KIND_BLOCKED, message, statement, reason)

    def queued(self, message: str, statement: str, category: Optional[str] = None) -> LogEntry:
        return self.add(KIND_QUEUED, message, statement, category=category)

    def truncated(self, message: str, table: str) -> LogEntry:
        return self.add(KIND_TRUNCATED, f"{message}: {table}")

    def info(self, message: str) -> LogEntry:
        return self.add(KIND_INFO, message)

    def warning(self, message: str) -> LogEntry:
        return self.add(KIND_WARNING, message)

    def error(self, message: str, statement: Optional[str] = None) -> LogEntry:
        return self.add(KIND_ERROR, message, statement)

    # ------------------------------------------------------------------
    # 조회 / 내보내기
    # ------------------------------------------------------------------

    def count(self, kind: str) -> int:
        return sum(1 for entry in self._entries if entry.kind == kind)

    def summary(self) -> Dict[str, int]:
        """종류별 엔트리 수. 한 번도 나오지 않은 종류는 포함하지 않는다."""
        counts: Dict[str, int] = {}
        for entry in self._entries:
            counts[entry.kind] = counts.get(entry.kind, 0) + 1
        return counts

    def render(self) -> str:
        return "".join(entry.render() + "\n" for entry in self._entries)

    def export(self, file_path: str) -> None:
        """
        로그를 텍스트 파일로 저장한다.

        @param file_path  저장 경로
        @throws           IOError 파일 쓰기 실패
        """
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(self.render())

    @staticmethod
    def default_export_name() -> str:
        return f"import_log_{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"

    def clear(self) -> None:
        self._entries.clear()
