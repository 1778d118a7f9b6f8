"""
테스트 공용 픽스처.

FakeDriver는 PgDriver와 같은 경계 인터페이스를 흉내 낸다.
조회 응답은 SQL 조각(부분 문자열) 단위로 등록하고, 등록 순서대로 처음 맞는 응답을 돌려준다.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from services.pg_driver import PgDriver, RecordSet


class FakeDriver:
    """
    메모리 드라이버.

    내부 상태:
        executed   : execute()로 받은 SQL 목록
        queries    : select_set()으로 받은 (SQL, params) 목록
        last_error : 마지막 실패 메시지
    """

    def __init__(self, server_version: float = 16.0, current_user: str = "postgres", is_superuser: bool = True):
        self.server_version = server_version
        self.current_user   = current_user
        self.is_superuser   = is_superuser
        self.executed: List[str] = []
        self.queries:  List[Tuple[str, Optional[Sequence[Any]]]] = []
        self.last_error = ""
        self._responses: List[list] = []
        self._failures:  List[list] = []

    def on(
        self,
        fragment: str,
        rows:     List[Dict[str, Any]],
        columns:  Optional[List[Tuple[str, Optional[int]]]] = None,
        times:    Optional[int] = None,
    ) -> "FakeDriver":
        """fragment를 포함한 조회에 rows를 돌려준다. times를 주면 그 횟수만큼만 사용한다."""
        self._responses.append([fragment, rows, columns, times])
        return self

    def fail_on(self, fragment: str, message: str = "boom", after: int = 0) -> "FakeDriver":
        """fragment를 포함한 호출을 실패시킨다. after를 주면 그 횟수만큼은 통과시킨다."""
        self._failures.append([fragment, message, after])
        return self

    def _failure(self, sql: str) -> Optional[str]:
        for failure in self._failures:
            fragment, message, after = failure
            if fragment not in sql:
                continue
            if after > 0:
                failure[2] = after - 1
                continue
            return message
        return None

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        self.executed.append(sql)
        message = self._failure(sql)
        if message is not None:
            self.last_error = message
            return -1
        return 0

    def select_set(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[RecordSet]:
        self.queries.append((sql, params))
        message = self._failure(sql)
        if message is not None:
            self.last_error = message
            return None
        for response in self._responses:
            fragment, rows, columns, times = response
            if fragment not in sql or times == 0:
                continue
            if times is not None:
                response[3] = times - 1
            return RecordSet([dict(row) for row in rows], columns)
        return RecordSet([], [])

    def escape_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def escape_literal(self, value: Any) -> str:
        return "'" + str(value).replace("'", "''") + "'"

    escape_bytea = staticmethod(PgDriver.escape_bytea)


class Sink:
    """write(text)만 제공하는 텍스트 싱크."""

    def __init__(self):
        self.parts: List[str] = []

    def write(self, text: str) -> None:
        self.parts.append(text)

    @property
    def text(self) -> str:
        return "".join(self.parts)


class LogRecorder:
    """로그 콜백 (tag, message) 기록기."""

    def __init__(self):
        self.records: List[Tuple[str, str]] = []

    def __call__(self, tag: str, message: str) -> None:
        self.records.append((tag, message))

    def tags(self, tag: str) -> List[str]:
        return [message for t, message in self.records if t == tag]


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def sink() -> Sink:
    return Sink()


@pytest.fixture
def log() -> LogRecorder:
    return LogRecorder()
