"""
세션 설정(SET) 수집 및 재적용.

임포트 스크립트의 SET 문 중 허용 목록에 있는 것만 실행하고, 실행한 설정은
중복 없이 원래 순서대로 캐시해 둔다. 재접속 후 apply_settings()로 캐시 전체를
다시 실행해 세션 상태(search_path, client_encoding 등)를 복원한다.

    - 허용 목록에 없는 SET       : 경고 로그, 실행하지 않음
    - 서버 버전이 지원하지 않는 SET : 정보 로그, 실행하지 않음
    - search_path / client_encoding : ImportSession.current_schema / encoding 갱신

SET ROLE / SET SESSION AUTHORIZATION은 세션 설정이 아니라 세션 신원 변경이므로
여기서 다루지 않고 StatementExecutor의 self_affecting 정책을 따른다.
"""

import re
from typing import List, Optional, Tuple

from config import APPLIED_PREVIEW_CHARS, SETTING_PREVIEW_CHARS
from models.import_options import ImportSession
from services.importer.import_log import ImportLog
from services.importer.sql_parser import strip_leading_comments


_FLAGS = re.IGNORECASE | re.DOTALL

# 허용되는 세션 설정
ALLOWED_SETTINGS: Tuple[str, ...] = (
    "session_replication_role",
    "statement_timeout",
    "lock_timeout",
    "idle_in_transaction_session_timeout",
    "transaction_timeout",
    "client_encoding",
    "standard_conforming_strings",
    "search_path",
    "check_function_bodies",
    "xmloption",
    "client_min_messages",
    "row_security",
    "default_transaction_read_only",
)

# 설정이 도입된 서버 major 버전. 목록에 없으면 지원 범위 전체에서 사용 가능하다.
SETTING_SINCE = {
    "lock_timeout":                        9.3,
    "idle_in_transaction_session_timeout": 9.6,
    "transaction_timeout":                 14.0,
    "row_security":                        9.5,
}

_SET_COMMAND     = re.compile(r"\ASET\s+(?:SESSION\s+(?!AUTHORIZATION\b))?([A-Za-z_][A-Za-z0-9_.]*)", _FLAGS)
_SESSION_ROLE    = re.compile(r"\ASET\s+(?:SESSION\s+AUTHORIZATION|ROLE|LOCAL\s+ROLE|SESSION\s+ROLE)\b", _FLAGS)
_SET_CONFIG_PATH = re.compile(r"\ASELECT\s+pg_catalog\.set_config\(\s*'search_path'\s*,\s*'([^']*)'", _FLAGS)
_SEARCH_PATH     = re.compile(r"\ASET\s+(?:SESSION\s+)?search_path\s*(?:=|\bTO\b)\s*(.+?);?\s*\Z", _FLAGS)
_CLIENT_ENCODING = re.compile(r"\ASET\s+(?:SESSION\s+)?client_encoding\s*(?:=|\bTO\b)\s*'?([A-Za-z0-9_-]+)'?", _FLAGS)


def _normalize(statement: str) -> str:
    return " ".join(statement.split()).lower()


def _first_schema(path: str) -> Optional[str]:
    """search_path 값에서 "$user"를 제외한 첫 스키마."""
    for part in path.split(","):
        name = part.strip().strip(" \"'{}")
        if name and name != "$user":
            return name
    return None


def is_setting_statement(statement: str) -> bool:
    """
    세션 설정 문장(SET name ... / set_config('search_path', ...))인지 판단한다.

    SET ROLE / SET SESSION AUTHORIZATION은 False.
    """
    body = strip_leading_comments(statement).strip()
    if _SESSION_ROLE.match(body):
        return False
    return bool(_SET_COMMAND.match(body) or _SET_CONFIG_PATH.match(body))


class SessionSettingsApplier:
    """
    세션 설정 캐시.

    ImportSession의 cached_settings / current_schema / encoding 필드는
    이 클래스만 기록한다.

    내부 상태:
        _session : 임포트 세션 상태
        _log     : ImportLog
        _version : 대상 서버 major 버전
        _seen    : 정규화된 설정 문장 집합 (중복 제거용)
    """

    def __init__(self, session: ImportSession, log: ImportLog, server_version: float):
        self._session = session
        self._log     = log
        self._version = server_version
        self._seen    = {_normalize(s) for s in session.cached_settings}

    @property
    def cached_settings(self) -> List[str]:
        return list(self._session.cached_settings)

    @cached_settings.setter
    def cached_settings(self, settings: List[str]) -> None:
        self._session.cached_settings = list(settings)
        self._seen = {_normalize(s) for s in settings}

    def collect(self, statement: str) -> bool:
        """
        설정 문장을 검사하고 캐시에 넣는다.

        @param statement  SQL 문장
        @returns          True: 실행해야 함 (설정이 아닌 문장 포함)
                          False: 허용되지 않거나 서버가 지원하지 않아 건너뜀

        @example
            applier.collect("SET search_path TO public;")       # -> True
            applier.collect("SET enable_seqscan = off;")        # -> False (경고)
        """
        body = strip_leading_comments(statement).strip()
        if not body or not is_setting_statement(body):
            return True

        name = self._setting_name(body)
        if name not in ALLOWED_SETTINGS:
            self._log.warning(f"허용되지 않은 SET 명령을 건너뜁니다: {body[:SETTING_PREVIEW_CHARS]}")
            return False

        since = SETTING_SINCE.get(name)
        if since is not None and self._version < since:
            self._log.info(
                f"PostgreSQL {self._version:g}에서 지원하지 않는 설정을 건너뜁니다: "
                f"{body[:SETTING_PREVIEW_CHARS]}"
            )
            return False

        if not body.endswith(";"):
            body += ";"
        self._track_side_effects(body)

        key = _normalize(body)
        if key not in self._seen:
            self._seen.add(key)
            self._session.cached_settings.append(body)
        return True

    def apply_settings(self, driver) -> int:
        """
        캐시된 설정을 원래 순서대로 다시 실행한다.

        재접속 직후 세션 상태를 복원할 때 사용한다.

        @param driver  드라이버 경계 객체
        @returns       실패한 설정 수
        """
        errors = 0
        for sql in self._session.cached_settings:
            sql = sql.strip()
            if not sql:
                continue
            if driver.execute(sql) != 0:
                errors += 1
                self._log.error(f"세션 설정 적용 실패: {driver.last_error}", sql)
            else:
                self._log.info(f"세션 설정 적용: {sql[:APPLIED_PREVIEW_CHARS]}")
        return errors

    # ------------------------------------------------------------------

    @staticmethod
    def _setting_name(body: str) -> Optional[str]:
        if _SET_CONFIG_PATH.match(body):
            return "search_path"
        m = _SET_COMMAND.match(body)
        return m.group(1).lower() if m else None

    def _track_side_effects(self, body: str) -> None:
        m = _SEARCH_PATH.match(body)
        if m:
            self._session.current_schema = _first_schema(m.group(1))
        else:
            m = _SET_CONFIG_PATH.match(body)
            if m:
                self._session.current_schema = _first_schema(m.group(1))

        m = _CLIENT_ENCODING.match(body)
        if m:
            self._session.encoding = m.group(1)
