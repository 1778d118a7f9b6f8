"""
임포트 문장 분류기.

SQL을 실행하지 않고 문장 앞부분의 키워드와 대상 롤 이름만으로 분류한다.
여러 분류에 해당하면 아래 순서에서 먼저 맞는 분류를 사용한다:

    1. self_affecting   : 접속 중인 세션 자신의 권한/신원을 바꾸는 문장
                          (ALTER ROLE <current_user>, SET ROLE, SET SESSION AUTHORIZATION,
                           DROP ROLE <current_user>, REVOKE ... FROM <current_user> 등)
    2. data             : INSERT, COPY <table> [(cols)] FROM (COPY ... TO 제외)
    3. drop             : DROP
    4. ownership_change : ALTER ... OWNER TO, REASSIGN OWNED
    5. rights           : GRANT, REVOKE, ALTER DEFAULT PRIVILEGES
    6. ddl_other        : 그 밖의 모든 문장

앞쪽 주석과 공백은 무시한다.
"""

import re
from enum   import Enum
from typing import List, Optional

from services.importer.sql_parser import strip_leading_comments
from services.pg_driver           import COPY_FROM_PATTERN


class StatementCategory(str, Enum):
    SELF_AFFECTING   = "self_affecting"
    DATA             = "data"
    DROP             = "drop"
    OWNERSHIP_CHANGE = "ownership_change"
    RIGHTS           = "rights"
    DDL_OTHER        = "ddl_other"


_FLAGS = re.IGNORECASE | re.DOTALL

_SESSION_IDENTITY = re.compile(r"\A(?:SET|RESET)\s+(?:SESSION\s+AUTHORIZATION|ROLE)\b", _FLAGS)
_ALTER_ROLE       = re.compile(r"\AALTER\s+(?:ROLE|USER)\s+(\"(?:[^\"]|\"\")+\"|[^\s;]+)", _FLAGS)
_DROP_ROLE        = re.compile(r"\ADROP\s+(?:ROLE|USER)\s+(?:IF\s+EXISTS\s+)?([^;]+)", _FLAGS)
_OWNED_BY         = re.compile(r"\A(?:DROP|REASSIGN)\s+OWNED\s+BY\s+([^;]+?)(?:\s+(?:TO|CASCADE|RESTRICT)\b|;|\Z)", _FLAGS)
_REVOKE_FROM      = re.compile(r"\AREVOKE\b.*\bFROM\s+([^;]+?)(?:\s+(?:CASCADE|RESTRICT|GRANTED)\b|;|\Z)", _FLAGS)

_DATA             = re.compile(rf"\A(?:INSERT\s+INTO\b|{COPY_FROM_PATTERN})", _FLAGS)
_DROP             = re.compile(r"\ADROP\b", _FLAGS)
_OWNERSHIP        = re.compile(r"\A(?:ALTER\b[^;]*\bOWNER\s+TO\b|REASSIGN\s+OWNED\b)", _FLAGS)
_RIGHTS           = re.compile(r"\A(?:GRANT\b|REVOKE\b|ALTER\s+DEFAULT\s+PRIVILEGES\b)", _FLAGS)

_SELF_KEYWORDS = {"current_user", "current_role", "session_user"}


def normalize_role(name: str) -> str:
    """
    롤 이름 토큰을 실제 롤 이름으로 바꾼다.

    큰따옴표로 감싼 이름은 그대로, 감싸지 않은 이름은 소문자로 접는다.
    """
    name = name.strip()
    if len(name) >= 2 and name[0] == '"' and name[-1] == '"':
        return name[1:-1].replace('""', '"')
    return name.lower()


def _role_list(text: str) -> List[str]:
    return [normalize_role(part) for part in text.split(",") if part.strip()]


def _is_self(role: str, current_user: Optional[str]) -> bool:
    if role in _SELF_KEYWORDS:
        return True
    return bool(current_user) and role == current_user


def _affects_self(body: str, current_user: Optional[str]) -> bool:
    if _SESSION_IDENTITY.match(body):
        return True
    m = _ALTER_ROLE.match(body)
    if m and _is_self(normalize_role(m.group(1)), current_user):
        return True
    for pattern in (_DROP_ROLE, _OWNED_BY, _REVOKE_FROM):
        m = pattern.match(body)
        if m and any(_is_self(role, current_user) for role in _role_list(m.group(1))):
            return True
    return False


def classify(statement: str, current_user: Optional[str] = None) -> StatementCategory:
    """
    문장을 분류한다. 부수효과가 없다.

    @param statement     SQL 문장 (앞쪽 주석 허용)
    @param current_user  임포트를 실행하는 접속 롤 이름
    @returns             StatementCategory

    @example
        classify("GRANT SELECT ON t TO alice;", "postgres")      # -> RIGHTS
        classify("ALTER ROLE postgres SET work_mem = '1MB';", "postgres")   # -> SELF_AFFECTING
    """
    body = strip_leading_comments(statement).strip()

    if _affects_self(body, current_user):
        return StatementCategory.SELF_AFFECTING
    if _DATA.match(body):
        return StatementCategory.DATA
    if _DROP.match(body):
        return StatementCategory.DROP
    if _OWNERSHIP.match(body):
        return StatementCategory.OWNERSHIP_CHANGE
    if _RIGHTS.match(body):
        return StatementCategory.RIGHTS
    return StatementCategory.DDL_OTHER
