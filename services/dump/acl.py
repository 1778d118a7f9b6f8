"""
aclitem[] 권한 목록 파서.

pg_class.relacl, pg_proc.proacl 등은 psycopg2에서 다음과 같은 배열 리터럴 문자열로 반환된다:

    {postgres=arwdDxt/postgres,=r/postgres,"my role"=r*w/postgres}

항목 하나는 grantee=권한문자/grantor 형식이며,
grantee가 비어 있으면 PUBLIC이고 권한 문자 뒤의 * 는 WITH GRANT OPTION을 뜻한다.

사용처:
    - BaseDumper.write_privileges() : GRANT / REVOKE 구문 재구성
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union


PRIVILEGE_NAMES = {
    "r": "SELECT",
    "w": "UPDATE",
    "a": "INSERT",
    "d": "DELETE",
    "D": "TRUNCATE",
    "x": "REFERENCES",
    "t": "TRIGGER",
    "X": "EXECUTE",
    "U": "USAGE",
    "C": "CREATE",
    "c": "CONNECT",
    "T": "TEMPORARY",
    "m": "MAINTAIN",
    "s": "SET",
    "A": "ALTER SYSTEM",
}


@dataclass
class AclEntry:
    """
    aclitem 한 항목.

    @param grantee     권한을 받은 롤 (None이면 PUBLIC)
    @param grantor     권한을 부여한 롤
    @param privileges  부여된 권한명 리스트 (문자 순서 유지)
    @param grantable   WITH GRANT OPTION이 붙은 권한명 리스트
    """
    grantee:    Optional[str]
    grantor:    str
    privileges: List[str] = field(default_factory=list)
    grantable:  List[str] = field(default_factory=list)

    @property
    def is_public(self) -> bool:
        return self.grantee is None

    @property
    def plain_privileges(self) -> List[str]:
        """WITH GRANT OPTION 없이 부여된 권한."""
        return [p for p in self.privileges if p not in self.grantable]


def split_array_literal(text: str) -> List[str]:
    """
    1차원 배열 리터럴 "{a,"b c",d}" 을 원소 리스트로 분리한다.

    큰따옴표로 감싼 원소의 \\" 와 \\\\ 이스케이프를 해제한다.
    """
    text = text.strip()
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1]
    if not text:
        return []

    items: List[str] = []
    buf: List[str] = []
    in_quotes = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_quotes:
            if ch == "\\" and i + 1 < len(text):
                buf.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_quotes = False
            else:
                buf.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ",":
            items.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    items.append("".join(buf))
    return items


def _split_role(text: str, start: int, stop_chars: str):
    """aclitem 안의 롤 이름 하나를 읽는다. 큰따옴표 롤은 "" 를 " 로 해제한다."""
    if start < len(text) and text[start] == '"':
        buf = []
        i = start + 1
        while i < len(text):
            if text[i] == '"':
                if i + 1 < len(text) and text[i + 1] == '"':
                    buf.append('"')
                    i += 2
                    continue
                return "".join(buf), i + 1
            buf.append(text[i])
            i += 1
        return "".join(buf), i
    i = start
    while i < len(text) and text[i] not in stop_chars:
        i += 1
    return text[start:i], i


def parse_aclitem(item: str) -> AclEntry:
    """
    aclitem 문자열 하나를 해석한다.

    @param item  'grantee=privs/grantor' 형식 문자열
    @returns     AclEntry
    @throws      ValueError 형식이 맞지 않을 때

    @example
        parse_aclitem('=r/postgres')           # -> AclEntry(None, 'postgres', ['SELECT'], [])
        parse_aclitem('alice=r*w/postgres')    # -> grantable == ['SELECT']
    """
    grantee, pos = _split_role(item, 0, "=")
    if pos >= len(item) or item[pos] != "=":
        raise ValueError(f"잘못된 aclitem: {item!r}")
    pos += 1

    privileges: List[str] = []
    grantable:  List[str] = []
    while pos < len(item) and item[pos] != "/":
        name = PRIVILEGE_NAMES.get(item[pos])
        if name is None:
            raise ValueError(f"알 수 없는 권한 문자 {item[pos]!r}: {item!r}")
        privileges.append(name)
        pos += 1
        if pos < len(item) and item[pos] == "*":
            grantable.append(name)
            pos += 1

    grantor = ""
    if pos < len(item) and item[pos] == "/":
        grantor, _ = _split_role(item, pos + 1, "")

    return AclEntry(
        grantee    = grantee or None,
        grantor    = grantor,
        privileges = privileges,
        grantable  = grantable,
    )


def parse_acl(acl: Union[str, Sequence[str], None]) -> List[AclEntry]:
    """
    aclitem[] 값을 AclEntry 리스트로 변환한다.

    @param acl  배열 리터럴 문자열, 문자열 리스트, 또는 None (기본 권한)
    @returns    AclEntry 리스트 (None이면 빈 리스트)
    """
    if acl is None:
        return []
    items = split_array_literal(acl) if isinstance(acl, str) else list(acl)
    return [parse_aclitem(item) for item in items if item]
