"""
증분 SQL 분할기.

파일을 고정 크기 청크로 읽어 넣으면 완성된 문장만 items로 돌려주고,
아직 끝나지 않은 꼬리는 remainder로 보관했다가 다음 청크와 이어서 검사한다.

인식 규칙:
    - 세미콜론(;)으로 끝나는 일반 문장. 작은따옴표('...', E'...'), 큰따옴표("..."),
      달러 인용($tag$...$tag$), 한 줄 주석(--), 중첩 블록 주석(/* */) 안의 ;는 무시한다.
    - 문장 끝 ; 뒤의 공백/탭과 줄바꿈 하나는 그 문장에 붙인다.
    - COPY ... FROM stdin; 은 데이터 블록의 시작이다. 이후 줄 단위로 읽어
      정확히 \\. 인 줄까지를 하나의 item(is_copy=True)으로 묶는다.

모든 parse() 호출에서 나온 item.content를 이어 붙이고 마지막 remainder를 더하면
입력 원문과 정확히 같다.

검사 위치와 인용/주석 상태는 SqlParserState에 보관하므로 다음 청크가 들어오면
처음부터 다시 훑지 않고 멈춘 자리에서 이어서 검사한다.
"""

import re
from dataclasses import dataclass, field
from typing      import List, Optional, Tuple

from services.pg_driver import COPY_FROM_STDIN_PATTERN


MODE_SQL           = "sql"
MODE_SINGLE        = "single"
MODE_ESCAPE        = "escape"
MODE_DOUBLE        = "double"
MODE_DOLLAR        = "dollar"
MODE_LINE_COMMENT  = "line_comment"
MODE_BLOCK_COMMENT = "block_comment"
MODE_COPY          = "copy"

COPY_TERMINATOR = "\\."

_SQL_SPECIAL    = re.compile(r"[;'\"$/-]")
_ESCAPE_SPECIAL = re.compile(r"[\\']")
_BLOCK_SPECIAL  = re.compile(r"/\*|\*/")
_DOLLAR_TAG     = re.compile(r"\$(?:[A-Za-z_\u0080-\uffff][A-Za-z0-9_\u0080-\uffff]*)?\$")
_DOLLAR_PARTIAL = re.compile(r"\$[A-Za-z0-9_\u0080-\uffff]*\Z")
_COPY_FROM_STDIN = re.compile(rf"\A{COPY_FROM_STDIN_PATTERN}", re.IGNORECASE)


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def split_leading_comments(text: str) -> Tuple[str, str]:
    """
    문장 앞의 공백과 주석을 본문과 분리한다.

    @param text  SQL 문장
    @returns     (앞쪽 공백+주석, 본문)

    @example
        split_leading_comments("-- note\\nDROP TABLE t;")
        # -> ("-- note\\n", "DROP TABLE t;")
    """
    i = 0
    n = len(text)
    while i < n:
        if text[i].isspace():
            i += 1
        elif text.startswith("--", i):
            newline = text.find("\n", i)
            i = n if newline < 0 else newline + 1
        elif text.startswith("/*", i):
            depth = 0
            for m in _BLOCK_SPECIAL.finditer(text, i):
                depth += 1 if m.group() == "/*" else -1
                if depth == 0:
                    i = m.end()
                    break
            else:
                i = n
        else:
            break
    return text[:i], text[i:]


def strip_leading_comments(text: str) -> str:
    return split_leading_comments(text)[1]


def is_copy_from_stdin(statement: str) -> bool:
    return bool(_COPY_FROM_STDIN.match(strip_leading_comments(statement)))


@dataclass
class ParseItem:
    """
    완성된 문장 하나.

    @param content  원문 그대로의 문장 텍스트 (COPY는 데이터와 \\. 줄까지 포함)
    @param type     항상 "statement"
    @param is_copy  COPY ... FROM stdin 데이터 블록 여부
    """
    content: str
    type:    str  = "statement"
    is_copy: bool = False


@dataclass
class ParseResult:
    items:     List[ParseItem] = field(default_factory=list)
    remainder: str             = ""


@dataclass
class SqlParserState:
    """
    분할기의 재개 가능한 상태.

    buffer는 항상 아직 완성되지 않은 item의 시작부터 시작한다.
    pos는 buffer 안에서 다음 검사를 시작할 위치이다.
    """
    buffer:        str = ""
    pos:           int = 0
    mode:          str = MODE_SQL
    dollar_tag:    str = ""
    comment_depth: int = 0


class SqlParser:
    """
    청크 단위 SQL 분할기.

    @example
        parser = SqlParser()
        for chunk in chunks:
            for item in parser.parse(chunk).items:
                run(item.content)
        for item in parser.finish().items:
            run(item.content)
    """

    def __init__(self, state: Optional[SqlParserState] = None):
        self._state = state or SqlParserState()

    @property
    def state(self) -> SqlParserState:
        return self._state

    def parse(self, chunk: str) -> ParseResult:
        """
        청크를 이어 붙여 완성된 문장을 반환한다.

        @param chunk  입력 조각 (임의 위치에서 잘려 있어도 된다)
        @returns      ParseResult(완성된 items, 다음 호출로 넘길 remainder)
        """
        self._state.buffer += chunk
        items = self._scan(eof=False)
        return ParseResult(items, self._state.buffer)

    def finish(self) -> ParseResult:
        """
        입력이 끝났음을 알리고 남은 문장을 내보낸다.

        ;로 끝나지 않은 마지막 일반 문장은 item으로 내보낸다.
        \\. 줄을 만나지 못한 COPY 블록과 공백/주석뿐인 꼬리는 remainder로 남긴다.

        @returns  ParseResult
        """
        items = self._scan(eof=True)
        state = self._state
        if state.mode != MODE_COPY and strip_leading_comments(state.buffer).strip():
            items.append(ParseItem(state.buffer))
            state.buffer = ""
        remainder = state.buffer
        self._state = SqlParserState()
        return ParseResult(items, remainder)

    @staticmethod
    def parse_from_string(text: str) -> ParseResult:
        """문자열 전체를 한 번에 분할한다."""
        parser = SqlParser()
        head   = parser.parse(text)
        tail   = parser.finish()
        return ParseResult(head.items + tail.items, tail.remainder)

    # ------------------------------------------------------------------
    # 상태 기계
    # ------------------------------------------------------------------

    def _scan(self, eof: bool) -> List[ParseItem]:
        state = self._state
        buf   = state.buffer
        n     = len(buf)
        i     = state.pos
        start = 0
        items: List[ParseItem] = []

        while i < n:
            mode = state.mode

            if mode == MODE_SQL:
                m = _SQL_SPECIAL.search(buf, i)
                if m is None:
                    i = n
                    break
                i  = m.start()
                ch = buf[i]

                if ch == ";":
                    end = _statement_end(buf, i + 1, eof)
                    if end is None:
                        break
                    if is_copy_from_stdin(buf[start:i + 1]):
                        state.mode = MODE_COPY
                    else:
                        items.append(ParseItem(buf[start:end]))
                        start = end
                    i = end
                elif ch == "'":
                    state.mode = MODE_ESCAPE if _is_escape_prefix(buf, i) else MODE_SINGLE
                    i += 1
                elif ch == '"':
                    state.mode = MODE_DOUBLE
                    i += 1
                elif ch == "$":
                    if i > 0 and _is_ident_char(buf[i - 1]):
                        i += 1
                        continue
                    tag = _DOLLAR_TAG.match(buf, i)
                    if tag:
                        state.mode       = MODE_DOLLAR
                        state.dollar_tag = tag.group(0)
                        i = tag.end()
                    elif not eof and _DOLLAR_PARTIAL.match(buf, i):
                        break
                    else:
                        i += 1
                else:
                    # '-' 또는 '/' : 다음 글자를 봐야 주석 여부를 안다
                    if i + 1 >= n:
                        if eof:
                            i = n
                        break
                    if ch == "-" and buf[i + 1] == "-":
                        state.mode = MODE_LINE_COMMENT
                        i += 2
                    elif ch == "/" and buf[i + 1] == "*":
                        state.mode          = MODE_BLOCK_COMMENT
                        state.comment_depth = 1
                        i += 2
                    else:
                        i += 1

            elif mode in (MODE_SINGLE, MODE_DOUBLE, MODE_ESCAPE):
                quote = '"' if mode == MODE_DOUBLE else "'"
                if mode == MODE_ESCAPE:
                    m = _ESCAPE_SPECIAL.search(buf, i)
                    j = m.start() if m else -1
                else:
                    j = buf.find(quote, i)
                if j < 0:
                    i = n
                    break
                if buf[j] == "\\":
                    if j + 1 >= n:
                        i = n if eof else j
                        break
                    i = j + 2
                    continue
                if j + 1 >= n and not eof:
                    # 이어지는 청크가 같은 따옴표로 시작하면 이중 따옴표 이스케이프이다
                    i = j
                    break
                if j + 1 < n and buf[j + 1] == quote:
                    i = j + 2
                    continue
                state.mode = MODE_SQL
                i = j + 1

            elif mode == MODE_DOLLAR:
                tag = state.dollar_tag
                j = buf.find(tag, i)
                if j < 0:
                    i = max(i, n - len(tag) + 1)
                    break
                state.mode       = MODE_SQL
                state.dollar_tag = ""
                i = j + len(tag)

            elif mode == MODE_LINE_COMMENT:
                j = buf.find("\n", i)
                if j < 0:
                    i = n
                    break
                state.mode = MODE_SQL
                i = j + 1

            elif mode == MODE_BLOCK_COMMENT:
                m = _BLOCK_SPECIAL.search(buf, i)
                if m is None:
                    i = n if eof else max(i, n - 1)
                    break
                state.comment_depth += 1 if m.group() == "/*" else -1
                i = m.end()
                if state.comment_depth == 0:
                    state.mode = MODE_SQL

            else:
                # MODE_COPY : i는 항상 줄의 시작
                j = buf.find("\n", i)
                if j < 0:
                    if eof and _strip_cr(buf[i:]) == COPY_TERMINATOR:
                        items.append(ParseItem(buf[start:], is_copy=True))
                        start = i = n
                        state.mode = MODE_SQL
                    break
                line = _strip_cr(buf[i:j])
                i = j + 1
                if line == COPY_TERMINATOR:
                    items.append(ParseItem(buf[start:i], is_copy=True))
                    start = i
                    state.mode = MODE_SQL

        state.buffer = buf[start:]
        state.pos    = i - start
        return items


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def _is_escape_prefix(buf: str, quote_pos: int) -> bool:
    """quote_pos의 따옴표가 E'...' 이스케이프 문자열의 시작인지 판단한다."""
    if quote_pos < 1 or buf[quote_pos - 1] not in "eE":
        return False
    return quote_pos < 2 or not _is_ident_char(buf[quote_pos - 2])


def _statement_end(buf: str, pos: int, eof: bool) -> Optional[int]:
    """
    ; 바로 뒤 위치에서 문장 끝을 정한다.

    공백/탭 뒤에 줄바꿈이 오면 줄바꿈까지 포함한다. 다른 글자가 오면 ; 까지만이다.
    버퍼 끝이라 판단할 수 없으면 None (다음 청크를 기다린다).
    """
    n = len(buf)
    j = pos
    while j < n and buf[j] in " \t":
        j += 1
    if j >= n:
        return n if eof else None
    if buf[j] == "\n":
        return j + 1
    if buf[j] == "\r":
        if j + 1 < n:
            return j + 2 if buf[j + 1] == "\n" else j + 1
        return j + 1 if eof else None
    return pos
