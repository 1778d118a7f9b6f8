"""
증분 JSON 행 파서.

데이터 내보내기 형식을 청크 단위로 읽는다:

    {
      "columns": [ {"name": "...", "type": "..."}, ... ],
      "data":    [ {"col": value, ...}, ... ]
    }

"data" 배열의 원소(행)는 닫히는 즉시 rows로 내보내고 메모리에 쌓아두지 않는다.
청크 끝에서 잘린 토큰(문자열, 숫자, true/false/null)은 JsonParseState.pending에
보관했다가 다음 청크 앞에 붙여 다시 읽는다.

행 값이 객체/배열(json, 배열 컬럼)이어도 그대로 파이썬 dict / list로 만든다.
"""

import json
import re
from dataclasses import dataclass, field
from typing      import Any, Dict, List, Optional


MODE_ROOT    = "root"
MODE_COLUMNS = "columns"
MODE_DATA    = "data"
MODE_ROW     = "row"
MODE_DONE    = "done"

_STRING  = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)
_LITERAL = re.compile(r"[0-9eE+\-a-zA-Z.]+")


class JsonRowParserError(ValueError):
    """문서 구조가 깨져 더 읽을 수 없을 때 발생한다."""


@dataclass
class _Frame:
    """열린 객체 / 배열 하나."""
    bracket: str
    value:   Any
    slot:    Optional[str] = None    # 부모 객체에서 이 값이 놓일 키
    key:     Optional[str] = None    # 객체 안에서 값을 기다리는 키


@dataclass
class JsonParseState:
    """
    파서의 재개 가능한 상태.

    @param mode     현재 위치 (root, columns, data, row, done)
    @param stack    열린 객체 / 배열
    @param columns  읽은 컬럼 정의 ("columns" 배열이 닫힌 뒤 채워짐)
    @param pending  아직 토큰으로 끝나지 않은 꼬리 텍스트
    """
    mode:    str                            = MODE_ROOT
    stack:   List[_Frame]                   = field(default_factory=list)
    columns: Optional[List[Dict[str, Any]]] = None
    pending: str                            = ""

    @property
    def current_row(self) -> Optional[Dict[str, Any]]:
        if self.mode == MODE_ROW and len(self.stack) >= 3:
            return self.stack[2].value
        return None

    @property
    def current_key(self) -> Optional[str]:
        return self.stack[-1].key if self.stack else None


@dataclass
class JsonParseResult:
    rows:      List[Dict[str, Any]]           = field(default_factory=list)
    header:    Optional[List[Dict[str, Any]]] = None
    remainder: str                            = ""


class JsonRowParser:
    """
    상태를 갖지 않는 파서. 상태는 호출자가 JsonParseState로 넘긴다.

    @example
        parser = JsonRowParser()
        state  = JsonParseState()
        for chunk in chunks:
            result = parser.parse(chunk, state)
            insert(result.header, result.rows)
    """

    def parse(self, chunk: str, state: JsonParseState, final: bool = False) -> JsonParseResult:
        """
        청크를 읽어 완성된 행을 반환한다.

        @param chunk  입력 조각
        @param state  이전 호출에서 이어받은 상태 (갱신됨)
        @param final  마지막 청크이면 True (버퍼 끝의 숫자 / 리터럴을 완성된 것으로 본다)
        @returns      JsonParseResult(rows, header, remainder)
        @throws       JsonRowParserError 예상하지 못한 문자 또는 괄호 불일치
        """
        buf  = state.pending + chunk
        n    = len(buf)
        i    = 0
        rows: List[Dict[str, Any]] = []

        while i < n:
            c = buf[i]
            if c <= " ":
                i += 1
            elif c in "{[":
                self._open(c, state)
                i += 1
            elif c in "}]":
                self._close(c, state, rows)
                i += 1
            elif c in ":,":
                i += 1
            elif c == '"':
                m = _STRING.match(buf, i)
                if m is None:
                    break
                self._value(json.loads(m.group(), strict=False), state, is_string=True)
                i = m.end()
            elif c in "-0123456789tfn":
                m = _LITERAL.match(buf, i)
                if m.end() >= n and not final:
                    break
                try:
                    value = json.loads(m.group())
                except ValueError:
                    raise JsonRowParserError(f"잘못된 JSON 값입니다: {m.group()[:40]}") from None
                self._value(value, state, is_string=False)
                i = m.end()
            else:
                raise JsonRowParserError(f"예상하지 못한 문자입니다: {c!r} (위치 {i})")

        state.pending = buf[i:]
        return JsonParseResult(rows, state.columns, state.pending)

    @staticmethod
    def parse_from_string(text: str) -> JsonParseResult:
        return JsonRowParser().parse(text, JsonParseState(), final=True)

    # ------------------------------------------------------------------
    # 토큰 소비
    # ------------------------------------------------------------------

    def _open(self, bracket: str, state: JsonParseState) -> None:
        slot = state.stack[-1].key if state.stack else None
        value: Any = {} if bracket == "{" else []
        state.stack.append(_Frame(bracket, value, slot))
        self._update_mode(state)

    def _close(self, bracket: str, state: JsonParseState, rows: List[Dict[str, Any]]) -> None:
        expected = "{" if bracket == "}" else "["
        if not state.stack or state.stack[-1].bracket != expected:
            raise JsonRowParserError(f"괄호가 맞지 않습니다: {bracket}")

        frame = state.stack.pop()
        if not state.stack:
            state.mode = MODE_DONE
            return

        parent = state.stack[-1]
        if len(state.stack) == 2 and parent.slot == "data" and parent.bracket == "[":
            rows.append(frame.value)
        else:
            if len(state.stack) == 1 and frame.slot == "columns":
                state.columns = frame.value
            self._assign(parent, frame.value)
        self._update_mode(state)

    def _value(self, value: Any, state: JsonParseState, is_string: bool) -> None:
        if not state.stack:
            raise JsonRowParserError("최상위 값은 객체여야 합니다.")
        top = state.stack[-1]
        if is_string and top.bracket == "{" and top.key is None:
            top.key = value
            return
        self._assign(top, value)

    @staticmethod
    def _assign(frame: _Frame, value: Any) -> None:
        if frame.bracket == "[":
            frame.value.append(value)
        elif frame.key is not None:
            frame.value[frame.key] = value
            frame.key = None

    @staticmethod
    def _update_mode(state: JsonParseState) -> None:
        depth = len(state.stack)
        if depth <= 1:
            state.mode = MODE_ROOT
        elif state.stack[1].slot == "columns":
            state.mode = MODE_COLUMNS
        elif state.stack[1].slot == "data":
            state.mode = MODE_DATA if depth == 2 else MODE_ROW
        else:
            state.mode = MODE_ROOT
