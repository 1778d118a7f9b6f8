"""
덤프 출력 싱크.

모든 Dumper와 포맷터는 문자열을 write(text)로만 내보낸다.
DumpWriter는 임의의 텍스트 스트림(열린 파일, io.StringIO, sys.stdout)을 감싸거나,
open_file()로 일반 / gzip 압축 파일을 직접 연다.

사용처:
    - DatabaseDumper / SchemaDumper : 출력 대상 지정
    - SqlFormatter / CsvFormatter   : 데이터 블록 출력
"""

import gzip
from typing import Optional, TextIO


class DumpWriter:
    """
    텍스트 싱크 래퍼.

    내부 상태:
        _stream       : 실제 쓰기 대상 텍스트 스트림
        _owns_stream  : True이면 close() 시 스트림도 닫는다
        chars_written : 지금까지 출력한 문자 수

    @example
        with DumpWriter.open_file("backup.sql.gz", compress=True) as writer:
            DatabaseDumper(driver, writer).dump(DumpOptions())
    """

    def __init__(self, stream: TextIO, owns_stream: bool = False):
        self._stream      = stream
        self._owns_stream = owns_stream
        self.chars_written = 0

    @classmethod
    def open_file(cls, path: str, compress: bool = False, encoding: str = "utf-8") -> "DumpWriter":
        """
        파일을 열어 DumpWriter를 생성한다.

        @param path      출력 파일 경로
        @param compress  True이면 gzip 압축 텍스트 모드로 연다
        @param encoding  파일 인코딩
        @returns         파일을 소유하는 DumpWriter
        """
        if compress:
            stream = gzip.open(path, "wt", encoding=encoding, newline="")
        else:
            stream = open(path, "w", encoding=encoding, newline="")
        return cls(stream, owns_stream=True)

    def write(self, text: str) -> None:
        if not text:
            return
        self._stream.write(text)
        self.chars_written += len(text)

    def flush(self) -> None:
        self._stream.flush()

    def close(self) -> None:
        if self._owns_stream and not self._stream.closed:
            self._stream.close()

    def __enter__(self) -> "DumpWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return False
