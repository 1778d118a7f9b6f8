"""
PostgreSQL Dump & Restore Engine - Application Configuration

애플리케이션 전역 상수 및 설정값 정의.
모든 모듈에서 참조하는 단일 설정 소스(Single Source of Truth)로 기능한다.

구성 항목:
    - 애플리케이션 메타 정보 (이름, 버전)
    - PostgreSQL 접속 기본값
    - 로그 태그
    - 덤프 배치 사이즈 / 커서 청크 사이즈
    - 임포트 청크 사이즈 및 로그 미리보기 길이
"""


# ---------------------------------------------------------------------------
# 애플리케이션 메타 정보
# ---------------------------------------------------------------------------
APP_NAME    = "PostgreSQL Dump & Restore Engine"
APP_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# PostgreSQL 접속 기본값
# ConnectionInfo 기본값으로 사용된다.
# ---------------------------------------------------------------------------
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5432
DEFAULT_USER = "postgres"
DEFAULT_DB   = "postgres"

# ---------------------------------------------------------------------------
# 로그 태그 상수
# 각 서비스의 로그 콜백 호출 시 첫 번째 인자로 전달한다.
# ---------------------------------------------------------------------------
LOG_TAG_INFO    = "INFO"
LOG_TAG_OK      = "OK"
LOG_TAG_ERROR   = "ERROR"
LOG_TAG_WARNING = "WARN"

# ---------------------------------------------------------------------------
# 데이터 덤프 시 multi INSERT 한 문장에 묶을 최대 행 수
# DumpOptions.batch_size 기본값으로 사용한다.
# ---------------------------------------------------------------------------
SCHEMA_DUMP_BATCH_SIZE = 1000

# ---------------------------------------------------------------------------
# 서버 측 커서 페치 크기 계산용 상수
# CursorReader가 chunk_size를 지정받지 못했을 때
# (목표 바이트 / 평균 행 크기)를 MIN~MAX 범위로 잘라 사용한다.
# ---------------------------------------------------------------------------
CURSOR_TARGET_CHUNK_BYTES = 4 * 1024 * 1024
CURSOR_MIN_CHUNK_ROWS     = 100
CURSOR_MAX_CHUNK_ROWS     = 50000
CURSOR_DEFAULT_CHUNK_ROWS = 1000

# ---------------------------------------------------------------------------
# 임포트 시 파일을 읽는 단위 (문자 수)
# SqlImporter.run_file()이 이 크기로 나누어 파서에 전달한다.
# ---------------------------------------------------------------------------
IMPORT_READ_CHUNK_SIZE = 256 * 1024

# ---------------------------------------------------------------------------
# JSON 데이터 임포트 시 INSERT 한 문장에 묶을 최대 행 수
# ---------------------------------------------------------------------------
JSON_IMPORT_BATCH_ROWS = 500

# ---------------------------------------------------------------------------
# 로그 미리보기 길이
# verbose 모드에서 실행 SQL을 로그에 남길 때, 그리고 SET 명령 경고 시 사용한다.
# ---------------------------------------------------------------------------
VERBOSE_PREVIEW_CHARS  = 200
SETTING_PREVIEW_CHARS  = 80
APPLIED_PREVIEW_CHARS  = 120
