"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from decimal import Decimal
from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → 프로젝트 루트)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class Defaults:
    """기본값 상수"""

    # 복원 시 한 번에 INSERT 하는 행 수 (요청 페이로드 제한)
    RESTORE_CHUNK_SIZE: int = 500

    # 금액 반올림 단위 (소수 2자리)
    MONEY_QUANT: Decimal = Decimal("0.01")

    # 매입 전표 notes 에 기록하는 보조 통화 합계 라인 접두어
    SECONDARY_TOTAL_NOTE_PREFIX: str = "Total USD:"

    # 스냅샷 포맷 버전
    SNAPSHOT_VERSION: int = 1

    LOG_LEVEL: str = "INFO"


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    BACKUPS_DIR: Path = DATA_DIR / "backups"

    # 설정 파일
    SETTINGS_FILE: Path = CONFIG_DIR / "settings.yaml"

    # DB 파일
    DEFAULT_DB: Path = DATA_DIR / "backoffice.db"
