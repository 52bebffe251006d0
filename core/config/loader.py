"""
설정 로더

settings.yaml 로드 및 백오피스 설정 생성.
파일이 없으면 전부 기본값, 키가 빠져 있으면 해당 키만 기본값.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from core.constants import PROJECT_ROOT, Defaults, Paths
from core.types import SecondaryAnomalyPolicy


@dataclass(frozen=True)
class AppConfig:
    """백오피스 설정 (settings.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    db_path: Path
    restore_chunk_size: int
    secondary_anomaly_policy: SecondaryAnomalyPolicy
    require_sufficient_funds: bool
    log_level: str


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigLoadError(Exception):
    """설정 로드 실패 예외"""

    pass


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigLoadError(f"settings.yaml의 '{name}' 섹션은 매핑이어야 합니다")
    return section


def load_config(path: Path | None = None) -> AppConfig:
    """settings.yaml 파일 로드

    Args:
        path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        AppConfig 인스턴스

    Raises:
        ConfigLoadError: 형식이 잘못된 경우
    """
    if path is None:
        path = Paths.SETTINGS_FILE

    data: dict[str, Any] = {}
    if path.exists():
        try:
            content = path.read_text(encoding="utf-8")
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"settings.yaml 파싱 실패: {e}") from e

    if not isinstance(data, dict):
        raise ConfigLoadError("settings.yaml 최상위는 매핑이어야 합니다")

    database = _section(data, "database")
    restore = _section(data, "restore")
    posting = _section(data, "posting")
    logging_section = _section(data, "logging")

    # DB 경로 (상대 경로는 프로젝트 루트 기준)
    db_path_value = database.get("path")
    if db_path_value is None:
        db_path = Paths.DEFAULT_DB
    elif str(db_path_value) == ":memory:":
        db_path = Path(":memory:")
    else:
        db_path = Path(db_path_value)
        if not db_path.is_absolute():
            db_path = PROJECT_ROOT / db_path

    chunk_size = restore.get("chunk_size", Defaults.RESTORE_CHUNK_SIZE)
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size <= 0:
        raise ConfigLoadError(
            f"restore.chunk_size는 양의 정수여야 합니다: {chunk_size!r}"
        )

    policy_str = posting.get("secondary_anomaly_policy", SecondaryAnomalyPolicy.CLEAR.value)
    try:
        policy = SecondaryAnomalyPolicy(policy_str)
    except ValueError as e:
        valid = [p.value for p in SecondaryAnomalyPolicy]
        raise ConfigLoadError(
            f"유효하지 않은 posting.secondary_anomaly_policy입니다: '{policy_str}'. "
            f"유효한 값: {valid}"
        ) from e

    require_funds = posting.get("require_sufficient_funds", False)
    if not isinstance(require_funds, bool):
        raise ConfigLoadError(
            f"posting.require_sufficient_funds는 true/false여야 합니다: {require_funds!r}"
        )

    log_level = str(logging_section.get("level", Defaults.LOG_LEVEL)).upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigLoadError(
            f"유효하지 않은 logging.level입니다: '{log_level}'. 유효한 값: {list(_LOG_LEVELS)}"
        )

    return AppConfig(
        db_path=db_path,
        restore_chunk_size=chunk_size,
        secondary_anomaly_policy=policy,
        require_sufficient_funds=require_funds,
        log_level=log_level,
    )


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    settings.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _config: AppConfig | None = None

    def __new__(cls, settings_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, settings_path: Path | None = None) -> None:
        if self._config is None:
            type(self)._config = load_config(settings_path)

    @property
    def config(self) -> AppConfig:
        """로드된 설정"""
        assert self._config is not None
        return self._config

    @property
    def db_path(self) -> Path:
        """DB 경로"""
        return self.config.db_path

    @property
    def restore_chunk_size(self) -> int:
        """복원 INSERT 청크 크기"""
        return self.config.restore_chunk_size

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._config = None


def get_settings(settings_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        settings_path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(settings_path)
