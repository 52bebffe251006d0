"""
스냅샷 모델 (Pydantic)

전체 엔티티 그래프 백업 포맷.
테이블 필드가 없거나 null = 이 스냅샷에 없는 테이블 (복원 시 건드리지 않음)
빈 배열 = 행이 0개인 테이블 (복원 시 비움)
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from backoffice.backup.tables import TABLE_NAMES
from core.constants import Defaults
from core.errors import ValidationError

logger = logging.getLogger(__name__)

Rows = list[dict[str, Any]] | None


class Snapshot(BaseModel):
    """전체 백업 스냅샷"""

    version: int = Field(default=Defaults.SNAPSHOT_VERSION, description="스냅샷 포맷 버전")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="내보내기 시각 (UTC)",
    )

    customers: Rows = None
    accounts: Rows = None
    expense_categories: Rows = None
    products: Rows = None
    wholesalers: Rows = None
    needs: Rows = None
    services: Rows = None
    sales: Rows = None
    purchase_invoices: Rows = None
    customer_transactions: Rows = None
    wholesaler_transactions: Rows = None
    account_transactions: Rows = None

    model_config = {"extra": "ignore"}

    def table(self, name: str) -> Rows:
        """테이블 행 목록 (스냅샷에 없으면 None)"""
        if name not in TABLE_NAMES:
            raise KeyError(f"Unknown snapshot table: {name}")
        return getattr(self, name)

    def present_tables(self) -> list[str]:
        """스냅샷에 포함된 테이블 (빈 배열 포함, 의존 순서)"""
        return [name for name in TABLE_NAMES if self.table(name) is not None]

    def row_counts(self) -> dict[str, int]:
        return {name: len(self.table(name) or []) for name in self.present_tables()}


def save_snapshot(snapshot: Snapshot, path: Path) -> Path:
    """스냅샷 JSON 저장

    Args:
        snapshot: 저장할 스냅샷
        path: 파일 경로 (디렉토리 없으면 생성)

    Returns:
        저장된 파일 경로
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
    logger.info(
        "스냅샷 저장 완료",
        extra={"path": str(path), "tables": snapshot.row_counts()},
    )
    return path


def load_snapshot(path: Path) -> Snapshot:
    """스냅샷 JSON 로드

    Raises:
        ValidationError: 파일 없음 또는 형식 오류
    """
    if not path.exists():
        raise ValidationError(f"Snapshot file not found: {path}")
    try:
        snapshot = Snapshot.model_validate_json(path.read_text(encoding="utf-8"))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid snapshot format in {path}: {e}") from e

    if snapshot.version > Defaults.SNAPSHOT_VERSION:
        logger.warning(
            "Snapshot version is newer than supported",
            extra={"version": snapshot.version, "supported": Defaults.SNAPSHOT_VERSION},
        )
    return snapshot
