"""
스냅샷 내보내기

모든 테이블의 전체 행을 읽어 하나의 Snapshot 으로 묶는다.
테이블 내 저장 순서 외의 순서는 보장하지 않는다.
"""

import logging

from adapters.db.sqlite_adapter import SQLiteAdapter
from backoffice.backup.snapshot import Snapshot
from backoffice.backup.tables import TABLES, strip_transient

logger = logging.getLogger(__name__)


class SnapshotExporter:
    """스냅샷 내보내기

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def export(self) -> Snapshot:
        """전체 테이블 내보내기

        라이브 스키마에 없는 테이블은 null (스냅샷에 없음) 로 남긴다.

        Returns:
            Snapshot
        """
        tables: dict[str, list[dict] | None] = {}

        for spec in TABLES:
            if not await self.db.table_exists(spec.name):
                logger.warning(f"Table missing from live schema, not exported: {spec.name}")
                tables[spec.name] = None
                continue

            rows = await self.db.fetchall_dicts(f"SELECT * FROM {spec.name} ORDER BY rowid")
            tables[spec.name] = [strip_transient(spec, row) for row in rows]

        snapshot = Snapshot(**tables)
        logger.info("스냅샷 내보내기 완료", extra={"tables": snapshot.row_counts()})
        return snapshot
