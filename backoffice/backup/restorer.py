"""
스냅샷 복원

1. 참조 사전 검사: 변경 전에 스냅샷의 모든 참조가 닫혀 있는지 확인
   (실패 시 아무 것도 지우지 않고 ReferentialIntegrityError)
2. 삭제: 종속 → 독립 순서로 스냅샷에 있는 테이블만 비움
3. 삽입: 독립 → 종속 순서로 원래 id 그대로 청크 단위 INSERT
   (청크 실패 시 PartialRestoreFailure, 이미 복원된 테이블은 되돌리지 않음)

스냅샷에 없는 테이블(null)은 건드리지 않고, 그 테이블로의 참조는 라이브 id 로 검사.
라이브 스키마에 없는 테이블은 건너뛴다.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from backoffice.backup.snapshot import Snapshot
from backoffice.backup.tables import (
    DELETE_ORDER,
    INSERT_ORDER,
    TABLES,
    TABLES_BY_NAME,
    TableSpec,
    is_forward_reference,
    strip_transient,
)
from core.constants import Defaults
from core.errors import PartialRestoreFailure, ReferentialIntegrityError

logger = logging.getLogger(__name__)


@dataclass
class RestoreReport:
    """복원 결과

    Attributes:
        restored_tables: 삽입까지 끝난 테이블 (순서대로)
        inserted: 테이블 → 삽입 행 수
        dropped: 테이블 → 삽입 시 참조 재검사로 버린 행 수
        dropped_columns: 테이블 → 라이브 스키마에 없어 버린 컬럼
        skipped_tables: 라이브 스키마에 없어 건너뛴 테이블
        untouched_tables: 스냅샷에 없어 그대로 둔 테이블
    """

    restored_tables: list[str] = field(default_factory=list)
    inserted: dict[str, int] = field(default_factory=dict)
    dropped: dict[str, int] = field(default_factory=dict)
    dropped_columns: dict[str, list[str]] = field(default_factory=dict)
    skipped_tables: list[str] = field(default_factory=list)
    untouched_tables: list[str] = field(default_factory=list)

    @property
    def total_inserted(self) -> int:
        return sum(self.inserted.values())

    @property
    def total_dropped(self) -> int:
        return sum(self.dropped.values())


class SnapshotRestorer:
    """스냅샷 복원

    Args:
        db: SQLiteAdapter 인스턴스
        chunk_size: 청크당 INSERT 행 수

    사용 예시:
    ```python
    restorer = SnapshotRestorer(db, chunk_size=500)
    report = await restorer.restore(load_snapshot(path))
    ```
    """

    def __init__(self, db: SQLiteAdapter, chunk_size: int = Defaults.RESTORE_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")
        self.db = db
        self.chunk_size = chunk_size

    async def restore(self, snapshot: Snapshot) -> RestoreReport:
        """스냅샷 복원

        Raises:
            ReferentialIntegrityError: 사전 검사 실패 (변경 없음)
            PartialRestoreFailure: 삽입 중 청크 실패 (부분 복원 상태)
        """
        live_tables = {name for name in INSERT_ORDER if await self.db.table_exists(name)}

        await self.precheck(snapshot, live_tables)

        report = RestoreReport()
        present = [name for name in snapshot.present_tables() if name in live_tables]
        report.skipped_tables = [
            name for name in snapshot.present_tables() if name not in live_tables
        ]
        report.untouched_tables = [
            name for name in INSERT_ORDER if snapshot.table(name) is None
        ]
        for name in report.skipped_tables:
            logger.warning(f"Table missing from live schema, skipped: {name}")

        await self._delete_phase(present)
        await self._insert_phase(snapshot, present, live_tables, report)

        logger.info(
            "스냅샷 복원 완료",
            extra={
                "inserted": report.inserted,
                "dropped": report.dropped,
                "untouched": report.untouched_tables,
                "skipped": report.skipped_tables,
            },
        )
        return report

    # -------------------------------------------------------------------------
    # 1. 사전 검사
    # -------------------------------------------------------------------------

    async def precheck(self, snapshot: Snapshot, live_tables: set[str] | None = None) -> None:
        """참조 사전 검사 (읽기 전용)

        - 스냅샷 행의 참조는 null 이거나, 참조 테이블의 스냅샷 id
          (참조 테이블이 스냅샷에 없으면 라이브 id) 중 하나여야 함
        - 테이블 내 id 누락/중복 금지
        - 참조 테이블을 교체하면서 종속 테이블을 생략하려면 종속 테이블의 라이브 행이 없어야 함

        Raises:
            ReferentialIntegrityError: 위반 전체 목록
        """
        if live_tables is None:
            live_tables = {name for name in INSERT_ORDER if await self.db.table_exists(name)}

        violations: list[dict[str, Any]] = []
        ids: dict[str, set[Any]] = {}

        for spec in TABLES:
            rows = snapshot.table(spec.name)
            if rows is None:
                ids[spec.name] = await self._live_ids(spec.name, live_tables)
                continue

            seen: set[Any] = set()
            for row in rows:
                row_id = row.get("id")
                if row_id is None:
                    violations.append({
                        "table": spec.name, "field": "id", "value": None,
                        "reason": "row without id",
                    })
                elif row_id in seen:
                    violations.append({
                        "table": spec.name, "field": "id", "value": row_id,
                        "reason": "duplicate id",
                    })
                seen.add(row_id)
            ids[spec.name] = seen

        for spec in TABLES:
            rows = snapshot.table(spec.name)
            if rows is None:
                continue
            for row in rows:
                for column, parent in spec.references.items():
                    value = row.get(column)
                    if value is None or value in ids[parent]:
                        continue
                    violations.append({
                        "table": spec.name,
                        "field": column,
                        "value": value,
                        "row_id": row.get("id"),
                        "references": parent,
                    })

        # 교체되는 테이블을 참조하는 생략 테이블
        for spec in TABLES:
            if snapshot.table(spec.name) is not None or spec.name not in live_tables:
                continue
            replaced_parents = sorted({
                parent for parent in spec.references.values()
                if snapshot.table(parent) is not None
            })
            if not replaced_parents:
                continue
            live_count = await self._live_count(spec.name)
            if live_count:
                violations.append({
                    "table": spec.name,
                    "field": "*",
                    "value": f"{live_count} live rows",
                    "reason": (
                        f"table omitted from snapshot while referenced tables "
                        f"{replaced_parents} are replaced"
                    ),
                })

        if violations:
            logger.error(
                "Snapshot pre-check failed, nothing was changed",
                extra={"violations": len(violations)},
            )
            raise ReferentialIntegrityError(violations)

        logger.info("Snapshot pre-check passed")

    async def _live_ids(self, table: str, live_tables: set[str]) -> set[Any]:
        if table not in live_tables:
            return set()
        rows = await self.db.fetchall(f"SELECT id FROM {table}")
        return {row[0] for row in rows}

    async def _live_count(self, table: str) -> int:
        row = await self.db.fetchone(f"SELECT COUNT(*) FROM {table}")
        return int(row[0]) if row else 0

    # -------------------------------------------------------------------------
    # 2. 삭제
    # -------------------------------------------------------------------------

    async def _delete_phase(self, present: list[str]) -> None:
        """종속 → 독립 순서로 삭제 (스냅샷에 있는 라이브 테이블만)"""
        targets = [name for name in DELETE_ORDER if name in present]
        async with self.db.transaction():
            for name in targets:
                cursor = await self.db.execute(f"DELETE FROM {name}")
                logger.debug(f"Cleared {name}", extra={"rows": cursor.rowcount})
        logger.info("Delete phase completed", extra={"tables": targets})

    # -------------------------------------------------------------------------
    # 3. 삽입
    # -------------------------------------------------------------------------

    async def _insert_phase(
        self,
        snapshot: Snapshot,
        present: list[str],
        live_tables: set[str],
        report: RestoreReport,
    ) -> None:
        """독립 → 종속 순서로 삽입"""
        # 이번 복원에서 실제로 들어간 id (교체 테이블) / 라이브 id (미교체 테이블)
        resolved: dict[str, set[Any]] = {}
        for name in INSERT_ORDER:
            if name not in present:
                resolved[name] = await self._live_ids(name, live_tables)

        # 아직 삽입 전인 참조 테이블(순환 링크)은 스냅샷 id 로 검사
        snapshot_ids = {
            name: {row.get("id") for row in snapshot.table(name) or []}
            for name in present
        }

        for name in INSERT_ORDER:
            if name not in present:
                continue
            spec = TABLES_BY_NAME[name]
            columns = set(await self.db.get_column_names(name))

            rows, dropped_columns = self._prepare_rows(spec, snapshot.table(name) or [], columns)
            if dropped_columns:
                report.dropped_columns[name] = dropped_columns
                logger.warning(
                    f"Columns not in live schema dropped: {name}",
                    extra={"columns": dropped_columns},
                )

            accepted: list[dict[str, Any]] = []
            dropped = 0
            for row in rows:
                if self._references_resolve(spec, row, resolved, snapshot_ids):
                    accepted.append(row)
                else:
                    dropped += 1
            if dropped:
                logger.warning(
                    f"Rows with unresolved references dropped: {name}",
                    extra={"dropped": dropped},
                )

            inserted = await self._insert_chunks(name, accepted, report)

            resolved[name] = {row["id"] for row in accepted}
            report.inserted[name] = inserted
            report.dropped[name] = dropped
            report.restored_tables.append(name)
            logger.info(
                f"Restored {name}",
                extra={"inserted": inserted, "dropped": dropped},
            )

    @staticmethod
    def _prepare_rows(
        spec: TableSpec,
        rows: list[dict[str, Any]],
        columns: set[str],
    ) -> tuple[list[dict[str, Any]], list[str]]:
        """조인 필드 제거 + 라이브 컬럼 교집합"""
        dropped: set[str] = set()
        prepared = []
        for row in rows:
            clean = strip_transient(spec, row)
            dropped.update(key for key in clean if key not in columns)
            prepared.append({key: value for key, value in clean.items() if key in columns})
        return prepared, sorted(dropped)

    @staticmethod
    def _references_resolve(
        spec: TableSpec,
        row: dict[str, Any],
        resolved: dict[str, set[Any]],
        snapshot_ids: dict[str, set[Any]],
    ) -> bool:
        """삽입 직전 참조 재검사"""
        for column, parent in spec.references.items():
            value = row.get(column)
            if value is None:
                continue
            if parent in resolved:
                if value not in resolved[parent]:
                    return False
            elif is_forward_reference(spec.name, parent):
                if value not in snapshot_ids.get(parent, set()):
                    return False
            else:
                return False
        return True

    async def _insert_chunks(
        self,
        table: str,
        rows: list[dict[str, Any]],
        report: RestoreReport,
    ) -> int:
        """청크 단위 INSERT (청크 하나 = 트랜잭션 하나)

        Raises:
            PartialRestoreFailure: 청크 실패
        """
        inserted = 0
        for start in range(0, len(rows), self.chunk_size):
            chunk = rows[start:start + self.chunk_size]
            try:
                async with self.db.transaction():
                    for keys, group in _group_by_columns(chunk).items():
                        placeholders = ", ".join("?" for _ in keys)
                        await self.db.executemany(
                            f"INSERT INTO {table} ({', '.join(keys)}) VALUES ({placeholders})",
                            [tuple(row[key] for key in keys) for row in group],
                        )
            except Exception as e:
                logger.critical(
                    f"Restore chunk failed: {table}",
                    extra={
                        "chunk_start": start,
                        "inserted": inserted,
                        "restored_tables": list(report.restored_tables),
                    },
                )
                raise PartialRestoreFailure(
                    table=table,
                    restored_tables=list(report.restored_tables),
                    inserted_rows=inserted,
                    cause=e,
                ) from e
            inserted += len(chunk)
        return inserted


def _group_by_columns(rows: list[dict[str, Any]]) -> dict[tuple[str, ...], list[dict[str, Any]]]:
    """컬럼 구성이 같은 행끼리 묶기 (없는 컬럼은 DB 기본값 사용)"""
    groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
    for row in rows:
        groups.setdefault(tuple(sorted(row)), []).append(row)
    return groups


