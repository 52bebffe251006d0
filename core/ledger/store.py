"""
Ledger 저장소

장부 하나(고객/도매상/계좌)에 대한 단일 테이블 저장/조회.
누적 잔액 재계산은 하지 않는다 (BalanceRecalculator 담당).
append 만 직전 행 기준으로 running_balance 를 채운다.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.errors import StorageError
from core.ledger.entry import LedgerEntry, next_ts_after, parse_ts
from core.ledger.types import LedgerSpec

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


class LedgerStore:
    """Ledger 저장소

    모든 쓰기는 단일 행, 단일 트랜잭션 (부분 반영 없음).
    실패는 StorageError 로 보고.

    Args:
        db: SQLite 어댑터
        spec: 대상 장부 정의

    사용 예시:
    ```python
    store = LedgerStore(db, CUSTOMER_LEDGER)
    entry = await store.append(LedgerEntry.new(CUSTOMER_LEDGER, cid, "charge", Decimal("500")))
    entries = await store.list_by_owner(cid)
    ```
    """

    def __init__(self, db: SQLiteAdapter, spec: LedgerSpec):
        self.db = db
        self.spec = spec

    @property
    def _columns(self) -> list[str]:
        return [
            "id",
            self.spec.owner_column,
            "ts",
            "type",
            "amount",
            self.spec.balance_column,
            "description",
            *self.spec.link_columns,
        ]

    # -------------------------------------------------------------------------
    # 쓰기
    # -------------------------------------------------------------------------

    async def append(self, entry: LedgerEntry) -> LedgerEntry:
        """장부 행 추가

        ts 는 소유자별로 단조 증가하도록 보정.
        running_balance = 재생 순서상 직전 행의 잔액 + amount.

        Args:
            entry: 추가할 행 (running_balance 는 무시됨)

        Returns:
            저장된 행 (ts, running_balance 확정)
        """
        async with self.db.transaction():
            last = await self._fetch_last(entry.owner_id)
            last_ts = parse_ts(last["ts"]) if last else None
            entry.ts = next_ts_after(entry.ts, last_ts)

            previous = Decimal(str(last[self.spec.balance_column])) if last else Decimal("0")
            entry.running_balance = previous + entry.amount

            await self._insert(entry)

        logger.debug(
            f"Appended {self.spec.kind.value} entry: {entry.entry_id}",
            extra={"owner_id": entry.owner_id, "amount": str(entry.amount)},
        )
        return entry

    async def restore(self, entry: LedgerEntry) -> None:
        """삭제했던 행을 같은 id/ts/잔액으로 재삽입 (보상용)"""
        async with self.db.transaction():
            await self._insert(entry)
        logger.debug(f"Restored {self.spec.kind.value} entry: {entry.entry_id}")

    async def update_amount(self, entry_id: str, amount: Decimal) -> None:
        """금액 수정 (호출자가 이후 재계산해야 함)"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                f"UPDATE {self.spec.table} SET amount = ? WHERE id = ?",
                (str(amount), entry_id),
            )
            if cursor.rowcount == 0:
                raise StorageError(f"{self.spec.table} row not found: {entry_id}")

    async def set_link(self, entry_id: str, column: str, value: str | None) -> None:
        """링크 컬럼 갱신"""
        if column not in self.spec.link_columns:
            raise ValueError(f"{column} is not a link column of {self.spec.table}")
        async with self.db.transaction():
            cursor = await self.db.execute(
                f"UPDATE {self.spec.table} SET {column} = ? WHERE id = ?",
                (value, entry_id),
            )
            if cursor.rowcount == 0:
                raise StorageError(f"{self.spec.table} row not found: {entry_id}")

    async def delete(self, entry_id: str) -> None:
        """행 삭제 (호출자가 이후 재계산해야 함)"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                f"DELETE FROM {self.spec.table} WHERE id = ?",
                (entry_id,),
            )
            if cursor.rowcount == 0:
                raise StorageError(f"{self.spec.table} row not found: {entry_id}")
        logger.debug(f"Deleted {self.spec.kind.value} entry: {entry_id}")

    async def write_running_balances(
        self,
        balances: list[tuple[str, Decimal]],
        owner_id: str,
        owner_balance: Decimal,
    ) -> None:
        """누적 잔액 일괄 기록 + 소유자 현재 잔액 기록 (재계산 전용)

        Args:
            balances: (entry_id, running_balance) 목록
            owner_id: 소유자 id
            owner_balance: 최종 잔액
        """
        async with self.db.transaction():
            if balances:
                await self.db.executemany(
                    f"UPDATE {self.spec.table} SET {self.spec.balance_column} = ? WHERE id = ?",
                    [(str(balance), entry_id) for entry_id, balance in balances],
                )
            cursor = await self.db.execute(
                f"UPDATE {self.spec.owner_table} "
                f"SET {self.spec.owner_balance_column} = ? WHERE id = ?",
                (str(owner_balance), owner_id),
            )
            if cursor.rowcount == 0:
                raise StorageError(f"{self.spec.owner_table} row not found: {owner_id}")

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get(self, entry_id: str) -> LedgerEntry | None:
        """id 로 단일 행 조회"""
        rows = await self.db.fetchall_dicts(
            f"SELECT * FROM {self.spec.table} WHERE id = ?",
            (entry_id,),
        )
        return LedgerEntry.from_row(self.spec, rows[0]) if rows else None

    async def list_by_owner(self, owner_id: str) -> list[LedgerEntry]:
        """소유자의 전체 행 (재생 순서)"""
        rows = await self.db.fetchall_dicts(
            f"SELECT * FROM {self.spec.table} "
            f"WHERE {self.spec.owner_column} = ? ORDER BY ts ASC, id ASC",
            (owner_id,),
        )
        return [LedgerEntry.from_row(self.spec, row) for row in rows]

    async def find_by_link(self, column: str, value: str) -> LedgerEntry | None:
        """링크 컬럼 값으로 행 조회 (첫 행)"""
        if column not in self.spec.link_columns:
            raise ValueError(f"{column} is not a link column of {self.spec.table}")
        rows = await self.db.fetchall_dicts(
            f"SELECT * FROM {self.spec.table} WHERE {column} = ? "
            f"ORDER BY ts ASC, id ASC LIMIT 1",
            (value,),
        )
        return LedgerEntry.from_row(self.spec, rows[0]) if rows else None

    async def list_owner_ids(self) -> list[str]:
        """소유자 테이블의 전체 id"""
        rows = await self.db.fetchall(
            f"SELECT id FROM {self.spec.owner_table} ORDER BY id"
        )
        return [row[0] for row in rows]

    async def get_owner_balance(self, owner_id: str) -> Decimal | None:
        """소유자 현재 잔액 (소유자 없으면 None)"""
        row = await self.db.fetchone(
            f"SELECT {self.spec.owner_balance_column} FROM {self.spec.owner_table} WHERE id = ?",
            (owner_id,),
        )
        return Decimal(str(row[0])) if row else None

    # -------------------------------------------------------------------------
    # 내부
    # -------------------------------------------------------------------------

    async def _fetch_last(self, owner_id: str) -> dict[str, Any] | None:
        rows = await self.db.fetchall_dicts(
            f"SELECT ts, {self.spec.balance_column} FROM {self.spec.table} "
            f"WHERE {self.spec.owner_column} = ? ORDER BY ts DESC, id DESC LIMIT 1",
            (owner_id,),
        )
        return rows[0] if rows else None

    async def _insert(self, entry: LedgerEntry) -> None:
        row = entry.to_row(self.spec)
        columns = self._columns
        placeholders = ", ".join("?" for _ in columns)
        await self.db.execute(
            f"INSERT INTO {self.spec.table} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(row[c] for c in columns),
        )

