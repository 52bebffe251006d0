"""
누적 잔액 재계산기

수정/삭제로 재생 순서가 깨진 장부의 running_balance 를 처음부터 다시 쌓는다.
마지막 값은 소유자 현재 잔액으로도 기록.

읽기 전체 → 계산 → 쓰기 전체 사이클이라 같은 소유자에 동시 실행하면 안 됨.
프로세스 내에서는 소유자별 asyncio.Lock 으로 직렬화한다.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from core.ledger.store import LedgerStore
from core.types import LedgerKind

logger = logging.getLogger(__name__)


@dataclass
class RecalcResult:
    """재계산 결과"""

    kind: LedgerKind
    owner_id: str
    entry_count: int
    changed_count: int  # running_balance 가 실제로 바뀐 행 수
    final_balance: Decimal


class BalanceRecalculator:
    """누적 잔액 재계산기

    Args:
        stores: 장부 종류 → LedgerStore
    """

    def __init__(self, stores: dict[LedgerKind, LedgerStore]):
        self.stores = stores
        self._locks: defaultdict[tuple[LedgerKind, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    def owner_lock(self, kind: LedgerKind, owner_id: str) -> asyncio.Lock:
        """소유자별 재계산 잠금"""
        return self._locks[(kind, owner_id)]

    async def recalculate(self, kind: LedgerKind, owner_id: str) -> RecalcResult:
        """소유자 장부 전체 재계산

        Args:
            kind: 장부 종류
            owner_id: 소유자 id

        Returns:
            RecalcResult

        Raises:
            StorageError: 읽기/쓰기 실패
        """
        store = self.stores[kind]

        async with self.owner_lock(kind, owner_id):
            entries = await store.list_by_owner(owner_id)

            running = Decimal("0")
            balances: list[tuple[str, Decimal]] = []
            changed = 0
            for entry in entries:
                running += entry.amount
                if entry.running_balance != running:
                    changed += 1
                balances.append((entry.entry_id, running))

            await store.write_running_balances(balances, owner_id, running)

        logger.info(
            f"Recalculated {kind.value} ledger",
            extra={
                "owner_id": owner_id,
                "entries": len(entries),
                "changed": changed,
                "balance": str(running),
            },
        )
        return RecalcResult(
            kind=kind,
            owner_id=owner_id,
            entry_count=len(entries),
            changed_count=changed,
            final_balance=running,
        )
