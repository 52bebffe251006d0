"""
Ledger Auditor

장부의 누적 잔액과 소유자 집계가 일치하는지 읽기 전용으로 검사.
불일치는 DriftInfo 로 보고하고, 복구는 BalanceRecalculator 재계산으로 한다.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from core.ledger.store import LedgerStore
from core.types import LedgerKind

logger = logging.getLogger(__name__)


@dataclass
class DriftInfo:
    """Drift 정보"""
    drift_kind: str  # running_balance, aggregate
    ledger: LedgerKind
    owner_id: str
    entry_id: str | None
    expected: str
    actual: str
    description: str


class LedgerAuditor:
    """장부 감사기

    Args:
        stores: 장부 종류 → LedgerStore
    """

    def __init__(self, stores: dict[LedgerKind, LedgerStore]):
        self.stores = stores

    async def audit_owner(self, kind: LedgerKind, owner_id: str) -> list[DriftInfo]:
        """소유자 하나 검사

        Returns:
            발견된 drift 목록 (일치하면 빈 목록)
        """
        store = self.stores[kind]
        drifts: list[DriftInfo] = []

        running = Decimal("0")
        for entry in await store.list_by_owner(owner_id):
            running += entry.amount
            if entry.running_balance != running:
                drifts.append(DriftInfo(
                    drift_kind="running_balance",
                    ledger=kind,
                    owner_id=owner_id,
                    entry_id=entry.entry_id,
                    expected=str(running),
                    actual=str(entry.running_balance),
                    description=f"Running balance {entry.running_balance} != prefix sum {running}",
                ))

        aggregate = await store.get_owner_balance(owner_id)
        if aggregate is not None and aggregate != running:
            drifts.append(DriftInfo(
                drift_kind="aggregate",
                ledger=kind,
                owner_id=owner_id,
                entry_id=None,
                expected=str(running),
                actual=str(aggregate),
                description=f"Owner balance {aggregate} != ledger balance {running}",
            ))

        return drifts

    async def audit_all(self, kinds: list[LedgerKind] | None = None) -> list[DriftInfo]:
        """모든 소유자 검사"""
        drifts: list[DriftInfo] = []
        for kind in kinds or list(self.stores):
            for owner_id in await self.stores[kind].list_owner_ids():
                drifts.extend(await self.audit_owner(kind, owner_id))

        if drifts:
            logger.warning(
                f"Ledger drift detected: {len(drifts)}",
                extra={"owners": sorted({d.owner_id for d in drifts})},
            )
        else:
            logger.info("Ledger audit clean")
        return drifts

    @staticmethod
    def summarize(drifts: list[DriftInfo]) -> dict[str, Any]:
        """종류별 drift 개수"""
        summary: dict[str, Any] = {"total": len(drifts)}
        for drift in drifts:
            key = f"{drift.ledger.value}.{drift.drift_kind}"
            summary[key] = summary.get(key, 0) + 1
        return summary
