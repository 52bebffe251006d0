"""
장부 행 모델

세 장부(고객/도매상/계좌) 공통 LedgerEntry.
장부별로 다른 컬럼(누적 잔액 컬럼명, 링크 컬럼)은 LedgerSpec 이 매핑.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from core.ledger.types import LedgerSpec, parse_tx_type


def utc_now() -> datetime:
    """현재 UTC 시각"""
    return datetime.now(timezone.utc)


def format_ts(ts: datetime) -> str:
    """정렬 가능한 고정 폭 UTC 문자열

    문자열 비교 순서 = 시간 순서가 되도록 항상 마이크로초까지 기록.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def parse_ts(value: str) -> datetime:
    """저장된 ts 문자열을 datetime 으로"""
    return datetime.fromisoformat(value)


def next_ts_after(candidate: datetime, last: datetime | None) -> datetime:
    """소유자별 ts 단조 증가 보장

    같은 소유자의 마지막 ts 보다 늦지 않으면 1µs 뒤로 민다.
    """
    if last is not None and candidate <= last:
        return last + timedelta(microseconds=1)
    return candidate


@dataclass
class LedgerEntry:
    """장부 행

    재생(replay) 순서는 (ts, entry_id) 오름차순.
    running_balance 는 같은 소유자의 재생 순서 prefix 합계.
    """

    entry_id: str
    owner_id: str
    ts: datetime
    tx_type: Enum
    amount: Decimal
    running_balance: Decimal = Decimal("0")
    description: str | None = None

    # 다른 장부 행/전표 링크 (컬럼명 → id)
    links: dict[str, str | None] = field(default_factory=dict)

    @classmethod
    def new(
        cls,
        spec: LedgerSpec,
        owner_id: str,
        tx_type: str | Enum,
        amount: Decimal,
        description: str | None = None,
        links: dict[str, str | None] | None = None,
        ts: datetime | None = None,
    ) -> LedgerEntry:
        """새 장부 행 생성 (id, ts 부여)"""
        return cls(
            entry_id=str(uuid4()),
            owner_id=owner_id,
            ts=ts or utc_now(),
            tx_type=parse_tx_type(spec, tx_type),
            amount=amount,
            description=description,
            links={column: None for column in spec.link_columns} | (links or {}),
        )

    @classmethod
    def from_row(cls, spec: LedgerSpec, row: dict[str, Any]) -> LedgerEntry:
        """DB 행(dict) → LedgerEntry"""
        return cls(
            entry_id=row["id"],
            owner_id=row[spec.owner_column],
            ts=parse_ts(row["ts"]),
            tx_type=parse_tx_type(spec, row["type"]),
            amount=Decimal(str(row["amount"])),
            running_balance=Decimal(str(row[spec.balance_column] or "0")),
            description=row.get("description"),
            links={column: row.get(column) for column in spec.link_columns},
        )

    def to_row(self, spec: LedgerSpec) -> dict[str, Any]:
        """LedgerEntry → DB 행(dict)"""
        row: dict[str, Any] = {
            "id": self.entry_id,
            spec.owner_column: self.owner_id,
            "ts": format_ts(self.ts),
            "type": self.tx_type.value,
            "amount": str(self.amount),
            spec.balance_column: str(self.running_balance),
            "description": self.description,
        }
        for column in spec.link_columns:
            row[column] = self.links.get(column)
        return row

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """재생 순서 키"""
        return (self.ts, self.entry_id)
