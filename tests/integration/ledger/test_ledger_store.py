"""LedgerStore 통합 테스트"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.errors import StorageError
from core.ledger.entry import LedgerEntry
from core.ledger.store import LedgerStore
from core.ledger.types import ACCOUNT_LEDGER, CUSTOMER_LEDGER
from core.types import CustomerTxType


def charge(customer_id: str, amount: str, ts: datetime | None = None) -> LedgerEntry:
    return LedgerEntry.new(CUSTOMER_LEDGER, customer_id, CustomerTxType.CHARGE, Decimal(amount), ts=ts)


class TestAppend:
    """append 테스트"""

    @pytest.mark.asyncio
    async def test_running_balance_from_previous(self, db: SQLiteAdapter, customer_id: str) -> None:
        store = LedgerStore(db, CUSTOMER_LEDGER)

        first = await store.append(charge(customer_id, "500"))
        second = await store.append(
            LedgerEntry.new(CUSTOMER_LEDGER, customer_id, "payment", Decimal("-200"))
        )

        assert first.running_balance == Decimal("500")
        assert second.running_balance == Decimal("300")

    @pytest.mark.asyncio
    async def test_ts_strictly_increasing(self, db: SQLiteAdapter, customer_id: str) -> None:
        """같은 ts 로 들어와도 소유자 내 순서가 유지됨"""
        store = LedgerStore(db, CUSTOMER_LEDGER)
        ts = datetime(2024, 3, 1, tzinfo=timezone.utc)

        a = await store.append(charge(customer_id, "1", ts))
        b = await store.append(charge(customer_id, "2", ts))
        c = await store.append(charge(customer_id, "3", ts - timedelta(days=1)))

        assert a.ts < b.ts < c.ts
        listed = await store.list_by_owner(customer_id)
        assert [e.entry_id for e in listed] == [a.entry_id, b.entry_id, c.entry_id]

    @pytest.mark.asyncio
    async def test_missing_owner_rejected(self, db: SQLiteAdapter) -> None:
        store = LedgerStore(db, CUSTOMER_LEDGER)

        with pytest.raises(StorageError):
            await store.append(charge("missing", "10"))


class TestWrites:
    """수정/삭제/재삽입 테스트"""

    @pytest.mark.asyncio
    async def test_update_amount(self, db: SQLiteAdapter, customer_id: str) -> None:
        store = LedgerStore(db, CUSTOMER_LEDGER)
        entry = await store.append(charge(customer_id, "10"))

        await store.update_amount(entry.entry_id, Decimal("15"))

        assert (await store.get(entry.entry_id)).amount == Decimal("15")

    @pytest.mark.asyncio
    async def test_delete_and_restore(self, db: SQLiteAdapter, customer_id: str) -> None:
        """삭제한 행을 같은 id/ts/잔액으로 재삽입"""
        store = LedgerStore(db, CUSTOMER_LEDGER)
        entry = await store.append(charge(customer_id, "10"))

        await store.delete(entry.entry_id)
        assert await store.get(entry.entry_id) is None

        await store.restore(entry)
        assert await store.get(entry.entry_id) == entry

    @pytest.mark.asyncio
    async def test_missing_rows(self, db: SQLiteAdapter) -> None:
        store = LedgerStore(db, CUSTOMER_LEDGER)

        with pytest.raises(StorageError, match="not found"):
            await store.delete("missing")
        with pytest.raises(StorageError, match="not found"):
            await store.update_amount("missing", Decimal("1"))

    @pytest.mark.asyncio
    async def test_set_link_validates_column(self, db: SQLiteAdapter) -> None:
        store = LedgerStore(db, ACCOUNT_LEDGER)

        with pytest.raises(ValueError, match="not a link column"):
            await store.set_link("any", "description", "x")


class TestQueries:
    """조회 테스트"""

    @pytest.mark.asyncio
    async def test_owner_isolation(self, db: SQLiteAdapter, aggregates, customer_id: str) -> None:
        other = await aggregates.create_customer("Other")
        store = LedgerStore(db, CUSTOMER_LEDGER)
        await store.append(charge(customer_id, "10"))
        await store.append(charge(other, "99"))

        entries = await store.list_by_owner(customer_id)

        assert len(entries) == 1
        assert entries[0].running_balance == Decimal("10")
        assert sorted(await store.list_owner_ids()) == sorted([customer_id, other])

    @pytest.mark.asyncio
    async def test_owner_balance(self, db: SQLiteAdapter, customer_id: str) -> None:
        store = LedgerStore(db, CUSTOMER_LEDGER)

        assert await store.get_owner_balance(customer_id) == Decimal("0")
        assert await store.get_owner_balance("missing") is None

    @pytest.mark.asyncio
    async def test_find_by_link(self, db: SQLiteAdapter, account_id: str) -> None:
        store = LedgerStore(db, ACCOUNT_LEDGER)
        entry = await store.append(
            LedgerEntry.new(
                ACCOUNT_LEDGER, account_id, "transfer_in", Decimal("5"),
                links={"transfer_pair_id": "pair-9"},
            )
        )

        found = await store.find_by_link("transfer_pair_id", "pair-9")

        assert found.entry_id == entry.entry_id
        assert await store.find_by_link("transfer_pair_id", "nope") is None
