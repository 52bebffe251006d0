"""스냅샷 내보내기/복원 통합 테스트"""

from decimal import Decimal

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from backoffice.audit import LedgerAuditor
from backoffice.backup.exporter import SnapshotExporter
from backoffice.backup.restorer import SnapshotRestorer
from backoffice.backup.snapshot import Snapshot, load_snapshot, save_snapshot
from backoffice.backup.tables import TABLE_NAMES, TABLES_BY_NAME
from backoffice.posting.engine import PostingEngine
from backoffice.posting.requests import (
    AccountMovementRequest,
    CustomerChargeRequest,
    CustomerPaymentRequest,
    PurchaseInvoiceRequest,
    WholesalerPaymentRequest,
)
from core.domain.invoice import InvoiceLine
from core.errors import PartialRestoreFailure, ReferentialIntegrityError
from core.ledger.store import LedgerStore
from core.ledger.types import LEDGERS
from core.storage.aggregate_store import AggregateStore
from core.types import AccountTxType, LedgerKind, PriceCurrency


@pytest_asyncio.fixture
async def target_db() -> SQLiteAdapter:
    """복원 대상 빈 DB"""
    adapter = SQLiteAdapter(":memory:")
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


async def populate(
    engine: PostingEngine,
    aggregates: AggregateStore,
    customer_id: str,
    wholesaler_id: str,
    product_id: str,
    account_id: str,
) -> None:
    """모든 테이블에 행이 있는 그래프 (도매상 지급의 순환 링크 포함)"""
    await engine.charge_customer(CustomerChargeRequest(customer_id, Decimal("500")))
    await engine.receive_customer_payment(CustomerPaymentRequest(customer_id, account_id, Decimal("200")))
    await engine.commit_purchase_invoice(
        PurchaseInvoiceRequest(
            wholesaler_id,
            [InvoiceLine(product_id, "Screen protector", Decimal("10"), PriceCurrency.USD, Decimal("2"), Decimal("30"))],
        )
    )
    await engine.pay_wholesaler(WholesalerPaymentRequest(wholesaler_id, account_id, Decimal("150")))
    category = await aggregates.create_expense_category("Rent")
    await engine.record_account_movement(
        AccountMovementRequest(account_id, AccountTxType.EXPENSE, Decimal("75"), expense_category_id=category)
    )

    db = engine.db
    async with db.transaction():
        await db.execute(
            "INSERT INTO services (id, customer_id, device_type, problem) VALUES (?, ?, ?, ?)",
            ("svc-1", customer_id, "phone", "cracked screen"),
        )
        await db.execute(
            "INSERT INTO sales (id, customer_id, items, total, net_total, related_service_id) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            ("sale-1", customer_id, "[]", "90", "90", "svc-1"),
        )
        await db.execute(
            "INSERT INTO needs (id, description, product_id, customer_id) VALUES (?, ?, ?, ?)",
            ("need-1", "Case for model X", product_id, customer_id),
        )


def by_id(snapshot: Snapshot) -> dict[str, list[dict]]:
    return {
        name: sorted(snapshot.table(name) or [], key=lambda row: row["id"])
        for name in TABLE_NAMES
    }


class TestRoundTrip:
    """내보내기 → 복원 → 내보내기"""

    @pytest.mark.asyncio
    async def test_restore_into_empty_db_reproduces_snapshot(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        customer_id: str,
        wholesaler_id: str,
        product_id: str,
        account_id: str,
        target_db: SQLiteAdapter,
    ) -> None:
        await populate(engine, aggregates, customer_id, wholesaler_id, product_id, account_id)
        original = await SnapshotExporter(engine.db).export()

        report = await SnapshotRestorer(target_db, chunk_size=2).restore(original)

        restored = await SnapshotExporter(target_db).export()
        assert by_id(restored) == by_id(original)
        assert report.restored_tables == list(TABLE_NAMES)
        assert report.total_dropped == 0
        assert report.total_inserted == sum(original.row_counts().values())

        stores = {kind: LedgerStore(target_db, spec) for kind, spec in LEDGERS.items()}
        assert await LedgerAuditor(stores).audit_all() == []

    @pytest.mark.asyncio
    async def test_forward_link_survives(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        customer_id: str,
        wholesaler_id: str,
        product_id: str,
        account_id: str,
        target_db: SQLiteAdapter,
    ) -> None:
        """wholesaler_transactions.related_account_tx_id 는 삽입 순서상 뒤 테이블을 가리킴"""
        await populate(engine, aggregates, customer_id, wholesaler_id, product_id, account_id)
        snapshot = await SnapshotExporter(engine.db).export()

        await SnapshotRestorer(target_db).restore(snapshot)

        rows = await target_db.fetchall(
            "SELECT w.id FROM wholesaler_transactions w "
            "JOIN account_transactions a ON a.id = w.related_account_tx_id "
            "WHERE a.related_wholesaler_transaction_id = w.id"
        )
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_restore_over_itself_is_idempotent(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        customer_id: str,
        wholesaler_id: str,
        product_id: str,
        account_id: str,
        tmp_path,
    ) -> None:
        await populate(engine, aggregates, customer_id, wholesaler_id, product_id, account_id)
        path = save_snapshot(await SnapshotExporter(engine.db).export(), tmp_path / "snapshot.json")
        snapshot = load_snapshot(path)

        await SnapshotRestorer(engine.db).restore(snapshot)
        await SnapshotRestorer(engine.db).restore(snapshot)

        assert by_id(await SnapshotExporter(engine.db).export()) == by_id(snapshot)


class TestPrecheck:
    """참조 사전 검사 (실패 시 변경 없음)"""

    @pytest.mark.asyncio
    async def test_dangling_reference_changes_nothing(
        self, engine: PostingEngine, aggregates: AggregateStore, customer_id: str
    ) -> None:
        await engine.charge_customer(CustomerChargeRequest(customer_id, Decimal("10")))
        snapshot = Snapshot(
            customers=[{"id": "c-new", "name": "New"}],
            customer_transactions=[{
                "id": "t-1", "customer_id": "ghost", "ts": "2024-01-01T00:00:00.000000+00:00",
                "type": "charge", "amount": "5",
            }],
        )

        with pytest.raises(ReferentialIntegrityError) as exc_info:
            await SnapshotRestorer(engine.db).restore(snapshot)

        assert exc_info.value.violations == [{
            "table": "customer_transactions",
            "field": "customer_id",
            "value": "ghost",
            "row_id": "t-1",
            "references": "customers",
        }]
        assert await aggregates.get_row("customers", customer_id) is not None
        assert len(await engine.stores[LedgerKind.CUSTOMER].list_by_owner(customer_id)) == 1

    @pytest.mark.asyncio
    async def test_duplicate_and_missing_ids(self, db: SQLiteAdapter) -> None:
        snapshot = Snapshot(customers=[{"id": "c1", "name": "A"}, {"id": "c1", "name": "B"}, {"name": "C"}])

        with pytest.raises(ReferentialIntegrityError) as exc_info:
            await SnapshotRestorer(db).precheck(snapshot)

        reasons = sorted(v["reason"] for v in exc_info.value.violations)
        assert reasons == ["duplicate id", "row without id"]

    @pytest.mark.asyncio
    async def test_omitted_dependent_with_live_rows(
        self, engine: PostingEngine, aggregates: AggregateStore, customer_id: str
    ) -> None:
        """고객을 교체하면서 고객 장부를 생략 → 라이브 장부 행이 고아가 되므로 거부"""
        await engine.charge_customer(CustomerChargeRequest(customer_id, Decimal("10")))

        with pytest.raises(ReferentialIntegrityError) as exc_info:
            await SnapshotRestorer(engine.db).restore(Snapshot(customers=[]))

        assert [v["table"] for v in exc_info.value.violations] == ["customer_transactions"]
        assert await aggregates.get_row("customers", customer_id) is not None

    @pytest.mark.asyncio
    async def test_omitted_parent_resolves_against_live_ids(
        self, engine: PostingEngine, customer_id: str
    ) -> None:
        snapshot = Snapshot(customer_transactions=[{
            "id": "t-1", "customer_id": customer_id, "ts": "2024-01-01T00:00:00.000000+00:00",
            "type": "charge", "amount": "5", "balance": "5",
        }])

        report = await SnapshotRestorer(engine.db).restore(snapshot)

        assert report.inserted == {"customer_transactions": 1}
        entries = await engine.stores[LedgerKind.CUSTOMER].list_by_owner(customer_id)
        assert [e.entry_id for e in entries] == ["t-1"]


class TestRestoreSemantics:
    """null / 빈 배열 / 컬럼 처리"""

    @pytest.mark.asyncio
    async def test_null_untouched_empty_truncated(
        self, db: SQLiteAdapter, aggregates: AggregateStore, customer_id: str, product_id: str
    ) -> None:
        report = await SnapshotRestorer(db).restore(Snapshot(products=[]))

        assert await aggregates.get_row("products", product_id) is None
        assert await aggregates.get_row("customers", customer_id) is not None
        assert report.inserted == {"products": 0}
        assert "customers" in report.untouched_tables
        assert "products" not in report.untouched_tables

    @pytest.mark.asyncio
    async def test_unknown_columns_and_joined_fields_dropped(self, db: SQLiteAdapter) -> None:
        snapshot = Snapshot(
            expense_categories=[
                {"id": "e1", "name": "Rent", "legacy_code": "R1"},
                {"id": "e2", "name": "Fuel", "meta": {"color": "red"}},
            ],
            purchase_invoices=[{
                "id": "p1", "ts": "2024-01-01T00:00:00.000000+00:00", "wholesaler_id": None,
                "wholesaler_name": "joined", "wholesalers": {"name": "joined"},
            }],
        )

        report = await SnapshotRestorer(db).restore(snapshot)

        assert report.dropped_columns == {"expense_categories": ["legacy_code"]}
        assert report.inserted == {"expense_categories": 2, "purchase_invoices": 1}
        rows = await db.fetchall_dicts("SELECT id, name FROM expense_categories ORDER BY id")
        assert rows == [{"id": "e1", "name": "Rent"}, {"id": "e2", "name": "Fuel"}]

    def test_insert_time_reference_check(self) -> None:
        """삽입 직전 재검사: 이미 확정된 부모 id / 순환 링크는 스냅샷 id"""
        ledger = TABLES_BY_NAME["customer_transactions"]
        assert SnapshotRestorer._references_resolve(ledger, {"customer_id": "c1"}, {"customers": {"c1"}}, {})
        assert not SnapshotRestorer._references_resolve(ledger, {"customer_id": "gone"}, {"customers": {"c1"}}, {})

        wholesaler = TABLES_BY_NAME["wholesaler_transactions"]
        row = {"wholesaler_id": "w1", "related_account_tx_id": "a1", "related_purchase_invoice_id": None}
        resolved = {"wholesalers": {"w1"}, "purchase_invoices": set()}
        assert SnapshotRestorer._references_resolve(wholesaler, row, resolved, {"account_transactions": {"a1"}})
        assert not SnapshotRestorer._references_resolve(wholesaler, row, resolved, {"account_transactions": {"a2"}})

    def test_chunk_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            SnapshotRestorer(None, chunk_size=0)


class TestPartialRestore:
    """청크 실패"""

    @pytest.mark.asyncio
    async def test_failing_chunk_reports_progress(self, db: SQLiteAdapter) -> None:
        snapshot = Snapshot(
            accounts=[{"id": "a1", "name": "Cash"}],
            customers=[{"id": "c1", "name": "A"}, {"id": "c2", "name": None}, {"id": "c3", "name": "C"}],
        )

        with pytest.raises(PartialRestoreFailure) as exc_info:
            await SnapshotRestorer(db, chunk_size=1).restore(snapshot)

        error = exc_info.value
        assert error.table == "customers"
        assert error.inserted_rows == 1
        assert error.restored_tables == []
        assert error.retryable is False
        rows = await db.fetchall("SELECT id FROM customers")
        assert rows == [("c1",)]
        # 실패 이후 테이블은 삭제만 된 상태
        assert await db.fetchall("SELECT id FROM accounts") == []
