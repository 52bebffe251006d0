"""매입 전표 등록/삭제 통합 테스트"""

from decimal import Decimal

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from backoffice.audit import LedgerAuditor
from backoffice.posting.engine import PostingEngine
from backoffice.posting.requests import PurchaseInvoiceRequest, StockEntryRequest
from core.domain.invoice import InvoiceLine
from core.errors import ValidationError
from core.storage.aggregate_store import AggregateStore
from core.types import LedgerKind, PriceCurrency


@pytest.fixture
def make_request():
    """상품 2개 라인 + 재고 없는 라인 1개 전표

    주 통화 합계 100 + 300 + 50 = 450, 보조 통화 합계 2 * 5 = 10
    """

    def _make(wholesaler_id: str, first: str, second: str, notes: str | None = "Delivery 12") -> PurchaseInvoiceRequest:
        return PurchaseInvoiceRequest(
            wholesaler_id,
            [
                InvoiceLine(first, "Screen protector", Decimal("5"), PriceCurrency.TRY, Decimal("20")),
                InvoiceLine(
                    second, "Charger", Decimal("2"), PriceCurrency.USD, Decimal("5"), Decimal("30"),
                    selling_price=Decimal("220"),
                ),
                InvoiceLine(None, "Shipping", Decimal("1"), PriceCurrency.TRY, Decimal("50")),
            ],
            notes=notes,
        )

    return _make


class TestCommitInvoice:
    """전표 등록"""

    @pytest.mark.asyncio
    async def test_commit_updates_debt_stock_and_cost(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        wholesaler_id: str,
        product_id: str,
        make_request,
    ) -> None:
        charger = await aggregates.create_product("P-200", "Charger", quantity=Decimal("1"))

        result = await engine.commit_purchase_invoice(make_request(wholesaler_id, product_id, charger))

        assert result.values["total_primary"] == Decimal("450")
        assert result.values["total_secondary"] == Decimal("10")
        assert await aggregates.get_wholesaler_debt(wholesaler_id) == (Decimal("450"), Decimal("10"))
        assert await aggregates.get_product_quantity(product_id) == Decimal("5")
        assert await aggregates.get_product_quantity(charger) == Decimal("3")

        charger_row = await aggregates.get_row("products", charger)
        assert Decimal(charger_row["purchase_price"]) == Decimal("150")
        assert Decimal(charger_row["selling_price"]) == Decimal("220")
        assert charger_row["supplier"] == "Kadikoy Toptan"

        invoice = await engine.invoices.get(result.entries["invoice"])
        assert invoice.notes == "Delivery 12\nTotal USD: 10.00"
        purchase = await engine.stores[LedgerKind.WHOLESALER].get(result.entries["wholesaler_tx"])
        assert purchase.links["related_purchase_invoice_id"] == invoice.invoice_id
        assert purchase.running_balance == Decimal("450")

    @pytest.mark.asyncio
    async def test_primary_only_invoice_has_no_note_line(
        self, engine: PostingEngine, wholesaler_id: str
    ) -> None:
        result = await engine.commit_purchase_invoice(
            PurchaseInvoiceRequest(
                wholesaler_id,
                [InvoiceLine(None, "Cables", Decimal("3"), PriceCurrency.TRY, Decimal("10"))],
            )
        )

        invoice = await engine.invoices.get(result.entries["invoice"])
        assert invoice.notes is None

    @pytest.mark.asyncio
    async def test_empty_invoice_rejected(self, engine: PostingEngine, wholesaler_id: str) -> None:
        with pytest.raises(ValidationError, match="at least one line"):
            await engine.commit_purchase_invoice(PurchaseInvoiceRequest(wholesaler_id, []))

    @pytest.mark.asyncio
    async def test_failure_on_second_product_compensates(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        wholesaler_id: str,
        product_id: str,
        make_request,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """두 번째 상품 재고 증가 실패 → 전표/부채/첫 상품 재고/매입가 모두 복귀"""
        charger = await aggregates.create_product("P-200", "Charger", purchase_price=Decimal("140"))
        original = engine.aggregates.increment_quantity

        async def flaky(target_id: str, delta: Decimal) -> Decimal:
            if target_id == charger and delta > 0:
                raise RuntimeError("stock service unavailable")
            return await original(target_id, delta)

        monkeypatch.setattr(engine.aggregates, "increment_quantity", flaky)

        with pytest.raises(RuntimeError, match="unavailable"):
            await engine.commit_purchase_invoice(make_request(wholesaler_id, product_id, charger))

        assert await aggregates.get_wholesaler_debt(wholesaler_id) == (Decimal("0"), Decimal("0"))
        assert await aggregates.get_product_quantity(product_id) == Decimal("0")
        assert (await aggregates.get_row("products", product_id))["purchase_price"] == "0"
        assert await engine.stores[LedgerKind.WHOLESALER].list_by_owner(wholesaler_id) == []
        rows = await engine.db.fetchall("SELECT id FROM purchase_invoices")
        assert rows == []


class TestDeleteInvoice:
    """전표 삭제"""

    @pytest.mark.asyncio
    async def test_delete_reverts_everything(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        wholesaler_id: str,
        product_id: str,
        make_request,
    ) -> None:
        charger = await aggregates.create_product("P-200", "Charger")
        committed = await engine.commit_purchase_invoice(make_request(wholesaler_id, product_id, charger))

        result = await engine.delete_purchase_invoice(committed.entries["invoice"])

        assert result.values["reverted_primary"] == Decimal("450")
        assert result.values["reverted_secondary"] == Decimal("10")
        assert await aggregates.get_wholesaler_debt(wholesaler_id) == (Decimal("0"), Decimal("0"))
        assert await aggregates.get_product_quantity(product_id) == Decimal("0")
        assert await aggregates.get_product_quantity(charger) == Decimal("0")
        assert await engine.invoices.get(committed.entries["invoice"]) is None
        assert await engine.stores[LedgerKind.WHOLESALER].list_by_owner(wholesaler_id) == []

    @pytest.mark.asyncio
    async def test_note_total_takes_precedence(
        self,
        db: SQLiteAdapter,
        engine: PostingEngine,
        aggregates: AggregateStore,
        wholesaler_id: str,
        product_id: str,
        make_request,
    ) -> None:
        """notes 의 합계 라인이 라인 합계보다 우선"""
        charger = await aggregates.create_product("P-200", "Charger")
        committed = await engine.commit_purchase_invoice(make_request(wholesaler_id, product_id, charger))
        await db.execute(
            "UPDATE purchase_invoices SET notes = ? WHERE id = ?",
            ("Total USD: 1.00\nrechecked\nTotal USD: 4.00", committed.entries["invoice"]),
        )
        await db.commit()

        result = await engine.delete_purchase_invoice(committed.entries["invoice"])

        assert result.values["reverted_secondary"] == Decimal("4.00")
        assert await aggregates.get_wholesaler_debt(wholesaler_id) == (Decimal("0"), Decimal("6"))

    @pytest.mark.asyncio
    async def test_missing_note_falls_back_to_lines(
        self,
        db: SQLiteAdapter,
        engine: PostingEngine,
        aggregates: AggregateStore,
        wholesaler_id: str,
        product_id: str,
        make_request,
    ) -> None:
        charger = await aggregates.create_product("P-200", "Charger")
        committed = await engine.commit_purchase_invoice(make_request(wholesaler_id, product_id, charger))
        await db.execute(
            "UPDATE purchase_invoices SET notes = NULL WHERE id = ?",
            (committed.entries["invoice"],),
        )
        await db.commit()

        result = await engine.delete_purchase_invoice(committed.entries["invoice"])

        assert result.values["reverted_secondary"] == Decimal("10")
        assert await aggregates.get_wholesaler_debt(wholesaler_id) == (Decimal("0"), Decimal("0"))

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, engine: PostingEngine) -> None:
        with pytest.raises(ValidationError, match="Purchase invoice not found"):
            await engine.delete_purchase_invoice("missing")

    @pytest.mark.asyncio
    async def test_purchase_entry_cannot_be_deleted_alone(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        wholesaler_id: str,
        product_id: str,
        make_request,
    ) -> None:
        charger = await aggregates.create_product("P-200", "Charger")
        committed = await engine.commit_purchase_invoice(make_request(wholesaler_id, product_id, charger))

        with pytest.raises(ValidationError, match="is linked"):
            await engine.delete_unlinked_entry(LedgerKind.WHOLESALER, committed.entries["wholesaler_tx"])

        with pytest.raises(ValidationError, match="is linked"):
            await engine.amend_entry(LedgerKind.WHOLESALER, committed.entries["wholesaler_tx"], Decimal("1"))


class TestDeleteInvoiceCompensation:
    """전표 삭제 중간 실패 → 전표/장부/재고 원래 상태"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_step", [
        "delete_wholesaler_tx",
        "delete_invoice",
        "revert_debt",
        "decrement_stock",
        "recompute_wholesaler",
    ])
    async def test_step_failure_keeps_ledgers_consistent(
        self,
        engine: PostingEngine,
        aggregates: AggregateStore,
        wholesaler_id: str,
        product_id: str,
        make_request,
        fail_once,
        failing_step: str,
    ) -> None:
        """전표 뒤에 단독 입고 행이 있어 재계산 순서가 드러나는 경우"""
        charger = await aggregates.create_product("P-200", "Charger")
        committed = await engine.commit_purchase_invoice(make_request(wholesaler_id, product_id, charger))
        await engine.record_stock_entry(
            StockEntryRequest(product_id, Decimal("10"), Decimal("10"), wholesaler_id=wholesaler_id)
        )

        targets = {
            "delete_wholesaler_tx": (engine.stores[LedgerKind.WHOLESALER], "delete", None),
            "delete_invoice": (engine.invoices, "delete", None),
            "revert_debt": (engine.balances, "increment_debt", None),
            "decrement_stock": (engine.balances, "increment_quantity", None),
            "recompute_wholesaler": (engine.recalculator, "recalculate", None),
        }
        fail_once(*targets[failing_step])

        with pytest.raises(RuntimeError, match="failed"):
            await engine.delete_purchase_invoice(committed.entries["invoice"])

        assert await engine.invoices.get(committed.entries["invoice"]) is not None
        assert await aggregates.get_wholesaler_debt(wholesaler_id) == (Decimal("550"), Decimal("10"))
        assert await aggregates.get_product_quantity(product_id) == Decimal("15")
        assert await aggregates.get_product_quantity(charger) == Decimal("2")
        balances = [
            e.running_balance
            for e in await engine.stores[LedgerKind.WHOLESALER].list_by_owner(wholesaler_id)
        ]
        assert balances == [Decimal("450"), Decimal("550")]
        assert await LedgerAuditor(engine.stores).audit_all() == []
