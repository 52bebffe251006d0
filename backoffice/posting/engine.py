"""
Posting Engine

업무 작업 하나를 장부 쓰기/집계 증가/링크 단계의 Saga 로 실행.

집계 갱신 규칙:
- 계좌 잔액, 도매상 부채(주/보조), 재고 수량: 원자적 증가로만 변경
- 고객 부채: 고객 장부 재계산 결과로 기록 (삭제/수정 흐름은 증가 후 재계산)

수정/삭제 흐름은 마지막 단계에서 반드시 영향받은 장부를 재계산한다.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from adapters.db.sqlite_adapter import SQLiteAdapter
from backoffice.posting.requests import (
    AccountMovementRequest,
    CustomerChargeRequest,
    CustomerPaymentRequest,
    OpenAccountRequest,
    PurchaseInvoiceRequest,
    StockEntryRequest,
    TransferRequest,
    WholesalerPaymentRequest,
)
from backoffice.posting.saga import SagaContext, SagaResult, SagaRunner, SagaStep
from core.config.loader import AppConfig
from core.domain.invoice import PurchaseInvoice, reconstruct_secondary_total
from core.errors import ValidationError
from core.ledger.dual_currency import DualCurrencyDebtPolicy
from core.ledger.entry import LedgerEntry, utc_now
from core.ledger.recalculator import BalanceRecalculator
from core.ledger.store import LedgerStore
from core.ledger.types import LEDGERS, NON_LINK_COLUMNS, has_fixed_sign, signed_amount
from adapters.interfaces import IAtomicBalanceStore
from core.storage.aggregate_store import AggregateStore
from core.storage.invoice_store import InvoiceStore
from core.types import (
    AccountTxType,
    CustomerTxType,
    LedgerKind,
    WholesalerTxType,
)

logger = logging.getLogger(__name__)


_OWNER_TABLES: dict[LedgerKind, str] = {
    kind: spec.owner_table for kind, spec in LEDGERS.items()
}

# 다른 장부가 이 장부 행을 가리키는 역방향 링크 (account_transactions 컬럼)
_REVERSE_LINKS: dict[LedgerKind, str] = {
    LedgerKind.CUSTOMER: "related_customer_tx_id",
    LedgerKind.WHOLESALER: "related_wholesaler_transaction_id",
}


@dataclass
class PostingResult:
    """Posting 결과

    Attributes:
        operation: 작업 이름
        state: Saga 최종 상태 (성공 시 COMPLETED)
        entries: 역할 → 생성/삭제된 행 id
        values: 작업 후 잔액 등 참고 값
    """

    operation: str
    state: str
    entries: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)


class PostingEngine:
    """Posting Engine

    Args:
        db: SQLiteAdapter 인스턴스
        policy: 이중 통화 부채 정책 (None이면 기본 clear 정책)
        require_sufficient_funds: 출금 계좌 잔액 부족 시 거부 여부
        runner: Saga runner (None이면 새로 생성)

    사용 예시:
    ```python
    engine = PostingEngine(db)
    result = await engine.receive_customer_payment(
        CustomerPaymentRequest(customer_id=cid, account_id=aid, amount=Decimal("200"))
    )
    await engine.delete_payment_entry(LedgerKind.CUSTOMER, result.entries["customer_tx"])
    ```
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        policy: DualCurrencyDebtPolicy | None = None,
        require_sufficient_funds: bool = False,
        runner: SagaRunner | None = None,
    ):
        self.db = db
        self.stores: dict[LedgerKind, LedgerStore] = {
            kind: LedgerStore(db, spec) for kind, spec in LEDGERS.items()
        }
        self.aggregates = AggregateStore(db)
        # 집계 증감은 이 인터페이스로만 수행
        self.balances: IAtomicBalanceStore = self.aggregates
        self.invoices = InvoiceStore(db)
        self.recalculator = BalanceRecalculator(self.stores)
        self.policy = policy or DualCurrencyDebtPolicy()
        self.require_sufficient_funds = require_sufficient_funds
        self.runner = runner or SagaRunner()

    @classmethod
    def from_config(cls, db: SQLiteAdapter, config: AppConfig) -> "PostingEngine":
        """설정 기반 생성"""
        return cls(
            db,
            policy=DualCurrencyDebtPolicy(config.secondary_anomaly_policy),
            require_sufficient_funds=config.require_sufficient_funds,
        )

    # =========================================================================
    # 계좌
    # =========================================================================

    async def open_account(self, request: OpenAccountRequest) -> PostingResult:
        """계좌 개설

        개설 잔액을 opening 장부 행으로 남겨 current_balance == 마지막 누적 잔액 유지.
        """
        request.validate()
        amount = request.initial_balance

        async def create(ctx: SagaContext) -> str:
            return await self.aggregates.create_account(
                request.name,
                account_type=request.account_type,
                bank_name=request.bank_name,
                initial_balance=amount,
                is_default=request.is_default,
            )

        async def drop(ctx: SagaContext) -> None:
            await self.aggregates.delete_row("accounts", ctx["create_account"])

        async def increment(ctx: SagaContext) -> Decimal:
            return await self.balances.increment_balance(ctx["create_account"], amount)

        async def decrement(ctx: SagaContext) -> None:
            await self.balances.increment_balance(ctx["create_account"], -amount)

        result = await self._run("open_account", [
            SagaStep("create_account", create, drop),
            self._append_step(
                "append_opening",
                LedgerKind.ACCOUNT,
                lambda ctx: self._entry(
                    LedgerKind.ACCOUNT, ctx["create_account"], AccountTxType.OPENING,
                    amount, "Opening balance",
                ),
            ),
            SagaStep("increment_balance", increment, decrement),
        ])
        return self._result(result, entries={
            "account": result.context["create_account"],
            "opening_tx": result.context["append_opening"].entry_id,
        }, values={"balance": result.context["increment_balance"]})

    async def record_account_movement(self, request: AccountMovementRequest) -> PostingResult:
        """계좌 기타 수입/지출 (지출은 분류 필수)"""
        request.validate()
        await self._require_owner(LedgerKind.ACCOUNT, request.account_id)
        if request.expense_category_id:
            await self._require_row("expense_categories", request.expense_category_id, "Expense category")

        signed = signed_amount(request.tx_type, request.amount)

        result = await self._run(f"account_{request.tx_type.value}", [
            self._append_step(
                "append_account_tx",
                LedgerKind.ACCOUNT,
                lambda ctx: self._entry(
                    LedgerKind.ACCOUNT, request.account_id, request.tx_type, signed,
                    request.description,
                    links={"expense_category_id": request.expense_category_id},
                ),
            ),
            self._balance_step("increment_balance", request.account_id, signed),
        ])
        return self._result(result, entries={
            "account_tx": result.context["append_account_tx"].entry_id,
        }, values={"balance": result.context["increment_balance"]})

    async def transfer_between_accounts(self, request: TransferRequest) -> PostingResult:
        """계좌 간 이체

        transfer_out / transfer_in 두 행을 같은 transfer_pair_id 로 묶는다.
        """
        request.validate()
        await self._require_owner(LedgerKind.ACCOUNT, request.source_account_id)
        await self._require_owner(LedgerKind.ACCOUNT, request.target_account_id)
        await self._check_funds(request.source_account_id, request.amount)

        pair_id = str(uuid4())
        description = request.description or "Transfer between accounts"

        result = await self._run("transfer_between_accounts", [
            self._append_step(
                "append_transfer_out",
                LedgerKind.ACCOUNT,
                lambda ctx: self._entry(
                    LedgerKind.ACCOUNT, request.source_account_id, AccountTxType.TRANSFER_OUT,
                    request.amount, description, links={"transfer_pair_id": pair_id},
                ),
            ),
            self._balance_step("decrement_source", request.source_account_id, -request.amount),
            self._append_step(
                "append_transfer_in",
                LedgerKind.ACCOUNT,
                lambda ctx: self._entry(
                    LedgerKind.ACCOUNT, request.target_account_id, AccountTxType.TRANSFER_IN,
                    request.amount, description, links={"transfer_pair_id": pair_id},
                ),
            ),
            self._balance_step("increment_target", request.target_account_id, request.amount),
        ])
        return self._result(result, entries={
            "transfer_out": result.context["append_transfer_out"].entry_id,
            "transfer_in": result.context["append_transfer_in"].entry_id,
            "transfer_pair": pair_id,
        }, values={
            "source_balance": result.context["decrement_source"],
            "target_balance": result.context["increment_target"],
        })

    # =========================================================================
    # 고객
    # =========================================================================

    async def charge_customer(self, request: CustomerChargeRequest) -> PostingResult:
        """고객 외상: charge 행 추가 → 고객 잔액 재계산"""
        request.validate()
        await self._require_owner(LedgerKind.CUSTOMER, request.customer_id)

        result = await self._run("charge_customer", [
            self._append_step(
                "append_customer_tx",
                LedgerKind.CUSTOMER,
                lambda ctx: self._entry(
                    LedgerKind.CUSTOMER, request.customer_id, CustomerTxType.CHARGE,
                    request.amount, request.description,
                ),
            ),
            self._recompute_step("recompute_customer", LedgerKind.CUSTOMER, request.customer_id),
        ])
        return self._result(result, entries={
            "customer_tx": result.context["append_customer_tx"].entry_id,
        }, values={"debt": result.context["recompute_customer"].final_balance})

    async def receive_customer_payment(self, request: CustomerPaymentRequest) -> PostingResult:
        """고객 수금

        payment 행 추가 → 고객 잔액 재계산 → 계좌 유입 행 추가 → 계좌 잔액 증가 → 링크

        Raises:
            ValidationError: 부채 없음, 부채 초과 수금
        """
        request.validate()
        await self._require_owner(LedgerKind.ACCOUNT, request.account_id)
        debt = await self.aggregates.get_customer_debt(
            await self._require_owner(LedgerKind.CUSTOMER, request.customer_id)
        )
        if debt <= 0:
            raise ValidationError(f"Customer has no outstanding debt ({debt})")
        if request.amount > debt:
            raise ValidationError(
                f"Payment {request.amount} exceeds outstanding debt {debt}"
            )

        name = await self.aggregates.get_name("customers", request.customer_id)
        description = request.description or f"Customer payment: {name}"

        async def link(ctx: SagaContext) -> None:
            await self.stores[LedgerKind.ACCOUNT].set_link(
                ctx["append_account_tx"].entry_id,
                "related_customer_tx_id",
                ctx["append_customer_tx"].entry_id,
            )

        async def unlink(ctx: SagaContext) -> None:
            await self.stores[LedgerKind.ACCOUNT].set_link(
                ctx["append_account_tx"].entry_id, "related_customer_tx_id", None
            )

        result = await self._run("receive_customer_payment", [
            self._append_step(
                "append_customer_tx",
                LedgerKind.CUSTOMER,
                lambda ctx: self._entry(
                    LedgerKind.CUSTOMER, request.customer_id, CustomerTxType.PAYMENT,
                    request.amount, description,
                ),
            ),
            self._recompute_step("recompute_customer", LedgerKind.CUSTOMER, request.customer_id),
            self._append_step(
                "append_account_tx",
                LedgerKind.ACCOUNT,
                lambda ctx: self._entry(
                    LedgerKind.ACCOUNT, request.account_id, AccountTxType.CUSTOMER_PAYMENT,
                    request.amount, description,
                ),
            ),
            self._balance_step("increment_balance", request.account_id, request.amount),
            SagaStep("link_entries", link, unlink),
        ])
        return self._result(result, entries={
            "customer_tx": result.context["append_customer_tx"].entry_id,
            "account_tx": result.context["append_account_tx"].entry_id,
        }, values={
            "debt": result.context["recompute_customer"].final_balance,
            "balance": result.context["increment_balance"],
        })

    # =========================================================================
    # 도매상
    # =========================================================================

    async def pay_wholesaler(self, request: WholesalerPaymentRequest) -> PostingResult:
        """도매상 지급

        이중 통화 정책 → 도매상 부채 증가(음수) → 계좌 잔액 증가(음수)
        → 도매상 payment 행 → 계좌 supplier_payment 행 → 링크

        Raises:
            ValidationError: 잔액 부족(설정 시), 비정상 부채 상태 reject 정책
        """
        request.validate()
        await self._require_owner(LedgerKind.WHOLESALER, request.wholesaler_id)
        await self._require_owner(LedgerKind.ACCOUNT, request.account_id)
        await self._check_funds(request.account_id, request.amount)

        payment = request.amount
        name = await self.aggregates.get_name("wholesalers", request.wholesaler_id)
        description = request.description or f"Supplier payment: {name}"

        async def apply_policy(ctx: SagaContext) -> Decimal:
            debt, debt_usd = await self.aggregates.get_wholesaler_debt(request.wholesaler_id)
            reduction = self.policy.secondary_reduction(payment, debt, debt_usd)
            return reduction.amount

        async def increment_debt(ctx: SagaContext) -> tuple[Decimal, Decimal]:
            return await self.balances.increment_debt(
                request.wholesaler_id, -payment, -ctx["apply_policy"]
            )

        async def revert_debt(ctx: SagaContext) -> None:
            await self.balances.increment_debt(
                request.wholesaler_id, payment, ctx["apply_policy"]
            )

        def wholesaler_entry(ctx: SagaContext) -> LedgerEntry:
            reduction = ctx["apply_policy"]
            text = description
            if reduction > 0:
                text = f"{description} (USD debt -{reduction})"
            return self._entry(
                LedgerKind.WHOLESALER, request.wholesaler_id, WholesalerTxType.PAYMENT,
                payment, text,
            )

        async def link(ctx: SagaContext) -> None:
            await self.stores[LedgerKind.WHOLESALER].set_link(
                ctx["append_wholesaler_tx"].entry_id,
                "related_account_tx_id",
                ctx["append_account_tx"].entry_id,
            )

        async def unlink(ctx: SagaContext) -> None:
            await self.stores[LedgerKind.WHOLESALER].set_link(
                ctx["append_wholesaler_tx"].entry_id, "related_account_tx_id", None
            )

        result = await self._run("pay_wholesaler", [
            SagaStep("apply_policy", apply_policy),
            SagaStep("increment_debt", increment_debt, revert_debt),
            self._balance_step("increment_balance", request.account_id, -payment),
            self._append_step("append_wholesaler_tx", LedgerKind.WHOLESALER, wholesaler_entry),
            self._append_step(
                "append_account_tx",
                LedgerKind.ACCOUNT,
                lambda ctx: self._entry(
                    LedgerKind.ACCOUNT, request.account_id, AccountTxType.SUPPLIER_PAYMENT,
                    payment, description,
                    links={"related_wholesaler_transaction_id": ctx["append_wholesaler_tx"].entry_id},
                ),
            ),
            SagaStep("link_entries", link, unlink),
        ])
        debt, debt_usd = result.context["increment_debt"]
        return self._result(result, entries={
            "wholesaler_tx": result.context["append_wholesaler_tx"].entry_id,
            "account_tx": result.context["append_account_tx"].entry_id,
        }, values={
            "debt": debt,
            "debt_secondary": debt_usd,
            "secondary_reduction": result.context["apply_policy"],
            "balance": result.context["increment_balance"],
        })

    async def clear_secondary_debt(self, wholesaler_id: str) -> PostingResult:
        """보조 통화 부채 수동 정리

        주 통화 금액 0 인 adjustment 행을 남기고 보조 통화 부채만 0 으로.
        """
        await self._require_owner(LedgerKind.WHOLESALER, wholesaler_id)

        async def clear(ctx: SagaContext) -> Decimal:
            _, debt_usd = await self.aggregates.get_wholesaler_debt(wholesaler_id)
            delta = self.policy.clear_all(debt_usd)
            await self.balances.increment_debt(wholesaler_id, Decimal("0"), delta)
            return delta

        async def unclear(ctx: SagaContext) -> None:
            await self.balances.increment_debt(wholesaler_id, Decimal("0"), -ctx["clear_secondary"])

        result = await self._run("clear_secondary_debt", [
            SagaStep("clear_secondary", clear, unclear),
            self._append_step(
                "append_adjustment",
                LedgerKind.WHOLESALER,
                lambda ctx: self._entry(
                    LedgerKind.WHOLESALER, wholesaler_id, WholesalerTxType.ADJUSTMENT,
                    Decimal("0"),
                    f"Secondary debt cleared (was {-ctx['clear_secondary']})",
                ),
            ),
        ])
        return self._result(result, entries={
            "wholesaler_tx": result.context["append_adjustment"].entry_id,
        }, values={"cleared": -result.context["clear_secondary"]})

    async def record_stock_entry(self, request: StockEntryRequest) -> PostingResult:
        """전표 없는 단독 입고

        재고 증가 → (도매상 지정 시) 부채 증가 → stock_entry 행
        """
        request.validate()
        await self._require_row("products", request.product_id, "Product")
        steps = [self._quantity_step("increment_stock", request.product_id, request.quantity)]

        if request.wholesaler_id:
            wholesaler_id = request.wholesaler_id
            await self._require_owner(LedgerKind.WHOLESALER, wholesaler_id)
            total = request.total_cost
            product_name = await self.aggregates.get_name("products", request.product_id)
            text = f"Stock entry: {product_name} ({request.quantity} x {request.unit_price})"
            if request.notes:
                text = f"{text} - {request.notes}"
            steps += [
                self._debt_step("increment_debt", wholesaler_id, total, Decimal("0")),
                self._append_step(
                    "append_wholesaler_tx",
                    LedgerKind.WHOLESALER,
                    lambda ctx: self._entry(
                        LedgerKind.WHOLESALER, wholesaler_id, WholesalerTxType.STOCK_ENTRY,
                        total, text,
                    ),
                ),
            ]

        result = await self._run("record_stock_entry", steps)
        entries = {}
        if "append_wholesaler_tx" in result.context.results:
            entries["wholesaler_tx"] = result.context["append_wholesaler_tx"].entry_id
        return self._result(result, entries=entries, values={
            "quantity": result.context["increment_stock"],
        })

    # =========================================================================
    # 매입 전표
    # =========================================================================

    async def commit_purchase_invoice(self, request: PurchaseInvoiceRequest) -> PostingResult:
        """매입 전표 등록 (외상, 계좌 이동 없음)

        전표 저장 → 도매상 부채 증가(주/보조) → purchase 행(전표 링크)
        → 상품 라인마다 재고 증가 + 최근 매입가/공급처 갱신
        """
        request.validate()
        await self._require_owner(LedgerKind.WHOLESALER, request.wholesaler_id)
        wholesaler_name = await self.aggregates.get_name("wholesalers", request.wholesaler_id)

        invoice = PurchaseInvoice.new(
            request.wholesaler_id,
            request.lines,
            ts=request.ts or utc_now(),
            notes=request.notes,
        )
        total_primary = invoice.total_primary
        total_secondary = invoice.total_secondary

        async def insert(ctx: SagaContext) -> str:
            await self.invoices.insert(invoice)
            return invoice.invoice_id

        async def remove(ctx: SagaContext) -> None:
            await self.invoices.delete(invoice.invoice_id)

        steps = [
            SagaStep("insert_invoice", insert, remove),
            self._debt_step("increment_debt", request.wholesaler_id, total_primary, total_secondary),
            self._append_step(
                "append_wholesaler_tx",
                LedgerKind.WHOLESALER,
                lambda ctx: self._entry(
                    LedgerKind.WHOLESALER, request.wholesaler_id, WholesalerTxType.PURCHASE,
                    total_primary, f"Purchase invoice #{invoice.invoice_id[:6]}",
                    links={"related_purchase_invoice_id": invoice.invoice_id},
                    ts=invoice.ts,
                ),
            ),
        ]

        for index, line in enumerate(invoice.lines):
            if not line.product_id:
                continue
            steps.append(self._quantity_step(f"increment_stock:{index}", line.product_id, line.quantity))
            steps.append(self._cost_step(
                f"update_cost:{index}",
                line.product_id,
                line.unit_cost_primary,
                wholesaler_name,
                line.selling_price if line.selling_price and line.selling_price > 0 else None,
            ))

        result = await self._run("commit_purchase_invoice", steps)
        debt, debt_usd = result.context["increment_debt"]
        return self._result(result, entries={
            "invoice": invoice.invoice_id,
            "wholesaler_tx": result.context["append_wholesaler_tx"].entry_id,
        }, values={
            "total_primary": total_primary,
            "total_secondary": total_secondary,
            "debt": debt,
            "debt_secondary": debt_usd,
        })

    async def delete_purchase_invoice(self, invoice_id: str) -> PostingResult:
        """매입 전표 삭제

        링크된 purchase 행 삭제 → 전표 삭제 → 도매상 부채 원복(주/재구성한 보조)
        → 상품 라인마다 재고 감소 → 도매상 장부 재계산
        """
        invoice = await self.invoices.get(invoice_id)
        if invoice is None:
            raise ValidationError(f"Purchase invoice not found: {invoice_id}")

        wholesaler_store = self.stores[LedgerKind.WHOLESALER]
        linked = await wholesaler_store.find_by_link("related_purchase_invoice_id", invoice_id)

        if linked is not None:
            primary = linked.amount
        else:
            primary = await self.invoices.get_total_primary(invoice_id) or Decimal("0")
        secondary = reconstruct_secondary_total(invoice.notes, invoice.lines)
        wholesaler_id = invoice.wholesaler_id

        async def remove(ctx: SagaContext) -> None:
            await self.invoices.delete(invoice_id)

        async def reinsert(ctx: SagaContext) -> None:
            await self.invoices.insert(invoice)

        steps: list[SagaStep] = []
        if linked is not None:
            steps.append(self._delete_step("delete_wholesaler_tx", LedgerKind.WHOLESALER, linked))
        steps.append(SagaStep("delete_invoice", remove, reinsert))
        if wholesaler_id:
            steps.append(self._debt_step("revert_debt", wholesaler_id, -primary, -secondary))
        for index, line in enumerate(invoice.lines):
            if line.product_id:
                steps.append(self._quantity_step(f"decrement_stock:{index}", line.product_id, -line.quantity))
        if wholesaler_id:
            steps.append(self._recompute_step("recompute_wholesaler", LedgerKind.WHOLESALER, wholesaler_id))

        result = await self._run("delete_purchase_invoice", steps)
        entries = {"invoice": invoice_id}
        if linked is not None:
            entries["wholesaler_tx"] = linked.entry_id
        return self._result(result, entries=entries, values={
            "reverted_primary": primary,
            "reverted_secondary": secondary,
        })

    # =========================================================================
    # 삭제 / 수정
    # =========================================================================

    async def delete_payment_entry(self, kind: LedgerKind, entry_id: str) -> PostingResult:
        """수금/지급 행 삭제

        링크된 계좌 행 삭제 → 고객/도매상 행 삭제 → 계좌 잔액 원복 → 소유자 부채 원복
        → 계좌/소유자 장부 재계산

        도매상 지급으로 줄었던 보조 통화 부채는 되돌리지 않는다 (감소액을 기록하지 않음).
        """
        if kind not in _REVERSE_LINKS:
            raise ValidationError(f"Payment entries exist only on customer/wholesaler ledgers, got {kind.value}")

        store = self.stores[kind]
        entry = await store.get(entry_id)
        if entry is None:
            raise ValidationError(f"{kind.value} entry not found: {entry_id}")
        if entry.tx_type.value != "payment":
            raise ValidationError(
                f"Entry {entry_id} is a {entry.tx_type.value} entry, not a payment"
            )

        account_tx = await self._find_account_tx(kind, entry)

        steps: list[SagaStep] = []
        if account_tx is not None:
            steps.append(self._delete_step("delete_account_tx", LedgerKind.ACCOUNT, account_tx))
        steps.append(self._delete_step("delete_owner_tx", kind, entry))
        if account_tx is not None:
            steps.append(self._balance_step("revert_balance", account_tx.owner_id, -account_tx.amount))
        steps.append(self._owner_increment_step("revert_debt", kind, entry.owner_id, -entry.amount))
        if account_tx is not None:
            steps.append(self._recompute_step("recompute_account", LedgerKind.ACCOUNT, account_tx.owner_id))
        steps.append(self._recompute_step("recompute_owner", kind, entry.owner_id))

        result = await self._run(f"delete_{kind.value}_payment", steps)
        entries = {"owner_tx": entry.entry_id}
        values: dict[str, Any] = {"debt": result.context["recompute_owner"].final_balance}
        if account_tx is not None:
            entries["account_tx"] = account_tx.entry_id
            values["balance"] = result.context["recompute_account"].final_balance
        return self._result(result, entries=entries, values=values)

    async def delete_unlinked_entry(self, kind: LedgerKind, entry_id: str) -> PostingResult:
        """링크 없는 단독 행 삭제 (외상, 단독 입고, 기타 수입/지출 등)

        삭제 → 소유자 집계 원복 → 재계산.
        링크된 행은 delete_payment_entry / delete_purchase_invoice 로만 삭제.
        """
        store = self.stores[kind]
        entry = await store.get(entry_id)
        if entry is None:
            raise ValidationError(f"{kind.value} entry not found: {entry_id}")
        await self._reject_linked(kind, entry, "deleted")

        result = await self._run(f"delete_{kind.value}_entry", [
            self._delete_step("delete_entry", kind, entry),
            self._owner_increment_step("revert_aggregate", kind, entry.owner_id, -entry.amount),
            self._recompute_step("recompute_owner", kind, entry.owner_id),
        ])
        return self._result(result, entries={"entry": entry_id}, values={
            "balance": result.context["recompute_owner"].final_balance,
        })

    async def amend_entry(self, kind: LedgerKind, entry_id: str, new_amount: Decimal) -> PostingResult:
        """행 금액 수정 → 집계 차액 반영 → 재계산

        new_amount 는 거래 유형 부호 규칙에 따라 부호가 정해진다.
        부호 고정 유형은 양수만, 조정은 0 이 아닌 값만 허용 (개설 잔액 0 은 허용).
        링크된 행은 수정 불가.
        """
        store = self.stores[kind]
        entry = await store.get(entry_id)
        if entry is None:
            raise ValidationError(f"{kind.value} entry not found: {entry_id}")
        await self._reject_linked(kind, entry, "amended")
        if has_fixed_sign(entry.tx_type):
            if new_amount <= 0:
                raise ValidationError(f"Amended amount must be positive: {new_amount}")
        elif new_amount == 0 and entry.tx_type.value == "adjustment":
            raise ValidationError("Adjustment amount must not be zero")

        old_amount = entry.amount
        new_signed = signed_amount(entry.tx_type, new_amount)
        delta = new_signed - old_amount

        async def update(ctx: SagaContext) -> None:
            await store.update_amount(entry_id, new_signed)

        async def revert(ctx: SagaContext) -> None:
            await store.update_amount(entry_id, old_amount)
            await self.recalculator.recalculate(kind, entry.owner_id)

        result = await self._run(f"amend_{kind.value}_entry", [
            SagaStep("update_amount", update, revert),
            self._owner_increment_step("adjust_aggregate", kind, entry.owner_id, delta),
            self._recompute_step("recompute_owner", kind, entry.owner_id),
        ])
        return self._result(result, entries={"entry": entry_id}, values={
            "old_amount": old_amount,
            "new_amount": new_signed,
            "balance": result.context["recompute_owner"].final_balance,
        })

    # =========================================================================
    # 단계 빌더
    # =========================================================================

    def _entry(
        self,
        kind: LedgerKind,
        owner_id: str,
        tx_type: Enum,
        amount: Decimal,
        description: str | None = None,
        links: dict[str, str | None] | None = None,
        ts: datetime | None = None,
    ) -> LedgerEntry:
        """부호 규칙을 적용한 새 장부 행"""
        return LedgerEntry.new(
            LEDGERS[kind],
            owner_id,
            tx_type,
            signed_amount(tx_type, amount),
            description=description,
            links=links,
            ts=ts,
        )

    def _append_step(
        self,
        name: str,
        kind: LedgerKind,
        make_entry: Callable[[SagaContext], LedgerEntry],
    ) -> SagaStep:
        """장부 행 추가 단계

        고객 장부는 부채가 재계산으로 기록되므로 보상 시 삭제 후 재계산.
        나머지 장부는 집계를 증가 단계가 따로 되돌리므로 삭제만.
        """
        store = self.stores[kind]

        async def do(ctx: SagaContext) -> LedgerEntry:
            return await store.append(make_entry(ctx))

        async def undo(ctx: SagaContext) -> None:
            entry: LedgerEntry = ctx[name]
            await store.delete(entry.entry_id)
            if kind == LedgerKind.CUSTOMER:
                await self.recalculator.recalculate(kind, entry.owner_id)

        return SagaStep(name, do, undo)

    def _delete_step(self, name: str, kind: LedgerKind, entry: LedgerEntry) -> SagaStep:
        """장부 행 삭제 단계

        보상: 같은 id/ts 로 재삽입 후 재계산 (뒤 단계 재계산이 이후 행 잔액을
        이 행 없이 다시 썼을 수 있음). 집계 증감 단계 보상이 먼저 실행된다.
        """
        store = self.stores[kind]

        async def do(ctx: SagaContext) -> None:
            await store.delete(entry.entry_id)

        async def undo(ctx: SagaContext) -> None:
            await store.restore(entry)
            await self.recalculator.recalculate(kind, entry.owner_id)

        return SagaStep(name, do, undo)

    def _recompute_step(self, name: str, kind: LedgerKind, owner_id: str) -> SagaStep:
        """재계산 단계 (보상 없음: 앞 단계 보상이 장부를 되돌림)"""

        async def do(ctx: SagaContext):
            return await self.recalculator.recalculate(kind, owner_id)

        return SagaStep(name, do)

    def _balance_step(self, name: str, account_id: str, delta: Decimal) -> SagaStep:
        async def do(ctx: SagaContext) -> Decimal:
            return await self.balances.increment_balance(account_id, delta)

        async def undo(ctx: SagaContext) -> None:
            await self.balances.increment_balance(account_id, -delta)

        return SagaStep(name, do, undo)

    def _debt_step(
        self,
        name: str,
        wholesaler_id: str,
        delta_primary: Decimal,
        delta_secondary: Decimal,
    ) -> SagaStep:
        async def do(ctx: SagaContext) -> tuple[Decimal, Decimal]:
            return await self.balances.increment_debt(wholesaler_id, delta_primary, delta_secondary)

        async def undo(ctx: SagaContext) -> None:
            await self.balances.increment_debt(wholesaler_id, -delta_primary, -delta_secondary)

        return SagaStep(name, do, undo)

    def _quantity_step(self, name: str, product_id: str, delta: Decimal) -> SagaStep:
        async def do(ctx: SagaContext) -> Decimal:
            return await self.balances.increment_quantity(product_id, delta)

        async def undo(ctx: SagaContext) -> None:
            await self.balances.increment_quantity(product_id, -delta)

        return SagaStep(name, do, undo)

    def _cost_step(
        self,
        name: str,
        product_id: str,
        unit_cost: Decimal,
        supplier: str | None,
        selling_price: Decimal | None,
    ) -> SagaStep:
        async def do(ctx: SagaContext) -> dict[str, Any]:
            return await self.aggregates.update_product_cost(
                product_id, unit_cost, supplier, selling_price
            )

        async def undo(ctx: SagaContext) -> None:
            await self.aggregates.restore_product_cost(product_id, ctx[name])

        return SagaStep(name, do, undo)

    def _owner_increment_step(
        self,
        name: str,
        kind: LedgerKind,
        owner_id: str,
        delta: Decimal,
    ) -> SagaStep:
        """장부 종류별 소유자 집계 증가 단계"""
        if kind == LedgerKind.ACCOUNT:
            return self._balance_step(name, owner_id, delta)
        if kind == LedgerKind.WHOLESALER:
            return self._debt_step(name, owner_id, delta, Decimal("0"))

        async def do(ctx: SagaContext) -> Decimal:
            return await self.balances.increment_customer_debt(owner_id, delta)

        async def undo(ctx: SagaContext) -> None:
            await self.balances.increment_customer_debt(owner_id, -delta)

        return SagaStep(name, do, undo)

    # =========================================================================
    # 내부
    # =========================================================================

    async def _run(self, operation: str, steps: list[SagaStep]) -> SagaResult:
        result = await self.runner.run(operation, steps)
        logger.info(
            f"Posting completed: {operation}",
            extra={"steps": result.completed_steps},
        )
        return result

    @staticmethod
    def _result(
        result: SagaResult,
        entries: dict[str, str],
        values: dict[str, Any],
    ) -> PostingResult:
        return PostingResult(
            operation=result.operation,
            state=result.state,
            entries=entries,
            values=values,
        )

    async def _require_row(self, table: str, row_id: str, what: str) -> str:
        if not row_id or await self.aggregates.get_row(table, row_id) is None:
            raise ValidationError(f"{what} not found: {row_id}")
        return row_id

    async def _require_owner(self, kind: LedgerKind, owner_id: str) -> str:
        return await self._require_row(_OWNER_TABLES[kind], owner_id, kind.value.capitalize())

    async def _check_funds(self, account_id: str, amount: Decimal) -> None:
        if not self.require_sufficient_funds:
            return
        balance = await self.aggregates.get_account_balance(account_id)
        if balance < amount:
            raise ValidationError(
                f"Insufficient funds in account {account_id}: balance {balance}, required {amount}"
            )

    async def _find_account_tx(self, kind: LedgerKind, entry: LedgerEntry) -> LedgerEntry | None:
        """고객/도매상 행과 같은 작업에서 만들어진 계좌 행"""
        account_store = self.stores[LedgerKind.ACCOUNT]
        linked_id = entry.links.get("related_account_tx_id")
        if linked_id:
            account_tx = await account_store.get(linked_id)
            if account_tx is not None:
                return account_tx
        return await account_store.find_by_link(_REVERSE_LINKS[kind], entry.entry_id)

    async def _reject_linked(self, kind: LedgerKind, entry: LedgerEntry, action: str) -> None:
        """다른 장부/전표와 연결된 행이면 ValidationError"""
        linked = [
            column for column, value in entry.links.items()
            if value and column not in NON_LINK_COLUMNS
        ]
        if not linked and kind in _REVERSE_LINKS:
            referencing = await self.stores[LedgerKind.ACCOUNT].find_by_link(
                _REVERSE_LINKS[kind], entry.entry_id
            )
            if referencing is not None:
                linked.append(f"account_transactions.{_REVERSE_LINKS[kind]}")
        if linked:
            raise ValidationError(
                f"{kind.value} entry {entry.entry_id} is linked ({', '.join(linked)}) and "
                f"cannot be {action} on its own; use the payment or invoice deletion flow"
            )
