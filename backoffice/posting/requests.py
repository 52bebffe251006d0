"""
Posting 요청 모델

PostingEngine 작업별 입력. validate() 는 저장소를 보지 않는 입력 검증만 한다
(부채 초과 수금, 잔액 부족 등 저장된 값이 필요한 검증은 엔진에서).
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from core.domain.invoice import InvoiceLine
from core.errors import ValidationError
from core.types import AccountTxType, AccountType


def _require_positive(amount: Decimal, what: str = "Amount") -> None:
    if amount <= 0:
        raise ValidationError(f"{what} must be positive: {amount}")


def _require_id(value: str | None, what: str) -> None:
    if not value:
        raise ValidationError(f"{what} is required")


@dataclass
class OpenAccountRequest:
    """계좌 개설"""

    name: str
    account_type: AccountType = AccountType.CASH
    initial_balance: Decimal = Decimal("0")
    bank_name: str | None = None
    is_default: bool = False

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Account name is required")


@dataclass
class CustomerChargeRequest:
    """고객 외상 (부채 증가)"""

    customer_id: str
    amount: Decimal
    description: str | None = None

    def validate(self) -> None:
        _require_id(self.customer_id, "customer_id")
        _require_positive(self.amount)


@dataclass
class CustomerPaymentRequest:
    """고객 수금 (부채 감소 + 계좌 유입)"""

    customer_id: str
    account_id: str
    amount: Decimal
    description: str | None = None

    def validate(self) -> None:
        _require_id(self.customer_id, "customer_id")
        _require_id(self.account_id, "account_id")
        _require_positive(self.amount, "Payment amount")


@dataclass
class WholesalerPaymentRequest:
    """도매상 지급 (부채 감소 + 계좌 유출)"""

    wholesaler_id: str
    account_id: str
    amount: Decimal
    description: str | None = None

    def validate(self) -> None:
        _require_id(self.wholesaler_id, "wholesaler_id")
        _require_id(self.account_id, "account_id")
        _require_positive(self.amount, "Payment amount")


@dataclass
class PurchaseInvoiceRequest:
    """매입 전표 등록 (외상 매입, 계좌 이동 없음)"""

    wholesaler_id: str
    lines: list[InvoiceLine] = field(default_factory=list)
    notes: str | None = None
    ts: datetime | None = None

    def validate(self) -> None:
        _require_id(self.wholesaler_id, "wholesaler_id")
        if not self.lines:
            raise ValidationError("Purchase invoice needs at least one line")
        for line in self.lines:
            line.validate()


@dataclass
class StockEntryRequest:
    """전표 없는 단독 입고

    wholesaler_id 가 있으면 quantity * unit_price 만큼 도매상 부채 증가.
    """

    product_id: str
    quantity: Decimal
    unit_price: Decimal = Decimal("0")
    wholesaler_id: str | None = None
    notes: str | None = None

    def validate(self) -> None:
        _require_id(self.product_id, "product_id")
        _require_positive(self.quantity, "Quantity")
        if self.unit_price < 0:
            raise ValidationError(f"Unit price must not be negative: {self.unit_price}")

    @property
    def total_cost(self) -> Decimal:
        return self.quantity * self.unit_price if self.wholesaler_id else Decimal("0")


@dataclass
class AccountMovementRequest:
    """계좌 기타 수입/지출"""

    account_id: str
    tx_type: AccountTxType
    amount: Decimal
    description: str | None = None
    expense_category_id: str | None = None

    def validate(self) -> None:
        _require_id(self.account_id, "account_id")
        _require_positive(self.amount)
        if self.tx_type not in (AccountTxType.INCOME, AccountTxType.EXPENSE):
            raise ValidationError(
                f"Account movement must be income or expense, got {self.tx_type.value}"
            )
        if self.tx_type == AccountTxType.EXPENSE and not self.expense_category_id:
            raise ValidationError("Expense requires an expense category")


@dataclass
class TransferRequest:
    """계좌 간 이체"""

    source_account_id: str
    target_account_id: str
    amount: Decimal
    description: str | None = None

    def validate(self) -> None:
        _require_id(self.source_account_id, "source_account_id")
        _require_id(self.target_account_id, "target_account_id")
        _require_positive(self.amount, "Transfer amount")
        if self.source_account_id == self.target_account_id:
            raise ValidationError("Source and target accounts must differ")
