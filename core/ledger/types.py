"""
장부 타입 정의

장부별 테이블/소유자/잔액 컬럼 매핑과 거래 유형별 부호 규칙.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from core.errors import ValidationError
from core.types import AccountTxType, CustomerTxType, LedgerKind, WholesalerTxType


@dataclass(frozen=True)
class LedgerSpec:
    """장부 한 종류의 저장 위치

    Attributes:
        kind: 장부 종류
        table: 장부 테이블
        owner_table: 소유자 테이블
        owner_column: 장부 테이블의 소유자 FK 컬럼
        balance_column: 장부 행의 누적 잔액 컬럼
        owner_balance_column: 소유자 테이블의 현재 잔액 컬럼
        link_columns: 다른 장부/전표를 가리키는 링크 컬럼
        tx_type: 거래 유형 Enum
    """

    kind: LedgerKind
    table: str
    owner_table: str
    owner_column: str
    balance_column: str
    owner_balance_column: str
    link_columns: tuple[str, ...]
    tx_type: type[Enum]


CUSTOMER_LEDGER = LedgerSpec(
    kind=LedgerKind.CUSTOMER,
    table="customer_transactions",
    owner_table="customers",
    owner_column="customer_id",
    balance_column="balance",
    owner_balance_column="debt",
    link_columns=(),
    tx_type=CustomerTxType,
)

WHOLESALER_LEDGER = LedgerSpec(
    kind=LedgerKind.WHOLESALER,
    table="wholesaler_transactions",
    owner_table="wholesalers",
    owner_column="wholesaler_id",
    balance_column="balance_after",
    owner_balance_column="debt",
    link_columns=("related_account_tx_id", "related_purchase_invoice_id"),
    tx_type=WholesalerTxType,
)

ACCOUNT_LEDGER = LedgerSpec(
    kind=LedgerKind.ACCOUNT,
    table="account_transactions",
    owner_table="accounts",
    owner_column="account_id",
    balance_column="balance_after",
    owner_balance_column="current_balance",
    link_columns=(
        "related_sale_id",
        "related_service_id",
        "related_customer_tx_id",
        "related_wholesaler_transaction_id",
        "transfer_pair_id",
        "expense_category_id",
    ),
    tx_type=AccountTxType,
)

LEDGERS: dict[LedgerKind, LedgerSpec] = {
    LedgerKind.CUSTOMER: CUSTOMER_LEDGER,
    LedgerKind.WHOLESALER: WHOLESALER_LEDGER,
    LedgerKind.ACCOUNT: ACCOUNT_LEDGER,
}

# 링크로 취급하지 않는 분류 컬럼 (다른 장부 행을 가리키지 않음)
NON_LINK_COLUMNS: frozenset[str] = frozenset({"expense_category_id"})


# 거래 유형별 부호: +1 항상 양수, -1 항상 음수, 0 입력 부호 유지
# str Enum 은 값이 같으면 서로 같다고 비교되므로 Enum 클래스별로 분리
_SIGNS: dict[type[Enum], dict[str, int]] = {
    CustomerTxType: {
        CustomerTxType.CHARGE.value: 1,
        CustomerTxType.PAYMENT.value: -1,
        CustomerTxType.ADJUSTMENT.value: 0,
    },
    WholesalerTxType: {
        WholesalerTxType.PURCHASE.value: 1,
        WholesalerTxType.STOCK_ENTRY.value: 1,
        WholesalerTxType.PAYMENT.value: -1,
        WholesalerTxType.RETURN.value: -1,
        WholesalerTxType.ADJUSTMENT.value: 0,
    },
    AccountTxType: {
        AccountTxType.OPENING.value: 0,
        AccountTxType.INCOME.value: 1,
        AccountTxType.EXPENSE.value: -1,
        AccountTxType.CUSTOMER_PAYMENT.value: 1,
        AccountTxType.SUPPLIER_PAYMENT.value: -1,
        AccountTxType.TRANSFER_IN.value: 1,
        AccountTxType.TRANSFER_OUT.value: -1,
        AccountTxType.ADJUSTMENT.value: 0,
    },
}

# 새 유형 추가 시 부호 누락 방지
_missing = [
    f"{enum_cls.__name__}.{member.name}"
    for enum_cls, signs in _SIGNS.items()
    for member in enum_cls
    if member.value not in signs
]
if _missing:
    raise RuntimeError(f"Sign convention missing for: {_missing}")


def parse_tx_type(spec: LedgerSpec, value: str | Enum) -> Enum:
    """문자열 거래 유형을 장부별 Enum 으로 변환

    Raises:
        ValidationError: 해당 장부에 없는 유형
    """
    if isinstance(value, spec.tx_type):
        return value
    raw = value.value if isinstance(value, Enum) else value
    try:
        return spec.tx_type(raw)
    except ValueError as e:
        valid = [m.value for m in spec.tx_type]
        raise ValidationError(
            f"Unknown {spec.kind.value} transaction type '{raw}'. Valid: {valid}"
        ) from e


def signed_amount(tx_type: Enum, amount: Decimal) -> Decimal:
    """거래 유형의 부호 규칙을 적용한 금액

    Args:
        tx_type: 거래 유형
        amount: 입력 금액 (부호 무관, 조정/개설은 부호 그대로 사용)

    Returns:
        장부에 기록할 부호 있는 금액
    """
    sign = _SIGNS[type(tx_type)][tx_type.value]
    if sign == 0:
        return amount
    return abs(amount) * sign


def has_fixed_sign(tx_type: Enum) -> bool:
    """유형이 부호를 정하는지 여부 (조정/개설은 입력 부호를 그대로 씀)"""
    return _SIGNS[type(tx_type)][tx_type.value] != 0
