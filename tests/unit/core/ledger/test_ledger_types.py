"""장부 타입 / 부호 규칙 테스트"""

from decimal import Decimal

import pytest

from core.errors import ValidationError
from core.ledger.types import (
    ACCOUNT_LEDGER,
    CUSTOMER_LEDGER,
    LEDGERS,
    WHOLESALER_LEDGER,
    has_fixed_sign,
    parse_tx_type,
    signed_amount,
)
from core.types import AccountTxType, CustomerTxType, LedgerKind, WholesalerTxType


class TestLedgerSpecs:
    """LedgerSpec 매핑 테스트"""

    def test_all_kinds_registered(self) -> None:
        """세 장부 모두 등록"""
        assert set(LEDGERS) == set(LedgerKind)
        for kind, spec in LEDGERS.items():
            assert spec.kind == kind

    def test_balance_columns(self) -> None:
        """장부별 누적 잔액 컬럼"""
        assert CUSTOMER_LEDGER.balance_column == "balance"
        assert WHOLESALER_LEDGER.balance_column == "balance_after"
        assert ACCOUNT_LEDGER.balance_column == "balance_after"

    def test_owner_aggregate_columns(self) -> None:
        """소유자 집계 컬럼"""
        assert CUSTOMER_LEDGER.owner_balance_column == "debt"
        assert WHOLESALER_LEDGER.owner_balance_column == "debt"
        assert ACCOUNT_LEDGER.owner_balance_column == "current_balance"

    def test_customer_ledger_has_no_links(self) -> None:
        assert CUSTOMER_LEDGER.link_columns == ()


class TestParseTxType:
    """parse_tx_type 테스트"""

    def test_parse_string(self) -> None:
        assert parse_tx_type(CUSTOMER_LEDGER, "charge") == CustomerTxType.CHARGE

    def test_enum_passthrough(self) -> None:
        assert parse_tx_type(ACCOUNT_LEDGER, AccountTxType.EXPENSE) is AccountTxType.EXPENSE

    def test_same_value_other_ledger(self) -> None:
        """같은 값이라도 장부별 Enum 으로 변환"""
        parsed = parse_tx_type(WHOLESALER_LEDGER, CustomerTxType.PAYMENT)

        assert parsed is WholesalerTxType.PAYMENT

    def test_unknown_type(self) -> None:
        """장부에 없는 유형"""
        with pytest.raises(ValidationError, match="Unknown customer transaction type"):
            parse_tx_type(CUSTOMER_LEDGER, "purchase")


class TestSignedAmount:
    """부호 규칙 테스트"""

    @pytest.mark.parametrize(
        "tx_type, amount, expected",
        [
            (CustomerTxType.CHARGE, Decimal("500"), Decimal("500")),
            (CustomerTxType.PAYMENT, Decimal("200"), Decimal("-200")),
            (CustomerTxType.PAYMENT, Decimal("-200"), Decimal("-200")),
            (WholesalerTxType.PURCHASE, Decimal("100"), Decimal("100")),
            (WholesalerTxType.RETURN, Decimal("30"), Decimal("-30")),
            (AccountTxType.EXPENSE, Decimal("75"), Decimal("-75")),
            (AccountTxType.CUSTOMER_PAYMENT, Decimal("200"), Decimal("200")),
            (AccountTxType.TRANSFER_OUT, Decimal("50"), Decimal("-50")),
        ],
    )
    def test_fixed_sign(self, tx_type, amount: Decimal, expected: Decimal) -> None:
        """유형이 부호를 결정"""
        assert signed_amount(tx_type, amount) == expected

    def test_adjustment_keeps_sign(self) -> None:
        """조정은 입력 부호 유지"""
        assert signed_amount(CustomerTxType.ADJUSTMENT, Decimal("-15")) == Decimal("-15")
        assert signed_amount(WholesalerTxType.ADJUSTMENT, Decimal("15")) == Decimal("15")

    def test_opening_keeps_sign(self) -> None:
        """개설 잔액은 음수도 허용 (마이너스 통장)"""
        assert signed_amount(AccountTxType.OPENING, Decimal("-100")) == Decimal("-100")

    def test_has_fixed_sign(self) -> None:
        assert has_fixed_sign(CustomerTxType.CHARGE)
        assert has_fixed_sign(WholesalerTxType.PAYMENT)
        assert not has_fixed_sign(CustomerTxType.ADJUSTMENT)
        assert not has_fixed_sign(AccountTxType.OPENING)
