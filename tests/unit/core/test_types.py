"""
core/types.py 테스트

모든 Enum이 문자열 직렬화 가능한지 확인
"""

import json

import pytest

from core.types import (
    AccountTxType,
    AccountType,
    CustomerTxType,
    LedgerKind,
    PriceCurrency,
    SagaState,
    SecondaryAnomalyPolicy,
    WholesalerTxType,
)

ALL_ENUMS = [
    LedgerKind,
    AccountType,
    PriceCurrency,
    CustomerTxType,
    WholesalerTxType,
    AccountTxType,
    SecondaryAnomalyPolicy,
    SagaState,
]


class TestStrEnums:
    """str Enum 직렬화 테스트"""

    @pytest.mark.parametrize("enum_cls", ALL_ENUMS)
    def test_members_are_strings(self, enum_cls) -> None:
        for member in enum_cls:
            assert isinstance(member, str)
            assert enum_cls(member.value) is member

    def test_json_serializable(self) -> None:
        payload = json.dumps({"kind": LedgerKind.WHOLESALER, "type": WholesalerTxType.STOCK_ENTRY})
        assert payload == '{"kind": "wholesaler", "type": "stock_entry"}'


class TestValues:
    """저장 값 테스트 (DB 에 그대로 기록됨)"""

    def test_ledger_kinds(self) -> None:
        assert [k.value for k in LedgerKind] == ["customer", "wholesaler", "account"]

    def test_anomaly_policies(self) -> None:
        assert {p.value for p in SecondaryAnomalyPolicy} == {"clear", "reject", "keep"}

    def test_saga_states_uppercase(self) -> None:
        assert all(s.value == s.value.upper() for s in SagaState)

    def test_shared_values_across_ledgers(self) -> None:
        """장부마다 같은 문자열 값을 쓰는 유형 존재 (payment, adjustment)"""
        assert CustomerTxType.PAYMENT.value == WholesalerTxType.PAYMENT.value
        assert AccountTxType.ADJUSTMENT.value == CustomerTxType.ADJUSTMENT.value
