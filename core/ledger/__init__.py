"""
장부 (Ledger) 시스템

고객/도매상/계좌 장부의 행 저장, 누적 잔액 재계산, 이중 통화 부채 정책.

사용 예시:
```python
from core.ledger import BalanceRecalculator, LedgerStore, LEDGERS

stores = {kind: LedgerStore(db, spec) for kind, spec in LEDGERS.items()}
recalculator = BalanceRecalculator(stores)

result = await recalculator.recalculate(LedgerKind.CUSTOMER, customer_id)
assert result.final_balance == await stores[LedgerKind.CUSTOMER].get_owner_balance(customer_id)
```
"""

from core.ledger.dual_currency import DualCurrencyDebtPolicy, SecondaryReduction
from core.ledger.entry import LedgerEntry
from core.ledger.recalculator import BalanceRecalculator, RecalcResult
from core.ledger.store import LedgerStore
from core.ledger.types import (
    ACCOUNT_LEDGER,
    CUSTOMER_LEDGER,
    LEDGERS,
    WHOLESALER_LEDGER,
    LedgerSpec,
    signed_amount,
)

__all__ = [
    # 핵심 클래스
    "LedgerStore",
    "LedgerEntry",
    "BalanceRecalculator",
    "RecalcResult",
    "DualCurrencyDebtPolicy",
    "SecondaryReduction",
    # 장부 정의
    "LedgerSpec",
    "CUSTOMER_LEDGER",
    "WHOLESALER_LEDGER",
    "ACCOUNT_LEDGER",
    "LEDGERS",
    "signed_amount",
]
