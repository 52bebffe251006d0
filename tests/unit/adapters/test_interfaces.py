"""
Protocol 인터페이스 테스트

Protocol 타입 검증 및 구현 확인.
"""

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IAtomicBalanceStore
from core.storage.aggregate_store import AggregateStore


class TestIAtomicBalanceStore:
    """IAtomicBalanceStore Protocol 테스트"""

    def test_aggregate_store_implements_protocol(self) -> None:
        store = AggregateStore(SQLiteAdapter(":memory:"))

        assert isinstance(store, IAtomicBalanceStore)

    def test_protocol_has_required_methods(self) -> None:
        required_methods = [
            "increment_balance",
            "increment_debt",
            "increment_customer_debt",
            "increment_quantity",
        ]

        for method_name in required_methods:
            assert hasattr(IAtomicBalanceStore, method_name), f"Missing method: {method_name}"

    def test_plain_object_does_not_implement(self) -> None:
        assert not isinstance(object(), IAtomicBalanceStore)

    def test_posting_engine_increments_through_protocol(self) -> None:
        from backoffice.posting.engine import PostingEngine

        engine = PostingEngine(SQLiteAdapter(":memory:"))

        assert isinstance(engine.balances, IAtomicBalanceStore)
        assert engine.balances is engine.aggregates
