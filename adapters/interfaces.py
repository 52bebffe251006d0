"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from decimal import Decimal
from typing import Protocol, runtime_checkable


@runtime_checkable
class IAtomicBalanceStore(Protocol):
    """소유자 잔액 원자적 증가 인터페이스

    PostingEngine 이 소유자 집계(고객 부채, 도매상 부채, 계좌 잔액, 재고 수량)를
    바꾸는 유일한 경로. 구현체는 읽기-수정-쓰기를 원자적으로 수행해야 함
    (동시 요청 간 갱신 유실 금지).
    금액/수량은 반드시 Decimal 타입 사용.
    """

    async def increment_balance(self, account_id: str, delta: Decimal) -> Decimal:
        """계좌 잔액 증가

        Args:
            account_id: 계좌 id
            delta: 증감액 (음수 허용)

        Returns:
            증가 후 잔액

        Raises:
            StorageError: 계좌 없음 또는 쓰기 실패
        """
        ...

    async def increment_debt(
        self,
        wholesaler_id: str,
        delta_primary: Decimal,
        delta_secondary: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """도매상 이중 통화 부채 증가 (한 번의 원자적 갱신)

        Args:
            wholesaler_id: 도매상 id
            delta_primary: 주 통화 증감액
            delta_secondary: 보조 통화 증감액

        Returns:
            (주 통화 부채, 보조 통화 부채) 증가 후 값
        """
        ...

    async def increment_customer_debt(self, customer_id: str, delta: Decimal) -> Decimal:
        """고객 부채 증가

        Args:
            customer_id: 고객 id
            delta: 증감액

        Returns:
            증가 후 부채
        """
        ...

    async def increment_quantity(self, product_id: str, delta: Decimal) -> Decimal:
        """재고 수량 증가

        Args:
            product_id: 상품 id
            delta: 증감 수량

        Returns:
            증가 후 수량
        """
        ...
