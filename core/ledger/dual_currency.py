"""
이중 통화 부채 정책

도매상 부채는 주 통화(TRY) 부채 D 와 보조 통화(USD) 부채 S 를 따로 쌓는다.
주 통화로 P 를 지급할 때 보조 통화 부채를 얼마나 줄일지 결정.

- S <= 0: 조정 없음
- D <= 0 < S: 비정상 상태. 설정된 정책(clear/reject/keep)으로 명시 처리
- P >= D: 전액 지급으로 보고 S 전부 정리
- 그 외: S * (P / D) 만큼 비례 감소
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from core.constants import Defaults
from core.errors import ValidationError
from core.types import SecondaryAnomalyPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecondaryReduction:
    """보조 통화 감소 계산 결과

    Attributes:
        amount: 보조 통화 부채 감소액 (0 이상)
        reason: none / full / proportional / anomaly_clear / anomaly_keep
    """

    amount: Decimal
    reason: str


class DualCurrencyDebtPolicy:
    """이중 통화 부채 정책

    Args:
        anomaly_policy: D <= 0 < S 상태 처리 방식
        quant: 감소액 반올림 단위
    """

    def __init__(
        self,
        anomaly_policy: SecondaryAnomalyPolicy = SecondaryAnomalyPolicy.CLEAR,
        quant: Decimal = Defaults.MONEY_QUANT,
    ):
        self.anomaly_policy = anomaly_policy
        self.quant = quant

    def secondary_reduction(
        self,
        payment: Decimal,
        primary_debt: Decimal,
        secondary_debt: Decimal,
    ) -> SecondaryReduction:
        """주 통화 지급에 따른 보조 통화 부채 감소액

        Args:
            payment: 주 통화 지급액 P (> 0)
            primary_debt: 현재 주 통화 부채 D
            secondary_debt: 현재 보조 통화 부채 S

        Returns:
            SecondaryReduction

        Raises:
            ValidationError: P <= 0, 또는 비정상 상태에서 reject 정책
        """
        if payment <= 0:
            raise ValidationError(f"Payment must be positive: {payment}")

        if secondary_debt <= 0:
            return SecondaryReduction(Decimal("0"), "none")

        if primary_debt <= 0:
            return self._handle_anomaly(payment, primary_debt, secondary_debt)

        if payment >= primary_debt:
            return SecondaryReduction(secondary_debt, "full")

        reduction = (secondary_debt * payment / primary_debt).quantize(
            self.quant, rounding=ROUND_HALF_UP
        )
        return SecondaryReduction(min(reduction, secondary_debt), "proportional")

    def _handle_anomaly(
        self,
        payment: Decimal,
        primary_debt: Decimal,
        secondary_debt: Decimal,
    ) -> SecondaryReduction:
        """D <= 0 < S 상태 처리 (비례식 정의 불가)"""
        logger.warning(
            "Secondary debt outstanding while primary debt is not positive",
            extra={
                "payment": str(payment),
                "primary_debt": str(primary_debt),
                "secondary_debt": str(secondary_debt),
                "policy": self.anomaly_policy.value,
            },
        )

        if self.anomaly_policy == SecondaryAnomalyPolicy.REJECT:
            raise ValidationError(
                f"Primary debt is {primary_debt} but secondary debt {secondary_debt} "
                f"is outstanding; clear the secondary debt manually before paying"
            )
        if self.anomaly_policy == SecondaryAnomalyPolicy.KEEP:
            return SecondaryReduction(Decimal("0"), "anomaly_keep")
        return SecondaryReduction(secondary_debt, "anomaly_clear")

    @staticmethod
    def clear_all(secondary_debt: Decimal) -> Decimal:
        """수동 정리 시 보조 통화 부채 변화량 (0 으로 만드는 delta)

        Raises:
            ValidationError: 정리할 보조 통화 부채가 없음
        """
        if secondary_debt == 0:
            raise ValidationError("No secondary-currency debt to clear")
        return -secondary_debt
