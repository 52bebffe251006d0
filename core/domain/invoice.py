"""
매입 전표 도메인 모델

전표 하나 = 도매상 장부 purchase 행 하나 + 상품별 재고 증가.
보조 통화(USD) 합계는 별도 컬럼 없이 notes 의 "Total USD: x.xx" 라인으로 남긴다.
삭제 시에는 notes 라인을 먼저 보고, 없으면 USD 라인 합계로 재구성한다.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from core.constants import Defaults
from core.errors import ValidationError
from core.types import PriceCurrency


def quantize_money(value: Decimal) -> Decimal:
    """소수 2자리 반올림"""
    return value.quantize(Defaults.MONEY_QUANT, rounding=ROUND_HALF_UP)


_NOTE_PATTERN = re.compile(
    rf"^\s*{re.escape(Defaults.SECONDARY_TOTAL_NOTE_PREFIX)}\s*(?P<amount>-?[0-9]+(?:\.[0-9]+)?)\s*$",
    re.MULTILINE,
)


@dataclass
class InvoiceLine:
    """전표 라인

    Attributes:
        product_id: 상품 id (None 이면 재고 반영 없음)
        name: 품목명
        quantity: 수량 (> 0)
        currency: 단가 통화
        unit_price: 단가 (단가 통화 기준, >= 0)
        exchange_rate: 보조 통화 라인의 주 통화 환율 (주 통화 라인은 None)
        selling_price: 상품 카드에 반영할 판매가 (선택)
    """

    product_id: str | None
    name: str
    quantity: Decimal
    currency: PriceCurrency
    unit_price: Decimal
    exchange_rate: Decimal | None = None
    selling_price: Decimal | None = None

    @property
    def is_secondary(self) -> bool:
        return self.currency == PriceCurrency.USD

    @property
    def unit_cost_primary(self) -> Decimal:
        """주 통화 환산 단가 (상품 매입가로 기록)"""
        if self.is_secondary:
            return self.unit_price * (self.exchange_rate or Decimal("1"))
        return self.unit_price

    @property
    def line_total_primary(self) -> Decimal:
        """주 통화 라인 합계"""
        return quantize_money(self.quantity * self.unit_cost_primary)

    @property
    def line_total_secondary(self) -> Decimal:
        """보조 통화 라인 합계 (주 통화 라인은 0)"""
        if not self.is_secondary:
            return Decimal("0")
        return self.quantity * self.unit_price

    def validate(self) -> None:
        """라인 입력 검증

        Raises:
            ValidationError: 수량 <= 0, 단가 < 0, 보조 통화 환율 누락
        """
        if self.quantity <= 0:
            raise ValidationError(f"Line '{self.name}': quantity must be positive")
        if self.unit_price < 0:
            raise ValidationError(f"Line '{self.name}': unit price must not be negative")
        if self.is_secondary and (self.exchange_rate is None or self.exchange_rate <= 0):
            raise ValidationError(
                f"Line '{self.name}': exchange rate required for {self.currency.value} price"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": str(self.quantity),
            "currency": self.currency.value,
            "unit_price": str(self.unit_price),
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "line_total_primary": str(self.line_total_primary),
            "selling_price": str(self.selling_price) if self.selling_price is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InvoiceLine:
        rate = data.get("exchange_rate")
        selling = data.get("selling_price")
        return cls(
            product_id=data.get("product_id"),
            name=data.get("name") or "",
            quantity=Decimal(str(data["quantity"])),
            currency=PriceCurrency(data.get("currency") or PriceCurrency.TRY.value),
            unit_price=Decimal(str(data["unit_price"])),
            exchange_rate=Decimal(str(rate)) if rate is not None else None,
            selling_price=Decimal(str(selling)) if selling is not None else None,
        )


@dataclass
class PurchaseInvoice:
    """매입 전표

    total_primary 는 라인 합계에서 계산. notes 는 저장 시 보조 통화 합계 라인이 붙는다.
    """

    invoice_id: str
    wholesaler_id: str
    ts: datetime
    lines: list[InvoiceLine] = field(default_factory=list)
    notes: str | None = None

    @classmethod
    def new(
        cls,
        wholesaler_id: str,
        lines: list[InvoiceLine],
        ts: datetime,
        notes: str | None = None,
    ) -> PurchaseInvoice:
        """새 전표 생성 (id 부여, 보조 통화 합계 라인 추가)"""
        invoice = cls(
            invoice_id=str(uuid4()),
            wholesaler_id=wholesaler_id,
            ts=ts,
            lines=lines,
        )
        invoice.notes = build_notes(notes, invoice.total_secondary)
        return invoice

    @property
    def total_primary(self) -> Decimal:
        return sum((line.line_total_primary for line in self.lines), Decimal("0"))

    @property
    def total_secondary(self) -> Decimal:
        return secondary_from_lines(self.lines)

    def validate(self) -> None:
        """전표 입력 검증

        Raises:
            ValidationError: 라인 없음 또는 라인 검증 실패
        """
        if not self.lines:
            raise ValidationError("Purchase invoice needs at least one line")
        for line in self.lines:
            line.validate()

    def items_json(self) -> str:
        return json.dumps([line.to_dict() for line in self.lines], ensure_ascii=False)


def build_notes(notes: str | None, total_secondary: Decimal) -> str | None:
    """사용자 메모 + 보조 통화 합계 라인"""
    if total_secondary <= 0:
        return notes
    line = f"{Defaults.SECONDARY_TOTAL_NOTE_PREFIX} {quantize_money(total_secondary)}"
    return f"{notes}\n{line}" if notes else line


def secondary_from_lines(lines: list[InvoiceLine]) -> Decimal:
    """보조 통화 라인 합계 (quantity * unit_price), 소수 2자리"""
    total = sum((line.line_total_secondary for line in lines), Decimal("0"))
    return quantize_money(total)


def secondary_from_note(notes: str | None) -> Decimal | None:
    """notes 의 "Total USD: x" 라인 값 (없거나 파싱 실패면 None)

    여러 줄이면 마지막 라인 사용.
    """
    if not notes:
        return None
    matches = _NOTE_PATTERN.findall(notes)
    if not matches:
        return None
    try:
        return quantize_money(Decimal(matches[-1]))
    except InvalidOperation:
        return None


def reconstruct_secondary_total(notes: str | None, lines: list[InvoiceLine]) -> Decimal:
    """삭제 시 되돌릴 보조 통화 합계

    notes 라인 우선, 없으면 보조 통화 라인 합계.
    유효한 전표에서는 두 경로의 값이 같다.
    """
    from_note = secondary_from_note(notes)
    if from_note is not None:
        return from_note
    return secondary_from_lines(lines)
