"""
타입 정의 모듈

Enum, Dataclass 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from enum import Enum


class LedgerKind(str, Enum):
    """장부 종류 (소유자 기준)"""

    CUSTOMER = "customer"
    WHOLESALER = "wholesaler"
    ACCOUNT = "account"


class AccountType(str, Enum):
    """현금/은행 계좌 유형"""

    CASH = "cash"
    BANK = "bank"
    POS = "pos"
    CREDIT_CARD = "credit_card"
    OTHER = "other"


class PriceCurrency(str, Enum):
    """매입 단가 통화"""

    TRY = "TRY"
    USD = "USD"


class CustomerTxType(str, Enum):
    """고객 장부 거래 유형

    부호 규칙: 부채 증가 = 양수
    """

    CHARGE = "charge"  # 외상 (부채 증가)
    PAYMENT = "payment"  # 수금 (부채 감소)
    ADJUSTMENT = "adjustment"  # 수동 조정 (부호 그대로)


class WholesalerTxType(str, Enum):
    """도매상 장부 거래 유형

    부호 규칙: 부채 증가 = 양수
    """

    PURCHASE = "purchase"  # 매입 전표
    STOCK_ENTRY = "stock_entry"  # 전표 없는 단독 입고
    PAYMENT = "payment"  # 지급
    RETURN = "return"  # 반품
    ADJUSTMENT = "adjustment"  # 수동 조정 (보조 통화 정리 포함)


class AccountTxType(str, Enum):
    """계좌 장부 거래 유형

    부호 규칙: 유입 = 양수
    """

    OPENING = "opening"  # 개설 잔액
    INCOME = "income"  # 기타 수입
    EXPENSE = "expense"  # 지출
    CUSTOMER_PAYMENT = "customer_payment"  # 고객 수금 유입
    SUPPLIER_PAYMENT = "supplier_payment"  # 도매상 지급 유출
    TRANSFER_IN = "transfer_in"  # 계좌 이체 입금
    TRANSFER_OUT = "transfer_out"  # 계좌 이체 출금
    ADJUSTMENT = "adjustment"  # 수동 조정 (부호 그대로)


class SecondaryAnomalyPolicy(str, Enum):
    """주 통화 부채 <= 0 이면서 보조 통화 부채 > 0 인 비정상 상태 처리 방식"""

    CLEAR = "clear"  # 보조 통화 부채 전액 정리
    REJECT = "reject"  # 지급 거부 (ValidationError)
    KEEP = "keep"  # 보조 통화 부채 유지


class SagaState(str, Enum):
    """Saga 실행 상태

    전이 규칙:
    - PENDING → RUNNING: 실행 시작
    - RUNNING → COMPLETED: 모든 단계 성공
    - RUNNING → COMPENSATING: 단계 실패
    - COMPENSATING → COMPENSATED: 보상 전부 성공
    - COMPENSATING → CRITICAL: 보상 일부 실패 (수동 정합 필요)
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    COMPENSATING = "COMPENSATING"
    COMPENSATED = "COMPENSATED"
    CRITICAL = "CRITICAL"
