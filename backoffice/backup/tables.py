"""
백업 대상 테이블 정의

테이블별 외래 키 모양 컬럼과 의존 순서.
순서는 한 번만 정의하고 삭제(역순)/삽입(정순) 양쪽이 공유한다.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TableSpec:
    """스냅샷 테이블

    Attributes:
        name: 테이블 이름 (스냅샷 필드명과 동일)
        references: 컬럼 → 참조 테이블 (null 이 아니면 참조 테이블 id 여야 함)
        transient: 조회 시 조인으로 붙는 필드 (내보내기/복원 시 제거)
    """

    name: str
    references: dict[str, str] = field(default_factory=dict)
    transient: tuple[str, ...] = ()


# 독립 → 종속 순서
TABLES: tuple[TableSpec, ...] = (
    TableSpec("customers"),
    TableSpec("accounts"),
    TableSpec("expense_categories"),
    TableSpec("products"),
    TableSpec("wholesalers"),
    TableSpec(
        "needs",
        references={"product_id": "products", "customer_id": "customers"},
        transient=("products", "customers"),
    ),
    TableSpec(
        "services",
        references={"customer_id": "customers"},
        transient=("customers", "customer_name"),
    ),
    TableSpec(
        "sales",
        references={"customer_id": "customers", "related_service_id": "services"},
        transient=("customers", "customer_name"),
    ),
    TableSpec(
        "purchase_invoices",
        references={"wholesaler_id": "wholesalers"},
        transient=("wholesalers", "wholesaler_name"),
    ),
    TableSpec(
        "customer_transactions",
        references={"customer_id": "customers"},
        transient=("customers",),
    ),
    TableSpec(
        "wholesaler_transactions",
        references={
            "wholesaler_id": "wholesalers",
            "related_purchase_invoice_id": "purchase_invoices",
            # DB 외래 키 없음 (순환 참조). 사전 검사 대상에는 포함
            "related_account_tx_id": "account_transactions",
        },
        transient=("wholesalers",),
    ),
    TableSpec(
        "account_transactions",
        references={
            "account_id": "accounts",
            "related_sale_id": "sales",
            "related_service_id": "services",
            "related_customer_tx_id": "customer_transactions",
            "related_wholesaler_transaction_id": "wholesaler_transactions",
            "expense_category_id": "expense_categories",
        },
        transient=("accounts", "expense_categories"),
    ),
)

TABLE_NAMES: tuple[str, ...] = tuple(t.name for t in TABLES)
TABLES_BY_NAME: dict[str, TableSpec] = {t.name: t for t in TABLES}

# 삽입 순서 (독립 → 종속), 삭제 순서 (종속 → 독립)
INSERT_ORDER: tuple[str, ...] = TABLE_NAMES
DELETE_ORDER: tuple[str, ...] = tuple(reversed(TABLE_NAMES))


def _check_order() -> None:
    """참조 대상 테이블이 모두 정의되어 있는지 확인"""
    position = {name: i for i, name in enumerate(TABLE_NAMES)}
    for spec in TABLES:
        for column, parent in spec.references.items():
            if parent not in position:
                raise RuntimeError(f"{spec.name}.{column} references unknown table {parent}")


_check_order()


def is_forward_reference(table: str, parent: str) -> bool:
    """삽입 순서상 뒤에 오는 테이블을 가리키는 참조인지"""
    return INSERT_ORDER.index(parent) > INSERT_ORDER.index(table)


def strip_transient(spec: TableSpec, row: dict[str, Any]) -> dict[str, Any]:
    """조인으로 붙은 필드 제거 (정의된 필드 + 중첩 객체 값)"""
    return {
        key: value for key, value in row.items()
        if key not in spec.transient and not isinstance(value, dict)
    }
