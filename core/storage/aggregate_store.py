"""
AggregateStore - 소유자 집계 저장소

고객/도매상/계좌/상품 행 생성·조회와 원자적 증가(IAtomicBalanceStore 구현).
증가는 SQLiteAdapter.transaction() 안에서 읽기-수정-쓰기로 수행하므로
같은 연결을 쓰는 코루틴 간 갱신 유실이 없다.
"""

import logging
from decimal import Decimal
from typing import Any
from uuid import uuid4

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.errors import StorageError
from core.types import AccountType

logger = logging.getLogger(__name__)


class AggregateStore:
    """소유자 집계 저장소

    Args:
        db: SQLiteAdapter 인스턴스

    사용 예시:
    ```python
    aggregates = AggregateStore(db)
    wid = await aggregates.create_wholesaler("Acme")
    debt, debt_usd = await aggregates.increment_debt(wid, Decimal("100"), Decimal("40"))
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    # -------------------------------------------------------------------------
    # 원자적 증가 (IAtomicBalanceStore)
    # -------------------------------------------------------------------------

    async def increment_balance(self, account_id: str, delta: Decimal) -> Decimal:
        """계좌 잔액 증가"""
        (balance,) = await self._increment("accounts", account_id, {"current_balance": delta})
        return balance

    async def increment_debt(
        self,
        wholesaler_id: str,
        delta_primary: Decimal,
        delta_secondary: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """도매상 부채 증가 (주/보조 통화 동시)"""
        debt, debt_usd = await self._increment(
            "wholesalers",
            wholesaler_id,
            {"debt": delta_primary, "debt_usd": delta_secondary},
        )
        return debt, debt_usd

    async def increment_customer_debt(self, customer_id: str, delta: Decimal) -> Decimal:
        """고객 부채 증가"""
        (debt,) = await self._increment("customers", customer_id, {"debt": delta})
        return debt

    async def increment_quantity(self, product_id: str, delta: Decimal) -> Decimal:
        """재고 수량 증가"""
        (quantity,) = await self._increment("products", product_id, {"quantity": delta})
        return quantity

    async def _increment(
        self,
        table: str,
        row_id: str,
        deltas: dict[str, Decimal],
    ) -> tuple[Decimal, ...]:
        """단일 행 여러 컬럼 원자적 증가

        Raises:
            StorageError: 행 없음 또는 쓰기 실패
        """
        columns = list(deltas)
        async with self.db.transaction():
            row = await self.db.fetchone(
                f"SELECT {', '.join(columns)} FROM {table} WHERE id = ?",
                (row_id,),
            )
            if row is None:
                raise StorageError(f"{table} row not found: {row_id}")

            new_values = tuple(
                Decimal(str(current)) + deltas[column]
                for column, current in zip(columns, row)
            )
            assignments = ", ".join(f"{column} = ?" for column in columns)
            await self.db.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                (*(str(v) for v in new_values), row_id),
            )

        logger.debug(
            f"Incremented {table}",
            extra={"id": row_id, "deltas": {c: str(d) for c, d in deltas.items()}},
        )
        return new_values

    # -------------------------------------------------------------------------
    # 생성
    # -------------------------------------------------------------------------

    async def create_customer(
        self,
        name: str,
        phone: str | None = None,
        address: str | None = None,
        notes: str | None = None,
        credit_limit: Decimal = Decimal("0"),
    ) -> str:
        """고객 생성 (부채 0)"""
        return await self._insert(
            "customers",
            {
                "name": name,
                "phone": phone,
                "address": address,
                "notes": notes,
                "credit_limit": str(credit_limit),
                "debt": "0",
            },
        )

    async def create_wholesaler(
        self,
        name: str,
        contact_person: str | None = None,
        phone: str | None = None,
        notes: str | None = None,
    ) -> str:
        """도매상 생성 (부채 0)"""
        return await self._insert(
            "wholesalers",
            {
                "name": name,
                "contact_person": contact_person,
                "phone": phone,
                "notes": notes,
                "debt": "0",
                "debt_usd": "0",
            },
        )

    async def create_account(
        self,
        name: str,
        account_type: AccountType = AccountType.CASH,
        bank_name: str | None = None,
        initial_balance: Decimal = Decimal("0"),
        is_default: bool = False,
    ) -> str:
        """계좌 생성

        current_balance 는 0 으로 시작. 개설 잔액은 PostingEngine.open_account 가
        opening 장부 행 + 증가로 반영한다.
        """
        return await self._insert(
            "accounts",
            {
                "name": name,
                "type": account_type.value,
                "bank_name": bank_name,
                "initial_balance": str(initial_balance),
                "current_balance": "0",
                "is_default": int(is_default),
            },
        )

    async def create_product(
        self,
        code: str,
        name: str,
        quantity: Decimal = Decimal("0"),
        purchase_price: Decimal = Decimal("0"),
        selling_price: Decimal = Decimal("0"),
        unit: str | None = None,
        supplier: str | None = None,
    ) -> str:
        """상품 생성"""
        return await self._insert(
            "products",
            {
                "code": code,
                "name": name,
                "quantity": str(quantity),
                "unit": unit,
                "purchase_price": str(purchase_price),
                "selling_price": str(selling_price),
                "supplier": supplier,
            },
        )

    async def create_expense_category(self, name: str) -> str:
        """지출 분류 생성"""
        return await self._insert("expense_categories", {"name": name})

    async def _insert(self, table: str, values: dict[str, Any]) -> str:
        row_id = str(uuid4())
        columns = ["id", *values]
        placeholders = ", ".join("?" for _ in columns)
        async with self.db.transaction():
            await self.db.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                (row_id, *values.values()),
            )
        logger.info(f"Created {table} row", extra={"id": row_id})
        return row_id

    async def delete_row(self, table: str, row_id: str) -> None:
        """단일 행 삭제 (생성 단계 보상용)"""
        async with self.db.transaction():
            cursor = await self.db.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            if cursor.rowcount == 0:
                raise StorageError(f"{table} row not found: {row_id}")
        logger.info(f"Deleted {table} row", extra={"id": row_id})

    # -------------------------------------------------------------------------
    # 상품 카드 갱신
    # -------------------------------------------------------------------------

    async def update_product_cost(
        self,
        product_id: str,
        purchase_price: Decimal,
        supplier: str | None,
        selling_price: Decimal | None = None,
    ) -> dict[str, Any]:
        """최근 매입가/공급처(/판매가) 갱신

        Returns:
            갱신 전 값 (보상 시 그대로 되돌리기용)
        """
        async with self.db.transaction():
            rows = await self.db.fetchall_dicts(
                "SELECT purchase_price, supplier, selling_price FROM products WHERE id = ?",
                (product_id,),
            )
            if not rows:
                raise StorageError(f"products row not found: {product_id}")
            previous = rows[0]

            await self.db.execute(
                "UPDATE products SET purchase_price = ?, supplier = ?, selling_price = ? "
                "WHERE id = ?",
                (
                    str(purchase_price),
                    supplier,
                    str(selling_price) if selling_price is not None else previous["selling_price"],
                    product_id,
                ),
            )
        return previous

    async def restore_product_cost(self, product_id: str, previous: dict[str, Any]) -> None:
        """update_product_cost 이전 값으로 복구"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                "UPDATE products SET purchase_price = ?, supplier = ?, selling_price = ? "
                "WHERE id = ?",
                (
                    previous["purchase_price"],
                    previous["supplier"],
                    previous["selling_price"],
                    product_id,
                ),
            )
            if cursor.rowcount == 0:
                raise StorageError(f"products row not found: {product_id}")

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get_row(self, table: str, row_id: str) -> dict[str, Any] | None:
        """단일 행 조회 (없으면 None)"""
        rows = await self.db.fetchall_dicts(
            f"SELECT * FROM {table} WHERE id = ?",
            (row_id,),
        )
        return rows[0] if rows else None

    async def get_customer_debt(self, customer_id: str) -> Decimal:
        return (await self._require_decimals("customers", customer_id, "debt"))[0]

    async def get_wholesaler_debt(self, wholesaler_id: str) -> tuple[Decimal, Decimal]:
        """(주 통화 부채, 보조 통화 부채)"""
        debt, debt_usd = await self._require_decimals(
            "wholesalers", wholesaler_id, "debt", "debt_usd"
        )
        return debt, debt_usd

    async def get_account_balance(self, account_id: str) -> Decimal:
        return (await self._require_decimals("accounts", account_id, "current_balance"))[0]

    async def get_product_quantity(self, product_id: str) -> Decimal:
        return (await self._require_decimals("products", product_id, "quantity"))[0]

    async def get_name(self, table: str, row_id: str) -> str | None:
        row = await self.db.fetchone(f"SELECT name FROM {table} WHERE id = ?", (row_id,))
        return row[0] if row else None

    async def _require_decimals(self, table: str, row_id: str, *columns: str) -> list[Decimal]:
        row = await self.db.fetchone(
            f"SELECT {', '.join(columns)} FROM {table} WHERE id = ?",
            (row_id,),
        )
        if row is None:
            raise StorageError(f"{table} row not found: {row_id}")
        return [Decimal(str(value)) for value in row]
