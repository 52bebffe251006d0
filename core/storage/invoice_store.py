"""
InvoiceStore - 매입 전표 저장소

purchase_invoices 단일 테이블 저장/조회/삭제.
라인은 items 컬럼에 JSON 으로 저장.
"""

import json
import logging
from decimal import Decimal
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.invoice import InvoiceLine, PurchaseInvoice
from core.errors import StorageError
from core.ledger.entry import format_ts, parse_ts

logger = logging.getLogger(__name__)


class InvoiceStore:
    """매입 전표 저장소

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def insert(self, invoice: PurchaseInvoice) -> None:
        """전표 저장 (삭제 보상 시 같은 id 로 재삽입에도 사용)"""
        async with self.db.transaction():
            await self.db.execute(
                """
                INSERT INTO purchase_invoices (id, ts, wholesaler_id, items, total_try, notes)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    invoice.invoice_id,
                    format_ts(invoice.ts),
                    invoice.wholesaler_id,
                    invoice.items_json(),
                    str(invoice.total_primary),
                    invoice.notes,
                ),
            )
        logger.debug(f"Inserted purchase invoice: {invoice.invoice_id}")

    async def get(self, invoice_id: str) -> PurchaseInvoice | None:
        """id 로 전표 조회"""
        rows = await self.db.fetchall_dicts(
            "SELECT * FROM purchase_invoices WHERE id = ?",
            (invoice_id,),
        )
        return self._from_row(rows[0]) if rows else None

    async def get_total_primary(self, invoice_id: str) -> Decimal | None:
        """저장된 주 통화 합계 (라인 재계산이 아닌 기록값)"""
        row = await self.db.fetchone(
            "SELECT total_try FROM purchase_invoices WHERE id = ?",
            (invoice_id,),
        )
        return Decimal(str(row[0])) if row else None

    async def delete(self, invoice_id: str) -> None:
        """전표 삭제"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                "DELETE FROM purchase_invoices WHERE id = ?",
                (invoice_id,),
            )
            if cursor.rowcount == 0:
                raise StorageError(f"purchase_invoices row not found: {invoice_id}")
        logger.debug(f"Deleted purchase invoice: {invoice_id}")

    @staticmethod
    def _from_row(row: dict[str, Any]) -> PurchaseInvoice:
        items = json.loads(row["items"]) if row.get("items") else []
        return PurchaseInvoice(
            invoice_id=row["id"],
            wholesaler_id=row["wholesaler_id"],
            ts=parse_ts(row["ts"]),
            lines=[InvoiceLine.from_dict(item) for item in items],
            notes=row.get("notes"),
        )
