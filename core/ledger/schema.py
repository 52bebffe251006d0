"""
백오피스 스키마 초기화

시작 시 자동으로 엔티티/장부 테이블 생성.
CREATE IF NOT EXISTS 패턴으로 안전하게 동작.

순환 참조 주의:
- account_transactions.related_wholesaler_transaction_id → wholesaler_transactions (FK)
- wholesaler_transactions.related_account_tx_id → account_transactions (FK 없음, 링크 컬럼)
복원 시 wholesaler_transactions 를 먼저 넣을 수 있도록 한쪽만 FK 로 건다.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


_TABLES: list[str] = [
    # 독립 테이블
    """
    CREATE TABLE IF NOT EXISTS customers (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        name             TEXT NOT NULL,
        phone            TEXT,
        address          TEXT,
        notes            TEXT,
        credit_limit     TEXT NOT NULL DEFAULT '0',
        debt             TEXT NOT NULL DEFAULT '0'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        name             TEXT NOT NULL,
        type             TEXT NOT NULL DEFAULT 'cash',
        bank_name        TEXT,
        initial_balance  TEXT NOT NULL DEFAULT '0',
        current_balance  TEXT NOT NULL DEFAULT '0',
        is_default       INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS expense_categories (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        name             TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        code             TEXT NOT NULL,
        name             TEXT NOT NULL,
        quantity         TEXT NOT NULL DEFAULT '0',
        unit             TEXT,
        purchase_price   TEXT NOT NULL DEFAULT '0',
        selling_price    TEXT NOT NULL DEFAULT '0',
        supplier         TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS wholesalers (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        name             TEXT NOT NULL,
        contact_person   TEXT,
        phone            TEXT,
        notes            TEXT,
        debt             TEXT NOT NULL DEFAULT '0',
        debt_usd         TEXT NOT NULL DEFAULT '0'
    )
    """,
    # 1차 종속 테이블
    """
    CREATE TABLE IF NOT EXISTS needs (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        description      TEXT NOT NULL,
        quantity         TEXT NOT NULL DEFAULT '1',
        product_id       TEXT REFERENCES products(id) ON DELETE SET NULL,
        customer_id      TEXT REFERENCES customers(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS services (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        customer_id      TEXT REFERENCES customers(id) ON DELETE SET NULL,
        device_type      TEXT NOT NULL,
        problem          TEXT,
        status           TEXT NOT NULL DEFAULT 'pending',
        cost             TEXT NOT NULL DEFAULT '0'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sales (
        id                 TEXT PRIMARY KEY,
        created_at         TEXT NOT NULL DEFAULT (datetime('now')),
        customer_id        TEXT REFERENCES customers(id) ON DELETE SET NULL,
        items              TEXT NOT NULL DEFAULT '[]',
        total              TEXT NOT NULL DEFAULT '0',
        net_total          TEXT NOT NULL DEFAULT '0',
        related_service_id TEXT REFERENCES services(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS purchase_invoices (
        id               TEXT PRIMARY KEY,
        created_at       TEXT NOT NULL DEFAULT (datetime('now')),
        ts               TEXT NOT NULL,
        wholesaler_id    TEXT REFERENCES wholesalers(id) ON DELETE SET NULL,
        items            TEXT NOT NULL DEFAULT '[]',
        total_try        TEXT NOT NULL DEFAULT '0',
        notes            TEXT
    )
    """,
    # 장부 테이블
    """
    CREATE TABLE IF NOT EXISTS customer_transactions (
        id               TEXT PRIMARY KEY,
        customer_id      TEXT NOT NULL REFERENCES customers(id) ON DELETE CASCADE,
        ts               TEXT NOT NULL,
        type             TEXT NOT NULL,
        amount           TEXT NOT NULL,
        balance          TEXT NOT NULL DEFAULT '0',
        description      TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS wholesaler_transactions (
        id                          TEXT PRIMARY KEY,
        wholesaler_id               TEXT NOT NULL REFERENCES wholesalers(id) ON DELETE CASCADE,
        ts                          TEXT NOT NULL,
        type                        TEXT NOT NULL,
        amount                      TEXT NOT NULL,
        balance_after               TEXT NOT NULL DEFAULT '0',
        description                 TEXT,
        related_account_tx_id       TEXT,
        related_purchase_invoice_id TEXT REFERENCES purchase_invoices(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS account_transactions (
        id                                TEXT PRIMARY KEY,
        account_id                        TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        ts                                TEXT NOT NULL,
        type                              TEXT NOT NULL,
        amount                            TEXT NOT NULL,
        balance_after                     TEXT NOT NULL DEFAULT '0',
        description                       TEXT,
        related_sale_id                   TEXT REFERENCES sales(id) ON DELETE SET NULL,
        related_service_id                TEXT REFERENCES services(id) ON DELETE SET NULL,
        related_customer_tx_id            TEXT REFERENCES customer_transactions(id) ON DELETE SET NULL,
        related_wholesaler_transaction_id TEXT REFERENCES wholesaler_transactions(id) ON DELETE SET NULL,
        transfer_pair_id                  TEXT,
        expense_category_id               TEXT REFERENCES expense_categories(id) ON DELETE SET NULL
    )
    """,
]

_INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS ix_customer_tx_owner ON customer_transactions(customer_id, ts, id)",
    "CREATE INDEX IF NOT EXISTS ix_wholesaler_tx_owner ON wholesaler_transactions(wholesaler_id, ts, id)",
    "CREATE INDEX IF NOT EXISTS ix_wholesaler_tx_invoice ON wholesaler_transactions(related_purchase_invoice_id)",
    "CREATE INDEX IF NOT EXISTS ix_account_tx_owner ON account_transactions(account_id, ts, id)",
    "CREATE INDEX IF NOT EXISTS ix_account_tx_customer_tx ON account_transactions(related_customer_tx_id)",
    "CREATE INDEX IF NOT EXISTS ix_account_tx_wholesaler_tx ON account_transactions(related_wholesaler_transaction_id)",
]


async def init_backoffice_schema(db: "SQLiteAdapter") -> None:
    """백오피스 스키마 초기화 (테이블 + 인덱스)

    이미 존재하는 경우 안전하게 건너뜀 (IF NOT EXISTS).

    Args:
        db: SQLiteAdapter 인스턴스
    """
    async with db.transaction():
        for ddl in _TABLES:
            await db.execute(ddl)
        for ddl in _INDEXES:
            await db.execute(ddl)
    logger.info("백오피스 스키마 초기화 완료")
