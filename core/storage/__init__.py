"""
스토리지 모듈

소유자 집계(잔액/부채/재고) 저장소와 매입 전표 저장소
"""

from core.storage.aggregate_store import AggregateStore
from core.storage.invoice_store import InvoiceStore

__all__ = [
    "AggregateStore",
    "InvoiceStore",
]
