"""
pytest 공통 fixture 정의

스키마가 적용된 in-memory DB 와 엔진/저장소 fixture
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from backoffice.posting.engine import PostingEngine
from backoffice.posting.requests import OpenAccountRequest
from core.config.loader import Settings
from core.storage.aggregate_store import AggregateStore


@pytest.fixture(autouse=True)
def reset_settings() -> None:
    """Settings 싱글턴 초기화 (테스트 간 설정 공유 방지)"""
    Settings.reset()
    yield
    Settings.reset()


@pytest_asyncio.fixture
async def db() -> SQLiteAdapter:
    """스키마가 적용된 in-memory DB"""
    adapter = SQLiteAdapter(":memory:")
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture
async def engine(db: SQLiteAdapter) -> PostingEngine:
    return PostingEngine(db)


@pytest_asyncio.fixture
async def aggregates(db: SQLiteAdapter) -> AggregateStore:
    return AggregateStore(db)


@pytest_asyncio.fixture
async def customer_id(aggregates: AggregateStore) -> str:
    return await aggregates.create_customer("Ayse Yilmaz", phone="555-0101")


@pytest_asyncio.fixture
async def wholesaler_id(aggregates: AggregateStore) -> str:
    return await aggregates.create_wholesaler("Kadikoy Toptan", contact_person="Mehmet")


@pytest_asyncio.fixture
async def product_id(aggregates: AggregateStore) -> str:
    return await aggregates.create_product("P-100", "Screen protector", unit="pcs")


@pytest_asyncio.fixture
async def account_id(engine: PostingEngine) -> str:
    """개설 잔액 1000 인 현금 계좌"""
    result = await engine.open_account(
        OpenAccountRequest(name="Cash register", initial_balance=Decimal("1000"))
    )
    return result.entries["account"]


@pytest.fixture
def fail_once(monkeypatch: pytest.MonkeyPatch):
    """다음 호출 한 번만 RuntimeError 로 실패하도록 교체

    when 이 주어지면 when(*args) 가 참인 첫 호출만 실패.
    """

    def _patch(target: object, name: str, when=None) -> None:
        original = getattr(target, name)
        state = {"failed": False}

        async def wrapper(*args, **kwargs):
            if not state["failed"] and (when is None or when(*args)):
                state["failed"] = True
                raise RuntimeError(f"{name} failed")
            return await original(*args, **kwargs)

        monkeypatch.setattr(target, name, wrapper)

    return _patch
