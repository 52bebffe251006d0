"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
외래 키 제약 활성화 (복원 시 삭제/삽입 순서가 의미를 가짐).

하나의 연결을 여러 코루틴이 공유하므로 쓰기 트랜잭션은 asyncio.Lock 으로 직렬화.
읽기-수정-쓰기(잔액 증가)를 트랜잭션 안에서 하면 원자적 증가로 동작한다.
"""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from core.constants import Paths
from core.errors import StorageError

logger = logging.getLogger(__name__)


def get_db_path(path: Path | str | None = None) -> Path:
    """DB 경로 반환

    Args:
        path: 설정에서 지정한 경로 (None이면 기본 경로)

    Returns:
        DB 파일 경로 (Path 타입)
    """
    if path is None:
        return Paths.DEFAULT_DB
    return Path(path)


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로 (":memory:" 허용)
        readonly: 읽기 전용 여부

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    if db_path_str != ":memory:":
        # 디렉토리가 없으면 생성
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(f"file:{db_path_str}?mode=ro", uri=True)
    else:
        conn = await aiosqlite.connect(db_path_str)

    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공.
    드라이버 예외는 StorageError 로 변환.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부

    사용 예시:
    ```python
    async with SQLiteAdapter(db_path) as db:
        async with db.transaction():
            await db.execute("UPDATE ...")
    ```
    """

    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return
        try:
            self._conn = await create_connection(self.db_path, self.readonly)
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"DB 연결 실패: {e}") from e

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("Not connected to database")
        return self._conn

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        conn = self._require_conn()
        try:
            if parameters:
                return await conn.execute(sql, parameters)
            return await conn.execute(sql)
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"SQL 실행 실패: {e}") from e

    async def executemany(
        self,
        sql: str,
        parameters: list[tuple[Any, ...]],
    ) -> aiosqlite.Cursor:
        """SQL 다중 실행"""
        conn = self._require_conn()
        try:
            return await conn.executemany(sql, parameters)
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"SQL 다중 실행 실패: {e}") from e

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchone()

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회"""
        cursor = await self.execute(sql, parameters)
        return list(await cursor.fetchall())

    async def fetchall_dicts(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[dict[str, Any]]:
        """전체 행을 컬럼명 dict 로 조회"""
        cursor = await self.execute(sql, parameters)
        columns = [d[0] for d in cursor.description or ()]
        rows = await cursor.fetchall()
        return [dict(zip(columns, row)) for row in rows]

    async def commit(self) -> None:
        """커밋"""
        if self._conn is not None:
            await self._conn.commit()

    async def rollback(self) -> None:
        """롤백"""
        if self._conn is not None:
            await self._conn.rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        성공 시 자동 커밋, 예외 시 자동 롤백.
        같은 연결을 쓰는 다른 코루틴의 트랜잭션과 섞이지 않도록 잠금 보유.
        중첩 호출 금지 (asyncio.Lock 은 재진입 불가).

        사용 예시:
        ```python
        async with adapter.transaction():
            row = await adapter.fetchone("SELECT balance ...")
            await adapter.execute("UPDATE ... SET balance = ?", (new,))
            # 성공 시 자동 커밋
        ```
        """
        conn = self._require_conn()

        async with self._write_lock:
            try:
                yield conn
                await conn.commit()
            except (aiosqlite.Error, sqlite3.Error) as e:
                await conn.rollback()
                raise StorageError(f"트랜잭션 실패: {e}") from e
            except BaseException:
                await conn.rollback()
                raise

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    async def get_table_info(self, table_name: str) -> list[dict[str, Any]]:
        """테이블 정보 조회"""
        rows = await self.fetchall(f"PRAGMA table_info({table_name})")

        columns = []
        for row in rows:
            columns.append({
                "cid": row[0],
                "name": row[1],
                "type": row[2],
                "notnull": bool(row[3]),
                "default_value": row[4],
                "pk": bool(row[5]),
            })

        return columns

    async def get_column_names(self, table_name: str) -> list[str]:
        """테이블 컬럼명 목록"""
        return [c["name"] for c in await self.get_table_info(table_name)]

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """스키마 초기화 (테이블 생성)

    Args:
        adapter: 연결된 SQLiteAdapter
    """
    from core.ledger.schema import init_backoffice_schema

    await init_backoffice_schema(adapter)
