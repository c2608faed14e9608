import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Sequence

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockview.models import TableRow

logger = logging.getLogger(__name__)

ACCOUNTS = "accounts"
STOCKS = "stocks"
VIEWS = "views"
VIEW_ACCOUNTS = "view_accounts"
VIEW_STOCKS = "view_stocks"
SCRAPE_SESSIONS = "scrape_sessions"
CREDENTIALS = "credentials"

Row = Dict[str, Any]


def dump_rows(models: Iterable[BaseModel]) -> List[Row]:
    """Serialize models into JSON-safe rows (decimals as strings, ISO timestamps)."""
    return [model.model_dump(mode="json") for model in models]


class TableTransaction:
    """
    Handle returned by RecordStore.locked().

    Reads see this transaction's own staged writes. Writes are staged and only
    flushed, together and atomically, when the locked block exits cleanly.
    """

    def __init__(self, store: "RecordStore", tables: Sequence[str]):
        self._store = store
        self._tables = frozenset(tables)
        self.pending: Dict[str, List[Row]] = {}

    async def list_rows(self, table: str) -> List[Row]:
        if table in self.pending:
            return [dict(row) for row in self.pending[table]]
        return await self._store.list_rows(table)

    def replace_rows(self, table: str, rows: Iterable[Row]) -> None:
        if table not in self._tables:
            raise RuntimeError(f"Table '{table}' is not locked by this transaction")
        self.pending[table] = [dict(row) for row in rows]


class RecordStore:
    """
    Named logical tables with read-all / replace-all semantics.

    Every read-modify-write must hold the table's lock; multi-table writers
    take their locks in sorted order so two of them cannot deadlock.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, table: str) -> asyncio.Lock:
        lock = self._locks.get(table)
        if lock is None:
            lock = self._locks[table] = asyncio.Lock()
        return lock

    async def list_rows(self, table: str) -> List[Row]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(TableRow.payload)
                .where(TableRow.table_name == table)
                .order_by(TableRow.position)
            )
            return [dict(payload) for payload in result.scalars().all()]

    async def replace_rows(self, table: str, rows: Iterable[Row]) -> None:
        async with self.locked(table) as tx:
            tx.replace_rows(table, rows)

    async def update_rows(self, table: str, fn: Callable[[List[Row]], List[Row]]) -> List[Row]:
        """Read the table, apply fn and write the result back under the table lock."""
        async with self.locked(table) as tx:
            rows = await tx.list_rows(table)
            new_rows = fn(rows)
            tx.replace_rows(table, new_rows)
        return new_rows

    @asynccontextmanager
    async def locked(self, *tables: str) -> AsyncIterator[TableTransaction]:
        names = sorted(set(tables))
        async with AsyncExitStack() as stack:
            for name in names:
                await stack.enter_async_context(self._lock_for(name))
            tx = TableTransaction(self, names)
            yield tx
            if tx.pending:
                await self._write(tx.pending)

    async def _write(self, changes: Dict[str, List[Row]]) -> None:
        async with self._session_factory() as db:
            async with db.begin():
                for table, rows in changes.items():
                    await db.execute(delete(TableRow).where(TableRow.table_name == table))
                    db.add_all(
                        TableRow(table_name=table, position=position, payload=row)
                        for position, row in enumerate(rows)
                    )
        logger.debug(
            "Wrote tables: " + ", ".join(f"{table}={len(rows)}" for table, rows in changes.items())
        )
