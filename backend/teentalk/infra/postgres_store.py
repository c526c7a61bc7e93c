"""PostgreSQL-backed document store using asyncpg and JSONB rows."""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Mapping, Sequence, TypeVar

import asyncpg

from teentalk.infra.docstore import (
    BufferedTransaction,
    Document,
    DocumentStore,
    FieldFilter,
    OrderBy,
    Transaction,
    apply_query,
    resolve_write,
)
from teentalk.moderation.domain.errors import NotFound, TransactionConflict

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    data JSONB NOT NULL,
    version BIGINT NOT NULL DEFAULT 1,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS documents_data_gin ON documents USING GIN (data jsonb_path_ops);
"""

_CONFLICT_ERRORS = (
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
)


def _decode(raw: Any) -> Document:
    if isinstance(raw, (bytes, str)):
        return json.loads(raw)
    return dict(raw)


async def _upsert(conn: asyncpg.Connection, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
    await conn.execute(
        """
        INSERT INTO documents (collection, doc_id, data)
        VALUES ($1, $2, $3::jsonb)
        ON CONFLICT (collection, doc_id)
        DO UPDATE SET data = EXCLUDED.data, version = documents.version + 1, updated_at = now()
        """,
        collection,
        doc_id,
        json.dumps(dict(data)),
    )


class PostgresDocumentStore(DocumentStore):
    """Persists documents in a single JSONB table.

    Transactions run at SERIALIZABLE isolation and lock every row they read, so
    concurrent writers to the same document serialize while writers to other
    documents proceed independently.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(SCHEMA)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        row = await self._pool.fetchrow(
            "SELECT data FROM documents WHERE collection = $1 AND doc_id = $2",
            collection,
            doc_id,
        )
        if row is None:
            return None
        return _decode(row["data"])

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        async with self._pool.acquire() as conn:
            await _upsert(conn, collection, doc_id, data)

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        status = await self._pool.execute(
            """
            UPDATE documents
            SET data = data || $3::jsonb, version = version + 1, updated_at = now()
            WHERE collection = $1 AND doc_id = $2
            """,
            collection,
            doc_id,
            json.dumps(dict(fields)),
        )
        if status.endswith(" 0"):
            raise NotFound(f"{collection}/{doc_id} not found")

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._pool.execute(
            "DELETE FROM documents WHERE collection = $1 AND doc_id = $2",
            collection,
            doc_id,
        )

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Document]:
        # equality filters use the GIN index; ranges and ordering run in Python
        equality = {flt.field: flt.value for flt in filters if flt.op == "=="}
        rows = await self._pool.fetch(
            "SELECT data FROM documents WHERE collection = $1 AND data @> $2::jsonb",
            collection,
            json.dumps(equality),
        )
        remaining = [flt for flt in filters if flt.op != "=="]
        return apply_query((_decode(row["data"]) for row in rows), remaining, order_by, limit, offset)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async with self._pool.acquire() as conn:
            try:
                async with conn.transaction(isolation="serializable"):

                    async def reader(collection: str, doc_id: str) -> tuple[int, Document | None]:
                        row = await conn.fetchrow(
                            """
                            SELECT data, version FROM documents
                            WHERE collection = $1 AND doc_id = $2
                            FOR UPDATE
                            """,
                            collection,
                            doc_id,
                        )
                        if row is None:
                            return 0, None
                        return int(row["version"]), _decode(row["data"])

                    tx = BufferedTransaction(reader)
                    result = await fn(tx)
                    for (collection, doc_id), pending in tx.writes.items():
                        _, current = await reader(collection, doc_id)
                        data = resolve_write(current, pending)
                        if data is None:
                            await conn.execute(
                                "DELETE FROM documents WHERE collection = $1 AND doc_id = $2",
                                collection,
                                doc_id,
                            )
                        else:
                            await _upsert(conn, collection, doc_id, data)
                    return result
            except _CONFLICT_ERRORS as exc:
                raise TransactionConflict(str(exc)) from exc
