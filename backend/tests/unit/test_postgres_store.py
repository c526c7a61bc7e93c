from __future__ import annotations

import json
from contextlib import asynccontextmanager

import asyncpg
import pytest

from teentalk.infra.docstore import OrderBy, where
from teentalk.infra.postgres_store import PostgresDocumentStore
from teentalk.moderation.domain.errors import TransactionConflict


class FakeConnection:
    def __init__(self, rows: dict[tuple[str, str], dict], *, fail_with: Exception | None = None) -> None:
        self.rows = rows
        self.fail_with = fail_with
        self.executed: list[tuple[str, tuple]] = []
        self.isolation: str | None = None

    @asynccontextmanager
    async def transaction(self, isolation: str = "read_committed"):
        self.isolation = isolation
        yield
        if self.fail_with is not None:
            raise self.fail_with

    async def fetchrow(self, sql: str, collection: str, doc_id: str):
        assert "FOR UPDATE" in sql
        data = self.rows.get((collection, doc_id))
        if data is None:
            return None
        return {"data": json.dumps(data), "version": 3}

    async def execute(self, sql: str, *args):
        self.executed.append((" ".join(sql.split()), args))
        return "INSERT 0 1"


class FakePool:
    def __init__(self, conn: FakeConnection, documents: list[dict] | None = None) -> None:
        self.conn = conn
        self.documents = documents or []
        self.fetch_args: tuple | None = None

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

    async def fetch(self, sql: str, *args):
        self.fetch_args = args
        return [{"data": doc} for doc in self.documents]


@pytest.mark.asyncio
async def test_transaction_merges_updates_and_upserts() -> None:
    conn = FakeConnection({("users", "u1"): {"trustScore": 50, "name": "a"}})
    store = PostgresDocumentStore(FakePool(conn))

    async def _fn(tx):
        user = await tx.get("users", "u1")
        tx.update("users", "u1", {"trustScore": user["trustScore"] + 2})
        tx.set("trust_history", "u1:0000000000", {"delta": 2})
        return "ok"

    assert await store.run_transaction(_fn) == "ok"
    assert conn.isolation == "serializable"
    written = {args[1]: json.loads(args[2]) for _, args in conn.executed}
    assert written["u1"] == {"trustScore": 52, "name": "a"}
    assert written["u1:0000000000"] == {"delta": 2}


@pytest.mark.asyncio
async def test_serialization_failures_become_conflicts() -> None:
    conn = FakeConnection({}, fail_with=asyncpg.exceptions.SerializationError("could not serialize access"))
    store = PostgresDocumentStore(FakePool(conn))

    async def _fn(tx):
        tx.set("moderation_queue", "p1", {"reportCount": 1})

    with pytest.raises(TransactionConflict):
        await store.run_transaction(_fn)


@pytest.mark.asyncio
async def test_query_pushes_equality_filters_down() -> None:
    documents = [
        {"contentId": "p1", "sequence": 1, "action": "post_hidden"},
        {"contentId": "p1", "sequence": 0, "action": "post_reported"},
    ]
    pool = FakePool(FakeConnection({}), documents)
    store = PostgresDocumentStore(pool)

    result = await store.query(
        "moderation_audit",
        [where("contentId", "==", "p1"), where("sequence", ">=", 0)],
        [OrderBy("sequence")],
    )
    assert pool.fetch_args == ("moderation_audit", json.dumps({"contentId": "p1"}))
    assert [doc["action"] for doc in result] == ["post_reported", "post_hidden"]
