"""Document store contract, in-memory reference store and transaction retry helper.

Documents are JSON-compatible dictionaries addressed by ``(collection, doc_id)``.
Timestamps are stored as ISO-8601 strings so every backend can order them the
same way.

Transactions follow the managed document database model: reads happen through
the transaction handle, writes are buffered and committed atomically when the
callback returns. A commit that observes a concurrent write to any document it
read raises :class:`TransactionConflict`; :func:`run_in_transaction` retries the
whole read-compute-write cycle a bounded number of times.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol, Sequence, TypeVar

from teentalk.moderation.domain.errors import InternalError, NotFound, TransactionConflict
from teentalk.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

Document = dict[str, Any]
T = TypeVar("T")

_DELETE = object()


@dataclass(frozen=True)
class FieldFilter:
    """Single ``field <op> value`` predicate used by :meth:`DocumentStore.query`."""

    field: str
    op: str
    value: Any

    def matches(self, document: Mapping[str, Any]) -> bool:
        if self.field not in document:
            return False
        current = document[self.field]
        if self.op == "==":
            return current == self.value
        if self.op == "!=":
            return current != self.value
        if self.op == "in":
            return current in self.value
        if current is None:
            return False
        if self.op == "<":
            return current < self.value
        if self.op == "<=":
            return current <= self.value
        if self.op == ">":
            return current > self.value
        if self.op == ">=":
            return current >= self.value
        raise ValueError(f"unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


def where(field: str, op: str, value: Any) -> FieldFilter:
    return FieldFilter(field=field, op=op, value=value)


def apply_query(
    documents: Iterable[Document],
    filters: Sequence[FieldFilter] = (),
    order_by: Sequence[OrderBy] = (),
    limit: int | None = None,
    offset: int = 0,
) -> list[Document]:
    """Filter, order and page documents in Python."""

    matched = [doc for doc in documents if all(flt.matches(doc) for flt in filters)]
    # stable sort, least significant key first
    for order in reversed(order_by):
        matched.sort(
            key=lambda doc, f=order.field: (doc.get(f) is None, doc.get(f)),
            reverse=order.descending,
        )
    if offset:
        matched = matched[offset:]
    if limit is not None:
        matched = matched[:limit]
    return matched


class Transaction(Protocol):
    """Handle passed to transaction callbacks."""

    async def get(self, collection: str, doc_id: str) -> Document | None:
        ...

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        ...

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...


class DocumentStore(Protocol):
    """Storage contract for the managed document database."""

    async def get(self, collection: str, doc_id: str) -> Document | None:
        ...

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        ...

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Document]:
        ...

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` once; raise :class:`TransactionConflict` if the commit loses a race."""
        ...


class BufferedTransaction:
    """Collects reads and writes; the owning store decides how to commit them."""

    def __init__(self, reader: Callable[[str, str], Awaitable[tuple[int, Document | None]]]) -> None:
        self._reader = reader
        self.reads: dict[tuple[str, str], int] = {}
        self.writes: dict[tuple[str, str], Any] = {}

    async def get(self, collection: str, doc_id: str) -> Document | None:
        key = (collection, doc_id)
        if key in self.writes:
            pending = self.writes[key]
            return None if pending is _DELETE else copy.deepcopy(pending)
        version, data = await self._reader(collection, doc_id)
        self.reads.setdefault(key, version)
        return data

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self.writes[(collection, doc_id)] = copy.deepcopy(dict(data))

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        key = (collection, doc_id)
        pending = self.writes.get(key)
        if pending is None or pending is _DELETE:
            # merged against the committed document at commit time
            pending = {"__merge__": {}}
            self.writes[key] = pending
        target = pending["__merge__"] if "__merge__" in pending else pending
        target.update(copy.deepcopy(dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.writes[(collection, doc_id)] = _DELETE


def resolve_write(current: Document | None, pending: Any) -> Document | None:
    """Return the document that results from applying a buffered write to ``current``."""

    if pending is _DELETE:
        return None
    if "__merge__" in pending:
        if current is None:
            raise NotFound("document to update does not exist")
        merged = dict(current)
        merged.update(pending["__merge__"])
        return merged
    return pending


class InMemoryDocumentStore(DocumentStore):
    """Reference store used in tests and developer environments.

    Uses optimistic concurrency: each document carries a version that only ever
    increases, and a commit fails if any document read by the transaction has
    moved on since it was read.
    """

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Document]] = {}
        self._versions: dict[tuple[str, str], int] = {}

    def _read(self, collection: str, doc_id: str) -> tuple[int, Document | None]:
        version = self._versions.get((collection, doc_id), 0)
        data = self._docs.get(collection, {}).get(doc_id)
        return version, copy.deepcopy(data) if data is not None else None

    def _write(self, collection: str, doc_id: str, data: Document | None) -> None:
        key = (collection, doc_id)
        self._versions[key] = self._versions.get(key, 0) + 1
        bucket = self._docs.setdefault(collection, {})
        if data is None:
            bucket.pop(doc_id, None)
        else:
            bucket[doc_id] = copy.deepcopy(data)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        return self._read(collection, doc_id)[1]

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self._write(collection, doc_id, dict(data))

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        current = self._read(collection, doc_id)[1]
        if current is None:
            raise NotFound(f"{collection}/{doc_id} not found")
        current.update(fields)
        self._write(collection, doc_id, current)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._write(collection, doc_id, None)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Document]:
        documents = [copy.deepcopy(doc) for doc in self._docs.get(collection, {}).values()]
        return apply_query(documents, filters, order_by, limit, offset)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async def reader(collection: str, doc_id: str) -> tuple[int, Document | None]:
            # reads are a network round trip against a real store
            await asyncio.sleep(0)
            return self._read(collection, doc_id)

        tx = BufferedTransaction(reader)
        result = await fn(tx)
        # commit runs without awaiting, so it is atomic on the event loop
        for key, version in tx.reads.items():
            if self._versions.get(key, 0) != version:
                raise TransactionConflict(f"{key[0]}/{key[1]} changed during transaction")
        resolved = [
            (key, resolve_write(self._read(*key)[1], pending)) for key, pending in tx.writes.items()
        ]
        for (collection, doc_id), data in resolved:
            self._write(collection, doc_id, data)
        return result

    def dump(self, collection: str) -> dict[str, Document]:
        return copy.deepcopy(self._docs.get(collection, {}))


async def run_in_transaction(
    store: DocumentStore,
    fn: Callable[[Transaction], Awaitable[T]],
    *,
    max_attempts: int = 5,
    backoff_seconds: float = 0.01,
    label: str = "transaction",
) -> T:
    """Run ``fn`` transactionally, retrying the full cycle on conflict.

    Raises :class:`InternalError` once ``max_attempts`` conflicts have been seen.
    Any other exception raised by ``fn`` propagates unchanged and nothing is
    committed.
    """

    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await store.run_transaction(fn)
        except TransactionConflict:
            obs_metrics.STORE_TX_CONFLICTS_TOTAL.inc()
            logger.debug("transaction conflict", extra={"label": label, "attempt": attempt})
            if attempt < attempts and backoff_seconds > 0:
                await asyncio.sleep(backoff_seconds * attempt)
    obs_metrics.STORE_TX_EXHAUSTED_TOTAL.inc()
    logger.error("transaction retries exhausted", extra={"label": label, "attempts": attempts})
    raise InternalError(f"{label} failed after {attempts} attempts")
