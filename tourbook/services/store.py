"""In-process document store.

Documents are plain dictionaries grouped into top-level collections, with
optional subcollections hanging off a parent document (``orders/{id}/payments``).
Reads outside a transaction see committed state. Writes go through
:meth:`DocumentStore.transaction`, which serialises transactions behind a
single lock and applies the buffered writes only when the block exits
without an exception.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import operator
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import (
    Any,
    AsyncIterator,
    Callable,
    DefaultDict,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
)

Document = Dict[str, Any]
Filter = Tuple[str, str, Any]

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "in": lambda value, options: value in options,
}

_ID_PREFIXES = {
    "orders": "ORD",
    "schedules": "SCH",
    "teams": "TEAM",
    "services": "SRV",
    "users": "USR",
    "payments": "PAY",
    "notifications": "NTF",
    "invoices": "INV",
}


def _now() -> datetime:
    return datetime.now()


def _matches(document: Document, filters: Iterable[Filter]) -> bool:
    for field, op, value in filters:
        if field not in document:
            return False
        try:
            if not _OPERATORS[op](document[field], value):
                return False
        except TypeError:
            return False
    return True


@dataclass(frozen=True)
class Snapshot:
    """A document read from the store together with its location."""

    collection: str
    id: str
    data: Document
    parent_id: Optional[str] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class DocumentStore:
    def __init__(self) -> None:
        self._collections: DefaultDict[str, Dict[str, Document]] = defaultdict(dict)
        # (parent collection, parent id, subcollection) -> {doc id: doc}
        self._subcollections: DefaultDict[
            Tuple[str, str, str], Dict[str, Document]
        ] = defaultdict(dict)
        self._counters: DefaultDict[str, itertools.count] = defaultdict(
            lambda: itertools.count(1)
        )
        self._lock = asyncio.Lock()

    def new_id(self, collection: str) -> str:
        prefix = _ID_PREFIXES.get(collection, collection[:3].upper())
        return f"{prefix}-{next(self._counters[collection]):05d}"

    # -- reads -------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        document = self._collections[collection].get(doc_id)
        if document is None:
            return None
        return Snapshot(collection, doc_id, copy.deepcopy(document))

    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> List[Snapshot]:
        filters = list(filters)
        results = [
            Snapshot(collection, doc_id, copy.deepcopy(document))
            for doc_id, document in self._collections[collection].items()
            if _matches(document, filters)
        ]
        return _order_and_limit(results, order_by, descending, limit)

    async def list_sub(
        self,
        collection: str,
        parent_id: str,
        subcollection: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> List[Snapshot]:
        documents = self._subcollections[(collection, parent_id, subcollection)]
        results = [
            Snapshot(subcollection, doc_id, copy.deepcopy(document), parent_id)
            for doc_id, document in documents.items()
        ]
        return _order_and_limit(results, order_by, descending, None)

    async def collection_group(
        self, subcollection: str, filters: Iterable[Filter] = (), *, limit: int | None = None
    ) -> List[Snapshot]:
        """Query every subcollection with the given name, whatever its parent."""
        filters = list(filters)
        results: List[Snapshot] = []
        for (_, parent_id, name), documents in self._subcollections.items():
            if name != subcollection:
                continue
            for doc_id, document in documents.items():
                if _matches(document, filters):
                    results.append(
                        Snapshot(subcollection, doc_id, copy.deepcopy(document), parent_id)
                    )
        return results[:limit] if limit is not None else results

    # -- writes ------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Transaction"]:
        async with self._lock:
            transaction = Transaction(self)
            yield transaction
            transaction._commit()

    async def add(self, collection: str, data: Document) -> str:
        async with self.transaction() as tx:
            return tx.add(collection, data)

    async def update(self, collection: str, doc_id: str, data: Document) -> None:
        async with self.transaction() as tx:
            tx.update(collection, doc_id, data)

    async def add_sub(
        self, collection: str, parent_id: str, subcollection: str, data: Document
    ) -> str:
        async with self.transaction() as tx:
            return tx.add_sub(collection, parent_id, subcollection, data)

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            return self._collections[collection].pop(doc_id, None) is not None

    def collection_names(self) -> List[str]:
        return sorted(self._collections)

    def dump(self, collection: str) -> List[Document]:
        return [
            {"id": doc_id, **copy.deepcopy(document)}
            for doc_id, document in self._collections[collection].items()
        ]


class Transaction:
    """Buffered writes applied together when the owning block exits cleanly.

    Reads inside the transaction see committed state plus this transaction's
    own pending writes, so a check made here cannot be invalidated by another
    transaction before commit.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._writes: List[Callable[[], None]] = []
        self._pending: Dict[Tuple[str, str], Document] = {}
        self._pending_sub: Dict[Tuple[str, str, str, str], Document] = {}

    def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        document = self._pending.get((collection, doc_id))
        if document is None:
            document = self._store._collections[collection].get(doc_id)
        if document is None:
            return None
        return Snapshot(collection, doc_id, copy.deepcopy(document))

    def query(self, collection: str, filters: Iterable[Filter] = ()) -> List[Snapshot]:
        filters = list(filters)
        merged = dict(self._store._collections[collection])
        for (name, doc_id), document in self._pending.items():
            if name == collection:
                merged[doc_id] = document
        return [
            Snapshot(collection, doc_id, copy.deepcopy(document))
            for doc_id, document in merged.items()
            if _matches(document, filters)
        ]

    def list_sub(
        self, collection: str, parent_id: str, subcollection: str
    ) -> List[Snapshot]:
        merged = dict(self._store._subcollections[(collection, parent_id, subcollection)])
        for (name, parent, sub, doc_id), document in self._pending_sub.items():
            if (name, parent, sub) == (collection, parent_id, subcollection):
                merged[doc_id] = document
        return [
            Snapshot(subcollection, doc_id, copy.deepcopy(document), parent_id)
            for doc_id, document in merged.items()
        ]

    def add(self, collection: str, data: Document) -> str:
        doc_id = self._store.new_id(collection)
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        timestamp = _now()
        document = {"created_at": timestamp, **copy.deepcopy(data), "updated_at": timestamp}
        self._pending[(collection, doc_id)] = document

        def _apply() -> None:
            self._store._collections[collection][doc_id] = document

        self._writes.append(_apply)

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        current = self.get(collection, doc_id)
        if current is None:
            raise KeyError(f"{collection}/{doc_id} not found")
        document = {**current.data, **copy.deepcopy(data), "updated_at": _now()}
        self._pending[(collection, doc_id)] = document

        def _apply() -> None:
            self._store._collections[collection][doc_id] = document

        self._writes.append(_apply)

    def add_sub(
        self, collection: str, parent_id: str, subcollection: str, data: Document
    ) -> str:
        doc_id = self._store.new_id(subcollection)
        timestamp = _now()
        document = {"created_at": timestamp, **copy.deepcopy(data), "updated_at": timestamp}
        self._pending_sub[(collection, parent_id, subcollection, doc_id)] = document

        def _apply() -> None:
            self._store._subcollections[(collection, parent_id, subcollection)][doc_id] = document

        self._writes.append(_apply)
        return doc_id

    def update_sub(
        self,
        collection: str,
        parent_id: str,
        subcollection: str,
        doc_id: str,
        data: Document,
    ) -> None:
        key = (collection, parent_id, subcollection, doc_id)
        current = self._pending_sub.get(key)
        if current is None:
            current = self._store._subcollections[(collection, parent_id, subcollection)].get(doc_id)
        if current is None:
            raise KeyError(f"{collection}/{parent_id}/{subcollection}/{doc_id} not found")
        document = {**current, **copy.deepcopy(data), "updated_at": _now()}
        self._pending_sub[key] = document

        def _apply() -> None:
            self._store._subcollections[(collection, parent_id, subcollection)][doc_id] = document

        self._writes.append(_apply)

    def _commit(self) -> None:
        for write in self._writes:
            write()
        self._writes.clear()


def _order_and_limit(
    results: List[Snapshot],
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> List[Snapshot]:
    if order_by is not None:
        results.sort(key=lambda snapshot: snapshot.data.get(order_by), reverse=descending)
    if limit is not None:
        results = results[:limit]
    return results


_store: Optional[DocumentStore] = None


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = DocumentStore()
    return _store


def reset_store() -> None:
    global _store
    _store = None
