"""
Document store interface consumed by the service layer.

The production backend is Firestore (see firebase_service.FirestoreDocumentStore).
MemoryDocumentStore implements the same semantics in-process and is used for
local development (DOCUMENT_STORE_BACKEND=memory) and tests.

Documents are returned as plain dicts with their id under the "id" key.
"""
import copy
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple


Filter = Tuple[str, str, Any]


class StoreError(Exception):
    """A read or write against the document store failed."""


class DocumentNotFound(StoreError):
    """An update targeted a document that does not exist."""


class DocumentExists(StoreError):
    """A create targeted a document id that is already taken."""


# =========================================================================
# Field operations
# =========================================================================

@dataclass(frozen=True)
class Increment:
    amount: int = 1


@dataclass(frozen=True)
class ArrayUnion:
    values: tuple

    def __init__(self, values: Iterable[Any]):
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class ArrayRemove:
    values: tuple

    def __init__(self, values: Iterable[Any]):
        object.__setattr__(self, "values", tuple(values))


class _DeleteField:
    def __repr__(self):
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


class Subscription:
    """Handle returned by the watch_* methods."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._cancel()


class DocumentStore:
    """Interface of the remote document store."""

    def is_available(self) -> bool:
        raise NotImplementedError

    def create(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def batch(self) -> "WriteBatch":
        raise NotImplementedError

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        callback: Callable[[Optional[Dict[str, Any]]], None],
    ) -> Subscription:
        raise NotImplementedError

    def watch_query(
        self,
        collection: str,
        callback: Callable[[List[Dict[str, Any]]], None],
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> Subscription:
        raise NotImplementedError


class WriteBatch:
    """Writes committed together; nothing is applied if commit fails."""

    def create(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def commit(self) -> None:
        raise NotImplementedError


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


# =========================================================================
# In-memory backend
# =========================================================================

def _split(path: str) -> List[str]:
    return path.split(".")


def _resolve(data: Dict[str, Any], path: str) -> Any:
    node: Any = data
    for part in _split(path):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _apply_field(data: Dict[str, Any], path: str, value: Any) -> None:
    parts = _split(path)
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    leaf = parts[-1]
    current = node.get(leaf)

    if value is DELETE_FIELD:
        node.pop(leaf, None)
    elif isinstance(value, Increment):
        node[leaf] = (current if isinstance(current, (int, float)) else 0) + value.amount
    elif isinstance(value, ArrayUnion):
        items = list(current) if isinstance(current, list) else []
        for item in value.values:
            if item not in items:
                items.append(copy.deepcopy(item))
        node[leaf] = items
    elif isinstance(value, ArrayRemove):
        items = list(current) if isinstance(current, list) else []
        node[leaf] = [item for item in items if item not in value.values]
    else:
        node[leaf] = copy.deepcopy(value)


def _merge(target: Dict[str, Any], data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            _apply_field(target, key, value)


def _matches(data: Dict[str, Any], flt: Filter) -> bool:
    field, op, expected = flt
    actual = _resolve(data, field)
    if op == "==":
        return actual == expected
    if op == "!=":
        return actual is not None and actual != expected
    if op == "array_contains":
        return isinstance(actual, list) and expected in actual
    if op == "in":
        return actual in expected
    if actual is None:
        return False
    try:
        if op == "<":
            return actual < expected
        if op == "<=":
            return actual <= expected
        if op == ">":
            return actual > expected
        if op == ">=":
            return actual >= expected
    except TypeError:
        return False
    raise StoreError(f"Unsupported query operator: {op}")


class _Watcher:
    def __init__(self, collection, callback, doc_id=None, query=None):
        self.collection = collection
        self.callback = callback
        self.doc_id = doc_id
        self.query = query


class MemoryDocumentStore(DocumentStore):
    """Thread-safe in-process document store with Firestore-like semantics."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._watchers: List[_Watcher] = []
        self._pending = deque()
        self._draining = False
        self._lock = threading.RLock()

    def is_available(self) -> bool:
        return True

    # -- internals ---------------------------------------------------------

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _snapshot(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._docs(collection).get(doc_id)
        if data is None:
            return None
        return {"id": doc_id, **copy.deepcopy(data)}

    def _run_query(self, collection, where=(), order_by=None, descending=False, limit=None):
        results = [
            {"id": doc_id, **copy.deepcopy(data)}
            for doc_id, data in self._docs(collection).items()
            if all(_matches(data, flt) for flt in where)
        ]
        if order_by:
            present = [doc for doc in results if _resolve(doc, order_by) is not None]
            present.sort(key=lambda doc: _resolve(doc, order_by), reverse=descending)
            results = present
        if limit is not None:
            results = results[:limit]
        return results

    def _apply(self, writes: List[Tuple[str, str, str, Any, bool]]) -> None:
        # Validate every target first so a batch applies all or nothing
        present = {}
        for kind, collection, doc_id, _, _ in writes:
            key = (collection, doc_id)
            exists = present.get(key, doc_id in self._docs(collection))
            if kind == "update" and not exists:
                raise DocumentNotFound(f"{collection}/{doc_id} does not exist")
            if kind == "create" and exists:
                raise DocumentExists(f"{collection}/{doc_id} already exists")
            present[key] = kind != "delete"

        touched = set()
        for kind, collection, doc_id, data, merge in writes:
            docs = self._docs(collection)
            if kind in ("create", "set"):
                if merge and doc_id in docs:
                    _merge(docs[doc_id], data)
                else:
                    docs[doc_id] = {}
                    for key, value in data.items():
                        _apply_field(docs[doc_id], key, value)
            elif kind == "update":
                for key, value in data.items():
                    _apply_field(docs[doc_id], key, value)
            elif kind == "delete":
                docs.pop(doc_id, None)
            touched.add((collection, doc_id))
        self._notify(touched)

    def _notify(self, touched) -> None:
        collections = {collection for collection, _ in touched}
        for watcher in list(self._watchers):
            if watcher.collection not in collections:
                continue
            if watcher.doc_id is not None:
                if (watcher.collection, watcher.doc_id) in touched:
                    self._pending.append((watcher, self._snapshot(watcher.collection, watcher.doc_id)))
            else:
                self._pending.append((watcher, self._run_query(watcher.collection, **watcher.query)))

        # Callbacks may write again; nested snapshots are queued behind this one
        if self._draining:
            return
        self._draining = True
        try:
            while self._pending:
                watcher, payload = self._pending.popleft()
                if watcher in self._watchers:
                    watcher.callback(payload)
        finally:
            self._draining = False

    # -- DocumentStore -----------------------------------------------------

    def create(self, collection, data, doc_id=None):
        doc_id = doc_id or new_document_id()
        with self._lock:
            self._apply([("create", collection, doc_id, data, False)])
        return doc_id

    def get(self, collection, doc_id):
        with self._lock:
            return self._snapshot(collection, doc_id)

    def set(self, collection, doc_id, data, merge=False):
        with self._lock:
            self._apply([("set", collection, doc_id, data, merge)])

    def update(self, collection, doc_id, data):
        with self._lock:
            self._apply([("update", collection, doc_id, data, False)])

    def delete(self, collection, doc_id):
        with self._lock:
            self._apply([("delete", collection, doc_id, None, False)])

    def query(self, collection, where=(), order_by=None, descending=False, limit=None):
        with self._lock:
            return self._run_query(collection, where, order_by, descending, limit)

    def batch(self):
        return MemoryWriteBatch(self)

    def watch_document(self, collection, doc_id, callback):
        watcher = _Watcher(collection, callback, doc_id=doc_id)
        with self._lock:
            self._watchers.append(watcher)
            callback(self._snapshot(collection, doc_id))
        return Subscription(lambda: self._remove_watcher(watcher))

    def watch_query(self, collection, callback, where=(), order_by=None, descending=False, limit=None):
        query = {
            "where": tuple(where),
            "order_by": order_by,
            "descending": descending,
            "limit": limit,
        }
        watcher = _Watcher(collection, callback, query=query)
        with self._lock:
            self._watchers.append(watcher)
            callback(self._run_query(collection, **query))
        return Subscription(lambda: self._remove_watcher(watcher))

    def _remove_watcher(self, watcher) -> None:
        with self._lock:
            if watcher in self._watchers:
                self._watchers.remove(watcher)


class MemoryWriteBatch(WriteBatch):
    def __init__(self, store: MemoryDocumentStore):
        self._store = store
        self._writes: List[Tuple[str, str, str, Any, bool]] = []

    def create(self, collection, data, doc_id=None):
        doc_id = doc_id or new_document_id()
        self._writes.append(("create", collection, doc_id, data, False))
        return doc_id

    def set(self, collection, doc_id, data, merge=False):
        self._writes.append(("set", collection, doc_id, data, merge))

    def update(self, collection, doc_id, data):
        self._writes.append(("update", collection, doc_id, data, False))

    def delete(self, collection, doc_id):
        self._writes.append(("delete", collection, doc_id, None, False))

    def commit(self):
        with self._store._lock:
            self._store._apply(self._writes)
        self._writes = []
