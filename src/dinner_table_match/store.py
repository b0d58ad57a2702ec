"""Shared document store interface and the in-memory implementation.

The seating logic only needs four things from a store: collection
snapshots, single document reads and writes, atomic multi document
batches and change subscriptions. Each document carries an opaque
``revision`` token that a batch operation can use as a precondition.
"""
from __future__ import annotations

import copy
import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog

from .config import Config, get_config
from .exceptions import StoreConflictError, StoreError

logger = structlog.get_logger(__name__)

USERS = "users"
TABLES = "tables"
SETTINGS = "settings"
SETTINGS_KEY = "main"

SnapshotCallback = Callable[[List["Document"]], None]


@dataclass(frozen=True)
class Document:
    collection: str
    key: str
    data: Dict[str, Any]
    revision: Any = None


@dataclass
class BatchOperation:
    """One write inside a batch.

    ``kind`` is ``create`` (fails when the document exists), ``set`` or
    ``delete``. A non ``None`` ``precondition`` must equal the stored
    revision or the whole batch is rejected.
    """

    kind: str
    collection: str
    key: str
    data: Optional[Dict[str, Any]] = None
    precondition: Any = None
    merge: bool = False


class Subscription:
    """Handle returned by :meth:`DocumentStore.subscribe`."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


@dataclass
class WriteBatch:
    """Collects operations and commits them all or none."""

    store: "DocumentStore"
    operations: List[BatchOperation] = field(default_factory=list)

    def create(self, collection: str, key: str, data: Dict[str, Any]) -> "WriteBatch":
        self.operations.append(BatchOperation("create", collection, key, data))
        return self

    def set(
        self,
        collection: str,
        key: str,
        data: Dict[str, Any],
        precondition: Any = None,
        merge: bool = False,
    ) -> "WriteBatch":
        self.operations.append(BatchOperation("set", collection, key, data, precondition, merge))
        return self

    def delete(self, collection: str, key: str, precondition: Any = None) -> "WriteBatch":
        self.operations.append(BatchOperation("delete", collection, key, None, precondition))
        return self

    def add(self, operation: BatchOperation) -> "WriteBatch":
        self.operations.append(operation)
        return self

    def commit(self) -> None:
        if not self.operations:
            return
        self.store.commit(self.operations)


class DocumentStore(ABC):
    """Minimal replicated document store used by the seating service."""

    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[Document]:
        """Return one document or ``None``."""

    @abstractmethod
    def list(self, collection: str) -> List[Document]:
        """Return a snapshot of every document in ``collection``."""

    @abstractmethod
    def set(self, collection: str, key: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Write one document. With ``merge`` only the given fields change."""

    @abstractmethod
    def delete(self, collection: str, key: str) -> None:
        """Delete one document, missing documents are ignored."""

    @abstractmethod
    def commit(self, operations: List[BatchOperation]) -> None:
        """Apply ``operations`` atomically."""

    @abstractmethod
    def subscribe(self, collection: str, callback: SnapshotCallback) -> Subscription:
        """Call ``callback`` with the full collection now and after every change."""

    def batch(self) -> WriteBatch:
        return WriteBatch(self)


def merge_fields(current: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Field level merge, nested mappings are merged key by key."""
    merged = copy.deepcopy(current)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_fields(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class InMemoryStore(DocumentStore):
    """Process local store with integer revisions and synchronous notifications."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._docs: Dict[str, Dict[str, Document]] = {}
        self._revisions = itertools.count(1)
        self._subscribers: Dict[str, Dict[int, SnapshotCallback]] = {}
        self._subscriber_ids = itertools.count(1)

    # ----------------------------- reads -----------------------------
    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._lock:
            doc = self._docs.get(collection, {}).get(key)
            return self._copy(doc) if doc else None

    def list(self, collection: str) -> List[Document]:
        with self._lock:
            return [self._copy(d) for d in self._docs.get(collection, {}).values()]

    # ----------------------------- writes -----------------------------
    def set(self, collection: str, key: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.commit([BatchOperation("set", collection, key, data, merge=merge)])

    def delete(self, collection: str, key: str) -> None:
        self.commit([BatchOperation("delete", collection, key)])

    def commit(self, operations: List[BatchOperation]) -> None:
        with self._lock:
            staged = {name: dict(docs) for name, docs in self._docs.items()}
            for op in operations:
                docs = staged.setdefault(op.collection, {})
                current = docs.get(op.key)
                self._check(op, current)
                if op.kind == "delete":
                    docs.pop(op.key, None)
                    continue
                data = copy.deepcopy(op.data or {})
                if op.kind == "set" and op.merge and current is not None:
                    data = merge_fields(current.data, data)
                docs[op.key] = Document(op.collection, op.key, data, next(self._revisions))

            self._docs = staged
            touched = []
            for op in operations:
                if op.collection not in touched:
                    touched.append(op.collection)
            logger.debug("batch_committed", operations=len(operations), collections=touched)
            for name in touched:
                self._notify(name)

    def _check(self, op: BatchOperation, current: Optional[Document]) -> None:
        if op.kind not in ("create", "set", "delete"):
            raise StoreError(f"Unknown batch operation: {op.kind}")
        if op.kind == "create" and current is not None:
            raise StoreConflictError(f"{op.collection}/{op.key} already exists")
        if op.precondition is not None:
            if current is None or current.revision != op.precondition:
                raise StoreConflictError(f"{op.collection}/{op.key} changed since it was read")

    # ----------------------------- subscriptions -----------------------------
    def subscribe(self, collection: str, callback: SnapshotCallback) -> Subscription:
        with self._lock:
            sub_id = next(self._subscriber_ids)
            self._subscribers.setdefault(collection, {})[sub_id] = callback
            callback(self.list(collection))

        def cancel() -> None:
            with self._lock:
                self._subscribers.get(collection, {}).pop(sub_id, None)

        return Subscription(cancel)

    def _notify(self, collection: str) -> None:
        for callback in list(self._subscribers.get(collection, {}).values()):
            callback(self.list(collection))

    @staticmethod
    def _copy(doc: Document) -> Document:
        return Document(doc.collection, doc.key, copy.deepcopy(doc.data), doc.revision)


def create_store(config: Config | None = None) -> DocumentStore:
    """Build the store selected by ``config.store_backend``."""
    config = config or get_config()
    if config.store_backend == "firestore":
        from .firestore_store import FirestoreStore

        return FirestoreStore.from_config(config)
    return InMemoryStore()
