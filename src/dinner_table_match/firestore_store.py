"""Cloud Firestore backed document store."""
from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional

import firebase_admin
import structlog
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions

from .config import Config
from .exceptions import StoreConflictError, StoreError
from .store import BatchOperation, Document, DocumentStore, SnapshotCallback, Subscription

logger = structlog.get_logger(__name__)

_CONFLICTS = (
    google_exceptions.AlreadyExists,
    google_exceptions.Conflict,
    google_exceptions.FailedPrecondition,
    google_exceptions.Aborted,
)


def _initialize_app(config: Config) -> firebase_admin.App:
    """Initialize the Firebase Admin SDK once per process.

    Credentials are looked up in order: raw JSON from config, service
    account file path, application default credentials.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    cred = None
    if config.firebase_config_json:
        logger.info("Initializing Firebase with JSON string from environment")
        cred = credentials.Certificate(json.loads(config.firebase_config_json))
    elif config.firebase_credentials_path and os.path.exists(config.firebase_credentials_path):
        logger.info("Initializing Firebase with JSON file", path=config.firebase_credentials_path)
        cred = credentials.Certificate(config.firebase_credentials_path)

    if cred:
        return firebase_admin.initialize_app(cred)
    logger.info("Firebase initialized with default credentials")
    return firebase_admin.initialize_app()


class FirestoreStore(DocumentStore):
    """Adapter from :class:`DocumentStore` to a Firestore client.

    The revision token of a document is its ``update_time``. Snapshot
    callbacks are invoked on the Firestore listener thread.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: Config) -> "FirestoreStore":
        app = _initialize_app(config)
        return cls(firestore.client(app))

    def _ref(self, collection: str, key: str):
        return self._client.collection(collection).document(key)

    @staticmethod
    def _document(collection: str, snap: Any) -> Document:
        return Document(collection, snap.id, snap.to_dict() or {}, snap.update_time)

    def get(self, collection: str, key: str) -> Optional[Document]:
        try:
            snap = self._ref(collection, key).get()
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Firestore read failed", collection=collection, key=key, error=str(e))
            raise StoreError(f"Failed to read {collection}/{key}: {e}") from e
        return self._document(collection, snap) if snap.exists else None

    def list(self, collection: str) -> List[Document]:
        try:
            return [self._document(collection, s) for s in self._client.collection(collection).stream()]
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Firestore query failed", collection=collection, error=str(e))
            raise StoreError(f"Failed to read {collection}: {e}") from e

    def set(self, collection: str, key: str, data: Dict[str, Any], merge: bool = False) -> None:
        try:
            self._ref(collection, key).set(data, merge=merge)
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Firestore write failed", collection=collection, key=key, error=str(e))
            raise StoreError(f"Failed to write {collection}/{key}: {e}") from e

    def delete(self, collection: str, key: str) -> None:
        try:
            self._ref(collection, key).delete()
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Firestore delete failed", collection=collection, key=key, error=str(e))
            raise StoreError(f"Failed to delete {collection}/{key}: {e}") from e

    def commit(self, operations: List[BatchOperation]) -> None:
        batch = self._client.batch()
        for op in operations:
            ref = self._ref(op.collection, op.key)
            option = None
            if op.precondition is not None:
                option = self._client.write_option(last_update_time=op.precondition)
            if op.kind == "create":
                batch.create(ref, op.data or {})
            elif op.kind == "delete":
                batch.delete(ref, option=option)
            elif option is not None:
                # set() takes no precondition, update() with every field replaces the document
                batch.update(ref, op.data or {}, option=option)
            else:
                batch.set(ref, op.data or {}, merge=op.merge)
        try:
            batch.commit()
        except _CONFLICTS as e:
            logger.warning("Firestore batch rejected", operations=len(operations), error=str(e))
            raise StoreConflictError() from e
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Firestore batch failed", operations=len(operations), error=str(e))
            raise StoreError(f"Batch commit failed: {e}") from e

    def subscribe(self, collection: str, callback: SnapshotCallback) -> Subscription:
        def on_snapshot(snapshots, changes, read_time) -> None:
            callback([self._document(collection, s) for s in snapshots])

        watch = self._client.collection(collection).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)
