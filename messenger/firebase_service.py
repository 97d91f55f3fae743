"""
Firebase service for Django - Firestore backend of the document store.

Firestore Collections:
- users/{uid}: Profile, coin balance, follow/block/mute lists, push token
- chats/{chatId}: Chat summaries (participants, last message, unread counters)
- messages/{messageId}: Chat messages
- calls/{callId}: Call records with status, participants, timestamps
- gallery_posts/{postId}: Gallery metadata pointing at relay media URLs
- notifications/{notificationId}: Push notification history
- reports/{reportId}: User reports
"""
import os
import json
import logging
from typing import Optional, Dict, Any

from google.api_core import exceptions as google_exceptions

from .store import (
    ArrayRemove,
    ArrayUnion,
    DELETE_FIELD,
    DocumentExists,
    DocumentNotFound,
    DocumentStore,
    Increment,
    StoreError,
    Subscription,
    WriteBatch,
)

logger = logging.getLogger("messenger")

# Firebase Admin initialization
_firebase_app = None
_firestore_client = None
_firebase_init_attempted = False


def get_firebase_app():
    """Get or initialize Firebase Admin app"""
    global _firebase_app, _firebase_init_attempted

    if _firebase_app is not None:
        return _firebase_app

    if _firebase_init_attempted:
        # Already tried and failed
        return None

    _firebase_init_attempted = True

    import firebase_admin
    from firebase_admin import credentials

    use_emulator = os.environ.get("FIREBASE_USE_EMULATOR", "false").lower() == "true"
    project_id = os.environ.get("FIREBASE_PROJECT_ID")

    logger.info(f"Firebase init: use_emulator={use_emulator}, project_id={project_id}")

    if use_emulator:
        firestore_host = os.environ.get("FIRESTORE_EMULATOR_HOST", "localhost:8080")
        os.environ["FIRESTORE_EMULATOR_HOST"] = firestore_host

        try:
            _firebase_app = firebase_admin.initialize_app(
                credential=None,
                options={
                    "projectId": project_id or "demo-harborchat",
                }
            )
            logger.info(f"Firebase Admin initialized with EMULATOR (Firestore: {firestore_host})")
        except ValueError as e:
            # Already initialized
            try:
                _firebase_app = firebase_admin.get_app()
                logger.info("Firebase Admin already initialized")
            except ValueError:
                logger.error(f"Firebase init failed: {e}")
                return None
    else:
        service_account_json = os.environ.get("FIREBASE_SERVICE_ACCOUNT")
        service_account_path = os.environ.get("FIREBASE_SERVICE_ACCOUNT_PATH")

        cred = None
        if service_account_json:
            try:
                cred = credentials.Certificate(json.loads(service_account_json))
                logger.info("Using FIREBASE_SERVICE_ACCOUNT env var")
            except json.JSONDecodeError as e:
                logger.error(f"Invalid FIREBASE_SERVICE_ACCOUNT JSON: {e}")
        elif service_account_path and os.path.exists(service_account_path):
            cred = credentials.Certificate(service_account_path)
            logger.info(f"Using service account from {service_account_path}")

        if cred:
            try:
                _firebase_app = firebase_admin.initialize_app(cred)
                logger.info("Firebase Admin initialized (production)")
            except ValueError:
                _firebase_app = firebase_admin.get_app()
        else:
            logger.warning("Firebase credentials not found - Firestore operations will fail")
            return None

    return _firebase_app


def get_firestore():
    """Get Firestore client"""
    global _firestore_client

    if _firestore_client is not None:
        return _firestore_client

    app = get_firebase_app()
    if app is None:
        return None

    from firebase_admin import firestore
    _firestore_client = firestore.client()
    return _firestore_client


def _to_firestore(data: Dict[str, Any]) -> Dict[str, Any]:
    """Translate store field operations into Firestore transforms."""
    from firebase_admin import firestore

    converted = {}
    for key, value in data.items():
        if value is DELETE_FIELD:
            converted[key] = firestore.DELETE_FIELD
        elif isinstance(value, Increment):
            converted[key] = firestore.Increment(value.amount)
        elif isinstance(value, ArrayUnion):
            converted[key] = firestore.ArrayUnion(list(value.values))
        elif isinstance(value, ArrayRemove):
            converted[key] = firestore.ArrayRemove(list(value.values))
        else:
            converted[key] = value
    return converted


def _snapshot_to_dict(snapshot) -> Optional[Dict[str, Any]]:
    if snapshot is None or not snapshot.exists:
        return None
    return {"id": snapshot.id, **(snapshot.to_dict() or {})}


class FirestoreDocumentStore(DocumentStore):
    """Document store over the Firebase Admin Firestore client"""

    def __init__(self, client=None):
        self._db = client

    @property
    def db(self):
        """Lazy initialization of Firestore client"""
        if self._db is None:
            self._db = get_firestore()
        return self._db

    def is_available(self) -> bool:
        return self.db is not None

    def _client(self):
        if self.db is None:
            raise StoreError("Firestore is not configured")
        return self.db

    def _ref(self, collection: str, doc_id: Optional[str] = None):
        col = self._client().collection(collection)
        return col.document(doc_id) if doc_id else col.document()

    def _build_query(self, collection, where=(), order_by=None, descending=False, limit=None):
        from firebase_admin import firestore

        query = self._client().collection(collection)
        for field, op, value in where:
            query = query.where(field, op, value)
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    def create(self, collection, data, doc_id=None):
        ref = self._ref(collection, doc_id)
        try:
            ref.create(_to_firestore(data))
        except google_exceptions.Conflict as e:
            raise DocumentExists(f"{collection}/{ref.id} already exists") from e
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"create {collection} failed: {e}") from e
        return ref.id

    def get(self, collection, doc_id):
        try:
            return _snapshot_to_dict(self._ref(collection, doc_id).get())
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"get {collection}/{doc_id} failed: {e}") from e

    def set(self, collection, doc_id, data, merge=False):
        try:
            self._ref(collection, doc_id).set(_to_firestore(data), merge=merge)
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"set {collection}/{doc_id} failed: {e}") from e

    def update(self, collection, doc_id, data):
        try:
            self._ref(collection, doc_id).update(_to_firestore(data))
        except google_exceptions.NotFound as e:
            raise DocumentNotFound(f"{collection}/{doc_id} does not exist") from e
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"update {collection}/{doc_id} failed: {e}") from e

    def delete(self, collection, doc_id):
        try:
            self._ref(collection, doc_id).delete()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"delete {collection}/{doc_id} failed: {e}") from e

    def query(self, collection, where=(), order_by=None, descending=False, limit=None):
        try:
            docs = self._build_query(collection, where, order_by, descending, limit).stream()
            return [_snapshot_to_dict(doc) for doc in docs]
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"query {collection} failed: {e}") from e

    def batch(self):
        return FirestoreWriteBatch(self)

    def watch_document(self, collection, doc_id, callback):
        def _on_snapshot(doc_snapshots, changes, read_time):
            for snapshot in doc_snapshots:
                callback(_snapshot_to_dict(snapshot))

        watch = self._ref(collection, doc_id).on_snapshot(_on_snapshot)
        return Subscription(watch.unsubscribe)

    def watch_query(self, collection, callback, where=(), order_by=None, descending=False, limit=None):
        def _on_snapshot(col_snapshot, changes, read_time):
            callback([_snapshot_to_dict(doc) for doc in col_snapshot])

        query = self._build_query(collection, where, order_by, descending, limit)
        watch = query.on_snapshot(_on_snapshot)
        return Subscription(watch.unsubscribe)


class FirestoreWriteBatch(WriteBatch):
    def __init__(self, store: FirestoreDocumentStore):
        self._store = store
        self._batch = store._client().batch()

    def create(self, collection, data, doc_id=None):
        ref = self._store._ref(collection, doc_id)
        self._batch.create(ref, _to_firestore(data))
        return ref.id

    def set(self, collection, doc_id, data, merge=False):
        self._batch.set(self._store._ref(collection, doc_id), _to_firestore(data), merge=merge)

    def update(self, collection, doc_id, data):
        self._batch.update(self._store._ref(collection, doc_id), _to_firestore(data))

    def delete(self, collection, doc_id):
        self._batch.delete(self._store._ref(collection, doc_id))

    def commit(self):
        try:
            self._batch.commit()
        except google_exceptions.NotFound as e:
            raise DocumentNotFound(str(e)) from e
        except google_exceptions.Conflict as e:
            raise DocumentExists(str(e)) from e
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"batch commit failed: {e}") from e
