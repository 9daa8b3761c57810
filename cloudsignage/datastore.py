"""
Document datastore for cloudsignage.

Provides the real-time document store shared by the admin API and the players:
three collections of JSON documents with full-snapshot subscriptions.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from .database import Database, DocumentRepository

MEDIA = "media"
PLAYLISTS = "playlists"
DEVICES = "devices"
COLLECTIONS = (MEDIA, PLAYLISTS, DEVICES)

Snapshot = List[Dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], None]


class DatastoreError(Exception):
    """Base class for datastore failures."""


class UnknownCollectionError(DatastoreError):
    """Raised for a collection name outside COLLECTIONS."""


class DocumentNotFoundError(DatastoreError):
    """Raised when patching or deleting a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class PayloadTooLargeError(DatastoreError):
    """Raised when a document exceeds the store's size limit."""

    def __init__(self, collection: str, doc_id: str, size: int, limit: int):
        super().__init__(f"{collection}/{doc_id} is {size} bytes, limit is {limit} bytes")
        self.collection = collection
        self.doc_id = doc_id
        self.size = size
        self.limit = limit


class Datastore(ABC):
    """Abstract document store with full-snapshot subscriptions."""

    @abstractmethod
    def subscribe(self, collection: str, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Subscribe to a collection.

        The callback receives the full current snapshot immediately and again
        after every change. Returns a function that cancels the subscription.
        """
        ...

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read one document, or None if it does not exist."""
        ...

    @abstractmethod
    def list(self, collection: str) -> Snapshot:
        """Read the full snapshot of a collection."""
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, document: Dict[str, Any]):
        """Create or fully replace a document."""
        ...

    @abstractmethod
    def patch(self, collection: str, doc_id: str, fields: Dict[str, Any]):
        """Merge fields into an existing document. Raises DocumentNotFoundError."""
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str):
        """Delete a document. Raises DocumentNotFoundError."""
        ...

    def close(self):
        """Release resources (stop watchers)."""
        pass


class SqliteDatastore(Datastore):
    """
    Datastore backed by the SQLite database.

    Writes made through this instance are pushed to subscribers right away.
    A watcher thread polls the per-collection revision counters so writes made
    by another process sharing the database file are pushed too.
    """

    def __init__(
        self,
        database: Database,
        max_document_bytes: int = 1048576,
        watch_interval: float = 1.0,
    ):
        """
        Initialize SqliteDatastore.

        Args:
            database: Database instance
            max_document_bytes: Largest accepted JSON document
            watch_interval: Seconds between revision checks; 0 disables the watcher
        """
        self.database = database
        self.repository = DocumentRepository(database)
        self.max_document_bytes = max_document_bytes
        self.watch_interval = watch_interval
        self.logger = logging.getLogger(__name__)

        self._subscribers: Dict[str, List[SnapshotCallback]] = {name: [] for name in COLLECTIONS}
        self._dispatched: Dict[str, int] = {}
        self._dispatch_lock = threading.RLock()

        self._watch_thread: Optional[threading.Thread] = None
        self._watching = False
        self._stop_event = threading.Event()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        self._check_collection(collection)
        return self.repository.get(collection, doc_id)

    def list(self, collection: str) -> Snapshot:
        self._check_collection(collection)
        return self.repository.list(collection)

    # =========================================================================
    # Writes
    # =========================================================================

    def set(self, collection: str, doc_id: str, document: Dict[str, Any]):
        self._check_collection(collection)
        data_json = self._encode(collection, doc_id, document)
        revision = self.repository.upsert(collection, doc_id, data_json)
        self.logger.debug("Set %s/%s (revision %s)", collection, doc_id, revision)
        self._dispatch(collection, revision)

    def patch(self, collection: str, doc_id: str, fields: Dict[str, Any]):
        self._check_collection(collection)

        def merge(current: Dict[str, Any]) -> str:
            current.update(fields)
            return self._encode(collection, doc_id, current)

        revision = self.repository.update_if_exists(collection, doc_id, merge)
        if revision is None:
            raise DocumentNotFoundError(collection, doc_id)
        self.logger.debug("Patched %s/%s fields=%s", collection, doc_id, sorted(fields))
        self._dispatch(collection, revision)

    def delete(self, collection: str, doc_id: str):
        self._check_collection(collection)
        if not self.repository.delete(collection, doc_id):
            raise DocumentNotFoundError(collection, doc_id)
        self.logger.info("Deleted %s/%s", collection, doc_id)
        self._dispatch(collection, self.repository.revisions().get(collection, 0))

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, collection: str, callback: SnapshotCallback) -> Callable[[], None]:
        self._check_collection(collection)
        with self._dispatch_lock:
            # Read the revision before the snapshot so a concurrent write is never lost
            revision = self.repository.revisions().get(collection, 0)
            snapshot = self.repository.list(collection)
            if not self._subscribers[collection]:
                # Existing subscribers may still be owed a push for this revision
                self._dispatched[collection] = max(self._dispatched.get(collection, 0), revision)
            self._subscribers[collection].append(callback)
            self._safe_call(collection, callback, snapshot)

        def unsubscribe():
            with self._dispatch_lock:
                if callback in self._subscribers[collection]:
                    self._subscribers[collection].remove(callback)

        return unsubscribe

    def start(self):
        """Start the background thread that picks up changes from other processes."""
        if self._watching or self.watch_interval <= 0:
            return

        self._watching = True
        self._stop_event.clear()

        def watch():
            while self._watching:
                try:
                    self.poll_changes()
                    self._stop_event.wait(self.watch_interval)
                except Exception as e:
                    self.logger.error("Error in datastore watcher: %s", e, exc_info=True)
                    self._stop_event.wait(5.0)

        self._watch_thread = threading.Thread(target=watch, daemon=True, name="DatastoreWatcher")
        self._watch_thread.start()
        self.logger.info("Datastore watcher started")

    def poll_changes(self):
        """Push snapshots for every collection whose revision moved."""
        for collection, revision in self.repository.revisions().items():
            if collection in self._subscribers:
                self._dispatch(collection, revision)

    def close(self):
        """Stop the watcher thread."""
        self._watching = False
        self._stop_event.set()
        if self._watch_thread and self._watch_thread.is_alive():
            self._watch_thread.join(timeout=2.0)
            if self._watch_thread.is_alive():
                self.logger.warning("Datastore watcher did not stop within timeout")
        self._watch_thread = None

    def _dispatch(self, collection: str, revision: int):
        with self._dispatch_lock:
            if revision <= self._dispatched.get(collection, 0):
                return
            self._dispatched[collection] = revision
            callbacks = list(self._subscribers[collection])
            if not callbacks:
                return
            snapshot = self.repository.list(collection)
            for callback in callbacks:
                self._safe_call(collection, callback, snapshot)

    def _safe_call(self, collection: str, callback: SnapshotCallback, snapshot: Snapshot):
        try:
            # Each subscriber gets its own copy so one cannot mutate another's view
            callback(json.loads(json.dumps(snapshot)))
        except Exception as e:
            self.logger.error("Subscriber for %s failed: %s", collection, e, exc_info=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_collection(self, collection: str):
        if collection not in COLLECTIONS:
            raise UnknownCollectionError(f"Unknown collection: {collection}")

    def _encode(self, collection: str, doc_id: str, document: Dict[str, Any]) -> str:
        data_json = json.dumps(document, ensure_ascii=False)
        size = len(data_json.encode("utf-8"))
        if size > self.max_document_bytes:
            raise PayloadTooLargeError(collection, doc_id, size, self.max_document_bytes)
        return data_json
