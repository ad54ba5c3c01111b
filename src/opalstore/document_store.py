"""JSON-file document database for opalstore.

Each collection lives in ``<data_dir>/<collection>.json``. Writes take an
exclusive lock and replace the file atomically. When no data directory is
configured, reads return empty results and writes raise
BackendNotConfiguredError.
"""

import copy
import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .errors import BackendNotConfiguredError, InvalidSchemaVersionError
from .models import _generate_id

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

PRODUCTS = "products"
CATEGORIES = "categories"
ORDERS = "orders"
STORE_SETTINGS = "store_settings"


class DocumentNotFoundError(KeyError):
    """Raised by update() when the document doesn't exist."""


class DocumentStore:
    """Manages documents grouped into named collections."""

    def __init__(self, data_dir: Path | None):
        """
        Initialize DocumentStore.

        Args:
            data_dir: Directory holding the collection files, or None when
                the backend is not configured.
        """
        self.data_dir = data_dir

    @property
    def configured(self) -> bool:
        return self.data_dir is not None

    def _collection_path(self, collection: str) -> Path:
        assert self.data_dir is not None
        return self.data_dir / f"{collection}.json"

    def _require_configured(self, operation: str) -> None:
        if not self.configured:
            raise BackendNotConfiguredError(operation)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock for read-modify-write operations."""
        assert self.data_dir is not None
        self.data_dir.mkdir(parents=True, exist_ok=True)
        lock_path = self.data_dir / ".documents.lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load(self, collection: str) -> list[dict[str, Any]]:
        path = self._collection_path(collection)
        if not path.exists():
            return []

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)
        return data.get("documents", [])

    def _save(self, collection: str, documents: list[dict[str, Any]]) -> None:
        """Save a collection atomically (write to temp, then rename)."""
        assert self.data_dir is not None
        self.data_dir.mkdir(parents=True, exist_ok=True)

        data = {"schema_version": SCHEMA_VERSION, "documents": documents}
        fd, temp_path = tempfile.mkstemp(
            dir=self.data_dir, prefix=f".{collection}_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(temp_path, self._collection_path(collection))
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    # --- Reads: degrade to empty when unconfigured ---

    def list_documents(self, collection: str) -> list[dict[str, Any]]:
        """Return copies of all documents in a collection."""
        if not self.configured:
            logger.warning("Document store not configured; '%s' reads as empty", collection)
            return []
        return copy.deepcopy(self._load(collection))

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a document by ID, or None."""
        for doc in self.list_documents(collection):
            if doc.get("id") == doc_id:
                return doc
        return None

    def find(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        """Return documents whose top-level field equals value."""
        return [doc for doc in self.list_documents(collection) if doc.get(field) == value]

    # --- Writes: fail loudly when unconfigured ---

    def insert(self, collection: str, document: dict[str, Any]) -> str:
        """
        Insert a document and return its ID.

        A document carrying an "id" keeps it; otherwise one is generated.
        """
        self._require_configured(f"write to '{collection}'")
        doc = copy.deepcopy(document)
        doc_id = doc.get("id") or _generate_id()
        doc["id"] = doc_id
        with self._lock():
            documents = [d for d in self._load(collection) if d.get("id") != doc_id]
            documents.append(doc)
            self._save(collection, documents)
        return doc_id

    def insert_unique(self, collection: str, document: dict[str, Any], field: str) -> str | None:
        """
        Insert a document unless another one already has the same field value.

        The check and the write happen under one lock.

        Returns:
            The new document ID, or None if the value is already taken.
        """
        self._require_configured(f"write to '{collection}'")
        doc = copy.deepcopy(document)
        doc_id = doc.get("id") or _generate_id()
        doc["id"] = doc_id
        with self._lock():
            documents = self._load(collection)
            if any(d.get(field) == doc.get(field) for d in documents):
                return None
            documents.append(doc)
            self._save(collection, documents)
        return doc_id

    def put(self, collection: str, doc_id: str, document: dict[str, Any]) -> None:
        """Create or fully replace the document with this ID."""
        self._require_configured(f"write to '{collection}'")
        doc = copy.deepcopy(document)
        doc["id"] = doc_id
        with self._lock():
            documents = self._load(collection)
            for i, existing in enumerate(documents):
                if existing.get("id") == doc_id:
                    documents[i] = doc
                    break
            else:
                documents.append(doc)
            self._save(collection, documents)

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """
        Merge changes into an existing document and return the result.

        Raises:
            DocumentNotFoundError: If the document doesn't exist.
        """
        self._require_configured(f"update '{collection}'")
        with self._lock():
            documents = self._load(collection)
            for doc in documents:
                if doc.get("id") == doc_id:
                    doc.update(copy.deepcopy(changes))
                    doc["id"] = doc_id
                    self._save(collection, documents)
                    return copy.deepcopy(doc)
        raise DocumentNotFoundError(doc_id)

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it didn't exist."""
        self._require_configured(f"delete from '{collection}'")
        with self._lock():
            documents = self._load(collection)
            remaining = [d for d in documents if d.get("id") != doc_id]
            if len(remaining) == len(documents):
                return False
            self._save(collection, remaining)
        return True

    def replace_all(self, collection: str, documents: list[dict[str, Any]]) -> None:
        """Replace the whole collection in one atomic file write."""
        self._require_configured(f"replace '{collection}'")
        with self._lock():
            self._save(collection, copy.deepcopy(documents))
