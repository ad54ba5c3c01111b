"""Client-scoped cart storage for opalstore.

The cart is a list of (product_id, color, size) -> quantity selections,
serialised as one JSON blob under a single key of an injected key-value
store. A missing or unreadable blob reads as an empty cart.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from .models import CartEntry

logger = logging.getLogger(__name__)

CART_KEY = "opal_cart"


class KeyValueStore(Protocol):
    """Minimal persistent string store, like a browser's localStorage."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local key-value store for tests and server-side rendering."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class FileKeyValueStore:
    """Key-value store persisted as one JSON object on disk."""

    def __init__(self, path: Path):
        self.path = path

    @contextmanager
    def _lock(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = self.path.parent / f".{self.path.name}.lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning("Unreadable key-value file %s; treating as empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock():
            data = self._load()
            data[key] = value
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.stem}_", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                    f.write("\n")
                os.replace(temp_path, self.path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise


def _norm(value: str | None) -> str:
    return (value or "").strip()


def _matches(entry: CartEntry, product_id: str, color: str | None, size: str | None) -> bool:
    return entry.key == (product_id, _norm(color), _norm(size))


class CartStore:
    """
    One client's cart.

    Entries that differ only in color or size are separate lines. Every
    mutation persists the whole entry list synchronously.
    """

    def __init__(self, backend: KeyValueStore, key: str = CART_KEY):
        self.backend = backend
        self.key = key

    def _read(self) -> list[CartEntry]:
        raw = self.backend.get_item(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError("cart blob is not a list")
            return [CartEntry.from_dict(item) for item in data]
        except (ValueError, TypeError, KeyError, AttributeError):
            logger.warning("Discarding unreadable cart under key '%s'", self.key)
            return []

    def _write(self, entries: list[CartEntry]) -> None:
        self.backend.set_item(self.key, json.dumps([e.to_dict() for e in entries]))

    def add(
        self,
        product_id: str,
        qty: int = 1,
        color: str | None = None,
        size: str | None = None,
    ) -> list[CartEntry]:
        """Add qty to the matching line, or append a new line."""
        entries = self._read()
        for entry in entries:
            if _matches(entry, product_id, color, size):
                entry.quantity = (entry.quantity or 1) + qty
                break
        else:
            entries.append(CartEntry(product_id=product_id, quantity=qty, color=color, size=size))
        self._write(entries)
        return entries

    def remove(
        self,
        product_id: str,
        color: str | None = None,
        size: str | None = None,
    ) -> list[CartEntry]:
        entries = [e for e in self._read() if not _matches(e, product_id, color, size)]
        self._write(entries)
        return entries

    def set_quantity(
        self,
        product_id: str,
        qty: int,
        color: str | None = None,
        size: str | None = None,
    ) -> list[CartEntry]:
        """Set the line's quantity. A quantity below 1 removes the line."""
        if qty < 1:
            return self.remove(product_id, color=color, size=size)
        entries = self._read()
        for entry in entries:
            if _matches(entry, product_id, color, size):
                entry.quantity = qty
                break
        else:
            entries.append(CartEntry(product_id=product_id, quantity=qty, color=color, size=size))
        self._write(entries)
        return entries

    def list(self) -> list[CartEntry]:
        return self._read()

    def count(self) -> int:
        """Total quantity across all lines, for display badges."""
        return sum(e.quantity or 1 for e in self._read())

    def clear(self) -> list[CartEntry]:
        self._write([])
        return []
