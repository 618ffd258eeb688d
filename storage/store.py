"""
storage/store.py - Key/collection store.

Collections used by the operator:
- deposits: Deposit.to_dict() keyed by deposit id
- deals:    Deal.to_dict() keyed by deal id
- cache:    singletons (encryption key)

list() returns documents in insertion order; registration order of
deposits depends on it.
"""

import asyncio
import copy
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from core.exceptions import StoreError
from core.logging import get_logger

logger = get_logger(__name__)

Document = dict[str, Any]


class Store(ABC):
    """Async key/collection store."""

    async def init(self) -> None:
        """Open the backend."""

    async def close(self) -> None:
        """Release the backend."""

    @abstractmethod
    async def get(self, collection: str, key: str) -> Document | None:
        """Return the document or None."""

    @abstractmethod
    async def put(self, collection: str, key: str, document: Document) -> None:
        """Insert or replace a document. New keys go to the end of the collection."""

    @abstractmethod
    async def list(self, collection: str) -> list[Document]:
        """All documents of a collection, in insertion order."""

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """Delete a document. Returns False if it did not exist."""

    @abstractmethod
    async def truncate(self, collection: str) -> None:
        """Remove every document of a collection."""


class MemoryStore(Store):
    """
    In-process store.

    Documents are deep-copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = {}

    def _collection(self, collection: str) -> dict[str, Document]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, key: str) -> Document | None:
        document = self._collection(collection).get(key)
        return copy.deepcopy(document) if document is not None else None

    async def put(self, collection: str, key: str, document: Document) -> None:
        self._collection(collection)[key] = copy.deepcopy(document)

    async def list(self, collection: str) -> list[Document]:
        return [copy.deepcopy(d) for d in self._collection(collection).values()]

    async def delete(self, collection: str, key: str) -> bool:
        return self._collection(collection).pop(key, None) is not None

    async def truncate(self, collection: str) -> None:
        self._collection(collection).clear()


class JsonFileStore(MemoryStore):
    """
    Store persisted as one JSON file per collection.

    The whole collection is rewritten on every mutation through a
    temporary file and os.replace, so a crash never leaves a torn file.
    """

    def __init__(self, directory: Path | str):
        super().__init__()
        self.directory = Path(directory)
        self._lock = asyncio.Lock()

    def _path(self, collection: str) -> Path:
        return self.directory / f"{collection}.json"

    async def init(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, encoding="utf-8") as f:
                    documents = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise StoreError(
                    f"Unable to load collection file {path}: {e}",
                    details={"path": str(path)},
                ) from e

            self._collections[path.stem] = dict(documents)

        logger.info(
            "JSON store loaded",
            extra={"context": {
                "directory": str(self.directory),
                "collections": {k: len(v) for k, v in self._collections.items()},
            }},
        )

    def _flush(self, collection: str, documents: dict[str, Document]) -> None:
        path = self._path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(documents, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreError(
                f"Unable to write collection file {path}: {e}",
                details={"path": str(path)},
            ) from e

    # Memory only changes once the new collection file is written

    async def put(self, collection: str, key: str, document: Document) -> None:
        async with self._lock:
            updated = dict(self._collection(collection))
            updated[key] = copy.deepcopy(document)
            self._flush(collection, updated)
            self._collections[collection] = updated

    async def delete(self, collection: str, key: str) -> bool:
        async with self._lock:
            current = self._collection(collection)
            if key not in current:
                return False
            updated = {k: v for k, v in current.items() if k != key}
            self._flush(collection, updated)
            self._collections[collection] = updated
            return True

    async def truncate(self, collection: str) -> None:
        async with self._lock:
            self._flush(collection, {})
            self._collections[collection] = {}


def create_store(path: str | None = None) -> Store:
    """JsonFileStore when a path is configured, otherwise MemoryStore."""
    if path:
        return JsonFileStore(path)
    return MemoryStore()
