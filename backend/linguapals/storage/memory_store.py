"""
In-process Document Store.
Holds documents in a dict; used for tests and single-process development.
"""

import asyncio
import copy
import inspect
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..core.exceptions import DocumentNotFoundError
from .interface import (
    DELETE,
    ChangeCallback,
    Document,
    DocumentStore,
    MutateFn,
    Unsubscribe,
    apply_field_updates,
)

logger = logging.getLogger(__name__)

Key = Tuple[str, str]


class MemoryDocumentStore(DocumentStore):
    """
    Document store backed by process memory.

    Every write to a document is serialized by a per-document asyncio.Lock,
    which makes update() transforms and mutate() atomic for all coroutines
    in this process. Subclasses override _read/_write/_remove to persist
    documents elsewhere while keeping the locking and fan-out.

    Listeners are called in commit order while the document lock is held,
    so a listener must not write to the document it is watching.
    """

    def __init__(self):
        self._documents: Dict[Key, Document] = {}
        self._locks: Dict[Key, asyncio.Lock] = {}
        self._lock_holders: Dict[Key, int] = {}
        self._listeners: Dict[Key, List[ChangeCallback]] = defaultdict(list)

    @asynccontextmanager
    async def _locked(self, key: Key) -> AsyncIterator[None]:
        """Hold the document lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_holders[key] = self._lock_holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[key] -= 1
            if not self._lock_holders[key]:
                del self._lock_holders[key]
                del self._locks[key]

    async def _read(self, collection: str, doc_id: str) -> Optional[Document]:
        document = self._documents.get((collection, doc_id))
        return copy.deepcopy(document) if document is not None else None

    async def _write(self, collection: str, doc_id: str, data: Document) -> None:
        self._documents[(collection, doc_id)] = copy.deepcopy(data)

    async def _remove(self, collection: str, doc_id: str) -> bool:
        return self._documents.pop((collection, doc_id), None) is not None

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return await self._read(collection, doc_id)

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        async with self._locked((collection, doc_id)):
            await self._write(collection, doc_id, data)
            await self._notify(collection, doc_id, data)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        async with self._locked((collection, doc_id)):
            current = await self._read(collection, doc_id)
            if current is None:
                raise DocumentNotFoundError(collection, doc_id)
            updated = apply_field_updates(current, fields)
            await self._write(collection, doc_id, updated)
            await self._notify(collection, doc_id, updated)

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._locked((collection, doc_id)):
            removed = await self._remove(collection, doc_id)
            if removed:
                await self._notify(collection, doc_id, None)
        return removed

    async def mutate(self, collection: str, doc_id: str, fn: MutateFn) -> Optional[Document]:
        async with self._locked((collection, doc_id)):
            current = await self._read(collection, doc_id)
            result = fn(copy.deepcopy(current) if current is not None else None)
            if result is None:
                return current
            if result is DELETE:
                if current is None:
                    return None
                await self._remove(collection, doc_id)
                await self._notify(collection, doc_id, None)
                return None
            await self._write(collection, doc_id, result)
            await self._notify(collection, doc_id, result)
            return copy.deepcopy(result)

    async def subscribe(self, collection: str, doc_id: str, callback: ChangeCallback) -> Unsubscribe:
        key = (collection, doc_id)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key)
            if listeners and callback in listeners:
                listeners.remove(callback)
                if not listeners:
                    del self._listeners[key]

        async with self._locked(key):
            self._listeners[key].append(callback)
            await self._dispatch(callback, await self._read(collection, doc_id))
        return unsubscribe

    async def _notify(self, collection: str, doc_id: str, state: Optional[Document]) -> None:
        for callback in list(self._listeners.get((collection, doc_id), [])):
            await self._dispatch(callback, state)

    @staticmethod
    async def _dispatch(callback: ChangeCallback, state: Optional[Document]) -> None:
        try:
            result = callback(copy.deepcopy(state))
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("Document change listener raised", exc_info=True)
