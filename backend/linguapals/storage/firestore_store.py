"""Firestore-backed document store."""

import asyncio
import copy
import inspect
import logging
from typing import Any, Dict, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from ..core.exceptions import DocumentNotFoundError, StorageError
from .interface import (
    DELETE,
    ArrayRemove,
    ArrayUnion,
    ChangeCallback,
    Document,
    DocumentStore,
    MutateFn,
    Unsubscribe,
)

logger = logging.getLogger(__name__)


def _to_firestore_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    converted = {}
    for name, value in fields.items():
        if isinstance(value, ArrayUnion):
            converted[name] = firestore.ArrayUnion(list(value.values))
        elif isinstance(value, ArrayRemove):
            converted[name] = firestore.ArrayRemove(list(value.values))
        else:
            converted[name] = value
    return converted


class FirestoreDocumentStore(DocumentStore):
    """
    Document store on Google Cloud Firestore.

    The synchronous client runs in worker threads; array transforms map to
    Firestore's server-side ArrayUnion/ArrayRemove and mutate() runs in a
    Firestore transaction (retried by the client on contention).
    """

    def __init__(self, project: Optional[str] = None, client: Optional[Any] = None):
        if client is None and not project:
            raise RuntimeError("GCP project is required for the Firestore document store")
        self._client = client or firestore.Client(project=project)

    def _ref(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Firestore call failed: {e}")
            raise StorageError(str(e)) from e

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        snap = await self._run(self._ref(collection, doc_id).get)
        if not snap or not snap.exists:
            return None
        return snap.to_dict() or {}

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        await self._run(self._ref(collection, doc_id).set, data)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._ref(collection, doc_id).update, _to_firestore_fields(fields))
        except google_exceptions.NotFound as e:
            raise DocumentNotFoundError(collection, doc_id) from e
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Firestore update of {collection}/{doc_id} failed: {e}")
            raise StorageError(str(e)) from e

    async def delete(self, collection: str, doc_id: str) -> bool:
        def _delete() -> bool:
            ref = self._ref(collection, doc_id)
            snap = ref.get()
            if not snap or not snap.exists:
                return False
            ref.delete()
            return True

        return await self._run(_delete)

    async def mutate(self, collection: str, doc_id: str, fn: MutateFn) -> Optional[Document]:
        ref = self._ref(collection, doc_id)

        @firestore.transactional
        def _apply(transaction) -> Optional[Document]:
            snap = ref.get(transaction=transaction)
            current = (snap.to_dict() or {}) if snap.exists else None
            result = fn(copy.deepcopy(current) if current is not None else None)
            if result is None:
                return current
            if result is DELETE:
                if current is not None:
                    transaction.delete(ref)
                return None
            transaction.set(ref, result)
            return result

        return await self._run(_apply, self._client.transaction())

    async def subscribe(self, collection: str, doc_id: str, callback: ChangeCallback) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        states: asyncio.Queue = asyncio.Queue()

        # Single consumer keeps deliveries in snapshot order.
        async def _consume() -> None:
            while True:
                state = await states.get()
                try:
                    result = callback(state)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.warning("Document change listener raised", exc_info=True)

        # Runs on the Firestore watch thread; hop back onto the event loop.
        def _on_snapshot(doc_snapshots, changes, read_time) -> None:
            snap = doc_snapshots[0] if doc_snapshots else None
            state = (snap.to_dict() or {}) if snap is not None and snap.exists else None
            loop.call_soon_threadsafe(states.put_nowait, state)

        consumer = loop.create_task(_consume())
        try:
            watch = await self._run(self._ref(collection, doc_id).on_snapshot, _on_snapshot)
        except Exception:
            consumer.cancel()
            raise
        stopped = False

        def unsubscribe() -> None:
            nonlocal stopped
            if not stopped:
                stopped = True
                watch.unsubscribe()
                consumer.cancel()

        return unsubscribe
