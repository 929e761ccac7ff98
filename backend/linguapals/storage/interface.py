"""
Document Store Interface - Abstract base class for keyed document stores.
This interface enables switching between in-memory, local-file and
Firestore persistence without touching the group chat services.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


@dataclass(frozen=True)
class ArrayUnion:
    """
    Field transform: append each value not already present in the array.
    Applied atomically by the store, never as a caller read-modify-write.
    """
    values: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class ArrayRemove:
    """Field transform: remove every occurrence of each value from the array."""
    values: List[Any] = field(default_factory=list)


class _DeleteSentinel:
    def __repr__(self) -> str:
        return "DELETE"


# Returned from a mutate() function to delete the document.
DELETE = _DeleteSentinel()

Document = Dict[str, Any]
ChangeCallback = Callable[[Optional[Document]], Union[None, Awaitable[None]]]
MutateFn = Callable[[Optional[Document]], Union[Document, _DeleteSentinel, None]]
Unsubscribe = Callable[[], None]


def apply_field_updates(document: Document, fields: Dict[str, Any]) -> Document:
    """
    Apply a field-level update (including array transforms) to a document copy.

    Args:
        document: Current document contents
        fields: Mapping of field name to new value, ArrayUnion or ArrayRemove

    Returns:
        Document: The updated document (a new dict)
    """
    updated = dict(document)
    for name, value in fields.items():
        if isinstance(value, ArrayUnion):
            current = list(updated.get(name) or [])
            for item in value.values:
                if item not in current:
                    current.append(item)
            updated[name] = current
        elif isinstance(value, ArrayRemove):
            updated[name] = [item for item in (updated.get(name) or []) if item not in value.values]
        else:
            updated[name] = value
    return updated


class DocumentStore(ABC):
    """
    Abstract contract for a keyed document store with atomic field
    transforms and per-document change notification.

    All operations raise StorageError when the backend fails; no retries
    are performed at this layer.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """
        Load a document.

        Returns:
            Optional[Document]: Document contents, or None if it doesn't exist
        """
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or replace a document."""
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """
        Update fields of an existing document.

        Args:
            collection: Collection name
            doc_id: Document id
            fields: Field values; ArrayUnion/ArrayRemove apply atomically

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """
        Delete a document.

        Returns:
            bool: True if a document was removed
        """
        pass

    @abstractmethod
    async def mutate(self, collection: str, doc_id: str, fn: MutateFn) -> Optional[Document]:
        """
        Atomically read, transform and write back a single document.

        ``fn`` receives the current document (or None) and returns the new
        document, ``DELETE`` to remove it, or None to leave it untouched.
        Exceptions raised by ``fn`` abort the mutation without writing and
        propagate to the caller. ``fn`` may run more than once on stores
        that retry optimistic transactions, so it must be side-effect free.

        Returns:
            Optional[Document]: The document state after the mutation
        """
        pass

    @abstractmethod
    async def subscribe(self, collection: str, doc_id: str, callback: ChangeCallback) -> Unsubscribe:
        """
        Watch a document.

        The callback receives the current full document (or None) right
        away and again after every committed change. Rapid changes may be
        coalesced into the latest state.

        Returns:
            Unsubscribe: Idempotent callable that stops further callbacks
        """
        pass
