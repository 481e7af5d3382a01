"""
Abstract datastore interfaces.

A Datastore maps hierarchical keys to byte values. Implementations raise
NotFoundError for absent keys and BackendError for engine failures.
"""

from abc import ABC, abstractmethod
from typing import Union

from pgds.core.key import Key
from pgds.core.query import Query
from pgds.core.results import Results

KeyLike = Union[Key, str]


class Datastore(ABC):
    """Key/value store over hierarchical keys."""

    @abstractmethod
    def get(self, key: KeyLike) -> bytes:
        """
        Retrieve the value stored under ``key``.

        Raises:
            NotFoundError: If the key does not exist
        """

    @abstractmethod
    def has(self, key: KeyLike) -> bool:
        """Return True if a value exists under ``key``."""

    @abstractmethod
    def get_size(self, key: KeyLike) -> int:
        """
        Return the size in bytes of the value under ``key``.

        Raises:
            NotFoundError: If the key does not exist
        """

    @abstractmethod
    def put(self, key: KeyLike, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: KeyLike) -> None:
        """Remove ``key``. Deleting a missing key is not an error."""

    @abstractmethod
    def query(self, query: Query) -> Results:
        """Run ``query``. The caller must close or drain the Results."""

    @abstractmethod
    def sync(self, prefix: KeyLike) -> None:
        """Flush writes under ``prefix`` to durable storage."""

    @abstractmethod
    def close(self) -> None:
        """Release all resources held by the datastore."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class Batch(ABC):
    """Write operations accumulated for a single commit."""

    @abstractmethod
    def put(self, key: KeyLike, value: bytes) -> None:
        pass

    @abstractmethod
    def delete(self, key: KeyLike) -> None:
        pass

    @abstractmethod
    def commit(self) -> None:
        pass


class Batching(Datastore):
    """Datastore that supports batched writes."""

    @abstractmethod
    def batch(self) -> Batch:
        """Create a new, empty batch."""
