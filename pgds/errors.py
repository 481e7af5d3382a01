"""
Datastore error taxonomy.

Callers always get a typed outcome that tells "absent" apart from "broken":

- NotFoundError: the row does not exist (a normal outcome)
- BackendError: the database or driver failed; the driver exception is
  kept as ``cause`` and chained as ``__cause__``
- SequenceError: a failure while iterating query results, delivered as
  the terminal result of the sequence
- PartialBatchError: a batch commit failed after some statements applied
"""

from typing import Optional


class DatastoreError(Exception):
    """Base class for all datastore errors."""


class NotFoundError(DatastoreError, KeyError):
    """No row exists for the requested key."""

    def __init__(self, key: str, size: int = -1):
        super().__init__(key)
        self.key = key
        self.size = size

    def __str__(self) -> str:
        return f"datastore: key not found: {self.key}"


class BackendError(DatastoreError):
    """The backing database reported a failure."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PoolExhaustedError(BackendError):
    """No pooled connection became available within the acquire timeout."""


class SequenceError(BackendError):
    """A query result sequence failed part way through."""


class PartialBatchError(BackendError):
    """
    A batch commit stopped after applying some of its statements.

    Statements ``[0, applied)`` were executed and persisted, statement
    ``failed_index`` raised, and the rest were never sent.
    """

    def __init__(
        self,
        message: str,
        applied: int,
        total: int,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.applied = applied
        self.total = total

    @property
    def failed_index(self) -> int:
        return self.applied


class InvalidQueryError(DatastoreError, ValueError):
    """The query descriptor is malformed (e.g. a negative limit)."""


class BatchCommittedError(DatastoreError):
    """The batch was already committed and cannot be reused."""
