"""
Batched writes.

A SQLBatch queues put/delete statements and sends them in submission order
over a single pooled connection when committed.

PostgreSQL:
    The statements are rendered client-side and joined into one
    multi-statement string, sent in a single round trip. The server runs a
    multi-statement simple query as one implicit transaction, so a failing
    statement rolls back the whole batch and a plain BackendError is raised.

SQLite:
    Statements run one by one in autocommit mode with no surrounding
    transaction, so each one is durable as soon as it executes. Commit
    stops at the first failing statement:
    - if it is the first statement, nothing was applied and a plain
      BackendError is raised
    - otherwise the statements before it stay applied and a
      PartialBatchError reports how many did
    Statements after the failing one are never sent.
"""

from typing import List

from pgds.backend.pool import ConnectionPool
from pgds.errors import BackendError, BatchCommittedError, PartialBatchError
from pgds.core.interface import Batch, KeyLike
from pgds.core.key import Key
from pgds.core.statements import Statement, StatementBuilder
from pgds.utils.logger import get_logger

logger = get_logger("batch")


class SQLBatch(Batch):
    """
    Ordered put/delete operations for one commit.

    Not safe for concurrent use: a batch belongs to the caller that created
    it until commit() returns. After commit, the batch is inert.
    """

    def __init__(self, pool: ConnectionPool, builder: StatementBuilder):
        self._pool = pool
        self._builder = builder
        self._statements: List[Statement] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._statements)

    @property
    def committed(self) -> bool:
        return self._committed

    def _check_open(self):
        if self._committed:
            raise BatchCommittedError("batch already committed")

    def put(self, key: KeyLike, value: bytes) -> None:
        self._check_open()
        self._statements.append(self._builder.put(Key(key), value))

    def delete(self, key: KeyLike) -> None:
        self._check_open()
        self._statements.append(self._builder.delete(Key(key)))

    def commit(self) -> None:
        """
        Execute every queued statement in order.

        Raises:
            BatchCommittedError: If the batch was already committed
            BackendError: If nothing was applied
            PartialBatchError: If a later statement fails (SQLite only)
        """
        self._check_open()
        self._committed = True
        statements, self._statements = self._statements, []
        total = len(statements)
        if total == 0:
            return

        with self._pool.connection() as conn:
            cursor = conn.cursor()
            try:
                if self._pool.dialect.joins_batches:
                    self._send_joined(cursor, statements)
                else:
                    self._send_each(cursor, statements)
            finally:
                cursor.close()

        logger.debug(f"Committed batch of {total} statements")

    def _send_joined(self, cursor, statements: List[Statement]) -> None:
        """Send every statement in one multi-statement round trip."""
        errors = self._pool.dialect.errors
        try:
            sql = b";\n".join(cursor.mogrify(stmt.sql, stmt.params) for stmt in statements)
            cursor.execute(sql)
        except errors as exc:
            logger.error(f"Batch of {len(statements)} statements failed, none applied: {exc}")
            raise BackendError(str(exc), cause=exc) from exc

    def _send_each(self, cursor, statements: List[Statement]) -> None:
        """Execute statements one at a time, stopping at the first failure."""
        errors = self._pool.dialect.errors
        total = len(statements)
        for index, stmt in enumerate(statements):
            try:
                cursor.execute(stmt.sql, stmt.params)
            except errors as exc:
                if index == 0:
                    logger.error(f"Batch failed on first statement: {exc}")
                    raise BackendError(str(exc), cause=exc) from exc
                logger.warning(
                    f"Batch partially applied: {index}/{total} statements "
                    f"before failure: {exc}"
                )
                raise PartialBatchError(
                    f"batch stopped at statement {index} of {total}: {exc}",
                    applied=index,
                    total=total,
                    cause=exc,
                ) from exc
