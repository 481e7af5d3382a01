"""
Lazy query result sequences.

A Results object is a forward-only, single-pass stream of Result items.
It is backed by a generator and a close callback. The close callback
releases whatever the stream holds open (a database cursor and its pooled
connection) and runs exactly once: on explicit close(), on exhaustion, or
after a terminal error.

Pull contract:
    result, more = results.next_sync()
    - more=True, result.entry set    -> an entry
    - more=True, result.error set    -> terminal error, next pull ends
    - more=False                     -> exhausted (and closed)

The naive_* stages wrap an upstream Results in a new Results whose close()
closes the upstream. Error results pass through every stage untouched.
"""

import functools
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from pgds.errors import SequenceError
from pgds.core.query import Entry, Filter, Order, Query, Result, compare_entries
from pgds.utils.logger import get_logger

logger = get_logger("results")


class Results:
    """Single-pass result sequence for a query."""

    def __init__(
        self,
        query: Query,
        source: Iterable[Result],
        close: Optional[Callable[[], None]] = None,
    ):
        self.query = query
        self._source: Iterator[Result] = iter(source)
        self._close_fn = close
        self._closed = False
        self._done = False

    @property
    def closed(self) -> bool:
        return self._closed

    def next_sync(self) -> Tuple[Result, bool]:
        """Pull the next result. Returns (Result(), False) when exhausted."""
        if self._done:
            return Result(), False
        try:
            result = next(self._source)
        except StopIteration:
            self._done = True
            self.close()
            return Result(), False
        if result.error is not None:
            self._done = True
            self.close()
        return result, True

    def __iter__(self) -> Iterator[Result]:
        while True:
            result, more = self.next_sync()
            if not more:
                return
            yield result

    def rest(self) -> List[Entry]:
        """Drain the remaining entries, raising the terminal error if any."""
        entries = []
        for result in self:
            if result.error is not None:
                raise result.error
            entries.append(result.entry)
        return entries

    def close(self) -> None:
        """Release the underlying resources. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._done = True
        close_source = getattr(self._source, "close", None)
        if close_source is not None:
            close_source()
        if self._close_fn is not None:
            self._close_fn()

    def __enter__(self) -> "Results":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def results_from_list(query: Query, entries: Sequence[Entry]) -> Results:
    return Results(query, (Result(entry=e) for e in entries))


# =============================================================================
# Cursor-backed results
# =============================================================================


def _sequence_error(exc: Exception) -> Result:
    logger.error(f"Cursor failed mid-iteration: {exc}")
    error = SequenceError(str(exc), cause=exc)
    error.__cause__ = exc
    return Result(error=error)


def cursor_results(
    query: Query,
    cursor: Any,
    decode: Callable[[Sequence[Any]], Entry],
    errors: Tuple[type, ...],
    release: Callable[[], None],
) -> Results:
    """
    Stream rows from an executed DB-API cursor.

    Args:
        query: The query the rows answer
        cursor: Executed cursor to fetch from
        decode: Turns one row into an Entry (per projection)
        errors: Driver exception types to convert into a SequenceError
        release: Called once when the sequence closes (after the cursor
            is closed), to hand the connection back
    """

    def rows() -> Iterator[Result]:
        try:
            fetch = iter(cursor)
        except errors as exc:
            yield _sequence_error(exc)
            return
        while True:
            try:
                row = next(fetch)
            except StopIteration:
                return
            except errors as exc:
                yield _sequence_error(exc)
                return
            yield Result(entry=decode(row))

    def close() -> None:
        try:
            cursor.close()
        except errors as exc:
            logger.debug(f"Ignoring error closing cursor: {exc}")
        finally:
            release()

    return Results(query, rows(), close)


# =============================================================================
# Naive post-processing stages
# =============================================================================


def naive_filter(results: Results, flt: Filter) -> Results:
    """Keep entries accepted by ``flt``."""

    def stage() -> Iterator[Result]:
        for result in results:
            if result.error is not None or flt.matches(result.entry):
                yield result

    return Results(results.query, stage(), results.close)


def naive_order(results: Results, orders: Sequence[Order]) -> Results:
    """
    Sort entries by ``orders``.

    This stage buffers the entire upstream before yielding anything, so a
    query with orders holds every matching entry in memory. The sort is
    stable: entries that compare equal keep their upstream order.
    """
    orders = tuple(orders)
    if not orders:
        return results

    def stage() -> Iterator[Result]:
        buffered: List[Entry] = []
        for result in results:
            if result.error is not None:
                yield result
                return
            buffered.append(result.entry)
        key = functools.cmp_to_key(lambda a, b: compare_entries(orders, a, b))
        for entry in sorted(buffered, key=key):
            yield Result(entry=entry)

    return Results(results.query, stage(), results.close)


def naive_offset(results: Results, offset: int) -> Results:
    """Skip the first ``offset`` entries."""
    if offset <= 0:
        return results

    def stage() -> Iterator[Result]:
        skipped = 0
        for result in results:
            if result.error is None and skipped < offset:
                skipped += 1
                continue
            yield result

    return Results(results.query, stage(), results.close)


def naive_limit(results: Results, limit: int) -> Results:
    """
    Yield at most ``limit`` entries (0 = unbounded).

    The upstream is closed as soon as the last entry is pulled, so the
    cursor is released even if the caller never pulls again.
    """
    if limit <= 0:
        return results

    def stage() -> Iterator[Result]:
        count = 0
        for result in results:
            if result.error is not None:
                yield result
                return
            count += 1
            if count >= limit:
                results.close()
                yield result
                return
            yield result

    return Results(results.query, stage(), results.close)
