"""
Query descriptors, entries, filters and orders.

A Query is built by the caller and never modified by the datastore.
Filters and orders are plain Python objects: they are always evaluated
in memory over the result stream, never translated to SQL.
"""

import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

from pgds.errors import InvalidQueryError
from pgds.core.key import Key


# =============================================================================
# Entries
# =============================================================================


@dataclass
class Entry:
    """
    A single query result row.

    Which fields are set depends on the query projection:
    keys-only sets ``key``; keys-only with sizes sets ``key`` and ``size``;
    a full query sets ``key`` and ``value`` (and ``size`` when sizes were
    requested).
    """
    key: str
    value: Optional[bytes] = None
    size: Optional[int] = None


@dataclass
class Result:
    """An entry or a terminal error."""
    entry: Optional[Entry] = None
    error: Optional[Exception] = None


# =============================================================================
# Filters
# =============================================================================


class Op(str, Enum):
    EQUAL = "=="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="


_OPERATORS = {
    Op.EQUAL: operator.eq,
    Op.NOT_EQUAL: operator.ne,
    Op.GREATER_THAN: operator.gt,
    Op.GREATER_THAN_OR_EQUAL: operator.ge,
    Op.LESS_THAN: operator.lt,
    Op.LESS_THAN_OR_EQUAL: operator.le,
}


class Filter(ABC):
    """Predicate over entries; an entry is kept when ``matches`` is True."""

    @abstractmethod
    def matches(self, entry: Entry) -> bool:
        ...

    def __call__(self, entry: Entry) -> bool:
        return self.matches(entry)


class FilterKeyCompare(Filter):
    """Compare the entry key against a fixed key string."""

    def __init__(self, op: Op, key: str):
        self.op = Op(op)
        self.key = key
        self._cmp = _OPERATORS[self.op]

    def matches(self, entry: Entry) -> bool:
        return self._cmp(entry.key, self.key)

    def __repr__(self) -> str:
        return f"KEY {self.op.value} {self.key!r}"


class FilterValueCompare(Filter):
    """
    Compare the entry value against fixed bytes.

    Entries without a value (keys-only queries) never match.
    """

    def __init__(self, op: Op, value: bytes):
        self.op = Op(op)
        self.value = value
        self._cmp = _OPERATORS[self.op]

    def matches(self, entry: Entry) -> bool:
        if entry.value is None:
            return False
        return self._cmp(bytes(entry.value), self.value)

    def __repr__(self) -> str:
        return f"VALUE {self.op.value} {self.value!r}"


class FilterKeyPrefix(Filter):
    """Keep entries whose key string starts with ``prefix``."""

    def __init__(self, prefix: str):
        self.prefix = prefix

    def matches(self, entry: Entry) -> bool:
        return entry.key.startswith(self.prefix)

    def __repr__(self) -> str:
        return f"PREFIX({self.prefix!r})"


class FilterFunction(Filter):
    """Wrap an arbitrary ``entry -> bool`` callable."""

    def __init__(self, fn: Callable[[Entry], bool]):
        self.fn = fn

    def matches(self, entry: Entry) -> bool:
        return bool(self.fn(entry))

    def __repr__(self) -> str:
        return f"FN({getattr(self.fn, '__name__', 'anonymous')})"


# =============================================================================
# Orders
# =============================================================================


def _compare(a, b) -> int:
    return (a > b) - (a < b)


class Order(ABC):
    """Comparator over entries: negative, zero or positive like ``cmp``."""

    @abstractmethod
    def compare(self, a: Entry, b: Entry) -> int:
        ...


class OrderByKey(Order):
    def compare(self, a: Entry, b: Entry) -> int:
        ka, kb = Key(a.key), Key(b.key)
        if ka == kb:
            return 0
        return -1 if ka < kb else 1

    def __repr__(self) -> str:
        return "KEY"


class OrderByKeyDescending(OrderByKey):
    def compare(self, a: Entry, b: Entry) -> int:
        return -super().compare(a, b)

    def __repr__(self) -> str:
        return "desc(KEY)"


class OrderByValue(Order):
    """Bytewise value order; entries without a value sort first."""

    def compare(self, a: Entry, b: Entry) -> int:
        va = bytes(a.value) if a.value is not None else b""
        vb = bytes(b.value) if b.value is not None else b""
        return _compare(va, vb)

    def __repr__(self) -> str:
        return "VALUE"


class OrderByValueDescending(OrderByValue):
    def compare(self, a: Entry, b: Entry) -> int:
        return -super().compare(a, b)

    def __repr__(self) -> str:
        return "desc(VALUE)"


class OrderByFunction(Order):
    """Wrap an arbitrary ``(a, b) -> int`` comparator."""

    def __init__(self, fn: Callable[[Entry, Entry], int]):
        self.fn = fn

    def compare(self, a: Entry, b: Entry) -> int:
        return self.fn(a, b)

    def __repr__(self) -> str:
        return f"FN({getattr(self.fn, '__name__', 'anonymous')})"


def compare_entries(orders: Tuple[Order, ...], a: Entry, b: Entry) -> int:
    """Apply ``orders`` in turn; the first non-zero comparison wins."""
    for order in orders:
        result = order.compare(a, b)
        if result != 0:
            return result
    return 0


# =============================================================================
# Query
# =============================================================================


@dataclass(frozen=True)
class Query:
    """
    Immutable query descriptor.

    Attributes:
        prefix: Only return keys below this key ("" or "/" for all)
        filters: Predicates, all of which must accept an entry
        orders: Comparators applied in sequence
        limit: Maximum number of results (0 = unbounded)
        offset: Number of results to skip (0 = none)
        keys_only: Do not return values
        returns_sizes: Return value sizes
    """
    prefix: str = ""
    filters: Tuple[Filter, ...] = field(default_factory=tuple)
    orders: Tuple[Order, ...] = field(default_factory=tuple)
    limit: int = 0
    offset: int = 0
    keys_only: bool = False
    returns_sizes: bool = False

    def __post_init__(self):
        # Accept lists for convenience, store tuples
        object.__setattr__(self, "filters", tuple(self.filters))
        object.__setattr__(self, "orders", tuple(self.orders))

        if not isinstance(self.limit, int) or self.limit < 0:
            raise InvalidQueryError(f"limit must be a non-negative int, got {self.limit!r}")
        if not isinstance(self.offset, int) or self.offset < 0:
            raise InvalidQueryError(f"offset must be a non-negative int, got {self.offset!r}")
        for f in self.filters:
            if not isinstance(f, Filter):
                raise InvalidQueryError(f"filter must be a Filter, got {type(f).__name__}")
        for o in self.orders:
            if not isinstance(o, Order):
                raise InvalidQueryError(f"order must be an Order, got {type(o).__name__}")

    @property
    def needs_naive(self) -> bool:
        """True when filters or orders force in-memory post-processing."""
        return bool(self.filters) or bool(self.orders)

    def __str__(self) -> str:
        parts = ["SELECT keys" if self.keys_only else "SELECT entries"]
        if self.returns_sizes:
            parts.append("WITH sizes")
        if self.prefix:
            parts.append(f"FROM {self.prefix!r}")
        if self.filters:
            parts.append("FILTER [" + ", ".join(repr(f) for f in self.filters) + "]")
        if self.orders:
            parts.append("ORDER [" + ", ".join(repr(o) for o in self.orders) + "]")
        if self.offset:
            parts.append(f"OFFSET {self.offset}")
        if self.limit:
            parts.append(f"LIMIT {self.limit}")
        return " ".join(parts)
