"""Datastore core: keys, queries, results, statements, batches"""
from pgds.errors import (
    DatastoreError,
    NotFoundError,
    BackendError,
    PoolExhaustedError,
    SequenceError,
    PartialBatchError,
    InvalidQueryError,
    BatchCommittedError,
)
from pgds.core.key import Key
from pgds.core.query import (
    Entry,
    Result,
    Query,
    Op,
    Filter,
    FilterKeyCompare,
    FilterValueCompare,
    FilterKeyPrefix,
    FilterFunction,
    Order,
    OrderByKey,
    OrderByKeyDescending,
    OrderByValue,
    OrderByValueDescending,
    OrderByFunction,
)
from pgds.core.results import Results
from pgds.core.statements import StatementBuilder, QueryPlan, Projection
from pgds.core.config import DatastoreOptions, load_options, load_connection_string
from pgds.core.interface import Datastore, Batching, Batch
from pgds.core.batch import SQLBatch
from pgds.core.datastore import SQLDatastore, open_datastore

__all__ = [
    "DatastoreError",
    "NotFoundError",
    "BackendError",
    "PoolExhaustedError",
    "SequenceError",
    "PartialBatchError",
    "InvalidQueryError",
    "BatchCommittedError",
    "Key",
    "Entry",
    "Result",
    "Query",
    "Op",
    "Filter",
    "FilterKeyCompare",
    "FilterValueCompare",
    "FilterKeyPrefix",
    "FilterFunction",
    "Order",
    "OrderByKey",
    "OrderByKeyDescending",
    "OrderByValue",
    "OrderByValueDescending",
    "OrderByFunction",
    "Results",
    "StatementBuilder",
    "QueryPlan",
    "Projection",
    "DatastoreOptions",
    "load_options",
    "load_connection_string",
    "Datastore",
    "Batching",
    "Batch",
    "SQLBatch",
    "SQLDatastore",
    "open_datastore",
]
