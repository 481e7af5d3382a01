"""
Datastore configuration.

Options are validated once, when the datastore is opened. The table name
in particular is checked against the identifier allow-list here, because
it is the only value ever formatted into SQL text.

Environment variables (optionally loaded from a .env file):
    PGDS_DSN                 Connection string
    PGDS_TABLE               Table name (default: blocks)
    PGDS_MAX_CONNECTIONS     Pool size (default: 10)
    PGDS_ACQUIRE_TIMEOUT     Seconds to wait for a pooled connection (default: 30)
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pgds.core.statements import validate_table_name


DEFAULT_TABLE = "blocks"
DEFAULT_MAX_CONNECTIONS = 10
DEFAULT_ACQUIRE_TIMEOUT = 30.0

ENV_DSN = "PGDS_DSN"
ENV_TABLE = "PGDS_TABLE"
ENV_MAX_CONNECTIONS = "PGDS_MAX_CONNECTIONS"
ENV_ACQUIRE_TIMEOUT = "PGDS_ACQUIRE_TIMEOUT"


class DatastoreOptions(BaseModel):
    """Named datastore options with their defaults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str = DEFAULT_TABLE
    max_connections: int = Field(default=DEFAULT_MAX_CONNECTIONS, ge=1)
    acquire_timeout: float = Field(default=DEFAULT_ACQUIRE_TIMEOUT, gt=0)

    @field_validator("table")
    @classmethod
    def _check_table(cls, value: str) -> str:
        return validate_table_name(value)


def load_options(env_file: Optional[str] = None, **overrides) -> DatastoreOptions:
    """
    Build options from the environment, then apply explicit overrides.

    Args:
        env_file: Optional .env file to load first (existing environment
            variables take precedence)
        **overrides: Option values that win over the environment

    Returns:
        Validated DatastoreOptions
    """
    load_dotenv(env_file)

    values = {}
    if os.environ.get(ENV_TABLE):
        values["table"] = os.environ[ENV_TABLE]
    if os.environ.get(ENV_MAX_CONNECTIONS):
        values["max_connections"] = os.environ[ENV_MAX_CONNECTIONS]
    if os.environ.get(ENV_ACQUIRE_TIMEOUT):
        values["acquire_timeout"] = os.environ[ENV_ACQUIRE_TIMEOUT]

    values.update({k: v for k, v in overrides.items() if v is not None})
    return DatastoreOptions(**values)


def load_connection_string(env_file: Optional[str] = None) -> Optional[str]:
    """Read the connection string from PGDS_DSN (after loading ``env_file``)."""
    load_dotenv(env_file)
    return os.environ.get(ENV_DSN)
