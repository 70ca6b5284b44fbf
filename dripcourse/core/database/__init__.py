"""Database connection module."""

from dripcourse.core.database.async_cassandra import (
    AsyncCassandraConnection,
    init_async_cassandra,
)


__all__ = [
    "AsyncCassandraConnection",
    "init_async_cassandra",
]
