"""Persistence layer for PCI Tracker.

Postgres-backed stores when PCITRACK_DATABASE_URL is configured, in-memory
stores otherwise.
"""

from pcitrack.persistence.documents import (
    DocumentQuery,
    DocumentStore,
    InMemoryDocumentStore,
    PostgresDocumentStore,
)
from pcitrack.persistence.users import (
    InMemoryUserDirectory,
    PostgresUserDirectory,
    UserDirectory,
)

__all__ = [
    "DocumentQuery",
    "DocumentStore",
    "InMemoryDocumentStore",
    "InMemoryUserDirectory",
    "PostgresDocumentStore",
    "PostgresUserDirectory",
    "UserDirectory",
]
