"""
Storage Services Package

Provides the abstract table storage interface and its implementations.
The in-memory backend serves tests and local use; Google Sheets is the
hosted backend. Both are swappable without touching business logic.
"""

from docengine.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    Filter,
    NotFoundError,
    StorageError,
    StorageInterface,
    eq,
    gte,
    is_in,
    lt,
    lte,
    neq,
)
from docengine.services.storage.memory import InMemoryStorage
from docengine.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsStorage,
)

__all__ = [
    # Interface
    "StorageInterface",
    "Filter",
    "eq",
    "gte",
    "is_in",
    "lt",
    "lte",
    "neq",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsStorage",
    "InMemoryStorage",
]
