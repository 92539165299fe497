"""Services package."""

from docengine.services.storage import (
    ConnectionError,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsStorage,
    InMemoryStorage,
    NotFoundError,
    StorageError,
    StorageInterface,
)

__all__ = [
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsStorage",
    "InMemoryStorage",
    "NotFoundError",
    "StorageError",
    "StorageInterface",
]
