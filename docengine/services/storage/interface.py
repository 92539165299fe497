"""
Abstract Storage Interface

DESIGN DECISION: The engine never talks to a database directly.
It speaks to a small table-oriented interface so that:
1. Any relational store (or Google Sheets) can back it
2. In-memory storage can be used for testing
3. Caching layers can be added transparently
4. Business logic stays decoupled from the storage implementation

The interface is intentionally simple - we're not building a full ORM.
Rows are flat dicts of JSON-compatible values; filters are equality,
range and membership comparisons combined with AND.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Sequence
from uuid import UUID


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


OPERATORS = ("eq", "neq", "lt", "lte", "gt", "gte", "in")


@dataclass(frozen=True)
class Filter:
    """One `field <op> value` condition."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, row: dict) -> bool:
        """Evaluate this condition against a storage row."""
        actual = normalize_value(row.get(self.field))

        if self.op == "in":
            candidates = [normalize_value(v) for v in self.value]
            return any(_equal(actual, c) for c in candidates)

        expected = normalize_value(self.value)
        if self.op == "eq":
            return _equal(actual, expected)
        if self.op == "neq":
            return not _equal(actual, expected)

        # Range comparisons never match missing values
        if actual is None or expected is None:
            return False
        left, right = _comparable(actual, expected)
        if self.op == "lt":
            return left < right
        if self.op == "lte":
            return left <= right
        if self.op == "gt":
            return left > right
        return left >= right


def eq(field: str, value: Any) -> Filter:
    return Filter(field, "eq", value)


def neq(field: str, value: Any) -> Filter:
    return Filter(field, "neq", value)


def lte(field: str, value: Any) -> Filter:
    return Filter(field, "lte", value)


def lt(field: str, value: Any) -> Filter:
    return Filter(field, "lt", value)


def gte(field: str, value: Any) -> Filter:
    return Filter(field, "gte", value)


def is_in(field: str, values: Sequence[Any]) -> Filter:
    return Filter(field, "in", tuple(values))


def normalize_value(value: Any) -> Any:
    """
    Bring Python values and stored values onto common ground.

    Rows hold JSON-compatible values (ISO dates, numeric strings),
    callers filter with dates, enums, UUIDs and Decimals.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    return value


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, Decimal) or isinstance(right, Decimal):
        l_dec, r_dec = _to_decimal(left), _to_decimal(right)
        if l_dec is not None and r_dec is not None:
            return l_dec, r_dec
    return str(left), str(right)


def _equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return str(left).lower() == str(right).lower()
    l_cmp, r_cmp = _comparable(left, right)
    return l_cmp == r_cmp


def sort_key(field: str):
    """Ordering key that tolerates missing values and mixed encodings."""
    def key(row: dict):
        value = normalize_value(row.get(field))
        if value is None:
            return (0, "")
        if isinstance(value, Decimal):
            return (1, value)
        decimal_value = _to_decimal(value) if isinstance(value, str) else None
        if decimal_value is not None and decimal_value.is_finite():
            return (1, decimal_value)
        return (2, str(value))
    return key


class StorageInterface(ABC):
    """
    Abstract interface for table storage.

    Any storage implementation (PostgreSQL, Google Sheets, in-memory)
    must implement these methods. Every method raises StorageError
    (or a subclass) on failure.
    """

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Fetch rows matching all filters.

        Args:
            table: Table name
            filters: Conditions combined with AND
            order_by: Optional field to sort on
            descending: Sort direction
            limit: Maximum number of rows

        Returns:
            List of matching rows (copies, safe to mutate)
        """
        pass

    @abstractmethod
    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        """Count rows matching all filters without fetching them."""
        pass

    @abstractmethod
    async def insert(self, table: str, rows: Sequence[dict]) -> list[dict]:
        """
        Insert rows.

        Raises:
            DuplicateError: If a row's `id` already exists
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        filters: Sequence[Filter],
        values: dict,
    ) -> list[dict]:
        """
        Update every row matching the filters.

        Returns:
            The updated rows
        """
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        """
        Delete every row matching the filters.

        Returns:
            Number of rows deleted
        """
        pass

    async def get_one(
        self,
        table: str,
        filters: Sequence[Filter],
    ) -> Optional[dict]:
        """Return the first matching row, or None."""
        rows = await self.query(table, filters, limit=1)
        return rows[0] if rows else None
