"""
In-Memory Storage Implementation

Keeps every table as a list of dict rows. Used by the test-suite and
for local experimentation; it follows the same interface as the
Google Sheets backend, so business logic cannot tell them apart.

Deleting a document header cascades to its items, mirroring the
foreign-key cascade a relational store would provide.
"""

import copy
from typing import Optional, Sequence

from docengine.services.storage.interface import (
    DuplicateError,
    Filter,
    StorageInterface,
    sort_key,
)


# header table -> (items table, foreign key column)
CASCADES = {
    "quotations": ("quotation_items", "document_id"),
    "invoices": ("invoice_items", "document_id"),
    "supplier_invoices": ("supplier_invoice_items", "document_id"),
}


class InMemoryStorage(StorageInterface):
    """Dict-of-lists storage backend."""

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None):
        self._tables: dict[str, list[dict]] = {
            name: [dict(row) for row in rows]
            for name, rows in (tables or {}).items()
        }

    def _table(self, table: str) -> list[dict]:
        return self._tables.setdefault(table, [])

    def _matching(self, table: str, filters: Sequence[Filter]) -> list[dict]:
        return [
            row for row in self._table(table)
            if all(f.matches(row) for f in filters)
        ]

    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        rows = self._matching(table, filters)
        if order_by:
            rows = sorted(rows, key=sort_key(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        return len(self._matching(table, filters))

    async def insert(self, table: str, rows: Sequence[dict]) -> list[dict]:
        existing_ids = {row.get("id") for row in self._table(table) if row.get("id")}
        new_ids = [row.get("id") for row in rows if row.get("id")]
        duplicates = existing_ids.intersection(new_ids)
        if duplicates or len(new_ids) != len(set(new_ids)):
            raise DuplicateError(f"Duplicate id in {table}: {sorted(duplicates) or new_ids}")

        stored = [copy.deepcopy(dict(row)) for row in rows]
        self._table(table).extend(stored)
        return copy.deepcopy(stored)

    async def update(
        self,
        table: str,
        filters: Sequence[Filter],
        values: dict,
    ) -> list[dict]:
        updated = []
        for row in self._matching(table, filters):
            row.update(copy.deepcopy(values))
            updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        doomed = self._matching(table, filters)
        doomed_ids = {id(row) for row in doomed}
        self._tables[table] = [
            row for row in self._table(table) if id(row) not in doomed_ids
        ]

        cascade = CASCADES.get(table)
        if cascade and doomed:
            items_table, fk = cascade
            parent_ids = {row.get("id") for row in doomed}
            self._tables[items_table] = [
                item for item in self._table(items_table)
                if item.get(fk) not in parent_ids
            ]

        return len(doomed)

    def dump(self, table: str) -> list[dict]:
        """Raw table contents (for debugging and tests)."""
        return copy.deepcopy(self._table(table))
