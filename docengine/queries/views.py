"""
Document Read Views

DESIGN DECISION: Reads are DETERMINISTIC and come straight from
storage. The only layer between a caller and the stored rows is a
per-company, per-type list cache, and every mutation in the aggregate
invalidates the affected entries before it returns.

List views carry headers only; get() loads the items as well.
"""

from typing import Optional

from docengine.errors import DocumentNotFoundError
from docengine.models.document import (
    DOCUMENT_TABLES,
    Document,
    DocumentType,
    parse_status,
)
from docengine.services.storage import StorageInterface, eq


class DocumentViewCache:
    """Cached document lists keyed by (company_id, document_type)."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._views: dict[tuple[str, DocumentType], list[Document]] = {}

    def get(self, company_id: str, document_type: DocumentType) -> Optional[list[Document]]:
        if not self._enabled:
            return None
        cached = self._views.get((company_id, document_type))
        if cached is None:
            return None
        return [document.model_copy(deep=True) for document in cached]

    def put(self, company_id: str, document_type: DocumentType, documents: list[Document]) -> None:
        if self._enabled:
            self._views[(company_id, document_type)] = [
                document.model_copy(deep=True) for document in documents
            ]

    def invalidate(self, company_id: str, *document_types: DocumentType) -> None:
        """Drop views of one company (all types when none are given)."""
        for document_type in document_types or tuple(DocumentType):
            self._views.pop((company_id, document_type), None)

    def is_cached(self, company_id: str, document_type: DocumentType) -> bool:
        return (company_id, document_type) in self._views

    def clear(self) -> None:
        self._views.clear()


class DocumentQueries:
    """
    Loads documents from storage.

    GUARANTEES:
    - Only returns rows of the requested company
    - Raises DocumentNotFoundError instead of returning None
    """

    def __init__(
        self,
        storage: StorageInterface,
        cache: Optional[DocumentViewCache] = None,
    ):
        self._storage = storage
        self._cache = cache or DocumentViewCache()

    @property
    def cache(self) -> DocumentViewCache:
        return self._cache

    async def load(
        self,
        company_id: str,
        document_type: DocumentType,
        document_id: str,
        with_items: bool = True,
    ) -> Document:
        """
        Fetch one document of a company.

        Raises:
            DocumentNotFoundError: If it doesn't exist for this company
        """
        document_type = DocumentType(document_type)
        row = await self._storage.get_one(DOCUMENT_TABLES[document_type].header, [
            eq("id", document_id),
            eq("company_id", company_id),
        ])
        if row is None:
            raise DocumentNotFoundError(
                f"{document_type.value.capitalize()} not found: {document_id}"
            )

        rows = None
        if with_items:
            rows = await self._storage.query(
                DOCUMENT_TABLES[document_type].items,
                [eq("document_id", document_id)],
            )
        return Document.from_row(row, rows)

    async def list(
        self,
        company_id: str,
        document_type: DocumentType,
        status=None,
    ) -> list[Document]:
        """
        Headers of a company's documents, newest issue date first.

        The full list is cached; status filtering happens on the cached view.
        """
        document_type = DocumentType(document_type)
        documents = self._cache.get(company_id, document_type)
        if documents is None:
            rows = await self._storage.query(
                DOCUMENT_TABLES[document_type].header,
                [eq("company_id", company_id)],
            )
            documents = sorted(
                (Document.from_row(row) for row in rows),
                key=lambda d: (d.issue_date, d.number),
                reverse=True,
            )
            self._cache.put(company_id, document_type, documents)

        if status is None:
            return documents
        wanted = parse_status(document_type, status)
        return [d for d in documents if d.status == wanted]
