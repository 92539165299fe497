"""Document read views."""

from docengine.queries.views import DocumentQueries, DocumentViewCache

__all__ = ["DocumentQueries", "DocumentViewCache"]
