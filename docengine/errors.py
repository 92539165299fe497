"""
Engine Exceptions

Every error raised by the engine carries a user-facing message.
Storage failures are NOT defined here: they come from the storage
interface and are propagated unchanged.
"""

from typing import Optional


class DocumentEngineError(Exception):
    """Base exception for document engine failures."""
    pass


class ValidationError(DocumentEngineError):
    """
    Input rejected before anything was written.

    Carries the individual issues so a form can highlight fields.
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = issues or []
        super().__init__(message)


class QuotaExceededError(DocumentEngineError):
    """Plan limit reached. Recoverable by upgrading, never retried."""

    def __init__(self, reason: str, kind: Optional[str] = None):
        self.reason = reason
        self.kind = kind
        super().__init__(reason)


class StateConflictError(DocumentEngineError):
    """
    The requested change is not allowed in the document's current state.

    Examples: editing locked items, converting a quotation twice,
    setting an invoice to paid without recording a payment.
    """
    pass


class DocumentNotFoundError(DocumentEngineError):
    """Document does not exist for this company."""
    pass
