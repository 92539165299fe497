"""Document validation package."""

from docengine.validation.validator import DocumentValidator, party_issues, raise_for_issues

__all__ = ["DocumentValidator", "party_issues", "raise_for_issues"]
