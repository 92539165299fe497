"""
Document Numbering

Numbers look like PREFIX-0001. The next number is derived from ALL
existing numbers of the company and type, not the most recent one:
users edit numbers by hand, and a manually lowered number must not
cause a collision later.

Accepted legacy formats (case-insensitive): INV-0007, inv-7,
QUO-0003, QTN0003, plain 0004, "Invoice 12". Anything without digits
is ignored. Parsing never raises.

LIMITATION: there is no lock. Two users creating documents in the
same company at the same moment can be handed the same number; the
aggregate rejects a number that is already taken when it saves.
"""

import re
from typing import Iterable, Optional

from docengine.config import EngineSettings, get_settings
from docengine.models.document import DOCUMENT_TABLES, DocumentType
from docengine.services.storage import StorageInterface, eq


PREFIX_ALIASES: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.QUOTATION: ("QTN", "QUO"),
    DocumentType.INVOICE: ("INV",),
    DocumentType.PURCHASE: ("PUR",),
}

TRAILING_DIGITS = re.compile(r"(\d+)$")


def _prefixed_pattern(document_type: DocumentType) -> re.Pattern:
    aliases = "|".join(PREFIX_ALIASES[document_type])
    return re.compile(rf"(?:{aliases})-(\d+)", re.IGNORECASE)


def extract_sequence(number: Optional[str], document_type: DocumentType) -> Optional[int]:
    """
    Pull the sequence integer out of a document number.

    Tries PREFIX-#### first, then any trailing digit run.
    Returns None for numbers that carry no usable integer.
    """
    if not number:
        return None
    text = str(number).strip()

    match = _prefixed_pattern(document_type).search(text)
    if match is None:
        match = TRAILING_DIGITS.search(text)
    if match is None:
        return None
    return int(match.group(1))


def format_number(document_type: DocumentType, sequence: int, padding: int = 4) -> str:
    prefix = DOCUMENT_TABLES[document_type].prefix
    return f"{prefix}-{sequence:0{padding}d}"


def next_number_from(
    existing: Iterable[Optional[str]],
    document_type: DocumentType,
    padding: int = 4,
) -> str:
    """
    Next number after the highest sequence found in `existing`.

    >>> next_number_from(["INV-0001", "INV-0007", "badnum", "INV-0003"], DocumentType.INVOICE)
    'INV-0008'
    """
    highest = 0
    for number in existing:
        sequence = extract_sequence(number, document_type)
        if sequence is not None and sequence > highest:
            highest = sequence
    return format_number(document_type, highest + 1, padding)


class NumberSequencer:
    """Allocates human-readable numbers per company and document type."""

    def __init__(
        self,
        storage: StorageInterface,
        settings: Optional[EngineSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().engine

    async def existing_numbers(self, company_id: str, document_type: DocumentType) -> list[str]:
        rows = await self._storage.query(
            DOCUMENT_TABLES[document_type].header,
            [eq("company_id", company_id)],
        )
        return [row.get("number") for row in rows if row.get("number")]

    async def next_number(self, company_id: str, document_type: DocumentType) -> str:
        """Scan every existing number (no date filter) and return max + 1."""
        existing = await self.existing_numbers(company_id, document_type)
        return next_number_from(existing, document_type, self._settings.number_padding)

    async def is_taken(
        self,
        company_id: str,
        document_type: DocumentType,
        number: str,
        exclude_id: Optional[str] = None,
    ) -> bool:
        """Is this exact number (case-insensitive) already used?"""
        rows = await self._storage.query(
            DOCUMENT_TABLES[document_type].header,
            [eq("company_id", company_id)],
        )
        wanted = number.strip().upper()
        return any(
            str(row.get("number") or "").strip().upper() == wanted
            for row in rows
            if row.get("id") != exclude_id
        )
