"""Document numbering package."""

from docengine.numbering.sequencer import (
    NumberSequencer,
    extract_sequence,
    format_number,
    next_number_from,
)

__all__ = [
    "NumberSequencer",
    "extract_sequence",
    "format_number",
    "next_number_from",
]
