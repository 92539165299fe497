"""Document status transitions and edit/delete guards."""

from docengine.lifecycle.state_machine import (
    INITIAL_STATUS,
    TRANSITIONS,
    allowed_transitions,
    assert_convertible,
    assert_deletable,
    assert_items_editable,
    assert_transition,
    initial_status,
    items_editable,
    overdue_target,
)

__all__ = [
    "INITIAL_STATUS",
    "TRANSITIONS",
    "allowed_transitions",
    "assert_convertible",
    "assert_deletable",
    "assert_items_editable",
    "assert_transition",
    "initial_status",
    "items_editable",
    "overdue_target",
]
