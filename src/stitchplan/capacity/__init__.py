"""Capacity package: matching sewing lines to a CC's machine requirements."""

from stitchplan.capacity.matcher import (
    BUFFER_LINE_ID,
    MatchResult,
    allocate_line,
    deallocate_line,
    empty_buffer,
    group_machine_totals,
    match_capacity,
    new_line_group,
    requirements_from_operations,
    shortfall,
)

__all__ = [
    "BUFFER_LINE_ID",
    "MatchResult",
    "allocate_line",
    "deallocate_line",
    "empty_buffer",
    "group_machine_totals",
    "match_capacity",
    "new_line_group",
    "requirements_from_operations",
    "shortfall",
]
