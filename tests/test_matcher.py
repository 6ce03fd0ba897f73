from __future__ import annotations

import pytest

from stitchplan.capacity.matcher import (
    BUFFER_LINE_ID,
    allocate_line,
    deallocate_line,
    group_machine_totals,
    match_capacity,
    new_line_group,
    next_group_name,
    requirements_from_operations,
    shortfall,
)
from stitchplan.core.models import LineGroup, SewingLine, SewingOperation


OPS = (
    SewingOperation(operation="shoulder", machine="SNLS", operators=3, sam=0.8),
    SewingOperation(operation="side seam", machine="OL", operators=2, sam=1.1),
    SewingOperation(operation="label", machine="SNLS", operators=1, sam=0.3),
)

LINES = [
    SewingLine(line_id="L1", name="Line 1", machine_counts={"SNLS": 3, "OL": 1, "FL": 1}),
    SewingLine(line_id="L2", name="Line 2", machine_counts={"SNLS": 2, "OL": 2}),
    SewingLine(line_id="L3", name="Line 3", machine_counts={"SNLS": 5}),
]


def _group() -> LineGroup:
    return new_line_group("CC-1", OPS)


def test_requirements_sum_operators_per_machine():
    assert requirements_from_operations(OPS) == {"OL": 2, "SNLS": 4}


def test_group_names_fill_first_gap():
    g1 = LineGroup(group_id="slg-1", name="SLG-1", cc_no="A", requirements={})
    g3 = LineGroup(group_id="slg-3", name="SLG-3", cc_no="B", requirements={})
    assert next_group_name([g1, g3]) == "SLG-2"
    assert _group().name == "SLG-1"


def test_greedy_match_routes_leftovers_to_buffer():
    result = match_capacity(_group(), LINES)
    assert result.allocated == ["L1", "L2"]
    assert result.unused == ["L3"]
    assert result.satisfied

    alloc = {a.line_id: a for a in result.group.allocations}
    assert alloc["L1"].machine_counts == {"SNLS": 3, "OL": 1}
    assert alloc["L1"].is_partial
    assert alloc["L2"].machine_counts == {"SNLS": 1, "OL": 1}
    assert group_machine_totals(result.group) == {"SNLS": 4, "OL": 2}

    assert result.buffer.line_id == BUFFER_LINE_ID
    assert result.buffer.machine_counts == {"FL": 1, "OL": 1, "SNLS": 1}


def test_whole_line_taken_when_fully_needed():
    group = LineGroup(group_id="g", name="SLG-1", cc_no="A", requirements={"SNLS": 5})
    group, buffer = allocate_line(group, LINES[2])
    assert group.allocations[0].is_partial is False
    assert buffer.machine_counts == {}


def test_line_without_needed_machines_is_skipped():
    group = LineGroup(group_id="g", name="SLG-1", cc_no="A", requirements={"OL": 1})
    result = match_capacity(group, [LINES[2], LINES[1]])
    assert result.unused == ["L3"]
    assert result.allocated == ["L2"]


def test_deallocate_returns_buffered_machines():
    result = match_capacity(_group(), LINES)
    group, buffer = deallocate_line(result.group, LINES[1], result.buffer)
    assert group.line_ids == ["L1"]
    assert buffer.machine_counts == {"FL": 1}
    assert shortfall(group) == {"SNLS": 1, "OL": 1}


def test_same_line_cannot_join_twice():
    group, buffer = allocate_line(_group(), LINES[0])
    with pytest.raises(ValueError):
        allocate_line(group, LINES[0], buffer)
