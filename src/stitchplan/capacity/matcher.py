from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

from stitchplan.core.models import LineAllocation, LineGroup, SewingLine, SewingOperation

logger = logging.getLogger(__name__)

BUFFER_LINE_ID = "buffer"


def empty_buffer() -> SewingLine:
    return SewingLine(line_id=BUFFER_LINE_ID, name="Buffer", machine_counts={})


@dataclass(frozen=True)
class MatchResult:
    group: LineGroup
    buffer: SewingLine
    allocated: list[str] = field(default_factory=list)
    unused: list[str] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        return not shortfall(self.group)


def requirements_from_operations(operations: Iterable[SewingOperation]) -> dict[str, int]:
    """Operators needed per machine type, summed over the operation bulletin."""
    req: dict[str, int] = {}
    for op in operations:
        if not op.machine or op.operators <= 0:
            continue
        req[op.machine] = req.get(op.machine, 0) + int(op.operators)
    return dict(sorted(req.items()))


def next_group_name(groups: Iterable[LineGroup]) -> str:
    used = set()
    for g in groups:
        if g.name.startswith("SLG-") and g.name[4:].isdigit():
            used.add(int(g.name[4:]))
    n = 1
    while n in used:
        n += 1
    return f"SLG-{n}"


def new_line_group(cc_no: str, operations: Sequence[SewingOperation], existing: Iterable[LineGroup] = ()) -> LineGroup:
    name = next_group_name(existing)
    return LineGroup(group_id=name.lower(), name=name, cc_no=cc_no, requirements=requirements_from_operations(operations))


def group_machine_totals(group: LineGroup) -> dict[str, int]:
    totals: dict[str, int] = {}
    for alloc in group.allocations:
        for machine_type, count in alloc.machine_counts.items():
            totals[machine_type] = totals.get(machine_type, 0) + count
    return totals


def shortfall(group: LineGroup) -> dict[str, int]:
    """Machine types the group still needs, with the missing count."""
    have = group_machine_totals(group)
    out = {}
    for machine_type, need in group.requirements.items():
        missing = need - have.get(machine_type, 0)
        if missing > 0:
            out[machine_type] = missing
    return out


def _add_counts(base: dict[str, int], extra: dict[str, int], sign: int = 1) -> dict[str, int]:
    out = dict(base)
    for k, v in extra.items():
        out[k] = max(0, out.get(k, 0) + sign * v)
    return {k: v for k, v in sorted(out.items()) if v > 0}


def allocate_line(group: LineGroup, line: SewingLine, buffer: SewingLine | None = None) -> tuple[LineGroup, SewingLine]:
    """Take what the group still needs from `line`; the rest of its machines go to the buffer."""
    if line.line_id == BUFFER_LINE_ID:
        raise ValueError("the buffer cannot be allocated to a group")
    if line.line_id in group.line_ids:
        raise ValueError(f"line {line.line_id} already belongs to group {group.name}")
    buffer = buffer or empty_buffer()

    missing = shortfall(group)
    taken = {t: min(missing[t], c) for t, c in line.machine_counts.items() if t in missing and c > 0}
    taken = {t: c for t, c in taken.items() if c > 0}
    leftover = {t: c - taken.get(t, 0) for t, c in line.machine_counts.items() if c - taken.get(t, 0) > 0}

    allocation = LineAllocation(
        line_id=line.line_id,
        machine_counts=taken,
        is_partial=sum(taken.values()) < line.total_machines,
    )
    group = replace(group, allocations=group.allocations + (allocation,))
    buffer = replace(buffer, machine_counts=_add_counts(buffer.machine_counts, leftover))
    logger.debug("Line %s -> %s took %s, buffered %s", line.line_id, group.name, taken, leftover)
    return group, buffer


def deallocate_line(
    group: LineGroup,
    line: SewingLine,
    buffer: SewingLine | None = None,
) -> tuple[LineGroup, SewingLine]:
    """Release `line` from the group and take back what it left in the buffer."""
    buffer = buffer or empty_buffer()
    alloc = next((a for a in group.allocations if a.line_id == line.line_id), None)
    if alloc is None:
        return group, buffer
    leftover = {t: c - alloc.machine_counts.get(t, 0) for t, c in line.machine_counts.items()}
    group = replace(group, allocations=tuple(a for a in group.allocations if a.line_id != line.line_id))
    buffer = replace(buffer, machine_counts=_add_counts(buffer.machine_counts, leftover, sign=-1))
    return group, buffer


def match_capacity(
    group: LineGroup,
    available_lines: Sequence[SewingLine],
    buffer: SewingLine | None = None,
) -> MatchResult:
    """Greedily add whole lines until the group's machine needs are met.

    Lines are taken in the given order. A line that offers none of the
    missing machine types is skipped. No backtracking.
    """
    buffer = buffer or empty_buffer()
    allocated: list[str] = []
    unused: list[str] = []
    for line in available_lines:
        if line.line_id == BUFFER_LINE_ID or line.line_id in group.line_ids:
            continue
        missing = shortfall(group)
        if not missing or not any(line.machine_counts.get(t, 0) > 0 for t in missing):
            unused.append(line.line_id)
            continue
        group, buffer = allocate_line(group, line, buffer)
        allocated.append(line.line_id)

    if shortfall(group):
        logger.info("Group %s still short of %s after matching", group.name, shortfall(group))
    return MatchResult(group=group, buffer=buffer, allocated=allocated, unused=unused)
