from __future__ import annotations

from datetime import datetime

import pytest

from stitchplan.core.models import (
    ForecastComposition,
    ForecastSnapshot,
    Order,
    RampUpEntry,
    SewingLine,
    SewingOperation,
)
from stitchplan.session import PlanningSession

MON = datetime(2026, 2, 16, 9, 0)


def _session() -> PlanningSession:
    ops = (SewingOperation(operation="body", machine="SNLS", operators=6, sam=25.0),)
    orders = [
        Order(
            order_id=oid,
            ocn="CC-7",
            style="TEE",
            quantity=1000,
            process_ids=("sewing",),
            process_sam={"sewing": 1.0},
            budgeted_efficiency=100.0,
            operations=ops,
        )
        for oid in ("A", "B")
    ]
    snapshots = [
        ForecastSnapshot(order_id="A", snapshot_week=1, forecasts={"W6": {"total": ForecastComposition(po=300)}}),
        ForecastSnapshot(order_id="B", snapshot_week=1, forecasts={"W7": {"total": ForecastComposition(fc=200)}}),
    ]
    lines = [
        SewingLine(line_id="L1", name="Line 1", machine_counts={"SNLS": 4}),
        SewingLine(line_id="L2", name="Line 2", machine_counts={"SNLS": 4, "OL": 2}),
    ]
    return PlanningSession(orders=orders, snapshots=snapshots, lines=lines)


def test_ramp_up_is_replaced_wholesale_and_validated():
    session = _session()
    updated = session.update_ramp_up("A", [RampUpEntry(1, 60.0), RampUpEntry(3, 95.0)])
    assert session.order("A") is updated
    assert len(updated.ramp_up) == 2

    with pytest.raises(ValueError):
        session.update_ramp_up("A", [RampUpEntry(3, 60.0), RampUpEntry(1, 95.0)])
    assert session.order("A").ramp_up == updated.ramp_up


def test_set_lines_validates():
    session = _session()
    assert session.set_lines("A", 2).lines == 2
    with pytest.raises(ValueError):
        session.set_lines("A", 0)


def test_latest_snapshot_wins():
    session = _session()
    session.add_snapshot(
        ForecastSnapshot(order_id="A", snapshot_week=2, forecasts={"W6": {"total": ForecastComposition(po=500)}})
    )
    assert session.snapshot("A").snapshot_week == 2
    assert session.snapshot("A", 1).snapshot_week == 1
    plan = session.generate_tentative_plan("A")
    assert sum(plan.weekly_plan.values()) == 500


def test_plan_cc_allocates_weeks_to_orders():
    session = _session()
    cc_plan = session.plan_cc("CC-7", 1)
    plan = cc_plan.history.current
    assert sum(plan.weekly_plan.values()) == 500
    allocated = sum(q for weeks in cc_plan.allocation.values() for q in weeks.values())
    assert allocated == 500
    assert set(cc_plan.allocation) == {"A", "B"}


def test_capacity_matching_updates_groups_and_buffer():
    session = _session()
    group = session.create_line_group("CC-7")
    assert group.requirements == {"SNLS": 6}
    result = session.match_capacity(group.group_id)
    assert result.allocated == ["L1", "L2"]
    assert session.buffer.machine_counts == {"OL": 2, "SNLS": 2}
    assert session.free_lines() == []

    session.release_line(group.group_id, "L2")
    assert [ln.line_id for ln in session.free_lines()] == ["L2"]
    assert session.buffer.machine_counts == {}


def test_timeline_operations_through_session():
    session = _session()
    item = session.place_new("A", "sewing", 120, "L1", MON)
    assert item.end == datetime(2026, 2, 16, 11, 0)
    moved = session.place(item.item_id, "L1", datetime(2026, 2, 16, 13, 0))
    assert moved.start == datetime(2026, 2, 16, 13, 0)

    children = session.split([item.item_id], [60, 60])
    assert len(children) == 2
    assert sorted(session.undo(children[0].item_id)) == sorted(c.item_id for c in children)

    with pytest.raises(KeyError):
        session.place("missing", "L1", MON)


def test_auto_place_covers_open_batches():
    session = _session()
    placed = session.auto_place("A", "sewing", "L2", MON)
    # sewing batch = one day of output (480 units) -> 480, 480, 40
    assert [p.quantity for p in placed] == [480, 480, 40]
    assert session.unplanned("A", "sewing") == []
    assert sorted(session.undo(placed[0].item_id)) == sorted(p.item_id for p in placed)
