from __future__ import annotations

import pytest

from stitchplan.core.constants import PlanningParams
from stitchplan.core.duration import Throughput
from stitchplan.core.models import ForecastComposition, ForecastSnapshot, Order, SewingOperation
from stitchplan.planner.tentative import (
    aggregate_demand,
    allocate_to_models,
    generate_tentative_plan,
    plan_horizon,
    plan_with_history,
    snapshot_as_of,
)


def _order(order_id: str = "O1", **kw) -> Order:
    base = dict(
        order_id=order_id,
        ocn="CC-1",
        style="TEE",
        quantity=1000,
        process_ids=("sewing",),
        process_sam={"sewing": 25.0},
        budgeted_efficiency=85.0,
    )
    base.update(kw)
    return Order(**base)


def _snapshot(order_id: str, snapshot_week: int, demand: dict[str, tuple[float, float]]) -> ForecastSnapshot:
    return ForecastSnapshot(
        order_id=order_id,
        snapshot_week=snapshot_week,
        forecasts={w: {"total": ForecastComposition(po=po, fc=fc)} for w, (po, fc) in demand.items()},
    )


SIX_OPERATOR_BULLETIN = (
    SewingOperation(operation="body", machine="SNLS", operators=6, sam=25.0),
)


def test_plan_from_snapshot_escalates_lines():
    plan = generate_tentative_plan(_order(), _snapshot("O1", 1, {"W10": (600, 400)}))
    assert len(plan.runs) == 1
    run = plan.runs[0]
    assert run.lines == 3
    assert run.start_week == 6
    assert plan.weekly_plan == {6: 294, 7: 294, 8: 293, 9: 119}
    assert plan.plan_by_label()["W6"] == 294
    assert plan.dropped_runs == []


def test_snapshot_week_is_default_floor():
    plan = generate_tentative_plan(_order(), _snapshot("O1", 8, {"W10": (1000, 0)}))
    assert plan.runs[0].start_week == 8
    assert plan.runs[0].offset == 2
    assert min(plan.weekly_plan) >= 8


def test_explicit_floor_allows_earlier_start():
    order = _order(operations=SIX_OPERATOR_BULLETIN)
    plan = generate_tentative_plan(order, _snapshot("O1", 9, {"W10": (1000, 0)}), simulation_floor=5)
    assert plan.runs[0].lines == 1
    assert plan.weekly_plan == {8: 588, 9: 412}


def test_no_snapshot_gives_empty_plan():
    plan = generate_tentative_plan(_order(), None)
    assert plan.weekly_plan == {}
    assert plan.runs == []


def test_multiple_runs_numbered_and_deterministic():
    order = _order(operations=SIX_OPERATOR_BULLETIN)
    snap = _snapshot("O1", 1, {"W5": (300, 0), "W20": (200, 100)})
    first = generate_tentative_plan(order, snap)
    second = generate_tentative_plan(order, snap)
    assert first == second
    assert [r.run_number for r in first.runs] == [1, 2]
    assert sum(first.weekly_plan.values()) == 600


def test_dropped_run_reported_not_raised():
    params = PlanningParams(max_lines=1)
    plan = generate_tentative_plan(_order(), _snapshot("O1", 1, {"W10": (1000, 0)}), params=params)
    assert plan.runs == []
    assert plan.weekly_plan == {}
    assert [r.start_week for r in plan.dropped_runs] == [10]


def test_dropped_run_does_not_starve_later_runs():
    plan = plan_horizon(
        {10: 1000.0, 20: 100.0},
        start_week=1,
        throughput=Throughput(sam=25.0, operators=1, efficiency=85.0),
        params=PlanningParams(max_lines=2),
    )
    assert [r.start_week for r in plan.dropped_runs] == [10]
    assert [r.run.start_week for r in plan.runs] == [20]
    assert plan.runs[0].lines == 1
    assert plan.weekly_plan == {18: 98, 19: 2}
    assert plan.carry_out == pytest.approx(0.0)


def test_aggregate_demand_uses_snapshot_as_of_week():
    snaps = {
        "A": [_snapshot("A", 1, {"W5": (10, 0)}), _snapshot("A", 3, {"W5": (20, 5)})],
        "B": [_snapshot("B", 2, {"W5": (1, 1), "W6": (4, 0)})],
    }
    assert aggregate_demand(snaps, 2) == {5: 12.0, 6: 4.0}
    assert aggregate_demand(snaps, 3) == {5: 27.0, 6: 4.0}
    assert snapshot_as_of(snaps["A"], 0) is None


def test_history_phase_accumulates_produced_inventory():
    order = _order(operations=SIX_OPERATOR_BULLETIN)
    snaps = {"O1": [_snapshot("O1", 1, {"W2": (100, 0)}), _snapshot("O1", 2, {"W2": (100, 0)})]}
    history = plan_with_history([order], snaps, 2)
    assert history.produced == {1: 100}
    assert history.opening_inventory == pytest.approx(100.0)
    # what was made in W1 already covers W2
    assert history.current.weekly_plan == {}
    assert history.current.carry_out == pytest.approx(0.0)


def test_history_without_snapshots_is_empty():
    history = plan_with_history([_order()], {}, 5)
    assert history.current.weekly_plan == {}
    assert history.produced == {}


def test_allocation_goes_to_lowest_projected_inventory():
    allocation = allocate_to_models({5: 100, 6: 100}, {"A": {6: 100}, "B": {7: 100}})
    assert allocation == {"A": {5: 100}, "B": {6: 100}}


def test_allocation_without_upcoming_demand_falls_back_to_first_order():
    allocation = allocate_to_models({9: 50}, {"A": {3: 10}, "B": {4: 10}})
    assert allocation == {"A": {9: 50}, "B": {}}


def test_history_skips_weeks_without_a_snapshot():
    order = _order(operations=SIX_OPERATOR_BULLETIN)
    snaps = {
        "O1": [
            _snapshot("O1", 1, {"W2": (100, 0)}),
            _snapshot("O1", 3, {"W3": (50, 0), "W5": (100, 0)}),
            _snapshot("O1", 4, {"W5": (100, 0)}),
        ]
    }
    history = plan_with_history([order], snaps, 4)
    # W2 had no snapshot: nothing is replanned or produced there
    assert history.produced == {1: 100, 3: 50}
    assert history.opening_inventory == pytest.approx(100.0)
    assert history.current.weekly_plan == {}


def test_aggregate_demand_exact_week_only():
    snaps = {"A": [_snapshot("A", 1, {"W5": (10, 0)})], "B": [_snapshot("B", 2, {"W5": (1, 1)})]}
    assert aggregate_demand(snaps, 2, exact=True) == {5: 2.0}
    assert aggregate_demand(snaps, 3, exact=True) == {}
